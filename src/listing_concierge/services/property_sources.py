"""Pluggable backing sources for tenant property catalogs.

Every source exposes ``await load(tenant_id) -> list[dict]`` and raises
``PropertySourceNotFound`` when the tenant has no catalog.

- LocalFileSource      ``<data_dir>/<tenant>/properties.json`` (or a shared
                       ``<data_dir>/properties.json`` for single-tenant setups)
- GCSSource            ``<base_url>/<bucket>/<tenant>/properties.json`` over httpx
- DocumentStoreSource  ``property_documents`` table via SQLAlchemy
"""

import asyncio
import json
import logging
from pathlib import Path
from typing import Protocol

import httpx
from sqlalchemy import select

logger = logging.getLogger(__name__)

CATALOG_FILENAME = "properties.json"


class PropertySourceNotFound(Exception):
    """The tenant has no catalog in this source."""


class PropertySource(Protocol):
    async def load(self, tenant_id: str) -> list[dict]: ...


def _as_records(payload) -> list[dict]:
    # Some exports wrap the list: {"properties": [...]}
    if isinstance(payload, dict):
        payload = payload.get("properties", [])
    if not isinstance(payload, list):
        raise ValueError("catalog payload is not a list of records")
    return [r for r in payload if isinstance(r, dict)]


class LocalFileSource:
    """Reads catalogs from JSON files on local disk."""

    def __init__(self, data_dir: str):
        self.data_dir = Path(data_dir)

    def _path_for(self, tenant_id: str) -> Path:
        tenant_path = self.data_dir / tenant_id / CATALOG_FILENAME
        if tenant_path.is_file():
            return tenant_path
        shared = self.data_dir / CATALOG_FILENAME
        if shared.is_file():
            return shared
        raise PropertySourceNotFound(tenant_id)

    async def load(self, tenant_id: str) -> list[dict]:
        path = self._path_for(tenant_id)
        raw = await asyncio.to_thread(path.read_text, encoding="utf-8")
        records = _as_records(json.loads(raw))
        logger.info("Loaded %d properties for %s from %s", len(records), tenant_id, path)
        return records


class GCSSource:
    """Fetches ``<tenant>/properties.json`` objects from a storage bucket over HTTPS."""

    def __init__(self, bucket: str, base_url: str = "https://storage.googleapis.com", timeout: float = 30.0):
        self.bucket = bucket
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout

    def object_url(self, tenant_id: str) -> str:
        return f"{self.base_url}/{self.bucket}/{tenant_id}/{CATALOG_FILENAME}"

    async def load(self, tenant_id: str) -> list[dict]:
        url = self.object_url(tenant_id)
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            resp = await client.get(url)
        if resp.status_code == 404:
            raise PropertySourceNotFound(tenant_id)
        resp.raise_for_status()
        records = _as_records(resp.json())
        logger.info("Loaded %d properties for %s from %s", len(records), tenant_id, url)
        return records


class DocumentStoreSource:
    """Reads raw catalog records from the ``property_documents`` table."""

    def __init__(self, session_factory):
        self.session_factory = session_factory

    async def load(self, tenant_id: str) -> list[dict]:
        from listing_concierge.domain.models import PropertyDocument

        async with self.session_factory() as session:
            result = await session.execute(
                select(PropertyDocument.record)
                .where(PropertyDocument.tenant_id == tenant_id)
                .order_by(PropertyDocument.listing_id)
            )
            records = [row for row in result.scalars().all() if isinstance(row, dict)]
        if not records:
            raise PropertySourceNotFound(tenant_id)
        logger.info("Loaded %d properties for %s from document store", len(records), tenant_id)
        return records


def build_property_source(settings) -> PropertySource:
    """Pick the catalog source named in settings."""
    if settings.property_source == "gcs":
        return GCSSource(settings.gcs_bucket, settings.gcs_base_url)
    if settings.property_source == "document":
        from listing_concierge.infra.database import async_session

        return DocumentStoreSource(async_session)
    return LocalFileSource(settings.property_data_dir)
