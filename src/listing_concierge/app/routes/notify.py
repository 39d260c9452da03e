"""Storage change notification: POST /gcs-notify.

Cloud Storage publishes object changes through Pub/Sub push. The object name
is ``<tenant_id>/<file>``; the tenant's cached catalog is dropped so the next
chat request reloads it. Always acknowledges with 200 so Pub/Sub does not
redeliver malformed messages forever.
"""

import base64
import json
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Request

from listing_concierge.app.dependencies import Services, get_services

logger = logging.getLogger(__name__)

router = APIRouter(tags=["notify"])


def object_name_from_envelope(envelope: dict) -> Optional[str]:
    """Pull the changed object's name out of a Pub/Sub push envelope."""
    message = envelope.get("message") or {}
    attributes = message.get("attributes") or {}
    if attributes.get("objectId"):
        return attributes["objectId"]

    data = message.get("data")
    if data:
        try:
            decoded = json.loads(base64.b64decode(data).decode("utf-8"))
        except (ValueError, UnicodeDecodeError):
            logger.warning("Could not decode Pub/Sub message data")
            return None
        if isinstance(decoded, dict):
            return decoded.get("name")
    return envelope.get("name")


def tenant_from_object(name: str) -> Optional[str]:
    """``agent.example.co.id/properties.json`` -> ``agent.example.co.id``."""
    if not name or "/" not in name:
        return None
    tenant_id = name.split("/", 1)[0].strip().lower()
    return tenant_id or None


@router.post("/gcs-notify")
async def gcs_notify(request: Request, services: Services = Depends(get_services)):
    try:
        envelope = await request.json()
    except ValueError:
        logger.warning("gcs-notify received a non-JSON body")
        return {"status": "ignored"}

    name = object_name_from_envelope(envelope if isinstance(envelope, dict) else {})
    tenant_id = tenant_from_object(name or "")
    if tenant_id is None:
        logger.info("gcs-notify: no tenant in object name %r", name)
        return {"status": "ignored"}

    invalidated = services.store.invalidate(tenant_id)
    logger.info("gcs-notify: %s changed, cache invalidated=%s", name, invalidated)
    return {"status": "ok", "tenant_id": tenant_id, "invalidated": invalidated}
