"""SQLAlchemy ORM models for the listing concierge.

All models use SQLite-compatible types:
- String for domain-like tenant ids and UUID primary keys
- JSON for structured data (no JSONB)
- DateTime for timestamps (no TIMESTAMPTZ)
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    JSON,
    String,
    Text,
)
from sqlalchemy.sql import func

from listing_concierge.infra.database import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# Tenancy
# ---------------------------------------------------------------------------


class Tenant(Base):
    """One logical customer (agent or office). Deactivated, never deleted."""

    __tablename__ = "tenants"

    id = Column(String(255), primary_key=True)  # domain-like, e.g. "agent.example.co.id"
    display_name = Column(String(255), nullable=True)
    plan = Column(String(20), nullable=False, default="free")  # free, pro
    agent_email = Column(String(255), nullable=True)
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime, default=func.now())
    deactivated_at = Column(DateTime, nullable=True)


class OfficeHierarchy(Base):
    """Maps a personal tenant to its office (level 2) and national (level 3) tenants."""

    __tablename__ = "office_hierarchy"

    tenant_id = Column(String(255), ForeignKey("tenants.id"), primary_key=True)
    office_tenant_id = Column(String(255), nullable=True)
    national_tenant_id = Column(String(255), nullable=True)
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now())


class CoBrokerageConfig(Base):
    """Gates whether a tenant may search other tenants' catalogs."""

    __tablename__ = "cobrokerage_configs"

    tenant_id = Column(String(255), ForeignKey("tenants.id"), primary_key=True)
    enabled = Column(Boolean, default=False)
    shared_tenants = Column(JSON, default=list)
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now())


# ---------------------------------------------------------------------------
# Audit / feedback
# ---------------------------------------------------------------------------


class AuditEvent(Base):
    """Append-only event log (security incidents, validation warnings, leads)."""

    __tablename__ = "audit_events"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    collection = Column(String(64), nullable=False, index=True)
    tenant_id = Column(String(255), nullable=True, index=True)
    payload = Column(JSON, default=dict)
    created_at = Column(DateTime, default=_utcnow, index=True)


class Feedback(Base):
    """Thumbs up/down rating on a single assistant reply."""

    __tablename__ = "feedback"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    tenant_id = Column(String(255), nullable=False, index=True)
    message_id = Column(String(100), nullable=True)
    conversation_id = Column(String(200), nullable=True)
    rating = Column(String(20), nullable=False)  # thumbs_up, thumbs_down
    user_message = Column(Text, nullable=True)
    ai_response = Column(Text, nullable=True)
    comment = Column(Text, nullable=True)
    created_at = Column(DateTime, default=_utcnow, index=True)


# ---------------------------------------------------------------------------
# Catalog (document-store source)
# ---------------------------------------------------------------------------


class PropertyDocument(Base):
    """Raw catalog record stored per tenant (document-store property source)."""

    __tablename__ = "property_documents"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    tenant_id = Column(String(255), nullable=False, index=True)
    listing_id = Column(String(100), nullable=False)
    record = Column(JSON, nullable=False)
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now())
