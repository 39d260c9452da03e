"""Property listing value object.

Listings are immutable once loaded into a catalog snapshot; a refresh
replaces the whole snapshot. Personal-tier listings carry a direct ``url``;
office/national (co-brokerage) listings carry ``image`` + ``eflyer`` instead
and never expose ``url``.
"""

import re
from dataclasses import asdict, dataclass, replace
from typing import Any, Optional

MAX_DESCRIPTION_LENGTH = 2000

_BEDROOM_PATTERN = re.compile(
    r"(\d{1,2})\s*(?:kt\b|kamar tidur|bedrooms?|br\b|bed\b)", re.IGNORECASE
)


def _text(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


def _parse_bedrooms(record: dict, title: str, description: str) -> Optional[int]:
    raw = record.get("bedrooms")
    if raw not in (None, ""):
        try:
            return int(raw)
        except (TypeError, ValueError):
            pass
    match = _BEDROOM_PATTERN.search(f"{title} {description}")
    if match:
        return int(match.group(1))
    return None


@dataclass(frozen=True)
class PropertyListing:
    """One listing in a tenant catalog."""

    id: str
    title: str
    location: str
    price: str
    type: str
    description: str = ""
    poi: str = ""
    bedrooms: Optional[int] = None
    url: Optional[str] = None
    image_url: Optional[str] = None
    # Co-brokerage (office / national tier)
    listing_id: Optional[str] = None
    image: Optional[str] = None
    eflyer: Optional[str] = None
    source_tenant: Optional[str] = None
    source_level: Optional[int] = None
    source_label: Optional[str] = None

    @classmethod
    def from_record(cls, record: dict) -> "PropertyListing":
        """Build a listing from a raw catalog record, truncating the description."""
        title = _text(record.get("title"))
        description = _text(record.get("description"))[:MAX_DESCRIPTION_LENGTH]
        return cls(
            id=_text(record.get("id") or record.get("listingId")),
            title=title,
            location=_text(record.get("location")),
            price=_text(record.get("price")),
            type=_text(record.get("type")),
            description=description,
            poi=_text(record.get("poi")),
            bedrooms=_parse_bedrooms(record, title, description),
            url=record.get("url") or None,
            image_url=record.get("imageUrl") or None,
            listing_id=record.get("listingId") or None,
            image=record.get("image") or None,
            eflyer=record.get("eflyer") or None,
        )

    @property
    def searchable_text(self) -> str:
        return " ".join((self.location, self.title, self.description, self.poi)).lower()

    @property
    def category_text(self) -> str:
        """Text that carries the category hint (location and title)."""
        return f"{self.location} {self.title}".lower()

    def for_cobroke(self, source_tenant: str, level: int, label: str) -> "PropertyListing":
        """Return a co-brokerage copy: tagged with its source and stripped of ``url``."""
        return replace(
            self,
            url=None,
            image=self.image or self.image_url,
            image_url=None,
            source_tenant=source_tenant,
            source_level=level,
            source_label=label,
        )

    def to_public_dict(self) -> dict:
        """Serialize for the model and the chat client, camelCase like the catalog records."""
        data = asdict(self)
        out = {
            "id": data["id"],
            "title": data["title"],
            "location": data["location"],
            "price": data["price"],
            "type": data["type"],
            "description": data["description"],
            "poi": data["poi"],
        }
        if self.bedrooms is not None:
            out["bedrooms"] = self.bedrooms
        if self.source_tenant is None:
            if self.url:
                out["url"] = self.url
            if self.image_url:
                out["imageUrl"] = self.image_url
        else:
            out["listingId"] = self.listing_id or self.id
            out["image"] = self.image
            out["eflyer"] = self.eflyer
            out["sourceTenant"] = self.source_tenant
            out["level"] = self.source_level
            out["levelLabel"] = self.source_label
        return out

    def link_values(self) -> list[str]:
        """Every link the listing carries (used to allow their domains in replies)."""
        return [v for v in (self.url, self.image_url, self.image, self.eflyer) if v]
