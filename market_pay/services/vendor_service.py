from __future__ import annotations

import secrets
import uuid
from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.orm import Session

from market_pay.models import Vendor

SHARE_TOKEN_BYTES = 16


def _now() -> datetime:
    return datetime.now(tz=timezone.utc)


def _clean_optional(value: str | None) -> str | None:
    if value is None:
        return None
    value = value.strip()
    return value or None


def _clean_name(name: str | None) -> str:
    clean = (name or '').strip()
    if not clean:
        raise ValueError('Vendor name is required')
    return clean


def generate_share_token() -> str:
    return secrets.token_hex(SHARE_TOKEN_BYTES)


def list_vendors(db: Session) -> list[Vendor]:
    return db.execute(select(Vendor).order_by(Vendor.name.asc())).scalars().all()


def get_vendor(db: Session, vendor_id: uuid.UUID) -> Vendor:
    vendor = db.get(Vendor, vendor_id)
    if not vendor:
        raise ValueError('Vendor not found')
    return vendor


def get_vendor_by_share_token(db: Session, share_token: str) -> Vendor:
    vendor = None
    if share_token:
        vendor = db.execute(select(Vendor).where(Vendor.share_token == share_token)).scalar_one_or_none()
    if not vendor:
        raise ValueError('Vendor not found')
    return vendor


def create_vendor(
    db: Session,
    *,
    name: str,
    description: str | None = None,
    contact_name: str | None = None,
    contact_phone: str | None = None,
) -> Vendor:
    vendor = Vendor(
        name=_clean_name(name),
        description=_clean_optional(description),
        contact_name=_clean_optional(contact_name),
        contact_phone=_clean_optional(contact_phone),
        share_token=generate_share_token(),
    )
    db.add(vendor)
    db.flush()
    return vendor


def update_vendor(
    db: Session,
    *,
    vendor_id: uuid.UUID,
    name: str,
    description: str | None = None,
    contact_name: str | None = None,
    contact_phone: str | None = None,
) -> Vendor:
    vendor = get_vendor(db, vendor_id)
    vendor.name = _clean_name(name)
    vendor.description = _clean_optional(description)
    vendor.contact_name = _clean_optional(contact_name)
    vendor.contact_phone = _clean_optional(contact_phone)
    vendor.updated_at = _now()
    db.flush()
    return vendor


def delete_vendor(db: Session, *, vendor_id: uuid.UUID) -> dict:
    """Delete a vendor; the database cascades its transactions and payment requests."""
    vendor = get_vendor(db, vendor_id)
    snapshot = {'id': vendor.id, 'name': vendor.name}
    db.delete(vendor)
    db.flush()
    # Rows removed by ON DELETE CASCADE may still sit in the identity map.
    db.expire_all()
    return snapshot


def share_link(vendor: Vendor, base_url: str) -> str:
    return f"{base_url.rstrip('/')}/v/{vendor.share_token}"
