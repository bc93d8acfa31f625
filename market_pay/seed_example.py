from sqlalchemy import select

from market_pay.config import settings
from market_pay.db import SessionLocal, init_db
from market_pay.models import Principal, Vendor
from market_pay.security.passwords import hash_password
from market_pay.services.vendor_service import create_vendor

DEMO_VENDORS = (
    {'name': 'Fresh Produce Co.', 'description': 'Seasonal fruit and vegetables', 'contact_name': 'Ana'},
    {'name': 'Hilltop Bakery', 'description': 'Bread and pastries', 'contact_name': 'Sam'},
    {'name': 'River Honey', 'description': None, 'contact_name': None},
)


def seed() -> None:
    if settings.auto_create_schema:
        init_db()

    with SessionLocal() as db:
        operator = db.execute(select(Principal).where(Principal.username == 'operator')).scalar_one_or_none()
        if not operator:
            db.add(Principal(username='operator', password_hash=hash_password('operatorpass'), active=True))

        existing = set(db.execute(select(Vendor.name)).scalars().all())
        for fields in DEMO_VENDORS:
            if fields['name'] not in existing:
                create_vendor(db, **fields)

        db.commit()


if __name__ == '__main__':
    seed()
    print('Seed data inserted/verified.')
