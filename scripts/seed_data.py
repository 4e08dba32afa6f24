"""
Seed data script — creates a demo company ready for asset imports.

Creates:
  - 1 Company ("Acme Facilities")
  - 2 Users (an admin and an operator)
  - A location hierarchy: 2 buildings, 3 floors, 6 rooms
  - 2 Departments
  - 3 Asset categories and the default asset type
  - 5 Assets with serial numbers, so imports have something to conflict with

Usage:
  python -m scripts.seed_data

Alternatively, import and call seed_company() with a database session.
"""

import asyncio
from datetime import date
from decimal import Decimal

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from assethub.core.config import settings
from assethub.models.core import Asset, AssetCategory, AssetType, Department, Location
from assethub.models.infrastructure import Company, User
from assethub.services.asset_writer import DEFAULT_ASSET_TYPE


# ─── Location layout ───────────────────────────────────────────

BUILDINGS = {
    "Head Office": {
        "Floor 1": ["Reception", "Server Room"],
        "Floor 2": ["Finance", "Boardroom"],
    },
    "Warehouse": {
        "Ground": ["Loading Bay", "Tool Store"],
    },
}

DEPARTMENTS = ["Finance", "Operations"]
CATEGORIES = ["IT Equipment", "Furniture", "Tools"]

SEED_ASSETS = [
    # (asset_id suffix, name, category, serial, room, price)
    ("000001", "Dell PowerEdge R650", "IT Equipment", "SRV-1001", "Server Room", "8900.00"),
    ("000002", "Cisco Catalyst 9200", "IT Equipment", "NET-2001", "Server Room", "2150.00"),
    ("000003", "Boardroom Table", "Furniture", None, "Boardroom", "1800.00"),
    ("000004", "Makita Drill DHP486", "Tools", "MK-3001", "Tool Store", "249.99"),
    ("000005", "HP LaserJet M507", "IT Equipment", "PRN-4001", "Finance", "649.00"),
]


async def seed_company(db: AsyncSession) -> dict[str, int]:
    """
    Create the demo company and everything an import resolves against.
    Returns a dict of key names → ids for reference.
    """
    ids: dict[str, int] = {}

    company = Company(name="Acme Facilities")
    db.add(company)
    await db.flush()
    ids["company"] = company.id

    # ── Users ──────────────────────────────────────────────
    admin = User(company_id=company.id, email="admin@acme.example", name="Avery Admin")
    operator = User(company_id=company.id, email="ops@acme.example", name="Orin Operator")
    db.add_all([admin, operator])
    await db.flush()
    ids["admin"] = admin.id
    ids["operator"] = operator.id

    # ── Locations ──────────────────────────────────────────
    rooms: dict[str, int] = {}
    location_count = 0
    for building_name, floors in BUILDINGS.items():
        building = Location(company_id=company.id, name=building_name)
        db.add(building)
        await db.flush()
        location_count += 1
        for floor_name, room_names in floors.items():
            floor = Location(company_id=company.id, parent_id=building.id, name=floor_name)
            db.add(floor)
            await db.flush()
            location_count += 1
            for room_name in room_names:
                room = Location(company_id=company.id, parent_id=floor.id, name=room_name)
                db.add(room)
                await db.flush()
                location_count += 1
                rooms[room_name] = room.id

    # ── Lookups ────────────────────────────────────────────
    departments = {}
    for name in DEPARTMENTS:
        department = Department(company_id=company.id, name=name, created_by=admin.id)
        db.add(department)
        departments[name] = department

    categories = {}
    for name in CATEGORIES:
        category = AssetCategory(name=name, description=f"{name} category")
        db.add(category)
        categories[name] = category

    db.add(AssetType(name=DEFAULT_ASSET_TYPE))
    await db.flush()

    # ── Assets ─────────────────────────────────────────────
    for suffix, name, category_name, serial, room_name, price in SEED_ASSETS:
        db.add(Asset(
            asset_id=f"ASSET-{company.id}-{suffix}",
            company_id=company.id,
            name=name,
            category_id=categories[category_name].id,
            type=DEFAULT_ASSET_TYPE,
            serial_number=serial,
            purchase_date=date(2023, 6, 1),
            purchase_price=Decimal(price),
            location_id=rooms[room_name],
            department_id=departments["Operations"].id,
            user_id=admin.id,
            status="active",
        ))
    await db.flush()

    print("Seeded Acme Facilities:")
    print(f"  Company:     {ids['company']}")
    print(f"  Users:       admin ({ids['admin']}), operator ({ids['operator']})")
    print(f"  Locations:   {location_count}")
    print(f"  Assets:      {len(SEED_ASSETS)}")
    print(f"  Try:         X-User-Id: {ids['admin']}  X-Company-Id: {ids['company']}")

    return ids


# ─── CLI entry point ───────────────────────────────────────────

async def main():
    engine = create_async_engine(settings.DATABASE_URL, echo=False)
    session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    async with session_factory() as session:
        async with session.begin():
            await seed_company(session)

    await engine.dispose()
    print("\nSeed complete.")


if __name__ == "__main__":
    asyncio.run(main())
