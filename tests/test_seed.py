"""Tests for Seed Data — Verifies seed_company() creates a usable tenant."""

import pytest
from sqlalchemy import func, select

from assethub.models.core import Asset, Location
from assethub.models.infrastructure import Company, User
from assethub.services.asset_writer import load_location_index
from scripts.seed_data import SEED_ASSETS, seed_company


@pytest.mark.asyncio
async def test_seed_company_returns_ids(db_session):
    ids = await seed_company(db_session)

    assert {"company", "admin", "operator"} <= set(ids)
    company = await db_session.get(Company, ids["company"])
    assert company.name == "Acme Facilities"


@pytest.mark.asyncio
async def test_seed_creates_users(db_session):
    ids = await seed_company(db_session)

    users = (await db_session.execute(
        select(User).where(User.company_id == ids["company"])
    )).scalars().all()
    assert len(users) == 2


@pytest.mark.asyncio
async def test_seed_location_paths_resolve(db_session):
    ids = await seed_company(db_session)

    index = await load_location_index(db_session, ids["company"])
    assert index.find("Server Room") is not None
    assert index.find("Head Office → Floor 1 → Server Room") == index.find("Server Room")
    assert index.find("Warehouse → Ground") is not None

    count = (await db_session.execute(
        select(func.count()).select_from(Location).where(Location.company_id == ids["company"])
    )).scalar()
    assert count == 11


@pytest.mark.asyncio
async def test_seed_assets(db_session):
    ids = await seed_company(db_session)

    assets = (await db_session.execute(
        select(Asset).where(Asset.company_id == ids["company"])
    )).scalars().all()
    assert len(assets) == len(SEED_ASSETS)
    assert all(a.asset_id.startswith(f"ASSET-{ids['company']}-") for a in assets)
    assert all(a.location_id is not None for a in assets)
