"""Make the repo modules importable and provide an in-memory database."""

from __future__ import annotations

import sys
from datetime import datetime
from decimal import Decimal
from pathlib import Path

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

ROOT = Path(__file__).resolve().parents[1]

root_path = str(ROOT)
if root_path not in sys.path:
    sys.path.insert(0, root_path)

import database  # noqa: E402
import seed  # noqa: E402


@pytest.fixture
def session():
    engine = create_engine("sqlite://")
    database.init_db(engine)
    db = sessionmaker(bind=engine, expire_on_commit=False)()
    try:
        yield db
    finally:
        db.close()
        engine.dispose()


@pytest.fixture
def categories(session):
    """Seeded categories keyed by name."""
    return {c.name: c for c in seed.seed_categories(session)}


@pytest.fixture
def company(session):
    return seed.seed_company(session)


@pytest.fixture
def user(session, company):
    return database.create_user("alice", "alice@example.com", "secret123",
                                session=session, company_id=company.id)


@pytest.fixture
def outsider(session):
    other = database.Company(name="Other Corp")
    session.add(other)
    session.commit()
    return database.create_user("mallory", "mallory@example.com", "secret123",
                                session=session, company_id=other.id)


@pytest.fixture
def add_emission(session, user):
    def _add(category, amount, when, company_id=None, **fields):
        emission = database.Emission(
            company_id=company_id or user.company_id,
            category_id=category.id,
            amount=Decimal(str(amount)),
            date=when if isinstance(when, datetime) else datetime.combine(when, datetime.min.time()),
            created_by=user.id,
            **fields,
        )
        session.add(emission)
        session.commit()
        return emission

    return _add
