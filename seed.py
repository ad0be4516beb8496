# seed.py
"""Idempotent reference and demo data: categories, plans, a demo company."""

import logging
from datetime import timedelta
from decimal import Decimal

import numpy as np

from aggregation import Scope
from config import setup_logging
from database import (Session, init_db, create_user, utcnow, User, Company,
                      EmissionCategory, Emission, SubscriptionPlan, Subscription)

logger = logging.getLogger("carbon.seed")

CATEGORIES = [
    ("Electricity", Scope.SCOPE_2, "Electricity consumption", "ri-flashlight-line"),
    ("Natural Gas", Scope.SCOPE_1, "Natural gas consumption", "ri-fire-line"),
    ("Fleet Vehicles", Scope.SCOPE_1, "Company fleet vehicles", "ri-car-line"),
    ("Heating", Scope.SCOPE_2, "Heating of facilities", "ri-home-heat-line"),
    ("Business Travel", Scope.SCOPE_3, "Air travel, hotel stays, etc.", "ri-flight-takeoff-line"),
    ("Purchased Goods", Scope.SCOPE_3, "Products and services purchased", "ri-shopping-bag-line"),
    ("Waste Generated", Scope.SCOPE_3, "Waste disposal and treatment", "ri-delete-bin-line"),
    ("Employee Commuting", Scope.SCOPE_3, "Employee travel to and from work", "ri-road-map-line"),
    ("Other", Scope.SCOPE_1, "Other Scope 1 emissions", "ri-more-2-line"),
]

PLANS = [
    ("Basic", "Access to CO₂ data, report generation, and settings.", "0.00",
     ["CO₂ data tracking", "Basic reports", "User settings"]),
    ("Pro", "Extended features like advanced data visualizations, API integration, "
            "report templates, and notifications.", "49.99",
     ["All Basic features", "Advanced data visualizations", "API integration",
      "Report templates", "Notifications"]),
    ("Enterprise", "Full access to all features, including AI-driven predictions, "
                   "team management, and custom API integrations.", "99.99",
     ["All Pro features", "AI-driven predictions", "Team management",
      "Custom API integrations", "Dedicated support"]),
]

DEMO_COMPANY = {
    "name": "EcoMetrics Demo Corp",
    "industry": "Technology",
    "address": "123 Green Street",
    "city": "Sustainable City",
    "country": "USA",
    "size": "51-200",
}


def seed_categories(db):
    created = 0
    for name, scope, description, icon in CATEGORIES:
        exists = db.query(EmissionCategory).filter_by(name=name, scope=scope).first()
        if exists:
            continue
        db.add(EmissionCategory(name=name, scope=scope, description=description, icon=icon))
        created += 1
    db.commit()
    logger.info("Seeded %d emission categories", created)
    return db.query(EmissionCategory).all()


def seed_plans(db):
    plans = {}
    for name, description, price, features in PLANS:
        plan = db.query(SubscriptionPlan).filter_by(name=name).first()
        if plan is None:
            plan = SubscriptionPlan(name=name, description=description,
                                    price=Decimal(price), features=features)
            db.add(plan)
            logger.info("Created plan %s", name)
        plans[name] = plan
    db.commit()
    return plans


def seed_company(db):
    company = db.query(Company).filter_by(name=DEMO_COMPANY["name"]).first()
    if company is None:
        company = Company(**DEMO_COMPANY)
        db.add(company)
        db.commit()
        logger.info("Created company %s", company.name)
    return company


def seed_user(db, username, role, company):
    user = db.query(User).filter_by(username=username).first()
    if user is None:
        user = create_user(username, f"{username}@ecometrics.com", "password123", session=db,
                           first_name=username.capitalize(), last_name="User",
                           role=role, company_id=company.id)
    return user


def seed_subscription(db, company, plan):
    active = db.query(Subscription).filter_by(company_id=company.id, plan_id=plan.id,
                                              status="active").first()
    if active is None:
        now = utcnow()
        db.add(Subscription(company_id=company.id, plan_id=plan.id, start_date=now,
                            end_date=now + timedelta(days=30), status="active"))
        db.commit()


def seed_sample_emissions(db, company, user, categories, count=30, rng=None):
    """Random emissions over the past six months, skipped if the company has any."""
    if db.query(Emission).filter_by(company_id=company.id).count():
        logger.info("Company %s already has emissions, skipping samples", company.id)
        return 0
    rng = rng if rng is not None else np.random.default_rng()
    by_scope = {scope: [c for c in categories if c.scope == scope] for scope in Scope}
    now = utcnow()
    for _ in range(count):
        scope = list(Scope)[rng.integers(3)]
        pool = by_scope[scope] or categories
        category = pool[rng.integers(len(pool))]
        verified = bool(rng.random() < 0.7)
        db.add(Emission(
            company_id=company.id,
            category_id=category.id,
            description=f"Sample {category.name} emission",
            amount=Decimal(f"{1 + rng.random() * 19:.1f}"),
            date=now - timedelta(days=float(rng.random() * 182)),
            verified=verified,
            verified_by=user.id if verified else None,
            created_by=user.id,
        ))
    db.commit()
    logger.info("Created %d sample emissions for company %s", count, company.id)
    return count


def seed(db, rng=None):
    categories = seed_categories(db)
    plans = seed_plans(db)
    company = seed_company(db)
    admin = seed_user(db, "admin", "admin", company)
    seed_user(db, "user", "user", company)
    seed_subscription(db, company, plans["Pro"])
    seed_sample_emissions(db, company, admin, categories, rng=rng)
    return company


if __name__ == "__main__":
    setup_logging()
    init_db()
    db = Session()
    try:
        seed(db)
    finally:
        db.close()
