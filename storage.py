# storage.py
"""Database access for companies, users, emissions, reports and subscriptions.

Every function takes an open SQLAlchemy session as its first argument and
commits its own writes.
"""

import logging
from datetime import datetime, time

from sqlalchemy.orm import joinedload

from aggregation import Scope
from database import (User, Company, Emission, EmissionCategory, Report,
                      SubscriptionPlan, Subscription, utcnow)

logger = logging.getLogger("carbon.storage")

EMISSION_FIELDS = {"category_id", "description", "amount", "unit", "date",
                   "document_url", "verified", "verified_by"}
COMPANY_FIELDS = {"name", "industry", "address", "city", "country", "size"}
USER_FIELDS = {"first_name", "last_name", "email", "language", "avatar_url",
               "company_id", "role"}


def _lower_bound(value):
    if value is None or isinstance(value, datetime):
        return value
    return datetime.combine(value, time.min)


def _upper_bound(value):
    # a bare date covers the whole day
    if value is None or isinstance(value, datetime):
        return value
    return datetime.combine(value, time.max)


def _apply(obj, fields, allowed):
    unknown = set(fields) - allowed
    if unknown:
        raise ValueError(f"Cannot update {', '.join(sorted(unknown))}")
    for key, value in fields.items():
        setattr(obj, key, value)
    obj.updated_at = utcnow()


# Users

def get_user(session, user_id):
    return (session.query(User).options(joinedload(User.company))
            .filter(User.id == user_id).first())


def update_user(session, user_id, **fields):
    user = session.get(User, user_id)
    if user is None:
        return None
    _apply(user, fields, USER_FIELDS)
    session.commit()
    return user


# Companies

def get_company(session, company_id):
    return session.get(Company, company_id)


def create_company(session, **fields):
    company = Company(**fields)
    session.add(company)
    session.commit()
    logger.info("Created company %s (%s)", company.id, company.name)
    return company


def update_company(session, company_id, **fields):
    company = session.get(Company, company_id)
    if company is None:
        return None
    _apply(company, fields, COMPANY_FIELDS)
    session.commit()
    return company


# Emission categories

def get_categories(session):
    return session.query(EmissionCategory).order_by(EmissionCategory.id).all()


def get_category(session, category_id):
    return session.get(EmissionCategory, category_id)


# Emissions

def get_emissions(session, company_id, start_date=None, end_date=None, scope=None):
    """Company emissions with their category loaded, newest first.

    ``start_date`` and ``end_date`` are inclusive; either may be omitted.
    """
    query = (session.query(Emission)
             .options(joinedload(Emission.category))
             .filter(Emission.company_id == company_id))
    start, end = _lower_bound(start_date), _upper_bound(end_date)
    if start is not None:
        query = query.filter(Emission.date >= start)
    if end is not None:
        query = query.filter(Emission.date <= end)
    if scope is not None:
        query = (query.join(Emission.category)
                 .filter(EmissionCategory.scope == Scope.parse(scope)))
    return query.order_by(Emission.date.desc(), Emission.id.desc()).all()


def get_emission(session, emission_id):
    return (session.query(Emission).options(joinedload(Emission.category))
            .filter(Emission.id == emission_id).first())


def create_emission(session, **fields):
    emission = Emission(**fields)
    session.add(emission)
    session.commit()
    logger.info("Recorded emission %s for company %s", emission.id, emission.company_id)
    return emission


def update_emission(session, emission_id, **fields):
    emission = session.get(Emission, emission_id)
    if emission is None:
        return None
    _apply(emission, fields, EMISSION_FIELDS)
    session.commit()
    session.refresh(emission)
    return emission


# Reports

def get_reports(session, company_id):
    return (session.query(Report).options(joinedload(Report.creator))
            .filter(Report.company_id == company_id)
            .order_by(Report.created_at.desc(), Report.id.desc()).all())


def get_report(session, report_id):
    return (session.query(Report).options(joinedload(Report.creator))
            .filter(Report.id == report_id).first())


def create_report(session, **fields):
    report = Report(**fields)
    session.add(report)
    session.commit()
    logger.info("Created report %s for company %s", report.id, report.company_id)
    return report


# Subscriptions

def get_subscription_plans(session):
    return session.query(SubscriptionPlan).order_by(SubscriptionPlan.price).all()


def get_company_subscription(session, company_id):
    return (session.query(Subscription).options(joinedload(Subscription.plan))
            .filter(Subscription.company_id == company_id,
                    Subscription.status == "active")
            .first())
