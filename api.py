# api.py
"""Request handling for the dashboard.

Each handler takes an open session and the signed-in user, checks
authentication, company membership and ownership, validates its input
against the models in ``schemas`` and returns JSON-ready data. Failures
surface as ``ApiError`` carrying the HTTP status the caller should answer
with.
"""

from __future__ import annotations

import functools
import logging
import secrets
import time
from pathlib import Path
from typing import Any, Mapping

import pydantic
from sqlalchemy.exc import IntegrityError

import storage
import schemas
from aggregation import summarize_emissions
from config import SETTINGS
from reports import build_report_data

logger = logging.getLogger("carbon.api")

AVATAR_EXTENSIONS = {"jpg", "jpeg", "png", "gif"}


class ApiError(Exception):
    status = 500

    def __init__(self, message: str, status: int | None = None):
        super().__init__(message)
        self.message = message
        if status is not None:
            self.status = status

    def to_dict(self) -> dict:
        return {"message": self.message}


class ValidationError(ApiError):
    status = 400


class AuthenticationRequired(ApiError):
    status = 401


class Forbidden(ApiError):
    status = 403


class NotFound(ApiError):
    status = 404


def handler(failure_message: str):
    """Turn unexpected exceptions into a logged 500 with ``failure_message``.

    The session passed as the first argument is rolled back so the caller can
    keep using it.
    """

    def decorate(func):
        @functools.wraps(func)
        def wrapped(session, *args, **kwargs):
            try:
                return func(session, *args, **kwargs)
            except ApiError:
                raise
            except Exception as exc:
                logger.exception("%s", failure_message)
                session.rollback()
                raise ApiError(failure_message, status=500) from exc

        return wrapped

    return decorate


# Guards and validation

def _require_auth(user) -> None:
    if user is None:
        raise AuthenticationRequired("Authentication required")


def _require_company(user) -> int:
    _require_auth(user)
    if not user.company_id:
        raise ValidationError("Company required to access this resource")
    return user.company_id


def _parse_id(value: Any, label: str) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"Invalid {label} id: {value!r}") from None


def error_messages(exc: pydantic.ValidationError) -> list[str]:
    """One ``"field: problem"`` line per error in a pydantic failure."""
    messages = []
    for error in exc.errors():
        msg = error["msg"].removeprefix("Value error, ")
        loc = ".".join(str(part) for part in error["loc"])
        messages.append(f"{loc}: {msg}" if loc else msg)
    return messages


def validate(model, payload: Mapping[str, Any] | None):
    """Validate ``payload`` into ``model``, raising a 400 on bad input."""
    try:
        return model.model_validate(dict(payload or {}))
    except pydantic.ValidationError as exc:
        raise ValidationError("; ".join(error_messages(exc))) from None


# Serializers

def _iso(value):
    return value.isoformat() if value is not None else None


def serialize_user(user) -> dict:
    return {
        "id": user.id,
        "username": user.username,
        "email": user.email,
        "firstName": user.first_name,
        "lastName": user.last_name,
        "language": user.language,
        "role": user.role,
        "companyId": user.company_id,
        "avatarUrl": user.avatar_url,
    }


def serialize_company(company) -> dict:
    return {
        "id": company.id,
        "name": company.name,
        "industry": company.industry,
        "address": company.address,
        "city": company.city,
        "country": company.country,
        "size": company.size,
        "createdAt": _iso(company.created_at),
        "updatedAt": _iso(company.updated_at),
    }


def serialize_category(category) -> dict:
    return {
        "id": category.id,
        "name": category.name,
        "scope": category.scope.value,
        "description": category.description,
        "icon": category.icon,
    }


def serialize_emission(emission) -> dict:
    return {
        "id": emission.id,
        "companyId": emission.company_id,
        "categoryId": emission.category_id,
        "category": serialize_category(emission.category) if emission.category else None,
        "description": emission.description,
        "amount": str(emission.amount),
        "unit": emission.unit,
        "date": _iso(emission.date),
        "documentUrl": emission.document_url,
        "verified": bool(emission.verified),
        "verifiedBy": emission.verified_by,
        "createdBy": emission.created_by,
        "createdAt": _iso(emission.created_at),
        "updatedAt": _iso(emission.updated_at),
    }


def serialize_report(report) -> dict:
    return {
        "id": report.id,
        "companyId": report.company_id,
        "name": report.name,
        "description": report.description,
        "startDate": _iso(report.start_date),
        "endDate": _iso(report.end_date),
        "status": report.status,
        "type": report.type,
        "data": report.data,
        "createdBy": report.created_by,
        "createdAt": _iso(report.created_at),
    }


def serialize_plan(plan) -> dict:
    return {
        "id": plan.id,
        "name": plan.name,
        "description": plan.description,
        "price": str(plan.price),
        "features": plan.features or [],
    }


def serialize_subscription(subscription) -> dict:
    return {
        "id": subscription.id,
        "companyId": subscription.company_id,
        "status": subscription.status,
        "startDate": _iso(subscription.start_date),
        "endDate": _iso(subscription.end_date),
        "plan": serialize_plan(subscription.plan),
    }


# Company

@handler("Failed to fetch company")
def get_company(session, user) -> dict:
    _require_auth(user)
    if not user.company_id:
        raise NotFound("No company associated with user")
    company = storage.get_company(session, user.company_id)
    if company is None:
        raise NotFound("Company not found")
    return serialize_company(company)


@handler("Failed to create company")
def create_company(session, user, payload: Mapping[str, Any]) -> dict:
    _require_auth(user)
    fields = validate(schemas.CompanyIn, payload).model_dump()
    company = storage.create_company(session, **fields)
    storage.update_user(session, user.id, company_id=company.id)
    user.company_id = company.id
    return serialize_company(company)


@handler("Failed to update company")
def update_company(session, user, company_id, payload: Mapping[str, Any]) -> dict:
    own_company = _require_company(user)
    company_id = _parse_id(company_id, "company")
    if company_id != own_company:
        raise Forbidden("Not authorized to update this company")
    fields = validate(schemas.CompanyUpdate, payload).model_dump(exclude_unset=True)
    company = storage.update_company(session, company_id, **fields)
    if company is None:
        raise NotFound("Company not found")
    return serialize_company(company)


# Emissions

@handler("Failed to fetch emission categories")
def list_categories(session, user) -> list[dict]:
    _require_auth(user)
    return [serialize_category(c) for c in storage.get_categories(session)]


def _company_emissions(session, user, query: Mapping[str, Any], with_scope: bool):
    company_id = _require_company(user)
    params = validate(schemas.EmissionQuery, query)
    return storage.get_emissions(session, company_id,
                                 start_date=params.start_date, end_date=params.end_date,
                                 scope=params.scope if with_scope else None)


@handler("Failed to fetch emissions")
def list_emissions(session, user, query: Mapping[str, Any] | None = None) -> list[dict]:
    records = _company_emissions(session, user, query, with_scope=True)
    return [serialize_emission(e) for e in records]


@handler("Failed to calculate emissions summary")
def emissions_summary(session, user, query: Mapping[str, Any] | None = None) -> dict:
    """``GET /emissions/summary?startDate=&endDate=``"""
    records = _company_emissions(session, user, query, with_scope=False)
    return summarize_emissions(records).to_dict()


def _owned_emission(session, user, emission_id, action):
    company_id = _require_company(user)
    emission = storage.get_emission(session, _parse_id(emission_id, "emission"))
    if emission is None:
        raise NotFound("Emission not found")
    if emission.company_id != company_id:
        raise Forbidden(f"Not authorized to {action} this emission")
    return emission


@handler("Failed to fetch emission")
def get_emission(session, user, emission_id) -> dict:
    return serialize_emission(_owned_emission(session, user, emission_id, "access"))


def _check_category(session, category_id: int) -> None:
    if storage.get_category(session, category_id) is None:
        raise ValidationError(f"Unknown emission category {category_id}")


def _emission_fields(fields: dict) -> dict:
    if "date" in fields:
        fields["date"] = schemas.as_datetime(fields["date"])
    document = fields.pop("document", None)
    if document:
        fields["document_url"] = f"documents/{document}"
    return fields


@handler("Failed to create emission")
def create_emission(session, user, payload: Mapping[str, Any]) -> dict:
    company_id = _require_company(user)
    fields = _emission_fields(validate(schemas.EmissionIn, payload).model_dump())
    _check_category(session, fields["category_id"])
    emission = storage.create_emission(
        session,
        company_id=company_id,
        created_by=user.id,
        verified_by=user.id if fields["verified"] else None,
        **fields,
    )
    return serialize_emission(storage.get_emission(session, emission.id))


@handler("Failed to update emission")
def update_emission(session, user, emission_id, payload: Mapping[str, Any]) -> dict:
    emission = _owned_emission(session, user, emission_id, "update")
    update = validate(schemas.EmissionUpdate, payload)
    fields = _emission_fields(update.model_dump(exclude_unset=True))
    if "category_id" in fields:
        _check_category(session, fields["category_id"])
    if "verified" in fields:
        if fields["verified"] and not emission.verified:
            fields["verified_by"] = user.id
        elif not fields["verified"]:
            fields["verified_by"] = None
    updated = storage.update_emission(session, emission.id, **fields)
    return serialize_emission(updated)


# Reports

def _owned_report(session, user, report_id):
    company_id = _require_company(user)
    report = storage.get_report(session, _parse_id(report_id, "report"))
    if report is None:
        raise NotFound("Report not found")
    if report.company_id != company_id:
        raise Forbidden("Not authorized to access this report")
    return report


@handler("Failed to fetch reports")
def list_reports(session, user) -> list[dict]:
    company_id = _require_company(user)
    return [serialize_report(r) for r in storage.get_reports(session, company_id)]


@handler("Failed to fetch report")
def get_report(session, user, report_id) -> dict:
    return serialize_report(_owned_report(session, user, report_id))


@handler("Failed to create report")
def create_report(session, user, payload: Mapping[str, Any]) -> dict:
    """Create a report and snapshot the period's emissions summary into it."""
    company_id = _require_company(user)
    report_in = validate(schemas.ReportIn, payload)
    start, end = report_in.start_date, report_in.end_date

    records = storage.get_emissions(session, company_id, start_date=start, end_date=end)
    summary = summarize_emissions(records)
    report = storage.create_report(
        session,
        company_id=company_id,
        created_by=user.id,
        name=report_in.name,
        description=report_in.description,
        type=report_in.type,
        status=report_in.status,
        start_date=schemas.as_datetime(start),
        end_date=schemas.as_datetime(end),
        data=build_report_data(summary, start, end),
    )
    return serialize_report(report)


# Users

def _own_profile(user, user_id) -> int:
    _require_auth(user)
    user_id = _parse_id(user_id, "user")
    if user.id != user_id:
        raise Forbidden("Not authorized to update this user")
    return user_id


@handler("Failed to update user")
def update_user(session, user, user_id, payload: Mapping[str, Any]) -> dict:
    user_id = _own_profile(user, user_id)
    fields = validate(schemas.ProfileUpdate, payload).model_dump(exclude_unset=True)
    if not fields:
        raise ValidationError("No valid update fields provided")
    try:
        updated = storage.update_user(session, user_id, **fields)
    except IntegrityError:
        session.rollback()
        raise ValidationError("Email is already in use") from None
    return serialize_user(updated)

@handler("Failed to upload avatar")
def update_avatar(session, user, user_id, filename: str | None, content: bytes | None = None) -> dict:
    """Store an avatar image and point the user's ``avatarUrl`` at it."""
    user_id = _own_profile(user, user_id)
    if not filename:
        raise ValidationError("No file uploaded")
    ext = filename.rsplit(".", 1)[-1].lower() if "." in filename else ""
    if ext not in AVATAR_EXTENSIONS:
        raise ValidationError("Avatar must be a jpg, jpeg, png or gif image")
    stored_name = f"avatar-{int(time.time() * 1000)}-{secrets.randbelow(10**9)}.{ext}"
    if content is not None:
        upload_dir = Path(SETTINGS["uploads"]["directory"])
        upload_dir.mkdir(parents=True, exist_ok=True)
        (upload_dir / stored_name).write_bytes(content)
    updated = storage.update_user(session, user_id, avatar_url=f"/uploads/{stored_name}")
    return serialize_user(updated)


# Subscriptions

@handler("Failed to fetch subscription plans")
def list_subscription_plans(session) -> list[dict]:
    return [serialize_plan(p) for p in storage.get_subscription_plans(session)]


@handler("Failed to fetch subscription")
def get_subscription(session, user) -> dict | None:
    company_id = _require_company(user)
    subscription = storage.get_company_subscription(session, company_id)
    return serialize_subscription(subscription) if subscription else None
