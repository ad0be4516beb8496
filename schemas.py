# schemas.py
"""Pydantic models for request payloads and query strings.

Fields are snake_case and read from camelCase keys (``categoryId``,
``startDate``) as the client sends them.
"""

from datetime import date, datetime, timezone
from typing import Annotated, Optional, Union

from pydantic import (BaseModel, ConfigDict, EmailStr, Field, PlainValidator,
                      condecimal, field_validator, model_validator)
from pydantic.alias_generators import to_camel

from aggregation import Scope


def parse_iso(value):
    """ISO 8601 date or timestamp. Date-only strings stay ``date``; aware
    timestamps become naive UTC."""
    if isinstance(value, (date, datetime)):
        return value
    if not isinstance(value, str):
        raise ValueError("must be an ISO 8601 date")
    text = value.strip()
    try:
        if len(text) == 10:
            return date.fromisoformat(text)
        parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError:
        raise ValueError("must be an ISO 8601 date") from None
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def as_datetime(value):
    if value is None or isinstance(value, datetime):
        return value
    return datetime(value.year, value.month, value.day)


IsoDate = Annotated[Union[date, datetime], PlainValidator(parse_iso)]
PositiveAmount = condecimal(gt=0, allow_inf_nan=False)


class Payload(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True,
                              str_strip_whitespace=True)


class PeriodMixin(BaseModel):
    @model_validator(mode="after")
    def _ordered(self):
        start, end = as_datetime(self.start_date), as_datetime(self.end_date)
        if start is not None and end is not None and start > end:
            raise ValueError("startDate must not be after endDate")
        return self


# Companies

class CompanyIn(Payload):
    name: str = Field(..., min_length=2)
    industry: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    country: Optional[str] = None
    size: Optional[str] = None


class CompanyUpdate(Payload):
    name: str = Field(None, min_length=2)
    industry: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    country: Optional[str] = None
    size: Optional[str] = None


# Emissions

class EmissionQuery(Payload, PeriodMixin):
    start_date: Optional[IsoDate] = None
    end_date: Optional[IsoDate] = None
    scope: Optional[Scope] = None

    @field_validator("start_date", "end_date", mode="before")
    @classmethod
    def _blank_is_none(cls, value):
        return None if value == "" else value

    @field_validator("scope", mode="before")
    @classmethod
    def _scope(cls, value):
        return None if value in (None, "") else Scope.parse(value)


class EmissionIn(Payload):
    category_id: int
    amount: PositiveAmount
    date: IsoDate
    description: Optional[str] = None
    unit: str = Field("tCO2e", min_length=1)
    verified: bool = False
    document: Optional[str] = None


class EmissionUpdate(Payload):
    """Partial update; only keys present in the payload are applied."""

    category_id: int = None
    amount: PositiveAmount = None
    date: IsoDate = None
    description: Optional[str] = None
    unit: str = Field(None, min_length=1)
    verified: bool = None
    document: Optional[str] = None


# Reports

class ReportIn(Payload, PeriodMixin):
    name: str = Field(..., min_length=3)
    type: str = Field(..., min_length=1)
    description: Optional[str] = None
    status: str = Field("draft", min_length=1)
    start_date: IsoDate
    end_date: IsoDate


# Users

class ProfileUpdate(Payload):
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    email: EmailStr = None
    language: str = Field(None, min_length=2)
    avatar_url: Optional[str] = None


class SignUp(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    username: str = Field(..., min_length=3)
    email: EmailStr
    password: str = Field(..., min_length=6)
