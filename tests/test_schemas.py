from datetime import date, datetime
from decimal import Decimal

import pydantic
import pytest

from aggregation import Scope
from auth import signup_errors
from schemas import EmissionIn, EmissionQuery, EmissionUpdate, ReportIn, SignUp


def test_emission_in_reads_camel_case_keys():
    emission = EmissionIn.model_validate({"categoryId": "4", "amount": "0.10",
                                          "date": "2024-02-29T10:30:00+01:00"})
    assert emission.category_id == 4
    assert emission.amount == Decimal("0.10")
    assert emission.date == datetime(2024, 2, 29, 9, 30)
    assert emission.unit == "tCO2e"
    assert emission.verified is False


def test_emission_update_keeps_only_given_fields():
    update = EmissionUpdate.model_validate({"description": None, "verified": "true"})
    assert update.model_dump(exclude_unset=True) == {"description": None, "verified": True}


def test_query_dates_and_scope():
    query = EmissionQuery.model_validate({"startDate": "2024-01-01", "endDate": "",
                                          "scope": "scope 2"})
    assert query.start_date == date(2024, 1, 1)
    assert query.end_date is None
    assert query.scope is Scope.SCOPE_2


def test_report_period_must_be_ordered():
    with pytest.raises(pydantic.ValidationError, match="startDate must not be after endDate"):
        ReportIn.model_validate({"name": "Backwards", "type": "Custom",
                                 "startDate": "2024-03-01", "endDate": "2024-02-01"})


def test_signup_model():
    account = SignUp(username=" carol ", email="carol@example.com", password="secret123")
    assert account.username == "carol"
    with pytest.raises(pydantic.ValidationError):
        SignUp(username="carol", email="carol@", password="secret123")


def test_signup_errors_lists_every_problem():
    assert signup_errors("carol", "carol@example.com", "secret123") == []
    errors = signup_errors("cj", "nope", "123")
    assert [error.split(":")[0] for error in errors] == ["username", "email", "password"]
