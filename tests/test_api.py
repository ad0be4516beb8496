from datetime import date, datetime

import pytest

import api
import database


def test_summary_requires_login(session):
    with pytest.raises(api.AuthenticationRequired) as excinfo:
        api.emissions_summary(session, None)
    assert excinfo.value.status == 401


def test_summary_requires_company(session):
    loner = database.create_user("loner", "loner@example.com", "secret123", session=session)
    with pytest.raises(api.ValidationError, match="Company required"):
        api.emissions_summary(session, loner)


def test_summary_filters_by_period(session, categories, user, add_emission):
    add_emission(categories["Natural Gas"], 5, date(2024, 3, 1))
    add_emission(categories["Electricity"], 3, date(2024, 3, 15))
    add_emission(categories["Business Travel"], 2, date(2024, 3, 31))
    add_emission(categories["Business Travel"], 90, date(2024, 4, 1))

    summary = api.emissions_summary(session, user, {"startDate": "2024-03-01",
                                                    "endDate": "2024-03-31"})
    assert summary["total"] == 10.0
    assert (summary["scope1"], summary["scope2"], summary["scope3"]) == (5.0, 3.0, 2.0)
    percentages = {e["name"]: e["percentage"] for e in summary["byCategory"]}
    assert percentages == {"Natural Gas": 50.0, "Electricity": 30.0, "Business Travel": 20.0}


def test_summary_without_bounds_uses_everything(session, categories, user, add_emission):
    add_emission(categories["Heating"], 1.5, date(2020, 1, 1))
    add_emission(categories["Heating"], 2.5, date(2024, 1, 1))
    assert api.emissions_summary(session, user)["total"] == 4.0


def test_summary_rejects_bad_dates(session, user):
    with pytest.raises(api.ValidationError) as excinfo:
        api.emissions_summary(session, user, {"startDate": "yesterday"})
    assert excinfo.value.status == 400
    with pytest.raises(api.ValidationError, match="after"):
        api.emissions_summary(session, user, {"startDate": "2024-02-01", "endDate": "2024-01-01"})


def test_timestamps_with_timezone_are_accepted(session, categories, user, add_emission):
    add_emission(categories["Heating"], 1, datetime(2024, 1, 1, 12, 0))
    summary = api.emissions_summary(session, user, {"startDate": "2024-01-01T11:00:00Z",
                                                    "endDate": "2024-01-01T13:00:00+00:00"})
    assert summary["total"] == 1.0


def test_create_emission(session, categories, user):
    created = api.create_emission(session, user, {
        "categoryId": str(categories["Electricity"].id),
        "amount": "12.50",
        "date": "2024-05-02",
        "description": "May invoice",
        "verified": "true",
        "document": "invoice.pdf",
    })
    assert created["companyId"] == user.company_id
    assert created["createdBy"] == user.id
    assert created["amount"] == "12.50"
    assert created["category"]["scope"] == "Scope 2"
    assert created["verified"] is True
    assert created["verifiedBy"] == user.id
    assert created["documentUrl"] == "documents/invoice.pdf"
    assert created["unit"] == "tCO2e"


@pytest.mark.parametrize("payload, message", [
    ({"amount": "-1", "date": "2024-01-01"}, "greater than 0"),
    ({"amount": "lots", "date": "2024-01-01"}, "valid decimal"),
    ({"date": "2024-01-01"}, "amount: Field required"),
    ({"amount": "1"}, "date: Field required"),
])
def test_create_emission_validation(session, categories, user, payload, message):
    payload = dict(payload, categoryId=categories["Electricity"].id)
    with pytest.raises(api.ValidationError, match=message):
        api.create_emission(session, user, payload)


def test_create_emission_unknown_category(session, categories, user):
    with pytest.raises(api.ValidationError, match="Unknown emission category"):
        api.create_emission(session, user, {"categoryId": 999, "amount": 1, "date": "2024-01-01"})


def test_cross_tenant_emission_access(session, categories, user, outsider, add_emission):
    emission = add_emission(categories["Electricity"], 1, date(2024, 1, 1))

    with pytest.raises(api.Forbidden) as excinfo:
        api.get_emission(session, outsider, emission.id)
    assert excinfo.value.status == 403
    with pytest.raises(api.Forbidden):
        api.update_emission(session, outsider, emission.id, {"amount": "2"})
    assert api.get_emission(session, user, emission.id)["id"] == emission.id


def test_missing_emission(session, user):
    with pytest.raises(api.NotFound) as excinfo:
        api.get_emission(session, user, 12345)
    assert excinfo.value.status == 404


def test_verify_and_unverify_emission(session, categories, user, add_emission):
    emission = add_emission(categories["Electricity"], 1, date(2024, 1, 1))

    verified = api.update_emission(session, user, emission.id, {"verified": True})
    assert verified["verified"] is True
    assert verified["verifiedBy"] == user.id

    reverted = api.update_emission(session, user, emission.id, {"verified": "false", "amount": "4.20"})
    assert reverted["verified"] is False
    assert reverted["verifiedBy"] is None
    assert reverted["amount"] == "4.20"


def test_list_emissions_by_scope(session, categories, user, add_emission):
    add_emission(categories["Electricity"], 1, date(2024, 1, 1))
    add_emission(categories["Fleet Vehicles"], 2, date(2024, 1, 2))

    rows = api.list_emissions(session, user, {"scope": "Scope 1"})
    assert [row["category"]["name"] for row in rows] == ["Fleet Vehicles"]
    with pytest.raises(api.ValidationError, match="Unknown emission scope"):
        api.list_emissions(session, user, {"scope": "Scope 9"})


def test_create_report_snapshots_summary(session, categories, user, add_emission):
    add_emission(categories["Electricity"], 6, date(2024, 1, 10))
    add_emission(categories["Purchased Goods"], 2, date(2024, 1, 20))
    add_emission(categories["Purchased Goods"], 50, date(2024, 2, 20))

    report = api.create_report(session, user, {
        "name": "January report",
        "type": "Monthly",
        "startDate": "2024-01-01",
        "endDate": "2024-01-31",
    })
    assert report["status"] == "draft"
    assert report["data"]["total"] == 8.0
    assert report["data"]["scope3"] == 2.0
    assert report["data"]["period"] == {"startDate": "2024-01-01", "endDate": "2024-01-31"}

    assert [r["id"] for r in api.list_reports(session, user)] == [report["id"]]
    assert api.get_report(session, user, report["id"])["name"] == "January report"


@pytest.mark.parametrize("payload, message", [
    ({"name": "Q", "type": "Custom", "startDate": "2024-01-01", "endDate": "2024-02-01"}, "at least 3"),
    ({"name": "Quarter", "startDate": "2024-01-01", "endDate": "2024-02-01"}, "type: Field required"),
    ({"name": "Quarter", "type": "Custom", "startDate": "2024-01-01"}, "required"),
])
def test_create_report_validation(session, user, payload, message):
    with pytest.raises(api.ValidationError, match=message):
        api.create_report(session, user, payload)


def test_report_of_other_company_is_forbidden(session, user, outsider):
    report = api.create_report(session, user, {"name": "Annual", "type": "Annual",
                                               "startDate": "2024-01-01", "endDate": "2024-12-31"})
    with pytest.raises(api.Forbidden):
        api.get_report(session, outsider, report["id"])


def test_company_lifecycle(session):
    founder = database.create_user("founder", "founder@example.com", "secret123", session=session)
    with pytest.raises(api.NotFound, match="No company"):
        api.get_company(session, founder)

    created = api.create_company(session, founder, {"name": "Green Widgets", "city": "Oslo"})
    assert founder.company_id == created["id"]
    assert api.get_company(session, founder)["city"] == "Oslo"

    updated = api.update_company(session, founder, created["id"], {"industry": "Manufacturing"})
    assert updated["industry"] == "Manufacturing"
    assert updated["name"] == "Green Widgets"


def test_company_validation_and_ownership(session, user, outsider):
    with pytest.raises(api.ValidationError, match="at least 2"):
        api.create_company(session, user, {"name": " x "})
    with pytest.raises(api.Forbidden):
        api.update_company(session, outsider, user.company_id, {"name": "Taken over"})


def test_update_own_profile_only(session, user, outsider):
    updated = api.update_user(session, user, user.id, {"firstName": "Alice", "language": "de",
                                                       "role": "admin"})
    assert updated["firstName"] == "Alice"
    assert updated["language"] == "de"
    assert updated["role"] == "user"

    with pytest.raises(api.Forbidden):
        api.update_user(session, outsider, user.id, {"firstName": "Eve"})
    with pytest.raises(api.ValidationError, match="No valid update fields"):
        api.update_user(session, user, user.id, {"role": "admin"})
    with pytest.raises(api.ValidationError, match="valid email"):
        api.update_user(session, user, user.id, {"email": "not-an-email"})


def test_update_email_conflict(session, user, outsider):
    with pytest.raises(api.ValidationError, match="already in use"):
        api.update_user(session, user, user.id, {"email": "mallory@example.com"})


def test_avatar_upload(session, user, tmp_path, monkeypatch):
    monkeypatch.setitem(api.SETTINGS["uploads"], "directory", str(tmp_path))
    updated = api.update_avatar(session, user, user.id, "me.PNG", b"\x89PNG")
    assert updated["avatarUrl"].startswith("/uploads/avatar-")
    assert updated["avatarUrl"].endswith(".png")
    assert len(list(tmp_path.iterdir())) == 1

    with pytest.raises(api.ValidationError):
        api.update_avatar(session, user, user.id, "script.exe")
    with pytest.raises(api.ValidationError, match="No file"):
        api.update_avatar(session, user, user.id, None)


def test_subscription_endpoints(session, company, user):
    from seed import seed_plans, seed_subscription

    assert api.get_subscription(session, user) is None
    plans = seed_plans(session)
    seed_subscription(session, company, plans["Enterprise"])
    assert api.get_subscription(session, user)["plan"]["name"] == "Enterprise"
    assert [p["price"] for p in api.list_subscription_plans(session)] == ["0.00", "49.99", "99.99"]


def test_unexpected_failures_become_500(session, user, monkeypatch):
    def broken(*args, **kwargs):
        raise RuntimeError("database is gone")

    monkeypatch.setattr(api.storage, "get_emissions", broken)
    with pytest.raises(api.ApiError) as excinfo:
        api.emissions_summary(session, user)
    assert excinfo.value.status == 500
    assert excinfo.value.to_dict() == {"message": "Failed to calculate emissions summary"}


@pytest.mark.parametrize("payload", [{"name": 5}, {"name": None}, {"city": ["Oslo"]}])
def test_update_company_rejects_wrong_types(session, user, payload):
    with pytest.raises(api.ValidationError) as excinfo:
        api.update_company(session, user, user.company_id, payload)
    assert excinfo.value.status == 400


@pytest.mark.parametrize("payload, message", [
    ({"unit": None}, "unit"),
    ({"unit": ""}, "unit"),
    ({"verified": "banana"}, "verified"),
    ({"amount": "NaN"}, "amount"),
    ({"categoryId": "electricity"}, "categoryId"),
])
def test_update_emission_rejects_bad_fields(session, categories, user, add_emission, payload, message):
    emission = add_emission(categories["Electricity"], 1, date(2024, 1, 1))
    with pytest.raises(api.ValidationError, match=message) as excinfo:
        api.update_emission(session, user, emission.id, payload)
    assert excinfo.value.status == 400
    assert api.get_emission(session, user, emission.id)["unit"] == "tCO2e"


def test_session_usable_after_failed_write(session, categories, user, add_emission, monkeypatch):
    emission = add_emission(categories["Electricity"], 1, date(2024, 1, 1))

    def failing_update(db, emission_id, **fields):
        db.add(database.Emission(company_id=user.company_id, category_id=None,
                                 amount=None, date=None, created_by=user.id))
        db.flush()

    monkeypatch.setattr(api.storage, "update_emission", failing_update)
    with pytest.raises(api.ApiError) as excinfo:
        api.update_emission(session, user, emission.id, {"description": "late invoice"})
    assert excinfo.value.status == 500

    assert api.get_emission(session, user, emission.id)["id"] == emission.id
    assert api.emissions_summary(session, user)["total"] == 1.0
