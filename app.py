# app.py
import streamlit as st
from datetime import date, timedelta
import pandas as pd

import api
import charts
from aggregation import Scope, format_percentage, summarize_emissions
from auth import login, logout
from config import SETTINGS, setup_logging
from database import init_db, Session
from reports import REPORT_TYPES, emissions_frame, export_csv, export_zip
import storage

st.set_page_config(page_title="Carbon Dashboard", layout="wide")

# 1. Initialize logging and DB
setup_logging(SETTINGS)
init_db()

# 2. Authentication
if not st.session_state.get("logged_in", False):
    login()
    st.stop()

# 3. DB session & current user
db = Session()
user = storage.get_user(db, st.session_state["user_id"])
if user is None:
    logout()

st.sidebar.write(f"👋 {user.first_name or user.username}")
if st.sidebar.button("Log out"):
    db.close()
    logout()


def show_error(err):
    st.error(f"{err.message} ({err.status})")


# 4. Company setup comes first
if not user.company_id:
    st.header("Set up your company")
    with st.form("company_form"):
        name = st.text_input("Company name")
        industry = st.text_input("Industry")
        city = st.text_input("City")
        country = st.text_input("Country")
        size = st.selectbox("Size", ["1-10", "11-50", "51-200", "201-1000", "1000+"])
        submitted = st.form_submit_button("Create company")
    if submitted:
        try:
            api.create_company(db, user, {"name": name, "industry": industry,
                                          "city": city, "country": country, "size": size})
            st.rerun()
        except api.ApiError as err:
            show_error(err)
    st.stop()

# 5. Sidebar menu
menu = st.sidebar.radio("Navigate", [
    "Dashboard",
    "Emissions",
    "Reports",
    "Download",
    "Company",
    "Profile"
])


def date_filter(key):
    col1, col2 = st.columns(2)
    with col1:
        start = st.date_input("Start date", value=date.today() - timedelta(days=180), key=f"{key}_start")
    with col2:
        end = st.date_input("End date", value=date.today(), key=f"{key}_end")
    return start, end


categories = api.list_categories(db, user)
category_labels = {c["id"]: f'{c["name"]} ({c["scope"]})' for c in categories}

# 6. Handle each menu choice
if menu == "Dashboard":
    st.header("Emissions Dashboard")
    start, end = date_filter("dashboard")
    records = storage.get_emissions(db, user.company_id, start_date=start, end_date=end)
    summary = summarize_emissions(records)

    cols = st.columns(4)
    cols[0].metric("Total", f"{summary.total:,.2f} tCO₂e")
    for col, scope in zip(cols[1:], Scope):
        col.metric(scope.value, f"{summary.scope_total(scope):,.2f} tCO₂e")

    budgets = SETTINGS["scope_budgets"]
    gauge_cols = st.columns(3)
    for col, scope in zip(gauge_cols, Scope):
        with col:
            current = float(summary.scope_total(scope))
            budget = float(budgets.get(scope.value, 0) or 0)
            if budget <= 0:
                continue
            st.pyplot(charts.plot_gauge(current, scope.value, budget))
            if current <= budget:
                st.success(f"**Good!** {scope.value} emissions within budget")
            else:
                st.error(f"**Reduce {current - budget:,.1f} tCO₂e** of {scope.value} emissions")

    if summary.by_category:
        table = charts.category_frame(summary)
        table["Percentage"] = [format_percentage(e.share) + " %" for e in summary.by_category]
        st.dataframe(table, use_container_width=True)
        st.plotly_chart(charts.category_bar(summary), use_container_width=True)
        st.subheader("🥧 Emissions Pie Chart")
        st.plotly_chart(charts.category_pie(summary), use_container_width=True)
        st.subheader("📈 Emissions Over Time")
        timeframe = st.radio("Timeframe", list(charts.TIMEFRAMES), horizontal=True,
                             format_func=str.capitalize, key="dashboard_timeframe")
        st.plotly_chart(charts.emissions_trend(emissions_frame(records), timeframe),
                        use_container_width=True)
    else:
        st.info("No emissions data to analyze.")

    st.subheader("Recent emissions")
    recent = pd.DataFrame([{"Date": rec.date.date(), "Category": rec.category.name,
                            "Scope": rec.category.scope.value, "Amount": float(rec.amount),
                            "Verified": rec.verified} for rec in records[:10]])
    if not recent.empty:
        st.dataframe(recent, use_container_width=True)

elif menu == "Emissions":
    st.header("Emissions")
    with st.expander("Add emission", expanded=True):
        with st.form("emission_form"):
            category_id = st.selectbox("Category", list(category_labels), format_func=category_labels.get)
            amount = st.number_input("Amount (tCO₂e)", min_value=0.0, step=0.01, format="%.2f")
            emitted_on = st.date_input("Date", value=date.today())
            description = st.text_input("Description")
            document = st.file_uploader("Supporting document")
            verified = st.checkbox("Verified")
            submitted = st.form_submit_button("Save emission")
        if submitted:
            try:
                api.create_emission(db, user, {
                    "categoryId": category_id,
                    "amount": f"{amount:.2f}",
                    "date": emitted_on.isoformat(),
                    "description": description or None,
                    "verified": verified,
                    "document": document.name if document else None,
                })
                st.success("Emission saved")
            except api.ApiError as err:
                show_error(err)

    scope_choice = st.selectbox("Scope", ["All"] + [s.value for s in Scope])
    start, end = date_filter("emissions")
    query = {"startDate": start.isoformat(), "endDate": end.isoformat()}
    if scope_choice != "All":
        query["scope"] = scope_choice
    try:
        rows = api.list_emissions(db, user, query)
    except api.ApiError as err:
        show_error(err)
        rows = []
    if rows:
        st.dataframe(pd.DataFrame([{
            "ID": row["id"], "Date": row["date"][:10], "Category": row["category"]["name"],
            "Scope": row["category"]["scope"], "Amount": float(row["amount"]),
            "Unit": row["unit"], "Verified": row["verified"], "Description": row["description"],
        } for row in rows]), use_container_width=True)

        with st.expander("Edit or verify an emission"):
            emission_id = st.selectbox("Emission", [row["id"] for row in rows])
            current = next(row for row in rows if row["id"] == emission_id)
            with st.form("edit_emission_form"):
                new_amount = st.number_input("Amount (tCO₂e)", min_value=0.0, step=0.01,
                                             value=float(current["amount"]), format="%.2f")
                new_description = st.text_input("Description", value=current["description"] or "")
                new_verified = st.checkbox("Verified", value=current["verified"])
                saved = st.form_submit_button("Update emission")
            if saved:
                try:
                    api.update_emission(db, user, emission_id, {
                        "amount": f"{new_amount:.2f}",
                        "description": new_description,
                        "verified": new_verified,
                    })
                    st.success("Emission updated")
                    st.rerun()
                except api.ApiError as err:
                    show_error(err)
    else:
        st.info("No emissions recorded for this period.")

elif menu == "Reports":
    st.header("Reports")
    with st.form("report_form"):
        report_name = st.text_input("Report name")
        report_type = st.selectbox("Type", REPORT_TYPES)
        report_description = st.text_area("Description")
        col1, col2 = st.columns(2)
        with col1:
            report_start = st.date_input("Start date", value=date.today().replace(month=1, day=1))
        with col2:
            report_end = st.date_input("End date", value=date.today())
        generate = st.form_submit_button("Generate report")
    if generate:
        try:
            api.create_report(db, user, {
                "name": report_name,
                "type": report_type,
                "description": report_description or None,
                "startDate": report_start.isoformat(),
                "endDate": report_end.isoformat(),
            })
            st.success("Report generated")
        except api.ApiError as err:
            show_error(err)

    for report in api.list_reports(db, user):
        data = report["data"] or {}
        with st.expander(f'{report["name"]} · {report["type"]} · {report["startDate"][:10]} → {report["endDate"][:10]}'):
            st.write(report["description"] or "")
            st.write(f'**Total:** {data.get("total", 0):,.2f} tCO₂e  ·  '
                     f'Scope 1: {data.get("scope1", 0):,.2f}  ·  '
                     f'Scope 2: {data.get("scope2", 0):,.2f}  ·  '
                     f'Scope 3: {data.get("scope3", 0):,.2f}')
            if data.get("byCategory"):
                st.dataframe(pd.DataFrame(data["byCategory"]), use_container_width=True)

elif menu == "Download":
    st.header("Download Reports")
    start, end = date_filter("download")
    records = storage.get_emissions(db, user.company_id, start_date=start, end_date=end)
    st.download_button("📥 Download CSV", data=export_csv(records),
                       file_name="emissions.csv", mime="text/csv")
    if records:
        st.download_button("📥 Download All Charts and Data (ZIP)", data=export_zip(records),
                           file_name="reports.zip", mime="application/zip")
    else:
        st.info("No emissions data to download.")

elif menu == "Company":
    st.header("Company")
    company = api.get_company(db, user)
    with st.form("company_edit_form"):
        name = st.text_input("Company name", value=company["name"])
        industry = st.text_input("Industry", value=company["industry"] or "")
        address = st.text_input("Address", value=company["address"] or "")
        city = st.text_input("City", value=company["city"] or "")
        country = st.text_input("Country", value=company["country"] or "")
        saved = st.form_submit_button("Save")
    if saved:
        try:
            api.update_company(db, user, company["id"], {"name": name, "industry": industry,
                                                         "address": address, "city": city,
                                                         "country": country})
            st.success("Company updated")
        except api.ApiError as err:
            show_error(err)

    st.subheader("Subscription")
    subscription = api.get_subscription(db, user)
    if subscription:
        st.write(f'**{subscription["plan"]["name"]}** plan, active since {subscription["startDate"][:10]}')
    else:
        st.info("No active subscription.")
    for plan in api.list_subscription_plans(db):
        st.markdown(f'**{plan["name"]}** ({plan["price"]} / month): ' + ", ".join(plan["features"]))

elif menu == "Profile":
    st.header("Profile")
    with st.form("profile_form"):
        first_name = st.text_input("First name", value=user.first_name or "")
        last_name = st.text_input("Last name", value=user.last_name or "")
        email = st.text_input("Email", value=user.email)
        language = st.selectbox("Language", ["en", "de", "fr", "es"],
                                index=["en", "de", "fr", "es"].index(user.language or "en")
                                if (user.language or "en") in ["en", "de", "fr", "es"] else 0)
        saved = st.form_submit_button("Save profile")
    if saved:
        try:
            api.update_user(db, user, user.id, {"firstName": first_name, "lastName": last_name,
                                                "email": email, "language": language})
            st.success("Profile updated")
        except api.ApiError as err:
            show_error(err)

    avatar = st.file_uploader("Avatar", type=sorted(api.AVATAR_EXTENSIONS))
    if avatar is not None and st.button("Upload avatar"):
        try:
            api.update_avatar(db, user, user.id, avatar.name, avatar.getvalue())
            st.success("Avatar updated")
        except api.ApiError as err:
            show_error(err)

db.close()
