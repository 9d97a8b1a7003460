import streamlit as st
import requests
import uuid
from datetime import date
from decimal import Decimal, InvalidOperation
import os
import time

# ── Config ────────────────────────────────────────────────────────────────────
API_BASE = os.getenv("API_BASE_URL", "http://localhost:8000")

CATEGORIES = [
    "Office Supplies",
    "Food & Entertainment",
    "Travelling",
    "Accommodation",
    "Client & Project Expenses",
    "Subscriptions",
]
CURRENCIES = ["INR", "USD", "EUR", "GBP"]
SYMBOLS = {"INR": "₹", "USD": "$", "EUR": "€", "GBP": "£"}
STATUS_ICONS = {"approved": "✅", "pending": "⏳", "rejected": "❌", "flagged": "🚩"}

st.set_page_config(
    page_title="SpendWise",
    page_icon="💸",
    layout="centered",
)

# ── Helpers ───────────────────────────────────────────────────────────────────

def auth_headers() -> dict:
    return {
        "X-Actor-Role": st.session_state.role,
        "X-User-Id": st.session_state.user_id,
    }


def call_api(method: str, path: str, **kwargs) -> tuple[bool, str, dict | list | None]:
    """Call the API. Returns (success, message, data)."""
    try:
        resp = requests.request(method, f"{API_BASE}{path}", headers=auth_headers(), timeout=10, **kwargs)
        if resp.status_code in (200, 201):
            return True, "", resp.json()
        try:
            detail = resp.json().get("detail", resp.text)
        except ValueError:
            detail = resp.text
        return False, f"API error {resp.status_code}: {detail}", None
    except requests.exceptions.ConnectionError:
        return False, "Could not connect to the API. Please try again.", None
    except requests.exceptions.Timeout:
        return False, "Request timed out. Your request may have gone through; please refresh before retrying.", None
    except requests.exceptions.RequestException as e:
        return False, f"Unexpected error: {str(e)}", None

MAX_RETRIES = 3

def post_expense_with_retry(path: str, payload: dict) -> tuple[bool, str, dict | None]:
    """
    POSTs a submission with retries and exponential backoff. Safe to repeat
    because the payload carries an idempotency key.
    """
    for attempt in range(MAX_RETRIES):
        success, message, data = call_api("POST", path, json=payload)
        if success or attempt == MAX_RETRIES - 1:
            return success, message, data
        # Exponential backoff: 1, 2, 4 seconds...
        time.sleep(2 ** attempt)


def format_money(amount, currency: str) -> str:
    symbol = SYMBOLS.get(currency, "")
    try:
        return f"{symbol}{Decimal(str(amount)):,.2f}"
    except (InvalidOperation, TypeError):
        return f"{symbol}{amount}"


def expense_card(exp: dict, actions: bool = False):
    with st.container(border=True):
        c1, c2, c3 = st.columns([2, 1, 1])
        with c1:
            st.markdown(f"**{exp['category']}** · {exp['date']}")
            if exp.get("description"):
                st.caption(exp["description"])
            if exp.get("notes"):
                st.caption(f"📝 {exp['notes']}")
        with c2:
            st.markdown(f"**{format_money(exp['amount'], exp['currency'])}**")
            st.caption(exp["user_id"])
        with c3:
            st.caption(f"{STATUS_ICONS.get(exp['status'], '')} {exp['status']}")
        if actions:
            review_buttons(exp)


def review_buttons(exp: dict):
    options = ["approved", "rejected"]
    if exp["status"] == "flagged":
        options.append("pending")
    labels = {"approved": "Approve", "rejected": "Reject", "pending": "Clear flag"}
    cols = st.columns(len(options))
    for col, target in zip(cols, options):
        with col:
            if st.button(labels[target], key=f"{exp['id']}-{target}", use_container_width=True):
                ok, msg, _ = call_api("PATCH", f"/expenses/{exp['id']}/status", json={"status": target})
                if ok:
                    st.session_state.submit_result = (True, f"Expense marked {target}.")
                    st.rerun()
                else:
                    st.error(msg)


# ── Session state init ─────────────────────────────────────────────────────────
if "idempotency_key" not in st.session_state:
    st.session_state.idempotency_key = str(uuid.uuid4())

if "submit_result" not in st.session_state:
    st.session_state.submit_result = None  # (success: bool, message: str)

if "submitting" not in st.session_state:
    st.session_state.submitting = False

# ── Sidebar: who is using the app ─────────────────────────────────────────────
with st.sidebar:
    st.header("👤 Acting as")
    st.session_state.user_id = st.text_input("User id", value=st.session_state.get("user_id", "emp-1"))
    st.session_state.role = st.radio("Role", options=["employee", "manager"], horizontal=True)
    report_currency = st.selectbox("Report currency", options=CURRENCIES)

# ── Page ───────────────────────────────────────────────────────────────────────
st.title("💸 SpendWise")
st.caption("Submit expenses; anything within policy limits is approved automatically.")

st.divider()

# ── Section 1: Add Expense ─────────────────────────────────────────────────────
with st.expander("➕ Add New Expense", expanded=True):
    manual_tab, receipt_tab = st.tabs(["Manual entry", "Receipt text"])

    with manual_tab:
        with st.form("add_expense_form", clear_on_submit=False):
            col1, col2, col3 = st.columns([2, 1, 2])
            with col1:
                amount_str = st.text_input("Amount *", placeholder="e.g. 499.00")
            with col2:
                currency = st.selectbox("Currency", options=CURRENCIES)
            with col3:
                category = st.selectbox("Category *", options=CATEGORIES)

            description = st.text_area(
                "Description *",
                placeholder="What was this expense for?",
                max_chars=1000,
                height=80,
            )
            expense_date = st.date_input("Date *", value=date.today(), max_value=date.today())

            submitted = st.form_submit_button(
                "Submit Expense", type="primary",
                use_container_width=True, disabled=st.session_state.submitting,
            )

            if submitted:
                st.session_state.submitting = True
                try:
                    errors = []
                    try:
                        amount_val = Decimal(amount_str.strip())
                        if amount_val <= 0:
                            errors.append("Amount must be greater than zero.")
                    except (InvalidOperation, AttributeError):
                        errors.append("Amount must be a valid positive number (e.g. 250 or 99.99).")
                    if not description.strip():
                        errors.append("Description is required.")

                    if errors:
                        for err in errors:
                            st.error(err)
                    else:
                        payload = {
                            "idempotency_key": st.session_state.idempotency_key,
                            "user_id": st.session_state.user_id,
                            "amount": str(amount_val),
                            "currency": currency,
                            "category": category,
                            "description": description.strip(),
                            "date": str(expense_date),
                        }
                        with st.spinner("Submitting..."):
                            success, message, data = post_expense_with_retry("/expenses", payload)
                        if success:
                            # Rotate key so next submission is a fresh expense
                            st.session_state.submit_result = (True, data["message"])
                            st.session_state.idempotency_key = str(uuid.uuid4())
                            st.rerun()
                        else:
                            st.session_state.submit_result = (False, message)
                finally:
                    st.session_state.submitting = False

    with receipt_tab:
        with st.form("receipt_form"):
            receipt_text = st.text_area("Receipt text", height=200, placeholder="Paste the recognised receipt text")
            r_col1, r_col2 = st.columns(2)
            with r_col1:
                r_category = st.selectbox("Category", options=CATEGORIES, key="receipt_category")
            with r_col2:
                r_currency = st.selectbox("Currency", options=CURRENCIES, key="receipt_currency")
            if st.form_submit_button("Submit Receipt", use_container_width=True):
                payload = {
                    "idempotency_key": st.session_state.idempotency_key,
                    "user_id": st.session_state.user_id,
                    "category": r_category,
                    "currency": r_currency,
                    "receipt_text": receipt_text,
                }
                with st.spinner("Reading receipt..."):
                    success, message, data = post_expense_with_retry("/expenses/receipt", payload)
                if success:
                    st.session_state.submit_result = (True, data["message"])
                    st.session_state.idempotency_key = str(uuid.uuid4())
                    st.rerun()
                else:
                    st.session_state.submit_result = (False, message)

    # Show result outside the form so it persists after rerun
    if st.session_state.submit_result is not None:
        ok, msg = st.session_state.submit_result
        if ok:
            st.success(msg)
        else:
            st.error(msg)
        st.session_state.submit_result = None

st.divider()

# ── Section 2: Manager review queue ────────────────────────────────────────────
if st.session_state.role == "manager":
    st.subheader("🧾 Awaiting Review")
    for queue_status in ("flagged", "pending"):
        ok, err_msg, data = call_api("GET", "/expenses", params={"status": queue_status})
        if not ok:
            st.error(f"⚠️ {err_msg}")
            continue
        if data["count"] == 0:
            st.caption(f"No {queue_status} expenses.")
        for exp in data["expenses"]:
            expense_card(exp, actions=True)
    st.divider()

# ── Section 3: Dashboard ───────────────────────────────────────────────────────
st.subheader("📊 Spend Summary")
ok, err_msg, summary = call_api("GET", "/dashboard/summary", params={"currency": report_currency})
if not ok:
    st.error(f"⚠️ {err_msg}")
elif summary["count"] == 0:
    st.info("No expenses yet.")
else:
    st.metric(
        label=f"Total ({summary['count']} expense{'s' if summary['count'] != 1 else ''})",
        value=format_money(summary["total"], report_currency),
    )
    with st.expander("By category"):
        st.table([
            {"Category": row["key"], "Total": format_money(row["total"], report_currency), "Count": row["count"]}
            for row in summary["by_category"]
        ])
    if st.session_state.role == "manager":
        with st.expander("By employee"):
            st.table([
                {"User": row["key"], "Total": format_money(row["total"], report_currency), "Count": row["count"]}
                for row in summary["by_user"]
            ])

st.divider()

# ── Section 4: Expense list ────────────────────────────────────────────────────
st.subheader("📋 Expenses")

col_f1, col_f2 = st.columns([2, 1])
with col_f1:
    selected_category = st.selectbox("Filter by Category", options=["All"] + CATEGORIES)
with col_f2:
    sort_order = st.selectbox("Sort by Date", options=["Newest First", "Oldest First"])

params = {"sort_date_desc": str(sort_order == "Newest First").lower()}
if selected_category != "All":
    params["category"] = selected_category

with st.spinner("Loading expenses..."):
    ok, err_msg, data = call_api("GET", "/expenses", params=params)

if not ok:
    st.error(f"⚠️ {err_msg}")
elif data["count"] == 0:
    st.info("No expenses found for the selected filter.")
else:
    for exp in data["expenses"]:
        expense_card(exp)

# ── Section 5: Policies ────────────────────────────────────────────────────────
with st.expander("📐 Expense Policies"):
    ok, err_msg, policies = call_api("GET", "/policies")
    if ok:
        st.table([
            {
                "Category": p["category"],
                "Weekly": format_money(p["weekly_limit"], p["currency"]) if p["weekly_limit"] else "—",
                "Monthly": format_money(p["monthly_limit"], p["currency"]) if p["monthly_limit"] else "—",
                "Description": p["description"],
            }
            for p in policies
        ])
    else:
        st.error(f"⚠️ {err_msg}")
