"""
Operator Console - Personal-Accident Claims

A Streamlit front end for the claim service. It only renders the session
the API returns and forwards operator input; every rule is enforced by the
service.
"""
from typing import Optional

import requests
import streamlit as st

# ============================================
# CONFIGURATION
# ============================================

# Default API URL (can be overridden in sidebar)
DEFAULT_API_URL = "http://localhost:8000"

DOCUMENT_SLOTS = [
    ("certificate", "Medical Certificate"),
    ("prescription", "Prescription"),
    ("receipt", "Receipt"),
]


def get_api_url() -> str:
    """Get the API base URL from session state."""
    return st.session_state.get("api_url", DEFAULT_API_URL)


st.set_page_config(
    page_title="Policy Management - Corporate Portal",
    page_icon="🛡️",
    layout="wide",
)


# ============================================
# API HELPER FUNCTIONS
# ============================================

def call_api(method: str, path: str, **kwargs) -> Optional[dict]:
    """Call the claim service; show the attached error on failure."""
    try:
        response = requests.request(method, f"{get_api_url()}{path}", timeout=60, **kwargs)
    except requests.exceptions.RequestException as e:
        st.error(f"Cannot reach the claim service: {e}")
        return None

    body = response.json()
    if not response.ok:
        detail = body.get("detail")
        st.error(detail.get("message") if isinstance(detail, dict) else detail)
        return None
    return body


def ensure_session() -> str:
    """Open a service session on first use."""
    if not st.session_state.get("session_id"):
        result = call_api("POST", "/sessions/")
        if result:
            st.session_state.session_id = result["session"]["id"]
    return st.session_state.get("session_id")


def refresh(session_id: str) -> Optional[dict]:
    result = call_api("GET", f"/sessions/{session_id}")
    return result["session"] if result else None


# ============================================
# UI COMPONENTS
# ============================================

def render_usage(session_id: str, session: dict):
    """Render the benefit table with utilization bars."""
    usage = call_api("GET", f"/sessions/{session_id}/usage") or []
    draft = session.get("draft")
    busy = session["current_step"] == "FINALIZING"

    for index, figures in enumerate(usage):
        cols = st.columns([3, 2, 4, 2])
        cols[0].markdown(f"**{figures['benefit_type']}**")
        if figures["limit_available"]:
            cols[1].write(f"{figures['used_amount']:.2f} / {figures['limit']:.2f}")
        else:
            cols[1].write(f"{figures['used_amount']:.2f} / limit data unavailable")
        cols[2].progress(int(figures["utilization"]))
        if figures["limit_reached"]:
            cols[2].caption("Limit reached")
        elif figures["high_usage"]:
            cols[2].caption("⚠️ 75%+ utilized - approaching limit")

        selected = draft is not None and draft["benefit_index"] == index
        label = "Close" if selected else "Process"
        disabled = busy or figures["limit_reached"] or (draft is not None and not selected)
        if cols[3].button(label, key=f"select-{index}", disabled=disabled):
            call_api("POST", f"/sessions/{session_id}/benefits/{index}/select")
            st.rerun()


def render_claim_steps(session_id: str, session: dict):
    """Render whichever claim step the session is on."""
    step = session["current_step"]
    draft = session.get("draft")
    if not draft:
        return

    st.divider()
    st.subheader(f"Claim: {draft['benefit_type']}")

    if session.get("last_error"):
        st.error(session["last_error"]["message"])

    if step == "AMOUNT_ENTRY":
        with st.form("amount_form"):
            amount = st.number_input("Amount to Process", min_value=0.01, step=0.01, format="%.2f")
            st.caption("Once authorized, amount cannot be modified.")
            if st.form_submit_button("Authorize"):
                call_api("POST", f"/sessions/{session_id}/amount", json={"amount": amount})
                st.rerun()

    elif step == "PAYMENT_SELECTION":
        st.write("How is this claim being paid?")
        cash, credit = st.columns(2)
        for col, method in ((cash, "cash"), (credit, "credit")):
            if col.button(method.title(), use_container_width=True):
                call_api("POST", f"/sessions/{session_id}/payment-method", json={"method": method})
                st.rerun()

    elif step == "EVIDENCE_COLLECTION":
        payment = draft["payment"]
        st.write(f"Claim Amount: **{draft['amount']}** • Payment: **{payment['method']}**")

        if payment["method"] == "cash":
            st.caption("All documents are optional. Upload whichever you have.")
            for category, label in DOCUMENT_SLOTS:
                upload = st.file_uploader(label, type=["jpg", "jpeg", "png", "pdf"], key=f"upload-{category}")
                if upload and st.button(f"Attach {label}", key=f"attach-{category}"):
                    call_api(
                        "POST",
                        f"/sessions/{session_id}/attachments",
                        files={"document": (upload.name, upload.getvalue(), upload.type)},
                        data={"category": category},
                    )
                    st.rerun()

            for position, attachment in enumerate(payment["attachments"]):
                cols = st.columns([6, 1])
                cols[0].write(f"✓ {attachment['filename']} ({attachment['category']})")
                if cols[1].button("Remove", key=f"detach-{position}"):
                    call_api("DELETE", f"/sessions/{session_id}/attachments/{position}")
                    st.rerun()
        else:
            st.caption("Credit payment - no documents required.")

        submit, void = st.columns(2)
        if submit.button("Submit to System", type="primary", use_container_width=True):
            with st.spinner("Transmitting..."):
                result = call_api("POST", f"/sessions/{session_id}/finalize")
            if result:
                st.success(result["message"])
            st.rerun()
        if void.button("Void", use_container_width=True):
            call_api("POST", f"/sessions/{session_id}/cancel")
            st.rerun()

    elif step == "FINALIZING":
        st.info("Transmitting...")


def render_history(session_id: str):
    """Render processed requests for the loaded policy."""
    history = call_api("GET", f"/sessions/{session_id}/history") or []
    if not history:
        st.caption("No processed requests.")
        return
    st.table([
        {"Request": r["id"], "Date": r["date"], "Benefit": r["benefit"], "Amount": r["amount"], "Status": r["status"]}
        for r in history
    ])


# ============================================
# MAIN APPLICATION
# ============================================

def main():
    """Main application entry point."""
    with st.sidebar:
        st.header("⚙️ Settings")
        st.session_state.api_url = st.text_input("API Server URL", value=DEFAULT_API_URL)

    st.title("Policy Management")
    st.caption("Corporate Portal")

    session_id = ensure_session()
    if not session_id:
        return

    with st.form("lookup_form"):
        employee_id = st.text_input("Employee ID")
        if st.form_submit_button("Search") and employee_id.strip():
            call_api("POST", f"/sessions/{session_id}/lookup", json={"employee_id": employee_id})

    session = refresh(session_id)
    if not session or not session.get("policy"):
        return

    policy = session["policy"]
    members = ", ".join(m.get("name", "") for m in policy.get("mainMembers", []))
    st.subheader(f"Employee {session['employee_id']} - {members or 'Unknown'}")
    if session.get("notice"):
        st.success(session["notice"])

    current, history = st.tabs(["Current Benefits", "History"])
    with current:
        render_usage(session_id, session)
        render_claim_steps(session_id, session)
    with history:
        render_history(session_id)


if __name__ == "__main__":
    main()
