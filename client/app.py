"""
app.py
------
Streamlit form for CodeSplain: paste a snippet, pick its language, get a
plain-language explanation from the gateway.

Run with: streamlit run client/app.py
"""

import streamlit as st

from client.explain_client import ExplainClient, GATEWAY_URL
from client.form_state import FormState

LANGUAGES = {
    "javascript": "JavaScript",
    "python": "Python",
    "java": "Java",
}

st.set_page_config(page_title="CodeSplain", page_icon="💡", layout="centered")


@st.cache_resource
def get_client() -> ExplainClient:
    return ExplainClient(GATEWAY_URL)


client = get_client()

if "form_state" not in st.session_state:
    st.session_state.form_state = FormState()

state: FormState = st.session_state.form_state

st.title("CodeSplain")

with st.sidebar:
    st.markdown("### ⚙️ API Status")
    health = client.health()
    if health is None:
        st.error("❌ API Offline")
    elif not health.get("hasApiKey"):
        st.warning("⚠️ API Online, no model key configured")
    else:
        st.success("✅ API Online")

with st.form("explain_form"):
    language = st.selectbox("Language:", options=list(LANGUAGES), format_func=LANGUAGES.get)
    code = st.text_area("Your Code:", placeholder="Paste your code here...", height=150)
    submitted = st.form_submit_button(
        "Explaining..." if state.is_pending else "Explain Code",
        type="primary",
        disabled=state.is_pending,
    )

if submitted and not state.is_pending:
    if not code.strip():
        st.warning("Please paste some code to explain.")
    else:
        st.session_state.form_state = state.start()
        st.session_state.pending_request = {"code": code, "language": language}
        st.rerun()

if state.is_pending:
    pending_request = st.session_state.pop("pending_request", None)
    if pending_request is None:
        st.session_state.form_state = FormState()
    else:
        with st.spinner("Thinking..."):
            result = client.explain(**pending_request)
        st.session_state.form_state = state.resolve(result)
    st.rerun()
elif state.success:
    st.markdown("### Explanation")
    st.markdown(state.data.explanation)
elif state.success is False:
    st.error(state.error)
