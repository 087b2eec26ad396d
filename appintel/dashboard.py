"""
App Store Review Intelligence — dashboard.
Run with: streamlit run appintel/dashboard.py
"""

import streamlit as st

import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from appintel.assembler import reload
from appintel.config import load_settings
from appintel.database import (
    initialize_database, list_analyzed_keywords, get_latest_analysis, list_analyses,
    get_apps_for_keyword, count_reviews_for_app,
)
from appintel.errors import AppIntelError
from appintel.models import BAND_LOW, KIND_SIMPLE
from appintel.processor import run_analysis
from appintel.report import (
    items_frame, persona_phrase_frame, apps_frame, history_frame,
    persona_chart, app_rating_chart,
)

SETTINGS = load_settings()
initialize_database(SETTINGS.db_path)

# ============================================================
# PAGE CONFIG
# ============================================================
st.set_page_config(
    page_title="App Store Review Intelligence",
    page_icon="◆",
    layout="wide",
    initial_sidebar_state="expanded",
)

CUSTOM_CSS = """
<style>
@import url('https://fonts.googleapis.com/css2?family=Inter:wght@300;400;500;600;700&display=swap');
html, body, [class*="css"] { font-family: 'Inter', -apple-system, BlinkMacSystemFont, sans-serif; }
footer {visibility: hidden;}
#MainMenu {visibility: hidden;}
:root {
    --accent: #d97757;
    --accent-hover: #c4684a;
    --text-primary: #e8e0d5;
    --text-secondary: #9c9588;
}
[data-testid="stMetricLabel"] { color: var(--text-secondary) !important; font-weight: 500; font-size: 0.72rem; }
[data-testid="stMetricValue"] { color: var(--text-primary) !important; font-weight: 700; font-size: 1.5rem; }
.stButton > button[kind="primary"] { background: var(--accent) !important; color: #fff !important; border: none; }
.stButton > button[kind="primary"]:hover { background: var(--accent-hover) !important; }
.stTabs [aria-selected="true"] { border-bottom: 2px solid var(--accent) !important; }
</style>
"""

st.markdown(CUSTOM_CSS, unsafe_allow_html=True)

NEW_KEYWORD = "＋ New keyword"


# ============================================================
# AUTH
# ============================================================

# Persistent auth: survives browser F5 refresh (server-side cache)
@st.cache_resource
def _get_auth_store():
    return {"authenticated": False}

def _save_auth(state: bool):
    _get_auth_store()["authenticated"] = state

def _check_auth() -> bool:
    return _get_auth_store().get("authenticated", False)


def render_login():
    st.markdown("""
    <div style="display:flex; flex-direction:column; align-items:center; padding-top:4vh; text-align:center;">
        <div style="font-size:2rem; color:#d97757;">◆</div>
        <h1 style="font-size:2rem; font-weight:700; margin:0; color:#e8e0d5;">Review Intelligence</h1>
        <p style="color:#9c9588; font-size:0.9rem; font-weight:300;">
            What users love, hate and need, for any App Store keyword</p>
    </div>
    """, unsafe_allow_html=True)

    col1, col2, col3 = st.columns([1.3, 1, 1.3])
    with col2:
        with st.form("login_form"):
            username = st.text_input("Username", placeholder="Username", label_visibility="collapsed")
            password = st.text_input("Password", type="password", placeholder="Password", label_visibility="collapsed")
            if st.form_submit_button("Sign in", use_container_width=True, type="primary"):
                if username == SETTINGS.dashboard_username and password == SETTINGS.dashboard_password:
                    st.session_state.authenticated = True
                    _save_auth(True)
                    st.rerun()
                else:
                    st.error("Invalid credentials.")


# ============================================================
# SIDEBAR
# ============================================================
def render_sidebar():
    st.sidebar.markdown("""
    <div style="text-align:center; padding:0.5rem 0 0.3rem;">
        <span style="color:#d97757; font-size:1.4rem;">◆</span>
        <span style="font-size:1.1rem; font-weight:700; color:#e8e0d5; margin-left:6px;">Review Intelligence</span>
    </div>""", unsafe_allow_html=True)
    st.sidebar.markdown("---")

    keywords = list_analyzed_keywords(SETTINGS.db_path)
    options = keywords + [NEW_KEYWORD]
    selected = st.sidebar.selectbox("Keyword", options, key="sidebar_keyword")
    if selected == NEW_KEYWORD:
        keyword = st.sidebar.text_input("New keyword", value="", placeholder="e.g. meditation").strip()
    else:
        keyword = selected

    st.sidebar.markdown("---")
    limit = st.sidebar.slider("Top apps", 3, 25, 10, key="sidebar_limit")
    country = st.sidebar.text_input("Country", value="us", max_chars=2, key="sidebar_country")
    low_only = st.sidebar.checkbox("Low ratings only", value=False, key="sidebar_low_only")
    force = st.sidebar.checkbox("Ignore cache", value=False, key="sidebar_force")

    st.sidebar.markdown("---")
    if st.sidebar.button("Sign out", use_container_width=True, key="btn_logout"):
        _save_auth(False)
        for key in list(st.session_state.keys()):
            del st.session_state[key]
        st.rerun()

    return keyword, limit, country, low_only, force


# ============================================================
# TABS
# ============================================================
def render_analysis(analysis):
    st.caption(f"Analysis #{analysis.id} · {analysis.created_at:%Y-%m-%d %H:%M} · "
               f"{analysis.llm_model or '-'}")
    m1, m2, m3 = st.columns(3)
    m1.metric("Reviews analyzed", f"{analysis.total_reviews_analyzed:,}")
    if analysis.kind == KIND_SIMPLE:
        m2.metric("Patterns", len(analysis.patterns))
        m3.metric("Opportunities", len(analysis.opportunities))
    else:
        m2.metric("Low-rating", f"{analysis.total_low_reviews_analyzed:,}")
        m3.metric("High-rating", f"{analysis.total_high_reviews_analyzed:,}")

    if analysis.summary:
        st.markdown("### Summary")
        st.write(analysis.summary)

    if analysis.kind == KIND_SIMPLE:
        sections = [("Patterns", analysis.patterns, ("category", "title")),
                    ("Opportunities", analysis.opportunities, ("title", "opportunity"))]
    else:
        sections = [("Table stakes", analysis.table_stakes, ("feature",)),
                    ("Pain points", analysis.pain_points, ("category",)),
                    ("Differentiators", analysis.differentiators, ("opportunity", "title"))]
    for heading, items, keys in sections:
        st.markdown(f"### {heading}")
        frame = items_frame(items, keys)
        if frame.empty:
            st.caption("Nothing reported.")
        else:
            st.dataframe(frame, use_container_width=True, hide_index=True)


def render_personas(analysis):
    if analysis.kind == KIND_SIMPLE:
        st.info("Personas are only extracted in full analyses (both rating bands).")
        return

    c1, c2 = st.columns([3, 2])
    with c1:
        fig = persona_chart(persona_phrase_frame(analysis))
        if fig is None:
            st.caption("No self-descriptions found in reviews.")
        else:
            st.plotly_chart(fig, use_container_width=True)
    with c2:
        st.markdown("### Segments")
        for persona in analysis.personas:
            if isinstance(persona, dict):
                st.markdown(f"**{persona.get('name', 'Segment')}** · {persona.get('mention_count', 0)} mentions")
                st.caption(persona.get("description", ""))

    terms = analysis.insider_language.get("terms") or []
    if terms:
        st.markdown("### Insider language")
        st.dataframe(items_frame(terms, ("term",), ("meaning",), columns=("Term", "Meaning")),
                     use_container_width=True, hide_index=True)


def render_apps(keyword):
    apps = get_apps_for_keyword(SETTINGS.db_path, keyword)
    if not apps:
        st.info("No apps cached for this keyword yet.")
        return
    low_counts = {a.id: count_reviews_for_app(SETTINGS.db_path, a.id, BAND_LOW) for a in apps}
    frame = apps_frame(apps, low_counts)
    st.dataframe(frame, use_container_width=True, hide_index=True)
    fig = app_rating_chart(frame)
    if fig is not None:
        st.plotly_chart(fig, use_container_width=True)


def render_dashboard(keyword, limit, country, low_only, force):
    if not keyword:
        st.info("Pick a keyword in the sidebar, or type a new one.")
        return

    st.markdown(f"""
    <div style="display:flex; align-items:center; gap:10px; margin-bottom:0.2rem;">
        <span style="font-size:1.3rem; color:#d97757;">◆</span>
        <span style="font-size:1.3rem; font-weight:700; color:#e8e0d5;">{keyword}</span>
    </div>""", unsafe_allow_html=True)

    if st.button("⚡ Run analysis", type="primary", key="btn_analyze"):
        progress = st.progress(0, text="Starting analysis...")
        def cb(cur, tot, msg):
            progress.progress(int((cur / tot) * 100) if tot else 0, text=msg)
        try:
            outcome = run_analysis(SETTINGS, keyword, limit=limit, country=country,
                                   force=force, low_only=low_only, progress_callback=cb)
            progress.progress(100, text="Complete!")
            st.success("Reused a recent analysis." if outcome["cached"] else "Analysis saved.")
        except AppIntelError as e:
            st.error(f"Analysis failed: {e}")

    stored = get_latest_analysis(SETTINGS.db_path, keyword)
    tab_analysis, tab_personas, tab_apps, tab_history = st.tabs([
        "📊 Analysis", "👥 Personas", "📱 Apps", "🕘 History"
    ])

    with tab_analysis:
        if stored is None:
            st.info("No analysis for this keyword yet. Run one above.")
        else:
            render_analysis(reload(stored))

    with tab_personas:
        if stored is not None:
            render_personas(reload(stored))

    with tab_apps:
        render_apps(keyword)

    with tab_history:
        frame = history_frame(list_analyses(SETTINGS.db_path, keyword, limit=20))
        if frame.empty:
            st.caption("No history yet.")
        else:
            st.dataframe(frame, use_container_width=True, hide_index=True)


# ============================================================
# MAIN
# ============================================================
def main():
    if "authenticated" not in st.session_state:
        st.session_state.authenticated = _check_auth()

    if not st.session_state.authenticated:
        render_login()
    else:
        render_dashboard(*render_sidebar())

if __name__ == "__main__":
    main()
