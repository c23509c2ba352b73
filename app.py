from tabstate.bootstrap_env import ensure_env

ensure_env()  # must run before settings are read

import datetime as dt
import random
from typing import List

import streamlit as st

from tabstate import Cancel, Err, RemoteComponent, TabDefinition
from tabstate.config import load_settings, validate_settings
from tabstate.logging_config import configure_logging
from tabstate.ui.host import active_content, session_component, session_context

SETTINGS = load_settings()
REFRESH_REQUESTED_KEY = "demo_refresh_requested"
configure_logging(SETTINGS.log_level, debug=SETTINGS.debug)


def _overview() -> str:
    return f"<h3>Overview</h3><p>Rendered at {dt.datetime.now():%H:%M:%S}</p>"


def _flaky_report() -> str:
    if random.random() < 0.5:
        raise RuntimeError("Report backend timed out")
    return "<h3>Reports</h3><p>All systems nominal.</p>"


def _confirm_leaving_drafts(tab, from_id, to_id):
    if st.session_state.get("demo_unsaved_draft"):
        return Cancel("Save or discard your draft before switching")
    return None


def demo_tabs() -> List[TabDefinition]:
    return [
        TabDefinition("overview", icon="🏠", content=_overview),
        TabDefinition(
            "reports",
            icon="📊",
            content=_flaky_report,
            on_error=lambda tab, exc: f"<p>Showing last known report ({exc}).</p>",
        ),
        TabDefinition(
            "drafts",
            badge=lambda: "1" if st.session_state.get("demo_unsaved_draft") else None,
            content="<h3>Drafts</h3>",
        ),
        TabDefinition(
            "settings",
            label="Account settings",
            content="<h3>Settings</h3>",
            on_switch=_confirm_leaving_drafts,
        ),
        TabDefinition("map", remote=RemoteComponent("region-map", {"zoom": 9})),
        TabDefinition("admin", permissions=("admin",), content="<h3>Admin</h3>"),
        TabDefinition("billing", disabled=True, content="<h3>Billing</h3>"),
    ]


def _render_active(component, refresh: bool = False) -> None:
    result = active_content(component, refresh=refresh)
    if result is None:
        st.info("No tab is available for this session.")
        return
    if isinstance(result, Err):
        st.error(result.message)
        if st.button("Retry", key=f"retry_{component.active_tab}"):
            st.session_state[REFRESH_REQUESTED_KEY] = True
            st.rerun()
        return
    if result.from_fallback:
        st.warning("Content could not be produced; showing fallback.")
    st.markdown(result.content, unsafe_allow_html=True)
    st.caption("Served from cache" if result.used_cache else "Freshly rendered")


def main() -> None:
    st.set_page_config(page_title="Tab State Demo", layout="wide")
    st.title("Tab State Demo")

    for issue in validate_settings(SETTINGS):
        st.sidebar.warning(issue)

    st.sidebar.checkbox("Unsaved draft", key="demo_unsaved_draft")
    is_admin = st.sidebar.checkbox("Sign in as admin", key="demo_admin")
    context = session_context(
        subject_id="demo-admin" if is_admin else None,
        permissions=frozenset({"admin"}) if is_admin else frozenset(),
    )

    component = session_component(demo_tabs, instance_id="demo", context=context)

    st.sidebar.header("Tabs")
    for tab in component.tabs():
        label = f"{tab.get_icon() or ''} {tab.get_label()}".strip()
        badge = tab.get_badge()
        if badge:
            label += f" ({badge})"
        if st.sidebar.button(label, key=f"tab_{tab.id}", disabled=tab.is_disabled()):
            outcome = component.switch_to(tab.id)
            if isinstance(outcome, Err):
                st.sidebar.error(outcome.message)
            else:
                st.rerun()

    refresh = st.sidebar.button("🔄 Refresh Tab")
    refresh = st.session_state.pop(REFRESH_REQUESTED_KEY, False) or refresh
    _render_active(component, refresh=refresh)

    with st.expander("Diagnostics", expanded=False):
        st.json(
            {
                "active_tab": component.active_tab,
                "cache": component.services.cache.stats(),
                "performance": component.services.tracker.stats(),
                "denials": [(d.source.value, d.tab_id, d.reason) for d in component.last_denials],
            }
        )


if __name__ == "__main__":
    main()
