# test_host.py
# Tests for the Streamlit adapter using plain mappings in place of the runtime

from tabstate.results import LoadOk
from tabstate.services.navigation import Location
from tabstate.tabs.definition import TabDefinition
from tabstate.ui.host import (
    SESSION_ID_KEY,
    QueryParamsRouter,
    SessionStateStore,
    active_content,
    location_from_query_params,
    session_context,
)


class TestSessionStateStore:
    def test_get_and_put(self):
        state = {}
        store = SessionStateStore(state)
        assert store.get("tabs_active_main") is None
        store.put("tabs_active_main", "c")
        assert state == {"tabs_active_main": "c"}
        assert store.get("tabs_active_main") == "c"


class TestQueryParams:
    def test_location_from_query_params(self):
        location = location_from_query_params({"tab": "b", "x": "1"}, path="/app")
        assert location == Location.from_parts("/app", {"tab": "b", "x": "1"})
        assert location.param("tab") == "b"

    def test_router_replaces_query(self):
        params = {"tab": "a", "stale": "1"}
        QueryParamsRouter(params).navigate("/app?tab=b&x=2")
        assert params == {"tab": "b", "x": "2"}


class TestSessionContext:
    def test_session_id_is_stable(self):
        state = {}
        first = session_context(state)
        second = session_context(state, subject_id="alice", permissions=frozenset({"admin"}))
        assert first.session_id == second.session_id == state[SESSION_ID_KEY]
        assert not first.authenticated
        assert second.authenticated
        assert "admin" in second.permissions


class TestActiveContent:
    def test_refresh_produces_once(self, make_component):
        calls = []
        component = make_component([TabDefinition("a", content=lambda: calls.append(1) or f"<p>v{len(calls)}</p>")])
        component.mount()
        result = active_content(component, refresh=True)
        assert isinstance(result, LoadOk)
        assert result.content == "<p>v1</p>"
        assert calls == [1]

    def test_plain_rerun_loads_active_tab(self, make_component, three_tabs):
        component = make_component(three_tabs)
        component.mount(active_tab="b")
        assert active_content(component).content == "<p>B</p>"

    def test_no_active_tab(self, make_component):
        component = make_component([TabDefinition("x", disabled=True)])
        component.mount()
        assert active_content(component, refresh=True) is None
