# test_tabs.py
# Unit tests for tab definitions and the visibility-filtering registry

import pytest

from tabstate.tabs.definition import (
    InvalidTabDefinition,
    RemoteComponent,
    TabDefinition,
    evaluate,
    humanize_tab_id,
    is_valid_tab_id,
)
from tabstate.tabs.registry import TabCollection, TabRegistry
from tabstate.tabs.state import ComponentState


class TestTabDefinition:
    """Construction-time validation and lazy attributes"""

    @pytest.mark.parametrize("bad_id", ["", "   ", "../../etc", "has space", "a" * 51, "tab.1"])
    def test_rejects_invalid_ids(self, bad_id):
        with pytest.raises(InvalidTabDefinition):
            TabDefinition(bad_id)

    def test_accepts_boundary_length(self):
        tab = TabDefinition("a" * 50)
        assert tab.id == "a" * 50

    def test_content_and_remote_are_exclusive(self):
        with pytest.raises(InvalidTabDefinition):
            TabDefinition("a", content="<p>x</p>", remote=RemoteComponent("widget"))

    def test_label_defaults_to_humanized_id(self):
        assert TabDefinition("user_settings").get_label() == "User settings"
        assert TabDefinition("api-keys").get_label() == "Api keys"

    def test_lazy_attributes_are_evaluated_on_each_access(self):
        counter = {"n": 0}

        def badge():
            counter["n"] += 1
            return str(counter["n"])

        tab = TabDefinition("inbox", badge=badge, disabled=lambda: True)
        assert tab.get_badge() == "1"
        assert tab.get_badge() == "2"
        assert tab.is_disabled() is True

    def test_visibility_uses_truthiness(self):
        assert TabDefinition("a", visible=lambda: "yes").is_visible() is True
        assert TabDefinition("a", visible=lambda: False).is_visible() is False
        for falsy in (None, [], 0, ""):
            assert TabDefinition("a", visible=lambda value=falsy: value).is_visible() is False

    def test_to_dict_resolves_remote(self):
        tab = TabDefinition("map", remote=RemoteComponent(lambda: "region-map", lambda: {"zoom": 9}))
        data = tab.to_dict()
        assert data["remote"] == "region-map"
        assert data["remote_params"] == {"zoom": 9}
        assert data["has_content"] is False

    def test_helpers(self):
        assert evaluate(lambda: 3) == 3
        assert evaluate("x") == "x"
        assert humanize_tab_id("a_b-c") == "A b c"
        assert is_valid_tab_id("ok-1_2")
        assert not is_valid_tab_id(42)
        assert not is_valid_tab_id(None)


class TestTabCollection:
    """Ordering, duplicates and neighbours"""

    def test_duplicates_keep_first_position(self):
        first = TabDefinition("a", content="old")
        replacement = TabDefinition("a", content="new")
        collection = TabCollection([first, TabDefinition("b"), replacement])
        assert collection.ids() == ["a", "b"]
        assert collection.get("a").content == "new"

    def test_neighbours(self, three_tabs):
        collection = TabCollection(three_tabs)
        assert collection.neighbours("a") == (None, "b")
        assert collection.neighbours("b") == ("a", "c")
        assert collection.neighbours("c") == ("b", None)
        assert collection.neighbours("zzz") == (None, None)

    def test_first_last_and_membership(self, three_tabs):
        collection = TabCollection(three_tabs)
        assert collection.first().id == "a"
        assert collection.last().id == "c"
        assert "b" in collection
        assert collection.has("c")
        assert len(collection) == 3
        assert TabCollection().last() is None


class TestTabRegistry:
    """Visibility filtering on every pass"""

    def test_filters_invisible_tabs(self):
        registry = TabRegistry(
            lambda: [TabDefinition("a"), TabDefinition("hidden", visible=False), TabDefinition("c")]
        )
        assert registry.collection().ids() == ["a", "c"]
        assert registry.get("hidden") is None

    def test_raising_visibility_predicate_hides_tab(self):
        def broken():
            raise RuntimeError("boom")

        registry = TabRegistry(lambda: [TabDefinition("a"), TabDefinition("b", visible=broken)])
        assert registry.collection().ids() == ["a"]

    def test_collection_is_rebuilt_each_pass(self):
        flags = {"show": True}
        registry = TabRegistry(lambda: [TabDefinition("a", visible=lambda: flags["show"])])
        assert registry.collection().has("a")
        flags["show"] = False
        assert not registry.collection().has("a")

    def test_without_factory_is_empty(self):
        assert len(TabRegistry().collection()) == 0


class TestComponentState:
    def test_clear_forgets_loaded_and_error(self):
        state = ComponentState()
        state.mark_loaded("a")
        state.set_error("a", "failed")
        state.clear("a")
        assert not state.is_loaded("a")
        assert not state.has_error("a")
