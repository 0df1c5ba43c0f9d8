from services.focus.navigation import BackPolicy, HistoryNavigator
from services.focus.sidebar import (
    FALLBACK_MENU,
    FocusTargetKind,
    SidebarMenu,
    build_menu,
    content_focus_target,
    load_manifest,
)
from shared.storage import keys


def _tab(name, sequence, visible=True, **extra):
    return {"name": name, "displayName": name.title(), "sequence": sequence, "isVisible": visible, **extra}


def test_menu_is_sorted_with_profile_first():
    manifest = {"tab": [
        _tab("settings", 4),
        _tab("epg", 2),
        _tab("profile", 9),
        _tab("channels", 1),
        _tab("movies", 3, visible=False),
        _tab("unknown", 0),
    ]}
    items = build_menu(manifest)
    assert [it.name for it in items] == ["profile", "channels", "epg", "settings"]
    assert [it.route for it in items] == ["/profile", "/genre", "/live", "/settings"]


def test_menu_falls_back_when_manifest_is_unusable():
    assert build_menu(None) == list(FALLBACK_MENU)
    assert build_menu({"tab": "nope"}) == list(FALLBACK_MENU)
    assert build_menu({"tab": [_tab("unknown", 1)]}) == list(FALLBACK_MENU)


def test_menu_is_read_from_manifest_cache_envelope(store):
    store.set(keys.MANIFEST_CACHE, {"ts": 1, "data": {"tab": [_tab("search", 1), _tab("home", 2)]}})
    assert load_manifest(store) == {"tab": [_tab("search", 1), _tab("home", 2)]}

    menu = SidebarMenu.from_store(store)
    assert [it.route for it in menu.items] == ["/search", "/"]


def test_genre_route_focuses_live_entry_when_not_in_menu():
    menu = SidebarMenu(build_menu({"tab": [_tab("profile", 1), _tab("epg", 2)]}))
    assert menu.expand("/genre").route == "/live"
    assert menu.expand("/nowhere").route == "/profile"


def test_content_focus_targets():
    assert content_focus_target("/").kind == FocusTargetKind.LANDING
    assert content_focus_target("/profile").kind == FocusTargetKind.LOGOUT_BUTTON
    assert content_focus_target("/live").kind == FocusTargetKind.FIRST_FOCUSABLE
    assert content_focus_target("/genre").kind == FocusTargetKind.MAIN_CONTENT


def test_history_navigator_notifies_and_back_policy_falls_back_to_root():
    nav = HistoryNavigator("/")
    routes = []
    nav.subscribe(routes.append)

    nav.navigate("/a")
    nav.navigate("/b", replace=True)
    assert nav.depth == 2

    policy = BackPolicy(root_route="/")
    assert policy.navigate_back(nav) == "/"
    assert policy.navigate_back(nav) == "/"
    assert routes == ["/a", "/b", "/"]


def test_history_navigator_is_silent_when_route_is_unchanged():
    nav = HistoryNavigator("/live")
    routes = []
    nav.subscribe(routes.append)

    nav.navigate("/live", replace=True)
    nav.navigate("/live")
    assert nav.back()
    assert nav.current == "/live"
    assert routes == []
