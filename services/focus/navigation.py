from __future__ import annotations

from typing import Callable, Iterable, List, Optional

from shared.logging.logger import get_logger

log = get_logger("services.focus.navigation")

RouteListener = Callable[[str], None]


class HistoryNavigator:
    """
    In-memory navigation history for the hosting app.

    ``navigate`` pushes (or replaces the top entry); ``back`` pops one
    step. Listeners are told only when the current route changes, so
    landing again on the route already shown stays silent.
    """

    def __init__(self, initial_route: str = "/"):
        self._stack: List[str] = [initial_route]
        self._listeners: List[RouteListener] = []

    @property
    def current(self) -> str:
        return self._stack[-1]

    @property
    def depth(self) -> int:
        return len(self._stack)

    def can_go_back(self) -> bool:
        return len(self._stack) > 1

    def subscribe(self, listener: RouteListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def navigate(self, route: str, *, replace: bool = False) -> None:
        previous = self.current
        if replace:
            self._stack[-1] = route
        else:
            self._stack.append(route)
        log.debug(f"[nav] {'replace' if replace else 'push'} -> {route}")
        if route != previous:
            self._notify()

    def back(self) -> bool:
        if not self.can_go_back():
            return False
        previous = self._stack.pop()
        log.debug(f"[nav] back -> {self.current}")
        if self.current != previous:
            self._notify()
        return True

    def _notify(self) -> None:
        route = self.current
        for listener in list(self._listeners):
            try:
                listener(route)
            except Exception as e:
                log.warning(f"[nav] route listener error ignored: {e}")


class BackPolicy:
    """
    What Back does when nothing more specific consumed it.

    - entry and player routes: left to the page (not handled)
    - routes showing the sidebar: open the sidebar
    - anything else: pop one history step, else go to the root route
    """

    def __init__(
        self,
        *,
        root_route: str = "/",
        entry_routes: Iterable[str] = (),
        player_routes: Iterable[str] = (),
        sidebar_routes: Iterable[str] = (),
    ):
        self.root_route = root_route
        self.entry_routes = frozenset(entry_routes)
        self.player_routes = frozenset(player_routes)
        self.sidebar_routes = frozenset(sidebar_routes)

    def leaves_to_page(self, route: str) -> bool:
        return route in self.entry_routes or route in self.player_routes

    def shows_sidebar(self, route: str) -> bool:
        return route in self.sidebar_routes

    def navigate_back(self, navigator: HistoryNavigator) -> Optional[str]:
        if navigator.back():
            return navigator.current
        navigator.navigate(self.root_route, replace=True)
        return self.root_route
