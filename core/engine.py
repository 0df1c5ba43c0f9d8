import time
from typing import Any, Optional

from core.context import EngineContext, derive_stream_query
from services.entitlements.client import EntitlementClient
from services.entitlements.refresh import EntitlementRefresher, EntitlementRefreshTrigger
from services.focus.dialog import DialogSpec
from services.focus.keys import register_hardware_back_key
from services.focus.navigation import BackPolicy
from services.focus.sidebar import SidebarMenu
from services.focus.state_machine import FocusStateMachine
from services.overlays.arbitrator import OverlayArbitrator
from services.stream.connection import StreamConnectionManager
from services.stream.normalizer import normalize
from shared.logging.logger import get_logger
from shared.runtime.ratelimits import FanOutPolicy, RefreshThrottle

log = get_logger("core.engine")


class PushEngine:
    """
    Wires the push stream, overlay arbitration, focus arbitration and
    entitlement refresh for one mounted app lifetime.

    Messages are handled strictly in arrival order. No exception raised
    while handling a message leaves ``handle_payload``.
    """

    def __init__(
        self,
        ctx: EngineContext,
        *,
        connection: Optional[StreamConnectionManager] = None,
        entitlement_client: Optional[EntitlementClient] = None,
        vendor_input_api: Any = None,
    ):
        self.ctx = ctx
        cfg = ctx.config

        # --------------------------------------------------
        # ENTITLEMENTS
        # --------------------------------------------------
        self._entitlement_client = entitlement_client or EntitlementClient(cfg.entitlements)
        self.refresher = EntitlementRefresher(self._entitlement_client, ctx.store)
        self.refresh_trigger = EntitlementRefreshTrigger(
            self.refresher,
            ctx.store,
            ctx.scheduler,
            throttle=RefreshThrottle(cfg.refresh.account_min_interval_seconds),
            fanout=FanOutPolicy(
                max_immediate=cfg.refresh.package_max_immediate,
                defer_seconds=cfg.refresh.package_defer_seconds,
            ),
        )

        # --------------------------------------------------
        # OVERLAYS (sole writer of the force lock)
        # --------------------------------------------------
        self.overlays = OverlayArbitrator(
            store=ctx.store,
            scheduler=ctx.scheduler,
            force_lock=ctx.force_lock.claim_writer("overlay-arbitrator"),
            timings=cfg.overlays,
            refresh=self.refresh_trigger,
            navigator=ctx.navigator,
            login_route=cfg.navigation.login_route,
        )

        # --------------------------------------------------
        # FOCUS
        # --------------------------------------------------
        nav = cfg.navigation
        self.focus = FocusStateMachine(
            force_lock=ctx.force_lock,
            navigator=ctx.navigator,
            back_policy=BackPolicy(
                root_route=nav.root_route,
                entry_routes=nav.entry_routes,
                player_routes=nav.player_routes,
                sidebar_routes=nav.sidebar_routes,
            ),
            menu=SidebarMenu.from_store(ctx.store),
            store=ctx.store,
            on_force_acknowledge=self.overlays.acknowledge_force,
        )
        self._block_trap = None
        self._unsubscribe_overlays = self.overlays.subscribe(self._on_overlays_changed)

        # --------------------------------------------------
        # STREAM
        # --------------------------------------------------
        self.connection = connection or StreamConnectionManager(cfg.stream, ctx.scheduler.spawn)
        self._vendor_input_api = vendor_input_api

        self._started = False
        self._closed = False
        self._unsubscribe_nav = None

    # ------------------------------------------------------------

    def start(self) -> None:
        if self._started:
            return
        self._started = True

        register_hardware_back_key(self._vendor_input_api)
        self._unsubscribe_nav = self.ctx.navigator.subscribe(self.on_navigation)
        self._open_stream()

    def _open_stream(self) -> None:
        query = derive_stream_query(self.ctx)
        self.connection.open(
            self.ctx.config.stream.path,
            query=query,
            on_message=self.handle_payload,
            on_error=self._on_stream_error,
        )

    def _on_stream_error(self, exc: Exception) -> None:
        log.warning(f"[stream] transport error: {exc}")

    # ------------------------------------------------------------

    def handle_payload(self, raw: Any) -> None:
        try:
            for event in normalize(raw, time.time()):
                self.overlays.apply(event)
        except Exception as e:
            log.warning(f"[stream] message handling error ignored: {e}")

    def on_navigation(self, route: str) -> None:
        """Re-derive identity-dependent state and re-open the stream."""
        if not self._started or self._closed:
            return
        try:
            self.focus.menu = SidebarMenu.from_store(self.ctx.store)
            self._open_stream()
        except Exception as e:
            log.warning(f"[{route}] stream re-open error ignored: {e}")

    def _on_overlays_changed(self, view) -> None:
        # the block notice has no buttons: every key is swallowed until logout
        if view.block_dialog and self._block_trap is None:
            self._block_trap = self.focus.open_dialog(
                DialogSpec(
                    name="account-blocked",
                    title="Account Blocked",
                    message="Logging out, please contact your operator",
                ),
                behind_force=True,
            )
        elif not view.block_dialog and self._block_trap is not None:
            if self.focus.dialog is self._block_trap:
                self.focus.close_dialog()
            self._block_trap = None

    # ------------------------------------------------------------

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True

        if self._unsubscribe_nav is not None:
            self._unsubscribe_nav()
            self._unsubscribe_nav = None

        self.connection.close()
        self.overlays.reset()
        self._unsubscribe_overlays()
        self.focus.detach()

        try:
            await self._entitlement_client.aclose()
        except Exception as e:
            log.warning(f"Entitlement client close error ignored: {e}")

        log.info("Push engine closed")
