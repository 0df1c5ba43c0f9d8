import asyncio
import signal
import sys

from dotenv import load_dotenv

from core.config_loader import ConfigLoader
from core.context import build_engine_context
from core.engine import PushEngine
from runtime.version import as_string
from services.session.identity import SessionIdentity, load_identity
from shared.logging.logger import get_logger
from shared.storage import keys
from shared.storage.state_store import PersistentStore, Tier

log = get_logger("core.app")


def hydrate_session(store: PersistentStore) -> SessionIdentity:
    """
    Copy the durable user record into the session tier when the session
    has none, then resolve the identity from it.
    """
    if not store.contains(keys.USER, tier=Tier.SESSION):
        durable_user = store.get(keys.USER, tier=Tier.DURABLE)
        if durable_user is not None:
            store.set(keys.USER, durable_user, tiers=(Tier.SESSION,))
            log.info("Session user hydrated from durable store")

    return load_identity(store)


async def main(stop_event: asyncio.Event):
    # --------------------------------------------------
    # ENV + CONFIG
    # --------------------------------------------------
    load_dotenv()
    log.info("Environment variables loaded")
    log.info(f"{as_string()} booting")

    config = ConfigLoader().load_system_config()

    # --------------------------------------------------
    # CORE SYSTEMS
    # --------------------------------------------------
    ctx = build_engine_context(config)
    identity = hydrate_session(ctx.store)

    engine = PushEngine(ctx)
    engine.start()

    # --------------------------------------------------
    # SILENT ENTITLEMENT REFRESH
    # --------------------------------------------------
    if identity.customer_number:
        engine.refresh_trigger.trigger_account()
        log.info(f"[{identity.customer_number}] Silent entitlement refresh started")

    # --------------------------------------------------
    # BLOCK UNTIL SHUTDOWN SIGNAL
    # --------------------------------------------------
    await stop_event.wait()

    log.info("Shutdown initiated")

    try:
        await engine.close()
    except Exception as e:
        log.warning(f"Engine close error ignored: {e}")

    try:
        await ctx.scheduler.shutdown()
    except Exception as e:
        log.warning(f"Scheduler shutdown error ignored: {e}")

    log.info("TVPush runtime stopped")


# ----------------------------------------------------------------------
# SIGNAL HANDLING (WINDOWS-SAFE)
# ----------------------------------------------------------------------

def _install_signal_handlers(
    loop: asyncio.AbstractEventLoop,
    stop_event: asyncio.Event,
):
    """
    Windows-safe Ctrl+C handler.
    Uses signal.signal + asyncio.Event to unwind cleanly.
    """

    def _handler(signum, frame):
        try:
            loop.call_soon_threadsafe(stop_event.set)
        except Exception:
            stop_event.set()

    try:
        signal.signal(signal.SIGINT, _handler)
        signal.signal(signal.SIGTERM, _handler)
    except Exception as e:
        log.warning(f"Signal handler install error ignored: {e}")


# ----------------------------------------------------------------------
# ENTRYPOINT
# ----------------------------------------------------------------------

def run():
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)

    stop_event = asyncio.Event()
    _install_signal_handlers(loop, stop_event)

    try:
        loop.run_until_complete(main(stop_event))

    except KeyboardInterrupt:
        log.info("KeyboardInterrupt received; shutdown initiated")

    finally:
        pending = [t for t in asyncio.all_tasks(loop) if not t.done()]
        for task in pending:
            task.cancel()

        if pending:
            loop.run_until_complete(
                asyncio.gather(*pending, return_exceptions=True)
            )

        loop.run_until_complete(loop.shutdown_asyncgens())

        asyncio.set_event_loop(None)
        loop.close()


if __name__ == "__main__":
    run()
    sys.exit(0)
