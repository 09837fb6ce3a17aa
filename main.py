import asyncio
import logging
import signal
from datetime import timedelta

from dotenv import load_dotenv

from core.battle import BattleEngine
from core.catalog import AssetLibrary, Catalog
from core.config import Settings
from core.errors import FatalStartupError
from core.game import Game
from core.ledger import CommerceLedger
from core.payments import PaymentVerifier
from core.poller import MentionPoller
from core.store import SessionStore
from transports.health import start_health_server
from transports.twitter_feed import TwitterFeed

log = logging.getLogger("mentionmon")


async def main():
    load_dotenv()
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s :: %(message)s")

    try:
        settings = Settings.from_env()
    except FatalStartupError as exc:
        raise SystemExit(str(exc))
    logging.getLogger().setLevel(settings.log_level)

    catalog = Catalog.load(settings.catalog_path)
    store = SessionStore(settings.db_path)
    store.seed_creatures(catalog)

    verifier = PaymentVerifier(rpc_url=settings.rpc_url)
    await verifier.check_connection()
    ledger = CommerceLedger(store, catalog, verifier, wallet_address=settings.payment_wallet)
    game = Game(
        catalog=catalog,
        ledger=ledger,
        battles=BattleEngine(store, catalog),
        assets=AssetLibrary(settings.assets_dir),
        handle=settings.bot_username,
    )

    feed = TwitterFeed(
        bot_user_id=settings.bot_user_id,
        api_key=settings.twitter_api_key,
        api_secret=settings.twitter_api_secret,
        access_token=settings.twitter_access_token,
        access_secret=settings.twitter_access_secret,
        bearer_token=settings.twitter_bearer_token,
    )
    me = await feed.get_self_identity()
    log.info("Bot account: @%s (id %s)", me.username, me.id)
    if me.id != settings.bot_user_id or me.username.lower() != settings.bot_username.lower():
        log.warning(
            "Configured bot @%s (id %s) does not match the authenticated account",
            settings.bot_username,
            settings.bot_user_id,
        )

    poller = MentionPoller(
        feed,
        game,
        store,
        bot_user_id=settings.bot_user_id,
        bot_username=settings.bot_username,
        lookback=timedelta(minutes=settings.lookback_minutes),
    )

    runner = await start_health_server(settings.port)

    stop_event = asyncio.Event()

    def _signal_handler(*_):
        stop_event.set()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, _signal_handler)
        except NotImplementedError:
            signal.signal(sig, lambda *_: stop_event.set())

    try:
        await poller.run_forever(settings.poll_interval, stop_event)
    finally:
        await runner.cleanup()
        store.close()


def run():
    asyncio.run(main())


if __name__ == "__main__":
    run()
