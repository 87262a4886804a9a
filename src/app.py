"""Application entry point for the telecampaign bot."""

from __future__ import annotations

import argparse
import logging
from datetime import timedelta
from typing import Optional

from art import tprint
from dotenv import load_dotenv
from telethon import events

import settings
from adapters.sequential_dispatcher import SequentialDispatcher
from adapters.sqlite_rate_limiter import AllowAllRateLimiter, SQLiteRateLimiter
from adapters.sqlite_storage import SQLiteStorage
from adapters.telegram_mapper import build_event
from adapters.telegram_messenger import TelegramMessenger
from adapters.telegram_session import TelegramSession
from client import build_client
from core.campaigns import CampaignCatalog, build_campaigns
from core.event_router import UserShardedRouter
from core.lifecycle import ConnectionSupervisor
from core.orchestrator import RECONCILE_POLICIES, ConversationOrchestrator
from get_session import authorize
from logging_config import configure_logging

NAME = "TELECAMPAIGN"
FONT = "tarty-1"


def _print_banner() -> None:
    tprint(NAME, FONT, space=1)


def _configure_logging() -> None:
    # Redaction reads the secrets from the environment, so .env must be loaded first.
    load_dotenv()
    configure_logging(settings.LOGGING, settings.PROJECT_ROOT)


def _build_storage() -> SQLiteStorage:
    storage = SQLiteStorage(
        settings.DB_PATH,
        enforce_single_active=settings.CONVERSATIONS.enforce_single_active,
    )
    storage.init_db()
    return storage


def _build_rate_limiter():
    if not settings.RATE_LIMIT.enabled:
        return AllowAllRateLimiter()
    limiter = SQLiteRateLimiter(settings.DB_PATH, settings.RATE_LIMIT)
    limiter.init_db()
    removed = limiter.cleanup_usage()
    logging.getLogger(__name__).info("Rate limit cleanup removed %s usage rows", removed)
    return limiter


def _run() -> None:
    _print_banner()
    _configure_logging()
    logger = logging.getLogger(__name__)

    logger.info("Starting telecampaign")

    storage = _build_storage()

    # Campaigns are synced into the DB so conversations can reference them.
    campaigns = build_campaigns(settings.CAMPAIGNS_CONFIG)
    storage.sync_campaigns(campaigns)
    catalog = CampaignCatalog(campaigns)
    logger.info("%s campaigns are loaded", len(campaigns))

    stale_minutes = settings.CONVERSATIONS.stale_after_minutes
    if stale_minutes > 0:
        cancelled = storage.cancel_stale_conversations(timedelta(minutes=stale_minutes))
        logger.info("Cancelled %s stale conversations", cancelled)

    rate_limiter = _build_rate_limiter()

    reconcile = RECONCILE_POLICIES.get(settings.DISPATCH.partial_policy)
    if reconcile is None:
        raise RuntimeError("dispatch.partial_policy must be 'lenient' or 'strict'")

    client = build_client()
    reconnect = settings.RECONNECT
    session = TelegramSession(
        client,
        ConnectionSupervisor(
            max_attempts=reconnect.max_attempts,
            base_delay=reconnect.base_delay_seconds,
            max_delay=reconnect.max_delay_seconds,
        ),
    )
    messenger = TelegramMessenger(client)
    dispatcher = SequentialDispatcher(
        messenger,
        storage,
        send_timeout=settings.DISPATCH.send_timeout_seconds,
        default_delay=settings.DISPATCH.default_delay_seconds,
    )
    orchestrator = ConversationOrchestrator(
        store=storage,
        rate_limiter=rate_limiter,
        campaigns=catalog,
        dispatcher=dispatcher,
        messenger=messenger,
        reconcile=reconcile,
        rate_limit_timeout=settings.RATE_LIMIT.timeout_seconds,
        dispatch_timeout=settings.DISPATCH.timeout_seconds,
    )
    router = UserShardedRouter(
        orchestrator.handle,
        workers=settings.CONVERSATIONS.workers,
        queue_size=settings.CONVERSATIONS.queue_size,
    )

    # The Telethon handler only maps and queues; every decision is made by
    # the orchestrator on the sender's worker.
    async def handler(event) -> None:
        try:
            inbound = await build_event(event)
            await router.submit(inbound)
        except Exception:
            logger.exception("Error while queueing message")

    client.add_event_handler(handler, events.NewMessage(incoming=True))

    async def _serve() -> None:
        await session.start()
        router.start()
        logger.info("Listening for incoming messages...")
        try:
            await session.run()
        finally:
            await router.stop(drain=False)
            await session.destroy()

    try:
        client.loop.run_until_complete(_serve())
    except KeyboardInterrupt:
        logger.info("Interrupted, shutting down")
        client.loop.run_until_complete(session.destroy())


def _setup() -> None:
    _print_banner()
    from frontend.app import ConfigPanelApp

    ConfigPanelApp().run()


def _stats(user_id: str) -> None:
    storage = _build_storage()
    stats = storage.get_user_stats(user_id)
    print(f"user:          {user_id}")
    print(f"conversations: {stats.total_conversations}")
    print(f"completed:     {stats.completed}")
    print(f"failed:        {stats.failed}")
    print(f"last started:  {stats.last_started_at or '-'}")
    active = storage.get_active_conversation(user_id)
    if active is not None:
        print(f"active:        #{active.id} {active.status.value} ({active.messages_sent} sent)")


def _login() -> None:
    _print_banner()
    client = build_client()

    async def _run_login() -> None:
        await client.connect()
        if not await client.is_user_authorized():
            print("Authorization required. Starting login...")
            await authorize(client)
        me = await client.get_me()
        print(f"Logged in as: {getattr(me, 'first_name', None) or me.id}")
        await client.disconnect()

    client.loop.run_until_complete(_run_login())


def main(argv: Optional[list[str]] = None) -> None:
    parser = argparse.ArgumentParser(prog="telecampaign")
    subparsers = parser.add_subparsers(dest="command")

    subparsers.add_parser("run", help="Start the campaign bot")
    subparsers.add_parser("config", help="Launch the config TUI")
    subparsers.add_parser("login", help="Authorize the Telegram session and exit")
    stats_parser = subparsers.add_parser("stats", help="Show conversation stats for a user")
    stats_parser.add_argument("user_id")

    args = parser.parse_args(argv)
    if args.command == "config":
        _setup()
        return
    if args.command == "login":
        _login()
        return
    if args.command == "stats":
        _stats(args.user_id)
        return
    _run()


if __name__ == "__main__":
    main()
