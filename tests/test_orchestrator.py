from __future__ import annotations

import asyncio

from adapters.sequential_dispatcher import SequentialDispatcher
from core.campaigns import CampaignCatalog, build_campaigns
from core.event_router import UserShardedRouter
from core.models import ConversationStatus, DispatchResult, InboundEvent, MatchType, RateDecision
from core.orchestrator import (
    ALL_FAILED_REASON,
    DISPATCH_TIMEOUT_REASON,
    NO_MESSAGES_REASON,
    PARTIAL_REASON,
    ConversationOrchestrator,
    reconcile_lenient,
    reconcile_strict,
)
from core.replies import RATE_LIMIT_MESSAGES
from fakes import FakeMessenger, FakeRateLimiter, FakeStore, no_sleep

CAMPAIGNS = [
    {
        "id": 1,
        "name": "Alquiler",
        "priority": 10,
        "trigger_keywords": {
            "excluded_words": ["no quiero"],
            "exact_matches": ["quiero alquilar"],
            "keywords": ["alquiler"],
        },
        "messages": ["Hola {{name}}", "Tenemos departamentos", "Escríbenos a {{campaign}}"],
    },
    {
        "id": 2,
        "name": "Vacía",
        "priority": 0,
        "trigger_keywords": {"keywords": ["vacía"]},
        "messages": [],
    },
]


class FixedDispatcher:
    def __init__(self, result: DispatchResult) -> None:
        self.result = result
        self.calls: list[tuple[str, int, list, dict]] = []

    async def send(self, recipient_id, conversation_id, templates, variables) -> DispatchResult:
        self.calls.append((recipient_id, conversation_id, list(templates), dict(variables)))
        return self.result


class BrokenStore(FakeStore):
    def get_active_conversation(self, user_id: str):
        raise RuntimeError("database is locked")


def _event(text: str = "quiero alquilar", sender_id: str = "100", **overrides) -> InboundEvent:
    values = {
        "is_from_bot": False,
        "is_group_origin": False,
        "sender_id": sender_id,
        "text": text,
        "sender_display_name": "Ana",
    }
    values.update(overrides)
    return InboundEvent(**values)


def _orchestrator(
    store=None,
    rate_limiter=None,
    dispatcher=None,
    messenger=None,
    **kwargs,
) -> ConversationOrchestrator:
    store = store if store is not None else FakeStore()
    messenger = messenger if messenger is not None else FakeMessenger()
    if dispatcher is None:
        dispatcher = SequentialDispatcher(messenger, store, sleep=no_sleep)
    return ConversationOrchestrator(
        store=store,
        rate_limiter=rate_limiter or FakeRateLimiter(),
        campaigns=CampaignCatalog(build_campaigns(CAMPAIGNS)),
        dispatcher=dispatcher,
        messenger=messenger,
        **kwargs,
    )


def test_full_pipeline_completes_conversation() -> None:
    store = FakeStore()
    messenger = FakeMessenger()
    limiter = FakeRateLimiter()
    orchestrator = _orchestrator(store, limiter, messenger=messenger)

    conversation_id = asyncio.run(orchestrator.handle(_event()))

    conversation = store.get_conversation(conversation_id)
    assert conversation.status is ConversationStatus.COMPLETED
    assert conversation.messages_sent == 3
    assert conversation.match_type is MatchType.EXACT
    assert conversation.matched_keyword == "quiero alquilar"
    assert conversation.trigger_message == "quiero alquilar"
    assert conversation.ended_at is not None
    assert [text for _, text in messenger.sent] == [
        "Hola Ana",
        "Tenemos departamentos",
        "Escríbenos a Alquiler",
    ]
    assert limiter.recorded == ["100"]


def test_bot_group_and_blank_events_are_ignored() -> None:
    store = FakeStore()
    limiter = FakeRateLimiter()
    orchestrator = _orchestrator(store, limiter)

    assert asyncio.run(orchestrator.handle(_event(is_from_bot=True))) is None
    assert asyncio.run(orchestrator.handle(_event(is_group_origin=True))) is None
    assert asyncio.run(orchestrator.handle(_event(text="   "))) is None
    assert store.conversations == {}
    assert limiter.checked == []


def test_active_conversation_blocks_new_one() -> None:
    store = FakeStore()
    existing = store.create_conversation("100", "Ana", 1, "hola", "hola", MatchType.KEYWORD)
    limiter = FakeRateLimiter()
    orchestrator = _orchestrator(store, limiter)

    assert asyncio.run(orchestrator.handle(_event())) is None
    assert list(store.conversations) == [existing]
    assert limiter.checked == []


def test_no_campaign_match_does_not_record_usage() -> None:
    store = FakeStore()
    limiter = FakeRateLimiter()
    orchestrator = _orchestrator(store, limiter)

    assert asyncio.run(orchestrator.handle(_event("no quiero alquilar nada"))) is None
    assert asyncio.run(orchestrator.handle(_event("buenas tardes"))) is None
    assert limiter.checked == ["100", "100"]
    assert limiter.recorded == []
    assert store.conversations == {}


def test_rate_limit_deny_replies_with_mapped_message() -> None:
    store = FakeStore()
    messenger = FakeMessenger()
    limiter = FakeRateLimiter(RateDecision(False, "RATE_LIMIT_HOUR"))
    orchestrator = _orchestrator(store, limiter, messenger=messenger)

    assert asyncio.run(orchestrator.handle(_event())) is None
    assert messenger.sent == [("100", RATE_LIMIT_MESSAGES["RATE_LIMIT_HOUR"])]
    assert store.conversations == {}
    assert limiter.recorded == []


def test_rate_limit_unmapped_reason_sends_nothing() -> None:
    messenger = FakeMessenger()
    limiter = FakeRateLimiter(RateDecision(False, "SOMETHING_NEW"))
    orchestrator = _orchestrator(rate_limiter=limiter, messenger=messenger)

    assert asyncio.run(orchestrator.handle(_event())) is None
    assert messenger.sent == []


def test_rate_limit_timeout_drops_event() -> None:
    store = FakeStore()
    limiter = FakeRateLimiter(delay=1.0)
    orchestrator = _orchestrator(store, limiter, rate_limit_timeout=0.01)

    assert asyncio.run(orchestrator.handle(_event())) is None
    assert store.conversations == {}


def test_campaign_without_messages_fails_conversation() -> None:
    store = FakeStore()
    orchestrator = _orchestrator(store)

    conversation_id = asyncio.run(orchestrator.handle(_event("vacía")))

    conversation = store.get_conversation(conversation_id)
    assert conversation.status is ConversationStatus.FAILED
    assert conversation.metadata["failure_reason"] == NO_MESSAGES_REASON


def test_reconcile_all_sent() -> None:
    store = FakeStore()
    dispatcher = FixedDispatcher(DispatchResult(sent=3, failed=0, total=3))
    conversation_id = asyncio.run(_orchestrator(store, dispatcher=dispatcher).handle(_event()))
    assert store.get_conversation(conversation_id).status is ConversationStatus.COMPLETED


def test_reconcile_all_failed() -> None:
    store = FakeStore()
    dispatcher = FixedDispatcher(DispatchResult(sent=0, failed=3, total=3))
    conversation_id = asyncio.run(_orchestrator(store, dispatcher=dispatcher).handle(_event()))
    conversation = store.get_conversation(conversation_id)
    assert conversation.status is ConversationStatus.FAILED
    assert conversation.metadata["failure_reason"] == ALL_FAILED_REASON


def test_reconcile_partial_is_lenient_by_default() -> None:
    store = FakeStore()
    dispatcher = FixedDispatcher(DispatchResult(sent=2, failed=1, total=3))
    conversation_id = asyncio.run(_orchestrator(store, dispatcher=dispatcher).handle(_event()))
    assert store.get_conversation(conversation_id).status is ConversationStatus.COMPLETED


def test_reconcile_partial_with_strict_policy() -> None:
    store = FakeStore()
    dispatcher = FixedDispatcher(DispatchResult(sent=2, failed=1, total=3))
    orchestrator = _orchestrator(store, dispatcher=dispatcher, reconcile=reconcile_strict)

    conversation_id = asyncio.run(orchestrator.handle(_event()))

    conversation = store.get_conversation(conversation_id)
    assert conversation.status is ConversationStatus.FAILED
    assert conversation.metadata["failure_reason"] == PARTIAL_REASON


def test_reconcile_policies() -> None:
    assert reconcile_lenient(DispatchResult(2, 1, 3)).status is ConversationStatus.COMPLETED
    assert reconcile_lenient(DispatchResult(0, 3, 3)).reason == ALL_FAILED_REASON
    assert reconcile_strict(DispatchResult(3, 0, 3)).status is ConversationStatus.COMPLETED
    assert reconcile_strict(DispatchResult(1, 2, 3)).reason == PARTIAL_REASON


def test_dispatch_receives_variables() -> None:
    dispatcher = FixedDispatcher(DispatchResult(sent=3, failed=0, total=3))
    conversation_id = asyncio.run(_orchestrator(dispatcher=dispatcher).handle(_event()))

    recipient_id, dispatched_id, templates, variables = dispatcher.calls[0]
    assert recipient_id == "100"
    assert dispatched_id == conversation_id
    assert len(templates) == 3
    assert variables == {
        "name": "Ana",
        "user_id": "100",
        "campaign": "Alquiler",
        "nombre": "Ana",
        "telefono": "100",
    }


def test_partial_transport_failure_end_to_end() -> None:
    store = FakeStore()
    messenger = FakeMessenger(fail_on=frozenset({2}))
    conversation_id = asyncio.run(_orchestrator(store, messenger=messenger).handle(_event()))

    conversation = store.get_conversation(conversation_id)
    assert conversation.status is ConversationStatus.COMPLETED
    assert conversation.messages_sent == 2


def test_dispatch_timeout_fails_conversation() -> None:
    store = FakeStore()
    messenger = FakeMessenger(delay=1.0)
    orchestrator = _orchestrator(store, messenger=messenger, dispatch_timeout=0.05)

    conversation_id = asyncio.run(orchestrator.handle(_event()))

    conversation = store.get_conversation(conversation_id)
    assert conversation.status is ConversationStatus.FAILED
    assert conversation.metadata["failure_reason"] == DISPATCH_TIMEOUT_REASON


def test_storage_errors_are_swallowed() -> None:
    orchestrator = _orchestrator(BrokenStore())
    assert asyncio.run(orchestrator.handle(_event())) is None


class LockedCounterStore(FakeStore):
    def increment_messages_sent(self, conversation_id: int) -> None:
        raise RuntimeError("database is locked")


def test_increment_failure_aborts_before_reconcile() -> None:
    store = LockedCounterStore()
    messenger = FakeMessenger()

    assert asyncio.run(_orchestrator(store, messenger=messenger).handle(_event())) is None

    (conversation,) = store.conversations.values()
    assert conversation.status is not ConversationStatus.COMPLETED
    assert conversation.messages_sent == 0
    assert len(messenger.sent) == 1


def test_spanish_placeholders_are_rendered() -> None:
    messenger = FakeMessenger()
    store = FakeStore()
    campaigns = [
        {
            "id": 5,
            "name": "Saludo",
            "trigger_keywords": {"keywords": ["hola"]},
            "messages": ["Hola {{nombre}} ({{telefono}})"],
        }
    ]
    orchestrator = ConversationOrchestrator(
        store=store,
        rate_limiter=FakeRateLimiter(),
        campaigns=CampaignCatalog(build_campaigns(campaigns)),
        dispatcher=SequentialDispatcher(messenger, store, sleep=no_sleep),
    )

    asyncio.run(orchestrator.handle(_event("hola", sender_id="51987")))

    assert [text for _, text in messenger.sent] == ["Hola Ana (51987)"]


class StallingDispatcher:
    """Records one send, then hangs until cancelled."""

    def __init__(self, store: FakeStore) -> None:
        self._store = store

    async def send(self, recipient_id, conversation_id, templates, variables) -> DispatchResult:
        self._store.increment_messages_sent(conversation_id)
        await asyncio.sleep(10)
        return DispatchResult(sent=len(templates), failed=0, total=len(templates))


def test_dispatch_timeout_after_partial_send_uses_policy() -> None:
    store = FakeStore()
    orchestrator = _orchestrator(
        store,
        dispatcher=StallingDispatcher(store),
        reconcile=reconcile_strict,
        dispatch_timeout=0.05,
    )

    conversation_id = asyncio.run(orchestrator.handle(_event()))

    conversation = store.get_conversation(conversation_id)
    assert conversation.messages_sent == 1
    assert conversation.status is ConversationStatus.FAILED
    assert conversation.metadata["failure_reason"] == PARTIAL_REASON


def test_dispatch_timeout_after_partial_send_completes_when_lenient() -> None:
    store = FakeStore()
    orchestrator = _orchestrator(store, dispatcher=StallingDispatcher(store), dispatch_timeout=0.05)

    conversation_id = asyncio.run(orchestrator.handle(_event()))

    conversation = store.get_conversation(conversation_id)
    assert conversation.messages_sent == 1
    assert conversation.status is ConversationStatus.COMPLETED


def test_concurrent_messages_race_without_serialization() -> None:
    store = FakeStore()
    orchestrator = _orchestrator(
        store, FakeRateLimiter(delay=0.01), messenger=FakeMessenger(delay=0.01)
    )

    async def _run() -> None:
        await asyncio.gather(
            orchestrator.handle(_event("quiero alquilar")),
            orchestrator.handle(_event("alquiler por favor")),
        )

    asyncio.run(_run())

    assert len(store.conversations) == 2
    assert store.peak_active["100"] == 2


def test_store_uniqueness_closes_the_race() -> None:
    store = FakeStore(enforce_single_active=True)
    orchestrator = _orchestrator(
        store, FakeRateLimiter(delay=0.01), messenger=FakeMessenger(delay=0.01)
    )

    async def _run() -> list:
        return await asyncio.gather(
            orchestrator.handle(_event("quiero alquilar")),
            orchestrator.handle(_event("alquiler por favor")),
        )

    results = asyncio.run(_run())

    assert len(store.conversations) == 1
    assert results.count(None) == 1


def test_sharded_router_serializes_same_user() -> None:
    store = FakeStore()
    orchestrator = _orchestrator(
        store, FakeRateLimiter(delay=0.01), messenger=FakeMessenger(delay=0.01)
    )

    async def _run() -> None:
        router = UserShardedRouter(orchestrator.handle, workers=4)
        router.start()
        await asyncio.gather(
            router.submit(_event("quiero alquilar")),
            router.submit(_event("alquiler por favor")),
            router.submit(_event("alquiler", sender_id="200")),
        )
        await router.stop()

    asyncio.run(_run())

    assert store.peak_active == {"100": 1, "200": 1}
    assert all(
        conversation.status is ConversationStatus.COMPLETED
        for conversation in store.conversations.values()
    )
