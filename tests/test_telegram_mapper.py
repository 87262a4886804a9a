from __future__ import annotations

import asyncio

from adapters.telegram_mapper import DEFAULT_DISPLAY_NAME, build_event, display_name_from_sender
from adapters.telegram_messenger import TelegramMessenger


class DummySender:
    def __init__(
        self,
        first_name: "str | None" = None,
        last_name: "str | None" = None,
        username: "str | None" = None,
        bot: bool = False,
    ) -> None:
        self.first_name = first_name
        self.last_name = last_name
        self.username = username
        self.bot = bot


class DummyEvent:
    def __init__(
        self,
        *,
        sender=None,
        sender_id: int = 51987654321,
        raw_text: "str | None" = "quiero alquilar",
        out: bool = False,
        is_private: bool = True,
        sender_error: bool = False,
    ) -> None:
        self._sender = sender
        self._sender_error = sender_error
        self.sender_id = sender_id
        self.raw_text = raw_text
        self.out = out
        self.is_private = is_private

    async def get_sender(self):
        if self._sender_error:
            raise ValueError("Could not find the input entity")
        return self._sender


class DummyClient:
    def __init__(self) -> None:
        self.sent: list[tuple[object, str, bool]] = []

    async def send_message(self, entity, message, link_preview=True):
        self.sent.append((entity, message, link_preview))


def test_private_message_maps_to_inbound_event() -> None:
    event = DummyEvent(sender=DummySender(first_name="Ana", last_name="Pérez"))
    inbound = asyncio.run(build_event(event))

    assert inbound.sender_id == "51987654321"
    assert inbound.text == "quiero alquilar"
    assert inbound.sender_display_name == "Ana Pérez"
    assert not inbound.is_from_bot
    assert not inbound.is_group_origin


def test_group_outgoing_and_bot_flags() -> None:
    group = asyncio.run(build_event(DummyEvent(sender=DummySender("Ana"), is_private=False)))
    assert group.is_group_origin

    outgoing = asyncio.run(build_event(DummyEvent(sender=DummySender("Ana"), out=True)))
    assert outgoing.is_from_bot

    other_bot = asyncio.run(build_event(DummyEvent(sender=DummySender("Bot", bot=True))))
    assert other_bot.is_from_bot


def test_missing_sender_and_text_fall_back() -> None:
    inbound = asyncio.run(build_event(DummyEvent(sender_error=True, raw_text=None)))
    assert inbound.sender_display_name == DEFAULT_DISPLAY_NAME
    assert inbound.text == ""


def test_display_name_fallbacks() -> None:
    assert display_name_from_sender(None) == "Usuario"
    assert display_name_from_sender(DummySender(username="ana_p")) == "ana_p"
    assert display_name_from_sender(DummySender()) == "Usuario"


def test_messenger_sends_to_numeric_peer() -> None:
    client = DummyClient()
    messenger = TelegramMessenger(client)

    asyncio.run(messenger.send_text("51987654321", "Hola"))
    asyncio.run(messenger.send_text("@ana_p", "Hola"))

    assert client.sent == [(51987654321, "Hola", False), ("@ana_p", "Hola", False)]
