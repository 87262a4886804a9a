"""Interactive Telegram authorization for the campaign account.

Two methods are supported: scanning a QR code from the Telegram app, or
the classic phone number + login code flow. LOGIN_METHOD/PHONE/2FA can be
set in .env to skip the prompts.
"""

from __future__ import annotations

import asyncio
import logging
import os
from getpass import getpass
from typing import Callable, Optional

import qrcode
from telethon import TelegramClient, errors

LOGGER = logging.getLogger(__name__)

QrCallback = Callable[[str], None]

LOGIN_METHODS = {"1": "qr", "2": "phone"}
QR_TIMEOUT_SECONDS = 60
QR_MAX_CODES = 3


def _print_qr(url: str) -> None:
    qr = qrcode.QRCode(border=1)
    qr.add_data(url)
    qr.make(fit=True)
    qr.print_ascii(invert=True)


def _resolve_2fa_password() -> str:
    return os.getenv("2FA") or getpass("2FA password: ")


async def _authorize_with_qr(client: TelegramClient, on_qr: Optional[QrCallback]) -> None:
    """Show QR codes until one is scanned; expired codes are regenerated."""

    qr = await client.qr_login()
    for attempt in range(1, QR_MAX_CODES + 1):
        if on_qr is not None:
            on_qr(qr.url)
        print(f"Scan with Telegram > Settings > Devices ({attempt}/{QR_MAX_CODES})")
        _print_qr(qr.url)
        try:
            await qr.wait(timeout=QR_TIMEOUT_SECONDS)
            return
        except asyncio.TimeoutError:
            LOGGER.info("QR code %s expired", attempt)
            if attempt < QR_MAX_CODES:
                await qr.recreate()
    raise TimeoutError(f"No QR code was scanned after {QR_MAX_CODES} attempts")


async def _authorize_with_phone(client: TelegramClient) -> None:
    phone = os.getenv("PHONE") or input("Phone number (international format): ").strip()
    await client.send_code_request(phone)
    code = input("Login code: ").strip()
    await client.sign_in(phone=phone, code=code)


def _pick_login_method() -> str:
    method = (os.getenv("LOGIN_METHOD") or "").strip().lower()
    if method in LOGIN_METHODS.values():
        return method
    while True:
        print("")
        print("Login methods:")
        print("[1] QR code")
        print("[2] Phone code")
        print("[3] Exit")
        choice = input("telecampaign > ").strip()
        if choice == "3":
            raise SystemExit(0)
        if choice in LOGIN_METHODS:
            return LOGIN_METHODS[choice]
        print("Invalid option. Please choose 1, 2, or 3.")


async def authorize(client: TelegramClient, on_qr: Optional[QrCallback] = None) -> None:
    """Authorize the connected client unless its stored session is still valid.

    ``on_qr`` is called with every QR login URL shown, so the session
    lifecycle can move to QR_PENDING.
    """

    if await client.is_user_authorized():
        return

    method = _pick_login_method()
    LOGGER.info("Authorizing with %s login", method)
    try:
        if method == "phone":
            await _authorize_with_phone(client)
        else:
            await _authorize_with_qr(client, on_qr)
    except errors.SessionPasswordNeededError:
        await client.sign_in(password=_resolve_2fa_password())
