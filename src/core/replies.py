"""User-facing replies for rate-limit denials."""

from __future__ import annotations

from typing import Optional

SUPPORT_CONTACT = "📞 +51 987 654 321"

RATE_LIMIT_MESSAGES: dict[str, str] = {
    "RATE_LIMIT_HOUR": (
        "🕐 Has consultado varias veces en la última hora. Por favor espera unos "
        "minutos antes de volver a intentar.\n\nPara atención inmediata contacta:\n"
        f"{SUPPORT_CONTACT}"
    ),
    "RATE_LIMIT_DAY": (
        "📊 Has alcanzado el límite de consultas diarias. Mañana podrás volver a "
        f"usar el bot.\n\nPara atención inmediata:\n{SUPPORT_CONTACT}"
    ),
    "BLOCKED_TEMPORARY": "🚫 Tu número está temporalmente bloqueado. Por favor contacta a soporte.",
    "BLOCKED_PERMANENT": (
        "🚫 Tu número está en la lista de bloqueados. Contacta a soporte si crees "
        "que es un error."
    ),
}


def rate_limit_message(reason: Optional[str]) -> Optional[str]:
    """Return the reply for a deny reason, or None when no reply is configured."""

    if not reason:
        return None
    return RATE_LIMIT_MESSAGES.get(reason)
