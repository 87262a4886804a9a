"""Parsing and validation helpers for campaign editing."""

from __future__ import annotations

from typing import Any, Iterable, Optional

MESSAGE_SEPARATOR = "---"


def parse_lines(value: str) -> list[str]:
    return [line.strip() for line in value.splitlines() if line.strip()]


def parse_synonyms(value: str) -> dict[str, list[str]]:
    """Parse ``canonical: synonym, synonym`` lines into a synonym map."""

    synonyms: dict[str, list[str]] = {}
    for line in value.splitlines():
        canonical, sep, rest = line.partition(":")
        canonical = canonical.strip()
        if not sep or not canonical:
            continue
        words = [word.strip() for word in rest.split(",") if word.strip()]
        if words:
            synonyms.setdefault(canonical, []).extend(words)
    return synonyms


def format_synonyms(synonyms: Any) -> str:
    if not isinstance(synonyms, dict):
        return ""
    lines = []
    for canonical, words in synonyms.items():
        if isinstance(words, list):
            lines.append(f"{canonical}: {', '.join(str(word) for word in words)}")
    return "\n".join(lines)


def _message_content(entry: Any) -> Optional[str]:
    if isinstance(entry, str):
        return entry
    if isinstance(entry, dict) and isinstance(entry.get("content"), str):
        return entry["content"]
    return None


def format_messages(messages: Any) -> str:
    if not isinstance(messages, list):
        return ""
    contents = [content for content in map(_message_content, messages) if content is not None]
    return f"\n{MESSAGE_SEPARATOR}\n".join(contents)


def parse_messages(value: str, previous: Optional[list[Any]] = None) -> list[Any]:
    """Split editor text on ``---`` lines into messages.

    A message keeps the delay of the message previously at the same position.
    """

    blocks: list[str] = []
    current: list[str] = []
    for line in value.splitlines():
        if line.strip() == MESSAGE_SEPARATOR:
            blocks.append("\n".join(current).strip())
            current = []
        else:
            current.append(line)
    blocks.append("\n".join(current).strip())

    previous = previous or []
    messages: list[Any] = []
    for block in (block for block in blocks if block):
        position = len(messages)
        old = previous[position] if position < len(previous) else None
        if isinstance(old, dict) and "delay_seconds" in old:
            messages.append({"content": block, "delay_seconds": old["delay_seconds"]})
        else:
            messages.append(block)
    return messages


def validate_campaign(campaign: dict[str, Any], other_ids: Iterable[Any] = ()) -> list[str]:
    """Return human-readable problems with a campaign config entry."""

    errors: list[str] = []
    campaign_id = campaign.get("id")
    if not isinstance(campaign_id, int) or isinstance(campaign_id, bool):
        errors.append("id must be an integer")
    elif campaign_id in set(other_ids):
        errors.append(f"id {campaign_id} is already used")

    if not str(campaign.get("name") or "").strip():
        errors.append("name is required")

    triggers = campaign.get("trigger_keywords")
    if not isinstance(triggers, dict):
        triggers = {}
    if not any(triggers.get(tier) for tier in ("exact_matches", "keywords", "synonyms")):
        errors.append("no trigger phrases: the campaign can never match")

    if not format_messages(campaign.get("messages")).strip():
        errors.append("no messages: matched conversations will fail")
    return errors
