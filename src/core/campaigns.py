"""Campaign compilation and resolution (core domain).

Campaigns live in config.json next to the rest of the settings. Each one
carries its trigger rules and the ordered messages sent when it matches.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Any, Iterable, List, Mapping, Optional

from core.keyword_matcher import TriggerRules, build_trigger_rules, match_keywords
from core.models import CampaignMatch

LOGGER = logging.getLogger(__name__)

_PLACEHOLDER = re.compile(r"\{\{\s*(\w+)\s*\}\}")


@dataclass(frozen=True)
class MessageTemplate:
    """One outbound message of a campaign, with ``{{name}}`` placeholders."""

    content: str
    delay_seconds: Optional[float] = None

    def render(self, variables: Mapping[str, Any]) -> str:
        def _substitute(match: re.Match) -> str:
            key = match.group(1)
            if key not in variables:
                return match.group(0)
            return str(variables[key])

        return _PLACEHOLDER.sub(_substitute, self.content)


@dataclass(frozen=True)
class Campaign:
    """Compiled campaign used by the resolver."""

    id: int
    name: str
    priority: int
    rules: TriggerRules
    messages: tuple[MessageTemplate, ...]


def _build_templates(raw_messages: Any) -> tuple[MessageTemplate, ...]:
    if not isinstance(raw_messages, list):
        return ()
    templates: List[MessageTemplate] = []
    for entry in raw_messages:
        if isinstance(entry, str):
            if entry.strip():
                templates.append(MessageTemplate(content=entry))
            continue
        if not isinstance(entry, Mapping):
            continue
        content = entry.get("content")
        if not isinstance(content, str) or not content.strip():
            continue
        delay = entry.get("delay_seconds")
        templates.append(
            MessageTemplate(
                content=content,
                delay_seconds=float(delay) if isinstance(delay, (int, float)) else None,
            )
        )
    return tuple(templates)


def build_campaigns(campaigns_config: Iterable[dict]) -> List[Campaign]:
    """Normalize campaign configs, dropping disabled ones.

    The result is sorted by descending priority; campaigns sharing a priority
    keep their config order.
    """

    compiled: List[Campaign] = []
    for raw in campaigns_config:
        if not isinstance(raw, Mapping):
            LOGGER.warning("Skipping campaign entry that is not an object: %r", raw)
            continue
        if not raw.get("enabled", True):
            continue
        campaign_id = raw.get("id")
        if not isinstance(campaign_id, int) or isinstance(campaign_id, bool):
            LOGGER.warning("Skipping campaign without integer id: %s", raw.get("name"))
            continue
        try:
            priority = int(raw.get("priority", 0))
        except (TypeError, ValueError):
            LOGGER.warning("Skipping campaign %s with invalid priority: %r", campaign_id, raw.get("priority"))
            continue
        rules = build_trigger_rules(raw.get("trigger_keywords")) or TriggerRules()
        compiled.append(
            Campaign(
                id=campaign_id,
                name=str(raw.get("name") or f"campaign {campaign_id}"),
                priority=priority,
                rules=rules,
                messages=_build_templates(raw.get("messages")),
            )
        )
    compiled.sort(key=lambda campaign: -campaign.priority)
    return compiled


class CampaignCatalog:
    """In-memory campaign resolver backed by compiled campaigns."""

    def __init__(self, campaigns: Iterable[Campaign]) -> None:
        self._campaigns = list(campaigns)
        self._by_id = {campaign.id: campaign for campaign in self._campaigns}

    @property
    def campaigns(self) -> List[Campaign]:
        return list(self._campaigns)

    def resolve(self, text: str) -> Optional[CampaignMatch]:
        """Return the first campaign, in priority order, whose rules match."""

        for campaign in self._campaigns:
            match = match_keywords(text, campaign.rules)
            if match is None:
                continue
            return CampaignMatch(
                campaign_id=campaign.id,
                campaign_name=campaign.name,
                matched_keyword=match.matched,
                match_type=match.match_type,
            )
        return None

    def templates_for(self, campaign_id: int) -> List[MessageTemplate]:
        campaign = self._by_id.get(campaign_id)
        if campaign is None:
            return []
        return list(campaign.messages)
