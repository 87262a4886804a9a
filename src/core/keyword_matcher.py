"""Campaign trigger compilation and keyword matching (core domain)."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable, Mapping, Optional, Tuple, Union

from core.models import KeywordMatch, MatchType


@dataclass(frozen=True)
class TriggerRules:
    """Normalized trigger rule set for one campaign.

    Phrases keep their original casing so a match can report the phrase as
    configured; comparisons always lower-case both sides.
    """

    excluded_words: Tuple[str, ...] = ()
    exact_matches: Tuple[str, ...] = ()
    keywords: Tuple[str, ...] = ()
    synonyms: Tuple[Tuple[str, Tuple[str, ...]], ...] = ()


def _phrases(raw: Any) -> Tuple[str, ...]:
    # Non-list tiers are treated as empty; non-string and empty entries are skipped.
    if not isinstance(raw, (list, tuple)):
        return ()
    return tuple(item for item in raw if isinstance(item, str) and item.strip())


def build_trigger_rules(raw: Any) -> Optional[TriggerRules]:
    """Normalize a raw ``trigger_keywords`` mapping into ``TriggerRules``.

    Returns None when the rule set is absent or not a mapping.
    """

    if isinstance(raw, TriggerRules):
        return raw
    if not isinstance(raw, Mapping):
        return None

    synonyms: list[Tuple[str, Tuple[str, ...]]] = []
    raw_synonyms = raw.get("synonyms")
    if isinstance(raw_synonyms, Mapping):
        for canonical, group in raw_synonyms.items():
            if not isinstance(canonical, str) or not isinstance(group, (list, tuple)):
                continue
            phrases = _phrases(group)
            if phrases:
                synonyms.append((canonical, phrases))

    return TriggerRules(
        excluded_words=_phrases(raw.get("excluded_words")),
        exact_matches=_phrases(raw.get("exact_matches")),
        keywords=_phrases(raw.get("keywords")),
        synonyms=tuple(synonyms),
    )


def _hit(phrase: str, text: str, tokens: Iterable[str]) -> bool:
    lowered = phrase.lower()
    return lowered in tokens or lowered in text


def match_keywords(
    text: Any,
    rules: Union[TriggerRules, Mapping[str, Any], None],
) -> Optional[KeywordMatch]:
    """Return the first satisfied trigger for ``text`` or None.

    Priority order, first hit wins:
    - any excluded phrase present -> no match, nothing else is evaluated
    - exact-match phrases (substring) -> EXACT with the configured phrase
    - keywords (whole token or substring) -> KEYWORD with the configured keyword
    - synonym groups -> SYNONYM with the canonical word, not the synonym
    """

    if not isinstance(text, str) or not text.strip():
        return None
    compiled = build_trigger_rules(rules)
    if compiled is None:
        return None

    lowered = text.lower().strip()

    if any(word.lower() in lowered for word in compiled.excluded_words):
        return None

    for phrase in compiled.exact_matches:
        if phrase.lower() in lowered:
            return KeywordMatch(matched=phrase, match_type=MatchType.EXACT)

    tokens = set(lowered.split())

    for keyword in compiled.keywords:
        if _hit(keyword, lowered, tokens):
            return KeywordMatch(matched=keyword, match_type=MatchType.KEYWORD)

    for canonical, group in compiled.synonyms:
        if any(_hit(synonym, lowered, tokens) for synonym in group):
            return KeywordMatch(matched=canonical, match_type=MatchType.SYNONYM)

    return None
