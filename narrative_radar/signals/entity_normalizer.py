"""
Entity normalization for ecosystem signals.

Canonicalizes free-text entity strings so "jito-foundation", "jito-labs",
"JTO" and "Jito" all map to the same key. Two levels:

  Level 1: Alias table ("jup" → "jupiter")
  Level 2: Suffix stripping ("helius-labs" → "helius"), then a second
           alias lookup on the stripped form

DESIGN NOTES:
  - Alias table and suffix list live in config.py. Extend them as new
    protocols appear.
  - Strings shorter than 2 chars pass through lower-cased: too short to
    classify. Empty input returns "" and callers filter empties.
  - expand_entities() keeps BOTH the canonical key and the original
    lower-cased token when they differ, so correlation/clustering match on
    the protocol and on the more specific original.
"""

import logging
from typing import Dict, Iterable, List, Optional, Sequence

from narrative_radar.config import ENTITY_ALIASES, ENTITY_STRIP_SUFFIXES

logger = logging.getLogger(__name__)

MIN_ENTITY_LENGTH = 2


def normalize_entity(
    raw: str,
    aliases: Optional[Dict[str, str]] = None,
    suffixes: Optional[Sequence[str]] = None,
) -> str:
    """Normalize an entity name to its canonical key.

    Args:
        raw: Free-text entity from a collector.
        aliases: Alias table override (defaults to ENTITY_ALIASES).
        suffixes: Suffix list override (defaults to ENTITY_STRIP_SUFFIXES).

    Returns:
        Canonical lower-case key ("" for empty input).
    """
    aliases = ENTITY_ALIASES if aliases is None else aliases
    suffixes = ENTITY_STRIP_SUFFIXES if suffixes is None else suffixes

    lower = raw.lower().strip()
    if len(lower) < MIN_ENTITY_LENGTH:
        return lower

    # Step 1: Direct alias lookup
    canonical = aliases.get(lower)
    if canonical:
        return canonical

    # Step 2: Strip the first matching suffix, re-check the alias table
    for suffix in suffixes:
        if lower.endswith(suffix):
            stripped = lower[: -len(suffix)]
            return aliases.get(stripped, stripped)

    return lower


def expand_entities(
    entities: Iterable[str],
    aliases: Optional[Dict[str, str]] = None,
    suffixes: Optional[Sequence[str]] = None,
) -> List[str]:
    """Expand entities into canonical keys plus differing originals.

    Returns an order-preserving, de-duplicated list (set semantics) of every
    normalized form with length >= 2, and every lower-cased original that
    differs from its normalized form.
    """
    expanded: Dict[str, None] = {}
    for entity in entities:
        normalized = normalize_entity(entity, aliases, suffixes)
        if len(normalized) >= MIN_ENTITY_LENGTH:
            expanded[normalized] = None
        lower = entity.lower().strip()
        if len(lower) >= MIN_ENTITY_LENGTH and lower != normalized:
            expanded[lower] = None
    return list(expanded)
