"""Inline ``[[type:id]]`` mentions turned into ``mentions`` references."""

from __future__ import annotations

import logging
import re
from typing import List, Optional, Tuple

from .models import ENTITY_TYPES, EntityReference, ReferenceInput
from .storage import ReferenceStore

logger = logging.getLogger(__name__)

_MENTION_RE = re.compile(r"\[\[\s*([a-z_]+)\s*:\s*([^\]\s][^\]]*?)\s*\]\]")


def extract_mentions(text: str) -> List[Tuple[str, str]]:
    """Return ``(entity_type, entity_id)`` pairs mentioned in *text*, in order.

    Tokens with an unknown entity type are skipped; repeats are collapsed.
    """
    found: List[Tuple[str, str]] = []
    for match in _MENTION_RE.finditer(text or ""):
        entity_type, entity_id = match.group(1), match.group(2)
        if entity_type not in ENTITY_TYPES:
            logger.debug("Skipping mention with unknown entity type: %s", match.group(0))
            continue
        pair = (entity_type, entity_id)
        if pair not in found:
            found.append(pair)
    return found


def link_mentions(
    store: ReferenceStore,
    source_type: str,
    source_id: str,
    text: str,
    created_by: Optional[str] = None,
) -> List[EntityReference]:
    """Record a ``mentions`` reference from the source to every entity in *text*.

    Self-mentions are ignored.  Returns only newly created references.
    """
    inputs = [
        ReferenceInput(
            source_type=source_type,
            source_id=source_id,
            target_type=entity_type,
            target_id=entity_id,
            relationship="mentions",
            created_by=created_by,
        )
        for entity_type, entity_id in extract_mentions(text)
        if (entity_type, entity_id) != (source_type, source_id)
    ]
    if not inputs:
        return []
    return store.create_references_bulk(inputs)
