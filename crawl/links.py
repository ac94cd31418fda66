"""
Link extraction over arbitrarily nested field values

A field value is treated as a tagged value: a link node, a sequence, a
mapping, or a scalar. Rich text documents, JSON blobs and localized
mappings are all walked the same way.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Set

from cma.models import Link

logger = logging.getLogger(__name__)

# Nesting ceiling; real field values are a few dozen levels deep at most
MAX_NESTING = 256


@dataclass
class ExtractedLinks:
    """Entry and asset ids referenced from a value"""
    entry_ids: Set[str] = field(default_factory=set)
    asset_ids: Set[str] = field(default_factory=set)

    def update(self, other: 'ExtractedLinks'):
        self.entry_ids |= other.entry_ids
        self.asset_ids |= other.asset_ids


def extract_links(value: Any, out: ExtractedLinks = None,
                  max_nesting: int = MAX_NESTING) -> ExtractedLinks:
    """
    Collect every Entry and Asset link inside value

    Link nodes contribute their id and are not descended into. Lists and
    tuples are walked element-wise, dicts value-wise over all keys, other
    values are ignored.

    Args:
        value: Any field value
        out: Accumulator to add into (a new one is created if omitted)
        max_nesting: Values nested deeper than this are skipped

    Returns:
        The accumulator
    """
    if out is None:
        out = ExtractedLinks()
    _walk(value, out, 0, max_nesting, set())
    return out


def _walk(value: Any, out: ExtractedLinks, depth: int, max_nesting: int, on_path: Set[int]):
    if not isinstance(value, (dict, list, tuple)):
        return

    if depth > max_nesting:
        logger.warning(f"Field value nested deeper than {max_nesting} levels, ignoring the rest")
        return

    link = Link.parse(value)
    if link is not None:
        if link.link_type == 'Entry':
            out.entry_ids.add(link.id)
        else:
            out.asset_ids.add(link.id)
        return

    # Containers already on the current path indicate a cycle
    marker = id(value)
    if marker in on_path:
        return
    on_path.add(marker)

    children = value.values() if isinstance(value, dict) else value
    for child in children:
        _walk(child, out, depth + 1, max_nesting, on_path)

    on_path.discard(marker)
