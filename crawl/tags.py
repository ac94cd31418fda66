"""
Tag resolution: human-readable tag names (or raw ids) to tag ids
"""

import logging
import threading
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional

from .config import TagMatchMode

logger = logging.getLogger(__name__)

TAG_PAGE_SIZE = 100


@dataclass
class TagResolution:
    """Resolved tag ids and the inputs that did not match any tag"""
    tag_ids: List[str] = field(default_factory=list)
    missing: List[str] = field(default_factory=list)


class TagNameCache:
    """
    Name -> id map of every tag in the environment

    Populated once, on first use, from the paginated tag listing and reused
    for the lifetime of the object. It is never refreshed; create a new
    cache to pick up tags created afterwards.
    """

    def __init__(self, client, page_size: int = TAG_PAGE_SIZE):
        self.client = client
        self.page_size = page_size
        self._by_name: Optional[Dict[str, str]] = None
        self._lock = threading.Lock()

    @property
    def loaded(self) -> bool:
        return self._by_name is not None

    def _load(self) -> Dict[str, str]:
        by_name: Dict[str, str] = {}
        skip = 0

        while True:
            page = self.client.list_tags(limit=self.page_size, skip=skip)
            for tag in page:
                if tag.id and tag.name:
                    by_name[tag.name] = tag.id

            if len(page) < self.page_size:
                break
            skip += self.page_size

        logger.info(f"Loaded {len(by_name)} tags into name cache")
        return by_name

    def by_name(self) -> Dict[str, str]:
        with self._lock:
            if self._by_name is None:
                self._by_name = self._load()
            return self._by_name

    def get(self, name: str) -> Optional[str]:
        return self.by_name().get(name)

    def name_for(self, tag_id: str) -> Optional[str]:
        for name, known_id in self.by_name().items():
            if known_id == tag_id:
                return name
        return None


def unique(values: Iterable[str]) -> List[str]:
    """Drop blanks and duplicates, keeping first-seen order"""
    seen = []
    for value in values:
        if value and value not in seen:
            seen.append(value)
    return seen


def resolve_tags(mode: TagMatchMode, names_or_ids: Iterable[str],
                 cache: Optional[TagNameCache] = None) -> TagResolution:
    """
    Turn tag names (or ids) into tag ids

    Args:
        mode: BY_ID passes inputs through as ids; BY_NAME looks them up
        names_or_ids: Inputs, duplicates and blanks are ignored
        cache: Name cache, required in BY_NAME mode

    Returns:
        TagResolution with resolved ids and unmatched names
    """
    inputs = unique(names_or_ids)

    if mode is TagMatchMode.BY_ID:
        return TagResolution(tag_ids=inputs, missing=[])

    if cache is None:
        raise ValueError("A TagNameCache is required to resolve tags by name")

    resolution = TagResolution()
    for name in inputs:
        tag_id = cache.get(name)
        if tag_id:
            if tag_id not in resolution.tag_ids:
                resolution.tag_ids.append(tag_id)
        else:
            resolution.missing.append(name)

    if resolution.missing:
        logger.warning(f"No tag found for: {', '.join(resolution.missing)}")

    return resolution


def describe_targets(mode: TagMatchMode, resolution: TagResolution,
                     cache: Optional[TagNameCache] = None) -> List[Dict[str, str]]:
    """{id, name} pairs for the resolved tags, for display"""
    if mode is TagMatchMode.BY_ID or cache is None:
        return [{'id': tag_id, 'name': tag_id} for tag_id in resolution.tag_ids]
    return [{'id': tag_id, 'name': cache.name_for(tag_id) or tag_id} for tag_id in resolution.tag_ids]
