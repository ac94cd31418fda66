"""
Scan orchestration: location context -> target tags -> roots -> crawl
"""

import logging
import threading
from dataclasses import dataclass, field
from typing import Optional

from cma.client import ContentManagementClient
from utils.logging_config import get_contextual_logger

from .config import CrawlConfig
from .inventory import Inventory
from .progress import ProgressChannel, emit
from .roots import (LocationContext, RootResolution, direct_roots,
                    find_roots_for_anchors, resolve_location_context)
from .tags import TagNameCache, TagResolution, describe_targets, resolve_tags
from .traversal import GraphTraverser

logger = logging.getLogger(__name__)


@dataclass
class ScanResult:
    """Everything a scan produced, including why it stopped early if it did"""
    entry_id: str
    context: LocationContext = field(default_factory=LocationContext)
    resolution: TagResolution = field(default_factory=TagResolution)
    roots: RootResolution = field(default_factory=RootResolution)
    inventory: Optional[Inventory] = None
    status: str = ''

    @property
    def completed(self) -> bool:
        return self.inventory is not None


class Scanner:
    """
    Runs a complete scan for one entry

    A location entry is scanned in anchor mode (every root page linking to
    it); any other entry is scanned from itself, with target tags taken
    from the locations it links to.
    """

    def __init__(self, client: ContentManagementClient, config: CrawlConfig, locale: str,
                 tag_cache: Optional[TagNameCache] = None,
                 progress: Optional[ProgressChannel] = None,
                 cancel_event: Optional[threading.Event] = None):
        self.client = client
        self.config = config
        self.locale = locale
        self.tag_cache = tag_cache or TagNameCache(client)
        self.progress = progress
        self.cancel_event = cancel_event or threading.Event()

    def _status(self, result: ScanResult, message: str) -> ScanResult:
        result.status = message
        emit(self.progress, 'status', message=message)
        get_contextual_logger(__name__, entry_id=result.entry_id).info(message)
        return result

    def scan(self, entry_id: str) -> ScanResult:
        result = ScanResult(entry_id=entry_id)
        self._status(result, 'Starting scan…')

        entry = self.client.get_entry(entry_id)
        result.context = resolve_location_context(self.client, entry, self.config, self.locale)

        if not result.context.location_tags:
            return self._status(result, result.context.warning or 'No Location tag(s) found.')
        if result.context.warning:
            logger.warning(result.context.warning)

        self._status(result, 'Resolving target tags…')
        result.resolution = resolve_tags(self.config.tag_match_mode,
                                         result.context.location_tags, self.tag_cache)

        if not result.resolution.tag_ids:
            if result.resolution.missing:
                message = f"No matching tag found for: {', '.join(result.resolution.missing)}"
            else:
                message = 'No target tag IDs resolved.'
            return self._status(result, message)

        if result.context.is_location_entry:
            self._status(result, 'Finding root pages…')
            result.roots = find_roots_for_anchors(self.client, result.context.location_ids, self.config)
        else:
            result.roots = direct_roots(entry)

        self._status(result, 'Scanning descendants…')
        traverser = GraphTraverser(self.client, self.config, self.locale,
                                   progress=self.progress, cancel_event=self.cancel_event)
        inventory = traverser.crawl(result.roots.root_ids, result.resolution.tag_ids)
        inventory.missing_target_tags_by_name = list(result.resolution.missing)
        inventory.target_tags = describe_targets(self.config.tag_match_mode,
                                                 result.resolution, self.tag_cache)
        result.inventory = inventory

        return self._status(result, 'Scan complete.')
