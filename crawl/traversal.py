"""
Breadth-first traversal of the entry link graph

Starting from the root entries, every entry reachable through entry links
is fetched, classified and recorded; assets linked along the way are
collected and fetched once the entry frontier is exhausted.
"""

import logging
import threading
from typing import Dict, Iterable, List, Optional, Set, Tuple

from cma.client import ContentManagementClient, AuthenticationError, ConnectivityError, ITEM_ERRORS
from cma.models import Entry
from utils.logging_config import log_traversal_progress

from .config import CrawlConfig
from .errors import CrawlAbortedError
from .inventory import Inventory, EntryRow, AssetRow, ExcludedReason, missing_tags
from .links import ExtractedLinks, extract_links
from .pool import run_pool, PoolFailure
from .progress import ProgressChannel, emit

logger = logging.getLogger(__name__)


class GraphTraverser:
    """
    Crawls the entries reachable from a set of roots

    The frontier is drained wave by wave: all entries at one depth are
    fetched concurrently, and the next wave starts only once every entry of
    the current wave has queued its children. An entry keeps the depth at
    which it was first discovered, which is its minimum depth.
    """

    def __init__(self, client: ContentManagementClient, config: CrawlConfig, locale: str,
                 progress: Optional[ProgressChannel] = None,
                 cancel_event: Optional[threading.Event] = None):
        """
        Initialize the traverser

        Args:
            client: Repository client used for every fetch
            config: Traversal settings (depth, exclusions, concurrency)
            locale: Preferred locale for titles and field values
            progress: Channel receiving progress events
            cancel_event: Set by the caller to abandon the crawl
        """
        self.client = client
        self.config = config
        self.locale = locale
        self.progress = progress
        self.cancel_event = cancel_event or threading.Event()

        self._lock = threading.Lock()
        self._visited: Set[str] = set()
        self._entry_rows: Dict[str, EntryRow] = {}
        self._asset_rows: Dict[str, AssetRow] = {}
        self._pending_assets: Set[str] = set()
        self._next_wave: List[Tuple[str, int]] = []
        self._target_tag_ids: List[str] = []

        self.stats = {'visited': 0, 'unreachable': 0, 'excluded': 0, 'pruned_at_depth': 0, 'waves': 0}

    @property
    def cancelled(self) -> bool:
        return self.cancel_event.is_set()

    def crawl(self, roots: Iterable[str], target_tag_ids: Iterable[str]) -> Inventory:
        """
        Crawl from roots and classify every reachable entry and asset

        Args:
            roots: Root entry ids (depth 0)
            target_tag_ids: Tags the rows are compared against

        Returns:
            Inventory with one row per visited entry and discovered asset

        Raises:
            CrawlAbortedError: On failures that affect every call (bad
                credentials, lost connectivity)
        """
        roots = list(dict.fromkeys(r for r in roots if r))
        self._target_tag_ids = list(dict.fromkeys(target_tag_ids))

        logger.info(f"Starting crawl from {len(roots)} root(s), max depth {self.config.max_depth}")

        frontier: List[Tuple[str, int]] = [(root_id, 0) for root_id in roots]

        while frontier and not self.cancelled:
            wave = self._build_wave(frontier)
            if not wave:
                break

            self.stats['waves'] += 1
            self._next_wave = []

            wave_errors: List[BaseException] = []
            failures = run_pool(wave, self.config.concurrency,
                                lambda item: self._process_entry(item, wave_errors), name='crawl')
            self._check_wave(wave, failures, wave_errors)

            with self._lock:
                frontier = list(self._next_wave)

            log_traversal_progress(
                logger,
                depth=wave[0][1],
                wave_size=len(wave),
                visited=len(self._visited),
                unreachable=self.stats['unreachable'],
                queue_size=len(frontier)
            )
            emit(self.progress, 'crawl', len(self._visited), len(self._visited) + len(frontier),
                 f"Scanning descendants… ({len(self._visited)} entries)")

        if self.config.include_media and self._pending_assets and not self.cancelled:
            self._fetch_assets()

        inventory = Inventory(
            roots=roots,
            target_tag_ids=list(self._target_tag_ids),
            entries=dict(self._entry_rows),
            assets=dict(self._asset_rows),
            cancelled=self.cancelled
        )

        logger.info(f"Crawl finished: {len(inventory.entries)} entries, {len(inventory.assets)} assets, "
                    f"{self.stats['unreachable']} unreachable")
        return inventory

    def _build_wave(self, frontier: List[Tuple[str, int]]) -> List[Tuple[str, int]]:
        """Deduplicate the frontier and drop entries visited by earlier waves"""
        wave = []
        seen = set()
        for entry_id, depth in frontier:
            if entry_id in seen or entry_id in self._visited:
                continue
            seen.add(entry_id)
            wave.append((entry_id, depth))
        return wave

    def _check_wave(self, wave: List[Tuple[str, int]], failures: List[PoolFailure],
                    wave_errors: List[BaseException]):
        """Escalate failures that cannot be blamed on a single entry"""
        if failures:
            error = failures[0].error
            raise CrawlAbortedError(f"Crawl aborted: {error}") from error

        if wave and len(wave_errors) == len(wave) and \
                all(isinstance(e, ConnectivityError) for e in wave_errors):
            raise CrawlAbortedError(
                f"Crawl aborted: all {len(wave)} entries of the wave failed to connect"
            ) from wave_errors[0]

    def _classify(self, content_type: str) -> ExcludedReason:
        if self.config.is_location(content_type):
            return ExcludedReason.LOCATION
        if content_type in self.config.excluded_content_types:
            return ExcludedReason.EXCLUDED_TYPE
        return ExcludedReason.NONE

    def _process_entry(self, item: Tuple[str, int], wave_errors: List[BaseException]):
        """Fetch, classify and record one entry, then queue its children"""
        entry_id, depth = item

        with self._lock:
            if self.cancelled or entry_id in self._visited:
                return
            self._visited.add(entry_id)

        try:
            entry = self.client.get_entry(entry_id)
        except AuthenticationError:
            raise
        except ITEM_ERRORS as e:
            logger.warning(f"❌ Could not fetch entry {entry_id}: {e}")
            row = EntryRow(
                id=entry_id,
                content_type='unknown',
                title=entry_id,
                missing_tag_ids=list(self._target_tag_ids),
                depth=depth,
                unreachable=True,
                error=str(e)
            )
            with self._lock:
                wave_errors.append(e)
                if not self.cancelled:
                    self._entry_rows[entry_id] = row
                    self.stats['unreachable'] += 1
            return

        reason = self._classify(entry.content_type)
        excluded = reason is not ExcludedReason.NONE

        row = EntryRow(
            id=entry_id,
            content_type=entry.content_type,
            title=entry.title(self.locale),
            excluded=excluded,
            excluded_reason=reason,
            existing_tag_ids=list(entry.tag_ids),
            missing_tag_ids=[] if excluded else missing_tags(self._target_tag_ids, entry.tag_ids),
            depth=depth,
            published=entry.is_published
        )

        # Excluded entries and entries at the depth limit are reported but not expanded
        links = None
        if excluded:
            logger.debug(f"Entry {entry_id} ({entry.content_type}) is excluded: {reason.value}")
        elif depth >= self.config.max_depth:
            logger.debug(f"Entry {entry_id} reached max depth {self.config.max_depth}")
        else:
            links = self._extract_entry_links(entry)

        with self._lock:
            if self.cancelled:
                return
            self._entry_rows[entry_id] = row
            self.stats['visited'] += 1
            if excluded:
                self.stats['excluded'] += 1
            elif links is None:
                self.stats['pruned_at_depth'] += 1

            if links is not None:
                for child_id in links.entry_ids:
                    if child_id not in self._visited:
                        self._next_wave.append((child_id, depth + 1))
                if self.config.include_media:
                    self._pending_assets |= links.asset_ids

    def _extract_entry_links(self, entry: Entry) -> ExtractedLinks:
        out = ExtractedLinks()
        for field_id in entry.fields:
            extract_links(entry.localized(field_id, self.locale), out)
        return out

    def _fetch_assets(self):
        """Fetch every pending asset and record one row per asset"""
        asset_ids = sorted(self._pending_assets)
        total = len(asset_ids)
        done = [0]
        asset_errors: List[BaseException] = []

        emit(self.progress, 'assets', 0, total, f"Loading media (0/{total})…")

        def worker(asset_id: str):
            try:
                row = self._asset_row(asset_id)
            except AuthenticationError:
                raise
            except ITEM_ERRORS as e:
                logger.warning(f"❌ Could not fetch asset {asset_id}: {e}")
                with self._lock:
                    asset_errors.append(e)
                row = AssetRow(
                    id=asset_id,
                    title=asset_id,
                    missing_tag_ids=list(self._target_tag_ids),
                    unreachable=True,
                    error=str(e)
                )

            with self._lock:
                if self.cancelled:
                    return
                self._asset_rows[asset_id] = row
                if row.unreachable:
                    self.stats['unreachable'] += 1
                done[0] += 1
                processed = done[0]
            emit(self.progress, 'assets', processed, total, f"Loading media ({processed}/{total})…")

        failures = run_pool(asset_ids, self.config.concurrency, worker, name='assets')
        self._check_wave([(asset_id, 0) for asset_id in asset_ids], failures, asset_errors)

    def _asset_row(self, asset_id: str) -> AssetRow:
        asset = self.client.get_asset(asset_id)
        return AssetRow(
            id=asset_id,
            title=asset.title(self.locale),
            existing_tag_ids=list(asset.tag_ids),
            missing_tag_ids=missing_tags(self._target_tag_ids, asset.tag_ids),
            published=asset.is_published,
            preview_url=asset.url(self.locale)
        )
