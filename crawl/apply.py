"""
Bulk tag application

Adds the target tags to the selected entries and assets, optionally
republishing items that were published before the update. Every item is
committed on its own; a failing item is counted and never stops the rest.
A rejected token is the exception: it aborts the run before more items go out.
"""

import logging
import threading
from dataclasses import dataclass, field, asdict
from enum import Enum
from typing import Callable, Dict, Iterable, List, Optional

from cma.client import ContentManagementClient, AuthenticationError
from utils.logging_config import log_apply_progress

from .errors import NothingToApplyError
from .inventory import Inventory, missing_tags
from .pool import run_pool
from .progress import ProgressChannel, emit

logger = logging.getLogger(__name__)

APPLY_CONCURRENCY = 4


class ApplyState(Enum):
    IDLE = 'idle'
    PREPARING = 'preparing'
    UPDATING_ENTRIES = 'updating_entries'
    UPDATING_ASSETS = 'updating_assets'
    DONE = 'done'
    FAILED = 'failed'


@dataclass
class ApplyTally:
    """Outcome counts for one collection"""
    selected: int = 0
    updated: int = 0
    republished: int = 0
    skipped_excluded: int = 0
    skipped_already_ok: int = 0
    failed: int = 0

    def to_dict(self) -> Dict[str, int]:
        return asdict(self)


@dataclass
class ApplySummary:
    entries: ApplyTally = field(default_factory=ApplyTally)
    assets: ApplyTally = field(default_factory=ApplyTally)
    failed_ids: List[str] = field(default_factory=list)
    cancelled: bool = False

    @property
    def total_failed(self) -> int:
        return self.entries.failed + self.assets.failed

    def to_dict(self) -> Dict[str, object]:
        return {
            'entries': self.entries.to_dict(),
            'assets': self.assets.to_dict(),
            'failed_ids': list(self.failed_ids),
            'cancelled': self.cancelled
        }


class TagApplier:
    """
    Applies target tags to a selection taken from a crawl inventory

    The inventory only decides what is worth dispatching. Each dispatched
    item is fetched again before it is written, and that fresh state is
    what the update is computed from.
    """

    def __init__(self, client: ContentManagementClient,
                 concurrency: int = APPLY_CONCURRENCY,
                 progress: Optional[ProgressChannel] = None,
                 cancel_event: Optional[threading.Event] = None):
        self.client = client
        self.concurrency = concurrency
        self.progress = progress
        self.cancel_event = cancel_event or threading.Event()
        self.state = ApplyState.IDLE
        self._lock = threading.Lock()
        self._auth_error: Optional[AuthenticationError] = None

    @property
    def cancelled(self) -> bool:
        return self.cancel_event.is_set()

    def _set_state(self, state: ApplyState):
        logger.debug(f"Apply state {self.state.value} -> {state.value}")
        self.state = state

    def apply(self, inventory: Inventory,
              selected_entry_ids: Iterable[str],
              selected_asset_ids: Iterable[str],
              target_tag_ids: Iterable[str],
              preserve_publish_state: bool = True) -> ApplySummary:
        """
        Add target tags to the selected items

        Args:
            inventory: Inventory the selection was made from
            selected_entry_ids: Entries chosen by the operator
            selected_asset_ids: Assets chosen by the operator
            target_tag_ids: Tags to add
            preserve_publish_state: Republish items that were published

        Returns:
            ApplySummary with one tally per collection

        Raises:
            NothingToApplyError: No target tags or nothing selected; raised
                before any item is touched
            AuthenticationError: The token was rejected mid-run; items not
                yet dispatched are left untouched
        """
        target_tag_ids = list(dict.fromkeys(t for t in target_tag_ids if t))
        entry_ids = list(dict.fromkeys(i for i in selected_entry_ids if i))
        asset_ids = list(dict.fromkeys(i for i in selected_asset_ids if i))

        if not target_tag_ids:
            self._set_state(ApplyState.FAILED)
            raise NothingToApplyError("No valid tag ids were resolved. Nothing to apply.")
        if not entry_ids and not asset_ids:
            self._set_state(ApplyState.FAILED)
            raise NothingToApplyError("Nothing selected.")

        self._auth_error = None
        self._set_state(ApplyState.PREPARING)
        emit(self.progress, 'status', message='Preparing updates…')

        summary = ApplySummary()

        entry_actionable = self._partition(entry_ids, inventory.entries, summary.entries, 'entry')
        asset_actionable = self._partition(asset_ids, inventory.assets, summary.assets, 'asset')

        if not entry_actionable and not asset_actionable:
            emit(self.progress, 'status',
                 message='Nothing to update — all selected items already have the tag(s).')

        self._set_state(ApplyState.UPDATING_ENTRIES)
        if entry_actionable and not self.cancelled:
            self._run_collection('entries', entry_actionable, summary.entries, summary,
                                 self.client.get_entry, self.client.update_entry,
                                 self.client.publish_entry, target_tag_ids, preserve_publish_state)

        self._set_state(ApplyState.UPDATING_ASSETS)
        if asset_actionable and not self.cancelled:
            self._run_collection('assets', asset_actionable, summary.assets, summary,
                                 self.client.get_asset, self.client.update_asset,
                                 self.client.publish_asset, target_tag_ids, preserve_publish_state)

        summary.cancelled = self.cancelled
        self._set_state(ApplyState.DONE)
        emit(self.progress, 'status', message='Done.')
        return summary

    def _partition(self, ids: List[str], rows: Dict, tally: ApplyTally, label: str) -> List[str]:
        """Count non-actionable selections and return the ids worth dispatching"""
        actionable = []
        for item_id in ids:
            row = rows.get(item_id)
            if row is None:
                logger.warning(f"Selected {label} {item_id} is not in the inventory, ignoring it")
                continue

            tally.selected += 1
            if row.excluded:
                tally.skipped_excluded += 1
            elif not row.missing_tag_ids:
                tally.skipped_already_ok += 1
            else:
                actionable.append(item_id)
        return actionable

    def _run_collection(self, collection: str, ids: List[str], tally: ApplyTally,
                        summary: ApplySummary, fetch: Callable, update: Callable,
                        publish: Callable, target_tag_ids: List[str],
                        preserve_publish_state: bool):
        total = len(ids)
        processed = [0]
        label = 'content' if collection == 'entries' else 'media'
        emit(self.progress, collection, 0, total, f"Updating {label} (0/{total})…")

        def worker(item_id: str):
            if self.cancelled or self._auth_error is not None:
                return

            outcome = 'failed'
            try:
                outcome = self._tag_item(item_id, fetch, update, publish,
                                         target_tag_ids, preserve_publish_state)
            except AuthenticationError as e:
                logger.error(f"❌ Access denied while tagging {collection[:-1]} {item_id}, stopping: {e}")
                with self._lock:
                    if self._auth_error is None:
                        self._auth_error = e
                    tally.failed += 1
                    summary.failed_ids.append(item_id)
                return
            except Exception as e:
                logger.warning(f"❌ Failed to tag {collection[:-1]} {item_id}: {e}")

            with self._lock:
                if self.cancelled:
                    return
                if outcome == 'failed':
                    tally.failed += 1
                    summary.failed_ids.append(item_id)
                elif outcome == 'already_ok':
                    tally.skipped_already_ok += 1
                else:
                    tally.updated += 1
                    if outcome == 'republished':
                        tally.republished += 1
                processed[0] += 1
                done = processed[0]

            emit(self.progress, collection, done, total, f"Updating {label} ({done}/{total})…")

        run_pool(ids, self.concurrency, worker, name=f'apply-{collection}')
        log_apply_progress(logger, collection, tally.selected, tally.updated,
                           tally.republished, tally.failed)

        if self._auth_error is not None:
            self._set_state(ApplyState.FAILED)
            emit(self.progress, 'status', message='Access denied, apply stopped.')
            raise self._auth_error

    def _tag_item(self, item_id: str, fetch: Callable, update: Callable, publish: Callable,
                  target_tag_ids: List[str], preserve_publish_state: bool) -> str:
        """
        Fetch, merge tags, write, and optionally republish one item

        Returns:
            'already_ok', 'updated' or 'republished'
        """
        item = fetch(item_id)

        if not missing_tags(target_tag_ids, item.tag_ids):
            logger.debug(f"{item_id} already carries every target tag, not writing")
            return 'already_ok'

        was_published = item.is_published
        written = update(item_id, item.with_tags(target_tag_ids), item.version)

        if preserve_publish_state and was_published:
            publish(item_id, written.version)
            return 'republished'
        return 'updated'
