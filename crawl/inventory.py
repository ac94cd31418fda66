"""
Inventory produced by a crawl

One row per visited entry and per discovered asset, classified against the
exclusion rules and compared with the target tag set. The inventory is a
snapshot: the apply phase re-fetches every item before writing.
"""

import json
from dataclasses import dataclass, field, asdict
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional


class ExcludedReason(Enum):
    NONE = 'none'
    LOCATION = 'location'
    EXCLUDED_TYPE = 'excludedContentType'


def missing_tags(target_tag_ids: Iterable[str], existing_tag_ids: Iterable[str]) -> List[str]:
    """Target tag ids not present in existing_tag_ids, in target order"""
    existing = set(existing_tag_ids)
    return [tag_id for tag_id in target_tag_ids if tag_id not in existing]


@dataclass
class EntryRow:
    """Inventory row for one entry"""
    id: str
    content_type: str
    title: str
    excluded: bool = False
    excluded_reason: ExcludedReason = ExcludedReason.NONE
    existing_tag_ids: List[str] = field(default_factory=list)
    missing_tag_ids: List[str] = field(default_factory=list)
    depth: int = 0
    published: Optional[bool] = None
    unreachable: bool = False
    error: Optional[str] = None
    kind: str = 'Entry'

    @property
    def actionable(self) -> bool:
        return not self.excluded and bool(self.missing_tag_ids)

    @property
    def already_ok(self) -> bool:
        return not self.excluded and not self.unreachable and not self.missing_tag_ids

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data['excluded_reason'] = self.excluded_reason.value
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'EntryRow':
        data = dict(data)
        data['excluded_reason'] = ExcludedReason(data.get('excluded_reason', 'none'))
        return cls(**data)


@dataclass
class AssetRow:
    """Inventory row for one asset; assets are never excluded"""
    id: str
    title: str
    existing_tag_ids: List[str] = field(default_factory=list)
    missing_tag_ids: List[str] = field(default_factory=list)
    published: Optional[bool] = None
    preview_url: Optional[str] = None
    unreachable: bool = False
    error: Optional[str] = None
    excluded: bool = False
    kind: str = 'Asset'

    @property
    def actionable(self) -> bool:
        return not self.excluded and bool(self.missing_tag_ids)

    @property
    def already_ok(self) -> bool:
        return not self.excluded and not self.unreachable and not self.missing_tag_ids

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'AssetRow':
        return cls(**data)


@dataclass
class Inventory:
    """Classified result of a crawl"""
    roots: List[str] = field(default_factory=list)
    target_tag_ids: List[str] = field(default_factory=list)
    target_tags: List[Dict[str, str]] = field(default_factory=list)
    missing_target_tags_by_name: List[str] = field(default_factory=list)
    entries: Dict[str, EntryRow] = field(default_factory=dict)
    assets: Dict[str, AssetRow] = field(default_factory=dict)
    cancelled: bool = False

    def entry_rows(self) -> List[EntryRow]:
        """Entry rows sorted by content type, title and id"""
        return sorted(self.entries.values(), key=lambda r: (r.content_type, r.title, r.id))

    def asset_rows(self) -> List[AssetRow]:
        """Asset rows sorted by title and id"""
        return sorted(self.assets.values(), key=lambda r: (r.title, r.id))

    def actionable_entry_ids(self) -> List[str]:
        return [r.id for r in self.entry_rows() if r.actionable]

    def actionable_asset_ids(self) -> List[str]:
        return [r.id for r in self.asset_rows() if r.actionable]

    def counts(self) -> Dict[str, Dict[str, int]]:
        """Per-collection counts for presentation"""
        def tally(rows):
            rows = list(rows)
            return {
                'total': len(rows),
                'actionable': sum(1 for r in rows if r.actionable),
                'already_ok': sum(1 for r in rows if r.already_ok),
                'excluded': sum(1 for r in rows if r.excluded),
                'unreachable': sum(1 for r in rows if r.unreachable),
            }

        return {'entries': tally(self.entries.values()), 'assets': tally(self.assets.values())}

    @property
    def has_anything_to_apply(self) -> bool:
        return any(r.actionable for r in self.entries.values()) or \
            any(r.actionable for r in self.assets.values())

    def to_dict(self) -> Dict[str, Any]:
        return {
            'roots': list(self.roots),
            'target_tag_ids': list(self.target_tag_ids),
            'target_tags': list(self.target_tags),
            'missing_target_tags_by_name': list(self.missing_target_tags_by_name),
            'cancelled': self.cancelled,
            'entries': [row.to_dict() for row in self.entry_rows()],
            'assets': [row.to_dict() for row in self.asset_rows()],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Inventory':
        entries = [EntryRow.from_dict(row) for row in data.get('entries', [])]
        assets = [AssetRow.from_dict(row) for row in data.get('assets', [])]
        return cls(
            roots=list(data.get('roots', [])),
            target_tag_ids=list(data.get('target_tag_ids', [])),
            target_tags=list(data.get('target_tags', [])),
            missing_target_tags_by_name=list(data.get('missing_target_tags_by_name', [])),
            entries={row.id: row for row in entries},
            assets={row.id: row for row in assets},
            cancelled=bool(data.get('cancelled', False)),
        )

    def save(self, path: str):
        """Write the inventory as JSON so a later apply can pick it up"""
        target = Path(path)
        target.parent.mkdir(parents=True, exist_ok=True)
        with open(target, 'w', encoding='utf-8') as f:
            json.dump(self.to_dict(), f, indent=2, ensure_ascii=False)

    @classmethod
    def load(cls, path: str) -> 'Inventory':
        with open(path, 'r', encoding='utf-8') as f:
            return cls.from_dict(json.load(f))
