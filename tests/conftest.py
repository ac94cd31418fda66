"""Shared fixtures: an in-memory content repository standing in for the API."""

from __future__ import annotations

import copy
import threading
from typing import Any, Dict, List, Optional

import pytest

from cma.client import NotFoundError, UnknownFieldError, VersionConflictError
from cma.models import Asset, Entry, SpaceContext, Tag
from crawl.config import CrawlConfig

LOCALE = "en-US"


def entry_link(entry_id: str) -> Dict[str, Any]:
    return {"sys": {"type": "Link", "linkType": "Entry", "id": entry_id}}


def asset_link(asset_id: str) -> Dict[str, Any]:
    return {"sys": {"type": "Link", "linkType": "Asset", "id": asset_id}}


def tag_links(*tag_ids: str) -> List[Dict[str, Any]]:
    return [{"sys": {"type": "Link", "linkType": "Tag", "id": t}} for t in tag_ids]


def make_entry_doc(
    entry_id: str,
    content_type: str = "page",
    fields: Optional[Dict[str, Any]] = None,
    tags: Optional[List[str]] = None,
    published: bool = False,
    version: int = 1,
) -> Dict[str, Any]:
    """Build a CMA-shaped entry document; field values are wrapped in LOCALE."""
    sys_data: Dict[str, Any] = {
        "id": entry_id,
        "type": "Entry",
        "version": version,
        "contentType": {"sys": {"type": "Link", "linkType": "ContentType", "id": content_type}},
    }
    if published:
        sys_data["publishedVersion"] = version - 1 if version > 1 else 1
    return {
        "sys": sys_data,
        "metadata": {"tags": tag_links(*(tags or []))},
        "fields": {name: {LOCALE: value} for name, value in (fields or {}).items()},
    }


def make_asset_doc(
    asset_id: str,
    title: Optional[str] = None,
    file_name: str = "image.jpg",
    tags: Optional[List[str]] = None,
    published: bool = False,
    version: int = 1,
) -> Dict[str, Any]:
    sys_data: Dict[str, Any] = {"id": asset_id, "type": "Asset", "version": version}
    if published:
        sys_data["publishedVersion"] = 1
    fields: Dict[str, Any] = {
        "file": {LOCALE: {"fileName": file_name, "url": f"//images.example.com/{asset_id}/{file_name}"}}
    }
    if title is not None:
        fields["title"] = {LOCALE: title}
    return {"sys": sys_data, "metadata": {"tags": tag_links(*(tags or []))}, "fields": fields}


class FakeRepository:
    """Thread-safe in-memory stand-in for ContentManagementClient."""

    def __init__(self) -> None:
        self.entries: Dict[str, Dict[str, Any]] = {}
        self.assets: Dict[str, Dict[str, Any]] = {}
        self.tags: List[Tag] = []
        self.fail: Dict[str, Exception] = {}
        self.calls: List[tuple] = []
        self.query_results: Dict[tuple, List[str]] = {}
        self.unknown_fields: set = set()
        self.space = SpaceContext(space_id="space", locale=LOCALE)
        self._lock = threading.Lock()

    # --- setup helpers ---

    def add_entry(self, entry_id: str, **kwargs: Any) -> None:
        self.entries[entry_id] = make_entry_doc(entry_id, **kwargs)

    def add_asset(self, asset_id: str, **kwargs: Any) -> None:
        self.assets[asset_id] = make_asset_doc(asset_id, **kwargs)

    def _record(self, *call: Any) -> None:
        with self._lock:
            self.calls.append(call)

    def _maybe_fail(self, item_id: str) -> None:
        if item_id in self.fail:
            raise self.fail[item_id]

    def count(self, method: str) -> int:
        return sum(1 for c in self.calls if c[0] == method)

    # --- client interface ---

    def get_entry(self, entry_id: str) -> Entry:
        self._record("get_entry", entry_id)
        self._maybe_fail(entry_id)
        if entry_id not in self.entries:
            raise NotFoundError(f"Resource not found: {entry_id}")
        return Entry.from_api_response(copy.deepcopy(self.entries[entry_id]))

    def get_asset(self, asset_id: str) -> Asset:
        self._record("get_asset", asset_id)
        self._maybe_fail(asset_id)
        if asset_id not in self.assets:
            raise NotFoundError(f"Resource not found: {asset_id}")
        return Asset.from_api_response(copy.deepcopy(self.assets[asset_id]))

    def _update(self, store: Dict[str, Dict[str, Any]], item_id: str, document: Dict[str, Any], version: int):
        with self._lock:
            current = store[item_id]
            if current["sys"]["version"] != version:
                raise VersionConflictError(f"Version conflict on {item_id}")
            updated = copy.deepcopy(current)
            updated["fields"] = copy.deepcopy(document.get("fields", {}))
            updated["metadata"] = copy.deepcopy(document.get("metadata", {}))
            updated["sys"]["version"] = version + 1
            store[item_id] = updated
            return copy.deepcopy(updated)

    def _publish(self, store: Dict[str, Dict[str, Any]], item_id: str, version: int):
        with self._lock:
            current = store[item_id]
            if current["sys"]["version"] != version:
                raise VersionConflictError(f"Version conflict on {item_id}")
            current["sys"]["publishedVersion"] = version
            current["sys"]["version"] = version + 1
            return copy.deepcopy(current)

    def update_entry(self, entry_id: str, document: Dict[str, Any], version: int) -> Entry:
        self._record("update_entry", entry_id)
        return Entry.from_api_response(self._update(self.entries, entry_id, document, version))

    def publish_entry(self, entry_id: str, version: int) -> Entry:
        self._record("publish_entry", entry_id, version)
        return Entry.from_api_response(self._publish(self.entries, entry_id, version))

    def update_asset(self, asset_id: str, document: Dict[str, Any], version: int) -> Asset:
        self._record("update_asset", asset_id)
        return Asset.from_api_response(self._update(self.assets, asset_id, document, version))

    def publish_asset(self, asset_id: str, version: int) -> Asset:
        self._record("publish_asset", asset_id, version)
        return Asset.from_api_response(self._publish(self.assets, asset_id, version))

    def query_entries(self, content_type: str, filters: Optional[Dict[str, Any]] = None,
                      limit: int = 100, skip: int = 0) -> List[Entry]:
        filters = filters or {}
        self._record("query_entries", content_type, tuple(sorted(filters.items())), limit, skip)
        (key, anchor_id), = filters.items()
        field_id = key.split(".")[1]
        if (content_type, field_id) in self.unknown_fields:
            raise UnknownFieldError(f'No field with id "{field_id}" found')
        ids = self.query_results.get((content_type, field_id, anchor_id), [])
        return [Entry.from_api_response(make_entry_doc(i, content_type=content_type))
                for i in ids[skip:skip + limit]]

    def list_tags(self, limit: int = 100, skip: int = 0) -> List[Tag]:
        self._record("list_tags", limit, skip)
        return list(self.tags[skip:skip + limit])


@pytest.fixture
def repo() -> FakeRepository:
    """An empty fake repository."""
    return FakeRepository()


@pytest.fixture
def config() -> CrawlConfig:
    """Default crawl settings with a small worker count."""
    return CrawlConfig(concurrency=3, max_depth=5)
