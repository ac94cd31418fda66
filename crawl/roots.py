"""
Root resolution: which entries a crawl starts from

Direct mode starts from the entry in context. Anchor mode starts from every
root-type entry that links to an anchor (a location) through one of the
configured link fields.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from cma.client import ContentManagementClient, UnknownFieldError, ITEM_ERRORS
from cma.models import Entry

from .config import CrawlConfig
from .links import ExtractedLinks, extract_links
from .tags import unique

logger = logging.getLogger(__name__)

QUERY_PAGE_SIZE = 100
LOCATION_TAG_FIELD = 'tag'


@dataclass
class RootResolution:
    """Crawl frontier and how it was found"""
    root_ids: List[str] = field(default_factory=list)
    per_content_type: Dict[str, int] = field(default_factory=dict)
    per_anchor: Dict[str, Dict[str, object]] = field(default_factory=dict)

    @property
    def count(self) -> int:
        return len(self.root_ids)


@dataclass
class LocationContext:
    """Locations an entry belongs to and the tag names they carry"""
    location_ids: List[str] = field(default_factory=list)
    location_tags: List[str] = field(default_factory=list)
    warning: Optional[str] = None
    is_location_entry: bool = False


def direct_roots(entry: Entry) -> RootResolution:
    """Frontier made of exactly the entry in context"""
    return RootResolution(
        root_ids=[entry.id],
        per_content_type={entry.content_type or 'currentEntry': 1}
    )


def find_roots_for_anchor(client: ContentManagementClient, anchor_id: str,
                          config: CrawlConfig, page_size: int = QUERY_PAGE_SIZE) -> RootResolution:
    """
    Find every root-type entry linking to anchor_id

    Each (content type, link field) pair is paged through separately. A
    field that does not exist on a content type counts as zero matches;
    every other query failure propagates.

    Args:
        client: Repository client
        anchor_id: Id of the anchor (location) entry
        config: Supplies root content types and candidate link fields
        page_size: Query page size

    Returns:
        RootResolution with the deduplicated union of roots and per-type counts
    """
    root_ids: List[str] = []
    seen = set()
    per_content_type: Dict[str, int] = {}

    for content_type in config.root_content_types:
        type_ids = set()

        for field_id in config.location_link_field_ids:
            skip = 0
            while True:
                try:
                    page = client.query_entries(
                        content_type,
                        {f'fields.{field_id}.sys.id': anchor_id},
                        limit=page_size,
                        skip=skip
                    )
                except UnknownFieldError:
                    logger.debug(f"Content type {content_type} has no field '{field_id}', skipping")
                    break

                for entry in page:
                    if not entry.id:
                        continue
                    type_ids.add(entry.id)
                    if entry.id not in seen:
                        seen.add(entry.id)
                        root_ids.append(entry.id)

                if len(page) < page_size:
                    break
                skip += page_size

        per_content_type[content_type] = len(type_ids)

    logger.info(f"Found {len(root_ids)} root entries linking to {anchor_id}: {per_content_type}")
    return RootResolution(root_ids=root_ids, per_content_type=per_content_type)


def find_roots_for_anchors(client: ContentManagementClient, anchor_ids: List[str],
                           config: CrawlConfig) -> RootResolution:
    """Union of find_roots_for_anchor over several anchors, with per-anchor breakdown"""
    combined = RootResolution()
    seen = set()

    for anchor_id in unique(anchor_ids):
        resolution = find_roots_for_anchor(client, anchor_id, config)
        combined.per_anchor[anchor_id] = {
            'count': resolution.count,
            'breakdown': dict(resolution.per_content_type)
        }

        for root_id in resolution.root_ids:
            if root_id not in seen:
                seen.add(root_id)
                combined.root_ids.append(root_id)
        for content_type, count in resolution.per_content_type.items():
            combined.per_content_type[content_type] = combined.per_content_type.get(content_type, 0) + count

    return combined


def resolve_location_context(client: ContentManagementClient, entry: Entry,
                             config: CrawlConfig, locale: str) -> LocationContext:
    """
    Work out which location(s) an entry belongs to

    A location entry with a tag value is its own context. Any other entry is
    placed by the entries linked from its location link fields; each of
    those is fetched and its tag value read. Linked entries that are not
    locations simply have no tag value and are reported in the warning.
    """
    direct_tag = entry.localized(LOCATION_TAG_FIELD, locale)
    if config.is_location(entry.content_type) and isinstance(direct_tag, str) and direct_tag.strip():
        return LocationContext(
            location_ids=[entry.id],
            location_tags=[direct_tag],
            is_location_entry=True
        )

    found = ExtractedLinks()
    for field_id in config.location_link_field_ids:
        value = entry.localized(field_id, locale)
        if value is not None:
            extract_links(value, found)

    location_ids = sorted(found.entry_ids)
    if not location_ids:
        return LocationContext(
            warning='No linked Location found on this entry. Target tags can only be derived from a Location.'
        )

    tags: List[str] = []
    not_found: List[str] = []
    for location_id in location_ids:
        try:
            location = client.get_entry(location_id)
        except ITEM_ERRORS as e:
            logger.warning(f"Could not load linked location {location_id}: {e}")
            not_found.append(location_id)
            continue

        value = location.localized(LOCATION_TAG_FIELD, locale)
        if isinstance(value, str) and value.strip():
            tags.append(value)
        else:
            not_found.append(location_id)

    warning = None
    if not_found:
        warning = f"Some linked Locations do not have a Tag value (or could not be loaded): {', '.join(not_found)}"

    return LocationContext(location_ids=location_ids, location_tags=unique(tags), warning=warning)
