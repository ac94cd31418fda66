"""
Crawl configuration

Settings come from config.env / the process environment and can be
overridden per invocation. A CrawlConfig is immutable for the duration of
a run.
"""

import os
import re
from dataclasses import dataclass, replace
from enum import Enum
from typing import Iterable, List, Optional, Tuple, FrozenSet

from dotenv import load_dotenv

from cma.models import SpaceContext
from .errors import ConfigurationError

load_dotenv('config.env')

DEFAULT_ROOT_CONTENT_TYPES = 'pageHome,pageRegular,pageEvent,pageBlogArticle'
DEFAULT_LOCATION_LINK_FIELDS = 'location,locations'
LOCATION_CONTENT_TYPE = 'location'


class TagMatchMode(Enum):
    BY_NAME = 'name'
    BY_ID = 'id'

    @classmethod
    def parse(cls, value: str) -> 'TagMatchMode':
        try:
            return cls((value or 'name').strip().lower())
        except ValueError:
            raise ConfigurationError(f"Unknown tag match mode '{value}' (expected 'name' or 'id')")


def parse_csv(value: Optional[str]) -> List[str]:
    """Split a comma- or newline-separated setting into trimmed, non-empty items"""
    if not value:
        return []
    return [part.strip() for part in re.split(r'[\n,]', value) if part.strip()]


def _parse_bool(value: Optional[str], default: bool) -> bool:
    if value is None or value.strip() == '':
        return default
    lowered = value.strip().lower()
    if lowered in ('1', 'true', 'yes', 'on'):
        return True
    if lowered in ('0', 'false', 'no', 'off'):
        return False
    raise ConfigurationError(f"Expected a boolean, got '{value}'")


def _parse_int(name: str, value: Optional[str], default: int) -> int:
    if value is None or value.strip() == '':
        return default
    try:
        return int(value)
    except ValueError:
        raise ConfigurationError(f"{name} must be an integer, got '{value}'")


@dataclass(frozen=True)
class CrawlConfig:
    """Traversal and tagging settings for one run"""
    excluded_content_types: FrozenSet[str] = frozenset()
    include_media: bool = True
    max_depth: int = 15
    concurrency: int = 4
    root_content_types: Tuple[str, ...] = tuple(parse_csv(DEFAULT_ROOT_CONTENT_TYPES))
    location_link_field_ids: Tuple[str, ...] = tuple(parse_csv(DEFAULT_LOCATION_LINK_FIELDS))
    tag_match_mode: TagMatchMode = TagMatchMode.BY_NAME
    preserve_publish_state: bool = True
    location_content_type: str = LOCATION_CONTENT_TYPE

    def __post_init__(self):
        if self.max_depth < 0:
            raise ConfigurationError(f"max_depth must be >= 0, got {self.max_depth}")
        if self.concurrency < 1:
            raise ConfigurationError(f"concurrency must be >= 1, got {self.concurrency}")
        # Accept any iterable for the collection settings
        object.__setattr__(self, 'excluded_content_types', frozenset(self.excluded_content_types))
        object.__setattr__(self, 'root_content_types', tuple(self.root_content_types))
        object.__setattr__(self, 'location_link_field_ids', tuple(self.location_link_field_ids))

    def is_location(self, content_type: str) -> bool:
        return content_type == self.location_content_type

    def with_overrides(self, **overrides) -> 'CrawlConfig':
        """Copy with every non-None override applied"""
        changes = {key: value for key, value in overrides.items() if value is not None}
        return replace(self, **changes)


def load_crawl_config(**overrides) -> CrawlConfig:
    """
    Build a CrawlConfig from environment variables

    Keyword arguments override individual settings; None means "keep the
    environment value".
    """
    config = CrawlConfig(
        excluded_content_types=frozenset(parse_csv(os.getenv('EXCLUDED_CONTENT_TYPES'))),
        include_media=_parse_bool(os.getenv('INCLUDE_ASSETS'), True),
        max_depth=_parse_int('MAX_TRAVERSAL_DEPTH', os.getenv('MAX_TRAVERSAL_DEPTH'), 15),
        concurrency=_parse_int('REQUEST_CONCURRENCY', os.getenv('REQUEST_CONCURRENCY'), 4),
        root_content_types=tuple(parse_csv(os.getenv('ROOT_CONTENT_TYPES', DEFAULT_ROOT_CONTENT_TYPES))),
        location_link_field_ids=tuple(parse_csv(os.getenv('LOCATION_LINK_FIELD_IDS', DEFAULT_LOCATION_LINK_FIELDS))),
        tag_match_mode=TagMatchMode.parse(os.getenv('TAG_MATCH_MODE', 'name')),
        preserve_publish_state=_parse_bool(os.getenv('PRESERVE_PUBLISH_STATE'), True)
    )
    return config.with_overrides(**overrides)


def load_space_context(space_id: Optional[str] = None,
                       environment_id: Optional[str] = None,
                       locale: Optional[str] = None) -> SpaceContext:
    """Resolve the space/environment/locale every repository call is scoped to"""
    space_id = space_id or os.getenv('CONTENTFUL_SPACE_ID')
    if not space_id:
        raise ConfigurationError("No space configured (CONTENTFUL_SPACE_ID)")

    return SpaceContext(
        space_id=space_id,
        environment_id=environment_id or os.getenv('CONTENTFUL_ENVIRONMENT_ID', 'master'),
        locale=locale or os.getenv('CONTENTFUL_LOCALE', 'en-US')
    )


def merge_excluded(config: CrawlConfig, extra: Iterable[str]) -> CrawlConfig:
    """Copy of config with extra content types added to the exclusion set"""
    extra = [ct for ct in extra if ct]
    if not extra:
        return config
    return replace(config, excluded_content_types=config.excluded_content_types | frozenset(extra))
