"""
Data models for Content Management API responses
"""

from dataclasses import dataclass, field
from typing import List, Dict, Optional, Any
import copy


# Candidate fields for an entry's display title, in priority order
ENTRY_TITLE_FIELDS = ('internalName', 'title', 'name', 'headline')


@dataclass(frozen=True)
class SpaceContext:
    """Identity coordinates every repository call is parameterised with"""
    space_id: str
    environment_id: str = 'master'
    locale: str = 'en-US'


@dataclass(frozen=True)
class Link:
    """A typed reference to an entry or asset embedded inside entry fields"""
    link_type: str  # 'Entry' or 'Asset'
    id: str

    @classmethod
    def parse(cls, value: Any) -> Optional['Link']:
        """Return a Link if value is an Entry/Asset link node, None otherwise"""
        if not isinstance(value, dict):
            return None
        sys_value = value.get('sys')
        if not isinstance(sys_value, dict) or sys_value.get('type') != 'Link':
            return None
        link_type = sys_value.get('linkType')
        link_id = sys_value.get('id')
        if link_type not in ('Entry', 'Asset') or not isinstance(link_id, str) or not link_id:
            return None
        return cls(link_type=link_type, id=link_id)


def make_tag_link(tag_id: str) -> Dict[str, Any]:
    """Build the metadata link structure the API expects for a tag"""
    return {'sys': {'type': 'Link', 'linkType': 'Tag', 'id': tag_id}}


def get_localized_value(field_value: Any, locale: str) -> Any:
    """
    Resolve a localized field value ({locale: value})

    Falls back to the first available locale variant when the preferred
    locale is absent. Returns None for anything that is not a mapping.
    """
    if not isinstance(field_value, dict):
        return None
    if locale in field_value and field_value[locale] is not None:
        return field_value[locale]
    for value in field_value.values():
        return value
    return None


def _tag_ids_from_metadata(data: Dict[str, Any]) -> List[str]:
    metadata = data.get('metadata') or {}
    tags = metadata.get('tags')
    if not isinstance(tags, list):
        return []

    tag_ids = []
    for tag in tags:
        tag_id = (tag or {}).get('sys', {}).get('id') if isinstance(tag, dict) else None
        if isinstance(tag_id, str) and tag_id and tag_id not in tag_ids:
            tag_ids.append(tag_id)
    return tag_ids


@dataclass
class Entry:
    """Represents a single entry (structured record) in the repository"""

    id: str
    content_type: str
    version: Optional[int] = None
    published_version: Optional[int] = None
    tag_ids: List[str] = field(default_factory=list)
    fields: Dict[str, Any] = field(default_factory=dict)
    raw: Dict[str, Any] = field(default_factory=dict, repr=False)

    @property
    def is_published(self) -> bool:
        return bool(self.published_version)

    def localized(self, field_id: str, locale: str) -> Any:
        return get_localized_value(self.fields.get(field_id), locale)

    def title(self, locale: str) -> str:
        """Display title derived from the candidate title fields, else the id"""
        for field_id in ENTRY_TITLE_FIELDS:
            value = self.localized(field_id, locale)
            if isinstance(value, str) and value.strip():
                return value
        return self.id

    def with_tags(self, tag_ids: List[str]) -> Dict[str, Any]:
        """Full document for a replace-style update with the given tag set"""
        return _document_with_tags(self.raw, tag_ids)

    @classmethod
    def from_api_response(cls, data: Dict[str, Any]) -> 'Entry':
        """Create an Entry from a CMA entry document"""
        sys_data = data.get('sys') or {}
        content_type = ((sys_data.get('contentType') or {}).get('sys') or {}).get('id') or 'unknown'

        return cls(
            id=sys_data.get('id', ''),
            content_type=content_type,
            version=sys_data.get('version'),
            published_version=sys_data.get('publishedVersion'),
            tag_ids=_tag_ids_from_metadata(data),
            fields=data.get('fields') or {},
            raw=data
        )


@dataclass
class Asset:
    """Represents a single asset (binary media item) in the repository"""

    id: str
    version: Optional[int] = None
    published_version: Optional[int] = None
    tag_ids: List[str] = field(default_factory=list)
    fields: Dict[str, Any] = field(default_factory=dict)
    raw: Dict[str, Any] = field(default_factory=dict, repr=False)

    @property
    def is_published(self) -> bool:
        return bool(self.published_version)

    def file(self, locale: str) -> Dict[str, Any]:
        value = get_localized_value(self.fields.get('file'), locale)
        return value if isinstance(value, dict) else {}

    def title(self, locale: str) -> str:
        """Asset title, then the file name, then the id"""
        value = get_localized_value(self.fields.get('title'), locale)
        if isinstance(value, str) and value.strip():
            return value
        file_name = self.file(locale).get('fileName')
        if isinstance(file_name, str) and file_name.strip():
            return file_name
        return self.id

    def url(self, locale: str) -> Optional[str]:
        """Retrievable URL of the localized file; protocol-relative URLs get https"""
        url = self.file(locale).get('url')
        if not isinstance(url, str) or not url:
            return None
        if url.startswith('//'):
            return f"https:{url}"
        return url

    def with_tags(self, tag_ids: List[str]) -> Dict[str, Any]:
        return _document_with_tags(self.raw, tag_ids)

    @classmethod
    def from_api_response(cls, data: Dict[str, Any]) -> 'Asset':
        """Create an Asset from a CMA asset document"""
        sys_data = data.get('sys') or {}

        return cls(
            id=sys_data.get('id', ''),
            version=sys_data.get('version'),
            published_version=sys_data.get('publishedVersion'),
            tag_ids=_tag_ids_from_metadata(data),
            fields=data.get('fields') or {},
            raw=data
        )


@dataclass
class Tag:
    """Space-wide labelling entity"""
    id: str
    name: str

    @classmethod
    def from_api_response(cls, data: Dict[str, Any]) -> 'Tag':
        tag_id = (data.get('sys') or {}).get('id')
        name = data.get('name')
        return cls(
            id=tag_id if isinstance(tag_id, str) else '',
            name=name if isinstance(name, str) else ''
        )


def _document_with_tags(raw: Dict[str, Any], tag_ids: List[str]) -> Dict[str, Any]:
    """
    Copy of a raw document whose metadata.tags is the union of the existing
    tag links and tag_ids, keyed by tag id, existing order first
    """
    document = copy.deepcopy(raw)
    metadata = document.setdefault('metadata', {})
    existing = metadata.get('tags') if isinstance(metadata.get('tags'), list) else []

    merged = list(existing)
    present = {
        tag.get('sys', {}).get('id') for tag in existing if isinstance(tag, dict)
    }
    for tag_id in tag_ids:
        if tag_id not in present:
            merged.append(make_tag_link(tag_id))
            present.add(tag_id)

    metadata['tags'] = merged
    return document
