"""
Link-graph crawling and bulk tag application
"""

from .apply import TagApplier, ApplySummary, ApplyTally, ApplyState
from .config import CrawlConfig, TagMatchMode, load_crawl_config, load_space_context
from .errors import ConfigurationError, NothingToApplyError, CrawlAbortedError
from .inventory import Inventory, EntryRow, AssetRow, ExcludedReason
from .links import extract_links, ExtractedLinks
from .pool import run_pool
from .progress import ProgressChannel, ProgressEvent
from .scan import Scanner, ScanResult
from .tags import TagNameCache, TagResolution, resolve_tags
from .traversal import GraphTraverser

__all__ = [
    'TagApplier', 'ApplySummary', 'ApplyTally', 'ApplyState',
    'CrawlConfig', 'TagMatchMode', 'load_crawl_config', 'load_space_context',
    'ConfigurationError', 'NothingToApplyError', 'CrawlAbortedError',
    'Inventory', 'EntryRow', 'AssetRow', 'ExcludedReason',
    'extract_links', 'ExtractedLinks',
    'run_pool',
    'ProgressChannel', 'ProgressEvent',
    'Scanner', 'ScanResult',
    'TagNameCache', 'TagResolution', 'resolve_tags',
    'GraphTraverser',
]
