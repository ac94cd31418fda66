"""
Content Management API client
Rate-limited access to entries, assets and tags of a content space
"""

from .client import ContentManagementClient
from .models import Entry, Asset, Tag, Link, SpaceContext

__all__ = ['ContentManagementClient', 'Entry', 'Asset', 'Tag', 'Link', 'SpaceContext']
