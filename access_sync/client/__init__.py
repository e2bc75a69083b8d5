"""Directory backends and the contract the connector depends on."""

from access_sync.client.base import DirectoryAPIError, DirectoryAuthenticationError, DirectoryClient
from access_sync.client.metabase import MetabaseClient

__all__ = [
    'DirectoryAPIError',
    'DirectoryAuthenticationError',
    'DirectoryClient',
    'MetabaseClient',
]
