"""Storage providers for the two sides of a migration job."""

from otcsmigrate.migration.providers.base import (
    MIME_TYPES,
    StorageProvider,
    guess_mime_type,
    join_relative,
)
from otcsmigrate.migration.providers.local import LocalProvider
from otcsmigrate.migration.providers.remote import RemoteProvider

__all__ = [
    "LocalProvider",
    "MIME_TYPES",
    "RemoteProvider",
    "StorageProvider",
    "guess_mime_type",
    "join_relative",
]
