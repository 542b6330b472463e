"""Persistence layer: document store, relational log sink and secrets."""

from .documents import (
    DEFAULT_DATABASE,
    PHOTOS_COLLECTION,
    TAGS_COLLECTION,
    MetadataStore,
    build_tag_filter,
)
from .log_sink import (
    Base,
    LogSink,
    LogSinkHandler,
    ResourceAccessRow,
    SiteLogRow,
    init_db,
    install_log_sink,
    session_factory,
)
from .secrets import (
    RedisSecretsProvider,
    SecretsProvider,
    photography_token_valid,
    site_credentials_valid,
)

__all__ = [
    "Base",
    "DEFAULT_DATABASE",
    "LogSink",
    "LogSinkHandler",
    "MetadataStore",
    "PHOTOS_COLLECTION",
    "RedisSecretsProvider",
    "ResourceAccessRow",
    "SecretsProvider",
    "SiteLogRow",
    "TAGS_COLLECTION",
    "build_tag_filter",
    "init_db",
    "install_log_sink",
    "photography_token_valid",
    "session_factory",
    "site_credentials_valid",
]
