"""
Record store layer for student context retrieval.

Provides the record store contract, in-memory and PostgreSQL implementations,
flag rule sources, async connection pooling and caching.
"""

from .store import (
    RecordStore,
    RecordStoreError,
    InMemoryRecordStore,
    FlagRuleSource,
    StaticFlagRuleSource,
    FileFlagRuleSource,
    load_record_bundle,
    parse_record_bundle,
)

from .connection import (
    DatabaseConfig,
    DatabasePool,
    DatabaseConnectionError,
    create_database_config,
)

from .queries import (
    PostgresRecordStore,
    create_postgres_store,
)

from .cache import NameIndexCache

__all__ = [
    # Store contract
    'RecordStore',
    'RecordStoreError',
    'InMemoryRecordStore',
    'FlagRuleSource',
    'StaticFlagRuleSource',
    'FileFlagRuleSource',
    'load_record_bundle',
    'parse_record_bundle',

    # Connection
    'DatabaseConfig',
    'DatabasePool',
    'DatabaseConnectionError',
    'create_database_config',

    # PostgreSQL store
    'PostgresRecordStore',
    'create_postgres_store',

    # Caching
    'NameIndexCache',
]
