# src/fxpad/adapters/persistence/__init__.py
"""
Persistence Adapters - Data Storage

This package contains adapters for persisting data:
- File-based key-value storage (JSON)
- In-memory key-value storage (headless runs and tests)
"""

from fxpad.adapters.persistence.key_value_store import (
    InMemoryStore,
    JsonFileStore,
    KeyValueStore,
    read_json,
    write_json,
)

__all__ = [
    "InMemoryStore",
    "JsonFileStore",
    "KeyValueStore",
    "read_json",
    "write_json",
]
