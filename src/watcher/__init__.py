"""
Watcher Module for blogwatch.

Provides debounced filesystem watching of the document source directory.

Usage:
    >>> from watcher import ChangeSource
    >>> source = ChangeSource.from_config(config)
    >>> source.start()
"""

from watcher.watcher import (
    ChangeBatch,
    ChangeEvent,
    ChangeKind,
    ChangeSource,
    DocumentEventHandler,
    is_document_path,
    normalize_extensions,
)

__all__ = [
    "ChangeBatch",
    "ChangeEvent",
    "ChangeKind",
    "ChangeSource",
    "DocumentEventHandler",
    "is_document_path",
    "normalize_extensions",
]
