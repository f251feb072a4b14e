"""
Publish Module for blogwatch.

Source documents, the published document index and the site publisher.

Usage:
    >>> from publish import PublishedDocumentIndex, SitePublisher
    >>> index = PublishedDocumentIndex.from_config(config)
    >>> SitePublisher.from_config(config).rebuild()
"""

from publish.documents import (
    Document,
    InvalidationSignal,
    PublishedDocumentIndex,
    load_document,
    normalize_url,
    render_document_html,
)
from publish.publisher import PublishResult, SitePublisher

__all__ = [
    "Document",
    "InvalidationSignal",
    "PublishedDocumentIndex",
    "load_document",
    "normalize_url",
    "render_document_html",
    "PublishResult",
    "SitePublisher",
]
