"""
Source documents and the published document index.

A document is a Markdown file under the source directory, optionally
starting with a YAML front matter block. Its published URL is derived
from its path relative to the source directory:

    content/notes/hello.md  ->  {site_url}/notes/hello/

The PublishedDocumentIndex maps those URLs back to documents so the
webmention receiver can check that a target is something this site
actually publishes. The index is rebuilt lazily: the watch loop bumps a
shared InvalidationSignal whenever documents change, and every index
(the receiver process has its own) rebuilds before the next lookup.
"""

import logging
import multiprocessing
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, FrozenSet, List, Optional, Tuple

import markdown
import yaml

from watcher.watcher import is_document_path, normalize_extensions

logger = logging.getLogger(__name__)

FRONT_MATTER_DELIMITER = "---"
MARKDOWN_EXTENSIONS = ["extra", "sane_lists"]


@dataclass
class Document:
    """A source document and where it is published.

    Attributes:
        path: Source file path
        slug: Path relative to the source directory, without extension
        url: Canonical published URL (always ends with a slash)
        title: Title from front matter, first heading, or the file name
        body: Markdown body without front matter
        metadata: Parsed front matter
    """
    path: Path
    slug: str
    url: str
    title: str
    body: str = ""
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def draft(self) -> bool:
        return bool(self.metadata.get("draft", False))


def normalize_url(url: str) -> str:
    """Canonical form used as the index key: lowercase scheme/host, no fragment or trailing slash."""
    url = url.strip().split("#", 1)[0]
    if "://" in url:
        scheme, rest = url.split("://", 1)
        host, sep, path = rest.partition("/")
        url = f"{scheme.lower()}://{host.lower()}{sep}{path}"
    return url.rstrip("/")


def document_slug(path: Path, source_dir: Path) -> str:
    relative = Path(path).resolve().relative_to(Path(source_dir).resolve())
    return relative.with_suffix("").as_posix()


def document_url(slug: str, site_url: str) -> str:
    return f"{site_url.rstrip('/')}/{slug}/"


def split_front_matter(text: str) -> Tuple[Dict[str, Any], str]:
    """Split a document into (front matter, body).

    Raises:
        yaml.YAMLError: If the front matter block is not valid YAML
    """
    text = text.lstrip("\ufeff")
    lines = text.splitlines()
    if not lines or lines[0].strip() != FRONT_MATTER_DELIMITER:
        return {}, text

    for i in range(1, len(lines)):
        if lines[i].strip() == FRONT_MATTER_DELIMITER:
            meta = yaml.safe_load("\n".join(lines[1:i])) or {}
            if not isinstance(meta, dict):
                meta = {}
            return meta, "\n".join(lines[i + 1:])

    return {}, text


def _extract_title(meta: Dict[str, Any], body: str, fallback: str) -> str:
    if meta.get("title"):
        return str(meta["title"])
    for line in body.splitlines():
        stripped = line.strip()
        if stripped.startswith("# "):
            return stripped[2:].strip() or fallback
        if stripped:
            break
    return fallback


def load_document(path, source_dir, site_url: str) -> Document:
    """Read and parse one source document.

    Raises:
        OSError: If the file cannot be read
        ValueError: If the file is outside the source directory
        yaml.YAMLError: If the front matter is malformed
    """
    path = Path(path)
    text = path.read_text(encoding="utf-8")
    meta, body = split_front_matter(text)
    slug = str(meta.get("slug") or document_slug(path, Path(source_dir))).strip("/")
    if not slug or any(part in ("", ".", "..") for part in slug.split("/")):
        raise ValueError(f"Invalid slug {slug!r} in {path}")
    return Document(
        path=path,
        slug=slug,
        url=document_url(slug, site_url),
        title=_extract_title(meta, body, path.stem),
        body=body,
        metadata=meta,
    )


def render_document_html(document: Document) -> str:
    """Render the Markdown body of a document to an HTML fragment."""
    return markdown.markdown(document.body, extensions=MARKDOWN_EXTENSIONS)


def scan_documents(source_dir, extensions: FrozenSet[str]) -> List[Path]:
    """List document files under ``source_dir`` in a stable order."""
    source_dir = Path(source_dir)
    if not source_dir.is_dir():
        return []
    return sorted(
        p for p in source_dir.rglob("*")
        if p.is_file()
        and is_document_path(p, extensions)
        and not any(part.startswith(".") for part in p.relative_to(source_dir).parts)
    )


class InvalidationSignal:
    """Generation counter shared between the watch loop and the receiver.

    The watch loop calls ``bump()`` whenever documents change; an index
    compares ``generation`` with the value it was built at. Backed by a
    ``multiprocessing.Value`` so it can be handed to the receiver process.
    """

    def __init__(self, value=None):
        self._value = value if value is not None else multiprocessing.Value("Q", 0)

    def bump(self) -> int:
        with self._value.get_lock():
            self._value.value += 1
            return self._value.value

    @property
    def generation(self) -> int:
        with self._value.get_lock():
            return self._value.value


class PublishedDocumentIndex:
    """Lazily rebuilt mapping from canonical URL to Document.

    All reads go through ``resolve``/``urls``, which check the shared
    generation and rebuild under the index lock before answering, so a
    lookup never runs against an index that is known to be stale.
    """

    def __init__(
        self,
        source_dir,
        site_url: str,
        extensions=None,
        signal: Optional[InvalidationSignal] = None,
    ):
        self.source_dir = Path(source_dir)
        self.site_url = site_url.rstrip("/")
        self.extensions = normalize_extensions(extensions)
        self.signal = signal or InvalidationSignal()
        self._lock = threading.RLock()
        self._documents: Dict[str, Document] = {}
        self._built_generation: Optional[int] = None

    @classmethod
    def from_config(cls, config, signal: Optional[InvalidationSignal] = None) -> "PublishedDocumentIndex":
        return cls(
            config["paths"]["source_dir"],
            config["site"]["url"],
            extensions=config.get("watch", {}).get("extensions"),
            signal=signal,
        )

    def invalidate(self) -> None:
        """Mark every index sharing this signal as stale."""
        generation = self.signal.bump()
        logger.debug(f"Document index invalidated (generation {generation})")

    @property
    def stale(self) -> bool:
        return self._built_generation != self.signal.generation

    def rebuild(self) -> int:
        """Rescan the source directory; returns the number of indexed documents."""
        with self._lock:
            generation = self.signal.generation
            documents: Dict[str, Document] = {}
            for path in scan_documents(self.source_dir, self.extensions):
                try:
                    document = load_document(path, self.source_dir, self.site_url)
                except (OSError, ValueError, yaml.YAMLError) as e:
                    logger.warning(f"Skipping unreadable document {path}: {e}")
                    continue
                if document.draft:
                    continue
                documents[normalize_url(document.url)] = document
            self._documents = documents
            self._built_generation = generation
            logger.info(f"Document index rebuilt: {len(documents)} document(s)")
            return len(documents)

    def _ensure_fresh(self) -> None:
        if self.stale:
            self.rebuild()

    def resolve(self, url: str) -> Optional[Document]:
        """Return the published document for ``url``, or None if unknown."""
        if not url:
            return None
        with self._lock:
            self._ensure_fresh()
            return self._documents.get(normalize_url(url))

    def urls(self) -> List[str]:
        with self._lock:
            self._ensure_fresh()
            return sorted(doc.url for doc in self._documents.values())

    def __contains__(self, url: str) -> bool:
        return self.resolve(url) is not None

    def __len__(self) -> int:
        with self._lock:
            self._ensure_fresh()
            return len(self._documents)
