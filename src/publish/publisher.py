"""
Site publisher: full rebuild of the published document set.

Renders every document under the source directory to
``{output_dir}/{slug}/index.html`` and writes a root ``index.html``
listing them. The rebuild always starts from a fresh directory scan, so
calling it twice produces the same output as calling it once.

A document that fails to parse is logged and skipped; the rest of the
set is still published. Only an output directory that cannot be written
aborts the rebuild (PublishError).
"""

import html
import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from blogwatch.errors import PublishError
from publish.documents import (
    Document,
    load_document,
    render_document_html,
    scan_documents,
)
from watcher.watcher import normalize_extensions

logger = logging.getLogger(__name__)

MANIFEST_FILENAME = ".published.json"

PAGE_TEMPLATE = """<!DOCTYPE html>
<html>
<head>
<meta charset="utf-8">
<title>{title}</title>
<link rel="canonical" href="{url}">{webmention_link}
</head>
<body>
<article class="h-entry">
<h1 class="p-name">{title}</h1>
<div class="e-content">
{content}
</div>
<a class="u-url" href="{url}">Permalink</a>
</article>
</body>
</html>
"""

INDEX_TEMPLATE = """<!DOCTYPE html>
<html>
<head>
<meta charset="utf-8">
<title>{title}</title>{webmention_link}
</head>
<body>
<h1>{title}</h1>
<ul>
{items}
</ul>
</body>
</html>
"""


@dataclass
class PublishResult:
    """Outcome of one rebuild.

    Attributes:
        published: Documents written to the output directory
        failed: Source paths that could not be published, with the error
    """
    published: List[Document] = field(default_factory=list)
    failed: Dict[Path, str] = field(default_factory=dict)


class SitePublisher:
    """Renders the source directory into the output directory."""

    def __init__(
        self,
        source_dir,
        output_dir,
        site_url: str,
        site_title: str = "",
        extensions=None,
        webmention_endpoint: Optional[str] = None,
    ):
        self.source_dir = Path(source_dir)
        self.output_dir = Path(output_dir)
        self.site_url = site_url.rstrip("/")
        self.site_title = site_title or self.site_url
        self.extensions = normalize_extensions(extensions)
        self.webmention_endpoint = webmention_endpoint
        self._document_paths: Optional[List[Path]] = None

    @classmethod
    def from_config(cls, config: Dict[str, Any]) -> "SitePublisher":
        receiver = config.get("webmention_receiver", {})
        endpoint = receiver.get("endpoint_url")
        if not endpoint and receiver.get("enabled"):
            endpoint = f"{config['site']['url'].rstrip('/')}/"
        return cls(
            config["paths"]["source_dir"],
            config["paths"]["output_dir"],
            config["site"]["url"],
            site_title=config["site"].get("title", ""),
            extensions=config.get("watch", {}).get("extensions"),
            webmention_endpoint=endpoint,
        )

    def document_paths(self) -> List[Path]:
        """Cached list of source documents; ``clear_cache`` forces a rescan."""
        if self._document_paths is None:
            self._document_paths = scan_documents(self.source_dir, self.extensions)
        return list(self._document_paths)

    def clear_cache(self) -> None:
        self._document_paths = None

    def _webmention_link(self) -> str:
        if not self.webmention_endpoint:
            return ""
        return f'\n<link rel="webmention" href="{html.escape(self.webmention_endpoint)}">'

    def render_page(self, document: Document) -> str:
        return PAGE_TEMPLATE.format(
            title=html.escape(document.title),
            url=html.escape(document.url),
            content=render_document_html(document),
            webmention_link=self._webmention_link(),
        )

    def render_index(self, documents: List[Document]) -> str:
        items = "\n".join(
            f'<li><a href="{html.escape(doc.url)}">{html.escape(doc.title)}</a></li>'
            for doc in documents
        )
        return INDEX_TEMPLATE.format(
            title=html.escape(self.site_title),
            items=items,
            webmention_link=self._webmention_link(),
        )

    def _write(self, path: Path, content: str) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = path.with_name(f".{path.name}.tmp")
        tmp_path.write_text(content, encoding="utf-8")
        tmp_path.replace(path)

    def _read_manifest(self) -> List[str]:
        manifest = self.output_dir / MANIFEST_FILENAME
        try:
            slugs = json.loads(manifest.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return []
        except (OSError, ValueError) as e:
            logger.warning(f"Ignoring unreadable publish manifest {manifest}: {e}")
            return []
        return [s for s in slugs if isinstance(s, str)] if isinstance(slugs, list) else []

    def _prune(self, previous: List[str], current: set) -> None:
        """Remove pages of documents published last time but gone now."""
        output_root = self.output_dir.resolve()
        for slug in previous:
            if slug in current:
                continue
            page_dir = (self.output_dir / slug).resolve()
            if not page_dir.is_relative_to(output_root) or page_dir == output_root:
                continue
            try:
                (page_dir / "index.html").unlink(missing_ok=True)
                # Drop now-empty directories up to the output root
                while page_dir != output_root and page_dir.is_dir() and not any(page_dir.iterdir()):
                    page_dir.rmdir()
                    page_dir = page_dir.parent
            except OSError as e:
                logger.warning(f"Failed to remove stale page for {slug}: {e}")
                continue
            logger.info(f"Removed stale page: {slug}")

    def rebuild(self) -> PublishResult:
        """Publish every document from a fresh scan of the source directory.

        Raises:
            PublishError: If the output directory cannot be created or written
        """
        self.clear_cache()
        try:
            self.output_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise PublishError(f"Cannot create output directory {self.output_dir}: {e}") from e

        result = PublishResult()
        for path in self.document_paths():
            try:
                document = load_document(path, self.source_dir, self.site_url)
            except (OSError, ValueError, yaml.YAMLError) as e:
                logger.error(f"Failed to parse document {path}: {e}")
                result.failed[path] = str(e)
                continue

            if document.draft:
                logger.debug(f"Skipping draft {path}")
                continue

            try:
                self._write(self.output_dir / document.slug / "index.html", self.render_page(document))
            except PermissionError as e:
                raise PublishError(f"Cannot write to {self.output_dir}: {e}") from e
            except OSError as e:
                logger.error(f"Failed to publish {path}: {e}")
                result.failed[path] = str(e)
                continue

            result.published.append(document)

        try:
            self._write(self.output_dir / "index.html", self.render_index(result.published))
        except OSError as e:
            raise PublishError(f"Cannot write site index to {self.output_dir}: {e}") from e

        slugs = sorted(doc.slug for doc in result.published)
        self._prune(self._read_manifest(), set(slugs))
        try:
            self._write(self.output_dir / MANIFEST_FILENAME, json.dumps(slugs, indent=2))
        except OSError as e:
            logger.warning(f"Failed to write publish manifest: {e}")

        logger.info(
            f"Rebuild complete: {len(result.published)} published, {len(result.failed)} failed"
        )
        return result
