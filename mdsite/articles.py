from __future__ import annotations

import datetime as dt
import logging
import os
from pathlib import Path
from typing import Callable, Optional

from .cache import ArticleRow, CacheDb
from .content import RenderedArticle, render_markdown, slugify
from .files import SourceFile
from .git import Provenance
from .resources import register_resources, resolve_resources

logger = logging.getLogger(__name__)

Renderer = Callable[[str], RenderedArticle]


def article_server_path(created: dt.datetime, path: str | Path) -> str:
    return f"{created:%Y}/{created:%m}/{slugify(Path(path).stem)}/"


def is_up_to_date(cache: CacheDb, source: SourceFile, watermark: Optional[dt.datetime]) -> bool:
    """True when the article can be skipped.

    The check is against the newest on-disk time in the whole cache, not the
    file's own row, so it only needs one query per run. Files with no row yet
    are always built.
    """
    if watermark is None or source.modified() > watermark:
        return False
    existing = cache.articles.get_by_local_path(source.realpath())
    return existing.ok and existing.result is not None


def build_article(
    cache: CacheDb,
    source: SourceFile,
    root_dir: str | Path,
    watermark: Optional[dt.datetime],
    provenance: Provenance,
    renderer: Renderer = render_markdown,
) -> bool:
    """Render one article into the cache. Returns False when it was skipped.

    A failed rebuild leaves no row behind, so the article is not skipped as
    up to date on the next run.
    """
    if is_up_to_date(cache, source, watermark):
        logger.debug("Up to date: %s", source.path)
        return False

    realpath = source.realpath()
    try:
        created = provenance.created(source.path)
        modified = provenance.last_modified(source.path)
        rendered = renderer(source.read_text())
        server_path = article_server_path(created, source.path)
        resources = resolve_resources(
            rendered.body,
            local_dir=os.path.dirname(realpath),
            server_path=server_path,
            root_dir=root_dir,
        )
        # Surface storage errors as a failure of this article only.
        cache.articles.add(
            ArticleRow(
                local_path=realpath,
                server_path=server_path,
                created=created,
                modified=modified,
                modified_on_disk=source.modified(),
                html=rendered.body,
                hash="",
                title=rendered.title or None,
            )
        ).unwrap()
        register_resources(cache, resources)
    except Exception:
        removed = cache.articles.remove(realpath)
        if not removed.ok:
            logger.warning("Could not drop cached row for %s: %s", realpath, removed.error)
        raise
    logger.debug("Built %s -> %s", source.path, server_path)
    return True
