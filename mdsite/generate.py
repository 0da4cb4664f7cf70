from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from .articles import Renderer, build_article
from .cache import CacheDb
from .content import render_markdown
from .errors import BuildFailure
from .files import SourceFile, canonical_dir, files_with_ext
from .git import GitProvenance, Provenance
from .output import Layout, remove_extra_output_files, write_output
from .utils import settle_all

logger = logging.getLogger(__name__)

DEFAULT_WORKERS = 16


@dataclass
class GenerateResult:
    built: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    failed_articles: list[BuildFailure] = field(default_factory=list)
    written_articles: list[str] = field(default_factory=list)
    written_resources: list[str] = field(default_factory=list)
    failed_resources: list[BuildFailure] = field(default_factory=list)
    removed_files: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failed_articles


def generate(
    cache: CacheDb,
    article_dir: str | Path,
    output_dir: str | Path,
    root_dir: Optional[str | Path] = None,
    clean_output: bool = False,
    layout: Optional[Layout] = None,
    workers: int = DEFAULT_WORKERS,
    provenance: Optional[Provenance] = None,
    renderer: Renderer = render_markdown,
) -> GenerateResult:
    """Build every Markdown file under ``article_dir`` and sync ``output_dir``.

    Articles that fail are reported in ``failed_articles`` and do not stop
    the others or the output step. A failing watermark query
    (``StoreError``) or an output path outside ``output_dir``
    (``PathSafetyError``) aborts the run.
    """
    provenance = provenance or GitProvenance()
    article_path = canonical_dir(article_dir)
    root_path = canonical_dir(root_dir) if root_dir is not None else article_path
    sources = [SourceFile(path) for path in files_with_ext(Path(article_path), "md")]
    logger.info("Found %d articles in %s", len(sources), article_path)

    removed = cache.articles.clean_non_existing(source.realpath() for source in sources).unwrap()
    if removed:
        logger.info("Dropped %d deleted articles from the cache", removed)

    watermark = cache.articles.get_max_modified_on_disk().unwrap()

    def build(source: SourceFile) -> bool:
        return build_article(cache, source, root_path, watermark, provenance, renderer)

    result = GenerateResult()
    for source, (rebuilt, error) in zip(sources, settle_all(build, sources, workers)):
        if error is not None:
            logger.warning("Failed to build %s: %s", source.path, error)
            result.failed_articles.append(BuildFailure(file=str(source.path), reason=str(error)))
        elif rebuilt:
            result.built.append(str(source.path))
        else:
            result.skipped.append(str(source.path))
    logger.info(
        "Built %d, skipped %d, failed %d articles",
        len(result.built),
        len(result.skipped),
        len(result.failed_articles),
    )

    os.makedirs(output_dir, exist_ok=True)
    written = write_output(cache, output_dir, root_path, layout=layout, workers=workers)
    result.written_articles = written.written_articles
    result.written_resources = written.written_resources
    result.failed_articles.extend(written.failed_articles)
    result.failed_resources = written.failed_resources

    if clean_output:
        result.removed_files = remove_extra_output_files(output_dir, written.written)
    return result
