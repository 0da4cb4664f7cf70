"""Write cached articles and resources into the output directory.

Articles are written first, then resources, so resources registered while
laying out articles are copied in the same run. With ``clean_output`` every
file in the output directory that was not written by the run is removed.
"""

from __future__ import annotations

import html
import logging
import os
import shutil
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Optional

from .cache import ArticleRow, CacheDb, ResourceRow
from .errors import BuildFailure, PathSafetyError
from .files import canonical_dir, is_inside, list_files
from .resources import extract_resources
from .utils import settle_all

logger = logging.getLogger(__name__)

Layout = Callable[[ArticleRow], str]


@dataclass
class WriteResult:
    written_articles: list[str] = field(default_factory=list)
    written_resources: list[str] = field(default_factory=list)
    failed_articles: list[BuildFailure] = field(default_factory=list)
    failed_resources: list[BuildFailure] = field(default_factory=list)

    @property
    def written(self) -> list[str]:
        return self.written_articles + self.written_resources


def render_template(template: str, **context: str) -> str:
    output = template
    late_keys = {"content"}
    for key, value in context.items():
        if key in late_keys:
            continue
        output = output.replace(f"{{{{{key}}}}}", value)
    # Substituted last so placeholders inside article HTML stay untouched.
    for key in late_keys:
        if key in context:
            output = output.replace(f"{{{{{key}}}}}", context[key])
    return output


def read_template(path: Path) -> str:
    return path.read_text(encoding="utf-8")


def write_text(path: Path, text: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")


class TemplateLayout:
    """Wraps article HTML in a page template with ``{{placeholder}}`` fields."""

    def __init__(self, template: str) -> None:
        self.template = template

    @classmethod
    def from_file(cls, path: Path) -> "TemplateLayout":
        return cls(read_template(path))

    def __call__(self, row: ArticleRow) -> str:
        return render_template(
            self.template,
            title=html.escape(row.title or ""),
            created=row.created.strftime("%Y-%m-%d"),
            modified=row.modified.strftime("%Y-%m-%d"),
            server_path=html.escape(row.server_path),
            content=row.html,
        )


def output_file_for(output_path: str, server_path: str, name: str = "") -> str:
    """Absolute output file for a server path, refusing paths that leave ``output_path``.

    ``output_path`` must be a canonical directory ending with a separator.
    """
    target = os.path.normpath(os.path.join(output_path, server_path.lstrip("/"), name))
    if not is_inside(target, output_path):
        raise PathSafetyError(target, output_path)
    return target


def write_output(
    cache: CacheDb,
    output_dir: str | Path,
    root_dir: str | Path,
    layout: Optional[Layout] = None,
    workers: int = 16,
) -> WriteResult:
    output_path = canonical_dir(output_dir)
    result = WriteResult()
    unsafe: list[PathSafetyError] = []

    def write_article(row: ArticleRow) -> tuple[str, str]:
        target = output_file_for(output_path, row.server_path, "index.html")
        page = layout(row) if layout else row.html
        write_text(Path(target), page)
        return target, page

    articles = cache.articles.get_all().unwrap()
    pages: list[tuple[ArticleRow, str]] = []
    for row, (written, error) in zip(articles, settle_all(write_article, articles, workers)):
        if isinstance(error, PathSafetyError):
            unsafe.append(error)
        elif error is not None:
            logger.warning("Failed to write %s: %s", row.local_path, error)
            result.failed_articles.append(BuildFailure(file=row.local_path, reason=str(error)))
        else:
            target, page = written
            result.written_articles.append(target)
            pages.append((row, page))

    # Pick up resources the layout adds (stylesheets, scripts) one article at
    # a time in local path order, so a shared file always lands in the same place.
    # A broken reference only loses that resource.
    for row, page in sorted(pages, key=lambda item: item[0].local_path):
        _, failures = extract_resources(
            cache,
            page,
            local_dir=os.path.dirname(row.local_path),
            server_path=row.server_path,
            root_dir=root_dir,
            strict=False,
        )
        result.failed_resources.extend(failures)

    def copy_resource(row: ResourceRow) -> str:
        target = output_file_for(output_path, row.server_path)
        Path(target).parent.mkdir(parents=True, exist_ok=True)
        shutil.copyfile(row.local_path, target)
        return target

    resources = cache.resources.get_all().unwrap()
    for row, (written, error) in zip(resources, settle_all(copy_resource, resources, workers)):
        if isinstance(error, PathSafetyError):
            unsafe.append(error)
        elif error is not None:
            logger.warning("Failed to copy %s: %s", row.local_path, error)
            result.failed_resources.append(BuildFailure(file=row.local_path, reason=str(error)))
        else:
            result.written_resources.append(written)

    if unsafe:
        raise unsafe[0]
    logger.info(
        "Wrote %d articles and %d resources to %s",
        len(result.written_articles),
        len(result.written_resources),
        output_path,
    )
    return result


def remove_extra_output_files(output_dir: str | Path, written_files: list[str]) -> list[str]:
    """Delete files under ``output_dir`` that are not in ``written_files``."""
    keep = set(written_files)
    extra = sorted(str(path) for path in list_files(Path(canonical_dir(output_dir))) if str(path) not in keep)
    for path in extra:
        try:
            os.remove(path)
        except FileNotFoundError:
            pass
    if extra:
        logger.info("Removed %d stale output files", len(extra))
    return extra
