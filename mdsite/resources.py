"""Discover local files referenced from rendered HTML.

Every ``href`` and ``src`` attribute is inspected. References to files with an
extension are resolved on disk and registered in the cache so the output
writer can copy them next to the page that uses them.
"""

from __future__ import annotations

import html as html_lib
import logging
import os
import posixpath
import re
from dataclasses import replace
from pathlib import Path
from typing import Optional

from .cache import CacheDb, ResourceRow
from .errors import BuildFailure, ResourceError
from .files import SourceFile, is_inside

logger = logging.getLogger(__name__)

LINK_ATTR_RE = re.compile(r'(?:href|src)="(.*?)"', re.IGNORECASE)
SCHEME_RE = re.compile(r"^[a-zA-Z][a-zA-Z0-9+.\-]*:")
FILE_EXT_RE = re.compile(r"\.([^./]+)$")


def find_references(html_text: str) -> list[str]:
    return [html_lib.unescape(match.group(1)) for match in LINK_ATTR_RE.finditer(html_text)]


def has_file_extension(reference: str) -> bool:
    return FILE_EXT_RE.search(reference) is not None


def strip_query(reference: str) -> str:
    return re.split(r"[?#]", reference, maxsplit=1)[0]


def classify(reference: str) -> str:
    """One of ``external``, ``anchor``, ``root``, ``relative`` or ``article``."""
    if "://" in reference or SCHEME_RE.match(reference):
        return "external"
    if reference.startswith("#"):
        return "anchor"
    target = strip_query(reference)
    if not has_file_extension(target):
        # Links to other articles; nothing to copy.
        return "article"
    if reference.startswith("/"):
        return "root"
    return "relative"


def resolve_reference(
    reference: str, local_dir: str | Path, server_path: str, root_dir: str | Path
) -> Optional[ResourceRow]:
    kind = classify(reference)
    if kind not in {"root", "relative"}:
        return None
    target = strip_query(reference)
    if kind == "root":
        local = Path(root_dir) / target.lstrip("/")
        resource_path = posixpath.normpath(posixpath.join("/", target))
    else:
        local = Path(local_dir) / target
        resource_path = posixpath.normpath(posixpath.join(server_path, target))
    source = SourceFile(local)
    try:
        realpath = source.realpath()
        modified = source.modified()
    except OSError as exc:
        raise ResourceError(reference, f"{local}: {exc.strerror or exc}") from exc
    if kind == "root" and not is_inside(realpath, str(root_dir)):
        raise ResourceError(reference, f"{realpath} is outside the root directory {root_dir}")
    return ResourceRow(local_path=realpath, server_path=resource_path, modified_on_disk=modified)


def resolve_resources(
    html_text: str, local_dir: str | Path, server_path: str, root_dir: str | Path
) -> list[ResourceRow]:
    """Resolve every local file referenced by ``html_text`` without touching the cache.

    The first unresolved reference raises ``ResourceError``.
    """
    rows = []
    for reference in find_references(html_text):
        row = resolve_reference(reference, local_dir, server_path, root_dir)
        if row is not None:
            rows.append(row)
    return rows


def register_resources(cache: CacheDb, rows: list[ResourceRow]) -> list[ResourceRow]:
    registered = []
    for row in rows:
        added = cache.resources.add(row)
        if not added.ok:
            raise ResourceError(row.local_path, added.error or "")
        registered.append(replace(row, id=added.result))
    return registered


def extract_resources(
    cache: CacheDb,
    html_text: str,
    local_dir: str | Path,
    server_path: str,
    root_dir: str | Path,
    strict: bool = True,
) -> tuple[list[ResourceRow], list[BuildFailure]]:
    """Register every local file referenced by ``html_text``.

    With ``strict`` the first unresolved reference raises ``ResourceError``
    and nothing is registered. Otherwise each reference is handled on its
    own and the failures are returned alongside the registered rows.
    """
    if strict:
        rows = resolve_resources(html_text, local_dir, server_path, root_dir)
        return register_resources(cache, rows), []

    registered: list[ResourceRow] = []
    failures: list[BuildFailure] = []
    for reference in find_references(html_text):
        try:
            row = resolve_reference(reference, local_dir, server_path, root_dir)
            if row is None:
                continue
            registered.extend(register_resources(cache, [row]))
        except ResourceError as exc:
            logger.warning("Skipping resource %s referenced from %s: %s", reference, server_path, exc.reason)
            failures.append(BuildFailure(file=os.path.join(str(local_dir), reference), reason=str(exc)))
    return registered, failures
