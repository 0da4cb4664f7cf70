from __future__ import annotations

import datetime as dt
from pathlib import Path

import pytest

from mdsite.cache import open_cache
from mdsite.errors import GitError

UTC = dt.timezone.utc


class FakeProvenance:
    """Provenance keyed by file name, standing in for git."""

    def __init__(self, dates: dict[str, tuple[dt.datetime, dt.datetime]]) -> None:
        self.dates = dates
        self.calls: list[str] = []

    def _lookup(self, path: Path) -> tuple[dt.datetime, dt.datetime]:
        name = Path(path).name
        self.calls.append(name)
        if name not in self.dates:
            raise GitError(f"no git history for {path}")
        return self.dates[name]

    def created(self, path: Path) -> dt.datetime:
        return self._lookup(path)[0]

    def last_modified(self, path: Path) -> dt.datetime:
        return self._lookup(path)[1]


POST01 = """---
title: Example post
date: 2020-09-06
---
# Example post

Lorem ipsum dolor sit amet.
"""

POST02 = """---
title: Second post
date: 2020-10-03
---
# Second post

Lorem ipsum dolor sit amet!

![Resource](res01.svg)
"""

SVG = b'<svg xmlns="http://www.w3.org/2000/svg" width="1" height="1"></svg>\n'


@pytest.fixture
def cache():
    db = open_cache(":memory:")
    yield db
    db.close()


@pytest.fixture
def provenance() -> FakeProvenance:
    return FakeProvenance(
        {
            "post01.md": (
                dt.datetime(2020, 9, 6, 22, 52, 10, tzinfo=UTC),
                dt.datetime(2020, 9, 6, 22, 52, 10, tzinfo=UTC),
            ),
            "post02.md": (
                dt.datetime(2020, 10, 3, 16, 31, 11, tzinfo=UTC),
                dt.datetime(2020, 10, 3, 16, 31, 11, tzinfo=UTC),
            ),
        }
    )


@pytest.fixture
def site(tmp_path: Path) -> Path:
    """Two articles, one referencing res01.svg, plus a root dir with a stylesheet."""
    articles = tmp_path / "articles"
    articles.mkdir()
    (articles / "post01.md").write_text(POST01, encoding="utf-8")
    (articles / "post02.md").write_text(POST02, encoding="utf-8")
    (articles / "res01.svg").write_bytes(SVG)
    root = tmp_path / "root"
    root.mkdir()
    (root / "style.css").write_text("body { margin: 0; }\n", encoding="utf-8")
    out = tmp_path / "out"
    out.mkdir()
    return tmp_path
