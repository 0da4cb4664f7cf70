from __future__ import annotations

import datetime as dt
import os
from pathlib import Path

import pytest

from mdsite.cache import ArticleRow, CacheDb, ResourceRow
from mdsite.errors import PathSafetyError
from mdsite.files import canonical_dir
from mdsite.output import TemplateLayout, output_file_for, remove_extra_output_files, write_output

UTC = dt.timezone.utc
WHEN = dt.datetime(2020, 10, 3, tzinfo=UTC)


def add_article(cache: CacheDb, local_path: str, server_path: str, html: str = "<p>hi</p>") -> None:
    cache.articles.add(
        ArticleRow(
            local_path=local_path,
            server_path=server_path,
            created=WHEN,
            modified=WHEN,
            modified_on_disk=WHEN,
            html=html,
            title="Hello & welcome",
        )
    ).unwrap()


def test_output_file_for(tmp_path: Path) -> None:
    out = canonical_dir(tmp_path)
    assert output_file_for(out, "2020/10/post/", "index.html") == os.path.join(out, "2020", "10", "post", "index.html")
    assert output_file_for(out, "/style.css") == os.path.join(out, "style.css")
    with pytest.raises(PathSafetyError):
        output_file_for(out, "../escape/", "index.html")
    with pytest.raises(PathSafetyError):
        output_file_for(out, "2020/../../escape.css")


def test_escaping_server_path_aborts_write(cache: CacheDb, tmp_path: Path) -> None:
    out = tmp_path / "out"
    out.mkdir()
    add_article(cache, str(tmp_path / "good.md"), "2020/10/good/")
    add_article(cache, str(tmp_path / "evil.md"), "../../escape/")

    with pytest.raises(PathSafetyError):
        write_output(cache, out, tmp_path)
    assert not (tmp_path.parent / "escape").exists()
    assert not (tmp_path / "escape").exists()


def test_write_output_articles_and_resources(cache: CacheDb, site: Path) -> None:
    article = site / "articles" / "post02.md"
    add_article(cache, str(article), "2020/10/post02/")
    cache.resources.add(
        ResourceRow(local_path=str(site / "articles" / "res01.svg"), server_path="2020/10/post02/res01.svg", modified_on_disk=WHEN)
    ).unwrap()
    layout = TemplateLayout('<html><head><link href="/style.css" /><title>{{title}}</title></head><body>{{content}}</body></html>')

    result = write_output(cache, site / "out", site / "root", layout=layout)

    page = (site / "out" / "2020" / "10" / "post02" / "index.html").read_text(encoding="utf-8")
    assert "<title>Hello &amp; welcome</title>" in page
    assert "<body><p>hi</p></body>" in page
    assert (site / "out" / "2020" / "10" / "post02" / "res01.svg").read_bytes() == (site / "articles" / "res01.svg").read_bytes()
    # Registered from the layout during the article phase, copied in the resource phase.
    assert (site / "out" / "style.css").exists()
    assert len(result.written_articles) == 1
    assert len(result.written_resources) == 2
    assert result.failed_resources == []


def test_broken_layout_resource_does_not_fail_article(cache: CacheDb, site: Path) -> None:
    add_article(cache, str(site / "articles" / "post01.md"), "2020/09/post01/")
    result = write_output(
        cache, site / "out", site / "root", layout=lambda row: f'<script src="/missing.js"></script>{row.html}'
    )
    assert result.failed_articles == []
    assert len(result.failed_resources) == 1
    assert (site / "out" / "2020" / "09" / "post01" / "index.html").exists()


def test_missing_resource_source_is_reported(cache: CacheDb, site: Path) -> None:
    cache.resources.add(
        ResourceRow(local_path=str(site / "gone.png"), server_path="gone.png", modified_on_disk=WHEN)
    ).unwrap()
    result = write_output(cache, site / "out", site / "root")
    assert [Path(f.file).name for f in result.failed_resources] == ["gone.png"]
    assert result.written_resources == []


def test_remove_extra_output_files(tmp_path: Path) -> None:
    keep = tmp_path / "a" / "index.html"
    keep.parent.mkdir()
    keep.write_text("", encoding="utf-8")
    stale = tmp_path / "foo.html"
    stale.write_text("", encoding="utf-8")

    removed = remove_extra_output_files(tmp_path, [str(keep.resolve())])
    assert removed == [str(stale.resolve())]
    assert keep.exists()
    assert not stale.exists()


def test_resources_are_copied_as_fresh_files(cache: CacheDb, site: Path) -> None:
    source = site / "articles" / "res01.svg"
    old = dt.datetime(2001, 1, 1, tzinfo=UTC).timestamp()
    os.utime(source, (old, old))
    cache.resources.add(
        ResourceRow(local_path=str(source), server_path="res01.svg", modified_on_disk=WHEN)
    ).unwrap()

    write_output(cache, site / "out", site / "root")

    copied = site / "out" / "res01.svg"
    assert copied.read_bytes() == source.read_bytes()
    assert copied.stat().st_mtime != old
