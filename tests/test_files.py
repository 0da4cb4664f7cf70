from __future__ import annotations

import os
from pathlib import Path

import pytest

from mdsite.files import SourceFile, canonical_dir, files_with_ext, is_inside, list_files


def test_source_file_resolves_symlinks(tmp_path: Path) -> None:
    target = tmp_path / "real.md"
    target.write_text("# Hi\n", encoding="utf-8")
    link = tmp_path / "link.md"
    link.symlink_to(target)

    source = SourceFile(link)
    assert source.realpath() == str(target.resolve())
    assert source.read_text() == "# Hi\n"


def test_source_file_memoizes_stat(tmp_path: Path) -> None:
    path = tmp_path / "post.md"
    path.write_text("x", encoding="utf-8")
    source = SourceFile(path)
    first = source.modified()
    os.utime(path, (first.timestamp() + 100, first.timestamp() + 100))

    assert source.modified() == first
    assert SourceFile(path).modified() > first


def test_source_file_missing(tmp_path: Path) -> None:
    source = SourceFile(tmp_path / "missing.md")
    with pytest.raises(FileNotFoundError):
        source.realpath()
    with pytest.raises(FileNotFoundError):
        source.modified()


def test_canonical_dir_has_one_trailing_separator(tmp_path: Path) -> None:
    assert canonical_dir(tmp_path) == str(tmp_path.resolve()) + os.sep
    assert canonical_dir(str(tmp_path) + os.sep) == str(tmp_path.resolve()) + os.sep


def test_is_inside(tmp_path: Path) -> None:
    base = str(tmp_path.resolve())
    assert is_inside(os.path.join(base, "a", "b.html"), base)
    assert not is_inside(os.path.join(base, "..", "b.html"), base)
    # A sibling sharing the prefix is not inside.
    assert not is_inside(base + "-other/b.html", base)


def test_files_with_ext(tmp_path: Path) -> None:
    (tmp_path / "nested").mkdir()
    (tmp_path / "b.md").write_text("", encoding="utf-8")
    (tmp_path / "nested" / "a.md").write_text("", encoding="utf-8")
    (tmp_path / "nested" / "img.png").write_bytes(b"")

    assert [p.name for p in files_with_ext(tmp_path, "md")] == ["b.md", "a.md"]
    assert len(list_files(tmp_path)) == 3
    assert list_files(tmp_path / "missing") == []
