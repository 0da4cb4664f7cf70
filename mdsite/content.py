from __future__ import annotations

import datetime as dt
import re
from dataclasses import dataclass, field
from typing import Optional

import markdown
import yaml

from .utils import to_utc

LIST_MARKER_RE = re.compile(r"^(?P<indent>[ \t]*)(?:[-+*]|\d+[.)])\s+")
FENCE_RE = re.compile(r"^(?P<indent>[ \t]*)(`{3,}|~{3,})")

MARKDOWN_EXTENSIONS = ["fenced_code", "tables", "toc", "codehilite"]
MARKDOWN_EXTENSION_CONFIGS = {"codehilite": {"guess_lang": False}}


@dataclass
class RenderedArticle:
    body: str
    title: str = ""
    published: Optional[dt.datetime] = None
    description: str = ""
    tags: list[str] = field(default_factory=list)


def slugify(text: str) -> str:
    text = text.lower()
    text = re.sub(r"[^\w]+", "-", text, flags=re.UNICODE)
    text = text.strip("-_").replace("_", "-")
    return text or "post"


def parse_list(value: object) -> list[str]:
    if isinstance(value, (list, tuple)):
        return [str(item).strip() for item in value if str(item).strip()]
    if not isinstance(value, str):
        return []
    items = [item.strip() for item in value.strip().strip("[]").split(",")]
    return [item.strip("'\"") for item in items if item]


def parse_front_matter(text: str) -> tuple[dict, str]:
    clean_text = text.lstrip("\ufeff")
    lines = clean_text.splitlines()
    if not lines or lines[0].strip() != "---":
        return {}, clean_text

    end = None
    for i in range(1, len(lines)):
        if lines[i].strip() == "---":
            end = i
            break
    if end is None:
        return {}, clean_text

    body = "\n".join(lines[end + 1 :])
    try:
        meta = yaml.safe_load("\n".join(lines[1:end]))
    except yaml.YAMLError:
        return {}, body
    if not isinstance(meta, dict):
        return {}, body
    return {str(key).strip().lower(): value for key, value in meta.items()}, body


def parse_published(value: object) -> Optional[dt.datetime]:
    if isinstance(value, dt.datetime):
        return to_utc(value)
    if isinstance(value, dt.date):
        return dt.datetime.combine(value, dt.time(), tzinfo=dt.timezone.utc)
    if isinstance(value, str) and value.strip():
        try:
            return to_utc(dt.datetime.fromisoformat(value.strip()))
        except ValueError:
            return None
    return None


def normalize_list_spacing(text: str) -> str:
    """Insert the blank line Markdown needs before a list that follows a paragraph."""
    lines = text.splitlines()
    out: list[str] = []
    in_fence = False
    fence_marker = ""
    for line in lines:
        fence_match = FENCE_RE.match(line)
        if fence_match:
            marker = fence_match.group(2)
            if not in_fence:
                in_fence = True
                fence_marker = marker
            elif marker == fence_marker:
                in_fence = False
                fence_marker = ""
            out.append(line)
            continue
        if in_fence:
            out.append(line)
            continue
        list_match = LIST_MARKER_RE.match(line)
        if list_match and not list_match.group("indent"):
            if out and out[-1].strip() and not LIST_MARKER_RE.match(out[-1]):
                out.append("")
        out.append(line)
    return "\n".join(out)


def render_markdown(text: str) -> RenderedArticle:
    meta, body = parse_front_matter(text)
    # Markdown instances are not thread safe, so each call gets its own.
    md = markdown.Markdown(extensions=MARKDOWN_EXTENSIONS, extension_configs=MARKDOWN_EXTENSION_CONFIGS)
    html_content = md.convert(normalize_list_spacing(body))
    title = meta.get("title")
    description = meta.get("description") or meta.get("summary")
    return RenderedArticle(
        body=html_content,
        title=str(title) if title else "",
        published=parse_published(meta.get("date")),
        description=str(description) if description else "",
        tags=parse_list(meta.get("tags")),
    )
