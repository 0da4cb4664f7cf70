from __future__ import annotations

import datetime as dt
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, Optional, Sequence, TypeVar

T = TypeVar("T")
R = TypeVar("R")


def parse_bool(value: object) -> bool:
    if isinstance(value, bool):
        return value
    if value is None:
        return False
    if isinstance(value, (int, float)):
        return value != 0
    if isinstance(value, str):
        return value.strip().lower() in {"1", "true", "yes", "y", "on"}
    return False


def parse_int(value: object, default: int) -> int:
    if value is None:
        return default
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, int):
        return value
    try:
        return int(str(value).strip())
    except ValueError:
        return default


def to_utc(value: dt.datetime) -> dt.datetime:
    # Naive values are taken to be UTC already.
    if value.tzinfo is None:
        return value.replace(tzinfo=dt.timezone.utc)
    return value.astimezone(dt.timezone.utc)


def format_timestamp(value: dt.datetime) -> str:
    """Fixed-width UTC form, so stored timestamps compare correctly as strings."""
    return to_utc(value).isoformat(timespec="microseconds")


def parse_timestamp(value: object) -> dt.datetime | None:
    if isinstance(value, dt.datetime):
        return to_utc(value)
    if not isinstance(value, str) or not value:
        return None
    try:
        return to_utc(dt.datetime.fromisoformat(value))
    except ValueError:
        return None


def timestamp_from_epoch(seconds: float) -> dt.datetime:
    return dt.datetime.fromtimestamp(seconds, tz=dt.timezone.utc)


def settle_all(
    fn: Callable[[T], R], items: Sequence[T], workers: int
) -> list[tuple[Optional[R], Optional[BaseException]]]:
    """Run ``fn`` over ``items`` and return ``(value, error)`` pairs in input order.

    One item failing never cancels the others.
    """
    def run(item: T) -> tuple[Optional[R], Optional[BaseException]]:
        try:
            return fn(item), None
        except Exception as exc:
            return None, exc

    workers = max(1, min(workers, len(items))) if items else 1
    if workers > 1:
        with ThreadPoolExecutor(max_workers=workers) as executor:
            return list(executor.map(run, items))
    return [run(item) for item in items]
