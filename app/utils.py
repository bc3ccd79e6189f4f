"""Utility helpers for the Daekho service."""

from __future__ import annotations

from typing import Iterable, Protocol, Sequence, TypeVar


class _Identified(Protocol):
    id: int


T = TypeVar("T", bound=_Identified)


def dedupe_by_id(items: Iterable[T]) -> list[T]:
    """Drop repeated ids, keeping the first occurrence and the input order."""

    seen: set[int] = set()
    unique: list[T] = []
    for item in items:
        if item.id in seen:
            continue
        seen.add(item.id)
        unique.append(item)
    return unique


def unique_ids(values: Iterable[int]) -> list[int]:
    """Return ``values`` without duplicates, preserving first-seen order."""

    return list(dict.fromkeys(values))


def parse_id_list(raw: str | Sequence[str] | None) -> list[int]:
    """Parse ``"28,12"`` style query values into integer ids."""

    if raw is None:
        return []
    parts = raw.split(",") if isinstance(raw, str) else [
        piece for entry in raw for piece in str(entry).split(",")
    ]
    ids: list[int] = []
    for part in parts:
        cleaned = part.strip()
        if not cleaned:
            continue
        try:
            ids.append(int(cleaned))
        except ValueError as exc:
            raise ValueError(f"Invalid id {cleaned!r}") from exc
    return unique_ids(ids)


def build_image_url(path: str, base_url: str) -> str:
    """Resolve a relative image fragment against the image base URL."""

    if not path:
        return ""
    if path.startswith("http"):
        return path
    return f"{base_url.rstrip('/')}/{path.lstrip('/')}"
