"""
Ordering helpers for lessons within a course (and topics, via `field`).

Invariant:
    For each course the set of `order_index` values is exactly {0, ..., n-1}.
    New lessons append at `len(existing)`; deletions renumber the remaining
    siblings; explicit reorders must cover the full membership. Topics keep
    the same rule on `sort_order`.
"""
from __future__ import annotations

from typing import Any, Iterable, List, Mapping, Sequence

from .errors import invalid

INVALID_IDS_MESSAGE = "Invalid lesson IDs provided"
INVALID_ORDER_MESSAGE = "Invalid lesson order: positions must be 0..n-1"


def _get(item: Any, key: str) -> Any:
    if isinstance(item, Mapping):
        return item.get(key)
    return getattr(item, key, None)


def next_index(existing: Sequence[Any]) -> int:
    """Return the append position for a new item."""
    return len(existing)


def sort_key(item: Any, field: str = "order_index") -> tuple:
    index = _get(item, field)
    return (index if index is not None else 0, str(_get(item, "id")))


def renumber(remaining: Iterable[Any], field: str = "order_index") -> List[dict]:
    """Assign 0..n-1 to `remaining` (in relative order); return only changed pairs.

    `remaining` must already exclude the removed item. Items are ordered by
    their current position (ties by id) before renumbering, so callers may
    pass rows in any order.
    """
    changed: List[dict] = []
    for position, item in enumerate(sorted(remaining, key=lambda i: sort_key(i, field))):
        if _get(item, field) != position:
            changed.append({"id": _get(item, "id"), field: position})
    return changed


def apply_explicit_order(
    pairs: Sequence[Mapping[str, Any]],
    member_ids: Iterable[str],
    *,
    noun: str = "lesson",
    field: str = "order_index",
    position_keys: Sequence[str] = ("order", "order_index"),
) -> List[dict]:
    """Validate a caller-supplied reorder against the full membership.

    Parameters:
        pairs: `[{id, order}]` (or any of `position_keys`) as sent by the editor.
        member_ids: ids of every item currently in the target course.
        noun / field: error wording and the key of the returned positions.

    Raises:
        ActionError(validation, "Invalid lesson IDs ...") when the submitted id
        set is not exactly the membership (subset, superset, duplicates,
        unknown ids) or a position is not an integer.
    """
    ids_message = f"Invalid {noun} IDs provided"
    order_message = f"Invalid {noun} order: positions must be 0..n-1"
    members = set(member_ids)
    submitted = [str(p.get("id")) for p in pairs if isinstance(p, Mapping)]
    if len(submitted) != len(pairs) or len(submitted) != len(set(submitted)) or set(submitted) != members:
        raise invalid(ids_message)
    result: List[dict] = []
    for pair in pairs:
        order = next((pair[k] for k in position_keys if pair.get(k) is not None), None)
        if isinstance(order, bool) or not isinstance(order, int):
            raise invalid(order_message)
        result.append({"id": str(pair["id"]), field: order})
    if not is_dense(p[field] for p in result):
        raise invalid(order_message)
    return result


def is_dense(indices: Iterable[int]) -> bool:
    values = list(indices)
    return sorted(values) == list(range(len(values)))


__all__ = ["INVALID_IDS_MESSAGE", "INVALID_ORDER_MESSAGE", "apply_explicit_order", "is_dense", "next_index", "renumber", "sort_key"]
