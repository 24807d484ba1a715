from __future__ import annotations

import hashlib
from typing import Iterable, Sequence

from .models import LadderMembership


def reorder(order: Sequence[int], moved_id: int, target_index: int) -> list[int]:
    """Return ``order`` with ``moved_id`` moved to ``target_index``.

    The input is not modified and no id is added or lost.
    """
    order = list(order)
    if moved_id not in order:
        raise ValueError(f"Membership {moved_id} not in order")
    if not 0 <= target_index < len(order):
        raise ValueError(f"Target index {target_index} out of range")
    order.remove(moved_id)
    order.insert(target_index, moved_id)
    return order


def validate_permutation(final_order: Sequence[int], active_ids: Iterable[int]) -> None:
    """Ensure ``final_order`` lists every active membership exactly once."""
    active = set(active_ids)
    if len(set(final_order)) != len(final_order):
        raise ValueError("Order contains duplicate memberships")
    given = set(final_order)
    missing = active - given
    extra = given - active
    if missing or extra:
        parts = []
        if missing:
            parts.append("missing " + ", ".join(str(i) for i in sorted(missing)))
        if extra:
            parts.append("unknown " + ", ".join(str(i) for i in sorted(extra)))
        raise ValueError("Order does not match active memberships: " + "; ".join(parts))


def ranks_from_order(final_order: Sequence[int]) -> dict[int, int]:
    """Map each membership id to its 1-based rank."""
    return {mid: pos + 1 for pos, mid in enumerate(final_order)}


def sort_by_rank(memberships: Iterable[LadderMembership]) -> list[LadderMembership]:
    """Order memberships by rank with unranked members last."""
    return sorted(
        memberships,
        key=lambda m: (m.current_rank is None, m.current_rank or 0, m.id or 0),
    )


def order_version(memberships: Iterable[LadderMembership]) -> str:
    """Return a digest of the ``(id, rank)`` pairs of ``memberships``.

    Two admin sessions that loaded the same standings see the same version;
    any committed rank change or membership change alters it.
    """
    pairs = sorted((m.id or 0, m.current_rank or 0) for m in memberships)
    text = ";".join(f"{mid}:{rank}" for mid, rank in pairs)
    return hashlib.sha1(text.encode("utf-8")).hexdigest()[:16]
