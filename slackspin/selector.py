"""Random selection that never repeats the previous pick."""

from __future__ import annotations

import random
from typing import Optional, Sequence, TypeVar

T = TypeVar("T")


def select_index(
    candidates: Sequence[T],
    previous_index: int,
    rng: Optional[random.Random] = None,
) -> int:
    """Return a random index into ``candidates`` that differs from ``previous_index``.

    A single candidate is always returned as index ``0``. The caller owns the
    previous index and should pass the returned value back on the next call.
    """

    length = len(candidates)
    if length == 0:
        raise ValueError("Cannot select from an empty sequence.")
    if length == 1:
        return 0

    draw = rng.randrange if rng is not None else random.randrange
    index = draw(length)
    while index == previous_index:
        index = draw(length)
    return index
