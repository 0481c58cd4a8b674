"""
Sequential simulation of the marking launch.

Runs the lane program one lane (or one store) at a time in a chosen order,
so that any schedule the parallel backends could produce can be replayed
deterministically. Used to check that the final flags never depend on the
schedule.
"""

import math
from typing import Iterator, Sequence

import numpy as np

DESIGNATED_LANE = 0
MARKED = 1


def lane_steps(flags, lane: int, n: int, root: int) -> Iterator[int]:
    """
    Run one lane's program, yielding after its read and after every store.

    Yields the index just touched. The flag read that decides whether a
    divisor lane works happens when the generator is first advanced, so a
    scheduler controls exactly when each lane observes the array.
    """
    if lane == DESIGNATED_LANE:
        for j in (0, 1):
            flags[j] = MARKED
            yield j
        for j in range(4, n, 2):
            flags[j] = MARKED
            yield j
        return

    if lane <= 1 or lane > root:
        return
    if flags[lane] != 0:
        return
    yield lane
    for j in range(lane * lane, n, lane):
        flags[j] = MARKED
        yield j


def _lanes(n: int):
    root = math.isqrt(n)
    return root, list(range(root + 1))


def run_lanes(n: int, order: Sequence[int] = None, flags=None):
    """
    Run every lane to completion, one after another.

    Parameters
    ----------
    n : int
        Exclusive upper bound.
    order : sequence of int, optional
        Permutation of lanes 0..isqrt(n). Defaults to ascending.
    flags : optional
        Zero-filled array-like of length n to mark into.

    Returns
    -------
    The marked flags.
    """
    root, lanes = _lanes(n)
    if order is None:
        order = lanes
    if sorted(order) != lanes:
        raise ValueError(f"order must be a permutation of 0..{root}")
    if flags is None:
        flags = np.zeros(n, dtype=np.uint8)

    for lane in order:
        for _ in lane_steps(flags, lane, n, root):
            pass
    return flags


def run_interleaved(n: int, seed=None, flags=None):
    """
    Run all lanes with stores interleaved in a random order.

    At every step one live lane is picked uniformly at random and advanced
    by a single read or store, so lanes routinely read flags that another
    lane is about to change.
    """
    rng = np.random.default_rng(seed)
    root, lanes = _lanes(n)
    if flags is None:
        flags = np.zeros(n, dtype=np.uint8)

    live = [lane_steps(flags, lane, n, root) for lane in lanes]
    while live:
        i = int(rng.integers(len(live)))
        try:
            next(live[i])
        except StopIteration:
            live.pop(i)
    return flags


def classic_flags(n: int) -> np.ndarray:
    """Textbook sequential sieve in the same convention (0 = prime)."""
    flags = np.zeros(n, dtype=np.uint8)
    flags[:2] = MARKED
    for p in range(2, math.isqrt(max(n - 1, 0)) + 1):
        if flags[p] == 0:
            flags[p*p::p] = MARKED
    return flags
