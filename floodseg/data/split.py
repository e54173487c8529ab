"""Stratified train/test split of flood tiles."""

import logging
from collections import Counter, defaultdict
from typing import Callable, Hashable

import numpy as np

from floodseg.data.tiles import Tile

log = logging.getLogger(__name__)


def _mask_weight(tile: Tile) -> int | None:
    return tile.mask_weight


def allocate_stratum_sizes(
        sizes: dict[Hashable, int],
        train_fraction: float,
) -> dict[Hashable, int]:
    """Decide how many members of each stratum go to the training subset.

    Each stratum first gets the floor of its proportional share, then the
    leftover slots are handed out by largest remainder so that the training
    total equals ``round(train_fraction * N)``. Strata with two or more members
    always keep at least one member on each side. A single-member stratum goes
    entirely to the larger subset.

    Args:
        sizes: Number of members per stratum key, in a stable order.
        train_fraction: Share of members that should go to training, in (0, 1).

    Returns:
        Training count per stratum key.

    Example:
        >>> sizes = {k: 9 for k in range(10)}
        >>> sizes[10] = 10
        >>> alloc = allocate_stratum_sizes(sizes, 0.8)
        >>> sum(alloc.values())
        80
        >>> alloc[0], alloc[2], alloc[10]
        (8, 7, 8)
    """
    if not 0 < train_fraction < 1:
        raise ValueError(f"train_fraction must be in (0, 1), got {train_fraction}")

    quotas = {k: train_fraction * n for k, n in sizes.items()}
    lower, upper = {}, {}
    for k, n in sizes.items():
        if n >= 2:
            lower[k], upper[k] = 1, n - 1
        elif n == 1:
            lower[k] = upper[k] = 1 if train_fraction >= 0.5 else 0
        else:
            lower[k] = upper[k] = 0

    alloc = {k: min(max(int(np.floor(quotas[k])), lower[k]), upper[k]) for k in sizes}
    target = int(round(train_fraction * sum(sizes.values())))

    remaining = target - sum(alloc.values())
    while remaining > 0:
        candidates = [k for k in sizes if alloc[k] < upper[k]]
        if not candidates:
            break
        k = max(candidates, key=lambda c: quotas[c] - alloc[c])
        alloc[k] += 1
        remaining -= 1
    while remaining < 0:
        candidates = [k for k in sizes if alloc[k] > lower[k]]
        if not candidates:
            break
        k = min(candidates, key=lambda c: quotas[c] - alloc[c])
        alloc[k] -= 1
        remaining += 1

    return alloc


def stratified_split(
        tiles: list[Tile],
        train_fraction: float = 0.8,
        key: Callable[[Tile], Hashable] = _mask_weight,
        seed: int | None = None,
) -> tuple[list[Tile], list[Tile]]:
    """Split tiles into training and testing subsets, stratified by ``key``.

    Members of every stratum are shuffled with a seeded generator and then
    sliced according to ``allocate_stratum_sizes``, so each key value keeps
    roughly the same share in both subsets as in the input.

    Args:
        tiles: Tiles to split. Every tile must have a key value.
        train_fraction: Share of tiles that goes to training.
        key: Stratification key, the mask weight by default.
        seed: Seed for the per-stratum shuffle.

    Returns:
        ``(train, test)``, disjoint lists whose union is ``tiles``.

    Raises:
        ValueError: If ``train_fraction`` is out of range or a tile has no key.
    """
    strata: dict[Hashable, list[Tile]] = defaultdict(list)
    for tile in tiles:
        value = key(tile)
        if value is None:
            raise ValueError(f"Tile {tile.name} has no stratification key, assign mask weights first")
        strata[value].append(tile)

    ordered_keys = sorted(strata)
    sizes = {k: len(strata[k]) for k in ordered_keys}
    alloc = allocate_stratum_sizes(sizes, train_fraction)

    rng = np.random.default_rng(seed)
    train, test = [], []
    for k in ordered_keys:
        members = strata[k]
        order = rng.permutation(len(members))
        n_train = alloc[k]
        train.extend(members[i] for i in order[:n_train])
        test.extend(members[i] for i in order[n_train:])

    log.info("Split %d tiles into %d train / %d test", len(tiles), len(train), len(test))
    log.debug("Train buckets: %s", dict(sorted(stratum_counts(train, key).items())))
    log.debug("Test buckets: %s", dict(sorted(stratum_counts(test, key).items())))
    return train, test


def stratum_counts(
        tiles: list[Tile],
        key: Callable[[Tile], Hashable] = _mask_weight,
) -> Counter:
    """Count tiles per stratification key value."""
    return Counter(key(tile) for tile in tiles)
