"""From two tile directories to a validated, weighted list of tiles."""

import logging
from dataclasses import dataclass
from pathlib import Path

from floodseg.data.tiles import (
    Tile,
    assign_mask_weights,
    filter_tiles,
    list_raster_files,
    load_tile,
)
from floodseg.errors import DegenerateTileError, EmptyDatasetError, TileDecodeError, TilePairingError

log = logging.getLogger(__name__)


@dataclass
class PreparationReport:
    """How many tiles each stage kept or dropped."""

    pairs: int = 0
    decode_failures: int = 0
    degenerate: int = 0
    shape_rejected: int = 0
    kept: int = 0

    @property
    def dropped(self) -> int:
        return self.decode_failures + self.degenerate + self.shape_rejected


def pair_tile_files(
        image_dir: str | Path,
        mask_dir: str | Path,
        extensions: list[str],
) -> list[tuple[Path, Path]]:
    """Match image and mask files by file stem, in sorted order.

    Raises:
        FileNotFoundError: If a directory does not exist.
        TilePairingError: If a stem exists on one side only, or nothing matches.
    """
    images = list_raster_files(image_dir, extensions)
    masks = list_raster_files(mask_dir, extensions)

    missing_masks = sorted(set(images) - set(masks))
    missing_images = sorted(set(masks) - set(images))
    if missing_masks or missing_images:
        raise TilePairingError(
            f"Image/mask directories do not match: {len(missing_masks)} images without mask "
            f"(e.g. {missing_masks[:3]}), {len(missing_images)} masks without image "
            f"(e.g. {missing_images[:3]})"
        )
    if not images:
        raise TilePairingError(f"No raster files with extensions {extensions} in {image_dir}")

    return [(images[stem], masks[stem]) for stem in sorted(images)]


def load_tiles(
        pairs: list[tuple[Path, Path]],
        report: PreparationReport | None = None,
) -> list[Tile]:
    """Load every pair, dropping the ones that fail to decode or normalize."""
    report = report if report is not None else PreparationReport()
    tiles = []
    for image_path, mask_path in pairs:
        try:
            tiles.append(load_tile(image_path, mask_path))
        except TileDecodeError as e:
            report.decode_failures += 1
            log.warning("Dropping %s: %s", image_path.name, e)
        except DegenerateTileError as e:
            report.degenerate += 1
            log.warning("Dropping %s: %s", image_path.name, e)
    return tiles


def prepare_tiles(
        image_dir: str | Path,
        mask_dir: str | Path,
        height: int = 128,
        width: int = 128,
        channels: int | None = 8,
        max_tiles: int | None = None,
        extensions: list[str] | None = None,
        weight_buckets: int = 10,
) -> tuple[list[Tile], PreparationReport]:
    """Run load, shape filter and mask weighting over a pair of directories.

    Args:
        image_dir: Directory with image tiles.
        mask_dir: Directory with mask tiles named like the images.
        height: Required tile height.
        width: Required tile width.
        channels: Required band count, or None to accept any.
        max_tiles: Read at most this many pairs, taken in sorted name order.
        extensions: Raster extensions to pick up.
        weight_buckets: Number of flood-coverage buckets.

    Returns:
        Weighted tiles and a report of what was dropped.

    Raises:
        TilePairingError: If the directories do not hold matching files.
        EmptyDatasetError: If no tile survives loading and filtering.
    """
    extensions = extensions or [".tif", ".tiff"]
    pairs = pair_tile_files(image_dir, mask_dir, extensions)
    if max_tiles is not None:
        pairs = pairs[:max_tiles]

    report = PreparationReport(pairs=len(pairs))
    tiles = load_tiles(pairs, report)

    filtered = filter_tiles(tiles, height, width, channels)
    report.shape_rejected = len(tiles) - len(filtered)

    weighted = assign_mask_weights(filtered, weight_buckets)
    report.kept = len(weighted)

    log.info(
        "Prepared %d/%d tiles (decode failures: %d, degenerate: %d, wrong shape: %d)",
        report.kept, report.pairs, report.decode_failures, report.degenerate, report.shape_rejected,
    )
    if not weighted:
        raise EmptyDatasetError(
            f"No usable {height}x{width} tiles in {image_dir} ({report.pairs} pairs, {report.dropped} dropped)"
        )
    return weighted, report
