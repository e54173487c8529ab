"""Loading, validation and stratification keys for flood tiles.

A tile is one multispectral image patch of shape (H, W, C) paired with a binary
flood mask of shape (H, W). Every function here takes tiles and returns new
tiles or plain values; nothing mutates its input.
"""

import dataclasses
import os
from dataclasses import dataclass
from pathlib import Path

import numpy as np
import rasterio
from rasterio.errors import RasterioError

from floodseg.errors import DegenerateTileError, TileDecodeError


@dataclass(frozen=True, eq=False)
class Tile:
    """One image/mask sample.

    Attributes:
        name: File stem shared by the image and the mask.
        image: Float32 array of shape (H, W, C), values in [0, 1].
        mask: Uint8 array of shape (H, W), values in {0, 1}.
        mask_weight: Flood-coverage bucket, set by ``assign_mask_weights``.
    """

    name: str
    image: np.ndarray
    mask: np.ndarray
    mask_weight: int | None = None

    @property
    def height(self) -> int:
        return self.image.shape[0]

    @property
    def width(self) -> int:
        return self.image.shape[1]

    @property
    def channels(self) -> int:
        return self.image.shape[2]


def read_raster(path: str | Path) -> np.ndarray:
    """Read a raster file and return it as an (H, W, C) array.

    Args:
        path: Any file GDAL can open (GeoTIFF, PNG, ...).

    Returns:
        Array in the file's native dtype with bands on the last axis.

    Raises:
        TileDecodeError: If the file cannot be opened or read.
    """
    try:
        with rasterio.open(path) as src:
            data = src.read()
    except (RasterioError, OSError) as e:
        raise TileDecodeError(f"Failed to decode raster: {path} ({e})", path=str(path)) from e
    # rasterio gives (bands, rows, cols)
    return np.transpose(data, (1, 2, 0))


def normalize_image(image: np.ndarray) -> np.ndarray:
    """Rescale an image into [0, 1] by its own maximum value.

    Negative samples, such as a -9999 nodata fill, carry no signal and are
    set to 0 first.

    Raises:
        DegenerateTileError: If the maximum is zero, negative or not finite.
    """
    image = np.clip(image.astype(np.float32), 0, None)
    peak = float(image.max()) if image.size else 0.0
    if not np.isfinite(peak) or peak <= 0:
        raise DegenerateTileError(f"Image maximum is {peak}, cannot normalize")
    return image / peak


def binarize_mask(mask: np.ndarray) -> np.ndarray:
    """Turn a decoded mask into a (H, W) uint8 array of zeros and ones.

    Any non-zero value counts as flooded, so 0/255 masks work as well as 0/1.
    """
    if mask.ndim == 3:
        if mask.shape[2] != 1:
            raise TileDecodeError(f"Mask must have a single band, got {mask.shape[2]}")
        mask = mask[..., 0]
    if mask.ndim != 2:
        raise TileDecodeError(f"Mask must be 2-D, got shape {mask.shape}")
    return (mask != 0).astype(np.uint8)


def load_tile(image_path: str | Path, mask_path: str | Path) -> Tile:
    """Load one image/mask pair and max-normalize the image.

    Raises:
        TileDecodeError: If either file fails to decode.
        DegenerateTileError: If the image is all zeros.
    """
    image = read_raster(image_path)
    mask = binarize_mask(read_raster(mask_path))
    try:
        image = normalize_image(image)
    except DegenerateTileError as e:
        raise DegenerateTileError(str(e), path=str(image_path)) from e
    return Tile(name=Path(image_path).stem, image=image, mask=mask)


def matches_shape(tile: Tile, height: int, width: int, channels: int | None = None) -> bool:
    """Check that image and mask both have the required spatial size."""
    if tile.image.ndim != 3:
        return False
    if (tile.height, tile.width) != (height, width) or tile.mask.shape[:2] != (height, width):
        return False
    if channels is not None and tile.channels != channels:
        return False
    return True


def filter_tiles(
        tiles: list[Tile],
        height: int,
        width: int,
        channels: int | None = None,
) -> list[Tile]:
    """Keep only tiles of the required size. Other tiles are silently dropped."""
    return [tile for tile in tiles if matches_shape(tile, height, width, channels)]


def compute_mask_weight(mask: np.ndarray, buckets: int = 10) -> int:
    """Bucket the flooded-pixel fraction of a mask into an integer in [0, buckets].

    Rounding is half-to-even, e.g. a coverage of 0.25 with 10 buckets gives 2.

    Example:
        >>> compute_mask_weight(np.ones((4, 4)))
        10
        >>> compute_mask_weight(np.zeros((4, 4)))
        0
    """
    coverage = float(np.mean(mask != 0)) if mask.size else 0.0
    return int(np.rint(buckets * coverage))


def assign_mask_weights(tiles: list[Tile], buckets: int = 10) -> list[Tile]:
    return [
        dataclasses.replace(tile, mask_weight=compute_mask_weight(tile.mask, buckets))
        for tile in tiles
    ]


def list_raster_files(directory: str | Path, extensions: list[str]) -> dict[str, Path]:
    """Index raster files of a directory by file stem."""
    directory = Path(directory)
    if not directory.exists():
        raise FileNotFoundError(f"Tile directory not found: {directory}")
    suffixes = {ext.lower() for ext in extensions}
    files = sorted(f for f in os.listdir(directory) if Path(f).suffix.lower() in suffixes)
    return {Path(f).stem: directory / f for f in files}
