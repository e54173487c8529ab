from pathlib import Path

import numpy as np
import pytest
import rasterio

from floodseg.config import default_config
from floodseg.data.tiles import Tile, compute_mask_weight

TILE = 128
BANDS = 8


def write_raster(path: Path, array: np.ndarray) -> Path:
    """Write an (H, W, C) or (H, W) array as a GeoTIFF."""
    if array.ndim == 2:
        array = array[..., np.newaxis]
    height, width, count = array.shape
    with rasterio.open(
        path, "w", driver="GTiff", height=height, width=width, count=count, dtype=array.dtype.name
    ) as dst:
        dst.write(np.ascontiguousarray(np.transpose(array, (2, 0, 1))))
    return path


def flood_mask(coverage: float, size: int = TILE) -> np.ndarray:
    """Mask with the first ``coverage`` share of rows flooded."""
    mask = np.zeros((size, size), dtype=np.uint8)
    mask[: int(round(coverage * size))] = 1
    return mask


def make_tile(index: int, coverage: float = 0.0, size: int = TILE, channels: int = BANDS) -> Tile:
    """In-memory tile whose image carries ``index`` at pixel (1, 1, 0)."""
    rng = np.random.default_rng(index)
    image = rng.random((size, size, channels), dtype=np.float32) * 0.5
    image[0, 0, 0] = 1.0
    image[1, 1, 0] = index / 1000
    mask = flood_mask(coverage, size)
    return Tile(name=f"tile_{index:04d}", image=image, mask=mask, mask_weight=compute_mask_weight(mask))


@pytest.fixture
def tile_dirs(tmp_path):
    image_dir = tmp_path / "images"
    mask_dir = tmp_path / "masks"
    image_dir.mkdir()
    mask_dir.mkdir()
    return image_dir, mask_dir


@pytest.fixture
def write_pair(tile_dirs):
    image_dir, mask_dir = tile_dirs

    def _write(name: str, image: np.ndarray, mask: np.ndarray) -> tuple[Path, Path]:
        return (
            write_raster(image_dir / f"{name}.tif", image),
            write_raster(mask_dir / f"{name}.tif", mask),
        )

    return _write


@pytest.fixture
def raw_image():
    rng = np.random.default_rng(0)
    return rng.integers(1, 4000, size=(TILE, TILE, BANDS), dtype=np.uint16)


@pytest.fixture
def small_cfg(tile_dirs):
    image_dir, mask_dir = tile_dirs
    return default_config(
        data={"image_dir": str(image_dir), "mask_dir": str(mask_dir)},
        model={"base_filters": 4},
        trainer={
            "max_epochs": 1,
            "accelerator": "cpu",
            "devices": 1,
            "enable_progress_bar": False,
            "log_every_n_steps": 1,
        },
    )
