import numpy as np
import pytest

from conftest import BANDS, TILE, flood_mask, make_tile, write_raster
from floodseg.data.tiles import (
    Tile,
    assign_mask_weights,
    binarize_mask,
    compute_mask_weight,
    filter_tiles,
    load_tile,
    matches_shape,
    normalize_image,
    read_raster,
)
from floodseg.errors import DegenerateTileError, TileDecodeError


def test_read_raster_puts_bands_last(tmp_path, raw_image):
    path = write_raster(tmp_path / "image.tif", raw_image)
    array = read_raster(path)
    assert array.shape == (TILE, TILE, BANDS)
    np.testing.assert_array_equal(array, raw_image)


def test_read_raster_rejects_garbage(tmp_path):
    path = tmp_path / "broken.tif"
    path.write_bytes(b"definitely not a tiff")
    with pytest.raises(TileDecodeError):
        read_raster(path)


def test_load_tile_normalizes_by_its_own_max(write_pair, raw_image):
    image_path, mask_path = write_pair("a", raw_image, flood_mask(0.5))
    tile = load_tile(image_path, mask_path)

    assert tile.name == "a"
    assert tile.image.dtype == np.float32
    assert tile.image.min() >= 0.0
    assert tile.image.max() == pytest.approx(1.0)
    np.testing.assert_allclose(tile.image, raw_image / raw_image.max(), rtol=1e-6)


def test_normalization_is_per_tile(write_pair, raw_image):
    dim = (raw_image // 4).astype(np.uint16)
    bright = load_tile(*write_pair("bright", raw_image, flood_mask(0.0)))
    faint = load_tile(*write_pair("faint", dim, flood_mask(0.0)))
    assert bright.image.max() == pytest.approx(1.0)
    assert faint.image.max() == pytest.approx(1.0)


def test_load_tile_binarizes_255_masks(write_pair, raw_image):
    mask = flood_mask(0.25) * 255
    tile = load_tile(*write_pair("a", raw_image, mask))
    assert tile.mask.shape == (TILE, TILE)
    assert set(np.unique(tile.mask)) == {0, 1}
    assert tile.mask.mean() == pytest.approx(0.25)


def test_all_zero_image_is_degenerate(write_pair):
    zeros = np.zeros((TILE, TILE, BANDS), dtype=np.uint16)
    with pytest.raises(DegenerateTileError):
        load_tile(*write_pair("empty", zeros, flood_mask(0.0)))


@pytest.mark.parametrize("image", [
    np.zeros((4, 4, 2)),
    np.full((4, 4, 2), -3.0),
    np.full((4, 4, 2), np.nan),
])
def test_normalize_image_never_divides_by_zero(image):
    with pytest.raises(DegenerateTileError):
        normalize_image(image)


def test_nodata_fill_does_not_leave_negative_values():
    image = np.full((4, 4, 2), 100.0)
    image[0, 0, 0] = -9999.0
    out = normalize_image(image)
    assert out.min() >= 0.0
    assert out.max() == pytest.approx(1.0)
    assert out[0, 0, 0] == 0.0


def test_negative_pixel_in_raster_is_clipped(write_pair):
    image = np.full((TILE, TILE, BANDS), 500, dtype=np.int16)
    image[:4, :4] = -9999
    tile = load_tile(*write_pair("nodata", image, flood_mask(0.0)))
    assert tile.image.min() == 0.0
    assert tile.image.max() == pytest.approx(1.0)


def test_binarize_mask_rejects_multiband():
    with pytest.raises(TileDecodeError):
        binarize_mask(np.zeros((4, 4, 3)))


def test_matches_shape_checks_image_and_mask():
    tile = make_tile(0)
    assert matches_shape(tile, TILE, TILE, BANDS)
    assert not matches_shape(tile, 64, 64)
    assert not matches_shape(tile, TILE, TILE, channels=3)


def test_filter_drops_wrong_sizes_and_is_idempotent():
    tiles = [make_tile(0), make_tile(1, size=64), make_tile(2), make_tile(3, channels=4)]
    filtered = filter_tiles(tiles, TILE, TILE, BANDS)
    assert [t.name for t in filtered] == ["tile_0000", "tile_0002"]
    assert [t.name for t in filter_tiles(filtered, TILE, TILE, BANDS)] == [t.name for t in filtered]


def test_filter_drops_mask_of_other_size():
    tile = make_tile(0)
    odd = Tile(name="odd", image=tile.image, mask=np.zeros((TILE, 64), dtype=np.uint8))
    assert filter_tiles([odd], TILE, TILE) == []


@pytest.mark.parametrize("coverage, expected", [
    (0.0, 0),
    (0.5, 5),
    (1.0, 10),
    (0.25, 2),   # 2.5 rounds half to even
    (0.75, 8),   # 7.5 rounds half to even
])
def test_compute_mask_weight(coverage, expected):
    assert compute_mask_weight(flood_mask(coverage)) == expected


def test_mask_weight_is_always_in_range():
    rng = np.random.default_rng(7)
    for _ in range(50):
        mask = (rng.random((32, 32)) < rng.random()).astype(np.uint8)
        weight = compute_mask_weight(mask)
        assert 0 <= weight <= 10
        assert weight == round(10 * mask.mean())


def test_assign_mask_weights_returns_new_tiles():
    tile = make_tile(0, coverage=0.5)
    unweighted = Tile(name=tile.name, image=tile.image, mask=tile.mask)
    weighted = assign_mask_weights([unweighted])
    assert unweighted.mask_weight is None
    assert weighted[0].mask_weight == 5
