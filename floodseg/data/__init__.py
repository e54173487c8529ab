from floodseg.data.datamodule import FloodTileDataModule, FloodTileDataset
from floodseg.data.preparation import PreparationReport, prepare_tiles
from floodseg.data.split import stratified_split
from floodseg.data.tiles import Tile, compute_mask_weight, filter_tiles, load_tile

__all__ = [
    "FloodTileDataModule",
    "FloodTileDataset",
    "PreparationReport",
    "Tile",
    "compute_mask_weight",
    "filter_tiles",
    "load_tile",
    "prepare_tiles",
    "stratified_split",
]
