"""LightningDataModule for multispectral flood tiles."""

import logging
import math

import albumentations as A
import numpy as np
import pytorch_lightning as pl
import torch
from omegaconf import DictConfig
from torch.utils.data import DataLoader, Dataset

from floodseg.data.preparation import prepare_tiles
from floodseg.data.split import stratified_split, stratum_counts
from floodseg.data.tiles import Tile
from floodseg.datamodule.transforms import get_transforms
from floodseg.errors import EmptyDatasetError

log = logging.getLogger(__name__)


class FloodTileDataset(Dataset):
    """Tiles as float32 ``(image, mask)`` tensor pairs.

    The mask weight is only a stratification key and is not returned.

    Args:
        tiles: Prepared tiles of identical shape.
        transform: Albumentations pipeline ending in ``ToTensorV2``.

    Example:
        >>> dataset = FloodTileDataset(tiles, get_transforms("validation", cfg))
        >>> image, mask = dataset[0]
        >>> image.shape, mask.shape
        (torch.Size([8, 128, 128]), torch.Size([1, 128, 128]))
    """

    def __init__(
        self,
        tiles: list[Tile],
        transform: A.Compose | None = None,
    ) -> None:
        self.tiles = tiles
        self.transform = transform

    def __len__(self) -> int:
        return len(self.tiles)

    def __getitem__(self, idx: int) -> tuple[torch.Tensor, torch.Tensor]:
        tile = self.tiles[idx]

        image = tile.image.astype(np.float32)
        mask = tile.mask.astype(np.float32)[..., np.newaxis]

        if self.transform:
            transformed = self.transform(image=image, mask=mask)
            image = transformed["image"]
            mask = transformed["mask"]
        else:
            image = torch.from_numpy(np.ascontiguousarray(image.transpose(2, 0, 1)))
            mask = torch.from_numpy(np.ascontiguousarray(mask.transpose(2, 0, 1)))

        return image, mask


class FloodTileDataModule(pl.LightningDataModule):
    """Training and testing pipelines for flood tiles.

    Tiles are read from ``cfg.data.image_dir`` / ``cfg.data.mask_dir`` unless
    they are passed in. Preparation and the stratified split run in
    ``__init__``, so a bad dataset fails before the trainer starts.

    Args:
        cfg: Full training config.
        tiles: Already prepared tiles with mask weights; skips reading from disk.

    Example:
        >>> dm = FloodTileDataModule(cfg)
        >>> images, masks = next(iter(dm.train_dataloader()))
        >>> images.shape, masks.shape
        (torch.Size([10, 8, 128, 128]), torch.Size([10, 1, 128, 128]))
    """

    def __init__(self, cfg: DictConfig, tiles: list[Tile] | None = None) -> None:
        super().__init__()
        self.cfg = cfg
        self.batch_size = cfg.data.batch_size
        self.num_workers = cfg.data.num_workers
        self.seed = cfg.general.random_seed

        self.train_dataset: FloodTileDataset | None = None
        self.val_dataset: FloodTileDataset | None = None
        self.report = None

        self.train_transform = get_transforms("train", cfg)
        self.val_transform = get_transforms("validation", cfg)

        self._prepare_datasets(tiles)

    def _prepare_datasets(self, tiles: list[Tile] | None) -> None:
        data_cfg = self.cfg.data
        if tiles is None:
            tiles, self.report = prepare_tiles(
                image_dir=data_cfg.image_dir,
                mask_dir=data_cfg.mask_dir,
                height=data_cfg.tile_height,
                width=data_cfg.tile_width,
                channels=data_cfg.channels,
                max_tiles=data_cfg.max_tiles,
                extensions=list(data_cfg.extensions),
                weight_buckets=data_cfg.weight_buckets,
            )

        train_tiles, test_tiles = stratified_split(
            tiles,
            train_fraction=data_cfg.train_fraction,
            seed=self.seed,
        )
        if not train_tiles or not test_tiles:
            raise EmptyDatasetError(
                f"Split of {len(tiles)} tiles left an empty subset "
                f"(train={len(train_tiles)}, test={len(test_tiles)})"
            )
        log.info("Train buckets: %s", dict(sorted(stratum_counts(train_tiles).items())))
        log.info("Test buckets: %s", dict(sorted(stratum_counts(test_tiles).items())))

        self.train_dataset = FloodTileDataset(train_tiles, transform=self.train_transform)
        self.val_dataset = FloodTileDataset(test_tiles, transform=self.val_transform)

    def num_batches(self, stage: str = "train") -> int:
        dataset = self.train_dataset if stage == "train" else self.val_dataset
        return math.ceil(len(dataset) / self.batch_size)

    def train_dataloader(self) -> DataLoader:
        """Create training dataloader.

        Returns:
            DataLoader that draws a fresh full permutation of the training
            subset every epoch and keeps the partial last batch.
        """
        generator = torch.Generator()
        generator.manual_seed(self.seed)
        return DataLoader(
            self.train_dataset,
            batch_size=self.batch_size,
            shuffle=True,
            drop_last=False,
            generator=generator,
            num_workers=self.num_workers,
            pin_memory=torch.cuda.is_available(),
        )

    def val_dataloader(self) -> DataLoader:
        """Create validation dataloader.

        Returns:
            DataLoader over the testing subset with shuffle=False.
        """
        return DataLoader(
            self.val_dataset,
            batch_size=self.batch_size,
            shuffle=False,
            num_workers=self.num_workers,
            pin_memory=torch.cuda.is_available(),
        )

    def test_dataloader(self) -> DataLoader:
        return self.val_dataloader()
