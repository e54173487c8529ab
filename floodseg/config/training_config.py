"""Training configuration for the flood segmentation U-Net."""

from dataclasses import dataclass, field
from typing import Any, List, Optional

from hydra.core.config_store import ConfigStore
from omegaconf import II, DictConfig, OmegaConf


@dataclass
class GeneralConfig:
    """Run-wide settings.

    Attributes:
        random_seed: Seed for python, numpy, torch and the split/shuffle generators.
        float32_matmul_precision: Passed to ``torch.set_float32_matmul_precision``.
    """

    random_seed: int = 42
    float32_matmul_precision: str = "high"


@dataclass
class DataConfig:
    """Tile storage layout and dataset preparation.

    Attributes:
        image_dir: Directory with multispectral image tiles.
        mask_dir: Directory with single-band flood masks, same file stems as the images.
        extensions: Raster file extensions picked up in both directories.
        tile_height: Required tile height; other tiles are dropped.
        tile_width: Required tile width; other tiles are dropped.
        channels: Required number of spectral bands.
        max_tiles: Cap on the number of file pairs read (None reads everything).
        train_fraction: Share of tiles that goes to the training subset.
        weight_buckets: Number of flood-coverage buckets used as stratification key.
        batch_size: Tiles per batch.
        num_workers: DataLoader workers.
        augment: Apply random flips to training tiles.

    Example:
        >>> config = DataConfig()
        >>> config.tile_height, config.tile_width, config.channels
        (128, 128, 8)
    """

    image_dir: str = "data/images"
    mask_dir: str = "data/masks"
    extensions: List[str] = field(default_factory=lambda: [".tif", ".tiff"])
    tile_height: int = 128
    tile_width: int = 128
    channels: int = 8
    max_tiles: Optional[int] = 5000
    train_fraction: float = 0.8
    weight_buckets: int = 10
    batch_size: int = 10
    num_workers: int = 0
    augment: bool = False


@dataclass
class ModelConfig:
    """U-Net topology.

    Attributes:
        in_channels: Input bands, follows ``data.channels``.
        base_filters: Filters of the first encoder stage, doubled at each stage.
        depth: Number of pooling stages.
        out_channels: Channels of the sigmoid head.
    """

    in_channels: int = II("data.channels")
    base_filters: int = 64
    depth: int = 2
    out_channels: int = 1


@dataclass
class OptimizerConfig:
    _target_: str = "torch.optim.Adam"
    lr: float = 1e-4


@dataclass
class TrainerConfig:
    """Keyword arguments for ``pytorch_lightning.Trainer``."""

    max_epochs: int = 10
    accelerator: str = "auto"
    devices: Any = "auto"
    num_sanity_val_steps: int = 0
    log_every_n_steps: int = 10
    enable_progress_bar: bool = True


@dataclass
class CallbacksConfig:
    model_checkpoint: Any = field(default_factory=lambda: {
        "monitor": "valid_loss",
        "mode": "min",
        "save_last": True,
        "save_top_k": 1,
        "filename": "epoch={epoch}-valid_loss={valid_loss:.4f}",
        "auto_insert_metric_name": False,
    })
    other_callbacks: List[Any] = field(default_factory=list)


@dataclass
class TrainingConfig:
    general: GeneralConfig = field(default_factory=GeneralConfig)
    data: DataConfig = field(default_factory=DataConfig)
    model: ModelConfig = field(default_factory=ModelConfig)
    optimizer: OptimizerConfig = field(default_factory=OptimizerConfig)
    scheduler: Optional[Any] = None
    trainer: TrainerConfig = field(default_factory=TrainerConfig)
    callbacks: CallbacksConfig = field(default_factory=CallbacksConfig)
    logger: Optional[Any] = None


def register_configs() -> None:
    """Store the schema so ``configs/config.yaml`` can extend it as ``base_config``."""
    cs = ConfigStore.instance()
    cs.store(name="base_config", node=TrainingConfig)


def default_config(**overrides: Any) -> DictConfig:
    """Build a validated config, optionally overriding top-level sections.

    Example:
        >>> cfg = default_config(data={"batch_size": 4}, trainer={"max_epochs": 1})
        >>> cfg.data.batch_size, cfg.model.in_channels
        (4, 8)
    """
    cfg = OmegaConf.structured(TrainingConfig)
    if overrides:
        cfg = OmegaConf.merge(cfg, overrides)
    return cfg
