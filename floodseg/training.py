"""Trainer setup and the fit loop for the flood U-Net."""

import logging
import os
import random
from pathlib import Path

import numpy as np
import pytorch_lightning as pl
import torch
from hydra.utils import instantiate as hydra_instantiate
from omegaconf import DictConfig, OmegaConf
from pytorch_lightning.callbacks import Callback, ModelCheckpoint

from floodseg.data.datamodule import FloodTileDataModule
from floodseg.lightning_module import UNetLightningModule

log = logging.getLogger(__name__)


def set_random_seed(seed: int = 42) -> None:
    os.environ['PYTHONHASHSEED'] = str(seed)
    random.seed(seed)
    np.random.seed(seed)
    torch.manual_seed(seed)
    torch.cuda.manual_seed_all(seed)
    pl.seed_everything(seed, workers=True)
    torch.backends.cudnn.benchmark = False
    torch.use_deterministic_algorithms(True, warn_only=True)


def build_callbacks(cfg: DictConfig, checkpoint_dir: str | Path | None = None) -> list[Callback]:
    """Checkpointing plus any callbacks listed under ``cfg.callbacks.other_callbacks``."""
    callbacks: list[Callback] = []
    if checkpoint_dir is not None:
        callbacks.append(ModelCheckpoint(dirpath=str(checkpoint_dir), **cfg.callbacks.model_checkpoint))
    callbacks.extend(hydra_instantiate(callback) for callback in cfg.callbacks.other_callbacks)
    return callbacks


def build_trainer(cfg: DictConfig, logger=False, callbacks: list[Callback] | None = None) -> pl.Trainer:
    callbacks = callbacks or []
    trainer_kwargs = OmegaConf.to_container(cfg.trainer, resolve=True)
    # checkpointing is decided by the callbacks
    trainer_kwargs.pop("enable_checkpointing", None)
    has_checkpoint = any(isinstance(c, ModelCheckpoint) for c in callbacks)
    return pl.Trainer(
        logger=logger,
        callbacks=callbacks,
        enable_checkpointing=has_checkpoint,
        **trainer_kwargs,
    )


def train_model(
        cfg: DictConfig,
        datamodule: FloodTileDataModule,
        logger=False,
        callbacks: list[Callback] | None = None,
) -> tuple[UNetLightningModule, pl.Trainer]:
    """Fit a fresh U-Net on ``datamodule`` for ``cfg.trainer.max_epochs`` epochs.

    Every epoch is one pass over the training batches followed by one pass
    over the testing batches. The per-epoch metrics end up in
    ``module.history``.

    Args:
        cfg: Full training config.
        datamodule: Prepared training/testing pipelines.
        logger: Lightning logger, or False to disable logging.
        callbacks: Extra Lightning callbacks.

    Returns:
        The trained module and the trainer that ran it.
    """
    module = UNetLightningModule(cfg=cfg)
    trainer = build_trainer(cfg, logger=logger, callbacks=callbacks)

    log.info(
        "Training for %d epochs: %d train / %d test tiles, batch size %d",
        cfg.trainer.max_epochs,
        len(datamodule.train_dataset),
        len(datamodule.val_dataset),
        datamodule.batch_size,
    )
    trainer.fit(module, datamodule=datamodule)
    return module, trainer
