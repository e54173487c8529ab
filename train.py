"""Training script for the flood segmentation U-Net using PyTorch Lightning."""
import json
import logging
from pathlib import Path

import hydra
import torch
from hydra.core.hydra_config import HydraConfig
from omegaconf import DictConfig, OmegaConf
from pytorch_lightning.loggers import MLFlowLogger

from floodseg.config import register_configs
from floodseg.data import FloodTileDataModule
from floodseg.lightning_module import history_as_dict
from floodseg.training import build_callbacks, set_random_seed, train_model

logging.basicConfig(level=logging.INFO)

register_configs()


def training_pipeline(cfg: DictConfig):
    """Train the flood segmentation model on the tiles in ``cfg.data``.

    Example:
        Run this script from the command line:
        $ python train.py data.image_dir=data/images data.mask_dir=data/masks
    """

    set_random_seed(cfg.general.random_seed)

    torch.set_float32_matmul_precision(cfg.general.float32_matmul_precision)

    run_dir = Path(HydraConfig.get().runtime.output_dir)

    # Build the dataset first so a bad tile directory fails before anything else
    datamodule = FloodTileDataModule(cfg=cfg)

    # Setup logger
    logger = hydra.utils.instantiate(cfg.logger) if cfg.logger is not None else False

    config_artifact_path = run_dir / "config.yaml"
    OmegaConf.save(cfg, config_artifact_path)
    if isinstance(logger, MLFlowLogger):
        logger.experiment.log_artifact(
            run_id=logger.run_id,
            local_path=str(config_artifact_path)
        )

    callbacks = build_callbacks(cfg, checkpoint_dir=run_dir / "checkpoints")

    logging.info("Training started with config:\n%s", json.dumps(OmegaConf.to_container(cfg, resolve=True), indent=2))

    # Train the model
    lightning_model, trainer = train_model(cfg, datamodule, logger=logger, callbacks=callbacks)

    # Final pass over the testing subset, logged as test_*
    trainer.test(lightning_model, datamodule=datamodule)

    model_path = run_dir / "checkpoints" / "final.ckpt"
    trainer.save_checkpoint(model_path)
    logging.info("Saved model to %s", model_path)

    history_path = run_dir / "history.json"
    history_path.write_text(json.dumps(history_as_dict(lightning_model.history), indent=2))
    if isinstance(logger, MLFlowLogger):
        logger.experiment.log_artifact(
            run_id=logger.run_id,
            local_path=str(history_path)
        )

    return lightning_model.history


@hydra.main(config_path='configs', config_name='config', version_base='1.3')
def hydra_run_train(cfg: DictConfig) -> None:
    training_pipeline(cfg)


if __name__ == "__main__":
    hydra_run_train()
