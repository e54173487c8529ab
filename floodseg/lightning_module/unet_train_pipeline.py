import logging
import math

import pytorch_lightning as pl
import segmentation_models_pytorch as smp
import torch
import torch.nn as nn
from hydra.utils import instantiate as hydra_instantiate
from omegaconf import DictConfig, OmegaConf

from floodseg.lightning_module.history import EpochRecord
from floodseg.model import UNet

log = logging.getLogger(__name__)


class UNetLightningModule(pl.LightningModule):
    """PyTorch Lightning module for binary flood segmentation.

    Wraps the U-Net built from ``cfg.model``. The network ends in a sigmoid;
    the loss is binary cross-entropy on the logits, which turns a diverged
    network into a NaN loss rather than an error. Accuracy is the share of
    pixels on the right side of ``threshold``.

    Args:
        cfg: Full training config, or its plain-dict form when restored from a
            checkpoint.

    Example:
        >>> module = UNetLightningModule(default_config())
        >>> x = torch.rand(2, 8, 128, 128)
        >>> y = module(x)
        >>> y.shape
        torch.Size([2, 1, 128, 128])
    """

    threshold = 0.5

    def __init__(self, cfg: DictConfig | dict) -> None:
        """Initialize the segmentation model."""
        super().__init__()
        if not isinstance(cfg, DictConfig):
            cfg = OmegaConf.create(cfg)
        self.cfg = cfg
        # plain containers keep the checkpoint loadable without omegaconf pickles
        self.save_hyperparameters({"cfg": OmegaConf.to_container(cfg, resolve=True)})

        data_cfg = cfg.data
        self.model = UNet.from_config(
            cfg.model,
            input_shape=(data_cfg.tile_height, data_cfg.tile_width, data_cfg.channels),
        )
        self.loss_fn = nn.BCEWithLogitsLoss()

        # initialize step metics
        self.training_step_outputs = []
        self.validation_step_outputs = []
        self.test_step_outputs = []

        self.history: list[EpochRecord] = []
        self._last_valid_metrics: dict | None = None

    def forward(self, x: torch.Tensor) -> torch.Tensor:
        """Forward pass through the model.

        Args:
            x: Input tensor of shape (B, C, H, W).

        Returns:
            Flood probabilities of shape (B, 1, H, W).
        """
        return self.model(x)

    def shared_step(self, batch, stage):
        image, mask = batch

        # Shape of the image should be (batch_size, num_channels, height, width)
        assert image.ndim == 4

        # Every pooling stage halves the tile, and the decoder has to land on
        # exactly the encoder extents to concatenate the skip tensors
        h, w = image.shape[2:]
        factor = 2 ** self.cfg.model.depth
        assert h % factor == 0 and w % factor == 0

        assert mask.ndim == 4

        # Check that mask values in between 0 and 1, NOT 0 and 255
        assert mask.max() <= 1.0 and mask.min() >= 0

        logits = self.model.logits(image)
        loss = self.loss_fn(logits, mask)
        prob_mask = logits.sigmoid()

        pred_mask = (prob_mask > self.threshold).long()
        tp, fp, fn, tn = smp.metrics.get_stats(pred_mask, mask.long(), mode="binary")

        return {
            "loss": loss,
            "n": image.shape[0],
            "tp": tp,
            "fp": fp,
            "fn": fn,
            "tn": tn,
        }

    @staticmethod
    def _detached(step_output: dict) -> dict:
        return {**step_output, "loss": step_output["loss"].detach()}

    def shared_epoch_end(self, outputs, stage) -> dict[str, torch.Tensor] | None:
        if not outputs:
            return None

        # sample-weighted mean, the last batch may be partial
        n = torch.tensor([x["n"] for x in outputs], dtype=torch.float32, device=self.device)
        losses = torch.stack([x["loss"] for x in outputs]).float()
        loss = (losses * n).sum() / n.sum()

        # aggregate step metics
        tp = torch.cat([x["tp"] for x in outputs])
        fp = torch.cat([x["fp"] for x in outputs])
        fn = torch.cat([x["fn"] for x in outputs])
        tn = torch.cat([x["tn"] for x in outputs])

        accuracy = smp.metrics.accuracy(tp, fp, fn, tn, reduction="micro")
        dataset_iou = smp.metrics.iou_score(tp, fp, fn, tn, reduction="micro")
        metrics = {
            f"{stage}_loss": loss,
            f"{stage}_accuracy": accuracy,
            f"{stage}_dataset_iou": dataset_iou,
        }

        self.log_dict(metrics, on_step=False, on_epoch=True, prog_bar=True)
        return metrics

    def training_step(self, batch, batch_idx):
        train_loss_info = self.shared_step(batch, "train")
        self.training_step_outputs.append(self._detached(train_loss_info))
        return train_loss_info

    def on_train_epoch_end(self):
        train_metrics = self.shared_epoch_end(self.training_step_outputs, "train") or {}
        valid_metrics = self._last_valid_metrics or {}

        def _value(metrics, key):
            return float(metrics[key]) if key in metrics else math.nan

        record = EpochRecord(
            epoch=self.current_epoch,
            global_step=self.global_step,
            train_loss=_value(train_metrics, "train_loss"),
            train_accuracy=_value(train_metrics, "train_accuracy"),
            valid_loss=_value(valid_metrics, "valid_loss"),
            valid_accuracy=_value(valid_metrics, "valid_accuracy"),
        )
        self.history.append(record)
        log.info(
            "Epoch %d: loss=%.4f accuracy=%.4f valid_loss=%.4f valid_accuracy=%.4f",
            record.epoch, record.train_loss, record.train_accuracy, record.valid_loss, record.valid_accuracy,
        )

        # empty set output list
        self.training_step_outputs.clear()
        self._last_valid_metrics = None

    def validation_step(self, batch, batch_idx):
        valid_loss_info = self.shared_step(batch, "valid")
        self.validation_step_outputs.append(self._detached(valid_loss_info))
        return valid_loss_info

    def on_validation_epoch_end(self):
        if self.trainer.sanity_checking:
            self.validation_step_outputs.clear()
            return
        self._last_valid_metrics = self.shared_epoch_end(self.validation_step_outputs, "valid")
        self.validation_step_outputs.clear()

    def test_step(self, batch, batch_idx):
        test_loss_info = self.shared_step(batch, "test")
        self.test_step_outputs.append(self._detached(test_loss_info))
        return test_loss_info

    def on_test_epoch_end(self):
        self.shared_epoch_end(self.test_step_outputs, "test")
        self.test_step_outputs.clear()

    def predict_step(self, batch, batch_idx):
        image = batch[0] if isinstance(batch, (list, tuple)) else batch
        return self.forward(image)

    def configure_optimizers(self):
        optimizer = hydra_instantiate(self.cfg.optimizer, params=self.parameters())
        if self.cfg.get("scheduler") is None:
            return optimizer

        scheduler = hydra_instantiate(self.cfg.scheduler, optimizer=optimizer)
        return {
            "optimizer": optimizer,
            "lr_scheduler": {
                "scheduler": scheduler,
                "interval": "epoch",
                "frequency": 1,
                "monitor": "valid_loss",
            },
        }
