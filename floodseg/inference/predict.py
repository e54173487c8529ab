"""Probability maps from a trained flood U-Net."""

import logging
from pathlib import Path

import numpy as np
import torch

from floodseg.lightning_module import UNetLightningModule

log = logging.getLogger(__name__)


def load_model(checkpoint_path: str | Path, map_location: str | torch.device = "cpu") -> UNetLightningModule:
    """Restore a trained module from a Lightning checkpoint file.

    The training config is stored in the checkpoint, so nothing else is needed.
    """
    model = UNetLightningModule.load_from_checkpoint(str(checkpoint_path), map_location=map_location)
    model.eval()
    log.info("Loaded model from %s", checkpoint_path)
    return model


def to_channels_first(images: np.ndarray) -> np.ndarray:
    """(N, H, W, C) or (H, W, C) numpy -> (N, C, H, W) float32."""
    images = np.asarray(images, dtype=np.float32)
    if images.ndim == 3:
        images = images[np.newaxis]
    if images.ndim != 4:
        raise ValueError(f"Expected (N, H, W, C) or (H, W, C) images, got shape {images.shape}")
    return np.ascontiguousarray(images.transpose(0, 3, 1, 2))


def predict_probabilities(
    model: torch.nn.Module,
    images: np.ndarray,
    batch_size: int | None = None,
) -> np.ndarray:
    """Run the model over normalized tiles and return flood probability maps.

    Args:
        model: Trained ``UNetLightningModule`` or bare ``UNet``.
        images: Tiles of shape (N, H, W, C) or a single (H, W, C) tile,
            already max-normalized into [0, 1].
        batch_size: Tiles per forward pass, all at once when None.

    Returns:
        Float32 array of shape (N, H, W, 1) with values in [0, 1].

    Example:
        >>> probs = predict_probabilities(model, np.random.rand(3, 128, 128, 8))
        >>> probs.shape
        (3, 128, 128, 1)
    """
    batch = to_channels_first(images)
    if batch_size is not None and batch_size <= 0:
        raise ValueError(f"batch_size must be positive, got {batch_size}")
    if len(batch) == 0:
        return np.zeros((0, *batch.shape[2:], 1), dtype=np.float32)
    batch_size = batch_size or len(batch)
    device = next(model.parameters()).device

    was_training = model.training
    model.eval()
    outputs = []
    try:
        with torch.inference_mode():
            for start in range(0, len(batch), batch_size):
                chunk = torch.from_numpy(batch[start:start + batch_size]).to(device)
                outputs.append(model(chunk).cpu().numpy())
    finally:
        model.train(was_training)

    probs = np.concatenate(outputs, axis=0)
    return probs.transpose(0, 2, 3, 1).astype(np.float32)
