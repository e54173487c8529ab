"""ONNX export and ONNX Runtime prediction for the flood U-Net."""

import logging
from pathlib import Path

import numpy as np
import onnx
import onnxruntime as ort
import torch

from floodseg.inference.predict import to_channels_first

log = logging.getLogger(__name__)


def export_onnx(
    model: torch.nn.Module,
    path: str | Path,
    height: int = 128,
    width: int = 128,
    channels: int = 8,
) -> Path:
    """Export the model to a single ONNX file with a dynamic batch axis.

    The graph takes ``image`` of shape (B, C, H, W) and returns ``mask``
    probabilities of shape (B, 1, H, W).
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    was_training = model.training
    model.eval()
    input_sample = torch.randn(1, channels, height, width, device=next(model.parameters()).device)
    try:
        torch.onnx.export(
            model,
            input_sample,
            str(path),
            input_names=["image"],
            output_names=["mask"],
            dynamic_axes={"image": {0: "batch"}, "mask": {0: "batch"}},
            export_params=True,
            dynamo=False,
        )
    finally:
        model.train(was_training)
    log.info("Exported ONNX model to %s", path)
    return path


def verify_onnx(path: str | Path) -> None:
    """Raise ``onnx.checker.ValidationError`` if the exported graph is invalid."""
    onnx_model = onnx.load(str(path))
    onnx.checker.check_model(onnx_model)


def load_session(path: str | Path, device: str = "cpu") -> ort.InferenceSession:
    """Load ONNX model using ONNX Runtime and return InferenceSession object."""
    if device not in ("cpu", "gpu"):
        raise ValueError(f"device must be 'cpu' or 'gpu', got '{device}'")
    if device == "gpu":
        providers = ["CUDAExecutionProvider", "CPUExecutionProvider"]
    else:
        providers = ["CPUExecutionProvider"]
    return ort.InferenceSession(str(path), providers=providers)


def predict_onnx(session: ort.InferenceSession, images: np.ndarray) -> np.ndarray:
    """Same contract as ``predict_probabilities``: (N, H, W, C) in, (N, H, W, 1) out."""
    batch = to_channels_first(images)
    input_name = session.get_inputs()[0].name
    outputs = session.run(None, {input_name: batch})
    return outputs[0].transpose(0, 2, 3, 1).astype(np.float32)
