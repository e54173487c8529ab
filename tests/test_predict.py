import numpy as np
import pytest
import torch

from floodseg.config import default_config
from floodseg.inference.predict import predict_probabilities, to_channels_first
from floodseg.lightning_module import UNetLightningModule


@pytest.fixture(scope="module")
def model():
    torch.manual_seed(0)
    return UNetLightningModule(default_config(model={"base_filters": 4}))


@pytest.fixture
def images():
    rng = np.random.default_rng(0)
    return rng.random((5, 128, 128, 8), dtype=np.float32)


def test_probabilities_are_channels_last(model, images):
    probs = predict_probabilities(model, images)
    assert probs.shape == (5, 128, 128, 1)
    assert probs.dtype == np.float32
    assert probs.min() >= 0.0
    assert probs.max() <= 1.0


def test_single_tile_gets_a_batch_axis(model, images):
    probs = predict_probabilities(model, images[0])
    assert probs.shape == (1, 128, 128, 1)


def test_chunked_prediction_matches_one_pass(model, images):
    whole = predict_probabilities(model, images)
    chunked = predict_probabilities(model, images, batch_size=2)
    np.testing.assert_allclose(chunked, whole, rtol=1e-5, atol=1e-6)


def test_training_mode_is_restored(model, images):
    model.train()
    predict_probabilities(model, images[:1])
    assert model.training
    model.eval()
    predict_probabilities(model, images[:1])
    assert not model.training


def test_to_channels_first():
    batch = to_channels_first(np.zeros((2, 16, 32, 8)))
    assert batch.shape == (2, 8, 16, 32)
    assert batch.dtype == np.float32
    assert batch.flags["C_CONTIGUOUS"]


@pytest.mark.parametrize("shape", [(128, 128), (1, 1, 128, 128, 8)])
def test_bad_image_rank(model, shape):
    with pytest.raises(ValueError):
        predict_probabilities(model, np.zeros(shape, dtype=np.float32))


def test_onnx_export_matches_torch(model, images, tmp_path):
    pytest.importorskip("onnxruntime")
    from floodseg.inference.onnx_runtime import export_onnx, load_session, predict_onnx, verify_onnx

    path = export_onnx(model, tmp_path / "model.onnx")
    verify_onnx(path)
    session = load_session(path)

    np.testing.assert_allclose(
        predict_onnx(session, images[:3]),
        predict_probabilities(model, images[:3]),
        rtol=1e-4,
        atol=1e-5,
    )


def test_onnx_session_device_is_checked(tmp_path):
    pytest.importorskip("onnxruntime")
    from floodseg.inference.onnx_runtime import load_session

    with pytest.raises(ValueError):
        load_session(tmp_path / "missing.onnx", device="tpu")


def test_empty_batch_gives_empty_result(model):
    probs = predict_probabilities(model, np.zeros((0, 128, 128, 8), dtype=np.float32))
    assert probs.shape == (0, 128, 128, 1)
    assert probs.dtype == np.float32


@pytest.mark.parametrize("batch_size", [0, -3])
def test_batch_size_must_be_positive(model, images, batch_size):
    with pytest.raises(ValueError, match="batch_size"):
        predict_probabilities(model, images, batch_size=batch_size)
