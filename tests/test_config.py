from pathlib import Path

import pytest
from hydra import compose, initialize_config_dir
from omegaconf import OmegaConf
from omegaconf.errors import ValidationError

from floodseg.config import default_config, register_configs

CONFIG_DIR = Path(__file__).resolve().parents[1] / "configs"


def test_defaults():
    cfg = default_config()
    assert (cfg.data.tile_height, cfg.data.tile_width, cfg.data.channels) == (128, 128, 8)
    assert cfg.data.max_tiles == 5000
    assert cfg.data.train_fraction == pytest.approx(0.8)
    assert cfg.data.batch_size == 10
    assert cfg.trainer.max_epochs == 10
    assert cfg.optimizer._target_ == "torch.optim.Adam"
    assert cfg.optimizer.lr == pytest.approx(1e-4)
    assert cfg.model.base_filters == 64
    assert cfg.model.depth == 2
    assert cfg.scheduler is None


def test_model_channels_follow_data_channels():
    cfg = default_config(data={"channels": 4})
    assert cfg.model.in_channels == 4


def test_schema_rejects_wrong_types():
    with pytest.raises(ValidationError):
        default_config(data={"batch_size": "ten"})


def test_project_config_composes():
    register_configs()
    with initialize_config_dir(config_dir=str(CONFIG_DIR), version_base="1.3"):
        cfg = compose(config_name="config", overrides=["data.batch_size=4", "trainer.max_epochs=2"])

    assert cfg.data.batch_size == 4
    assert cfg.trainer.max_epochs == 2
    assert cfg.model.in_channels == 8
    assert cfg.logger._target_ == "pytorch_lightning.loggers.MLFlowLogger"
    container = OmegaConf.to_container(cfg, resolve=True)
    assert container["callbacks"]["model_checkpoint"]["monitor"] == "valid_loss"
