from floodseg.config.training_config import TrainingConfig, default_config, register_configs

__all__ = ["TrainingConfig", "default_config", "register_configs"]
