from floodseg.lightning_module.history import EpochRecord, history_as_dict
from floodseg.lightning_module.unet_train_pipeline import UNetLightningModule

__all__ = ["EpochRecord", "UNetLightningModule", "history_as_dict"]
