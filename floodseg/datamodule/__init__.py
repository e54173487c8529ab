from floodseg.datamodule.transforms import get_transforms

__all__ = ["get_transforms"]
