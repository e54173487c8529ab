from floodseg.model.topology import infer_shapes, unet_topology
from floodseg.model.unet import UNet

__all__ = ["UNet", "infer_shapes", "unet_topology"]
