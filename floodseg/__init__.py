"""Flood segmentation of multispectral tiles with a U-Net."""

__version__ = "0.1.0"
