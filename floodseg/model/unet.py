"""U-Net assembled from a layer-spec list."""

import logging

import torch
import torch.nn as nn
from omegaconf import DictConfig

from floodseg.model.topology import (
    ConcatSpec,
    ConvSpec,
    HeadSpec,
    LayerSpec,
    PoolSpec,
    UpConvSpec,
    infer_shapes,
    unet_topology,
)

log = logging.getLogger(__name__)


class UNet(nn.Module):
    """Encoder-decoder network with skip connections.

    Args:
        layers: Layer specs, as from ``unet_topology``.
        in_channels: Number of input bands.

    Example:
        >>> model = UNet(unet_topology(), in_channels=8)
        >>> x = torch.rand(2, 8, 128, 128)
        >>> model(x).shape
        torch.Size([2, 1, 128, 128])
    """

    def __init__(self, layers: list[LayerSpec], in_channels: int) -> None:
        super().__init__()
        self.topology = list(layers)

        modules = []
        channels = in_channels
        saved_channels: dict[str, int] = {}
        for spec in self.topology:
            if isinstance(spec, ConvSpec):
                modules.append(nn.Sequential(
                    nn.Conv2d(channels, spec.out_channels, spec.kernel_size, padding=spec.kernel_size // 2),
                    nn.ReLU(inplace=True),
                ))
                channels = spec.out_channels
                if spec.save_as is not None:
                    saved_channels[spec.save_as] = channels
            elif isinstance(spec, PoolSpec):
                modules.append(nn.MaxPool2d(spec.size, stride=spec.size))
            elif isinstance(spec, UpConvSpec):
                modules.append(nn.ConvTranspose2d(channels, spec.out_channels, spec.size, stride=spec.size))
                channels = spec.out_channels
            elif isinstance(spec, ConcatSpec):
                # concatenation happens in forward, keep indices aligned
                modules.append(nn.Identity())
                channels += saved_channels[spec.skip]
            elif isinstance(spec, HeadSpec):
                # sigmoid is applied in forward
                modules.append(nn.Conv2d(channels, spec.out_channels, 1))
                channels = spec.out_channels
        self.layers = nn.ModuleList(modules)
        self.out_channels = channels

    @classmethod
    def from_config(
        cls,
        model_cfg: DictConfig,
        input_shape: tuple[int, int, int] | None = None,
    ) -> "UNet":
        """Build the network described by ``cfg.model``.

        When ``input_shape`` (H, W, C) is given the topology is validated for
        it first, so a tile size the pooling stages cannot handle fails here.
        """
        layers = unet_topology(
            base_filters=model_cfg.base_filters,
            depth=model_cfg.depth,
            out_channels=model_cfg.out_channels,
        )
        if input_shape is not None:
            infer_shapes(layers, input_shape)
        model = cls(layers, in_channels=model_cfg.in_channels)
        log.info("Built U-Net with %s parameters", f"{sum(p.numel() for p in model.parameters()):,}")
        return model

    def logits(self, x: torch.Tensor) -> torch.Tensor:
        """Pre-sigmoid head output of shape (B, out_channels, H, W)."""
        skips: dict[str, torch.Tensor] = {}
        for spec, layer in zip(self.topology, self.layers):
            if isinstance(spec, ConcatSpec):
                x = torch.cat([x, skips[spec.skip]], dim=1)
            else:
                x = layer(x)
            if isinstance(spec, ConvSpec) and spec.save_as is not None:
                skips[spec.save_as] = x
        return x

    def forward(self, x: torch.Tensor) -> torch.Tensor:
        """Forward pass through the network.

        Args:
            x: Input tensor of shape (B, C, H, W).

        Returns:
            Per-pixel probabilities of shape (B, out_channels, H, W).
        """
        return torch.sigmoid(self.logits(x))
