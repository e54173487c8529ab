"""Declarative description of the U-Net layer graph.

The network is a flat list of layer specs. Encoder convolutions name their
output with ``save_as``; decoder concatenations refer back to that name with
``skip``. ``infer_shapes`` walks the list with plain integers, so the topology
can be checked without building any tensors.
"""

from dataclasses import dataclass
from typing import Union

from floodseg.errors import TopologyError


@dataclass(frozen=True)
class ConvSpec:
    out_channels: int
    kernel_size: int = 3
    save_as: str | None = None


@dataclass(frozen=True)
class PoolSpec:
    size: int = 2


@dataclass(frozen=True)
class UpConvSpec:
    out_channels: int
    size: int = 2


@dataclass(frozen=True)
class ConcatSpec:
    skip: str


@dataclass(frozen=True)
class HeadSpec:
    out_channels: int = 1


LayerSpec = Union[ConvSpec, PoolSpec, UpConvSpec, ConcatSpec, HeadSpec]


def unet_topology(base_filters: int = 64, depth: int = 2, out_channels: int = 1) -> list[LayerSpec]:
    """Build the symmetric U-Net layer list.

    With the defaults this is two encoder stages (64, 128 filters) each ending
    in 2x2 max-pooling, a 256-filter bottleneck, two decoder stages that
    up-sample, concatenate the matching encoder output and convolve, and a
    1x1 sigmoid head.

    Example:
        >>> layers = unet_topology()
        >>> [spec.save_as for spec in layers if isinstance(spec, ConvSpec) and spec.save_as]
        ['skip_64', 'skip_128']
        >>> layers[-1]
        HeadSpec(out_channels=1)
    """
    if depth < 1:
        raise TopologyError(f"depth must be at least 1, got {depth}")

    layers: list[LayerSpec] = []
    filters = [base_filters * 2 ** level for level in range(depth)]

    for f in filters:
        tag = f"skip_{f}"
        layers += [ConvSpec(f), ConvSpec(f, save_as=tag), PoolSpec(2)]

    bottleneck = base_filters * 2 ** depth
    layers += [ConvSpec(bottleneck), ConvSpec(bottleneck)]

    for f in reversed(filters):
        layers += [UpConvSpec(f, 2), ConcatSpec(f"skip_{f}"), ConvSpec(f), ConvSpec(f)]

    layers.append(HeadSpec(out_channels))
    return layers


def infer_shapes(
        layers: list[LayerSpec],
        input_shape: tuple[int, int, int],
) -> list[tuple[int, int, int]]:
    """Propagate an (H, W, C) shape through the layer list.

    Args:
        layers: Layer specs, as from ``unet_topology``.
        input_shape: Input (height, width, channels).

    Returns:
        Output shape of every layer, in order.

    Raises:
        TopologyError: On a pooling of an extent that does not divide evenly,
            a skip tag that is unknown or defined twice, or a concatenation of
            tensors with different spatial extent.
    """
    h, w, c = input_shape
    saved: dict[str, tuple[int, int, int]] = {}
    used: set[str] = set()
    shapes = []

    for i, spec in enumerate(layers):
        if isinstance(spec, ConvSpec):
            c = spec.out_channels
            if spec.save_as is not None:
                if spec.save_as in saved:
                    raise TopologyError(f"Layer {i}: skip tag '{spec.save_as}' defined twice")
                saved[spec.save_as] = (h, w, c)
        elif isinstance(spec, PoolSpec):
            if h % spec.size or w % spec.size:
                raise TopologyError(f"Layer {i}: cannot pool {h}x{w} by {spec.size}")
            h, w = h // spec.size, w // spec.size
        elif isinstance(spec, UpConvSpec):
            h, w, c = h * spec.size, w * spec.size, spec.out_channels
        elif isinstance(spec, ConcatSpec):
            if spec.skip not in saved:
                raise TopologyError(f"Layer {i}: unknown skip tag '{spec.skip}'")
            sh, sw, sc = saved[spec.skip]
            if (sh, sw) != (h, w):
                raise TopologyError(
                    f"Layer {i}: cannot concatenate {h}x{w} with '{spec.skip}' of {sh}x{sw}"
                )
            used.add(spec.skip)
            c += sc
        elif isinstance(spec, HeadSpec):
            c = spec.out_channels
        else:
            raise TopologyError(f"Layer {i}: unknown layer spec {spec!r}")
        shapes.append((h, w, c))

    unused = set(saved) - used
    if unused:
        raise TopologyError(f"Skip tags never concatenated: {sorted(unused)}")
    return shapes


def skip_pairs(layers: list[LayerSpec]) -> list[tuple[int, int]]:
    """Index pairs (producing conv, consuming concat) for every skip connection."""
    producers = {
        spec.save_as: i for i, spec in enumerate(layers)
        if isinstance(spec, ConvSpec) and spec.save_as is not None
    }
    return [(producers[spec.skip], i) for i, spec in enumerate(layers) if isinstance(spec, ConcatSpec)]
