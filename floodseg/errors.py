"""Exceptions raised while preparing flood tiles and building the network."""


class FloodSegError(Exception):
    """Base class for all floodseg errors."""


class TileError(FloodSegError):
    """A single tile could not be used. The tile is dropped, the pipeline goes on."""

    def __init__(self, message: str, path: str | None = None) -> None:
        super().__init__(message)
        self.path = path


class TileDecodeError(TileError):
    """Image or mask file failed to decode into a usable array."""


class DegenerateTileError(TileError):
    """Image has no positive maximum, so it cannot be max-normalized."""


class PipelineError(FloodSegError):
    """Dataset construction failed. Raised before any training starts."""


class TilePairingError(PipelineError):
    """Image and mask directories do not hold the same set of tiles."""


class EmptyDatasetError(PipelineError):
    """No usable tiles are left for training or evaluation."""


class TopologyError(FloodSegError):
    """A layer graph is inconsistent (bad skip tag, odd pooling extent, ...)."""
