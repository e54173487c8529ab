"""Per-epoch training state."""

import math
from dataclasses import dataclass, fields


@dataclass(frozen=True)
class EpochRecord:
    """Metrics of one finished epoch.

    Losses and accuracies are averaged over every tile seen in the epoch.
    A diverged run shows up here as NaN or Inf values.
    """

    epoch: int
    global_step: int
    train_loss: float
    train_accuracy: float
    valid_loss: float
    valid_accuracy: float

    def is_finite(self) -> bool:
        return all(
            math.isfinite(v)
            for v in (self.train_loss, self.train_accuracy, self.valid_loss, self.valid_accuracy)
        )


def history_as_dict(records: list[EpochRecord]) -> dict[str, list]:
    """Column view of the history, one list per field.

    Example:
        >>> history_as_dict([EpochRecord(0, 8, 0.7, 0.5, 0.6, 0.6)])["valid_loss"]
        [0.6]
    """
    return {f.name: [getattr(r, f.name) for r in records] for f in fields(EpochRecord)}
