"""Per-epoch training history and its tabular export."""

import csv
from dataclasses import dataclass
from typing import IO, Any, Iterator, Optional

from .model import ZERO_GRADIENT, Gradient, Parameters

EXPORT_COLUMNS = ("epoch", "slope", "intercept", "training_loss", "testing_loss")


@dataclass(frozen=True)
class EpochRecord:
    epoch: int
    slope: float
    intercept: float
    train_loss: float
    test_loss: float
    gradient: Gradient = ZERO_GRADIENT

    @property
    def params(self) -> Parameters:
        return Parameters(slope=self.slope, intercept=self.intercept)

    def to_row(self) -> dict[str, Any]:
        return {
            "epoch": self.epoch,
            "slope": self.slope,
            "intercept": self.intercept,
            "training_loss": self.train_loss,
            "testing_loss": self.test_loss,
        }


class HistoryStore:
    """
    Append-only sequence of `EpochRecord`, index 0 being the snapshot taken
    before the first update.
    """

    def __init__(self) -> None:
        self._records: list[EpochRecord] = []

    def append(self, record: EpochRecord) -> None:
        last = self.last
        if last is not None and record.epoch <= last.epoch:
            raise ValueError(
                f"epoch must increase monotonically ({record.epoch} after {last.epoch})"
            )

        self._records.append(record)

    def clear(self) -> None:
        self._records = []

    @property
    def last(self) -> Optional[EpochRecord]:
        return self._records[-1] if self._records else None

    @property
    def records(self) -> tuple[EpochRecord, ...]:
        return tuple(self._records)

    def __len__(self) -> int:
        return len(self._records)

    def __iter__(self) -> Iterator[EpochRecord]:
        return iter(tuple(self._records))

    def __getitem__(self, index: int) -> EpochRecord:
        return self._records[index]

    # --- Column views for charts ---

    @property
    def epochs(self) -> list[int]:
        return [r.epoch for r in self._records]

    @property
    def slopes(self) -> list[float]:
        return [r.slope for r in self._records]

    @property
    def intercepts(self) -> list[float]:
        return [r.intercept for r in self._records]

    @property
    def train_losses(self) -> list[float]:
        return [r.train_loss for r in self._records]

    @property
    def test_losses(self) -> list[float]:
        return [r.test_loss for r in self._records]

    @property
    def gradients(self) -> list[Gradient]:
        return [r.gradient for r in self._records]

    # --- Export ---

    def to_rows(self) -> list[dict[str, Any]]:
        return [r.to_row() for r in self._records]

    def write_csv(self, f: IO[str]) -> None:
        writer = csv.DictWriter(f, fieldnames=EXPORT_COLUMNS, lineterminator="\n")
        writer.writeheader()
        writer.writerows(self.to_rows())


def read_csv(f: IO[str]) -> list[dict[str, Any]]:
    """Read rows written by `HistoryStore.write_csv()` back as numbers."""
    reader = csv.DictReader(f)

    if tuple(reader.fieldnames or ()) != EXPORT_COLUMNS:
        raise ValueError(f"unexpected header: {reader.fieldnames}")

    rows = []
    for raw in reader:
        row: dict[str, Any] = {"epoch": int(raw["epoch"])}
        for column in EXPORT_COLUMNS[1:]:
            row[column] = float(raw[column])
        rows.append(row)

    return rows
