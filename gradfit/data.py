"""Synthetic (x, y) samples and their train/test partition."""

import math
from dataclasses import dataclass
from functools import cached_property
from typing import Iterable, Iterator, Union, overload

import numpy as np

from .target import TargetFunction


@dataclass(frozen=True)
class Sample:
    x: float
    y: float


class SampleSet:
    """
    An immutable, ordered collection of samples stored column-wise.

    The underlying arrays are private copies flagged read-only, so a
    `SampleSet` can be handed to the view layer without defensive copying.
    """

    __slots__ = ("xs", "ys")

    xs: np.ndarray
    ys: np.ndarray

    def __init__(self, xs: Iterable[float], ys: Iterable[float]):
        xs_arr = np.array(xs, dtype=np.float64).reshape(-1)
        ys_arr = np.array(ys, dtype=np.float64).reshape(-1)

        if xs_arr.shape != ys_arr.shape:
            raise ValueError(
                f"xs and ys must have the same length ({len(xs_arr)} != {len(ys_arr)})"
            )

        xs_arr.flags.writeable = False
        ys_arr.flags.writeable = False

        self.xs = xs_arr
        self.ys = ys_arr

    @classmethod
    def from_samples(cls, samples: Iterable[Sample]) -> "SampleSet":
        samples = list(samples)
        return cls([s.x for s in samples], [s.y for s in samples])

    @classmethod
    def empty(cls) -> "SampleSet":
        return cls([], [])

    def __len__(self) -> int:
        return len(self.xs)

    def __iter__(self) -> Iterator[Sample]:
        for x, y in zip(self.xs, self.ys):
            yield Sample(x=float(x), y=float(y))

    @overload
    def __getitem__(self, index: int) -> Sample: ...

    @overload
    def __getitem__(self, index: slice) -> "SampleSet": ...

    def __getitem__(self, index: Union[int, slice]) -> Union[Sample, "SampleSet"]:
        if isinstance(index, slice):
            return SampleSet(self.xs[index], self.ys[index])

        return Sample(x=float(self.xs[index]), y=float(self.ys[index]))

    def __repr__(self) -> str:
        return f"SampleSet(n={len(self)})"


@dataclass(frozen=True, eq=False)
class DataSet:
    # Sorted by ascending x
    samples: SampleSet
    # Number of leading samples that belong to the training split
    split_index: int

    @cached_property
    def training(self) -> SampleSet:
        return self.samples[: self.split_index]

    @cached_property
    def testing(self) -> SampleSet:
        return self.samples[self.split_index :]

    def __len__(self) -> int:
        return len(self.samples)


def split_index(n: int, train_split_pct: float) -> int:
    """
    Number of training samples for `n` samples and a percentage split.

    Rounds half up, and keeps at least one training sample whenever there is
    data at all.
    """
    if n <= 0:
        return 0

    pct = min(max(train_split_pct, 0.0), 100.0)
    index = int(math.floor(n * pct / 100 + 0.5))

    return min(max(index, 1), n)


def generate_dataset(
    n: int,
    target: TargetFunction,
    noise_level: float,
    *,
    rng: np.random.Generator,
    x_min: float = 0.0,
    x_max: float = 10.0,
    train_split_pct: float = 80.0,
) -> DataSet:
    n = max(0, int(n))
    noise_level = max(0.0, noise_level)

    xs = rng.uniform(x_min, x_max, size=n)
    noise = rng.uniform(-noise_level, noise_level, size=n)
    ys = target.evaluate(xs) + noise

    # Sorting keeps the ordering reproducible for plotting and makes the
    # split a contiguous range of x.
    order = np.argsort(xs, kind="stable")

    return DataSet(
        samples=SampleSet(xs[order], ys[order]),
        split_index=split_index(n, train_split_pct),
    )
