# Copyright 2025 Takanori Ishikawa
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

"""Mean squared error and the metrics derived from it."""

import math
from dataclasses import dataclass
from typing import Iterator, Optional

import numpy as np

from .data import SampleSet
from .model import Parameters


def mse(params: Parameters, samples: SampleSet) -> float:
    """Mean squared error of the line over the samples; 0 for an empty set."""
    if len(samples) == 0:
        return 0.0

    residual = samples.ys - params.predict(samples.xs)
    return float(np.mean(residual**2))


def r_squared(params: Parameters, samples: SampleSet) -> float:
    """
    Coefficient of determination, 1 - SS_res / SS_tot.

    Not clamped: a line worse than the mean of y gives a negative value.
    Returns 0 for an empty set and when y has no variance at all.
    """
    if len(samples) == 0:
        return 0.0

    ss_total = float(np.sum((samples.ys - samples.ys.mean()) ** 2))
    ss_residual = float(np.sum((samples.ys - params.predict(samples.xs)) ** 2))

    if ss_total == 0.0:
        return 0.0

    return 1.0 - ss_residual / ss_total


@dataclass(frozen=True)
class ConfidenceBand:
    upper: Parameters
    lower: Parameters


def confidence_band(
    params: Parameters, last_train_loss: Optional[float]
) -> ConfidenceBand:
    """
    A coarse band of +/- sqrt(latest training loss) applied to both slope and
    intercept. This is a visual aid, not a statistical confidence interval.
    """
    std = math.sqrt(max(last_train_loss or 0.0, 0.0))

    return ConfidenceBand(
        upper=Parameters(slope=params.slope + std, intercept=params.intercept + std),
        lower=Parameters(slope=params.slope - std, intercept=params.intercept - std),
    )


@dataclass(frozen=True)
class LandscapeConfig:
    slope_range: float = 10.0
    intercept_range: float = 10.0
    step: float = 0.5


@dataclass(frozen=True)
class LandscapePoint:
    slope: float
    intercept: float
    loss: float


@dataclass(frozen=True, eq=False)
class LossLandscape:
    slopes: np.ndarray  # [M]
    intercepts: np.ndarray  # [C]
    losses: np.ndarray  # [M, C]

    def __len__(self) -> int:
        return self.losses.size

    def __iter__(self) -> Iterator[LandscapePoint]:
        # Slope-major, the order the grid is swept in
        for i, m in enumerate(self.slopes):
            for j, c in enumerate(self.intercepts):
                yield LandscapePoint(
                    slope=float(m), intercept=float(c), loss=float(self.losses[i, j])
                )

    def argmin(self) -> Optional[LandscapePoint]:
        if self.losses.size == 0:
            return None

        i, j = np.unravel_index(np.argmin(self.losses), self.losses.shape)
        return LandscapePoint(
            slope=float(self.slopes[i]),
            intercept=float(self.intercepts[j]),
            loss=float(self.losses[i, j]),
        )


def _grid_axis(center: float, extent: float, step: float) -> np.ndarray:
    lo = max(0.0, center - extent / 2)
    hi = center + extent / 2

    if hi < lo:
        return np.zeros(0, dtype=np.float64)

    # Index based so that float accumulation never drops the last point
    count = int(math.floor((hi - lo) / step + 1e-9)) + 1
    return lo + step * np.arange(count, dtype=np.float64)


def landscape(
    samples: SampleSet,
    slope_center: float,
    intercept_center: float,
    config: LandscapeConfig = LandscapeConfig(),
) -> LossLandscape:
    """
    Evaluate the MSE over a regular (slope, intercept) grid centered on the
    given coordinates. The lower bounds of both axes are clipped at 0.
    """
    if config.step <= 0:
        raise ValueError(f"step must be positive (got {config.step})")

    slopes = _grid_axis(slope_center, config.slope_range, config.step)
    intercepts = _grid_axis(intercept_center, config.intercept_range, config.step)

    if len(samples) == 0:
        losses = np.zeros((len(slopes), len(intercepts)), dtype=np.float64)
    else:
        # [M, C, N]
        predictions = (
            slopes[:, None, None] * samples.xs[None, None, :]
            + intercepts[None, :, None]
        )
        losses = np.mean((samples.ys[None, None, :] - predictions) ** 2, axis=-1)

    return LossLandscape(slopes=slopes, intercepts=intercepts, losses=losses)
