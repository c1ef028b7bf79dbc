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

import dataclasses
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional

import numpy as np

from gradfit.data import DataSet, SampleSet, generate_dataset
from gradfit.history import EpochRecord, HistoryStore
from gradfit.loss import (
    ConfidenceBand,
    LandscapeConfig,
    LossLandscape,
    confidence_band,
    landscape,
    mse,
    r_squared,
)
from gradfit.model import ZERO_GRADIENT, Gradient, Parameters
from gradfit.optim import OptimizerKind, OptimizerState, init_state, optimizer_step
from gradfit.target import TargetFunction, make_target_function

from .base import DATA_FIELDS, TrainingOptions


class SessionState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    PAUSED = "paused"
    COMPLETE = "complete"


@dataclass(frozen=True)
class SessionSnapshot:
    """Read-only view of a session for rendering."""

    state: SessionState
    epoch: int
    n_epochs: int
    params: Parameters
    optimizer: OptimizerKind
    history: tuple[EpochRecord, ...]
    training: SampleSet
    testing: SampleSet
    train_r_squared: float
    test_r_squared: float
    confidence_band: ConfidenceBand
    function_description: str
    function_error: Optional[str]

    @property
    def progress(self) -> float:
        return self.epoch / self.n_epochs


class TrainingSession:
    """
    Fits a line to synthetic data, one gradient-descent update per `step()`.

    States: IDLE -> RUNNING <-> PAUSED -> COMPLETE, and `reset()` from
    anywhere back to IDLE. Calls that do not apply to the current state are
    ignored instead of raising.

    The session is not thread-safe; drive it from a single coordinator.
    """

    options: TrainingOptions
    state: SessionState
    epoch: int
    params: Parameters
    target: TargetFunction
    dataset: DataSet
    history: HistoryStore

    _optimizer_state: OptimizerState
    _rng: np.random.Generator

    def __init__(
        self,
        options: Optional[TrainingOptions] = None,
        *,
        rng: Optional[np.random.Generator] = None,
    ):
        self.options = (options or TrainingOptions()).clamped()
        self._rng = rng if rng is not None else np.random.default_rng(self.options.seed)
        self.history = HistoryStore()
        self.reset()

    # --- Control ---

    def reset(self, options: Optional[TrainingOptions] = None) -> None:
        """Regenerate the data, draw new initial parameters and clear the history."""
        if options is not None:
            seed_changed = options.seed != self.options.seed
            self.options = options.clamped()
            if seed_changed:
                self._rng = np.random.default_rng(self.options.seed)

        self.target = make_target_function(
            self.options.function_type,
            slope=self.options.true_slope,
            intercept=self.options.true_intercept,
            degree=self.options.polynomial_degree,
            expression=self.options.custom_expression,
        )
        self.dataset = generate_dataset(
            self.options.n_points,
            self.target,
            self.options.noise_level,
            rng=self._rng,
            x_min=self.options.x_min,
            x_max=self.options.x_max,
            train_split_pct=self.options.train_split_pct,
        )
        self._initialize_parameters()
        self.state = SessionState.IDLE

    def start(self) -> None:
        if self.state is SessionState.PAUSED:
            self.state = SessionState.RUNNING
            return

        if self.state is not SessionState.IDLE:
            return

        # Starting from scratch re-rolls the initial parameters, resuming does not
        if self.epoch == 0:
            self._initialize_parameters()

        self.state = SessionState.RUNNING

    def pause(self) -> None:
        if self.state is SessionState.RUNNING:
            self.state = SessionState.PAUSED

    def resume(self) -> None:
        if self.state is SessionState.PAUSED:
            self.state = SessionState.RUNNING

    def step(self) -> Optional[EpochRecord]:
        """
        Run one optimizer update and record it.

        Returns the appended record, or `None` if the session is complete.
        """
        if self.state is SessionState.COMPLETE or self.epoch >= self.options.n_epochs:
            return None

        training = self.dataset.training
        result = optimizer_step(
            self.params,
            training,
            lr=self.options.lr,
            kind=self.options.optimizer,
            state=self._optimizer_state,
            batch_size=self.effective_batch_size,
            rng=self._rng,
        )

        self.params = result.params
        self._optimizer_state = result.state
        self.epoch += 1

        record = self._record(result.gradient)

        if self.epoch >= self.options.n_epochs:
            self.state = SessionState.COMPLETE

        return record

    def configure(self, **changes: Any) -> bool:
        """
        Update hyperparameters.

        Changes to any field in `DATA_FIELDS` regenerate the data via an
        implicit `reset()`. Switching the optimizer starts a fresh accumulator
        for the new kind. Learning rate, batch size and epoch budget take
        effect from the next step; an epoch budget below the current epoch is
        raised to the current epoch, which completes the session.

        Returns:
            bool: Whether the session was reset.
        """
        new_options = dataclasses.replace(self.options, **changes).clamped()
        changed = {
            f.name
            for f in dataclasses.fields(TrainingOptions)
            if getattr(new_options, f.name) != getattr(self.options, f.name)
        }

        if changed & DATA_FIELDS:
            self.reset(new_options)
            return True

        # The history already holds `epoch` updates, so the budget cannot drop below it
        self.options = dataclasses.replace(
            new_options, n_epochs=max(new_options.n_epochs, self.epoch)
        )

        if "optimizer" in changed:
            self._optimizer_state = init_state(self.options.optimizer)

        if (
            self.epoch >= self.options.n_epochs
            and self.state is not SessionState.COMPLETE
        ):
            self.state = SessionState.COMPLETE

        return False

    # --- Queries ---

    @property
    def effective_batch_size(self) -> int:
        return min(self.options.batch_size, max(1, len(self.dataset.training)))

    @property
    def optimizer_state(self) -> OptimizerState:
        return self._optimizer_state

    @property
    def is_complete(self) -> bool:
        return self.state is SessionState.COMPLETE

    def train_r_squared(self) -> float:
        return r_squared(self.params, self.dataset.training)

    def test_r_squared(self) -> float:
        return r_squared(self.params, self.dataset.testing)

    def confidence_band(self) -> ConfidenceBand:
        last = self.history.last
        return confidence_band(self.params, last.train_loss if last else None)

    def landscape(self, config: LandscapeConfig = LandscapeConfig()) -> LossLandscape:
        """Loss surface of the training split around the true slope/intercept."""
        return landscape(
            self.dataset.training,
            self.options.true_slope,
            self.options.true_intercept,
            config,
        )

    def snapshot(self) -> SessionSnapshot:
        return SessionSnapshot(
            state=self.state,
            epoch=self.epoch,
            n_epochs=self.options.n_epochs,
            params=self.params,
            optimizer=self.options.optimizer,
            history=self.history.records,
            training=self.dataset.training,
            testing=self.dataset.testing,
            train_r_squared=self.train_r_squared(),
            test_r_squared=self.test_r_squared(),
            confidence_band=self.confidence_band(),
            function_description=self.target.describe(),
            function_error=self.target.error,
        )

    # --- Internals ---

    def _initialize_parameters(self) -> None:
        slope, intercept = self._rng.uniform(0.0, 2.0, size=2)

        self.params = Parameters(slope=float(slope), intercept=float(intercept))
        self.epoch = 0
        self._optimizer_state = init_state(self.options.optimizer)
        self.history.clear()
        self._record(ZERO_GRADIENT)

    def _record(self, gradient: Gradient) -> EpochRecord:
        record = EpochRecord(
            epoch=self.epoch,
            slope=self.params.slope,
            intercept=self.params.intercept,
            train_loss=mse(self.params, self.dataset.training),
            test_loss=mse(self.params, self.dataset.testing),
            gradient=gradient,
        )
        self.history.append(record)
        return record
