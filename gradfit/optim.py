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

"""One gradient-descent update under SGD, momentum or RMSProp."""

import math
from dataclasses import dataclass
from typing import Literal, Optional, Union

import numpy as np

from .data import SampleSet
from .model import ZERO_GRADIENT, Gradient, Parameters

OptimizerKind = Literal["sgd", "momentum", "rmsprop"]

OPTIMIZER_KINDS: tuple[OptimizerKind, ...] = ("sgd", "momentum", "rmsprop")

MOMENTUM_DECAY = 0.9
RMSPROP_DECAY = 0.9
RMSPROP_EPSILON = 1e-8


@dataclass(frozen=True)
class SgdState:
    pass


@dataclass(frozen=True)
class MomentumState:
    # Velocity of the previous update
    vm: float = 0.0
    vc: float = 0.0


@dataclass(frozen=True)
class RmsPropState:
    # Running average of the squared gradient. `None` until the first step,
    # which seeds it from the squared gradient of that step.
    sm: Optional[float] = None
    sc: Optional[float] = None


OptimizerState = Union[SgdState, MomentumState, RmsPropState]


def init_state(kind: OptimizerKind) -> OptimizerState:
    if kind == "momentum":
        return MomentumState()
    elif kind == "rmsprop":
        return RmsPropState()
    else:
        return SgdState()


@dataclass(frozen=True)
class StepResult:
    params: Parameters
    state: OptimizerState
    # Raw MSE gradient of the batch, before any optimizer specific scaling
    gradient: Gradient


def sample_batch(
    samples: SampleSet, batch_size: int, rng: np.random.Generator
) -> SampleSet:
    """Draw `batch_size` samples uniformly without replacement."""
    if batch_size >= len(samples):
        return samples

    indices = rng.choice(len(samples), size=max(1, batch_size), replace=False)
    return SampleSet(samples.xs[indices], samples.ys[indices])


def compute_gradient(params: Parameters, batch: SampleSet) -> Gradient:
    if len(batch) == 0:
        return ZERO_GRADIENT

    residual = batch.ys - params.predict(batch.xs)

    return Gradient(
        m=float(np.mean(-2.0 * batch.xs * residual)),
        c=float(np.mean(-2.0 * residual)),
    )


def optimizer_step(
    params: Parameters,
    samples: SampleSet,
    *,
    lr: float,
    kind: OptimizerKind,
    state: OptimizerState,
    batch_size: Optional[int] = None,
    rng: Optional[np.random.Generator] = None,
) -> StepResult:
    """
    Compute one parameter update.

    The state is never mutated; the updated accumulator is returned in the
    result and the caller decides whether to keep it.

    Only `sgd` honours `batch_size`; the other kinds always use every sample.
    """
    if len(samples) == 0:
        return StepResult(params=params, state=state, gradient=ZERO_GRADIENT)

    batch = samples
    if kind == "sgd" and batch_size is not None and batch_size < len(samples):
        batch = sample_batch(
            samples, batch_size, rng if rng is not None else np.random.default_rng()
        )

    grad = compute_gradient(params, batch)

    if kind == "momentum":
        if not isinstance(state, MomentumState):
            raise ValueError(f"{type(state).__name__} cannot drive 'momentum'")

        vm = MOMENTUM_DECAY * state.vm - lr * grad.m
        vc = MOMENTUM_DECAY * state.vc - lr * grad.c

        return StepResult(
            params=Parameters(slope=params.slope + vm, intercept=params.intercept + vc),
            state=MomentumState(vm=vm, vc=vc),
            gradient=grad,
        )
    elif kind == "rmsprop":
        if not isinstance(state, RmsPropState):
            raise ValueError(f"{type(state).__name__} cannot drive 'rmsprop'")

        prev_sm = state.sm if state.sm is not None else grad.m**2
        prev_sc = state.sc if state.sc is not None else grad.c**2

        sm = RMSPROP_DECAY * prev_sm + (1 - RMSPROP_DECAY) * grad.m**2
        sc = RMSPROP_DECAY * prev_sc + (1 - RMSPROP_DECAY) * grad.c**2

        return StepResult(
            params=Parameters(
                slope=params.slope - lr * grad.m / (math.sqrt(sm) + RMSPROP_EPSILON),
                intercept=params.intercept
                - lr * grad.c / (math.sqrt(sc) + RMSPROP_EPSILON),
            ),
            state=RmsPropState(sm=sm, sc=sc),
            gradient=grad,
        )
    else:
        return StepResult(
            params=Parameters(
                slope=params.slope - lr * grad.m,
                intercept=params.intercept - lr * grad.c,
            ),
            state=state,
            gradient=grad,
        )
