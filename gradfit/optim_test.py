import math

import numpy as np
import pytest

from gradfit.data import SampleSet
from gradfit.model import Parameters
from gradfit.optim import (
    MomentumState,
    RmsPropState,
    SgdState,
    compute_gradient,
    init_state,
    optimizer_step,
    sample_batch,
)

# y = 2x + 1
SAMPLES = SampleSet([0.0, 1.0, 2.0, 3.0], [1.0, 3.0, 5.0, 7.0])
START = Parameters(slope=0.0, intercept=0.0)


def test_gradient_formula():
    grad = compute_gradient(START, SAMPLES)

    xs, ys = SAMPLES.xs, SAMPLES.ys
    assert grad.m == pytest.approx(np.mean(-2 * xs * ys))
    assert grad.c == pytest.approx(np.mean(-2 * ys))


def test_gradient_vanishes_at_the_optimum():
    grad = compute_gradient(Parameters(slope=2.0, intercept=1.0), SAMPLES)
    assert grad.m == pytest.approx(0.0)
    assert grad.c == pytest.approx(0.0)


def test_sgd_update():
    grad = compute_gradient(START, SAMPLES)
    result = optimizer_step(START, SAMPLES, lr=0.1, kind="sgd", state=SgdState())

    assert result.params.slope == pytest.approx(-0.1 * grad.m)
    assert result.params.intercept == pytest.approx(-0.1 * grad.c)
    assert result.gradient == grad


def test_full_batch_sgd_is_deterministic():
    a = optimizer_step(
        START, SAMPLES, lr=0.05, kind="sgd", state=SgdState(), batch_size=len(SAMPLES)
    )
    b = optimizer_step(
        START, SAMPLES, lr=0.05, kind="sgd", state=SgdState(), batch_size=len(SAMPLES)
    )
    assert a == b


def test_sample_batch_without_replacement():
    samples = SampleSet(np.arange(20.0), np.arange(20.0))
    batch = sample_batch(samples, 8, np.random.default_rng(1))

    assert len(batch) == 8
    assert len(set(batch.xs.tolist())) == 8
    assert set(batch.xs.tolist()) <= set(samples.xs.tolist())


def test_sample_batch_is_reproducible_with_seed():
    samples = SampleSet(np.arange(20.0), np.arange(20.0))
    a = sample_batch(samples, 5, np.random.default_rng(7))
    b = sample_batch(samples, 5, np.random.default_rng(7))

    np.testing.assert_array_equal(a.xs, b.xs)


def test_only_sgd_subsamples():
    rng = np.random.default_rng(0)
    full = compute_gradient(START, SAMPLES)

    result = optimizer_step(
        START,
        SAMPLES,
        lr=0.1,
        kind="momentum",
        state=MomentumState(),
        batch_size=1,
        rng=rng,
    )
    assert result.gradient == full


def test_momentum_first_step_matches_sgd_then_differs():
    sgd_1 = optimizer_step(START, SAMPLES, lr=0.01, kind="sgd", state=SgdState())
    mom_1 = optimizer_step(
        START, SAMPLES, lr=0.01, kind="momentum", state=init_state("momentum")
    )
    assert mom_1.params.slope == pytest.approx(sgd_1.params.slope)
    assert mom_1.params.intercept == pytest.approx(sgd_1.params.intercept)

    sgd_2 = optimizer_step(
        mom_1.params, SAMPLES, lr=0.01, kind="sgd", state=SgdState()
    )
    mom_2 = optimizer_step(
        mom_1.params, SAMPLES, lr=0.01, kind="momentum", state=mom_1.state
    )
    assert mom_2.params != sgd_2.params

    assert isinstance(mom_2.state, MomentumState)
    # v' = 0.9 v - lr * g
    assert mom_2.state.vm == pytest.approx(
        0.9 * mom_1.state.vm - 0.01 * mom_2.gradient.m
    )


def test_rmsprop_seeds_from_first_squared_gradient():
    result = optimizer_step(
        START, SAMPLES, lr=0.01, kind="rmsprop", state=init_state("rmsprop")
    )
    grad = result.gradient

    assert isinstance(result.state, RmsPropState)
    assert result.state.sm == pytest.approx(grad.m**2)
    assert result.state.sc == pytest.approx(grad.c**2)

    # The first step has unit magnitude per coordinate
    assert result.params.slope == pytest.approx(
        -0.01 * grad.m / (math.sqrt(grad.m**2) + 1e-8)
    )


def test_rmsprop_running_average():
    state = RmsPropState(sm=4.0, sc=1.0)
    result = optimizer_step(START, SAMPLES, lr=0.01, kind="rmsprop", state=state)
    grad = result.gradient

    assert isinstance(result.state, RmsPropState)
    assert result.state.sm == pytest.approx(0.9 * 4.0 + 0.1 * grad.m**2)
    assert result.state.sc == pytest.approx(0.9 * 1.0 + 0.1 * grad.c**2)


def test_state_is_not_mutated():
    state = MomentumState(vm=1.0, vc=1.0)
    optimizer_step(START, SAMPLES, lr=0.01, kind="momentum", state=state)
    assert state == MomentumState(vm=1.0, vc=1.0)


def test_mismatched_state_is_rejected():
    with pytest.raises(ValueError):
        optimizer_step(START, SAMPLES, lr=0.01, kind="rmsprop", state=SgdState())


def test_empty_samples_leave_parameters_unchanged():
    result = optimizer_step(
        START, SampleSet.empty(), lr=0.1, kind="momentum", state=MomentumState()
    )

    assert result.params == START
    assert result.gradient.m == 0.0
    assert result.gradient.c == 0.0
