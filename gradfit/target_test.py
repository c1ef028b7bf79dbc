import numpy as np
import pytest

from gradfit.target import (
    CustomFunction,
    InvalidExpressionError,
    LinearFunction,
    PolynomialFunction,
    compile_expression,
    make_target_function,
    validate_expression,
)


def test_linear_function():
    fn = LinearFunction(slope=7.0, intercept=3.0)
    assert fn(0.0) == 3.0
    assert fn(2.0) == 17.0
    assert fn.describe() == "y = 7x + 3"


def test_polynomial_uses_shrinking_slope_coefficients():
    fn = PolynomialFunction(slope=6.0, intercept=1.0, degree=3)
    # 1 + 6*2 + (6/2)*2^2 + (6/3)*2^3
    assert fn(2.0) == pytest.approx(1 + 12 + 12 + 16)
    assert fn.describe() == "y = 2.00x^3 + 3.00x^2 + 6x + 1"


def test_polynomial_degree_is_at_least_two():
    fn = make_target_function("polynomial", slope=2.0, intercept=0.0, degree=1)
    assert isinstance(fn, PolynomialFunction)
    assert fn.degree == 2


def test_custom_expression_is_evaluated_vectorized():
    fn = CustomFunction("7 * x + 3 + sin(x) * 5", slope=0.0, intercept=0.0)
    xs = np.array([0.0, 1.0, 2.0])

    np.testing.assert_allclose(fn.evaluate(xs), 7 * xs + 3 + np.sin(xs) * 5)
    assert fn.error is None


def test_custom_constant_expression_broadcasts():
    fn = CustomFunction("2 ^ 3", slope=0.0, intercept=0.0)
    np.testing.assert_allclose(fn.evaluate(np.array([1.0, 5.0])), [8.0, 8.0])


@pytest.mark.parametrize(
    "expression",
    [
        "",
        "7 *",
        "__import__('os').system('true')",
        "x.real",
        "open('f')",
        "y + 1",
        "'abc'",
        "[x, x]",
        "sin(x, x)",
        "pi(x)",
    ],
)
def test_rejected_expressions(expression):
    with pytest.raises(InvalidExpressionError):
        compile_expression(expression)


def test_invalid_expression_falls_back_to_linear():
    fn = CustomFunction("x +* 2", slope=2.0, intercept=1.0)

    assert fn(3.0) == 7.0
    assert fn.error is not None
    assert fn.error.startswith("Invalid function:")


def test_non_real_values_fall_back_per_point():
    fn = CustomFunction("sqrt(x)", slope=1.0, intercept=10.0)
    ys = fn.evaluate(np.array([-4.0, 4.0]))

    # sqrt(-4) is not real, so the linear value 1 * -4 + 10 is used
    np.testing.assert_allclose(ys, [6.0, 2.0])
    assert fn.error is not None


def test_validate_expression():
    assert validate_expression("2 * x**2 + 3 * x + 1") is None
    assert validate_expression("exp(x) - log(x)") is None
    assert validate_expression("x +") is not None


def test_make_target_function_dispatch():
    assert isinstance(
        make_target_function("linear", slope=1.0, intercept=0.0), LinearFunction
    )
    custom = make_target_function(
        "custom", slope=1.0, intercept=0.0, expression="x * 2"
    )
    assert isinstance(custom, CustomFunction)
    assert custom.describe() == "y = x * 2"


def test_error_reflects_the_latest_evaluation():
    fn = CustomFunction("sqrt(x)", slope=1.0, intercept=0.0)

    fn.evaluate(np.array([-1.0]))
    assert fn.error is not None

    np.testing.assert_allclose(fn.evaluate(np.array([4.0])), [2.0])
    assert fn.error is None


def test_parse_error_is_kept_across_evaluations():
    fn = CustomFunction("x +", slope=1.0, intercept=0.0)
    fn.evaluate(np.array([1.0]))
    fn.evaluate(np.array([2.0]))

    assert fn.error is not None


def test_describe_keeps_full_precision():
    fn = LinearFunction(slope=1.23456789, intercept=-0.5)
    assert fn.describe() == "y = 1.23456789x + -0.5"

    poly = PolynomialFunction(slope=1.23456789, intercept=3.0, degree=2)
    assert poly.describe() == "y = 0.62x^2 + 1.23456789x + 3"
