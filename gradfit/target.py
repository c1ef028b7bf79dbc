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

"""Ground-truth functions used to label the synthetic data."""

import ast
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Callable, Literal, Optional

import numpy as np
import sympy
from sympy.parsing.sympy_parser import (
    convert_xor,
    parse_expr,
    standard_transformations,
)

FunctionType = Literal["linear", "polynomial", "custom"]

FUNCTION_TYPES: tuple[FunctionType, ...] = ("linear", "polynomial", "custom")

DEFAULT_CUSTOM_EXPRESSION = "7 * x + 3 + sin(x) * 5"

X = sympy.Symbol("x", real=True)

# Names a custom expression may refer to, besides `x`.
EXPRESSION_NAMES: dict[str, Any] = {
    "sin": sympy.sin,
    "cos": sympy.cos,
    "tan": sympy.tan,
    "asin": sympy.asin,
    "acos": sympy.acos,
    "atan": sympy.atan,
    "sinh": sympy.sinh,
    "cosh": sympy.cosh,
    "tanh": sympy.tanh,
    "exp": sympy.exp,
    "log": sympy.log,
    "sqrt": sympy.sqrt,
    "abs": sympy.Abs,
    "floor": sympy.floor,
    "ceil": sympy.ceiling,
    "pi": sympy.pi,
    "e": sympy.E,
}

_CONSTANT_NAMES = frozenset({"pi", "e"})

_ALLOWED_OPERATORS = (
    ast.Add,
    ast.Sub,
    ast.Mult,
    ast.Div,
    ast.Pow,
    ast.Mod,
    # `^` is read as power
    ast.BitXor,
    ast.USub,
    ast.UAdd,
)


class InvalidExpressionError(ValueError):
    pass


class TargetFunction(ABC):
    slope: float
    intercept: float

    def __call__(self, x: float) -> float:
        return float(self.evaluate(np.array([x], dtype=np.float64))[0])

    def linear(self, xs: np.ndarray) -> np.ndarray:
        return self.slope * xs + self.intercept

    @property
    def error(self) -> Optional[str]:
        return None

    @abstractmethod
    def evaluate(self, xs: np.ndarray) -> np.ndarray:
        raise NotImplementedError

    @abstractmethod
    def describe(self) -> str:
        raise NotImplementedError


def format_number(value: float) -> str:
    """Full precision, without a trailing `.0` on whole numbers (`7`, `0.1234567891`)."""
    value = float(value)
    if value.is_integer():
        return str(int(value))

    return repr(value)


@dataclass(frozen=True)
class LinearFunction(TargetFunction):
    slope: float
    intercept: float

    def evaluate(self, xs: np.ndarray) -> np.ndarray:
        return self.linear(np.asarray(xs, dtype=np.float64))

    def describe(self) -> str:
        return f"y = {format_number(self.slope)}x + {format_number(self.intercept)}"


@dataclass(frozen=True)
class PolynomialFunction(TargetFunction):
    """
    y = c + m*x + sum_{i=2..d} (m/i) * x^i

    Higher order terms reuse the slope with a shrinking coefficient, so a single
    (slope, intercept) pair drives every degree.
    """

    slope: float
    intercept: float
    degree: int = 2

    def evaluate(self, xs: np.ndarray) -> np.ndarray:
        xs = np.asarray(xs, dtype=np.float64)
        ys = self.intercept + self.slope * xs

        for i in range(2, self.degree + 1):
            ys = ys + (self.slope / i) * np.power(xs, i)

        return ys

    def describe(self) -> str:
        terms = []
        for i in range(self.degree, -1, -1):
            if i == 0:
                terms.append(f"{format_number(self.intercept)}")
            elif i == 1:
                terms.append(f"{format_number(self.slope)}x")
            else:
                terms.append(f"{self.slope / i:.2f}x^{i}")

        return "y = " + " + ".join(terms)


class CustomFunction(TargetFunction):
    """
    A user supplied expression over `x`.

    The expression never raises out of `evaluate()`: when it cannot be parsed,
    or produces non-finite or complex values, those values are replaced by the
    linear formula with the current slope/intercept and `error` describes what
    went wrong.
    """

    expression: str

    _fn: Optional[Callable[[np.ndarray], Any]] = None
    _error: Optional[str] = None

    def __init__(self, expression: str, *, slope: float, intercept: float):
        self.expression = expression
        self.slope = slope
        self.intercept = intercept

        try:
            self._fn = compile_expression(expression)
        except InvalidExpressionError as e:
            self._error = f"Invalid function: {e}"

    @property
    def error(self) -> Optional[str]:
        return self._error

    def evaluate(self, xs: np.ndarray) -> np.ndarray:
        xs = np.asarray(xs, dtype=np.float64)
        fallback = self.linear(xs)

        if self._fn is None:
            return fallback

        # Reports only the failures of the latest call
        self._error = None

        try:
            with np.errstate(all="ignore"):
                raw = np.broadcast_to(np.asarray(self._fn(xs)), xs.shape)

                if np.iscomplexobj(raw):
                    real = np.isclose(raw.imag, 0.0)
                    raw = raw.real
                else:
                    real = np.ones(xs.shape, dtype=bool)

                ys = raw.astype(np.float64)
        except Exception as e:
            # Anything the user wrote may blow up at runtime (overflow, domain errors...)
            self._error = f"Invalid function: {e}"
            return fallback

        valid = real & np.isfinite(ys)

        if not valid.all():
            bad = xs[~valid][0]
            self._error = f"Invalid function: no real value at x={bad:g}"
            ys = np.where(valid, ys, fallback)

        return ys

    def describe(self) -> str:
        return f"y = {self.expression}"

    def __repr__(self) -> str:
        return f"CustomFunction(expression={self.expression!r}, slope={self.slope!r}, intercept={self.intercept!r})"


def _check_node(node: ast.AST) -> None:
    if isinstance(node, ast.Expression):
        _check_node(node.body)
    elif isinstance(node, ast.Constant):
        if isinstance(node.value, bool) or not isinstance(node.value, (int, float)):
            raise InvalidExpressionError(f"unsupported literal {node.value!r}")
    elif isinstance(node, ast.Name):
        if node.id != "x" and node.id not in EXPRESSION_NAMES:
            raise InvalidExpressionError(f"unknown name '{node.id}'")
    elif isinstance(node, ast.BinOp):
        if not isinstance(node.op, _ALLOWED_OPERATORS):
            raise InvalidExpressionError(
                f"unsupported operator {type(node.op).__name__}"
            )
        _check_node(node.left)
        _check_node(node.right)
    elif isinstance(node, ast.UnaryOp):
        if not isinstance(node.op, _ALLOWED_OPERATORS):
            raise InvalidExpressionError(
                f"unsupported operator {type(node.op).__name__}"
            )
        _check_node(node.operand)
    elif isinstance(node, ast.Call):
        if (
            not isinstance(node.func, ast.Name)
            or node.func.id not in EXPRESSION_NAMES
            or node.func.id in _CONSTANT_NAMES
        ):
            raise InvalidExpressionError("only math functions can be called")
        if node.keywords or len(node.args) != 1:
            raise InvalidExpressionError(f"{node.func.id}() takes one argument")
        _check_node(node.args[0])
    else:
        raise InvalidExpressionError(f"unsupported syntax {type(node).__name__}")


def compile_expression(expression: str) -> Callable[[np.ndarray], Any]:
    """
    Compile an arithmetic expression over `x` into a numpy function.

    The source is checked against a whitelist of AST nodes before sympy ever
    sees it, so only numbers, `x`, arithmetic operators and the functions in
    `EXPRESSION_NAMES` can reach evaluation.

    Raises:
        InvalidExpressionError: if the expression is empty, malformed, or uses
            anything outside the whitelist.
    """
    source = expression.strip()
    if not source:
        raise InvalidExpressionError("empty expression")

    try:
        tree = ast.parse(source, mode="eval")
    except SyntaxError as e:
        raise InvalidExpressionError(e.msg) from e

    _check_node(tree)

    try:
        expr = parse_expr(
            source,
            local_dict={"x": X, **EXPRESSION_NAMES},
            transformations=standard_transformations + (convert_xor,),
        )
        return sympy.lambdify(X, expr, modules="numpy")
    except Exception as e:
        # The source is already whitelisted; what is left are sympy's own
        # evaluation errors (e.g. a function applied to an unsupported value).
        raise InvalidExpressionError(str(e)) from e


def validate_expression(expression: str) -> Optional[str]:
    """Return an error message for the expression, or `None` if it evaluates at x=1."""
    fn = CustomFunction(expression, slope=0.0, intercept=0.0)
    fn(1.0)
    return fn.error


def make_target_function(
    function_type: FunctionType,
    *,
    slope: float,
    intercept: float,
    degree: int = 2,
    expression: str = DEFAULT_CUSTOM_EXPRESSION,
) -> TargetFunction:
    if function_type == "polynomial":
        return PolynomialFunction(slope=slope, intercept=intercept, degree=max(2, degree))
    elif function_type == "custom":
        return CustomFunction(expression, slope=slope, intercept=intercept)
    else:
        return LinearFunction(slope=slope, intercept=intercept)
