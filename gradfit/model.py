from dataclasses import dataclass

import numpy as np


@dataclass(frozen=True)
class Parameters:
    slope: float  # m
    intercept: float  # c

    def predict(self, xs: np.ndarray) -> np.ndarray:
        return self.slope * xs + self.intercept


@dataclass(frozen=True)
class Gradient:
    m: float
    c: float


ZERO_GRADIENT = Gradient(m=0.0, c=0.0)
