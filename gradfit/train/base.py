import dataclasses
from dataclasses import dataclass
from typing import Optional

from gradfit.optim import OPTIMIZER_KINDS, OptimizerKind
from gradfit.target import DEFAULT_CUSTOM_EXPRESSION, FUNCTION_TYPES, FunctionType


@dataclass(frozen=True)
class TrainingOptions:
    n_epochs: int = 50
    lr: float = 0.01
    optimizer: OptimizerKind = "sgd"
    # Only used by SGD
    batch_size: int = 10
    function_type: FunctionType = "linear"
    true_slope: float = 7.0
    true_intercept: float = 3.0
    polynomial_degree: int = 2
    custom_expression: str = DEFAULT_CUSTOM_EXPRESSION
    n_points: int = 50
    # Percentage of samples (lowest x first) used for training
    train_split_pct: float = 80.0
    noise_level: float = 5.0
    x_min: float = 0.0
    x_max: float = 10.0
    seed: Optional[int] = None

    def clamped(self) -> "TrainingOptions":
        """Return a copy with every malformed value moved to its nearest valid value."""
        return dataclasses.replace(
            self,
            n_epochs=max(1, int(self.n_epochs)),
            lr=max(0.0, float(self.lr)),
            optimizer=self.optimizer if self.optimizer in OPTIMIZER_KINDS else "sgd",
            batch_size=max(1, int(self.batch_size)),
            function_type=(
                self.function_type if self.function_type in FUNCTION_TYPES else "linear"
            ),
            polynomial_degree=max(2, int(self.polynomial_degree)),
            n_points=max(0, int(self.n_points)),
            train_split_pct=min(max(float(self.train_split_pct), 0.0), 100.0),
            noise_level=max(0.0, float(self.noise_level)),
            x_max=max(float(self.x_min), float(self.x_max)),
        )


# Changing any of these alters the data distribution and forces a reset
DATA_FIELDS = frozenset(
    {
        "function_type",
        "true_slope",
        "true_intercept",
        "polynomial_degree",
        "custom_expression",
        "n_points",
        "train_split_pct",
        "noise_level",
        "x_min",
        "x_max",
        "seed",
    }
)
