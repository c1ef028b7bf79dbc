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
import json
import os
from datetime import datetime

import click

from gradfit.common import BUILD_DIR
from gradfit.loss import LandscapeConfig
from gradfit.optim import OPTIMIZER_KINDS
from gradfit.target import DEFAULT_CUSTOM_EXPRESSION, FUNCTION_TYPES
from gradfit.train import Trainer, TrainingOptions, TrainingSession


@click.group(context_settings={"help_option_names": ["-h", "--help"]})
def main():
    pass


@click.command("train")
@click.option("--n-epochs", "n_epochs", default=50, type=int, help="Number of epochs")
@click.option("--lr", "lr", default=0.01, type=float, help="Learning rate")
@click.option(
    "--optimizer",
    "optimizer",
    default="sgd",
    type=click.Choice(OPTIMIZER_KINDS),
    help="Optimizer",
)
@click.option(
    "--batch-size", "batch_size", default=10, type=int, help="Batch size (SGD only)"
)
@click.option(
    "--function",
    "function_type",
    default="linear",
    type=click.Choice(FUNCTION_TYPES),
    help="Type of the true function",
)
@click.option("--slope", "true_slope", default=7.0, type=float, help="True slope (m)")
@click.option(
    "--intercept", "true_intercept", default=3.0, type=float, help="True intercept (c)"
)
@click.option(
    "--degree",
    "polynomial_degree",
    default=2,
    type=click.IntRange(min=2),
    help="Degree of the polynomial function",
)
@click.option(
    "--expression",
    "custom_expression",
    default=DEFAULT_CUSTOM_EXPRESSION,
    type=str,
    help="Custom function of x, e.g. '2 * x**2 + 3 * x + 1'",
)
@click.option(
    "--n-points", "n_points", default=50, type=int, help="Number of data points"
)
@click.option(
    "--split",
    "train_split_pct",
    default=80.0,
    type=click.FloatRange(0, 100),
    help="Percentage of the data used for training",
)
@click.option("--noise", "noise_level", default=5.0, type=float, help="Noise level")
@click.option("--seed", "seed", default=4649, type=int, help="Random seed")
@click.option(
    "--interval",
    "interval",
    default=0.05,
    type=float,
    help="Seconds to wait between epochs",
)
@click.option(
    "--step-mode",
    "step_mode",
    type=bool,
    default=False,
    is_flag=True,
    help="Advance one epoch per Enter key press.",
)
@click.option(
    "--log-interval",
    "log_interval",
    type=int,
    default=10,
    help="Number of epochs between logging.",
)
@click.option(
    "--output-path",
    "output_path",
    default=str(BUILD_DIR / "_train"),
    type=click.Path(file_okay=False, dir_okay=True, exists=False),
    help="Output directory path for the training history",
)
@click.option(
    "--model-dir",
    "model_dir",
    type=str,
    help="Directory of a previous run whose options are reused",
)
def train_command(
    n_epochs: int,
    lr: float,
    optimizer: str,
    batch_size: int,
    function_type: str,
    true_slope: float,
    true_intercept: float,
    polynomial_degree: int,
    custom_expression: str,
    n_points: int,
    train_split_pct: float,
    noise_level: float,
    seed: int,
    interval: float,
    step_mode: bool,
    log_interval: int,
    output_path: str,
    model_dir: str | None = None,
):
    if model_dir is not None:
        click.secho(f"Reusing training options from {model_dir}", fg="green")

        with open(os.path.join(model_dir, "train.json"), "r") as f:
            raw_session = json.load(f)
            training_options = TrainingOptions(**raw_session["options"])
    else:
        training_options = TrainingOptions(
            n_epochs=n_epochs,
            lr=lr,
            optimizer=optimizer,  # type: ignore
            batch_size=batch_size,
            function_type=function_type,  # type: ignore
            true_slope=true_slope,
            true_intercept=true_intercept,
            polynomial_degree=polynomial_degree,
            custom_expression=custom_expression,
            n_points=n_points,
            train_split_pct=train_split_pct,
            noise_level=noise_level,
            seed=seed,
        )

    # model_dir = output_path + "YYYYMMDD_hhmmss"
    run_dir = os.path.join(output_path, datetime.now().strftime("%Y%m%d_%H%M%S"))
    os.makedirs(run_dir, exist_ok=True)

    session = TrainingSession(training_options)
    trainer = Trainer(
        session,
        interval=interval,
        step_mode=step_mode,
        log_interval=log_interval,
    )

    if step_mode:
        _run_step_mode(trainer)
    else:
        trainer.train()

    with open(os.path.join(run_dir, "train.json"), "w") as f:
        json.dump(
            {
                "options": dataclasses.asdict(session.options),
                "epochs": session.history.to_rows(),
            },
            f,
            indent=4,
        )

    with open(os.path.join(run_dir, "history.csv"), "w", newline="") as f:
        session.history.write_csv(f)

    click.secho(f"Saved training history to {run_dir}", fg="bright_green")


def _run_step_mode(trainer: Trainer) -> None:
    session = trainer.session

    click.secho(f"True function: {session.target.describe()}", fg="white")
    if session.target.error is not None:
        click.secho(session.target.error, fg="red")

    session.start()

    # Enter to step, anything else stops
    while not session.is_complete:
        answer = click.prompt(
            f"Epoch {session.epoch}/{session.options.n_epochs} [Enter: step, q: quit]",
            default="",
            show_default=False,
        )
        if answer.strip():
            break

        record = trainer.step_forward()
        if record is None:
            break

        click.echo(
            f"  slope={record.slope:.4f} intercept={record.intercept:.4f} "
            + f"loss={record.train_loss:.4f} val_loss={record.test_loss:.4f} "
            + f"grad=({record.gradient.m:.4f}, {record.gradient.c:.4f})"
        )

    trainer.print_summary()


@click.command("landscape")
@click.option("--slope", "true_slope", default=7.0, type=float, help="True slope (m)")
@click.option(
    "--intercept", "true_intercept", default=3.0, type=float, help="True intercept (c)"
)
@click.option(
    "--n-points", "n_points", default=50, type=int, help="Number of data points"
)
@click.option("--noise", "noise_level", default=5.0, type=float, help="Noise level")
@click.option(
    "--range",
    "extent",
    default=10.0,
    type=click.FloatRange(min=0),
    help="Width of the grid along both axes",
)
@click.option(
    "--step",
    "step",
    default=0.5,
    type=click.FloatRange(min=0, min_open=True),
    help="Grid resolution",
)
@click.option("--seed", "seed", default=4649, type=int, help="Random seed")
def landscape_command(
    true_slope: float,
    true_intercept: float,
    n_points: int,
    noise_level: float,
    extent: float,
    step: float,
    seed: int,
):
    """Print the loss landscape of a generated training split as CSV."""
    session = TrainingSession(
        TrainingOptions(
            true_slope=true_slope,
            true_intercept=true_intercept,
            n_points=n_points,
            noise_level=noise_level,
            seed=seed,
        )
    )
    surface = session.landscape(
        LandscapeConfig(slope_range=extent, intercept_range=extent, step=step)
    )

    click.echo("slope,intercept,loss")
    for point in surface:
        click.echo(f"{point.slope},{point.intercept},{point.loss}")

    best = surface.argmin()
    if best is not None:
        click.secho(
            f"Minimum loss {best.loss:.4f} at slope={best.slope}, intercept={best.intercept}",
            fg="cyan",
            err=True,
        )


main.add_command(train_command)
main.add_command(landscape_command)


if __name__ == "__main__":
    main()
