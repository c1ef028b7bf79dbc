import time
from typing import Callable, Generator, Optional

import click
from termcolor import colored
from yaspin import yaspin
from yaspin.core import Yaspin

from gradfit.history import EpochRecord

from .session import SessionState, TrainingSession


class Trainer:
    """
    Drives a `TrainingSession` either automatically, one step per `interval`
    seconds, or manually through `step_forward()` when `step_mode` is on.

    The two drivers are mutually exclusive: in step mode the automatic loop
    does not advance the session, and outside of it manual steps are ignored.
    """

    session: TrainingSession

    interval: float
    step_mode: bool
    log_interval: int

    def __init__(
        self,
        session: TrainingSession,
        *,
        interval: float = 0.2,
        step_mode: bool = False,
        log_interval: int = 10,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.session = session
        self.interval = interval
        self.step_mode = step_mode
        self.log_interval = max(1, log_interval)
        self._sleep = sleep

    def train_loop(self) -> Generator[EpochRecord, None, None]:
        """
        Start (or resume) the session and yield each record as it is produced.

        Stops when the session completes or leaves the running state, e.g.
        because the consumer called `session.pause()`.
        """
        self.session.start()

        while self.session.state is SessionState.RUNNING and not self.step_mode:
            if self.interval > 0:
                self._sleep(self.interval)

            # The consumer may have paused while we were waiting
            if self.session.state is not SessionState.RUNNING:
                break

            record = self.session.step()
            if record is None:
                break

            yield record

    def step_forward(self) -> Optional[EpochRecord]:
        if not self.step_mode:
            return None

        return self.session.step()

    def set_spinner_text(self, spinner: Yaspin, record: EpochRecord) -> None:
        n_epochs = self.session.options.n_epochs
        progress = record.epoch / n_epochs

        spinner.text = (
            colored(f"Epoch {record.epoch}/{n_epochs} ({progress:.1%})", color="cyan")
            + " ("
            + f"lr: {self.session.options.lr:.4f}"
            + f", loss: {record.train_loss:.3f}"
            + ")"
        )

    def train(self) -> None:
        session = self.session
        options = session.options

        # --------- 1) Dataset ---------
        click.secho("[1/3] Prepare dataset", fg="green", bold=True)
        click.secho(f"True function: {session.target.describe()}", fg="white")

        # The data is generated eagerly, so a broken expression is already known
        if session.target.error is not None:
            click.secho(
                f"{session.target.error} (falling back to the linear function)",
                fg="red",
            )

        click.secho(
            f"Samples (train: {len(session.dataset.training):,}, test: {len(session.dataset.testing):,})",
            fg="cyan",
        )

        # --------- 2) Training loop ---------
        click.secho(
            f"[2/3] Start training loop ({options.optimizer}, lr={options.lr}, epochs={options.n_epochs})",
            fg="green",
            bold=True,
        )

        with yaspin().cyan as spinner:
            for record in self.train_loop():
                self.set_spinner_text(spinner, record)

                if record.epoch % self.log_interval == 0:
                    spinner.write(
                        f"  Epoch {record.epoch} "
                        + f"{colored('slope=', 'cyan')}{record.slope:.4f} "
                        + f"{colored('intercept=', 'cyan')}{record.intercept:.4f} "
                        + f"{colored('loss=', 'cyan')}{record.train_loss:.4f} "
                        + f"{colored('val_loss=', 'cyan')}{record.test_loss:.4f}"
                    )

        # --------- 3) Summary ---------
        click.secho("[3/3] Training finished", fg="bright_green", bold=True)
        self.print_summary()

    def print_summary(self) -> None:
        snapshot = self.session.snapshot()
        band = snapshot.confidence_band

        click.secho(
            f"Current model: y = {snapshot.params.slope:.4f}x + {snapshot.params.intercept:.4f}",
            fg="magenta",
            bold=True,
        )

        if snapshot.history:
            last = snapshot.history[-1]
            click.secho(
                f"Training loss (MSE): {last.train_loss:.4f}, Testing loss (MSE): {last.test_loss:.4f}",
                fg="magenta",
            )

        click.secho(
            f"Training R²: {snapshot.train_r_squared:.4f}, Testing R²: {snapshot.test_r_squared:.4f}",
            fg="magenta",
        )
        click.secho(
            "Band (approx.): "
            + f"upper y = {band.upper.slope:.4f}x + {band.upper.intercept:.4f}, "
            + f"lower y = {band.lower.slope:.4f}x + {band.lower.intercept:.4f}",
            fg="white",
        )
