from gradfit.train import SessionState, Trainer, TrainingOptions, TrainingSession


def _trainer(**kwargs) -> tuple[Trainer, list[float]]:
    sleeps: list[float] = []
    session = TrainingSession(TrainingOptions(seed=0, n_epochs=5))
    trainer = Trainer(session, sleep=sleeps.append, **kwargs)
    return trainer, sleeps


def test_train_loop_runs_to_completion():
    trainer, sleeps = _trainer(interval=0.2)

    records = list(trainer.train_loop())

    assert [r.epoch for r in records] == [1, 2, 3, 4, 5]
    assert sleeps == [0.2] * 5
    assert trainer.session.state is SessionState.COMPLETE


def test_train_loop_stops_on_pause_and_resumes():
    trainer, _ = _trainer(interval=0.0)

    epochs = []
    for record in trainer.train_loop():
        epochs.append(record.epoch)
        if record.epoch == 2:
            trainer.session.pause()

    assert epochs == [1, 2]
    assert trainer.session.state is SessionState.PAUSED

    # Resuming continues from where it stopped
    epochs = [r.epoch for r in trainer.train_loop()]
    assert epochs == [3, 4, 5]


def test_step_mode_disables_automatic_driver():
    trainer, sleeps = _trainer(step_mode=True)

    assert list(trainer.train_loop()) == []
    assert sleeps == []
    assert trainer.session.state is SessionState.RUNNING

    record = trainer.step_forward()
    assert record is not None and record.epoch == 1


def test_manual_step_ignored_outside_step_mode():
    trainer, _ = _trainer()
    trainer.session.start()

    assert trainer.step_forward() is None
    assert trainer.session.epoch == 0
