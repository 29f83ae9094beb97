import time

import pytest

from gamediss_app.extensions import EngineRunner

from conftest import make_engine


class BrokenEngine:
    """Engine stand-in whose start() fails."""

    def __init__(self):
        self.closed = False

    async def start(self):
        raise RuntimeError("catalog provider misconfigured")

    async def close(self):
        self.closed = True


def wait_until(predicate, timeout=2.0):
    deadline = time.monotonic() + timeout
    while not predicate():
        if time.monotonic() > deadline:
            return False
        time.sleep(0.01)
    return True


def test_background_start_failure_is_recorded():
    engine = BrokenEngine()
    runner = EngineRunner(engine)

    runner.start()
    try:
        assert wait_until(lambda: runner.start_error is not None)
        assert isinstance(runner.start_error, RuntimeError)
        assert runner.is_running
    finally:
        runner.stop()
    assert engine.closed


def test_waited_start_failure_raises():
    runner = EngineRunner(BrokenEngine())

    try:
        with pytest.raises(RuntimeError):
            runner.start(wait_for_catalog=True)
        assert wait_until(lambda: runner.start_error is not None)
    finally:
        runner.stop()


def test_run_submits_to_engine_loop():
    runner = EngineRunner(make_engine())
    runner.start(wait_for_catalog=True)
    try:
        assert runner.start_error is None
        result = runner.run(lambda engine: engine.resolve("Portal 2"))
        assert result.matched_id == "620"
    finally:
        runner.stop()
    assert not runner.is_running


def test_run_requires_started_loop():
    runner = EngineRunner(make_engine())

    with pytest.raises(RuntimeError):
        runner.run(lambda engine: engine.resolve("Portal 2"))

