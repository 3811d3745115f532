import asyncio
import threading

import pytest

from pizzeria_search.core.runtime import LoopRunner


def test_run_executes_on_loop_thread():
    runner = LoopRunner(name="test-loop")

    async def which_thread():
        await asyncio.sleep(0)
        return threading.current_thread().name

    try:
        assert runner.run(which_thread(), timeout=5) == "test-loop"
        assert runner.run(which_thread(), timeout=5) == "test-loop"
    finally:
        runner.stop()


def test_run_propagates_exceptions():
    runner = LoopRunner()

    async def boom():
        raise ValueError("bad input")

    try:
        with pytest.raises(ValueError):
            runner.run(boom(), timeout=5)
    finally:
        runner.stop()


def test_stop_without_start_is_a_no_op():
    LoopRunner().stop()
