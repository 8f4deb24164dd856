import threading

import pytest

from thunder_autoscaler.errors import WorkloadError
from thunder_autoscaler.models import DeploymentState
from thunder_autoscaler.reconciler import ReconcileState, ReconciliationMonitor

from conftest import FakeController

POLL = 0.01


def _monitor(controller, state, target=5, timeout=2.0, **kwargs):
    return ReconciliationMonitor(controller, state, target, timeout, poll_interval=POLL, **kwargs)


def test_confirms_after_second_poll():
    controller = FakeController(replicas=3, lag=2)
    controller.set_replicas("web", "default", 5)
    state = DeploymentState("web", "default", 3)

    monitor = _monitor(controller, state).start()

    assert monitor.wait(5)
    assert monitor.state is ReconcileState.CONFIRMED
    assert monitor.polls == 2
    assert state.current_replicas == 5
    assert monitor.error is None


def test_times_out_and_leaves_state_alone():
    controller = FakeController(replicas=3, lag=1)
    controller.converge = False
    controller.set_replicas("web", "default", 5)
    state = DeploymentState("web", "default", 3)

    monitor = _monitor(controller, state, timeout=0.1).start()

    assert monitor.wait(5)
    assert monitor.state is ReconcileState.TIMED_OUT
    assert state.current_replicas == 3
    assert monitor.polls >= 1
    assert "5 replicas" in monitor.error


def test_timeout_uses_injected_clock():
    now = [0.0]
    controller = FakeController(replicas=3)
    controller.converge = False
    state = DeploymentState("web", "default", 3)

    def clock():
        now[0] += 1.0
        return now[0]

    # 20s budget on a clock that advances one second per reading
    monitor = _monitor(controller, state, timeout=20, clock=clock).start()

    assert monitor.wait(5)
    assert monitor.state is ReconcileState.TIMED_OUT
    assert state.current_replicas == 3
    assert monitor.polls < 20


def test_status_error_fails_monitor():
    controller = FakeController(replicas=3)
    controller.status_error = WorkloadError("connection refused")
    state = DeploymentState("web", "default", 3)

    monitor = _monitor(controller, state).start()

    assert monitor.wait(5)
    assert monitor.state is ReconcileState.FAILED
    assert "connection refused" in monitor.error
    assert monitor.polls == 1
    assert state.current_replicas == 3


def test_cancel_stops_polling():
    controller = FakeController(replicas=3)
    controller.converge = False
    state = DeploymentState("web", "default", 3)

    monitor = _monitor(controller, state, timeout=60).start()
    monitor.cancel()
    monitor.join(2)

    assert monitor.state is ReconcileState.CANCELLED
    assert monitor.done
    polls = controller.status_calls
    threading.Event().wait(5 * POLL)
    assert controller.status_calls == polls
    assert state.current_replicas == 3


def test_completion_hook_runs_once():
    controller = FakeController(replicas=5)
    state = DeploymentState("web", "default", 3)
    seen = []

    monitor = _monitor(controller, state, on_complete=seen.append).start()
    assert monitor.wait(5)
    monitor.cancel()
    monitor.join(2)

    assert seen == [monitor]
    assert monitor.state is ReconcileState.CONFIRMED


def test_cannot_start_twice():
    controller = FakeController(replicas=5)
    monitor = _monitor(controller, DeploymentState("web", "default", 3)).start()
    monitor.wait(5)

    with pytest.raises(RuntimeError):
        monitor.start()
