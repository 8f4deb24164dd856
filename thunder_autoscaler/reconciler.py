import enum
import logging
import threading
import time

from .config import POLL_INTERVAL

logger = logging.getLogger(__name__)


class ReconcileState(enum.Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    TIMED_OUT = "timed_out"
    FAILED = "failed"
    CANCELLED = "cancelled"


class ReconciliationMonitor:
    """Polls the workload controller until a requested replica count is observed.

    The monitor owns the right to write ``deployment.current_replicas`` while it is
    pending; it writes only on confirmation. Timeout, failure and cancellation
    leave the deployment state at its last known value.
    """

    def __init__(self, controller, deployment, target, timeout,
                 poll_interval=POLL_INTERVAL, state_lock=None, on_complete=None,
                 clock=time.monotonic):
        self.controller = controller
        self.deployment = deployment
        self.target = target
        self.timeout = timeout
        self.poll_interval = poll_interval
        self.on_complete = on_complete
        self.clock = clock

        self.state = ReconcileState.PENDING
        self.error = None
        self.polls = 0
        self.started_at = None
        self.finished_at = None

        self._state_lock = state_lock or threading.Lock()
        self._lock = threading.Lock()
        self._cancel = threading.Event()
        self._done = threading.Event()
        self._thread = None

    @property
    def pending(self):
        return self.state is ReconcileState.PENDING

    @property
    def done(self):
        return self._done.is_set()

    def start(self):
        if self._thread is not None:
            raise RuntimeError("reconciliation monitor already started")
        self.started_at = self.clock()
        self._thread = threading.Thread(
            target=self._run,
            name=f"reconcile-{self.deployment.key}",
            daemon=True,
        )
        self._thread.start()
        return self

    def cancel(self):
        self._cancel.set()
        self._finish(ReconcileState.CANCELLED)

    def wait(self, timeout=None):
        return self._done.wait(timeout)

    def join(self, timeout=None):
        if self._thread is not None and self._thread is not threading.current_thread():
            self._thread.join(timeout)

    def _run(self):
        deadline = self.started_at + self.timeout
        try:
            while not self._cancel.wait(self.poll_interval):
                if self.clock() >= deadline:
                    self.error = f"no confirmation of {self.target} replicas within {self.timeout}s"
                    if self._finish(ReconcileState.TIMED_OUT):
                        logger.warning(f"Adjustment of replicas for {self.deployment.key} timed out")
                    return

                self.polls += 1
                try:
                    status = self.controller.get_status(self.deployment.name, self.deployment.namespace)
                except Exception as e:
                    self.error = str(e)
                    if self._finish(ReconcileState.FAILED):
                        logger.error(f"Status check for {self.deployment.key} failed during reconciliation: {e}")
                    return

                if status.current_replicas == self.target:
                    if self._finish(ReconcileState.CONFIRMED):
                        logger.info(f"Adjustment of {self.deployment.key} to {self.target} replicas is finished")
                    return

                logger.debug(f"{self.deployment.key}: {status.current_replicas}/{self.target} replicas after poll {self.polls}")
        finally:
            if self.pending and not self._cancel.is_set():
                self.error = self.error or "reconciliation stopped unexpectedly"
                self._finish(ReconcileState.FAILED)

    def _finish(self, state):
        with self._lock:
            if self.state is not ReconcileState.PENDING:
                return False
            if state is ReconcileState.CONFIRMED:
                with self._state_lock:
                    self.deployment.current_replicas = self.target
            self.state = state
            self.finished_at = self.clock()
            self._done.set()

        if self.on_complete is not None:
            try:
                self.on_complete(self)
            except Exception as e:
                logger.error(f"Reconciliation completion hook failed: {e}")
        return True
