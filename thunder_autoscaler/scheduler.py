import logging
import threading
import time
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Callable, Optional

from . import decision
from .config import POLL_INTERVAL
from .models import DeploymentState, ThroughputSample
from .reconciler import ReconcileState, ReconciliationMonitor
from .utils.clock import now_dt

logger = logging.getLogger(__name__)

SKIPPED = "skipped"      # telemetry read failed
ABORTED = "aborted"      # deployment status read failed
STEADY = "steady"        # target already running
DEFERRED = "deferred"    # change wanted, reconciliation still pending
ADJUSTED = "adjusted"    # scale request sent, monitor started
FAILED = "failed"        # scale request rejected
STOPPED = "stopped"      # loop stopped mid-tick, no monitor started


@dataclass(frozen=True)
class TickReport:
    tick: int
    timestamp: datetime
    action: str
    sample: Optional[ThroughputSample] = None
    observed_replicas: Optional[int] = None
    target_replicas: Optional[int] = None
    error: Optional[str] = None


class ControlLoopScheduler:
    def __init__(self, telemetry, controller, on_tick: Optional[Callable[[TickReport], None]] = None,
                 poll_interval=POLL_INTERVAL, clock=time.monotonic):
        self.telemetry = telemetry
        self.controller = controller
        self.on_tick = on_tick
        self.poll_interval = poll_interval
        self.clock = clock

        self.cfg = None
        self.state: Optional[DeploymentState] = None
        self.monitor: Optional[ReconciliationMonitor] = None
        self.ticks = 0

        self._state_lock = threading.Lock()
        self._monitor_lock = threading.Lock()
        self._stop = threading.Event()
        self._thread = None

    @property
    def running(self):
        return self._thread is not None and self._thread.is_alive()

    def start(self, cfg):
        if self._thread is not None:
            raise RuntimeError("control loop already started")

        self.cfg = cfg
        self._stop.clear()
        self.state = self.controller.get_status(cfg.cluster.deployment, cfg.cluster.namespace)
        logger.info(f"Tracking deployment {self.state.key} at {self.state.current_replicas} replicas")

        # First pass runs inline so there is no initial delay
        self._safe_tick()

        self._thread = threading.Thread(target=self._loop, name="control-loop", daemon=True)
        self._thread.start()
        logger.info(f"Control loop started (interval={cfg.check_interval}s, timeout={cfg.cmd_timeout}s)")

    def stop(self, timeout=None):
        # no monitor can be started once the stop flag is set under this lock
        with self._monitor_lock:
            self._stop.set()

        if self._thread is not None and self._thread is not threading.current_thread():
            self._thread.join(timeout)
        self._thread = None

        monitor = self.monitor
        if monitor is not None and monitor.pending:
            logger.info(f"Cancelling pending reconciliation for {monitor.deployment.key}")
            monitor.cancel()
        if monitor is not None:
            monitor.join(timeout)
        logger.info("Control loop stopped")

    def reconciliation_pending(self):
        return self.monitor is not None and self.monitor.pending

    def _loop(self):
        # fixed rate: the interval is measured from one tick's start to the next
        interval = self.cfg.check_interval
        next_tick = self.clock() + interval
        while not self._stop.wait(max(0.0, next_tick - self.clock())):
            self._safe_tick()
            next_tick = max(next_tick + interval, self.clock())

    def _safe_tick(self):
        try:
            return self.run_tick()
        except Exception as e:
            logger.exception(f"Unexpected error in control loop tick: {e}")
            return None

    def run_tick(self):
        cfg = self.cfg
        self.ticks += 1
        tick = self.ticks
        name, namespace = self.state.name, self.state.namespace

        try:
            sample = self.telemetry.get_throughput(cfg.thunder.slb, cfg.thunder.slb_port)
        except Exception as e:
            logger.error(f"Throughput read for {cfg.thunder.slb}:{cfg.thunder.slb_port} failed: {e}")
            return self._report(tick, SKIPPED, error=str(e))

        try:
            observed = self.controller.get_status(name, namespace)
        except Exception as e:
            logger.error(f"Status read for {self.state.key} failed, aborting this cycle: {e}")
            return self._report(tick, ABORTED, sample=sample, error=str(e))

        result = decision.evaluate(sample, observed, cfg)

        if cfg.debug > 8:
            logger.debug(f"replicas running = {observed.current_replicas}")
            logger.debug(f"throughput = {sample.bits_per_second}")
            logger.debug(f"replicas needed = {result.raw_replicas}")

        common = dict(sample=sample, observed_replicas=observed.current_replicas,
                      target_replicas=result.target_replicas)

        if not decision.needs_adjustment(result, observed):
            self._sync_state(observed)
            return self._report(tick, STEADY, **common)

        if result.bound == decision.BOUND_LOW:
            logger.warning("Tried to adjust replicas below minimum. Adjusting to minimum.")
        elif result.bound == decision.BOUND_HIGH:
            logger.warning("Tried to adjust replicas above maximum. Adjusting to maximum.")

        if self.reconciliation_pending():
            logger.info(f"Reconciliation of {self.state.key} to {self.monitor.target} replicas still pending; "
                        f"deferring adjustment to {result.target_replicas}")
            return self._report(tick, DEFERRED, **common)

        if self._stop.is_set():
            logger.info(f"Control loop stopping; not adjusting {self.state.key}")
            return self._report(tick, STOPPED, **common)

        self._sync_state(observed)
        logger.info(f"Adjusting deployment '{name}' to {result.target_replicas} replicas.")
        try:
            self.controller.set_replicas(name, namespace, result.target_replicas)
        except Exception as e:
            logger.error(f"Adjustment of {self.state.key} to {result.target_replicas} replicas failed: {e}")
            return self._report(tick, FAILED, error=str(e), **common)

        with self._monitor_lock:
            stopping = self._stop.is_set()
            if not stopping:
                self.monitor = ReconciliationMonitor(
                    self.controller,
                    self.state,
                    result.target_replicas,
                    cfg.cmd_timeout,
                    poll_interval=self.poll_interval,
                    state_lock=self._state_lock,
                    on_complete=self._reconciled,
                ).start()
        if stopping:
            logger.info(f"Control loop stopped during adjustment of {self.state.key}; not monitoring it")
            return self._report(tick, STOPPED, **common)
        return self._report(tick, ADJUSTED, **common)

    def _sync_state(self, observed):
        if self.reconciliation_pending():
            return
        with self._state_lock:
            if self.state.current_replicas != observed.current_replicas:
                logger.debug(f"{self.state.key}: replicas {self.state.current_replicas} -> {observed.current_replicas}")
                self.state.current_replicas = observed.current_replicas

    def _reconciled(self, monitor):
        if monitor.state is ReconcileState.CONFIRMED:
            logger.info(f"{monitor.deployment.key} confirmed at {monitor.target} replicas after {monitor.polls} polls")
        elif monitor.state is ReconcileState.TIMED_OUT:
            logger.warning(f"{monitor.deployment.key} stayed at {monitor.deployment.current_replicas} replicas: {monitor.error}")
        elif monitor.state is ReconcileState.FAILED:
            logger.error(f"Reconciliation of {monitor.deployment.key} failed: {monitor.error}")

    def snapshot(self):
        with self._state_lock:
            return replace(self.state) if self.state is not None else None

    def _report(self, tick, action, **fields):
        report = TickReport(tick=tick, timestamp=now_dt(), action=action, **fields)
        if self.on_tick is not None:
            try:
                self.on_tick(report)
            except Exception as e:
                logger.error(f"Tick hook failed: {e}")
        return report
