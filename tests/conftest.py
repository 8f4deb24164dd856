import threading

import pytest

from thunder_autoscaler.config import ClusterSettings, Configuration, ThunderSettings
from thunder_autoscaler.errors import TelemetryError, WorkloadError
from thunder_autoscaler.models import DeploymentState, ThroughputSample

CONFIG_YAML = """
debug: 0
check_interval: 15
cmd_timeout: 30
cluster:
  ip: 10.1.1.10
  port: 6443
  auth_token: abc123
  deployment: web
  namespace: shop
  min_pods: 2
  max_pods: 12
thunder:
  ip: 10.1.1.20
  port: 443
  secret: thunder-creds
  secret_namespace: kube-system
  slb: ws-vip
  slb_port: "80+http"
  rate: 50
"""


class FakeTelemetry:
    def __init__(self, bits_per_second=0):
        self.bits_per_second = bits_per_second
        self.error = None
        self.calls = 0

    def get_throughput(self, virtual_server, port):
        self.calls += 1
        if self.error is not None:
            raise self.error
        return ThroughputSample(self.bits_per_second, virtual_server, port)


class FakeController:
    """In-memory deployment; scale requests take effect after ``lag`` status reads."""

    def __init__(self, name="web", namespace="default", replicas=3, lag=0):
        self.name = name
        self.namespace = namespace
        self.replicas = replicas
        self.lag = lag
        self.status_error = None
        self.scale_error = None
        self.converge = True
        self.set_calls = []
        self.status_calls = 0
        self._pending = None
        self._lock = threading.Lock()

    def get_status(self, name, namespace):
        with self._lock:
            self.status_calls += 1
            if self.status_error is not None:
                raise self.status_error
            if self._pending is not None:
                target, remaining = self._pending
                if remaining <= 1:
                    self.replicas = target
                    self._pending = None
                else:
                    self._pending = (target, remaining - 1)
            return DeploymentState(name, namespace, self.replicas)

    def set_replicas(self, name, namespace, target):
        with self._lock:
            self.set_calls.append(target)
            if self.scale_error is not None:
                raise self.scale_error
            if not self.converge:
                return
            if self.lag:
                self._pending = (target, self.lag)
            else:
                self.replicas = target


@pytest.fixture
def cfg():
    return Configuration(
        rate=50,
        check_interval=60,
        cmd_timeout=5,
        min_pods=2,
        max_pods=10,
        cluster=ClusterSettings(deployment="web", namespace="default"),
        thunder=ThunderSettings(slb="ws-vip", slb_port="80+http"),
    )


@pytest.fixture
def telemetry():
    return FakeTelemetry()


@pytest.fixture
def controller():
    return FakeController()


@pytest.fixture
def telemetry_error():
    return TelemetryError("thunder unreachable")


@pytest.fixture
def workload_error():
    return WorkloadError("api server unreachable")
