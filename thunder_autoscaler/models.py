from dataclasses import dataclass, field
from typing import List, Optional, Protocol


@dataclass(frozen=True)
class ThroughputSample:
    bits_per_second: int
    virtual_server: str = ""
    port: str = ""

    def __post_init__(self):
        if isinstance(self.bits_per_second, bool) or not isinstance(self.bits_per_second, int):
            raise ValueError(f"bits_per_second must be an integer, got {self.bits_per_second!r}")
        if self.bits_per_second < 0:
            raise ValueError(f"bits_per_second must be >= 0, got {self.bits_per_second}")


@dataclass
class DeploymentState:
    name: str
    namespace: str
    current_replicas: int = 0

    @property
    def key(self):
        return f"{self.namespace}/{self.name}"


@dataclass(frozen=True)
class ScalingDecision:
    target_replicas: int
    raw_replicas: int
    rate_kbps: int
    bound: Optional[str] = None  # "low" | "high"


@dataclass(frozen=True)
class VirtualPort:
    port_number: int
    protocol: str
    service_group: str = ""
    status: str = ""
    conn_limit: int = 0


@dataclass(frozen=True)
class VirtualServer:
    name: str
    ip: str
    status: str = ""
    ports: List[VirtualPort] = field(default_factory=list)


class TelemetrySource(Protocol):
    def get_throughput(self, virtual_server: str, port: str) -> ThroughputSample:
        ...


class WorkloadController(Protocol):
    def get_status(self, name: str, namespace: str) -> DeploymentState:
        ...

    def set_replicas(self, name: str, namespace: str, target: int) -> None:
        ...
