import os
from dataclasses import dataclass, replace

import yaml

from .errors import ConfigError

DEFAULT_CONFIG_PATH = os.environ.get("AUTOSCALER_CONFIG", "./config.yaml")

# Loop timing (seconds)
CHECK_INTERVAL = 10
CMD_TIMEOUT = 20
POLL_INTERVAL = 0.5  # reconciliation poll period, independent of check_interval

# Safety limits
MIN_PODS = 1
MAX_PODS = 10

# Kubernetes
DEPLOYMENT_NAME = "workload"
NAMESPACE = "default"
CLUSTER_PORT = 6443

# Thunder
THUNDER_PORT = 443
SLB_PORT = "80+http"
REQUEST_TIMEOUT = 10


@dataclass(frozen=True)
class ClusterSettings:
    ip: str = ""
    port: int = CLUSTER_PORT
    auth_token: str = ""
    deployment: str = DEPLOYMENT_NAME
    namespace: str = NAMESPACE
    verify_ssl: bool = False


@dataclass(frozen=True)
class ThunderSettings:
    ip: str = ""
    port: int = THUNDER_PORT
    secret: str = ""
    secret_namespace: str = NAMESPACE
    slb: str = ""
    slb_port: str = SLB_PORT
    verify_ssl: bool = False
    request_timeout: float = REQUEST_TIMEOUT


@dataclass(frozen=True)
class Configuration:
    rate: int
    check_interval: float = CHECK_INTERVAL
    cmd_timeout: float = CMD_TIMEOUT
    min_pods: int = MIN_PODS
    max_pods: int = MAX_PODS
    debug: int = 0
    cluster: ClusterSettings = ClusterSettings()
    thunder: ThunderSettings = ThunderSettings()

    def __post_init__(self):
        validate(self)

    @property
    def min_replicas(self):
        return self.min_pods

    @property
    def max_replicas(self):
        return self.max_pods

    @property
    def rate_threshold_per_replica(self):
        return self.rate

    @property
    def adjustment_timeout(self):
        return self.cmd_timeout

    def with_debug(self, level):
        return replace(self, debug=level)


def validate(cfg):
    if cfg.check_interval <= 0:
        raise ConfigError(f"check_interval must be > 0, got {cfg.check_interval}")
    if cfg.cmd_timeout <= 0:
        raise ConfigError(f"cmd_timeout must be > 0, got {cfg.cmd_timeout}")
    if cfg.min_pods < 0:
        raise ConfigError(f"min_pods must be >= 0, got {cfg.min_pods}")
    if cfg.max_pods < cfg.min_pods:
        raise ConfigError(f"max_pods ({cfg.max_pods}) must be >= min_pods ({cfg.min_pods})")
    if cfg.rate <= 0:
        raise ConfigError(f"rate must be > 0, got {cfg.rate}")


def _section(raw, key):
    value = raw.get(key) or {}
    if not isinstance(value, dict):
        raise ConfigError(f"'{key}' must be a mapping")
    return value


def _number(raw, key, default, kind):
    value = raw.get(key, default)
    if value is None:
        return default
    if isinstance(value, bool):
        raise ConfigError(f"'{key}' must be a number, got {value!r}")
    if kind is int and isinstance(value, float) and not value.is_integer():
        raise ConfigError(f"'{key}' must be a whole number, got {value!r}")
    try:
        return kind(value)
    except (TypeError, ValueError):
        raise ConfigError(f"'{key}' must be a number, got {value!r}") from None


def from_dict(raw):
    if not isinstance(raw, dict):
        raise ConfigError("configuration must be a mapping")

    cluster = _section(raw, "cluster")
    thunder = _section(raw, "thunder")

    cluster_settings = ClusterSettings(
        ip=str(cluster.get("ip") or ""),
        port=_number(cluster, "port", CLUSTER_PORT, int),
        auth_token=str(cluster.get("auth_token") or ""),
        deployment=str(cluster.get("deployment") or DEPLOYMENT_NAME),
        namespace=str(cluster.get("namespace") or NAMESPACE),
        verify_ssl=bool(cluster.get("verify_ssl", False)),
    )
    thunder_settings = ThunderSettings(
        ip=str(thunder.get("ip") or ""),
        port=_number(thunder, "port", THUNDER_PORT, int),
        secret=str(thunder.get("secret") or ""),
        secret_namespace=str(thunder.get("secret_namespace") or NAMESPACE),
        slb=str(thunder.get("slb") or ""),
        slb_port=str(thunder.get("slb_port") or SLB_PORT),
        verify_ssl=bool(thunder.get("verify_ssl", False)),
        request_timeout=_number(thunder, "request_timeout", REQUEST_TIMEOUT, float),
    )

    rate = _number(thunder, "rate", None, int)
    if rate is None:
        raise ConfigError("'thunder.rate' is required")

    return Configuration(
        rate=rate,
        check_interval=_number(raw, "check_interval", CHECK_INTERVAL, float),
        cmd_timeout=_number(raw, "cmd_timeout", CMD_TIMEOUT, float),
        min_pods=_number(cluster, "min_pods", MIN_PODS, int),
        max_pods=_number(cluster, "max_pods", MAX_PODS, int),
        debug=_number(raw, "debug", 0, int),
        cluster=cluster_settings,
        thunder=thunder_settings,
    )


def load_config(path=DEFAULT_CONFIG_PATH):
    try:
        with open(path, "r", encoding="utf-8") as fh:
            raw = yaml.safe_load(fh)
    except OSError as e:
        raise ConfigError(f"cannot read config file {path}: {e}") from e
    except yaml.YAMLError as e:
        raise ConfigError(f"invalid YAML in {path}: {e}") from e

    if raw is None:
        raise ConfigError(f"config file {path} is empty")
    return from_dict(raw)
