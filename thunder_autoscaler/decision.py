"""Throughput to replica-count mapping.

Throughput is reported by the load balancer in bits per second and the
per-replica rate is configured in kilobits per second, so every sample is
first truncated to whole kbps.
"""

from .models import ScalingDecision

BOUND_LOW = "low"
BOUND_HIGH = "high"


def to_kbps(bits_per_second):
    return bits_per_second // 1000


def evaluate(sample, current, cfg):
    bps = sample.bits_per_second
    if isinstance(bps, bool) or not isinstance(bps, int) or bps < 0:
        raise ValueError(f"throughput sample must be a non-negative integer, got {bps!r}")

    rate_kbps = to_kbps(bps)
    raw = rate_kbps // cfg.rate
    target, bound = raw, None

    # No traffic: hold at the floor rather than reporting a low-bound violation.
    if target == 0:
        target = cfg.min_pods
    if target < cfg.min_pods:
        target, bound = cfg.min_pods, BOUND_LOW
    if target > cfg.max_pods:
        target, bound = cfg.max_pods, BOUND_HIGH

    return ScalingDecision(target_replicas=target, raw_replicas=raw, rate_kbps=rate_kbps, bound=bound)


def decide(sample, current, cfg):
    return evaluate(sample, current, cfg).target_replicas


def needs_adjustment(decision, current):
    return decision.target_replicas != current.current_replicas
