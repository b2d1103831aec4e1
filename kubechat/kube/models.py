"""
Kubernetes payload helpers: quantity parsing, pod reports and node usage.

Payloads are the decoded JSON dicts returned by :class:`KubeClient.get`.
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from decimal import Decimal, InvalidOperation
from typing import Any

from kubechat.kube.client import KubeError

logger = logging.getLogger(__name__)

_CPU_SUFFIXES = {
    "n": Decimal("1e-9"),
    "u": Decimal("1e-6"),
    "m": Decimal("1e-3"),
}

_MEMORY_SUFFIXES = {
    "Ki": 1024,
    "Mi": 1024**2,
    "Gi": 1024**3,
    "Ti": 1024**4,
    "Pi": 1024**5,
    "Ei": 1024**6,
    "k": 1000,
    "M": 1000**2,
    "G": 1000**3,
    "T": 1000**4,
    "P": 1000**5,
    "E": 1000**6,
}


def _number(text: str, original: str, kind: str) -> Decimal:
    try:
        value = Decimal(text)
    except InvalidOperation:
        raise KubeError(
            f"Invalid {kind} quantity: {original!r}", code="parse_error"
        ) from None
    if not value.is_finite() or value < 0:
        raise KubeError(f"Invalid {kind} quantity: {original!r}", code="parse_error")
    return value


def parse_cpu(quantity: str) -> float:
    """Parse a CPU quantity (``"160635734n"``, ``"250m"``, ``"2"``) into cores."""
    q = str(quantity).strip()
    if q and q[-1] in _CPU_SUFFIXES:
        return float(_number(q[:-1], q, "CPU") * _CPU_SUFFIXES[q[-1]])
    return float(_number(q, q, "CPU"))


def parse_memory(quantity: str) -> int:
    """Parse a memory quantity (``"1879200Ki"``, ``"2G"``, ``"1024"``) into bytes."""
    q = str(quantity).strip()
    # two-letter binary suffixes must be checked before the decimal ones
    for suffix in sorted(_MEMORY_SUFFIXES, key=len, reverse=True):
        if q.endswith(suffix):
            value = _number(q[: -len(suffix)], q, "memory")
            return int(value * _MEMORY_SUFFIXES[suffix])
    return int(_number(q, q, "memory"))


def _items(payload: Any, what: str) -> list[dict]:
    if not isinstance(payload, dict) or not isinstance(payload.get("items"), list):
        raise KubeError(f"Malformed {what} response: missing items", code="parse_error")
    return payload["items"]


def _field(obj: Any, *path: str) -> Any:
    cur = obj
    for key in path:
        if not isinstance(cur, dict) or key not in cur:
            raise KubeError(
                f"Malformed Kubernetes object: missing {'.'.join(path)}",
                code="parse_error",
            )
        cur = cur[key]
    return cur


# ---------------------------------------------------------------------------
# Namespaces and pods
# ---------------------------------------------------------------------------

def namespace_names(payload: Any) -> list[str]:
    return [_field(item, "metadata", "name") for item in _items(payload, "namespace list")]


def format_pod_report(payload: Any) -> str:
    """Render a pod list as the plain-text report handed to the model."""
    pods = _items(payload, "pod list")
    lines = [f"Found {len(pods)} pods:", ""]

    for idx, pod in enumerate(pods, start=1):
        meta = _field(pod, "metadata")
        lines.append(f"Pod {idx}:")
        lines.append(f"  Name: {_field(meta, 'name')}")
        lines.append(f"  Namespace: {meta.get('namespace', '')}")
        lines.append(f"  UID: {meta.get('uid', '')}")
        lines.append(f"  Created: {meta.get('creationTimestamp', '')}")

        labels = meta.get("labels")
        if labels:
            lines.append("  Labels:")
            lines.extend(f"    {k}: {v}" for k, v in labels.items())

        spec = pod.get("spec")
        if spec:
            lines.append(f"  Node: {spec.get('nodeName') or 'N/A'}")
            lines.append("  Containers:")
            lines.extend(f"    - {c.get('name', '')}" for c in spec.get("containers", []))

        status = pod.get("status")
        if status:
            lines.append(f"  Phase: {status.get('phase', 'Unknown')}")
            if status.get("startTime"):
                lines.append(f"  Started: {status['startTime']}")
            conditions = status.get("conditions")
            if conditions:
                lines.append("  Conditions:")
                lines.extend(
                    f"    {c.get('type', '')}: {c.get('status', '')}" for c in conditions
                )

        lines.append("")

    return "\n".join(lines) + "\n"


# ---------------------------------------------------------------------------
# Node usage
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class NodeUsage:
    name: str
    cpu_cores: float
    cpu_percent: float
    memory_bytes: int
    memory_percent: float

    def to_dict(self) -> dict:
        return asdict(self)


def combine_node_metrics(nodes_payload: Any, metrics_payload: Any) -> list[NodeUsage]:
    """
    Join a node listing with a metrics snapshot into per-node usage.

    Every metrics entry must have a matching node; otherwise the whole join
    fails with :class:`KubeError` rather than returning a partial report.
    """
    capacity: dict[str, dict] = {}
    for node in _items(nodes_payload, "node list"):
        capacity[_field(node, "metadata", "name")] = _field(node, "status", "capacity")

    usages: list[NodeUsage] = []
    for metrics in _items(metrics_payload, "node metrics"):
        name = _field(metrics, "metadata", "name")
        if name not in capacity:
            raise KubeError(
                f"No matching node found for metrics: {name}", code="parse_error"
            )
        cap = capacity[name]
        cpu_capacity = parse_cpu(_field(cap, "cpu"))
        memory_capacity = parse_memory(_field(cap, "memory"))
        if cpu_capacity <= 0 or memory_capacity <= 0:
            raise KubeError(f"Node {name} reports zero capacity", code="parse_error")

        cpu_cores = parse_cpu(_field(metrics, "usage", "cpu"))
        memory_bytes = parse_memory(_field(metrics, "usage", "memory"))
        usages.append(
            NodeUsage(
                name=name,
                cpu_cores=cpu_cores,
                cpu_percent=cpu_cores / cpu_capacity * 100.0,
                memory_bytes=memory_bytes,
                memory_percent=memory_bytes / memory_capacity * 100.0,
            )
        )

    logger.debug("Combined metrics for %d nodes", len(usages))
    return usages
