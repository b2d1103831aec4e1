"""Read-only Kubernetes tools exposed to the model."""

from __future__ import annotations

import asyncio
import json
import logging

from kubechat.kube.client import KubeClient, KubeError
from kubechat.kube.models import (
    NodeUsage,
    combine_node_metrics,
    format_pod_report,
    namespace_names,
)
from kubechat.tools.base import Tool
from kubechat.types import ErrorCode, ToolResult

logger = logging.getLogger(__name__)

NAMESPACES_ENDPOINT = "/api/v1/namespaces"
NODES_ENDPOINT = "/api/v1/nodes"
NODE_METRICS_ENDPOINT = "/apis/metrics.k8s.io/v1beta1/nodes"

DEFAULT_NAMESPACE = "default"
MAX_POD_LIMIT = 500

# DNS-1123 label, which is what Kubernetes accepts for namespace names
_NAMESPACE_PATTERN = r"^[a-z0-9]([-a-z0-9]*[a-z0-9])?$"


def _upstream_failure(tool: str, e: KubeError) -> ToolResult:
    logger.warning("%s failed (%s): %s", tool, e.code or "kube", e)
    return ToolResult.failure(str(e), ErrorCode.UPSTREAM_ERROR)


class ListNamespacesTool(Tool):
    def __init__(self, client: KubeClient) -> None:
        self._client = client

    @property
    def name(self) -> str:
        return "list_namespaces"

    @property
    def description(self) -> str:
        return "List the namespaces in the Kubernetes cluster."

    @property
    def parameters(self) -> dict:
        return {"type": "object", "properties": {}}

    async def list_namespaces(self) -> list[str]:
        return namespace_names(await self._client.get(NAMESPACES_ENDPOINT))

    async def execute(self, **kwargs) -> ToolResult:
        try:
            names = await self.list_namespaces()
        except KubeError as e:
            return _upstream_failure(self.name, e)
        return ToolResult(success=True, content=", ".join(names), data=names)


class ListPodsTool(Tool):
    def __init__(self, client: KubeClient) -> None:
        self._client = client

    @property
    def name(self) -> str:
        return "list_pods"

    @property
    def description(self) -> str:
        return "List pods in a Kubernetes cluster namespace."

    @property
    def parameters(self) -> dict:
        return {
            "type": "object",
            "properties": {
                "namespace": {
                    "type": "string",
                    "pattern": _NAMESPACE_PATTERN,
                    "maxLength": 63,
                    "description": "The namespace to list pods from (default is 'default').",
                },
                "limit": {
                    "type": "integer",
                    "minimum": 1,
                    "maximum": MAX_POD_LIMIT,
                    "description": f"Maximum number of pods to return (default is {MAX_POD_LIMIT}).",
                },
            },
        }

    async def list_pods(
        self, namespace: str | None = None, limit: int | None = None
    ) -> str:
        namespace = namespace or DEFAULT_NAMESPACE
        limit = limit or MAX_POD_LIMIT
        endpoint = f"/api/v1/namespaces/{namespace}/pods?limit={limit}"
        return format_pod_report(await self._client.get(endpoint))

    async def execute(self, **kwargs) -> ToolResult:
        try:
            report = await self.list_pods(kwargs.get("namespace"), kwargs.get("limit"))
        except KubeError as e:
            return _upstream_failure(self.name, e)
        return ToolResult(success=True, content=report)


class NodeMetricsTool(Tool):
    """
    Per-node CPU and memory usage.

    The node listing and the metrics snapshot are fetched concurrently and
    joined; if either call fails the tool fails with that error, checking the
    node listing first.
    """

    def __init__(self, client: KubeClient) -> None:
        self._client = client

    @property
    def name(self) -> str:
        return "get_node_metrics"

    @property
    def description(self) -> str:
        return "Get node metrics (CPU and memory usage) from the Kubernetes cluster."

    @property
    def parameters(self) -> dict:
        return {"type": "object", "properties": {}}

    async def node_usage(self) -> list[NodeUsage]:
        nodes, metrics = await asyncio.gather(
            self._client.get(NODES_ENDPOINT),
            self._client.get(NODE_METRICS_ENDPOINT),
            return_exceptions=True,
        )
        for outcome in (nodes, metrics):
            if isinstance(outcome, BaseException):
                raise outcome
        return combine_node_metrics(nodes, metrics)

    async def execute(self, **kwargs) -> ToolResult:
        try:
            usage = await self.node_usage()
        except KubeError as e:
            return _upstream_failure(self.name, e)
        items = [u.to_dict() for u in usage]
        return ToolResult(
            success=True,
            content=json.dumps({"items": items}, indent=2),
            data=items,
        )
