"""The built-in tool set served by ``kubechat serve``."""

from __future__ import annotations

import httpx

from kubechat.config import KubechatConfig, Secrets
from kubechat.kube.client import KubeClient
from kubechat.kube.tools import ListNamespacesTool, ListPodsTool, NodeMetricsTool
from kubechat.tools.portfolio import FetchProfileSectionTool, ListProfileSectionsTool
from kubechat.tools.registry import ToolRegistry


def build_kube_client(
    cfg: KubechatConfig,
    secrets: Secrets,
    transport: httpx.AsyncBaseTransport | None = None,
) -> KubeClient:
    return KubeClient(
        api_server=cfg.kube_api_server,
        token=secrets.kube_token,
        ca_cert_path=cfg.kube_ca_path,
        timeout=cfg.kube.timeout_seconds,
        transport=transport,
    )


def build_default_registry(
    cfg: KubechatConfig,
    secrets: Secrets,
    transport: httpx.AsyncBaseTransport | None = None,
) -> ToolRegistry:
    """
    Register the portfolio and cluster tools and freeze the registry.

    *transport* is passed to every httpx client; tests use it to fake both
    upstreams.
    """
    kube = build_kube_client(cfg, secrets, transport)
    registry = ToolRegistry()
    registry.register(ListProfileSectionsTool(cfg.portfolio_url))
    registry.register(
        FetchProfileSectionTool(
            cfg.portfolio_url,
            max_chars=cfg.portfolio.max_content_chars,
            timeout=cfg.portfolio.timeout_seconds,
            transport=transport,
        )
    )
    registry.register(ListNamespacesTool(kube))
    registry.register(ListPodsTool(kube))
    registry.register(NodeMetricsTool(kube))
    return registry.freeze()
