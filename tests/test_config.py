"""Tests for configuration loading and secret resolution."""

from __future__ import annotations

import dataclasses

import pytest
import yaml

from kubechat.config import ConfigError, KubechatConfig, load_config, resolve_secrets


@pytest.fixture
def config_file(tmp_path):
    def _write(data: dict):
        path = tmp_path / "kubechat.yaml"
        path.write_text(yaml.safe_dump(data), encoding="utf-8")
        return path

    return _write


class TestLoadConfig:
    def test_defaults(self):
        cfg = load_config(environ={})
        assert cfg.server.port == 8080
        assert cfg.server.max_body_bytes == 100_000
        assert cfg.agent.max_rounds == 2
        assert cfg.llm.model == "gpt-4o"
        assert cfg.production is False
        assert cfg.portfolio_url == "http://localhost:3000"

    def test_missing_file_uses_defaults(self, tmp_path):
        cfg = load_config(tmp_path / "absent.yaml", environ={})
        assert cfg == KubechatConfig()

    def test_yaml_file(self, config_file):
        path = config_file({
            "server": {"port": 9000, "unknown_key": True},
            "llm": {"model": "gpt-4o-mini"},
        })
        cfg = load_config(path, environ={})
        assert cfg.server.port == 9000
        assert cfg.server.host == "127.0.0.1"
        assert cfg.llm.model == "gpt-4o-mini"

    def test_profile_overlay(self, config_file):
        path = config_file({
            "server": {"port": 9000, "host": "0.0.0.0"},
            "profiles": {"dev": {"server": {"port": 9100}}},
        })
        cfg = load_config(path, profile="dev", environ={})
        assert cfg.server.port == 9100
        assert cfg.server.host == "0.0.0.0"

    def test_unknown_profile(self, config_file):
        path = config_file({"profiles": {}})
        with pytest.raises(ConfigError, match="staging"):
            load_config(path, profile="staging", environ={})

    def test_non_mapping_file(self, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text("- a\n- b\n", encoding="utf-8")
        with pytest.raises(ConfigError):
            load_config(path, environ={})

    def test_env_overrides_file(self, config_file):
        path = config_file({"server": {"port": 9000}})
        cfg = load_config(
            path,
            environ={"KUBECHAT_SERVER_PORT": "9500", "KUBECHAT_PRODUCTION": "true"},
        )
        assert cfg.server.port == 9500
        assert cfg.production is True
        assert cfg.portfolio_url == "https://about.calum.run"

    def test_deployment_env_names(self):
        cfg = load_config(environ={
            "KUBE_API_SERVER": "https://10.0.0.1:6443",
            "KUBE_CA_CERT": "/etc/kube/ca.crt",
            "PRODUCTION_MODE": "0",
        })
        assert cfg.kube_api_server == "https://10.0.0.1:6443"
        assert cfg.kube_ca_path == "/etc/kube/ca.crt"
        assert cfg.production is False

    def test_invalid_env_value(self):
        with pytest.raises(ConfigError, match="KUBECHAT_SERVER_PORT"):
            load_config(environ={"KUBECHAT_SERVER_PORT": "eighty"})

    def test_cli_overrides_win_and_skip_none(self):
        cfg = load_config(
            environ={"KUBECHAT_SERVER_PORT": "9500"},
            cli_overrides={"server.port": 7000, "server.host": None},
        )
        assert cfg.server.port == 7000
        assert cfg.server.host == "127.0.0.1"

    def test_production_selects_in_cluster_endpoints(self):
        cfg = load_config(environ={"KUBECHAT_PRODUCTION": "yes"})
        assert cfg.kube_api_server == "https://kubernetes.default.svc"
        assert cfg.kube_ca_path.endswith("serviceaccount/ca.crt")

    def test_config_is_frozen(self):
        cfg = load_config(environ={})
        with pytest.raises(dataclasses.FrozenInstanceError):
            cfg.server.port = 1

    def test_to_dict(self):
        data = load_config(environ={}).to_dict()
        assert data["server"]["port"] == 8080
        assert data["production"] is False


class TestResolveSecrets:
    def test_reads_named_env_vars(self):
        cfg = load_config(environ={})
        secrets = resolve_secrets(cfg, {
            "CHAT_API_KEY": "chat",
            "OPENAI_API_KEY": "sk",
            "KUBE_TOKEN": "tok",
        })
        assert (secrets.chat_api_key, secrets.llm_api_key, secrets.kube_token) == ("chat", "sk", "tok")

    def test_missing_chat_key_is_startup_error(self):
        cfg = load_config(environ={})
        with pytest.raises(ConfigError, match="CHAT_API_KEY"):
            resolve_secrets(cfg, {})

    def test_chat_key_optional_when_not_serving(self):
        cfg = load_config(environ={})
        secrets = resolve_secrets(cfg, {}, require_chat_key=False)
        assert secrets.chat_api_key == ""

    def test_production_token_from_file(self, tmp_path, config_file):
        token = tmp_path / "token"
        token.write_text("in-cluster-token\n", encoding="utf-8")
        path = config_file({
            "production": True,
            "kube": {"in_cluster_token_path": str(token)},
        })
        cfg = load_config(path, environ={})
        secrets = resolve_secrets(cfg, {"CHAT_API_KEY": "chat", "KUBE_TOKEN": "ignored"})
        assert secrets.kube_token == "in-cluster-token"

    def test_production_missing_token_file(self, tmp_path, config_file):
        path = config_file({
            "production": True,
            "kube": {"in_cluster_token_path": str(tmp_path / "absent")},
        })
        cfg = load_config(path, environ={})
        with pytest.raises(ConfigError):
            resolve_secrets(cfg, {"CHAT_API_KEY": "chat"})

    def test_repr_hides_values(self):
        cfg = load_config(environ={})
        secrets = resolve_secrets(cfg, {"CHAT_API_KEY": "super-secret"})
        assert "super-secret" not in repr(secrets)
