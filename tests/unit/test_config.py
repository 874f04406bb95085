"""Unit tests for kubemirror.config.load_config."""

from __future__ import annotations

import os

import pytest

from kubemirror.config import load_config


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for key in list(os.environ):
        if key.startswith("KUBEMIRROR_"):
            monkeypatch.delenv(key)


class TestDefaults:
    def test_defaults(self) -> None:
        config = load_config()
        assert config.kubernetes.kubeconfig == ""
        assert config.pods.namespace == "default"
        assert config.pods.resync_seconds == 60
        assert config.nodes.resync_seconds == 10
        assert config.pods.initial_list_retries == 3
        assert config.nodes.watch_timeout_seconds == 300
        assert config.label_watch.label_key == "marwin"
        assert config.label_watch.signal_removal is True
        assert config.label_watch.webhook_url == ""
        assert config.api.port == 8080
        assert config.log.level == "info"
        assert config.log.format == "json"


class TestOverrides:
    def test_env_overrides(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("KUBEMIRROR_KUBECONFIG", "conf/kubeconfig")
        monkeypatch.setenv("KUBEMIRROR_POD_NAMESPACE", "")
        monkeypatch.setenv("KUBEMIRROR_POD_RESYNC_SECONDS", "30")
        monkeypatch.setenv("KUBEMIRROR_NODE_RESYNC_SECONDS", "5")
        monkeypatch.setenv("KUBEMIRROR_LABEL_KEY", "team")
        monkeypatch.setenv("KUBEMIRROR_LABEL_SIGNAL_REMOVAL", "false")
        monkeypatch.setenv("KUBEMIRROR_LABEL_WEBHOOK_URL", "https://hooks.example.com/x")
        monkeypatch.setenv("KUBEMIRROR_API_PORT", "9090")
        monkeypatch.setenv("KUBEMIRROR_LOG_LEVEL", "DEBUG")

        config = load_config()

        assert config.kubernetes.kubeconfig == "conf/kubeconfig"
        assert config.pods.namespace == ""
        assert config.pods.resync_seconds == 30
        assert config.nodes.resync_seconds == 5
        assert config.label_watch.label_key == "team"
        assert config.label_watch.signal_removal is False
        assert config.label_watch.webhook_url == "https://hooks.example.com/x"
        assert config.api.port == 9090
        assert config.log.level == "debug"

    @pytest.mark.parametrize(
        ("raw", "expected"),
        [("1", True), ("yes", True), ("TRUE", True), ("0", False), ("no", False)],
    )
    def test_bool_parsing(self, monkeypatch: pytest.MonkeyPatch, raw: str, expected: bool) -> None:
        monkeypatch.setenv("KUBEMIRROR_LABEL_SIGNAL_REMOVAL", raw)
        assert load_config().label_watch.signal_removal is expected


class TestClamping:
    def test_resync_clamped_to_minimum(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("KUBEMIRROR_POD_RESYNC_SECONDS", "0")
        assert load_config().pods.resync_seconds == 1

    def test_retries_clamped(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("KUBEMIRROR_INITIAL_LIST_RETRIES", "50")
        config = load_config()
        assert config.pods.initial_list_retries == 10
        assert config.nodes.initial_list_retries == 10

    def test_port_clamped(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("KUBEMIRROR_API_PORT", "80")
        assert load_config().api.port == 1024

    def test_watch_timeout_clamped(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("KUBEMIRROR_WATCH_TIMEOUT_SECONDS", "5")
        assert load_config().pods.watch_timeout_seconds == 30


class TestValidation:
    def test_invalid_log_level(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("KUBEMIRROR_LOG_LEVEL", "verbose")
        with pytest.raises(ValueError, match="Invalid log level"):
            load_config()

    def test_invalid_log_format(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("KUBEMIRROR_LOG_FORMAT", "xml")
        with pytest.raises(ValueError, match="Invalid log format"):
            load_config()

    def test_console_log_format(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("KUBEMIRROR_LOG_FORMAT", "Console")
        assert load_config().log.format == "console"

    def test_non_integer_rejected(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("KUBEMIRROR_API_PORT", "http")
        with pytest.raises(ValueError):
            load_config()
