import logging

import pytest

from preset_sync.config import SyncConfig, apply_debug_policy, load_debug_policy, load_sync_config


def test_sync_config_defaults():
    config = load_sync_config({})
    assert config == SyncConfig()
    assert config.websocket_url == "ws://localhost:30020"
    assert config.http_url == "http://localhost:30010"
    assert config.api_prefix == "/remote"
    assert config.request_timeout_s == 30.0
    assert config.request_transport == "websocket"
    assert config.monitor is False


def test_sync_config_env_overrides():
    env = {
        "PRESET_SYNC_HOST": "studio-01",
        "PRESET_SYNC_WS_PORT": "4000",
        "PRESET_SYNC_HTTP_PORT": "4001",
        "PRESET_SYNC_API_PREFIX": "/api",
        "PRESET_SYNC_POLL_S": "0.5",
        "PRESET_SYNC_RECONNECT_S": "2",
        "PRESET_SYNC_MONITOR": "yes",
        "PRESET_SYNC_MONITOR_GRACE_S": "5",
        "PRESET_SYNC_REQUEST_TIMEOUT_S": "off",
        "PRESET_SYNC_TRANSPORT": "HTTP",
    }
    config = load_sync_config(env)
    assert config.websocket_url == "ws://studio-01:4000"
    assert config.http_url == "http://studio-01:4001"
    assert config.api_prefix == "/api"
    assert config.poll_interval_s == 0.5
    assert config.reconnect_delay_s == 2.0
    assert config.monitor is True
    assert config.monitor_grace_s == 5.0
    assert config.request_timeout_s is None
    assert config.request_transport == "http"


def test_sync_config_bad_numbers_fall_back():
    config = load_sync_config({"PRESET_SYNC_WS_PORT": "abc", "PRESET_SYNC_REQUEST_TIMEOUT_S": "-1"})
    assert config.websocket_port == 30020
    assert config.request_timeout_s is None


def test_sync_config_validation():
    with pytest.raises(ValueError):
        SyncConfig(request_transport="carrier-pigeon")
    with pytest.raises(ValueError):
        SyncConfig(poll_interval_s=0)
    with pytest.raises(ValueError):
        load_sync_config({"PRESET_SYNC_TRANSPORT": "smtp"})


def test_with_overrides_ignores_none():
    config = SyncConfig().with_overrides(host="h", websocket_port=None, monitor=True)
    assert config.host == "h"
    assert config.websocket_port == 30020
    assert config.monitor is True


def test_debug_policy_defaults():
    policy = load_debug_policy({})
    assert policy.enabled is False
    assert policy.logging.log_channel is False
    assert apply_debug_policy(policy) == []


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("1", {"log_channel", "log_events", "log_reconcile", "log_views"}),
        ("channel,views", {"log_channel", "log_views"}),
        ('["events"]', {"log_events"}),
        ('{"flags": "reconcile"}', {"log_reconcile"}),
    ],
)
def test_debug_policy_flags(raw, expected):
    policy = load_debug_policy({"PRESET_SYNC_DEBUG": raw})
    assert policy.enabled is True
    enabled = {name for name in vars(policy.logging) if getattr(policy.logging, name)}
    assert enabled == expected


def test_debug_policy_disabled_json():
    policy = load_debug_policy({"PRESET_SYNC_DEBUG": '{"enabled": false, "flags": "channel"}'})
    assert policy.enabled is False
    assert policy.logging.log_channel is False


def test_apply_debug_policy_raises_logger_levels():
    policy = load_debug_policy({"PRESET_SYNC_DEBUG": "views"})
    target = logging.getLogger("preset_sync.state.views")
    saved = (target.level, target.propagate, list(target.handlers))
    try:
        assert apply_debug_policy(policy) == ["preset_sync.state.views"]
        assert target.level == logging.DEBUG
        apply_debug_policy(policy)
        local = [h for h in target.handlers if getattr(h, "_preset_sync_local", False)]
        assert len(local) == 1
    finally:
        target.setLevel(saved[0])
        target.propagate = saved[1]
        target.handlers[:] = saved[2]
