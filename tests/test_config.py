"""
Tests for configuration loading.
"""

import json

import pytest

from proctoring_engine.config import ConfigurationService, ProctoringConfiguration


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch):
    for env_var in ConfigurationService.ENV_MAPPINGS:
        monkeypatch.delenv(env_var, raising=False)


def test_defaults_without_file(tmp_path):
    config = ConfigurationService(str(tmp_path / "missing.json")).load_configuration()
    assert config == ProctoringConfiguration()
    assert config.capture_min_delay_ms == 5000
    assert config.capture_jitter_ms == 5000
    assert config.alert_dwell_seconds == 5.0


def test_file_values_and_unknown_keys(tmp_path):
    path = tmp_path / "config.json"
    path.write_text(json.dumps({'ws_url': "wss://verify.example/ws", 'preview_size': 120, 'bogus': 1}))

    config = ConfigurationService(str(path)).load_configuration()

    assert config.ws_url == "wss://verify.example/ws"
    assert config.preview_size == 120
    assert not hasattr(config, 'bogus')


def test_environment_overrides_file(tmp_path, monkeypatch):
    path = tmp_path / "config.json"
    path.write_text(json.dumps({'camera_index': 1}))
    monkeypatch.setenv("PROCTORING_CAMERA_INDEX", "2")
    monkeypatch.setenv("PROCTORING_SOUND_ENABLED", "off")
    monkeypatch.setenv("PROCTORING_ALERT_DWELL", "3.5")

    config = ConfigurationService(str(path)).load_configuration()

    assert config.camera_index == 2
    assert config.sound_enabled is False
    assert config.alert_dwell_seconds == 3.5


def test_invalid_values_fall_back_to_defaults(tmp_path, monkeypatch):
    path = tmp_path / "config.json"
    path.write_text(json.dumps({'ws_url': "http://not-a-socket", 'preview_fps': 0, 'default_passing_score': 150}))
    monkeypatch.setenv("PROCTORING_CAPTURE_JITTER_MS", "lots")

    config = ConfigurationService(str(path)).load_configuration()

    defaults = ProctoringConfiguration()
    assert config.ws_url == defaults.ws_url
    assert config.preview_fps == defaults.preview_fps
    assert config.default_passing_score == defaults.default_passing_score
    assert config.capture_jitter_ms == defaults.capture_jitter_ms


def test_corrupt_file_is_ignored(tmp_path):
    path = tmp_path / "config.json"
    path.write_text("{not json")
    assert ConfigurationService(str(path)).load_configuration() == ProctoringConfiguration()


def test_save_and_reload(tmp_path):
    path = tmp_path / "nested" / "config.json"
    service = ConfigurationService(str(path))
    config = ProctoringConfiguration(buffer_latest_frame=True, notification_cooldown_seconds=2.0)

    assert service.save_configuration(config) is True
    assert service.load_configuration() == config
