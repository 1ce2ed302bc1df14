import json

import pytest

from strata.exceptions import ConfigurationError
from strata.models.config import PlayerConfig, SubtitleSettings
from strata.models.state import SessionState
from strata.storage.config_manager import ConfigManager
from strata.storage.settings_repository import SettingsRepository


def test_settings_round_trip(tmp_path):
    repository = SettingsRepository(tmp_path)
    state = SessionState(
        volume=0.3,
        is_muted=True,
        playback_rate=1.25,
        subtitle_settings=SubtitleSettings(text_size=140, use_native=True),
        theme="midnight",
        source_statuses={0: "error"},
    )
    assert repository.save_state(state) is True

    loaded = SettingsRepository(tmp_path).load()
    assert loaded["volume"] == 0.3
    assert loaded["is_muted"] is True
    assert loaded["playback_rate"] == 1.25
    assert loaded["subtitle_settings"] == SubtitleSettings(text_size=140, use_native=True)
    assert loaded["theme"] == "midnight"
    assert "source_statuses" not in loaded


def test_unchanged_settings_are_not_rewritten(tmp_path):
    repository = SettingsRepository(tmp_path)
    state = SessionState(volume=0.5)
    assert repository.save_state(state) is True
    assert repository.save_state(state) is False
    assert repository.save_state(SessionState(volume=0.6)) is True


def test_corrupt_or_invalid_settings_are_ignored(tmp_path):
    (tmp_path / SettingsRepository.FILE_NAME).write_text("{not json", encoding="utf-8")
    assert SettingsRepository(tmp_path).load() == {}

    (tmp_path / SettingsRepository.FILE_NAME).write_text(
        json.dumps(
            {"version": 1, "settings": {"volume": 0.7, "subtitle_settings": {"text_size": 5}}}
        ),
        encoding="utf-8",
    )
    assert SettingsRepository(tmp_path).load() == {"volume": 0.7}


def test_clear_removes_file(tmp_path):
    repository = SettingsRepository(tmp_path)
    repository.save_state(SessionState())
    assert repository.clear() is True
    assert not repository.path.exists()


def test_config_defaults_without_file(tmp_path):
    config = ConfigManager(tmp_path / "config.ini").load_config()
    assert config.max_retries == 5
    assert config.retry_base_delay == 1.5
    assert config.direct_write is True


def test_config_round_trip_and_cli_overrides(tmp_path):
    path = tmp_path / "strata" / "config.ini"
    manager = ConfigManager(path)
    manager.save_new_config({"max_retries": 3, "download_dir": str(tmp_path)})

    config = ConfigManager(path).load_config({"direct_write": False})
    assert config.max_retries == 3
    assert config.download_dir == str(tmp_path)
    assert config.direct_write is False


def test_missing_keys_are_migrated(tmp_path):
    path = tmp_path / "config.ini"
    path.write_text("[DEFAULT]\nmax_retries = 4\n", encoding="utf-8")

    config = ConfigManager(path).load_config()

    assert config.max_retries == 4
    text = path.read_text(encoding="utf-8")
    for key in PlayerConfig.get_ini_keys():
        assert key in text


def test_invalid_config_raises(tmp_path):
    path = tmp_path / "config.ini"
    path.write_text("[DEFAULT]\nmax_retries = 50\n", encoding="utf-8")
    with pytest.raises(ConfigurationError):
        ConfigManager(path).load_config()

    path.write_text("[DEFAULT]\nfetch_timeout = soon\n", encoding="utf-8")
    with pytest.raises(ConfigurationError):
        ConfigManager(path).load_config()


def test_subtitle_settings_validation():
    with pytest.raises(ValueError):
        SubtitleSettings(background_opacity=120)
    merged = SubtitleSettings().merged({"text_color": "#ffff00"})
    assert merged.text_color == "#ffff00"
    assert merged.text_size == 100


def test_invalid_scalar_settings_are_ignored(tmp_path):
    (tmp_path / SettingsRepository.FILE_NAME).write_text(
        json.dumps(
            {
                "version": 1,
                "settings": {
                    "volume": "loud",
                    "playback_rate": -1,
                    "is_muted": True,
                    "theme": ["dark"],
                    "brightness": 0.8,
                },
            }
        ),
        encoding="utf-8",
    )
    assert SettingsRepository(tmp_path).load() == {"is_muted": True, "brightness": 0.8}


def test_session_starts_with_defaults_for_invalid_settings(make_session, tmp_path):
    (tmp_path / SettingsRepository.FILE_NAME).write_text(
        json.dumps({"version": 1, "settings": {"volume": "loud"}}), encoding="utf-8"
    )
    session = make_session(settings=SettingsRepository(tmp_path))
    assert session.store.get().volume == 1.0
    assert session.resource.volume == 1.0
