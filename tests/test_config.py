from pulse.config import EngineSettings, get_settings, reset_settings_cache


def test_defaults(monkeypatch):
    for name in (
        "DATABASE_URL",
        "PULSE_STALE_DAYS",
        "PULSE_MAX_NUDGES",
        "PULSE_DEFAULT_CHANNEL",
        "REPLY_RATE_LIMIT",
        "PULSE_SCHEDULE_INTERVAL_SECONDS",
    ):
        monkeypatch.delenv(name, raising=False)

    settings = EngineSettings.from_env()

    assert settings.database_url is None
    assert settings.stale_days == 7
    assert settings.max_nudges == 2
    assert settings.default_channel == "inapp"
    assert settings.reply_rate_limit == "30/minute"
    assert settings.schedule_interval_seconds == 60.0


def test_env_overrides_and_cache(monkeypatch):
    monkeypatch.setenv("PULSE_STALE_DAYS", "3")
    monkeypatch.setenv("PULSE_SUMMARY_BACKOFF_SECONDS", "0.1")
    monkeypatch.setenv("DATABASE_URL", "")
    reset_settings_cache()

    settings = get_settings()

    assert settings.stale_days == 3
    assert settings.summary_backoff_seconds == 0.1
    assert settings.database_url is None
    assert get_settings() is settings

    monkeypatch.setenv("PULSE_STALE_DAYS", "10")
    assert get_settings().stale_days == 3
    reset_settings_cache()
    assert get_settings().stale_days == 10
    reset_settings_cache()
