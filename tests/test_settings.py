from __future__ import annotations

from zoneinfo import ZoneInfo

import pytest

from src.app.settings import DEFAULT_NEW_CARDS_PER_DAY, AppSettings


@pytest.fixture
def bot_env(monkeypatch: pytest.MonkeyPatch) -> pytest.MonkeyPatch:
    monkeypatch.setenv("TELEGRAM_BOT_TOKEN", "123:abc")
    monkeypatch.delenv("NEW_CARDS_PER_DAY", raising=False)
    monkeypatch.delenv("STUDY_TIMEZONE", raising=False)
    return monkeypatch


def test_from_env_uses_study_defaults(bot_env: pytest.MonkeyPatch) -> None:
    settings = AppSettings.from_env()
    config = settings.study_config()

    assert settings.new_cards_per_day == DEFAULT_NEW_CARDS_PER_DAY
    assert config.new_cards_per_day == DEFAULT_NEW_CARDS_PER_DAY
    assert config.timezone == ZoneInfo("UTC")


def test_from_env_reads_study_policy(bot_env: pytest.MonkeyPatch) -> None:
    bot_env.setenv("NEW_CARDS_PER_DAY", "3")
    bot_env.setenv("STUDY_TIMEZONE", "Europe/Athens")

    config = AppSettings.from_env().study_config()

    assert config.new_cards_per_day == 3
    assert config.timezone == ZoneInfo("Europe/Athens")


@pytest.mark.parametrize(
    ("name", "value"),
    [
        ("NEW_CARDS_PER_DAY", "many"),
        ("NEW_CARDS_PER_DAY", "-1"),
        ("STUDY_TIMEZONE", "Mars/Olympus_Mons"),
    ],
)
def test_from_env_rejects_bad_study_policy(bot_env: pytest.MonkeyPatch, name: str, value: str) -> None:
    bot_env.setenv(name, value)

    with pytest.raises(RuntimeError):
        AppSettings.from_env()


def test_from_env_requires_bot_token(bot_env: pytest.MonkeyPatch) -> None:
    bot_env.delenv("TELEGRAM_BOT_TOKEN")

    with pytest.raises(RuntimeError):
        AppSettings.from_env()
