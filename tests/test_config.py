import pytest
from pydantic import ValidationError

from core.config import BackoffSettings, Settings


def test_defaults():
    s = Settings()
    assert s.refund.age_threshold == 120
    assert s.refund.tick_interval == 30
    assert s.webhook.tick_interval == 60
    assert s.webhook.max_attempts == 6
    assert s.webhook.backoff.floor >= s.webhook.tick_interval


def test_nested_env_override(monkeypatch):
    monkeypatch.setenv("REFUND__AGE_THRESHOLD", "300")
    monkeypatch.setenv("WEBHOOK__BACKOFF__CAP", "3600")
    s = Settings()
    assert s.refund.age_threshold == 300
    assert s.webhook.backoff.cap == 3600


def test_backoff_floor_shorter_than_tick_rejected():
    with pytest.raises(ValidationError):
        Settings(webhook={"tick_interval": 120, "backoff": {"floor": 60}})


@pytest.mark.parametrize(
    "kwargs",
    [
        {"floor": 120, "cap": 60},
        {"multiplier": 1.5, "jitter": 0.5},
        {"multiplier": 1.0},
    ],
)
def test_invalid_backoff_settings(kwargs):
    with pytest.raises(ValidationError):
        BackoffSettings(**kwargs)
