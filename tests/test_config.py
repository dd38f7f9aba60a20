from pathlib import Path

from gatekeeper_core.config import RuntimeConfig


def test_defaults_without_env(monkeypatch):
    for key in ("GATEKEEPER_SETTLE_DELAY", "GATEKEEPER_INTRO_HISTORY_LIMIT", "GATEKEEPER_POLICY_SEED_PATH"):
        monkeypatch.delenv(key, raising=False)
    config = RuntimeConfig.from_env()
    assert config.settle_delay_seconds == 0.25
    assert config.capability_reject_ttl == 7.5
    assert config.eligibility_reject_ttl == 5.0
    assert config.intro_history_limit is None
    assert config.policy_seed_path is None


def test_env_overrides_and_bad_values(monkeypatch):
    monkeypatch.setenv("GATEKEEPER_SETTLE_DELAY", "0.5")
    monkeypatch.setenv("GATEKEEPER_ELIGIBILITY_TTL", "not-a-number")
    monkeypatch.setenv("GATEKEEPER_INTRO_HISTORY_LIMIT", "500")
    monkeypatch.setenv("GATEKEEPER_POLICY_SEED_PATH", "seed.json")
    config = RuntimeConfig.from_env()
    assert config.settle_delay_seconds == 0.5
    assert config.eligibility_reject_ttl == 5.0
    assert config.intro_history_limit == 500
    assert config.policy_seed_path == Path("seed.json")


def test_blank_history_limit_means_full_history(monkeypatch):
    monkeypatch.setenv("GATEKEEPER_INTRO_HISTORY_LIMIT", " ")
    assert RuntimeConfig.from_env().intro_history_limit is None
