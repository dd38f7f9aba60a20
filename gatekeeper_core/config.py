import os
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional, TypeVar

T = TypeVar("T")


def _parse_bool(val: str | None, default: bool) -> bool:
    if val is None:
        return default
    try:
        normalized = val.strip().lower()
        if not normalized:
            return default
        return normalized in {"1", "true", "yes", "on"}
    except Exception:
        return default


def _parse(val: str | None, caster: Callable[[str], T], default: T) -> T:
    if val is None:
        return default
    try:
        return caster(val)
    except Exception:
        return default


def _parse_limit(val: str | None, default: Optional[int]) -> Optional[int]:
    # Empty string means "no limit" (full history).
    if val is None:
        return default
    if not val.strip():
        return None
    return _parse(val, int, default)


@dataclass(frozen=True)
class RuntimeConfig:
    policy_db_path: Path = Path("gatekeeper_core/data/policies.db")
    audit_log_path: Path = Path("gatekeeper_core/data/audit.log")
    policy_seed_path: Optional[Path] = None
    marker_emoji: str = "\N{HOURGLASS WITH FLOWING SAND}"
    settle_delay_seconds: float = 0.25
    capability_reject_ttl: float = 7.5
    eligibility_reject_ttl: float = 5.0
    intro_history_limit: Optional[int] = None
    presence_interval_seconds: float = 60.0
    journal_entries_per_guild: int = 50

    @classmethod
    def from_env(cls) -> "RuntimeConfig":
        """
        Build a config instance with optional environment overrides.
        """
        default = cls()
        seed = os.getenv("GATEKEEPER_POLICY_SEED_PATH", "").strip()
        return cls(
            policy_db_path=Path(os.getenv("GATEKEEPER_POLICY_DB_PATH", default.policy_db_path)),
            audit_log_path=Path(os.getenv("GATEKEEPER_AUDIT_LOG_PATH", default.audit_log_path)),
            policy_seed_path=Path(seed) if seed else default.policy_seed_path,
            marker_emoji=os.getenv("GATEKEEPER_MARKER_EMOJI", "").strip() or default.marker_emoji,
            settle_delay_seconds=_parse(os.getenv("GATEKEEPER_SETTLE_DELAY"), float, default.settle_delay_seconds),
            capability_reject_ttl=_parse(os.getenv("GATEKEEPER_CAPABILITY_TTL"), float, default.capability_reject_ttl),
            eligibility_reject_ttl=_parse(
                os.getenv("GATEKEEPER_ELIGIBILITY_TTL"), float, default.eligibility_reject_ttl
            ),
            intro_history_limit=_parse_limit(os.getenv("GATEKEEPER_INTRO_HISTORY_LIMIT"), default.intro_history_limit),
            presence_interval_seconds=_parse(
                os.getenv("GATEKEEPER_PRESENCE_INTERVAL"), float, default.presence_interval_seconds
            ),
            journal_entries_per_guild=_parse(
                os.getenv("GATEKEEPER_JOURNAL_ENTRIES"), int, default.journal_entries_per_guild
            ),
        )

    def ensure_paths(self) -> None:
        self.policy_db_path.parent.mkdir(parents=True, exist_ok=True)
        self.audit_log_path.parent.mkdir(parents=True, exist_ok=True)
