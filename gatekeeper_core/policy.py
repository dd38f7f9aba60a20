from dataclasses import dataclass, field
from typing import Any, Dict, FrozenSet, Iterable, Mapping, Tuple


class _Unset:
    """Marker for a policy field that was never configured."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "UNSET"

    def __reduce__(self):
        return (_Unset, ())


UNSET: Any = _Unset()

# Settings rows from the earlier bot used a single space for "not set".
_LEGACY_BLANK = " "

DEFAULT_WELCOME_TEMPLATE = "Welcome {{user}} to {{guild}}!"


def is_unset(value: Any) -> bool:
    return value is UNSET


def _to_id(value: Any) -> int:
    return int(str(value).strip())


def _id_tuple(values: Iterable[Any]) -> Tuple[int, ...]:
    # Unique, order preserved.
    seen: list[int] = []
    for value in values:
        if value is None or not str(value).strip():
            continue
        ident = _to_id(value)
        if ident not in seen:
            seen.append(ident)
    return tuple(seen)


def _split_legacy(value: Any) -> list[str]:
    if value is None:
        return []
    return [part for part in str(value).split(",") if part.strip()]


def _legacy_value(value: Any) -> Any:
    if value is None or value == _LEGACY_BLANK or (isinstance(value, str) and not value.strip()):
        return UNSET
    return value


@dataclass(frozen=True)
class VerificationPolicy:
    verification_channel_id: int
    auto_verify_enabled: bool = False
    welcome_channel_id: Any = UNSET
    min_roles_required: Any = UNSET
    intro_channel_ids: Any = UNSET
    verification_phrase: Any = UNSET
    roles_to_grant: FrozenSet[int] = field(default_factory=frozenset)
    roles_to_revoke: FrozenSet[int] = field(default_factory=frozenset)
    welcome_template: str = DEFAULT_WELCOME_TEMPLATE

    @property
    def requires_role_changes(self) -> bool:
        return bool(self.roles_to_grant or self.roles_to_revoke)

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> "VerificationPolicy":
        """
        Build a policy from a stored JSON record. Missing or null keys become
        UNSET; an explicit empty list stays an empty tuple.
        """

        def _get(key: str) -> Any:
            value = record.get(key)
            return UNSET if value is None else value

        welcome = _get("welcome_channel_id")
        min_roles = _get("min_roles_required")
        intro = _get("intro_channel_ids")
        phrase = _get("verification_phrase")
        return cls(
            verification_channel_id=_to_id(record["verification_channel_id"]),
            auto_verify_enabled=bool(record.get("auto_verify_enabled", False)),
            welcome_channel_id=welcome if is_unset(welcome) else _to_id(welcome),
            min_roles_required=min_roles if is_unset(min_roles) else int(min_roles),
            intro_channel_ids=intro if is_unset(intro) else _id_tuple(intro),
            verification_phrase=phrase if is_unset(phrase) else str(phrase),
            roles_to_grant=frozenset(_id_tuple(record.get("roles_to_grant") or ())),
            roles_to_revoke=frozenset(_id_tuple(record.get("roles_to_revoke") or ())),
            welcome_template=str(record.get("welcome_template") or DEFAULT_WELCOME_TEMPLATE),
        )

    @classmethod
    def from_legacy_row(cls, row: Mapping[str, Any]) -> "VerificationPolicy":
        """
        Import a settings row from the earlier bot, which stored comma-separated
        ids and used a single space for unset columns.
        """
        intro = _legacy_value(row.get("introChannel"))
        return cls.from_record(
            {
                "auto_verify_enabled": bool(row.get("autoVerify")),
                "verification_channel_id": row["verificationChannel"],
                "welcome_channel_id": None if is_unset(_legacy_value(row.get("welcomeChannel"))) else row["welcomeChannel"],
                "min_roles_required": None if is_unset(_legacy_value(row.get("rolesRequired"))) else row["rolesRequired"],
                "intro_channel_ids": None if is_unset(intro) else _split_legacy(intro),
                "verification_phrase": None
                if is_unset(_legacy_value(row.get("verificationPhrase")))
                else row["verificationPhrase"],
                "roles_to_grant": _split_legacy(row.get("addRoles")),
                "roles_to_revoke": _split_legacy(row.get("removeRoles")),
                "welcome_template": row.get("welcomeMessage"),
            }
        )

    def to_record(self) -> Dict[str, Any]:
        def _out(value: Any) -> Any:
            return None if is_unset(value) else value

        intro = _out(self.intro_channel_ids)
        return {
            "auto_verify_enabled": self.auto_verify_enabled,
            "verification_channel_id": self.verification_channel_id,
            "welcome_channel_id": _out(self.welcome_channel_id),
            "min_roles_required": _out(self.min_roles_required),
            "intro_channel_ids": list(intro) if intro is not None else None,
            "verification_phrase": _out(self.verification_phrase),
            "roles_to_grant": sorted(self.roles_to_grant),
            "roles_to_revoke": sorted(self.roles_to_revoke),
            "welcome_template": self.welcome_template,
        }
