from dataclasses import dataclass
from typing import Any, Iterable, Sequence, Tuple

import discord


# Capabilities the agent needs in the verification channel to react, reply and clean up.
VERIFICATION_CHANNEL_CAPABILITIES: Tuple[str, ...] = (
    "view_channel",
    "send_messages",
    "manage_messages",
    "add_reactions",
)
# Capabilities needed to post the welcome notice.
WELCOME_CHANNEL_CAPABILITIES: Tuple[str, ...] = (
    "view_channel",
    "send_messages",
    "embed_links",
    "attach_files",
)
ROLE_MUTATION_CAPABILITIES: Tuple[str, ...] = ("manage_roles",)

_LABEL_OVERRIDES: dict[str, str] = {
    "manage_guild": "Manage Server",
}


def valid_permission_flags() -> frozenset[str]:
    """Return all permission flags supported by the installed discord.py."""
    return frozenset(str(flag) for flag in discord.Permissions.VALID_FLAGS)


_VALID_FLAGS = valid_permission_flags()


def describe(flag: str) -> str:
    if flag in _LABEL_OVERRIDES:
        return _LABEL_OVERRIDES[flag]
    return " ".join(part.capitalize() for part in flag.split("_"))


def normalize_flags(required: Iterable[str]) -> Tuple[str, ...]:
    flags: list[str] = []
    for flag in required:
        if flag not in _VALID_FLAGS:
            raise ValueError(f"Unknown permission flag: {flag!r}")
        if flag not in flags:
            flags.append(flag)
    return tuple(flags)


@dataclass(frozen=True)
class PermissionCheck:
    granted: bool
    missing: Tuple[str, ...] = ()

    def describe_missing(self) -> list[str]:
        return [describe(flag) for flag in self.missing]


class PermissionGuard:
    """
    Read-only capability queries for the automation agent.

    Channel checks go through ``channel.permissions_for`` so role and member
    overwrites on that channel are applied.
    """

    def check(self, agent: Any, channel: Any, required: Sequence[str]) -> PermissionCheck:
        flags = normalize_flags(required)
        return self._evaluate(channel.permissions_for(agent), flags)

    def check_guild(self, agent: Any, required: Sequence[str]) -> PermissionCheck:
        flags = normalize_flags(required)
        return self._evaluate(agent.guild_permissions, flags)

    @staticmethod
    def _evaluate(perms: Any, flags: Tuple[str, ...]) -> PermissionCheck:
        if getattr(perms, "administrator", False):
            return PermissionCheck(granted=True)
        missing = tuple(flag for flag in flags if not getattr(perms, flag, False))
        return PermissionCheck(granted=not missing, missing=missing)
