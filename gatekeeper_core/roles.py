import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Iterable, List

import discord


@dataclass
class RoleChanges:
    granted: List[int] = field(default_factory=list)
    revoked: List[int] = field(default_factory=list)
    skipped: List[int] = field(default_factory=list)
    failed: List[int] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "granted": self.granted,
            "revoked": self.revoked,
            "skipped": self.skipped,
            "failed": self.failed,
        }


def audit_reason(agent: Any) -> str:
    return f"Automatic verification by {agent} ({agent.id})"


class RoleMutator:
    """
    Grant and revoke roles on a member, grants first.

    Between the two phases the mutator waits ``settle_delay`` seconds and
    re-fetches the member; a revoke issued straight after a grant can be
    computed against a stale role list and silently do nothing.
    """

    def __init__(self, settle_delay: float = 0.25):
        self.settle_delay = settle_delay
        self.logger = logging.getLogger("gatekeeper.roles")

    async def apply(self, member: Any, grant: Iterable[int], revoke: Iterable[int], reason: str) -> RoleChanges:
        guild = member.guild
        agent = guild.me
        changes = RoleChanges()

        for role_id in sorted(grant):
            role = self._mutable_role(guild, agent, role_id, changes)
            if role is None or self._has_role(member, role_id):
                continue
            try:
                await member.add_roles(role, reason=reason)
                changes.granted.append(role_id)
            except discord.HTTPException as exc:
                changes.failed.append(role_id)
                self.logger.warning("Granting role %s to %s failed: %s", role_id, member.id, exc)

        await asyncio.sleep(self.settle_delay)
        member = await self._refetch(guild, member)

        for role_id in sorted(revoke):
            role = self._mutable_role(guild, agent, role_id, changes)
            if role is None or not self._has_role(member, role_id):
                continue
            try:
                await member.remove_roles(role, reason=reason)
                changes.revoked.append(role_id)
            except discord.HTTPException as exc:
                changes.failed.append(role_id)
                self.logger.warning("Revoking role %s from %s failed: %s", role_id, member.id, exc)
        return changes

    def _mutable_role(self, guild: Any, agent: Any, role_id: int, changes: RoleChanges) -> Any:
        role = guild.get_role(role_id)
        if role is None:
            self.logger.warning("Role %s not found in guild %s; skipping", role_id, guild.id)
            changes.skipped.append(role_id)
            return None
        # Equal position counts as not outranking.
        if agent.top_role.position <= role.position:
            self.logger.debug("Role %s is not below the agent's top role; skipping", role_id)
            changes.skipped.append(role_id)
            return None
        return role

    @staticmethod
    def _has_role(member: Any, role_id: int) -> bool:
        return any(role.id == role_id for role in member.roles)

    async def _refetch(self, guild: Any, member: Any) -> Any:
        try:
            return await guild.fetch_member(member.id)
        except discord.HTTPException as exc:
            self.logger.warning("Member re-fetch failed for %s; using cached roles: %s", member.id, exc)
            return member
