"""
Per-message verification pipeline.

A candidate message in the verification channel runs through a fixed list of
named steps. Each step returns ``CONTINUE`` or a ``Rejection``; the first
rejection ends the run. When every step passes the member's roles are updated,
the welcome notice is posted and the candidate message is removed.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, List, Optional, Protocol, Tuple

import discord

from .audit import log_attempt
from .config import RuntimeConfig
from .feedback import FeedbackManager
from .intro_lookup import IntroLookup
from .journal import AttemptJournal
from .permissions import (
    ROLE_MUTATION_CAPABILITIES,
    VERIFICATION_CHANNEL_CAPABILITIES,
    WELCOME_CHANNEL_CAPABILITIES,
    PermissionGuard,
)
from .policy import VerificationPolicy, is_unset
from .roles import RoleChanges, RoleMutator, audit_reason
from .state import LifecycleState
from .templates import render_template, welcome_variables


PENDING = "pending"
REJECTED = "rejected"
APPROVED = "approved"

# Rejection kinds
CONFIGURATION = "configuration"
CAPABILITY = "capability"
ELIGIBILITY = "eligibility"


@dataclass(frozen=True)
class Rejection:
    step: str
    kind: str
    text: str
    ttl: float


CONTINUE: Optional[Rejection] = None


@dataclass
class VerificationAttempt:
    candidate_message_id: int
    author_id: int
    guild_id: int
    channel_id: int
    marker: str
    outcome: str = PENDING
    rejection: Optional[Rejection] = None
    role_changes: RoleChanges = field(default_factory=RoleChanges)
    welcome_posted: bool = False
    candidate_deleted: bool = False

    def to_dict(self) -> dict:
        return {
            "message_id": self.candidate_message_id,
            "author_id": self.author_id,
            "guild_id": self.guild_id,
            "channel_id": self.channel_id,
            "outcome": self.outcome,
            "step": self.rejection.step if self.rejection else None,
            "kind": self.rejection.kind if self.rejection else None,
            "roles": self.role_changes.to_dict(),
            "welcome_posted": self.welcome_posted,
            "candidate_deleted": self.candidate_deleted,
        }


class PolicySource(Protocol):
    def get(self, guild_id: int | str) -> Optional[VerificationPolicy]: ...


Step = Callable[[Any, VerificationPolicy], Awaitable[Optional[Rejection]]]


def _block(lines: List[str]) -> str:
    return "```\n" + "\n".join(lines) + "\n```"


class VerificationEngine:
    def __init__(
        self,
        config: RuntimeConfig,
        policies: PolicySource,
        guard: Optional[PermissionGuard] = None,
        intro_lookup: Optional[IntroLookup] = None,
        roles: Optional[RoleMutator] = None,
        feedback: Optional[FeedbackManager] = None,
        journal: Optional[AttemptJournal] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.config = config
        self.policies = policies
        self.guard = guard or PermissionGuard()
        self.intro_lookup = intro_lookup or IntroLookup(history_limit=config.intro_history_limit)
        self.roles = roles or RoleMutator(settle_delay=config.settle_delay_seconds)
        self.feedback = feedback or FeedbackManager(marker=config.marker_emoji)
        self.journal = journal or AttemptJournal(max_entries_per_guild=config.journal_entries_per_guild)
        self.logger = logger or logging.getLogger("gatekeeper.engine")
        self.steps: Tuple[Tuple[str, Step], ...] = (
            ("send_capability", self._check_send_capability),
            ("welcome_capability", self._check_welcome_capability),
            ("role_count", self._check_role_count),
            ("intro_presence", self._check_intro_presence),
            ("phrase", self._check_phrase),
            ("role_capability", self._check_role_capability),
        )

    async def on_candidate_message(self, message: Any, lifecycle: LifecycleState) -> Optional[VerificationAttempt]:
        if not lifecycle.ready:
            return None
        guild = message.guild
        if guild is None:
            return None
        if message.author.bot or getattr(message, "webhook_id", None) is not None:
            return None
        policy = self.policies.get(guild.id)
        if policy is None or not policy.auto_verify_enabled:
            return None
        if message.channel.id != policy.verification_channel_id:
            return None

        attempt = VerificationAttempt(
            candidate_message_id=message.id,
            author_id=message.author.id,
            guild_id=guild.id,
            channel_id=message.channel.id,
            marker=self.feedback.marker,
        )
        await self.feedback.place_marker(message)
        try:
            rejection = await self._run_steps(message, policy)
            if rejection is not None:
                attempt.outcome = REJECTED
                attempt.rejection = rejection
                await self.feedback.reject(message, rejection.text, rejection.ttl)
            else:
                await self._admit(message, policy, attempt)
                attempt.outcome = APPROVED
        finally:
            await self.feedback.clear_marker(message)
            if attempt.outcome == APPROVED:
                attempt.candidate_deleted = await self.feedback.discard(message)
            self._finish(attempt)
        return attempt

    async def _run_steps(self, message: Any, policy: VerificationPolicy) -> Optional[Rejection]:
        for name, step in self.steps:
            result = await step(message, policy)
            if result is not CONTINUE:
                self.logger.info("Verification of %s stopped at %s (%s)", message.author.id, name, result.kind)
                return result
        return CONTINUE

    async def _check_send_capability(self, message: Any, policy: VerificationPolicy) -> Optional[Rejection]:
        check = self.guard.check(message.guild.me, message.channel, VERIFICATION_CHANNEL_CAPABILITIES)
        if check.granted:
            return CONTINUE
        return Rejection(
            step="send_capability",
            kind=CAPABILITY,
            text=(
                "`\N{CROSS MARK}` I am missing one or more of the following permissions in this channel. "
                "Please inform server staff of this issue\n>>> " + _block(check.describe_missing())
            ),
            ttl=self.config.capability_reject_ttl,
        )

    async def _check_welcome_capability(self, message: Any, policy: VerificationPolicy) -> Optional[Rejection]:
        if is_unset(policy.welcome_channel_id):
            return CONTINUE
        channel = message.guild.get_channel(policy.welcome_channel_id)
        if channel is None:
            return Rejection(
                step="welcome_capability",
                kind=CONFIGURATION,
                text="`\N{CROSS MARK}` The welcome channel could not be found. Please inform server staff of this issue",
                ttl=self.config.capability_reject_ttl,
            )
        check = self.guard.check(message.guild.me, channel, WELCOME_CHANNEL_CAPABILITIES)
        if check.granted:
            return CONTINUE
        return Rejection(
            step="welcome_capability",
            kind=CAPABILITY,
            text=(
                "`\N{CROSS MARK}` I am missing one or more of the following permissions in the welcome channel. "
                "Please inform server staff of this issue\n>>> " + _block(check.describe_missing())
            ),
            ttl=self.config.capability_reject_ttl,
        )

    async def _check_role_count(self, message: Any, policy: VerificationPolicy) -> Optional[Rejection]:
        required = policy.min_roles_required
        if is_unset(required) or required <= 0:
            return CONTINUE
        current = len(message.author.roles)
        if current >= required:
            return CONTINUE
        return Rejection(
            step="role_count",
            kind=ELIGIBILITY,
            text=f"`\N{CROSS MARK}` You need {required} roles to verify, you currently have {current} roles",
            ttl=self.config.eligibility_reject_ttl,
        )

    async def _check_intro_presence(self, message: Any, policy: VerificationPolicy) -> Optional[Rejection]:
        channel_ids = policy.intro_channel_ids
        if is_unset(channel_ids):
            return CONTINUE
        if not channel_ids:
            return Rejection(
                step="intro_presence",
                kind=CONFIGURATION,
                text="`\N{CROSS MARK}` The bot is not configured to have an intro channel",
                ttl=self.config.eligibility_reject_ttl,
            )
        if await self.intro_lookup.has_introduced(message.guild, message.author.id, channel_ids):
            return CONTINUE
        mentions = ", ".join(f"<#{channel_id}>" for channel_id in channel_ids)
        return Rejection(
            step="intro_presence",
            kind=ELIGIBILITY,
            text=f"`\N{CROSS MARK}` You need an introduction posted in one of the following channels: {mentions}",
            ttl=self.config.eligibility_reject_ttl,
        )

    async def _check_phrase(self, message: Any, policy: VerificationPolicy) -> Optional[Rejection]:
        if is_unset(policy.verification_phrase):
            return CONTINUE
        if message.content == policy.verification_phrase:
            return CONTINUE
        return Rejection(
            step="phrase",
            kind=ELIGIBILITY,
            text="`\N{CROSS MARK}` The verification phrase is incorrect",
            ttl=self.config.eligibility_reject_ttl,
        )

    async def _check_role_capability(self, message: Any, policy: VerificationPolicy) -> Optional[Rejection]:
        if not policy.requires_role_changes:
            return CONTINUE
        check = self.guard.check_guild(message.guild.me, ROLE_MUTATION_CAPABILITIES)
        if check.granted:
            return CONTINUE
        return Rejection(
            step="role_capability",
            kind=CAPABILITY,
            text="`\N{CROSS MARK}` I cannot modify roles. Please inform server staff of this issue",
            ttl=self.config.eligibility_reject_ttl,
        )

    async def _admit(self, message: Any, policy: VerificationPolicy, attempt: VerificationAttempt) -> None:
        guild = message.guild
        member = message.author
        if policy.requires_role_changes:
            attempt.role_changes = await self.roles.apply(
                member,
                policy.roles_to_grant,
                policy.roles_to_revoke,
                reason=audit_reason(guild.me),
            )
        if is_unset(policy.welcome_channel_id):
            return
        channel = guild.get_channel(policy.welcome_channel_id)
        if channel is None:
            self.logger.warning("Welcome channel %s vanished during verification", policy.welcome_channel_id)
            return
        content = render_template(policy.welcome_template, welcome_variables(member, guild))
        try:
            await channel.send(content=content)
            attempt.welcome_posted = True
        except discord.HTTPException as exc:
            self.logger.warning("Welcome message for %s failed: %s", member.id, exc)

    def _finish(self, attempt: VerificationAttempt) -> None:
        rejection = attempt.rejection
        self.journal.record(
            attempt.guild_id,
            attempt.author_id,
            attempt.candidate_message_id,
            attempt.outcome,
            step=rejection.step if rejection else "",
            detail=rejection.kind if rejection else "",
        )
        log_attempt(self.logger, attempt.to_dict())
