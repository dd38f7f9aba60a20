import asyncio

import pytest

from gatekeeper_core.config import RuntimeConfig
from gatekeeper_core.engine import APPROVED, CAPABILITY, CONFIGURATION, ELIGIBILITY, PENDING, REJECTED, VerificationEngine
from gatekeeper_core.policy import VerificationPolicy
from gatekeeper_core.state import LifecycleState

from fakes import DummyChannel, DummyPerms, DummyRole, build_world, candidate_message, server_error


class DictPolicies:
    def __init__(self, policies=None):
        self.policies = dict(policies or {})

    def get(self, guild_id):
        return self.policies.get(int(guild_id))


def _engine(policy, tmp_path, **overrides) -> VerificationEngine:
    config = RuntimeConfig(
        policy_db_path=tmp_path / "policies.db",
        audit_log_path=tmp_path / "audit.log",
        marker_emoji="M",
        settle_delay_seconds=0,
        **overrides,
    )
    policies = DictPolicies({1: policy} if policy is not None else {})
    return VerificationEngine(config=config, policies=policies)


def _ready() -> LifecycleState:
    state = LifecycleState()
    state.mark_ready()
    return state


def _run(engine, message, lifecycle=None):
    async def scenario():
        attempt = await engine.on_candidate_message(message, lifecycle or _ready())
        return attempt, engine.feedback.pending

    return asyncio.run(scenario())


def test_disabled_or_missing_policy_is_a_noop(tmp_path):
    guild, _, candidate = build_world()
    for policy in (None, VerificationPolicy(verification_channel_id=10, auto_verify_enabled=False)):
        message = candidate_message(guild, candidate)
        attempt, _ = _run(_engine(policy, tmp_path), message)
        assert attempt is None
        assert message.reactions == set()
        assert message.replies == []
        assert message.deleted is False


def test_not_ready_other_channel_and_bots_are_ignored(tmp_path):
    guild, agent, candidate = build_world()
    guild.channels[11] = DummyChannel(11)
    engine = _engine(VerificationPolicy(verification_channel_id=10, auto_verify_enabled=True), tmp_path)

    assert _run(engine, candidate_message(guild, candidate), LifecycleState())[0] is None
    assert _run(engine, candidate_message(guild, candidate, channel_id=11))[0] is None
    assert _run(engine, candidate_message(guild, agent))[0] is None


def test_missing_send_capability_keeps_candidate_message(tmp_path):
    guild, _, candidate = build_world()
    guild.channels[10].perms = DummyPerms("view_channel", "send_messages")
    message = candidate_message(guild, candidate)
    engine = _engine(VerificationPolicy(verification_channel_id=10, auto_verify_enabled=True), tmp_path)

    attempt, pending = _run(engine, message)

    assert attempt.outcome == REJECTED
    assert attempt.rejection.step == "send_capability"
    assert attempt.rejection.kind == CAPABILITY
    assert attempt.rejection.ttl == 7.5
    assert "Manage Messages" in message.replies[0].content
    assert "Add Reactions" in message.replies[0].content
    assert pending == 1
    assert message.reactions == set()
    assert message.deleted is False


def test_welcome_capability_checked_only_when_configured(tmp_path):
    guild, _, candidate = build_world()
    guild.channels[20] = DummyChannel(20, perms=DummyPerms("view_channel", "send_messages"))
    policy = VerificationPolicy(verification_channel_id=10, auto_verify_enabled=True, welcome_channel_id=20)
    attempt, _ = _run(_engine(policy, tmp_path), candidate_message(guild, candidate))
    assert attempt.rejection.step == "welcome_capability"
    assert attempt.rejection.ttl == 7.5

    missing = VerificationPolicy(verification_channel_id=10, auto_verify_enabled=True, welcome_channel_id=21)
    attempt, _ = _run(_engine(missing, tmp_path), candidate_message(guild, candidate, message_id=7001))
    assert attempt.rejection.kind == CONFIGURATION


def test_role_count_boundary_is_inclusive(tmp_path):
    roles = [DummyRole(100 + i, 1) for i in range(3)]
    policy = VerificationPolicy(verification_channel_id=10, auto_verify_enabled=True, min_roles_required=3)

    guild, _, short = build_world(candidate_roles=roles[:2])
    attempt, _ = _run(_engine(policy, tmp_path), candidate_message(guild, short))
    assert attempt.outcome == REJECTED
    assert attempt.rejection.step == "role_count"
    assert attempt.rejection.ttl == 5.0
    assert "You need 3 roles to verify, you currently have 2 roles" in attempt.rejection.text

    guild, _, enough = build_world(candidate_roles=roles)
    attempt, _ = _run(_engine(policy, tmp_path), candidate_message(guild, enough))
    assert attempt.outcome == APPROVED


def test_intro_unset_skips_but_empty_list_is_a_configuration_defect(tmp_path):
    guild, _, candidate = build_world()
    unset = VerificationPolicy(verification_channel_id=10, auto_verify_enabled=True)
    attempt, _ = _run(_engine(unset, tmp_path), candidate_message(guild, candidate))
    assert attempt.outcome == APPROVED

    guild, _, candidate = build_world()
    empty = VerificationPolicy(verification_channel_id=10, auto_verify_enabled=True, intro_channel_ids=())
    message = candidate_message(guild, candidate)
    attempt, _ = _run(_engine(empty, tmp_path), message)
    assert attempt.rejection.kind == CONFIGURATION
    assert "not configured" in message.replies[0].content
    assert attempt.rejection.ttl == 5.0


def test_missing_intro_lists_channels(tmp_path):
    guild, _, candidate = build_world()
    guild.channels[30] = DummyChannel(30)
    guild.channels[31] = DummyChannel(31)
    policy = VerificationPolicy(verification_channel_id=10, auto_verify_enabled=True, intro_channel_ids=(30, 31))
    message = candidate_message(guild, candidate)
    attempt, _ = _run(_engine(policy, tmp_path), message)
    assert attempt.rejection.step == "intro_presence"
    assert attempt.rejection.kind == ELIGIBILITY
    assert "<#30>, <#31>" in message.replies[0].content
    assert message.deleted is False


def test_phrase_case_mismatch_rejects_and_schedules_cleanup(tmp_path):
    guild, _, candidate = build_world()
    policy = VerificationPolicy(verification_channel_id=10, auto_verify_enabled=True, verification_phrase="I agree")
    message = candidate_message(guild, candidate, content="I Agree")
    engine = _engine(policy, tmp_path)

    attempt, pending = _run(engine, message)

    assert attempt.outcome == REJECTED
    assert attempt.rejection.step == "phrase"
    assert attempt.rejection.ttl == 5.0
    assert "phrase is incorrect" in message.replies[0].content
    assert pending == 1
    assert message.deleted is False
    assert message.reactions == set()
    assert engine.journal.last_for(1, candidate.id).step == "phrase"


def test_rejection_reply_is_deleted_after_ttl(tmp_path):
    guild, _, candidate = build_world()
    policy = VerificationPolicy(verification_channel_id=10, auto_verify_enabled=True, verification_phrase="I agree")
    message = candidate_message(guild, candidate, content="nope")
    engine = _engine(policy, tmp_path, eligibility_reject_ttl=0.01)

    async def scenario():
        await engine.on_candidate_message(message, _ready())
        await engine.feedback.drain()

    asyncio.run(scenario())
    assert message.replies[0].deleted is True
    assert message.deleted is False


def test_role_capability_required_for_role_changes(tmp_path):
    guild, _, candidate = build_world(agent_guild_perms=DummyPerms())
    guild.roles[1] = DummyRole(1, 2)
    policy = VerificationPolicy(verification_channel_id=10, auto_verify_enabled=True, roles_to_grant=frozenset({1}))
    attempt, _ = _run(_engine(policy, tmp_path), candidate_message(guild, candidate))
    assert attempt.rejection.step == "role_capability"
    assert candidate.add_calls == []


def test_full_pass_grants_welcomes_and_deletes(tmp_path):
    guild, _, candidate = build_world()
    guild.roles[1] = DummyRole(1, 2, "Member")
    guild.channels[20] = DummyChannel(20)
    guild.channels[30] = DummyChannel(30, history=[candidate_message(guild, candidate, message_id=1)])
    policy = VerificationPolicy(
        verification_channel_id=10,
        auto_verify_enabled=True,
        welcome_channel_id=20,
        intro_channel_ids=(30,),
        verification_phrase="I agree",
        roles_to_grant=frozenset({1}),
        welcome_template="Welcome {{user}} to {{guild}}! ({{user.id}})",
    )
    message = candidate_message(guild, candidate, content="I agree")

    attempt, pending = _run(_engine(policy, tmp_path), message)

    assert attempt.outcome == APPROVED
    assert [r.id for r in candidate.roles] == [1]
    assert attempt.role_changes.granted == [1]
    assert guild.channels[20].sent == ["Welcome <@500> to Test! (500)"]
    assert message.reactions == set()
    assert message.deleted is True
    assert attempt.candidate_deleted is True
    assert message.replies == []
    assert pending == 0


def test_double_approval_tolerates_missing_candidate(tmp_path):
    guild, _, candidate = build_world()
    guild.roles[1] = DummyRole(1, 2)
    policy = VerificationPolicy(verification_channel_id=10, auto_verify_enabled=True, roles_to_grant=frozenset({1}))
    engine = _engine(policy, tmp_path)
    message = candidate_message(guild, candidate)
    first, _ = _run(engine, message)
    second, _ = _run(engine, message)
    assert first.candidate_deleted is True
    assert second.outcome == APPROVED
    assert second.candidate_deleted is False
    assert len(candidate.add_calls) == 1


def test_bot_messages_never_load_a_policy(tmp_path):
    guild, agent, _ = build_world()
    engine = _engine(VerificationPolicy(verification_channel_id=10, auto_verify_enabled=True), tmp_path)
    lookups = []
    real_get = engine.policies.get

    def counting_get(guild_id):
        lookups.append(guild_id)
        return real_get(guild_id)

    engine.policies.get = counting_get
    assert _run(engine, candidate_message(guild, agent))[0] is None
    assert lookups == []


def test_intro_server_error_skips_channel_and_still_approves(tmp_path):
    guild, _, candidate = build_world()
    guild.channels[30] = DummyChannel(30, history_error=server_error())
    guild.channels[31] = DummyChannel(31, history=[candidate_message(guild, candidate, message_id=1)])
    policy = VerificationPolicy(verification_channel_id=10, auto_verify_enabled=True, intro_channel_ids=(30, 31))
    engine = _engine(policy, tmp_path)
    message = candidate_message(guild, candidate)

    attempt, _ = _run(engine, message)

    assert attempt.outcome == APPROVED
    assert message.deleted is True
    assert engine.journal.last_for(1, candidate.id).outcome == APPROVED


def test_unexpected_step_failure_is_still_recorded(tmp_path):
    guild, _, candidate = build_world()
    engine = _engine(VerificationPolicy(verification_channel_id=10, auto_verify_enabled=True), tmp_path)

    async def broken_step(message, policy):
        raise RuntimeError("boom")

    engine.steps = (("broken", broken_step),)
    message = candidate_message(guild, candidate)

    with pytest.raises(RuntimeError):
        _run(engine, message)

    assert message.reactions == set()
    assert message.deleted is False
    assert engine.journal.last_for(1, candidate.id).outcome == PENDING
