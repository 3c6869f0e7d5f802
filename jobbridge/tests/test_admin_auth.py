"""
Admin resolution.

Goals:
- Email list and pattern grant without touching the database.
- Any one of the role column, role table or identity metadata grants.
- Failing or slow checks deny (never 500), and the wait is bounded.
"""
import asyncio
import time
from types import SimpleNamespace

import pytest

from jobbridge.core.admin_auth import (
    AdminEmailPolicy,
    CheckOutcome,
    resolve_admin,
    run_parallel_checks,
)
from jobbridge.core.auth import Identity
from jobbridge.core.identity_provider import UserMetadata, set_metadata_provider_for_tests
from jobbridge.features.users.service import assign_role


def _policy(emails=None, pattern=None):
    return AdminEmailPolicy.from_settings(SimpleNamespace(ADMIN_EMAILS=emails, ADMIN_EMAIL_PATTERN=pattern))


def _failing_check(exc=RuntimeError("db down")):
    async def check(identity, policy):
        raise exc
    return check


def _fixed_check(outcome, delay=0.0):
    async def check(identity, policy):
        if delay:
            await asyncio.sleep(delay)
        return outcome
    return check


class TestAdminEmailPolicy:
    def test_parses_comma_list(self):
        policy = _policy(emails=" a@x.com, B@X.com ,,")
        assert policy.emails == frozenset({"a@x.com", "b@x.com"})
        assert policy.check("b@x.com") == "email_list"

    def test_pattern(self):
        policy = _policy(pattern=r".*@jobbridge-admin\.com$")
        assert policy.check("ops@jobbridge-admin.com") == "email_pattern"
        assert policy.check("ops@jobbridge-admin.com.evil.io") is None

    def test_invalid_pattern_is_ignored(self):
        policy = _policy(pattern="([unclosed")
        assert policy.pattern is None
        assert policy.check("anyone@example.com") is None

    def test_no_email_never_matches(self):
        policy = _policy(emails="a@x.com", pattern=".*")
        assert policy.check(None) is None
        assert policy.check("") is None


class TestResolveAdmin:
    @pytest.mark.asyncio
    async def test_listed_email_wins_even_when_checks_fail(self):
        identity = Identity(user_id="u1", email="boss@example.com")
        decision = await resolve_admin(
            identity,
            policy=_policy(emails="boss@example.com"),
            checks=[("stored_role", _failing_check())],
        )
        assert decision.granted
        assert decision.source == "email_list"

    @pytest.mark.asyncio
    async def test_pattern_match_grants(self):
        identity = Identity(user_id="u1", email="ops@jobbridge-admin.com")
        decision = await resolve_admin(identity, policy=_policy(pattern=r".*@jobbridge-admin\.com$"))
        assert decision.granted
        assert decision.source == "email_pattern"

    @pytest.mark.asyncio
    async def test_stored_role_grants(self, make_user):
        make_user("u1", email="someone@example.com", role="admin")
        decision = await resolve_admin(Identity(user_id="u1", email="someone@example.com"), policy=_policy())
        assert decision.granted
        assert decision.source == "stored_role"

    @pytest.mark.asyncio
    async def test_role_table_grants(self, make_user):
        make_user("u1", email="someone@example.com")
        assign_role("u1", "admin")
        decision = await resolve_admin(Identity(user_id="u1", email="someone@example.com"), policy=_policy())
        assert decision.granted
        assert decision.source == "role_assignment"

    @pytest.mark.asyncio
    async def test_identity_metadata_grants(self, make_user):
        make_user("u1", email="someone@example.com")

        async def provider(user_id):
            return UserMetadata(user_id=user_id, app_metadata={"role": "admin"})

        set_metadata_provider_for_tests(provider)
        decision = await resolve_admin(Identity(user_id="u1", email="someone@example.com"), policy=_policy())
        assert decision.granted
        assert decision.source == "identity_metadata"

    @pytest.mark.asyncio
    async def test_stored_email_checked_when_token_has_none(self, make_user):
        make_user("u1", email="boss@example.com")
        decision = await resolve_admin(Identity(user_id="u1", email=None), policy=_policy(emails="boss@example.com"))
        assert decision.granted
        assert decision.source == "stored_role"

    @pytest.mark.asyncio
    async def test_regular_user_is_denied(self, make_user):
        make_user("u1", email="someone@example.com")
        decision = await resolve_admin(Identity(user_id="u1", email="someone@example.com"), policy=_policy())
        assert not decision.granted
        assert decision.outcomes == {
            "stored_role": CheckOutcome.DENIED,
            "role_assignment": CheckOutcome.DENIED,
            "identity_metadata": CheckOutcome.DENIED,
        }

    @pytest.mark.asyncio
    async def test_failing_checks_deny_without_raising(self):
        decision = await resolve_admin(
            Identity(user_id="u1"),
            policy=_policy(),
            checks=[("a", _failing_check()), ("b", _failing_check(ValueError("bad row")))],
        )
        assert not decision.granted
        assert decision.outcomes == {"a": CheckOutcome.ERROR, "b": CheckOutcome.ERROR}

    @pytest.mark.asyncio
    async def test_one_grant_beats_errors(self):
        decision = await resolve_admin(
            Identity(user_id="u1"),
            policy=_policy(),
            checks=[("broken", _failing_check()), ("ok", _fixed_check(CheckOutcome.GRANTED, delay=0.01))],
        )
        assert decision.granted
        assert decision.source == "ok"


class TestParallelChecks:
    @pytest.mark.asyncio
    async def test_first_grant_does_not_wait_for_slow_checks(self):
        start = time.perf_counter()
        decision = await run_parallel_checks(
            Identity(user_id="u1"),
            _policy(),
            [("fast", _fixed_check(CheckOutcome.GRANTED)), ("slow", _fixed_check(CheckOutcome.DENIED, delay=5))],
            timeout=2.0,
            grace=0.25,
        )
        assert decision.granted
        assert decision.source == "fast"
        assert time.perf_counter() - start < 1.0

    @pytest.mark.asyncio
    async def test_hung_checks_are_bounded_and_denied(self):
        start = time.perf_counter()
        decision = await run_parallel_checks(
            Identity(user_id="u1"),
            _policy(),
            [("hung", _fixed_check(CheckOutcome.GRANTED, delay=10))],
            timeout=0.1,
            grace=0.05,
        )
        assert not decision.granted
        assert decision.outcomes == {"hung": CheckOutcome.ERROR}
        assert time.perf_counter() - start < 1.0

    @pytest.mark.asyncio
    async def test_straggler_within_grace_still_grants(self):
        decision = await run_parallel_checks(
            Identity(user_id="u1"),
            _policy(),
            [("late", _fixed_check(CheckOutcome.GRANTED, delay=0.15))],
            timeout=0.1,
            grace=0.5,
        )
        assert decision.granted
        assert decision.source == "late"
