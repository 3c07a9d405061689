"""编排器测试"""

import asyncio

import pytest

from token_relay.api.orchestrator import StrategyOrchestrator
from token_relay.core.types import (
    CredentialRecord,
    CredentialSource,
    ExtractionOutcome,
    OutcomeKind,
    PersistenceOutcome,
    RecordOrigin,
)
from token_relay.extraction.auxiliary import AuxiliaryState, ScrapeReply
from token_relay.extraction.strategies import strategy

from .conftest import BACKUP_HOST, PRIMARY_HOST, make_token


@pytest.fixture
def orchestrator(scrape_context, persistence, failover):
    return StrategyOrchestrator(scrape_context, persistence, failover)


def scripted(source, outcome, calls=None, delay=0.0):
    """返回固定结果的策略"""

    @strategy(source)
    async def run(ctx):
        if calls is not None:
            calls.append(source)
        if delay:
            await asyncio.sleep(delay)
        return outcome

    return run


class TestRun:
    @pytest.mark.asyncio
    async def test_existing_surface_wins_first(self, orchestrator, browser, aux_factory, remote, cache):
        token = make_token()
        browser.pages = {"https://labs.google/fx/tools/flow": token}

        result = await orchestrator.run()

        assert result.success
        assert result.method == "existing_surface"
        assert result.persistence == PersistenceOutcome.BOTH_SUCCEEDED
        assert result.attempts == [(CredentialSource.EXISTING_SURFACE, OutcomeKind.FOUND)]
        assert aux_factory.calls == 0
        assert remote.primary_doc["fields"]["token"]["stringValue"] == token
        assert remote.backup_doc["token"] == token
        assert cache.load().value == token

    @pytest.mark.asyncio
    async def test_falls_through_to_direct_fetch(self, orchestrator, remote):
        token = make_token(150)
        remote.target_html = f"<html>{token}</html>"

        result = await orchestrator.run()

        assert result.success
        assert result.record.value == token
        assert [s for s, _ in result.attempts] == [
            CredentialSource.EXISTING_SURFACE,
            CredentialSource.AUXILIARY_CONTEXT,
            CredentialSource.DIRECT_FETCH,
        ]

    @pytest.mark.asyncio
    async def test_not_authenticated_triggers_identity_retry(
        self, orchestrator, aux_context, identity, remote
    ):
        aux_context.replies = [ScrapeReply(not_logged_in=True)]
        remote.target_html = make_token()

        result = await orchestrator.run()

        assert result.success
        assert identity.calls == [False]
        sources = [s for s, _ in result.attempts]
        assert sources.index(CredentialSource.IDENTITY_ASSISTED_RETRY) == 2
        assert result.method == "direct_fetch"

    @pytest.mark.asyncio
    async def test_identity_retry_success_stops_chain(self, orchestrator, aux_context, identity, remote):
        token = make_token()
        aux_context.replies = [ScrapeReply(not_logged_in=True), ScrapeReply(token=token)]
        identity.token = "identity-token"

        result = await orchestrator.run()

        assert result.success
        assert result.method == "identity_assisted_retry"
        assert remote.requests_to("labs.google") == []

    @pytest.mark.asyncio
    async def test_identity_retry_runs_once(self, scrape_context, persistence, failover):
        retries = []
        chain = [
            scripted(CredentialSource.EXISTING_SURFACE, ExtractionOutcome.not_authenticated()),
            scripted(CredentialSource.AUXILIARY_CONTEXT, ExtractionOutcome.not_authenticated()),
        ]
        retry = scripted(
            CredentialSource.IDENTITY_ASSISTED_RETRY, ExtractionOutcome.not_authenticated(), retries
        )
        orchestrator = StrategyOrchestrator(scrape_context, persistence, failover, chain, retry)

        await orchestrator.run()

        assert len(retries) == 1

    @pytest.mark.asyncio
    async def test_timeout_moves_to_next(self, scrape_context, persistence, failover):
        token = make_token()
        chain = [
            scripted(CredentialSource.EXISTING_SURFACE, ExtractionOutcome.not_found(), delay=5.0),
            scripted(
                CredentialSource.DIRECT_FETCH,
                ExtractionOutcome.found(CredentialRecord(token, source=CredentialSource.DIRECT_FETCH)),
            ),
        ]
        orchestrator = StrategyOrchestrator(scrape_context, persistence, failover, chain)

        result = await orchestrator.run()

        assert result.success
        assert result.attempts[0] == (CredentialSource.EXISTING_SURFACE, OutcomeKind.TIMED_OUT)
        assert result.record.value == token

    @pytest.mark.asyncio
    async def test_exhausted_without_stored_value(self, orchestrator, remote):
        result = await orchestrator.run()

        assert not result.success
        assert result.error == "All silent methods failed"
        assert result.attempts == [
            (CredentialSource.EXISTING_SURFACE, OutcomeKind.NOT_FOUND),
            (CredentialSource.AUXILIARY_CONTEXT, OutcomeKind.NOT_FOUND),
            (CredentialSource.DIRECT_FETCH, OutcomeKind.NOT_FOUND),
            (CredentialSource.CROSS_ORIGIN_FRAME, OutcomeKind.NOT_FOUND),
        ]
        # 策略耗尽后依次读取了主、备后端
        assert len(remote.requests_to(PRIMARY_HOST, "GET")) == 1
        assert len(remote.requests_to(BACKUP_HOST, "GET")) == 1

    @pytest.mark.asyncio
    async def test_exhausted_falls_back_to_stored_value(self, orchestrator, remote):
        token = make_token()
        remote.primary_up = False
        remote.backup_doc = {"token": token, "updatedAt": "2024-05-01T10:00:00.000Z", "source": "direct_fetch"}

        result = await orchestrator.run()

        assert result.success
        assert result.from_cache
        assert result.method == "cache"
        assert result.record.value == token
        assert result.record.origin == RecordOrigin.BACKUP
        assert result.to_response()["fromCache"] is True

    @pytest.mark.asyncio
    async def test_found_but_both_backends_down(self, orchestrator, browser, remote, cache):
        token = make_token()
        browser.pages = {"https://labs.google/": token}
        remote.primary_up = False
        remote.backup_up = False

        result = await orchestrator.run()

        assert result.success
        assert result.persistence == PersistenceOutcome.BOTH_FAILED
        assert cache.load().value == token

    @pytest.mark.asyncio
    async def test_auxiliary_released_after_run(self, orchestrator, auxiliary, aux_context):
        await orchestrator.run()

        assert aux_context.closed
        assert auxiliary.state == AuxiliaryState.ABSENT

    @pytest.mark.asyncio
    async def test_runs_are_serialized(self, scrape_context, persistence, failover):
        active = []
        overlap = []

        @strategy(CredentialSource.EXISTING_SURFACE)
        async def tracked(ctx):
            if active:
                overlap.append(True)
            active.append(1)
            await asyncio.sleep(0.02)
            active.pop()
            return ExtractionOutcome.not_found()

        orchestrator = StrategyOrchestrator(scrape_context, persistence, failover, [tracked])
        await asyncio.gather(orchestrator.run(), orchestrator.run())

        assert overlap == []


class TestCheckLogin:
    @pytest.mark.asyncio
    async def test_reports_and_releases(self, orchestrator, aux_context, auxiliary):
        aux_context.logged_in = False

        assert await orchestrator.check_login() is False
        assert auxiliary.state == AuxiliaryState.ABSENT
        assert aux_context.closed
