"""
Unit Tests for the Verification Manager
=======================================
"""

import asyncio

import pytest

from query_verifier.clients.mock import MockExecutionClient
from query_verifier.clients.rewriter import TableMaterializingRewriter
from query_verifier.config import VerifierConfig
from query_verifier.manager import VerificationManager
from query_verifier.models import ClusterRole, SourceQuery, VerificationOutcome


class _TrackingClient(MockExecutionClient):
    """Mock client that records how many bundles run at once."""

    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self.in_flight = 0
        self.peak_in_flight = 0

    async def execute_bundle(self, bundle):
        self.in_flight += 1
        self.peak_in_flight = max(self.peak_in_flight, self.in_flight)
        try:
            await asyncio.sleep(0.01)
            return await super().execute_bundle(bundle)
        finally:
            self.in_flight -= 1


def queries(count: int) -> list[SourceQuery]:
    return [SourceQuery(query_id=f"q{n}", sql=f"SELECT {n} AS id") for n in range(count)]


class TestVerificationManager:
    """Tests for running a corpus of verifications."""

    @pytest.mark.asyncio
    async def test_results_in_input_order(self, config: VerifierConfig, make_client) -> None:
        """Test that every query gets a result, in input order."""
        manager = VerificationManager.create(config, TableMaterializingRewriter(config), make_client())

        results = await manager.run(queries(5))

        assert [r.source_query.query_id for r in results] == ["q0", "q1", "q2", "q3", "q4"]
        assert all(r.outcome == VerificationOutcome.MATCH for r in results)

    @pytest.mark.asyncio
    async def test_concurrency_is_bounded(self, columns, make_checksum_row) -> None:
        """Test that no more than max_concurrency verifications run at once."""
        config = VerifierConfig(max_concurrency=2, resubmission_base_delay_seconds=0.0)
        client = _TrackingClient(
            columns={ClusterRole.CONTROL: columns, ClusterRole.TEST: columns},
            checksums={
                ClusterRole.CONTROL: [make_checksum_row()],
                ClusterRole.TEST: [make_checksum_row()],
            },
        )
        manager = VerificationManager.create(config, TableMaterializingRewriter(config), client)

        await manager.run(queries(6))

        assert client.peak_in_flight == 2

    @pytest.mark.asyncio
    async def test_contexts_are_independent(self, config: VerifierConfig, make_client) -> None:
        """Test that each verification owns its own context."""
        manager = VerificationManager.create(config, TableMaterializingRewriter(config), make_client())

        results = await manager.run(queries(3))

        contexts = {id(r.context) for r in results}
        assert len(contexts) == 3
        assert [r.context.source_query_id for r in results] == ["q0", "q1", "q2"]

    @pytest.mark.asyncio
    async def test_duplicate_ids_rejected(self, config: VerifierConfig, make_client) -> None:
        """Test that ambiguous query ids are refused up front."""
        manager = VerificationManager.create(config, TableMaterializingRewriter(config), make_client())
        duplicated = [SourceQuery("same", "SELECT 1"), SourceQuery("same", "SELECT 2")]

        with pytest.raises(ValueError, match="same"):
            await manager.run(duplicated)

    @pytest.mark.asyncio
    async def test_cancel_one_verification(self, config: VerifierConfig, make_client) -> None:
        """Test that cancelling one query leaves its siblings running."""
        client = make_client()
        manager = VerificationManager.create(config, TableMaterializingRewriter(config), client)
        slow = SourceQuery("slow", "SELECT pg_sleep(10)")

        original = client.execute_bundle

        async def execute_bundle(bundle):
            if bundle.source_query_id == "slow":
                await asyncio.sleep(10)
            return await original(bundle)

        client.execute_bundle = execute_bundle

        run = asyncio.create_task(manager.run([slow] + queries(2)))
        await asyncio.sleep(0.05)
        controller = manager.controllers["slow"]
        assert manager.cancel("slow")

        results = await run

        assert [r.source_query.query_id for r in results] == ["q0", "q1"]
        assert controller.context.outcome is None
        assert manager.controllers == {}
        assert not manager.cancel("q0")
        assert not manager.cancel("unknown")

    @pytest.mark.asyncio
    async def test_overlapping_batches(self, config: VerifierConfig, make_client) -> None:
        """Test that a later batch does not hide an earlier one from cancel()."""
        client = make_client()
        manager = VerificationManager.create(config, TableMaterializingRewriter(config), client)
        execute_bundle = client.execute_bundle

        async def slow_for_a(bundle):
            if bundle.source_query_id == "a":
                await asyncio.sleep(10)
            return await execute_bundle(bundle)

        client.execute_bundle = slow_for_a

        first = asyncio.create_task(manager.run([SourceQuery("a", "SELECT 1 AS id")]))
        await asyncio.sleep(0.05)
        second = await manager.run([SourceQuery("b", "SELECT 2 AS id")])

        assert [r.outcome for r in second] == [VerificationOutcome.MATCH]
        assert set(manager.controllers) == {"a"}
        assert manager.cancel("a")
        assert await first == []
        assert manager.controllers == {}
        assert not manager.cancel("a")

    @pytest.mark.asyncio
    async def test_query_already_in_flight_rejected(self, config: VerifierConfig, make_client) -> None:
        """Test that the same query id cannot run in two batches at once."""
        client = make_client(latency={ClusterRole.CONTROL: 10.0})
        manager = VerificationManager.create(config, TableMaterializingRewriter(config), client)

        first = asyncio.create_task(manager.run([SourceQuery("a", "SELECT 1")]))
        await asyncio.sleep(0.05)

        with pytest.raises(ValueError, match="already being verified"):
            await manager.run([SourceQuery("a", "SELECT 1")])

        manager.cancel("a")
        assert await first == []

    def test_summarize(self) -> None:
        """Test that summaries count every outcome, including zeros."""

        class _Result:
            def __init__(self, outcome: VerificationOutcome) -> None:
                self.outcome = outcome

        summary = VerificationManager.summarize(
            [
                _Result(VerificationOutcome.MATCH),
                _Result(VerificationOutcome.MATCH),
                _Result(VerificationOutcome.REGRESSION),
            ]
        )
        assert summary == {"match": 2, "regression": 1, "known_issue": 0, "inconclusive": 0}

    @pytest.mark.asyncio
    async def test_verify_single_query(self, config: VerifierConfig, make_client) -> None:
        """Test the single-query convenience wrapper."""
        manager = VerificationManager.create(config, TableMaterializingRewriter(config), make_client())
        result = await manager.verify(SourceQuery("one", "SELECT 1"))
        assert result.outcome == VerificationOutcome.MATCH
