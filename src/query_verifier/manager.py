"""
Verification Manager
====================

Runs many verifications concurrently under a shared concurrency limit.
"""

import asyncio
from collections import Counter
from typing import Callable, Iterable, Sequence

import structlog

from query_verifier.checksum.validator import ChecksumValidator
from query_verifier.clients.base import ExecutionClient, QueryRewriter
from query_verifier.config import VerifierConfig
from query_verifier.controller import VerificationController
from query_verifier.determinism import DeterminismAnalyzer
from query_verifier.models import SourceQuery, VerificationOutcome, VerificationResult
from query_verifier.resolvers.base import FailureResolver, FailureResolverChain
from query_verifier.resubmission import ResubmissionController

logger = structlog.get_logger(__name__)

ControllerFactory = Callable[[SourceQuery], VerificationController]


class VerificationManager:
    """
    Schedules one VerificationController per source query.

    At most ``max_concurrency`` verifications are in flight at once, across
    every batch running on this manager. Each verification owns its own
    context; the only shared pieces are the stateless collaborators handed
    to the controller factory. ``controllers`` holds in-flight
    verifications only and ``cancel()`` reaches any of them.
    """

    def __init__(self, config: VerifierConfig, controller_factory: ControllerFactory) -> None:
        self.config = config
        self.controller_factory = controller_factory
        self.controllers: dict[str, VerificationController] = {}
        self._tasks: dict[str, asyncio.Task] = {}
        self._semaphore = asyncio.Semaphore(config.max_concurrency)

    @classmethod
    def create(
        cls,
        config: VerifierConfig,
        rewriter: QueryRewriter,
        client: ExecutionClient,
        resolvers: list[FailureResolver] | None = None,
    ) -> "VerificationManager":
        """Wire up the default validator, analyzer, resubmitter and resolver chain."""
        validator = ChecksumValidator(config)
        resubmitter = ResubmissionController(config)
        analyzer = DeterminismAnalyzer(config, rewriter, client, validator, resubmitter)
        resolver_chain = FailureResolverChain(resolvers, config)

        def factory(source_query: SourceQuery) -> VerificationController:
            return VerificationController(
                source_query,
                config,
                rewriter,
                client,
                validator,
                analyzer,
                resubmitter,
                resolver_chain,
            )

        return cls(config, factory)

    async def run(self, queries: Sequence[SourceQuery]) -> list[VerificationResult]:
        """
        Verify all queries.

        Args:
            queries: Source queries with unique ids

        Returns:
            Results in input order; cancelled verifications are omitted

        Raises:
            ValueError: If two queries share an id, or an id is already
                being verified by another batch
        """
        ids = [q.query_id for q in queries]
        duplicates = sorted(qid for qid, n in Counter(ids).items() if n > 1)
        if duplicates:
            raise ValueError(f"Duplicate query ids: {', '.join(duplicates)}")
        in_flight = sorted(qid for qid in ids if qid in self._tasks)
        if in_flight:
            raise ValueError(f"Query ids already being verified: {', '.join(in_flight)}")

        tasks = {
            q.query_id: asyncio.create_task(self._verify(q), name=f"verify-{q.query_id}")
            for q in queries
        }
        self._tasks.update(tasks)
        logger.info(
            "Verification run started",
            queries=len(queries),
            max_concurrency=self.config.max_concurrency,
        )

        try:
            outcomes = await asyncio.gather(*tasks.values(), return_exceptions=True)
        finally:
            for query_id in tasks:
                self._tasks.pop(query_id, None)

        results: list[VerificationResult] = []
        for query, outcome in zip(queries, outcomes):
            if isinstance(outcome, asyncio.CancelledError):
                logger.warning("Verification cancelled", query_id=query.query_id)
                continue
            if isinstance(outcome, BaseException):
                raise outcome
            results.append(outcome)

        logger.info("Verification run finished", **self.summarize(results))
        return results

    async def verify(self, source_query: SourceQuery) -> VerificationResult:
        """Verify a single query outside of a batch."""
        results = await self.run([source_query])
        if not results:
            raise asyncio.CancelledError(f"Verification {source_query.query_id} was cancelled")
        return results[0]

    def cancel(self, query_id: str) -> bool:
        """
        Cancel an in-flight or queued verification.

        Returns:
            True if a running task was cancelled
        """
        task = self._tasks.get(query_id)
        if task is None or task.done():
            return False
        task.cancel()
        return True

    @staticmethod
    def summarize(results: Iterable[VerificationResult]) -> dict[str, int]:
        counts = Counter(r.outcome for r in results)
        return {outcome.value: counts.get(outcome, 0) for outcome in VerificationOutcome}

    async def _verify(self, source_query: SourceQuery) -> VerificationResult:
        async with self._semaphore:
            controller = self.controller_factory(source_query)
            self.controllers[source_query.query_id] = controller
            try:
                return await controller.run()
            finally:
                del self.controllers[source_query.query_id]
