"""
Verification Controller
=======================

Drives one source query through the verification state machine.
"""

import asyncio
import time
from dataclasses import replace

import structlog

from observability.logging_config import bind_context
from observability.metrics import (
    ACTIVE_VERIFICATIONS,
    track_resolution,
    track_resubmission,
    track_verification,
)
from observability.tracing import get_tracer
from query_verifier.checksum.validator import ChecksumValidator, ensure_same_columns
from query_verifier.clients.base import ExecutionClient, QueryRewriter, call_remote
from query_verifier.config import VerifierConfig
from query_verifier.determinism import DeterminismAnalyzer
from query_verifier.errors import (
    ExecutionError,
    ExecutionErrorKind,
    RewriteError,
    SchemaMismatchError,
    VerifierError,
)
from query_verifier.models import (
    ChecksumResult,
    ClusterRole,
    Column,
    DeterminismResult,
    Failure,
    FailureKind,
    MatchVerdict,
    QueryBundle,
    SourceQuery,
    VerificationContext,
    VerificationResult,
)
from query_verifier.resolvers.base import FailureResolverChain
from query_verifier.resubmission import ResubmissionController
from query_verifier.state_machine import (
    ChecksumsMatched,
    ChecksumsMismatched,
    DeterminismAnalyzed,
    DeterminismCheckRequested,
    EnterDeterminismCheck,
    Event,
    FailureResolved,
    Finish,
    QueryExecuted,
    QueryFailed,
    Resubmitted,
    ResolveFailure,
    RewriteFailed,
    Rewritten,
    RunChecksum,
    RunDeterminismCheck,
    RunQuery,
    RunRewrite,
    ScheduleResubmission,
    SchemaMismatched,
    Started,
    VerificationState,
    transition,
)

logger = structlog.get_logger(__name__)
tracer = get_tracer(__name__)

_ROLE_FOR_STATE = {
    VerificationState.EXECUTE_CONTROL: ClusterRole.CONTROL,
    VerificationState.EXECUTE_TEST: ClusterRole.TEST,
}


class VerificationController:
    """
    State machine instance for a single source query.

    The controller:
    1. Rewrites the query for control and test
    2. Executes the control bundle, then the test bundle
    3. Checksums both materialized outputs and matches them
    4. Re-runs control on mismatch to check determinism
    5. Resubmits transient failures and resolves terminal ones
    6. Records every step in its VerificationContext
    """

    def __init__(
        self,
        source_query: SourceQuery,
        config: VerifierConfig,
        rewriter: QueryRewriter,
        client: ExecutionClient,
        validator: ChecksumValidator,
        analyzer: DeterminismAnalyzer,
        resubmitter: ResubmissionController,
        resolver_chain: FailureResolverChain,
    ) -> None:
        self.source_query = source_query
        self.config = config
        self.rewriter = rewriter
        self.client = client
        self.validator = validator
        self.analyzer = analyzer
        self.resubmitter = resubmitter
        self.resolver_chain = resolver_chain

        self.context = VerificationContext(source_query_id=source_query.query_id)
        self.state = VerificationState.INIT

        self._bundles: dict[ClusterRole, QueryBundle] = {}
        self._columns: dict[ClusterRole, list[Column]] = {}
        self._checksums: dict[ClusterRole, ChecksumResult] = {}
        self._attempts: dict[VerificationState, int] = {}
        self._determinism: DeterminismResult | None = None

        self._handlers = {
            RunRewrite: self._rewrite,
            RunQuery: self._run_query,
            RunChecksum: self._run_checksum,
            ScheduleResubmission: self._resubmit,
            EnterDeterminismCheck: self._enter_determinism_check,
            RunDeterminismCheck: self._run_determinism_check,
            ResolveFailure: self._resolve_failure,
        }

    @property
    def _timeout(self) -> float:
        return self.config.operation_timeout_seconds

    async def run(self) -> VerificationResult:
        """
        Main entry point: verify the source query.

        Returns:
            VerificationResult with outcome, match detail and full context

        Raises:
            asyncio.CancelledError: If the verification was cancelled
        """
        bind_context(query_id=self.source_query.query_id)
        start_time = time.perf_counter()
        ACTIVE_VERIFICATIONS.inc()

        try:
            with tracer.start_as_current_span("verification") as span:
                span.set_attribute("query.id", self.source_query.query_id)
                try:
                    finish = await self._drive()
                except asyncio.CancelledError:
                    self.context.log("cancelled", state=self.state.value)
                    logger.warning("Verification cancelled", state=self.state.value)
                    raise
                span.set_attribute("verification.outcome", finish.outcome.value)
        finally:
            ACTIVE_VERIFICATIONS.dec()

        if self.config.run_teardown:
            await self._teardown_all()

        duration = time.perf_counter() - start_time
        self.context.outcome = finish.outcome
        self.context.record_timing("total", duration)
        track_verification(finish.outcome.value, duration)
        logger.info(
            "Verification finished",
            outcome=finish.outcome.value,
            state=self.state.value,
            duration_seconds=round(duration, 3),
        )

        return VerificationResult(
            source_query=self.source_query,
            outcome=finish.outcome,
            context=self.context,
            match_result=finish.match_result,
            failure=finish.failure,
            determinism=finish.determinism or self._determinism,
        )

    async def _drive(self) -> Finish:
        event: Event = Started()
        while True:
            step = transition(self.state, event)
            self.context.record_transition(self.state.value, type(event).__name__, step.state.value)
            self.state = step.state
            if isinstance(step.effect, Finish):
                return step.effect
            event = await self._perform(step.effect)

    async def _perform(self, effect) -> Event:
        handler = self._handlers[type(effect)]
        start_time = time.perf_counter()
        with tracer.start_as_current_span(f"verification.{self.state.value}"):
            try:
                return await handler(effect)
            finally:
                self.context.record_timing(self.state.value, time.perf_counter() - start_time)

    # -------------------------------------------------------------------------
    # Effect handlers
    # -------------------------------------------------------------------------

    async def _rewrite(self, effect: RunRewrite) -> Event:
        try:
            for role in ClusterRole:
                bundle = await self.rewriter.rewrite(self.source_query, role)
                self._bundles[role] = bundle
                self.context.log(
                    "rewrite",
                    cluster=role.value,
                    table_name=bundle.table_name,
                    query=bundle.query,
                )
        except RewriteError as e:
            failure = Failure.from_error(e, phase=self.state.value)
            self.context.record_failure(failure)
            logger.warning("Rewrite failed", error=str(e))
            return RewriteFailed(failure)
        return Rewritten()

    async def _run_query(self, effect: RunQuery) -> Event:
        bundle = self._bundles[effect.cluster]
        try:
            stats = await call_remote(self.client.execute_bundle(bundle), self._timeout, effect.cluster)
        except ExecutionError as e:
            return self._query_failed(e, effect.cluster)
        self.context.record_query("execute", stats)
        return QueryExecuted(effect.cluster)

    async def _run_checksum(self, effect: RunChecksum) -> Event:
        role = ClusterRole.CONTROL
        try:
            for role in ClusterRole:
                table_name = self._bundles[role].table_name
                columns = await call_remote(
                    self.client.get_columns(table_name, role), self._timeout, role
                )
                self._columns[role] = columns
                self.context.record_columns(role, columns)

            ensure_same_columns(self._columns[ClusterRole.CONTROL], self._columns[ClusterRole.TEST])

            for role in ClusterRole:
                checksum_sql = self.validator.generate_checksum_query(
                    self._bundles[role].table_name, self._columns[role]
                )
                self.context.record_checksum_query(role, checksum_sql)
                result = await call_remote(self.client.execute(checksum_sql, role), self._timeout, role)
                self.context.record_query("checksum", result.stats)
                self._checksums[role] = ChecksumResult.from_query_result(result)
        except SchemaMismatchError as e:
            failure = Failure.from_error(e, phase=self.state.value)
            self.context.record_failure(failure)
            logger.warning("Schema mismatch", error=str(e))
            return SchemaMismatched(failure)
        except ExecutionError as e:
            return self._query_failed(e, role)
        except ValueError as e:
            malformed = ExecutionError(str(e), kind=ExecutionErrorKind.UNKNOWN, cluster=role)
            return self._query_failed(malformed, role)

        match_result = self.validator.match_checksums(
            self._columns[ClusterRole.CONTROL],
            self._checksums[ClusterRole.CONTROL],
            self._checksums[ClusterRole.TEST],
        )
        self.context.log("match", **match_result.to_dict())

        if match_result.verdict == MatchVerdict.MATCH:
            return ChecksumsMatched(match_result)
        if match_result.verdict == MatchVerdict.MISMATCH:
            logger.info("Checksum mismatch", columns=match_result.mismatched_columns)
            return ChecksumsMismatched(match_result)

        failure = Failure(
            kind=FailureKind.EXECUTION_ERROR,
            message=match_result.message,
            phase=self.state.value,
            error_kind=ExecutionErrorKind.UNKNOWN.value,
            match_result=match_result,
        )
        self.context.record_failure(failure)
        return QueryFailed(failure, resubmit=False)

    async def _resubmit(self, effect: ScheduleResubmission) -> Event:
        target = effect.target
        attempt = self._attempts.get(target, 1)
        delay = self.resubmitter.delay(attempt)
        self._attempts[target] = attempt + 1

        predicate = self.resubmitter.matching_predicate(effect.failure)
        track_resubmission(predicate or "unknown")
        self.context.record_resubmission(target.value, effect.failure, attempt + 1, delay)
        logger.info(
            "Resubmitting",
            target=target.value,
            attempt=attempt + 1,
            predicate=predicate,
            delay_seconds=delay,
        )

        role = _ROLE_FOR_STATE.get(target)
        if role is not None:
            # The table may be half-written; drop it before rematerializing
            await self._teardown(self._bundles[role])

        await asyncio.sleep(delay)
        return Resubmitted(target)

    async def _enter_determinism_check(self, effect: EnterDeterminismCheck) -> Event:
        return DeterminismCheckRequested(effect.match_result)

    async def _run_determinism_check(self, effect: RunDeterminismCheck) -> Event:
        result = await self.analyzer.analyze(
            self.source_query,
            self._columns[ClusterRole.CONTROL],
            self._checksums[ClusterRole.CONTROL],
            effect.match_result.mismatched_columns,
            self.context,
        )
        self._determinism = result
        return DeterminismAnalyzed(result, effect.match_result)

    async def _resolve_failure(self, effect: ResolveFailure) -> Event:
        failure = effect.failure
        resolution = self.resolver_chain.resolve(failure, self.context)
        if resolution is not None:
            failure = failure.with_resolution(resolution)
            track_resolution(resolution.resolver_name)
            logger.info(
                "Failure resolved",
                resolver=resolution.resolver_name,
                explanation=resolution.explanation,
            )
        self.context.log("terminal_failure", **failure.to_dict())
        return FailureResolved(failure)

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    def _query_failed(self, error: ExecutionError, cluster: ClusterRole) -> Event:
        attempt = self._attempts.get(self.state, 1)
        failure = Failure.from_error(error, phase=self.state.value, cluster=cluster, attempts=attempt)
        resubmit = self.resubmitter.should_resubmit(failure, attempt)
        if not resubmit and self.resubmitter.matching_predicate(failure) is not None:
            failure = replace(failure, exhausted=True)

        self.context.record_failure(failure)
        logger.warning(
            "Remote operation failed",
            phase=self.state.value,
            cluster=failure.cluster.value if failure.cluster else None,
            error_kind=failure.error_kind,
            transient=error.transient,
            attempt=attempt,
            resubmit=resubmit,
        )
        return QueryFailed(failure, resubmit)

    async def _teardown(self, bundle: QueryBundle) -> None:
        try:
            await call_remote(self.client.teardown(bundle), self._timeout, bundle.cluster)
        except VerifierError as e:
            logger.warning("Teardown failed", table=bundle.table_name, error=str(e))
            self.context.log("teardown_failed", table=bundle.table_name, error=str(e))

    async def _teardown_all(self) -> None:
        for bundle in self._bundles.values():
            await self._teardown(bundle)
