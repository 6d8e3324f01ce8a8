"""
Determinism Analyzer
====================

Re-runs the control query after a mismatch to tell genuine regressions
apart from queries that legitimately produce more than one result.
"""

import asyncio

import structlog

from observability.metrics import track_determinism, track_resubmission
from query_verifier.checksum.validator import ChecksumValidator
from query_verifier.clients.base import ExecutionClient, QueryRewriter, call_remote
from query_verifier.config import VerifierConfig
from query_verifier.errors import DeterminismAnalysisError, VerifierError
from query_verifier.models import (
    ChecksumResult,
    ClusterRole,
    Column,
    DeterminismAnalysis,
    DeterminismResult,
    DeterminismRun,
    Failure,
    MatchVerdict,
    QueryBundle,
    SourceQuery,
    VerificationContext,
)
from query_verifier.resubmission import ResubmissionController

logger = structlog.get_logger(__name__)


class DeterminismAnalyzer:
    """
    Classifies a mismatching query as deterministic or not.

    The control query is re-executed ``determinism_runs`` times and each
    rerun is checksummed against the first control run. Only the columns
    that disagreed with test are considered, plus the row count. A rerun
    that fails transiently is resubmitted under the same policy as the
    main control and test executions.
    """

    def __init__(
        self,
        config: VerifierConfig,
        rewriter: QueryRewriter,
        client: ExecutionClient,
        validator: ChecksumValidator,
        resubmitter: ResubmissionController | None = None,
    ) -> None:
        self.config = config
        self.rewriter = rewriter
        self.client = client
        self.validator = validator
        self.resubmitter = resubmitter or ResubmissionController(config)

    async def analyze(
        self,
        source_query: SourceQuery,
        control_columns: list[Column],
        control_checksum: ChecksumResult,
        mismatched_columns: list[str],
        context: VerificationContext,
    ) -> DeterminismResult:
        """
        Re-run control and compare against its first run.

        Args:
            source_query: The query that mismatched
            control_columns: Columns of the first control run
            control_checksum: Checksum row of the first control run
            mismatched_columns: Columns that disagreed between control and test
            context: Verification record to append reruns to

        Returns:
            DeterminismResult; never raises for rerun failures
        """
        watched = set(mismatched_columns)
        runs: list[DeterminismRun] = []

        for run in range(1, self.config.determinism_runs + 1):
            try:
                rerun = await self._rerun_with_resubmission(
                    run, source_query, control_columns, control_checksum, context
                )
            except DeterminismAnalysisError as e:
                runs.append(DeterminismRun(run=run, error=str(e)))
                logger.warning("Determinism rerun failed", run=run, error=str(e))
                return self._finish(DeterminismAnalysis.ANALYSIS_FAILED, runs, str(e), context)

            runs.append(rerun)

            if rerun.row_count != control_checksum.row_count:
                reason = (
                    f"Row count changed on rerun {run}: "
                    f"{control_checksum.row_count} -> {rerun.row_count}"
                )
                return self._finish(DeterminismAnalysis.NON_DETERMINISTIC, runs, reason, context)

            drifted = [name for name in rerun.mismatched_columns if name in watched]
            if drifted:
                reason = f"Columns changed between control runs: {', '.join(drifted)}"
                return self._finish(DeterminismAnalysis.NON_DETERMINISTIC, runs, reason, context)

        reason = f"{len(runs)} control rerun(s) agree with the first control run"
        return self._finish(DeterminismAnalysis.DETERMINISTIC, runs, reason, context)

    async def _rerun_with_resubmission(
        self,
        run: int,
        source_query: SourceQuery,
        control_columns: list[Column],
        control_checksum: ChecksumResult,
        context: VerificationContext,
    ) -> DeterminismRun:
        attempt = 1
        while True:
            try:
                return await self._rerun(
                    run, attempt, source_query, control_columns, control_checksum, context
                )
            except DeterminismAnalysisError as e:
                if e.failure is None or not self.resubmitter.should_resubmit(e.failure, attempt):
                    raise
                failure = e.failure

            delay = self.resubmitter.delay(attempt)
            attempt += 1
            predicate = self.resubmitter.matching_predicate(failure)
            track_resubmission(predicate or "unknown")
            context.record_resubmission(f"determinism_rerun_{run}", failure, attempt, delay)
            logger.info(
                "Resubmitting control rerun",
                run=run,
                attempt=attempt,
                predicate=predicate,
                delay_seconds=delay,
            )
            await asyncio.sleep(delay)

    async def _rerun(
        self,
        run: int,
        attempt: int,
        source_query: SourceQuery,
        control_columns: list[Column],
        control_checksum: ChecksumResult,
        context: VerificationContext,
    ) -> DeterminismRun:
        timeout = self.config.operation_timeout_seconds
        cluster = ClusterRole.CONTROL
        bundle: QueryBundle | None = None
        failed = False
        try:
            bundle = await self.rewriter.rewrite(source_query, cluster)
            stats = await call_remote(self.client.execute_bundle(bundle), timeout, cluster)
            context.record_query("rerun", stats)

            columns = await call_remote(
                self.client.get_columns(bundle.table_name, cluster), timeout, cluster
            )
            if [c.name for c in columns] != [c.name for c in control_columns]:
                raise DeterminismAnalysisError(f"Columns changed on control rerun {run}", run)

            checksum_sql = self.validator.generate_checksum_query(bundle.table_name, columns)
            result = await call_remote(self.client.execute(checksum_sql, cluster), timeout, cluster)
            context.record_query("rerun_checksum", result.stats)
            checksum = ChecksumResult.from_query_result(result)
        except DeterminismAnalysisError:
            failed = True
            raise
        except (VerifierError, ValueError) as e:
            failed = True
            failure = Failure.from_error(e, "determinism_rerun", cluster, attempts=attempt)
            context.record_failure(failure)
            raise DeterminismAnalysisError(
                f"Control rerun {run} failed: {e}", run, failure
            ) from e
        finally:
            # A failed table is dropped even with teardown off so a retry starts clean
            if bundle is not None and (self.config.run_teardown or failed):
                await self._teardown(bundle)

        match_result = self.validator.match_checksums(control_columns, control_checksum, checksum)
        if match_result.verdict == MatchVerdict.ERROR:
            raise DeterminismAnalysisError(
                f"Control rerun {run} checksum is incomplete: {match_result.message}", run
            )

        return DeterminismRun(
            run=run,
            query_id=stats.query_id,
            row_count=checksum.row_count,
            mismatched_columns=tuple(match_result.mismatched_columns),
        )

    async def _teardown(self, bundle: QueryBundle) -> None:
        try:
            await call_remote(
                self.client.teardown(bundle), self.config.operation_timeout_seconds, bundle.cluster
            )
        except VerifierError as e:
            logger.warning("Teardown failed", table=bundle.table_name, error=str(e))

    def _finish(
        self,
        analysis: DeterminismAnalysis,
        runs: list[DeterminismRun],
        reason: str,
        context: VerificationContext,
    ) -> DeterminismResult:
        result = DeterminismResult(analysis=analysis, runs=tuple(runs), reason=reason)
        context.log("determinism_analysis", **result.to_dict())
        track_determinism(analysis.value)
        logger.info("Determinism analysis finished", analysis=analysis.value, reason=reason)
        return result
