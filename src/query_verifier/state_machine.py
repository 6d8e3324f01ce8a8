"""
Verification State Machine
==========================

Pure transition function for one query's verification lifecycle.

    INIT -> REWRITE -> EXECUTE_CONTROL -> EXECUTE_TEST -> CHECKSUM
    CHECKSUM -> MATCHED
    CHECKSUM -> MISMATCHED -> DETERMINISM_CHECK -> FAILED | RESOLVED
    EXECUTE_* / CHECKSUM -> RETRY -> (same state)
    any terminal failure -> FAILED -> RESOLVED | FAILED

``transition(state, event)`` returns the next state and the single effect
the controller must perform. Performing an effect yields the next event.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Union

from query_verifier.errors import InvalidTransitionError
from query_verifier.models import (
    ClusterRole,
    DeterminismAnalysis,
    DeterminismResult,
    Failure,
    FailureKind,
    MatchResult,
    VerificationOutcome,
)


class VerificationState(str, Enum):
    INIT = "init"
    REWRITE = "rewrite"
    EXECUTE_CONTROL = "execute_control"
    EXECUTE_TEST = "execute_test"
    CHECKSUM = "checksum"
    MATCHED = "matched"
    MISMATCHED = "mismatched"
    DETERMINISM_CHECK = "determinism_check"
    RETRY = "retry"
    RESOLVED = "resolved"
    FAILED = "failed"


RETRY_TARGETS = frozenset(
    {
        VerificationState.EXECUTE_CONTROL,
        VerificationState.EXECUTE_TEST,
        VerificationState.CHECKSUM,
    }
)

_EXECUTE_STATES = {
    ClusterRole.CONTROL: VerificationState.EXECUTE_CONTROL,
    ClusterRole.TEST: VerificationState.EXECUTE_TEST,
}


# =============================================================================
# Events
# =============================================================================


@dataclass(frozen=True)
class Started:
    pass


@dataclass(frozen=True)
class Rewritten:
    pass


@dataclass(frozen=True)
class RewriteFailed:
    failure: Failure


@dataclass(frozen=True)
class QueryExecuted:
    cluster: ClusterRole


@dataclass(frozen=True)
class QueryFailed:
    failure: Failure
    resubmit: bool


@dataclass(frozen=True)
class Resubmitted:
    target: VerificationState


@dataclass(frozen=True)
class ChecksumsMatched:
    match_result: MatchResult


@dataclass(frozen=True)
class ChecksumsMismatched:
    match_result: MatchResult


@dataclass(frozen=True)
class SchemaMismatched:
    failure: Failure


@dataclass(frozen=True)
class DeterminismCheckRequested:
    match_result: MatchResult


@dataclass(frozen=True)
class DeterminismAnalyzed:
    result: DeterminismResult
    match_result: MatchResult


@dataclass(frozen=True)
class FailureResolved:
    failure: Failure


Event = Union[
    Started,
    Rewritten,
    RewriteFailed,
    QueryExecuted,
    QueryFailed,
    Resubmitted,
    ChecksumsMatched,
    ChecksumsMismatched,
    SchemaMismatched,
    DeterminismCheckRequested,
    DeterminismAnalyzed,
    FailureResolved,
]


# =============================================================================
# Effects
# =============================================================================


@dataclass(frozen=True)
class RunRewrite:
    pass


@dataclass(frozen=True)
class RunQuery:
    cluster: ClusterRole


@dataclass(frozen=True)
class RunChecksum:
    pass


@dataclass(frozen=True)
class ScheduleResubmission:
    target: VerificationState
    failure: Failure


@dataclass(frozen=True)
class EnterDeterminismCheck:
    match_result: MatchResult


@dataclass(frozen=True)
class RunDeterminismCheck:
    match_result: MatchResult


@dataclass(frozen=True)
class ResolveFailure:
    failure: Failure


@dataclass(frozen=True)
class Finish:
    outcome: VerificationOutcome
    match_result: Optional[MatchResult] = None
    failure: Optional[Failure] = None
    determinism: Optional[DeterminismResult] = None


Effect = Union[
    RunRewrite,
    RunQuery,
    RunChecksum,
    ScheduleResubmission,
    EnterDeterminismCheck,
    RunDeterminismCheck,
    ResolveFailure,
    Finish,
]


@dataclass(frozen=True)
class Step:
    state: VerificationState
    effect: Effect


def unresolved_outcome(failure: Failure) -> VerificationOutcome:
    """Outcome of a terminal failure that no resolver explained."""
    if failure.kind in (FailureKind.CHECKSUM_MISMATCH, FailureKind.SCHEMA_MISMATCH):
        return VerificationOutcome.REGRESSION
    if failure.kind == FailureKind.EXECUTION_ERROR:
        if failure.exhausted or failure.cluster != ClusterRole.TEST:
            return VerificationOutcome.INCONCLUSIVE
        return VerificationOutcome.REGRESSION
    return VerificationOutcome.INCONCLUSIVE


def _effect_for(state: VerificationState) -> Effect:
    if state == VerificationState.EXECUTE_CONTROL:
        return RunQuery(ClusterRole.CONTROL)
    if state == VerificationState.EXECUTE_TEST:
        return RunQuery(ClusterRole.TEST)
    return RunChecksum()


def _on_query_failed(state: VerificationState, event: QueryFailed) -> Step:
    if event.resubmit:
        return Step(VerificationState.RETRY, ScheduleResubmission(state, event.failure))
    return Step(VerificationState.FAILED, ResolveFailure(event.failure))


def transition(state: VerificationState, event: Event) -> Step:
    """
    Compute the next state and effect.

    Args:
        state: Current state
        event: Event produced by the previous effect

    Returns:
        Step with the next state and the effect to perform

    Raises:
        InvalidTransitionError: If the event is not accepted in this state
    """
    if state == VerificationState.INIT and isinstance(event, Started):
        return Step(VerificationState.REWRITE, RunRewrite())

    if state == VerificationState.REWRITE:
        if isinstance(event, Rewritten):
            return Step(VerificationState.EXECUTE_CONTROL, RunQuery(ClusterRole.CONTROL))
        if isinstance(event, RewriteFailed):
            return Step(VerificationState.FAILED, ResolveFailure(event.failure))

    if state in RETRY_TARGETS and isinstance(event, QueryFailed):
        return _on_query_failed(state, event)

    if state in (VerificationState.EXECUTE_CONTROL, VerificationState.EXECUTE_TEST):
        if isinstance(event, QueryExecuted) and _EXECUTE_STATES[event.cluster] == state:
            if event.cluster == ClusterRole.CONTROL:
                return Step(VerificationState.EXECUTE_TEST, RunQuery(ClusterRole.TEST))
            return Step(VerificationState.CHECKSUM, RunChecksum())

    if state == VerificationState.RETRY and isinstance(event, Resubmitted):
        if event.target in RETRY_TARGETS:
            return Step(event.target, _effect_for(event.target))

    if state == VerificationState.CHECKSUM:
        if isinstance(event, ChecksumsMatched):
            return Step(
                VerificationState.MATCHED,
                Finish(VerificationOutcome.MATCH, match_result=event.match_result),
            )
        if isinstance(event, ChecksumsMismatched):
            return Step(VerificationState.MISMATCHED, EnterDeterminismCheck(event.match_result))
        if isinstance(event, SchemaMismatched):
            return Step(VerificationState.FAILED, ResolveFailure(event.failure))

    if state == VerificationState.MISMATCHED and isinstance(event, DeterminismCheckRequested):
        return Step(VerificationState.DETERMINISM_CHECK, RunDeterminismCheck(event.match_result))

    if state == VerificationState.DETERMINISM_CHECK and isinstance(event, DeterminismAnalyzed):
        if event.result.analysis == DeterminismAnalysis.DETERMINISTIC:
            failure = Failure(
                kind=FailureKind.CHECKSUM_MISMATCH,
                message=event.match_result.message,
                phase=VerificationState.CHECKSUM.value,
                match_result=event.match_result,
            )
            return Step(VerificationState.FAILED, ResolveFailure(failure))
        return Step(
            VerificationState.RESOLVED,
            Finish(
                VerificationOutcome.INCONCLUSIVE,
                match_result=event.match_result,
                determinism=event.result,
            ),
        )

    if state == VerificationState.FAILED and isinstance(event, FailureResolved):
        failure = event.failure
        if failure.resolved:
            return Step(
                VerificationState.RESOLVED,
                Finish(
                    VerificationOutcome.KNOWN_ISSUE,
                    match_result=failure.match_result,
                    failure=failure,
                ),
            )
        return Step(
            VerificationState.FAILED,
            Finish(unresolved_outcome(failure), match_result=failure.match_result, failure=failure),
        )

    raise InvalidTransitionError(state.value, type(event).__name__)
