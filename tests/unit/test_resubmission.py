"""
Unit Tests for the Resubmission Controller
==========================================
"""

import pytest

from query_verifier.config import VerifierConfig
from query_verifier.errors import ExecutionError, ExecutionErrorKind, RewriteError
from query_verifier.models import ClusterRole, Failure, FailureKind
from query_verifier.resubmission import ResubmissionController


def execution_failure(kind: ExecutionErrorKind) -> Failure:
    error = ExecutionError("boom", kind=kind, cluster=ClusterRole.TEST)
    return Failure.from_error(error, phase="execute_test")


class TestResubmissionController:
    """Tests for the retry policy."""

    @pytest.mark.parametrize(
        "kind, predicate",
        [
            (ExecutionErrorKind.TIMEOUT, "timeout"),
            (ExecutionErrorKind.RESOURCE_EXHAUSTED, "resource_exhausted"),
            (ExecutionErrorKind.CONNECTIVITY, "connectivity"),
        ],
    )
    def test_transient_errors_are_resubmitted(
        self, kind: ExecutionErrorKind, predicate: str
    ) -> None:
        """Test that each transient kind matches its predicate."""
        controller = ResubmissionController(VerifierConfig())
        failure = execution_failure(kind)
        assert controller.matching_predicate(failure) == predicate
        assert controller.should_resubmit(failure, attempt_count=1)

    @pytest.mark.parametrize(
        "kind",
        [ExecutionErrorKind.SYNTAX, ExecutionErrorKind.AUTHORIZATION, ExecutionErrorKind.UNKNOWN],
    )
    def test_permanent_errors_are_not_resubmitted(self, kind: ExecutionErrorKind) -> None:
        """Test that permanent failures are never retried."""
        controller = ResubmissionController(VerifierConfig())
        assert not controller.should_resubmit(execution_failure(kind), attempt_count=1)

    def test_non_execution_failures_are_not_resubmitted(self) -> None:
        """Test that rewrite failures never match a predicate."""
        controller = ResubmissionController(VerifierConfig())
        failure = Failure.from_error(RewriteError("unsupported"), phase="rewrite")
        assert failure.kind == FailureKind.REWRITE_ERROR
        assert controller.matching_predicate(failure) is None

    def test_limit_counts_resubmissions(self) -> None:
        """Test that a limit of 2 allows three attempts in total."""
        controller = ResubmissionController(VerifierConfig(resubmission_limit=2))
        failure = execution_failure(ExecutionErrorKind.TIMEOUT)
        assert controller.should_resubmit(failure, 1)
        assert controller.should_resubmit(failure, 2)
        assert not controller.should_resubmit(failure, 3)

    def test_zero_limit_disables_resubmission(self) -> None:
        """Test that a zero limit never retries."""
        controller = ResubmissionController(VerifierConfig(resubmission_limit=0))
        assert not controller.should_resubmit(execution_failure(ExecutionErrorKind.TIMEOUT), 1)

    def test_delay_is_bounded_exponential(self) -> None:
        """Test backoff growth and cap."""
        config = VerifierConfig(
            resubmission_base_delay_seconds=1.0,
            resubmission_max_delay_seconds=5.0,
        )
        controller = ResubmissionController(config)
        assert [controller.delay(n) for n in range(1, 6)] == [1.0, 2.0, 4.0, 5.0, 5.0]

    def test_custom_predicates(self) -> None:
        """Test that the predicate list is pluggable."""
        controller = ResubmissionController(
            VerifierConfig(),
            predicates=[("syntax", lambda f: f.error_kind == ExecutionErrorKind.SYNTAX.value)],
        )
        assert controller.matching_predicate(execution_failure(ExecutionErrorKind.SYNTAX)) == "syntax"
        assert not controller.should_resubmit(execution_failure(ExecutionErrorKind.TIMEOUT), 1)


class TestConfigValidation:
    """Tests for configuration constraints on resubmission."""

    def test_max_delay_must_cover_base_delay(self) -> None:
        """Test that an inverted delay range is rejected."""
        with pytest.raises(ValueError):
            VerifierConfig(
                resubmission_base_delay_seconds=10.0,
                resubmission_max_delay_seconds=1.0,
            )

    def test_environment_overrides(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test that VERIFIER_* variables are read."""
        monkeypatch.setenv("VERIFIER_RESUBMISSION_LIMIT", "5")
        assert VerifierConfig().resubmission_limit == 5
