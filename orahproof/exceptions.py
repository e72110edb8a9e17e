"""
orahproof exception hierarchy.

Validation problems are never raised: they are returned as ValidationIssue
entries inside a ValidationResult. Exceptions are reserved for faults that
the caller must choose a policy for (ledger failures, bad configuration,
programming errors such as submitting a failing proof).
"""

from typing import Optional


class OrahProofError(Exception):
    """Base class for all orahproof errors."""


class ConfigurationError(OrahProofError):
    """A configuration value is missing or out of range. Raised at startup."""


class ProofNotSubmittableError(OrahProofError):
    """A proof record whose validation failed was handed to the ledger."""

    def __init__(self, batch_id: str, reason: str):
        super().__init__(f"Proof for batch '{batch_id}' cannot be submitted: {reason}")
        self.batch_id = batch_id
        self.reason = reason


# ============================================================
# Ledger gateway faults
# ============================================================

class LedgerError(OrahProofError):
    """
    A ledger gateway call failed.

    Subclasses classify the failure so callers can pick a retry policy.
    """
    retryable = False

    def __init__(self, message: str, detail: Optional[str] = None):
        super().__init__(message)
        self.detail = detail


class LedgerRejectedError(LedgerError):
    """
    The ledger refused the operation (missing prerequisite record, duplicate
    verification, contract revert). Recoverable: fix ledger state, then retry.
    """
    retryable = True


class LedgerUnreachableError(LedgerError):
    """The ledger could not be reached or timed out. Retry with backoff."""
    retryable = True


class LedgerAuthorizationError(LedgerError):
    """The gateway identity is not allowed to write. Do not retry as-is."""
    retryable = False


class LedgerSubmissionError(OrahProofError):
    """
    Submitting a proof to the ledger failed.

    Carries the attempted batch id and proof hash so the caller can retry
    safely; duplicate protection is enforced ledger-side by batch id.
    The original gateway fault is available as ``cause`` and ``__cause__``.
    """
    retryable = False

    def __init__(self, batch_id: str, proof_hash: str, cause: LedgerError):
        super().__init__(
            f"Ledger submission failed for batch '{batch_id}' "
            f"(proof {proof_hash[:16]}...): {cause}"
        )
        self.batch_id = batch_id
        self.proof_hash = proof_hash
        self.cause = cause

    def to_dict(self) -> dict:
        return {
            "error": type(self).__name__,
            "batchId": self.batch_id,
            "proofHash": self.proof_hash,
            "retryable": self.retryable,
            "cause": str(self.cause),
            "detail": self.cause.detail,
        }


class LedgerRejectedSubmission(LedgerSubmissionError):
    retryable = True


class LedgerUnreachableSubmission(LedgerSubmissionError):
    retryable = True


class LedgerAuthorizationSubmission(LedgerSubmissionError):
    retryable = False


_SUBMISSION_ERRORS = {
    LedgerRejectedError: LedgerRejectedSubmission,
    LedgerUnreachableError: LedgerUnreachableSubmission,
    LedgerAuthorizationError: LedgerAuthorizationSubmission,
}


def submission_error_for(batch_id: str, proof_hash: str, cause: LedgerError) -> LedgerSubmissionError:
    """Wrap a gateway fault in the matching submission error."""
    for fault_type, submission_type in _SUBMISSION_ERRORS.items():
        if isinstance(cause, fault_type):
            return submission_type(batch_id, proof_hash, cause)
    return LedgerSubmissionError(batch_id, proof_hash, cause)
