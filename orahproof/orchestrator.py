"""
orahproof Verification Orchestrator

Composes the validator and the proof builder into one verification request,
and optionally hands the resulting proof to a ledger gateway.

Per-request state machine:

    RECEIVED -> VALIDATED -> PROOF_BUILT -> SUBMITTED
                                         -> SUBMISSION_FAILED

A VerificationRun is created for every call and never shared, so the
orchestrator itself holds no per-request state and may serve concurrent
requests.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional, Sequence

from .config import ValidationConfig
from .exceptions import (
    ConfigurationError,
    LedgerError,
    LedgerRejectedError,
    LedgerSubmissionError,
    ProofNotSubmittableError,
    submission_error_for,
)
from .ledger import LedgerGateway, SubmissionReceipt
from .logging_config import audit_log
from .proof import Clock, ProofRecord, build_proof_record
from .readings import as_batch
from .util import utc_now
from .validator import SensorDataValidator, ValidationResult

logger = logging.getLogger(__name__)

BATCH_ID_FIELD = "batchId"
BATCH_ID_REQUIRED_MESSAGE = "Batch ID is required"


class VerificationState(str, Enum):
    """Lifecycle of one verification request."""
    RECEIVED = "RECEIVED"
    VALIDATED = "VALIDATED"
    PROOF_BUILT = "PROOF_BUILT"
    SUBMITTED = "SUBMITTED"
    SUBMISSION_FAILED = "SUBMISSION_FAILED"


@dataclass
class VerificationRun:
    """Progress of a single request through the state machine."""
    batch_id: str
    state: VerificationState = VerificationState.RECEIVED
    record: Optional[ProofRecord] = None
    receipt: Optional[SubmissionReceipt] = None
    error: Optional[LedgerSubmissionError] = None

    @property
    def submitted(self) -> bool:
        return self.state == VerificationState.SUBMITTED

    def to_dict(self) -> Dict[str, Any]:
        return {
            "batchId": self.batch_id,
            "state": self.state.value,
            "proof": self.record.to_dict() if self.record else None,
            "receipt": self.receipt.to_dict() if self.receipt else None,
            "error": self.error.to_dict() if self.error else None,
        }


@dataclass(frozen=True)
class ValidationSummary:
    """Compact view of a record's verdict for API responses."""
    is_valid: bool
    score: int
    error_count: int
    warning_count: int
    summary: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "isValid": self.is_valid,
            "score": self.score,
            "errorCount": self.error_count,
            "warningCount": self.warning_count,
            "summary": self.summary,
        }


class VerificationOrchestrator:
    """
    Runs validation and proof generation for a batch.

    Usage:
        orchestrator = VerificationOrchestrator(gateway=InMemoryLedgerGateway())
        record = orchestrator.process_verification("BATCH-001", readings)
        if record.validation_result.is_valid:
            receipt = await orchestrator.submit(record)
    """

    def __init__(
        self,
        config: Optional[ValidationConfig] = None,
        gateway: Optional[LedgerGateway] = None,
        clock: Optional[Clock] = None,
    ):
        self.config = config or ValidationConfig()
        self.validator = SensorDataValidator(self.config)
        self.gateway = gateway
        self.clock = clock or utc_now

    def process_verification(self, batch_id: str, readings: Optional[Sequence[Any]]) -> ProofRecord:
        """
        Validate a batch and build its proof record.

        The clock is read once; the same instant is the validator's ``now``
        and the proof's generation time. A blank batch id fails the batch
        without evaluating any rule.
        """
        return self._process(VerificationRun(batch_id=str(batch_id or "")), batch_id, readings)

    def _process(self, run: VerificationRun, batch_id: Any, readings: Optional[Sequence[Any]]) -> ProofRecord:
        # Validator and hasher must see the same entries, so iterate once.
        batch = as_batch(readings)
        if batch is not None:
            readings = batch
        audit_log.verification_request(run.batch_id, len(batch or ()))

        now = self.clock()
        if not isinstance(batch_id, str) or not batch_id.strip():
            result = ValidationResult.rejected(
                BATCH_ID_FIELD, BATCH_ID_REQUIRED_MESSAGE, "Batch ID is missing", value=batch_id,
            )
            batch_id = batch_id if isinstance(batch_id, str) else ""
        else:
            result = self.validator.validate(readings, now)
        run.batch_id = batch_id
        run.state = VerificationState.VALIDATED
        audit_log.validation_result(
            batch_id, result.is_valid, result.score,
            result.error_count, result.warning_count, result.summary,
        )

        record = build_proof_record(batch_id, readings, result, clock=lambda: now)
        run.record = record
        run.state = VerificationState.PROOF_BUILT
        audit_log.proof_built(batch_id, record.proof_hash, record.data_hash)
        return record

    def get_validation_summary(self, record: ProofRecord) -> ValidationSummary:
        result = record.validation_result
        return ValidationSummary(
            is_valid=result.is_valid,
            score=result.score,
            error_count=result.error_count,
            warning_count=result.warning_count,
            summary=result.summary,
        )

    async def submit(self, record: ProofRecord) -> SubmissionReceipt:
        """
        Anchor a valid proof on the ledger.

        Raises:
            ProofNotSubmittableError: the record failed validation
            ConfigurationError: no gateway was configured
            LedgerSubmissionError: the gateway failed; the subclass mirrors the fault
        """
        if not record.validation_result.is_valid:
            raise ProofNotSubmittableError(record.batch_id, record.validation_result.summary)
        if self.gateway is None:
            raise ConfigurationError("No ledger gateway configured")

        try:
            receipt = await self.gateway.submit(record.batch_id, record.proof_hash)
        except LedgerError as e:
            raise self._submission_failed(record, e) from e
        except Exception as e:
            logger.exception("Unexpected ledger gateway failure for %s", record.batch_id)
            fault = LedgerRejectedError(f"Unexpected ledger gateway failure: {e}", detail=type(e).__name__)
            raise self._submission_failed(record, fault) from e

        audit_log.ledger_submission(
            record.batch_id, record.proof_hash,
            receipt.transaction_ref, receipt.confirmation_height,
        )
        return receipt

    def _submission_failed(self, record: ProofRecord, fault: LedgerError) -> LedgerSubmissionError:
        audit_log.ledger_submission_failed(
            record.batch_id, record.proof_hash, str(fault), fault.retryable, fault.detail,
        )
        return submission_error_for(record.batch_id, record.proof_hash, fault)

    async def verify_and_submit(self, batch_id: str, readings: Sequence[Any]) -> VerificationRun:
        """
        Process a batch and, when it passes and a gateway is configured,
        submit it. A ledger failure is recorded on the run, not raised.
        """
        run = VerificationRun(batch_id=str(batch_id or ""))
        record = self._process(run, batch_id, readings)
        if not record.validation_result.is_valid or self.gateway is None:
            return run

        try:
            run.receipt = await self.submit(record)
        except LedgerSubmissionError as e:
            logger.warning("Submission failed for %s: %s", record.batch_id, e)
            run.error = e
            run.state = VerificationState.SUBMISSION_FAILED
            return run
        run.state = VerificationState.SUBMITTED
        return run
