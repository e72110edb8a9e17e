"""
orahproof Proof Verifier

Lets a third party confirm a proof record after the fact, without access to
the service that produced it. Given the record and the original readings:

1. Recompute the data hash over the readings
2. Recompute the proof hash from the record's fields
3. Optionally replay validation at the record's generation instant
4. Optionally compare against the ledger's entry for the batch

Outcomes:
    VALID           hashes (and replayed verdict) match
    VALID_ANCHORED  as VALID, and the ledger holds the same proof hash, verified
    INVALID         something does not match; ``reason`` says what
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Sequence, Union

from .config import ValidationConfig
from .hashing import verify_hash
from .ledger import LedgerGateway, LedgerRecord
from .proof import ProofRecord, proof_payload, readings_payload
from .readings import as_batch
from .validator import SensorDataValidator


class VerificationOutcome(str, Enum):
    VALID = "VALID"
    VALID_ANCHORED = "VALID_ANCHORED"
    INVALID = "INVALID"


@dataclass
class VerificationResult:
    """Result of verifying a proof record."""
    outcome: VerificationOutcome
    reason: Optional[str] = None
    details: Optional[Dict[str, Any]] = None

    def is_valid(self) -> bool:
        return self.outcome in (VerificationOutcome.VALID, VerificationOutcome.VALID_ANCHORED)

    @classmethod
    def valid(cls) -> "VerificationResult":
        return cls(outcome=VerificationOutcome.VALID)

    @classmethod
    def valid_anchored(cls, details: Optional[Dict[str, Any]] = None) -> "VerificationResult":
        return cls(outcome=VerificationOutcome.VALID_ANCHORED, details=details)

    @classmethod
    def invalid(cls, reason: str, details: Optional[Dict[str, Any]] = None) -> "VerificationResult":
        return cls(outcome=VerificationOutcome.INVALID, reason=reason, details=details)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "outcome": self.outcome.value,
            "reason": self.reason,
            "details": self.details,
        }


class ProofVerifier:
    """
    Offline verifier for proof records.

    With ``replay_validation`` the readings are validated again using
    ``config`` at the record's generation instant, and the verdict and score
    must match the record.
    """

    def __init__(self, config: Optional[ValidationConfig] = None, replay_validation: bool = False):
        self.config = config or ValidationConfig()
        self.replay_validation = replay_validation

    def verify(
        self,
        record: Union[ProofRecord, Mapping[str, Any]],
        readings: Optional[Sequence[Any]],
        ledger_record: Optional[LedgerRecord] = None,
    ) -> VerificationResult:
        if not isinstance(record, ProofRecord):
            try:
                record = ProofRecord.from_dict(record)
            except (KeyError, TypeError, ValueError) as e:
                return VerificationResult.invalid("malformed_record", {"error": str(e)})

        batch = as_batch(readings)
        if batch is not None:
            readings = batch

        # Step 1: data hash
        if not verify_hash(record.data_hash, readings_payload(readings)):
            return VerificationResult.invalid(
                "data_hash_mismatch",
                {"declared": record.data_hash},
            )

        # Step 2: proof hash
        payload = proof_payload(
            record.batch_id, record.validation_result, record.data_hash, record.generated_at,
        )
        if not verify_hash(record.proof_hash, payload):
            return VerificationResult.invalid(
                "proof_hash_mismatch",
                {"declared": record.proof_hash},
            )

        # Step 3: verdict replay
        if self.replay_validation:
            mismatch = self._replay(record, readings)
            if mismatch:
                return VerificationResult.invalid("verdict_mismatch", mismatch)

        # Step 4: ledger anchor
        if ledger_record is None:
            return VerificationResult.valid()
        if ledger_record.batch_id != record.batch_id:
            return VerificationResult.invalid(
                "ledger_batch_mismatch",
                {"expected": record.batch_id, "ledger": ledger_record.batch_id},
            )
        if not ledger_record.verified:
            return VerificationResult.invalid("not_anchored", {"batchId": record.batch_id})
        if ledger_record.proof_hash != record.proof_hash:
            return VerificationResult.invalid(
                "ledger_proof_mismatch",
                {"expected": record.proof_hash, "ledger": ledger_record.proof_hash},
            )
        return VerificationResult.valid_anchored({"batchId": record.batch_id})

    def _replay(self, record: ProofRecord, readings: Sequence[Any]) -> Optional[Dict[str, Any]]:
        declared = record.validation_result
        if not record.batch_id.strip():
            expected_valid, expected_score = False, 0
        else:
            replayed = SensorDataValidator(self.config).validate(readings, now=record.generated_at)
            expected_valid, expected_score = replayed.is_valid, replayed.score
        if (declared.is_valid, declared.score) != (expected_valid, expected_score):
            return {
                "declared": {"isValid": declared.is_valid, "score": declared.score},
                "replayed": {"isValid": expected_valid, "score": expected_score},
            }
        return None


def verify_proof(
    record: Union[ProofRecord, Mapping[str, Any]],
    readings: Optional[Sequence[Any]],
    ledger_record: Optional[LedgerRecord] = None,
    config: Optional[ValidationConfig] = None,
    replay_validation: bool = False,
) -> VerificationResult:
    """
    Convenience function for one-off verification.

    Args:
        record: ProofRecord or its ``to_dict`` form
        readings: the readings the proof was built from
        ledger_record: the ledger's entry for the batch, if it was fetched
    """
    verifier = ProofVerifier(config, replay_validation=replay_validation)
    return verifier.verify(record, readings, ledger_record)


async def verify_anchored(
    record: ProofRecord,
    readings: Optional[Sequence[Any]],
    gateway: LedgerGateway,
    config: Optional[ValidationConfig] = None,
) -> VerificationResult:
    """Verify a record and its ledger anchor. Ledger faults propagate."""
    ledger_record = await gateway.get_record(record.batch_id)
    if ledger_record is None:
        return VerificationResult.invalid("not_registered", {"batchId": record.batch_id})
    return ProofVerifier(config).verify(record, readings, ledger_record)
