"""
Proof builder for orahproof.

Derives the two commitments that make up a proof:

    data_hash  = SHA-256(CJE([reading.to_dict() for reading in readings]))
    proof_hash = SHA-256(CJE({"batchId", "isValid", "score", "iotDataHash", "timestamp"}))

CJE is the canonical JSON encoding in ``orahproof.canonicalization``. The
proof hash input is the on-ledger commitment format: the key names, the
SHA-256 algorithm and the millisecond ISO-8601 UTC timestamp are part of it
and must not change without a new format version.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, Optional, Sequence

from .hashing import canonical_hash
from .readings import as_batch, reading_payload
from .rules import Severity, ValidationIssue
from .util import format_instant, parse_instant, utc_now
from .validator import ValidationResult

Clock = Callable[[], datetime]


@dataclass(frozen=True)
class ProofRecord:
    """
    Validation verdict plus hashes for one batch.

    Created once per verification request and never modified. Persistence
    and anchoring belong to the ledger gateway.
    """
    batch_id: str
    validation_result: ValidationResult
    proof_hash: str
    data_hash: str
    generated_at: datetime

    @property
    def timestamp(self) -> str:
        """generated_at in the exact form that entered the proof hash."""
        return format_instant(self.generated_at)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "batchId": self.batch_id,
            "proofHash": self.proof_hash,
            "iotDataHash": self.data_hash,
            "timestamp": self.timestamp,
            "validationResult": self.validation_result.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ProofRecord":
        """Rebuild a record from ``to_dict`` output (e.g. a saved proof file)."""
        vr = data["validationResult"]
        result = ValidationResult(
            is_valid=bool(vr["isValid"]),
            score=int(vr["score"]),
            issues=tuple(
                ValidationIssue(Severity(i["severity"]), i["field"], i["message"], i.get("value"))
                for i in vr.get("issues", [])
            ),
            summary=vr.get("summary", ""),
        )
        generated_at = parse_instant(data["timestamp"])
        if generated_at is None:
            raise ValueError(f"Invalid proof timestamp: {data['timestamp']!r}")
        return cls(
            batch_id=data["batchId"],
            validation_result=result,
            proof_hash=data["proofHash"],
            data_hash=data["iotDataHash"],
            generated_at=generated_at,
        )


def readings_payload(readings: Optional[Sequence[Any]]) -> Any:
    """
    The exact structure hashed for a batch: each reading in producer shape.
    None hashes as an empty batch; a value that is not a list is hashed as
    received.
    """
    batch = as_batch(readings)
    if batch is None:
        return readings
    return [reading_payload(r) for r in batch]


def hash_readings(readings: Optional[Sequence[Any]]) -> str:
    """
    Stable content digest over the full reading sequence.

    Includes unrecognized extra fields. Invariant under key insertion order
    and under re-serialization; changes when any value changes.
    """
    return canonical_hash(readings_payload(readings))


def proof_payload(
    batch_id: str,
    validation_result: ValidationResult,
    data_hash: str,
    generated_at: datetime,
) -> Dict[str, Any]:
    """The commitment object whose canonical encoding is hashed."""
    return {
        "batchId": batch_id,
        "isValid": validation_result.is_valid,
        "score": validation_result.score,
        "iotDataHash": data_hash,
        "timestamp": format_instant(generated_at),
    }


def build_proof_hash(
    batch_id: str,
    validation_result: ValidationResult,
    data_hash: str,
    generated_at: datetime,
) -> str:
    """Deterministic digest over batch id, verdict, data hash and generation instant."""
    return canonical_hash(proof_payload(batch_id, validation_result, data_hash, generated_at))


def build_proof_record(
    batch_id: str,
    readings: Sequence[Any],
    validation_result: ValidationResult,
    clock: Optional[Clock] = None,
) -> ProofRecord:
    """
    Build the complete proof record.

    The clock is read exactly once; the same instant is stored on the record
    and hashed into the proof.
    """
    data_hash = hash_readings(readings)
    generated_at = (clock or utc_now)()
    proof_hash = build_proof_hash(batch_id, validation_result, data_hash, generated_at)
    return ProofRecord(
        batch_id=batch_id,
        validation_result=validation_result,
        proof_hash=proof_hash,
        data_hash=data_hash,
        generated_at=generated_at,
    )
