"""
orahproof Validator

Maps a batch of sensor readings to a validation verdict:

    validate(readings, now) -> ValidationResult(is_valid, score, issues, summary)

The validator is a pure function of its inputs. It performs no I/O, reads no
clock when ``now`` is supplied, and never raises for bad data.

Scoring:
- start at 100
- each per-reading error subtracts 10, each per-reading warning 5
- each cross-reading warning subtracts 3
- the temperature comfort band warning is reported but only deducts when
  ValidationConfig.penalize_comfort_band is set
- the total is clamped to [0, 100] once, after all deductions

Verdict:
    is_valid <=> score >= 60 and no issue has severity "error"
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from .config import (
    CONSISTENCY_WARNING_PENALTY,
    MAX_SCORE,
    PASSING_SCORE,
    READING_ERROR_PENALTY,
    READING_WARNING_PENALTY,
    ValidationConfig,
)
from .readings import SensorReading, as_batch
from .rules import (
    BATCH_FIELD,
    ConsistencyRule,
    ReadingRule,
    Severity,
    ValidationIssue,
    default_consistency_rules,
    default_reading_rules,
    reading_path,
)
from .util import utc_now

EMPTY_BATCH_MESSAGE = "At least one sensor reading is required"
NOT_A_LIST_MESSAGE = "Sensor readings must be a list"
MALFORMED_READING_MESSAGE = "Sensor reading must be an object"


@dataclass(frozen=True)
class ValidationResult:
    """
    Outcome of running every rule over one batch.

    Issues keep the order in which rules produced them.
    """
    is_valid: bool
    score: int
    issues: Tuple[ValidationIssue, ...]
    summary: str

    @property
    def error_count(self) -> int:
        return sum(1 for i in self.issues if i.severity == Severity.ERROR)

    @property
    def warning_count(self) -> int:
        return sum(1 for i in self.issues if i.severity == Severity.WARNING)

    def errors(self) -> List[ValidationIssue]:
        return [i for i in self.issues if i.severity == Severity.ERROR]

    def warnings(self) -> List[ValidationIssue]:
        return [i for i in self.issues if i.severity == Severity.WARNING]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "isValid": self.is_valid,
            "score": self.score,
            "issues": [i.to_dict() for i in self.issues],
            "summary": self.summary,
        }

    @classmethod
    def rejected(cls, field: str, message: str, summary: str, value: Any = None) -> "ValidationResult":
        """A failing verdict for input that cannot be validated at all."""
        return cls(
            is_valid=False,
            score=0,
            issues=(ValidationIssue(Severity.ERROR, field, message, value),),
            summary=summary,
        )


def generate_summary(is_valid: bool, score: int, error_count: int, warning_count: int) -> str:
    """Deterministic summary text from the verdict, score and issue counts."""
    if not is_valid:
        if error_count:
            return f"Validation failed with {error_count} error(s). Score: {score}/{MAX_SCORE}"
        return f"Validation failed with score below {PASSING_SCORE}. Score: {score}/{MAX_SCORE}"
    if warning_count:
        return f"Validation passed with {warning_count} warning(s). Score: {score}/{MAX_SCORE}"
    return f"Validation passed successfully. Score: {score}/{MAX_SCORE}"


def _penalty(issues: Iterable[ValidationIssue], error_penalty: int, warning_penalty: int) -> int:
    total = 0
    for issue in issues:
        if not issue.scored:
            continue
        if issue.severity == Severity.ERROR:
            total += error_penalty
        elif issue.severity == Severity.WARNING:
            total += warning_penalty
    return total


class SensorDataValidator:
    """
    Rule-based validator for batches of sensor readings.

    Usage:
        validator = SensorDataValidator(ValidationConfig(temp_max=45))
        result = validator.validate(readings, now=datetime.now(timezone.utc))
        if not result.is_valid:
            for issue in result.errors():
                print(issue.field, issue.message)
    """

    def __init__(
        self,
        config: Optional[ValidationConfig] = None,
        reading_rules: Optional[List[ReadingRule]] = None,
        consistency_rules: Optional[List[ConsistencyRule]] = None,
    ):
        self.config = config or ValidationConfig()
        self.reading_rules = (
            reading_rules if reading_rules is not None else default_reading_rules(self.config)
        )
        self.consistency_rules = (
            consistency_rules if consistency_rules is not None else default_consistency_rules(self.config)
        )

    def validate(
        self,
        readings: Optional[Sequence[Any]],
        now: Optional[datetime] = None,
    ) -> ValidationResult:
        """
        Validate a batch of readings.

        Args:
            readings: readings in producer order
            now: evaluation instant; read from the clock once when omitted

        Returns:
            ValidationResult. A missing or empty batch yields score 0 and a
            single error. An entry that is not an object gets one error at
            its index and is left out of the cross-reading checks.
        """
        readings = as_batch(readings)
        if readings is None:
            return ValidationResult.rejected(
                BATCH_FIELD, NOT_A_LIST_MESSAGE, "Sensor readings are malformed",
            )
        if not readings:
            return ValidationResult.rejected(BATCH_FIELD, EMPTY_BATCH_MESSAGE, "No sensor readings provided")

        if now is None:
            now = utc_now()
        elif now.tzinfo is None:
            now = now.replace(tzinfo=timezone.utc)

        issues: List[ValidationIssue] = []
        well_formed: List[SensorReading] = []
        deductions = 0

        for index, raw in enumerate(readings):
            reading = SensorReading.coerce(raw)
            if reading is None:
                found = [ValidationIssue(Severity.ERROR, reading_path(index), MALFORMED_READING_MESSAGE)]
            else:
                well_formed.append(reading)
                found = []
                for rule in self.reading_rules:
                    found.extend(rule.check(reading, index, now))
            issues.extend(found)
            deductions += _penalty(found, READING_ERROR_PENALTY, READING_WARNING_PENALTY)

        if len(well_formed) > 1:
            for rule in self.consistency_rules:
                found = rule.check(well_formed, now)
                issues.extend(found)
                deductions += _penalty(found, CONSISTENCY_WARNING_PENALTY, CONSISTENCY_WARNING_PENALTY)

        score = max(0, min(MAX_SCORE, MAX_SCORE - deductions))
        has_errors = any(i.severity == Severity.ERROR for i in issues)
        is_valid = not has_errors and score >= PASSING_SCORE
        error_count = sum(1 for i in issues if i.severity == Severity.ERROR)
        warning_count = sum(1 for i in issues if i.severity == Severity.WARNING)

        return ValidationResult(
            is_valid=is_valid,
            score=score,
            issues=tuple(issues),
            summary=generate_summary(is_valid, score, error_count, warning_count),
        )


def validate(
    readings: Optional[Sequence[Any]],
    now: Optional[datetime] = None,
    config: Optional[ValidationConfig] = None,
) -> ValidationResult:
    """Convenience function for one-off validation with default rules."""
    return SensorDataValidator(config).validate(readings, now)
