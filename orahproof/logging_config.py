"""
Logging configuration for orahproof.

Provides structured JSON logging for verification audit trails and debugging.
"""

import json
import logging
import sys
import time
import uuid
from contextvars import ContextVar
from typing import Optional

# Context variable for request ID tracking
request_id_var: ContextVar[str] = ContextVar('request_id', default='')


class StructuredFormatter(logging.Formatter):
    """
    JSON formatter for structured logging.

    Outputs logs in a consistent JSON format suitable for
    log aggregation systems like ELK, Splunk, or CloudWatch.
    """

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": time.strftime('%Y-%m-%dT%H:%M:%SZ', time.gmtime(record.created)),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        request_id = request_id_var.get()
        if request_id:
            log_data["request_id"] = request_id

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        if hasattr(record, 'extra_fields'):
            log_data.update(record.extra_fields)

        return json.dumps(log_data, default=str)


class AuditLogger:
    """
    Specialized logger for verification audit events.

    One method per event type; every event carries the request ID of the
    verification it belongs to.
    """

    def __init__(self, name: str = "orahproof.audit"):
        self._logger = logging.getLogger(name)

    def _log(self, level: int, event_type: str, **kwargs) -> None:
        """Internal logging method with extra fields."""
        if not self._logger.isEnabledFor(level):
            return
        extra = {
            "event_type": event_type,
            "request_id": request_id_var.get(),
            **kwargs
        }

        record = self._logger.makeRecord(
            self._logger.name,
            level,
            "",
            0,
            f"{event_type}: {kwargs.get('message', '')}",
            (),
            None
        )
        record.extra_fields = extra
        self._logger.handle(record)

    def verification_request(self, batch_id: str, reading_count: int) -> None:
        """Log receipt of a verification request."""
        self._log(
            logging.INFO,
            "VERIFICATION_REQUEST",
            batch_id=batch_id,
            reading_count=reading_count,
            message=f"Processing verification for batch {batch_id}"
        )

    def validation_result(
        self,
        batch_id: str,
        is_valid: bool,
        score: int,
        error_count: int,
        warning_count: int,
        summary: str
    ) -> None:
        """Log the validator's verdict."""
        level = logging.INFO if is_valid else logging.WARNING
        self._log(
            level,
            "VALIDATION_RESULT",
            batch_id=batch_id,
            is_valid=is_valid,
            score=score,
            error_count=error_count,
            warning_count=warning_count,
            message=summary
        )

    def proof_built(self, batch_id: str, proof_hash: str, data_hash: str) -> None:
        """Log a generated proof."""
        self._log(
            logging.INFO,
            "PROOF_BUILT",
            batch_id=batch_id,
            proof_hash=proof_hash,
            data_hash=data_hash,
            message=f"Generated proof hash {proof_hash}"
        )

    def ledger_submission(
        self,
        batch_id: str,
        proof_hash: str,
        transaction_ref: str,
        confirmation_height: Optional[int] = None
    ) -> None:
        """Log a confirmed ledger submission."""
        self._log(
            logging.INFO,
            "LEDGER_SUBMISSION",
            batch_id=batch_id,
            proof_hash=proof_hash,
            transaction_ref=transaction_ref,
            confirmation_height=confirmation_height,
            message=f"Proof anchored in transaction {transaction_ref}"
        )

    def ledger_submission_failed(
        self,
        batch_id: str,
        proof_hash: str,
        failure: str,
        retryable: bool,
        detail: Optional[str] = None
    ) -> None:
        """Log a failed ledger submission."""
        self._log(
            logging.ERROR,
            "LEDGER_SUBMISSION_FAILED",
            batch_id=batch_id,
            proof_hash=proof_hash,
            failure=failure,
            retryable=retryable,
            detail=detail,
            message=f"Ledger submission failed: {failure}"
        )

    def api_key_issued(self, producer_address: str) -> None:
        self._log(
            logging.INFO,
            "API_KEY_ISSUED",
            producer_address=producer_address,
            message=f"API key stored for producer {producer_address}"
        )

    def api_key_revoked(self, producer_address: str) -> None:
        self._log(
            logging.INFO,
            "API_KEY_REVOKED",
            producer_address=producer_address,
            message=f"API key revoked for producer {producer_address}"
        )

    def security_event(
        self,
        event: str,
        severity: str = "medium",
        **details
    ) -> None:
        """Log a security-relevant event."""
        level = {
            "low": logging.INFO,
            "medium": logging.WARNING,
            "high": logging.ERROR,
            "critical": logging.CRITICAL
        }.get(severity, logging.WARNING)

        self._log(
            level,
            "SECURITY_EVENT",
            security_event=event,
            severity=severity,
            **details,
            message=f"Security event: {event}"
        )


def configure_logging(
    level: str = "INFO",
    json_format: bool = True,
    log_file: Optional[str] = None
) -> None:
    """
    Configure logging for the application.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_format: Use JSON formatting (recommended for production)
        log_file: Optional file path for log output
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper()))

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    if json_format:
        formatter: logging.Formatter = StructuredFormatter()
    else:
        formatter = logging.Formatter(
            '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
        )

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)


def set_request_id(request_id: Optional[str] = None) -> str:
    """
    Set the request ID for the current context.

    Args:
        request_id: Request ID to set, or None to generate one

    Returns:
        The request ID that was set
    """
    if request_id is None:
        request_id = str(uuid.uuid4())
    request_id_var.set(request_id)
    return request_id


def get_request_id() -> str:
    """Get the current request ID."""
    return request_id_var.get()


# Global audit logger instance
audit_log = AuditLogger()
