"""
orahproof: IoT Sensor Data Verification and Proof Pipeline

Version: 1.0.0

Validates batches of IoT sensor readings (temperature, humidity, GPS,
timestamps), scores their quality, and derives deterministic SHA-256 proofs
that can be anchored in an on-chain registry:

    readings -> Validator -> verdict -> Proof Builder -> ProofRecord -> Ledger Gateway

Usage:
    from orahproof import (
        VerificationOrchestrator,
        InMemoryLedgerGateway,
        verify_proof,
    )

    orchestrator = VerificationOrchestrator(gateway=InMemoryLedgerGateway(auto_create=True))

    record = orchestrator.process_verification("BATCH-001", [
        {"timestamp": "2025-01-15T10:00:00Z", "temperature": 22.5, "humidity": 60},
        {"timestamp": "2025-01-15T11:00:00Z", "temperature": 23.0, "humidity": 58},
    ])

    if record.validation_result.is_valid:
        receipt = await orchestrator.submit(record)
    else:
        for issue in record.validation_result.errors():
            print(issue.field, issue.message)

    # Anyone holding the readings can check the proof later
    result = verify_proof(record.to_dict(), readings)
"""

__version__ = "1.0.0"

# Readings
from .readings import Location, SensorReading

# Canonicalization and hashing
from .canonicalization import canonicalize, canonicalize_str
from .hashing import canonical_hash, sha256_hex, verify_hash

# Configuration
from .config import Settings, ValidationConfig, validate_config

# Validator
from .rules import (
    ConsistencyRule,
    ReadingRule,
    Severity,
    ValidationIssue,
    default_consistency_rules,
    default_reading_rules,
)
from .validator import SensorDataValidator, ValidationResult, generate_summary, validate

# Proof builder
from .proof import ProofRecord, build_proof_hash, build_proof_record, hash_readings

# Ledger gateway
from .ledger import (
    InMemoryLedgerGateway,
    LedgerGateway,
    LedgerRecord,
    SubmissionReceipt,
    Web3LedgerGateway,
    classify_web3_error,
    get_ledger_gateway,
)

# Orchestrator
from .orchestrator import (
    ValidationSummary,
    VerificationOrchestrator,
    VerificationRun,
    VerificationState,
)

# Verifier
from .verifier import ProofVerifier, VerificationOutcome, VerificationResult, verify_proof

# API keys
from .api_keys import ApiKeyRecord, ApiKeyService, ApiKeyStore, InMemoryApiKeyStore

# Errors
from .exceptions import (
    ConfigurationError,
    LedgerAuthorizationError,
    LedgerError,
    LedgerRejectedError,
    LedgerSubmissionError,
    LedgerUnreachableError,
    OrahProofError,
    ProofNotSubmittableError,
)


__all__ = [
    "__version__",

    # Readings
    "Location",
    "SensorReading",

    # Canonicalization / hashing
    "canonicalize",
    "canonicalize_str",
    "canonical_hash",
    "sha256_hex",
    "verify_hash",

    # Configuration
    "Settings",
    "ValidationConfig",
    "validate_config",

    # Validator
    "ConsistencyRule",
    "ReadingRule",
    "Severity",
    "ValidationIssue",
    "default_consistency_rules",
    "default_reading_rules",
    "SensorDataValidator",
    "ValidationResult",
    "generate_summary",
    "validate",

    # Proof builder
    "ProofRecord",
    "build_proof_hash",
    "build_proof_record",
    "hash_readings",

    # Ledger
    "InMemoryLedgerGateway",
    "LedgerGateway",
    "LedgerRecord",
    "SubmissionReceipt",
    "Web3LedgerGateway",
    "classify_web3_error",
    "get_ledger_gateway",

    # Orchestrator
    "ValidationSummary",
    "VerificationOrchestrator",
    "VerificationRun",
    "VerificationState",

    # Verifier
    "ProofVerifier",
    "VerificationOutcome",
    "VerificationResult",
    "verify_proof",

    # API keys
    "ApiKeyRecord",
    "ApiKeyService",
    "ApiKeyStore",
    "InMemoryApiKeyStore",

    # Errors
    "ConfigurationError",
    "LedgerAuthorizationError",
    "LedgerError",
    "LedgerRejectedError",
    "LedgerSubmissionError",
    "LedgerUnreachableError",
    "OrahProofError",
    "ProofNotSubmittableError",
]
