"""
Orchestrator tests: request flow, state machine and ledger failure mapping.
"""

import unittest
from datetime import datetime, timedelta, timezone

from orahproof import (
    ConfigurationError,
    InMemoryLedgerGateway,
    LedgerSubmissionError,
    ProofNotSubmittableError,
    VerificationOrchestrator,
    VerificationState,
    build_proof_hash,
    hash_readings,
    validate,
)
from orahproof.exceptions import (
    LedgerAuthorizationSubmission,
    LedgerRejectedSubmission,
    LedgerUnreachableSubmission,
)
from orahproof.util import format_instant

NOW = datetime(2025, 6, 1, 12, 0, 0, tzinfo=timezone.utc)


def batch():
    return [
        {"timestamp": format_instant(NOW - timedelta(hours=2)), "temperature": 21.5, "humidity": 55},
        {"timestamp": format_instant(NOW - timedelta(hours=1)), "temperature": 22.0, "humidity": 57},
    ]


def bad_batch():
    return [{"timestamp": format_instant(NOW - timedelta(hours=1)), "temperature": 200}]


class BrokenGateway(InMemoryLedgerGateway):
    """Gateway whose submit fails outside the ledger fault taxonomy."""

    async def submit(self, batch_id, proof_hash):
        raise RuntimeError("connection pool exhausted")


class TestProcessVerification(unittest.TestCase):

    def setUp(self):
        self.orchestrator = VerificationOrchestrator(clock=lambda: NOW)

    def test_valid_batch(self):
        readings = batch()
        record = self.orchestrator.process_verification("B-1", readings)

        self.assertEqual(record.batch_id, "B-1")
        self.assertEqual(record.validation_result, validate(readings, now=NOW))
        self.assertEqual(record.data_hash, hash_readings(readings))
        self.assertEqual(record.generated_at, NOW)
        self.assertEqual(
            record.proof_hash,
            build_proof_hash("B-1", record.validation_result, record.data_hash, NOW),
        )

    def test_single_clock_read(self):
        calls = []

        def clock():
            calls.append(1)
            return NOW + timedelta(seconds=len(calls))

        orchestrator = VerificationOrchestrator(clock=clock)
        record = orchestrator.process_verification("B-1", batch())
        self.assertEqual(len(calls), 1)
        self.assertEqual(record.generated_at, NOW + timedelta(seconds=1))

    def test_invalid_batch_still_builds_proof(self):
        record = self.orchestrator.process_verification("B-2", bad_batch())
        self.assertFalse(record.validation_result.is_valid)
        self.assertEqual(record.validation_result.score, 90)
        self.assertEqual(len(record.proof_hash), 64)

    def test_blank_batch_id(self):
        for batch_id in ("", "   ", None, 42):
            record = self.orchestrator.process_verification(batch_id, batch())
            result = record.validation_result
            self.assertFalse(result.is_valid, batch_id)
            self.assertEqual(result.score, 0)
            self.assertEqual(len(result.issues), 1)
            self.assertEqual(result.issues[0].field, "batchId")
            self.assertEqual(result.issues[0].message, "Batch ID is required")
            self.assertIsInstance(record.batch_id, str)

    def test_empty_readings(self):
        record = self.orchestrator.process_verification("B-3", [])
        self.assertFalse(record.validation_result.is_valid)
        self.assertEqual(record.validation_result.issues[0].field, "readings")

    def test_missing_readings(self):
        record = self.orchestrator.process_verification("B-3", None)
        self.assertFalse(record.validation_result.is_valid)
        self.assertEqual(record.validation_result.issues[0].field, "readings")
        self.assertEqual(record.data_hash, hash_readings([]))

    def test_malformed_entry_still_builds_proof(self):
        readings = [None] + batch()
        record = self.orchestrator.process_verification("B-3", readings)
        self.assertEqual(record.validation_result.issues[0].field, "readings[0]")
        self.assertFalse(record.validation_result.is_valid)
        self.assertEqual(record.data_hash, hash_readings(readings))

    def test_generator_read_once(self):
        readings = batch()
        record = self.orchestrator.process_verification("B-1", iter(readings))
        self.assertTrue(record.validation_result.is_valid)
        self.assertEqual(record.data_hash, hash_readings(readings))

    def test_validation_summary(self):
        record = self.orchestrator.process_verification("B-2", bad_batch())
        summary = self.orchestrator.get_validation_summary(record)
        self.assertEqual(summary.to_dict(), {
            "isValid": False,
            "score": 90,
            "errorCount": 1,
            "warningCount": 1,
            "summary": "Validation failed with 1 error(s). Score: 90/100",
        })

    def test_audit_trail(self):
        with self.assertLogs("orahproof.audit", level="INFO") as logs:
            self.orchestrator.process_verification("B-1", batch())
        events = [r.extra_fields["event_type"] for r in logs.records]
        self.assertEqual(events, ["VERIFICATION_REQUEST", "VALIDATION_RESULT", "PROOF_BUILT"])


class TestSubmit(unittest.IsolatedAsyncioTestCase):

    def setUp(self):
        self.gateway = InMemoryLedgerGateway()
        self.orchestrator = VerificationOrchestrator(gateway=self.gateway, clock=lambda: NOW)

    async def test_submit_registered_batch(self):
        self.gateway.create_proof("B-1")
        record = self.orchestrator.process_verification("B-1", batch())
        receipt = await self.orchestrator.submit(record)
        self.assertEqual(receipt.confirmation_height, 1)
        ledger_record = await self.gateway.get_record("B-1")
        self.assertEqual(ledger_record.proof_hash, record.proof_hash)
        self.assertTrue(ledger_record.verified)

    async def test_invalid_record_not_submittable(self):
        self.gateway.create_proof("B-2")
        record = self.orchestrator.process_verification("B-2", bad_batch())
        with self.assertRaises(ProofNotSubmittableError):
            await self.orchestrator.submit(record)
        self.assertFalse(await self.gateway.is_verified("B-2"))

    async def test_no_gateway(self):
        orchestrator = VerificationOrchestrator(clock=lambda: NOW)
        record = orchestrator.process_verification("B-1", batch())
        with self.assertRaises(ConfigurationError):
            await orchestrator.submit(record)

    async def test_unregistered_batch(self):
        record = self.orchestrator.process_verification("UNKNOWN", batch())
        with self.assertRaises(LedgerRejectedSubmission) as ctx:
            await self.orchestrator.submit(record)
        err = ctx.exception
        self.assertTrue(err.retryable)
        self.assertEqual(err.batch_id, "UNKNOWN")
        self.assertEqual(err.proof_hash, record.proof_hash)
        self.assertIs(err.__cause__, err.cause)

    async def test_unreachable(self):
        self.gateway.create_proof("B-1")
        self.gateway.unreachable = True
        record = self.orchestrator.process_verification("B-1", batch())
        with self.assertRaises(LedgerUnreachableSubmission) as ctx:
            await self.orchestrator.submit(record)
        self.assertTrue(ctx.exception.retryable)

    async def test_not_owner(self):
        gateway = InMemoryLedgerGateway(owner="owner", caller="someone-else")
        gateway.create_proof("B-1")
        orchestrator = VerificationOrchestrator(gateway=gateway, clock=lambda: NOW)
        record = orchestrator.process_verification("B-1", batch())
        with self.assertRaises(LedgerAuthorizationSubmission) as ctx:
            await orchestrator.submit(record)
        self.assertFalse(ctx.exception.retryable)

    async def test_unexpected_gateway_failure_is_classified(self):
        gateway = BrokenGateway()
        gateway.create_proof("B-1")
        orchestrator = VerificationOrchestrator(gateway=gateway, clock=lambda: NOW)
        record = orchestrator.process_verification("B-1", batch())
        with self.assertLogs("orahproof", level="ERROR"):
            with self.assertRaises(LedgerRejectedSubmission) as ctx:
                await orchestrator.submit(record)
        err = ctx.exception
        self.assertTrue(err.retryable)
        self.assertIsInstance(err.__cause__, RuntimeError)
        self.assertEqual(err.to_dict()["detail"], "RuntimeError")
        self.assertIn("connection pool exhausted", err.to_dict()["cause"])

    async def test_duplicate_submission(self):
        self.gateway.create_proof("B-1")
        record = self.orchestrator.process_verification("B-1", batch())
        await self.orchestrator.submit(record)
        with self.assertRaises(LedgerSubmissionError):
            await self.orchestrator.submit(record)


class TestVerifyAndSubmit(unittest.IsolatedAsyncioTestCase):

    def setUp(self):
        self.gateway = InMemoryLedgerGateway()
        self.orchestrator = VerificationOrchestrator(gateway=self.gateway, clock=lambda: NOW)

    async def test_submitted(self):
        self.gateway.create_proof("B-1")
        run = await self.orchestrator.verify_and_submit("B-1", batch())
        self.assertEqual(run.state, VerificationState.SUBMITTED)
        self.assertTrue(run.submitted)
        self.assertIsNotNone(run.receipt)
        self.assertIsNone(run.error)
        self.assertEqual(run.to_dict()["receipt"]["blockNumber"], 1)

    async def test_invalid_stops_at_proof_built(self):
        self.gateway.create_proof("B-2")
        run = await self.orchestrator.verify_and_submit("B-2", bad_batch())
        self.assertEqual(run.state, VerificationState.PROOF_BUILT)
        self.assertFalse(run.submitted)
        self.assertFalse(await self.gateway.is_verified("B-2"))

    async def test_without_gateway(self):
        orchestrator = VerificationOrchestrator(clock=lambda: NOW)
        run = await orchestrator.verify_and_submit("B-1", batch())
        self.assertEqual(run.state, VerificationState.PROOF_BUILT)
        self.assertIsNone(run.receipt)

    async def test_failure_recorded_on_run(self):
        run = await self.orchestrator.verify_and_submit("UNKNOWN", batch())
        self.assertEqual(run.state, VerificationState.SUBMISSION_FAILED)
        self.assertIsInstance(run.error, LedgerRejectedSubmission)
        d = run.to_dict()
        self.assertEqual(d["state"], "SUBMISSION_FAILED")
        self.assertTrue(d["error"]["retryable"])
        self.assertEqual(d["error"]["proofHash"], run.record.proof_hash)

    async def test_unexpected_failure_recorded_on_run(self):
        gateway = BrokenGateway()
        orchestrator = VerificationOrchestrator(gateway=gateway, clock=lambda: NOW)
        with self.assertLogs("orahproof", level="ERROR"):
            run = await orchestrator.verify_and_submit("B-1", batch())
        self.assertEqual(run.state, VerificationState.SUBMISSION_FAILED)
        self.assertIsInstance(run.error, LedgerRejectedSubmission)


if __name__ == "__main__":
    unittest.main()
