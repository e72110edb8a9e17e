#!/usr/bin/env python3
"""
orahproof Example - Harvest Batch Verification, End to End

A cocoa cooperative ships a batch with a day of storage telemetry. The
producer registers the batch on the registry, the verification service
validates the readings, builds the proof and anchors it, and a buyer later
checks the proof with nothing but the readings and the ledger.

Run with: python examples/batch_verification_example.py
"""

import asyncio
import json
from datetime import timedelta
from typing import Any, Dict, List

from orahproof import (
    InMemoryLedgerGateway,
    LedgerSubmissionError,
    ValidationConfig,
    VerificationOrchestrator,
    verify_proof,
)
from orahproof.util import format_instant, utc_now

PRODUCER = "0x5a0b54d5dc17e0aadc383d2db43b0a0d3e029c4c"


def simulate_storage_telemetry(hours: int, start_temp: float = 24.0) -> List[Dict[str, Any]]:
    """
    Simulate hourly readings from a warehouse probe near Kumasi.

    In production these come from the producer's gateway device, signed
    and uploaded in one batch per shipment.
    """
    now = utc_now()
    readings = []
    for i in range(hours):
        readings.append({
            "timestamp": format_instant(now - timedelta(hours=hours - i)),
            "temperature": round(start_temp + (i % 6) * 0.4, 1),
            "humidity": 62 + (i % 4),
            "location": {"latitude": 6.6885, "longitude": -1.6244},
            "sensorId": "wh-probe-03",
        })
    return readings


def print_section(title: str):
    print("\n" + "-" * 60)
    print(title)
    print("-" * 60)


async def main():
    print("=" * 60)
    print("orahproof Harvest Batch Verification")
    print("=" * 60)

    # Ghana growing region; readings outside it are flagged, not rejected
    config = ValidationConfig(lat_min=4.5, lat_max=11.2, lon_min=-3.3, lon_max=1.2)
    gateway = InMemoryLedgerGateway()
    orchestrator = VerificationOrchestrator(config=config, gateway=gateway)

    # Step 1: producer registers the batch
    print_section("Step 1: Producer registers the batch")
    gateway.create_proof(
        "COCOA-2025-0142",
        metadata_cid="QmYwAPJzv5CZsnA625s3Xf2nemtYgPpHdWEz79ojWnPbdG",
        self_did="did:self:cooperative-17",
        producer=PRODUCER,
        verification_fee=10**16,
    )
    print("Registered COCOA-2025-0142")

    # Step 2: verify and anchor
    print_section("Step 2: Validate, build proof, anchor")
    readings = simulate_storage_telemetry(24)
    run = await orchestrator.verify_and_submit("COCOA-2025-0142", readings)
    result = run.record.validation_result
    print(f"Verdict: {result.summary}")
    print(f"Proof hash: {run.record.proof_hash}")
    print(f"State: {run.state.value}")
    if run.receipt:
        print(json.dumps(run.receipt.to_dict(), indent=2))

    # Step 3: a buyer checks the proof
    print_section("Step 3: Buyer verifies the proof")
    ledger_record = await gateway.get_record("COCOA-2025-0142")
    check = verify_proof(run.record.to_dict(), readings, ledger_record, config=config,
                         replay_validation=True)
    print(f"Outcome: {check.outcome.value}")

    tampered = [dict(r) for r in readings]
    tampered[5] = dict(tampered[5], temperature=19.0)
    check = verify_proof(run.record.to_dict(), tampered, ledger_record)
    print(f"Outcome with one edited reading: {check.outcome.value} ({check.reason})")

    # Step 4: a second attempt is refused by the registry
    print_section("Step 4: Resubmitting the same batch")
    try:
        await orchestrator.submit(run.record)
    except LedgerSubmissionError as e:
        print(f"Refused: {e.cause}")
        print(f"Retryable: {e.retryable}")

    # Step 5: a probe left behind at the port
    print_section("Step 5: Batch with a misplaced probe")
    stray = simulate_storage_telemetry(6)
    stray[-1] = dict(stray[-1], location={"latitude": 5.0833, "longitude": -1.3500})
    record = orchestrator.process_verification("COCOA-2025-0143", stray)
    for issue in record.validation_result.issues:
        print(f"  [{issue.severity.value}] {issue.field}: {issue.message}")
    print(f"Verdict: {record.validation_result.summary}")

    print("\n" + "=" * 60)
    print("Example complete.")
    print("=" * 60)


if __name__ == "__main__":
    asyncio.run(main())
