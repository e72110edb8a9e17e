#!/usr/bin/env python3
"""
orahproof Command Line Interface

Usage:
    orahproof validate --file <readings.json> [--now <instant>]
    orahproof prove --batch <id> --file <readings.json> [--output <proof.json>]
    orahproof hash --file <readings.json>
    orahproof verify --proof <proof.json> --file <readings.json>
    orahproof demo

A readings file holds either a JSON array of readings or an object with an
``iotData`` array (and optionally ``batchId``), as sent to the service.
"""

import argparse
import asyncio
import json
import sys
from datetime import timedelta
from typing import Any, List, Optional


def load_json(path: str) -> Any:
    """Load JSON from file."""
    with open(path, 'r', encoding='utf-8') as f:
        return json.load(f)


def save_json(data: dict, path: str):
    """Save JSON to file."""
    with open(path, 'w', encoding='utf-8') as f:
        json.dump(data, f, indent=2)


def load_readings(path: str) -> List[Any]:
    data = load_json(path)
    if isinstance(data, dict):
        data = data.get("iotData", [])
    if not isinstance(data, list):
        raise ValueError(f"{path}: expected a list of readings or an object with 'iotData'")
    return data


def _parse_now(value: Optional[str]):
    from orahproof.util import parse_instant

    if value is None:
        return None
    now = parse_instant(value)
    if now is None:
        raise ValueError(f"Invalid --now instant: {value!r}")
    return now


def _print_issues(result) -> None:
    for issue in result.issues:
        print(f"  [{issue.severity.value}] {issue.field}: {issue.message}", file=sys.stderr)


def cmd_validate(args):
    """Validate a batch of readings."""
    from orahproof import validate

    result = validate(load_readings(args.file), now=_parse_now(args.now))
    print(json.dumps(result.to_dict(), indent=2))

    if result.is_valid:
        print(f"\n✓ {result.summary}", file=sys.stderr)
        return 0
    print(f"\n✗ {result.summary}", file=sys.stderr)
    _print_issues(result)
    return 1


def cmd_prove(args):
    """Validate a batch and build its proof record."""
    from orahproof import VerificationOrchestrator

    now = _parse_now(args.now)
    orchestrator = VerificationOrchestrator(clock=(lambda: now) if now else None)
    record = orchestrator.process_verification(args.batch, load_readings(args.file))
    proof = record.to_dict()

    if args.output:
        save_json(proof, args.output)
        print(f"Proof saved to: {args.output}")
    else:
        print(json.dumps(proof, indent=2))

    result = record.validation_result
    if result.is_valid:
        print(f"\n✓ {result.summary}", file=sys.stderr)
        print(f"  proofHash: {record.proof_hash}", file=sys.stderr)
        return 0
    print(f"\n✗ {result.summary}", file=sys.stderr)
    _print_issues(result)
    return 1


def cmd_hash(args):
    """Compute the data hash of a batch of readings."""
    from orahproof import hash_readings

    print(f"iotDataHash: {hash_readings(load_readings(args.file))}")
    return 0


def cmd_verify(args):
    """Verify a saved proof against the readings it was built from."""
    from orahproof import verify_proof

    result = verify_proof(
        load_json(args.proof),
        load_readings(args.file),
        replay_validation=args.replay,
    )
    if result.is_valid():
        print(f"✓ {result.outcome.value}")
        return 0
    print(f"✗ INVALID: {result.reason}")
    if result.details:
        print(json.dumps(result.details, indent=2))
    return 1


def cmd_demo(args):
    """Run a demonstration of the verification pipeline."""
    from orahproof import (
        InMemoryLedgerGateway,
        LedgerSubmissionError,
        VerificationOrchestrator,
        verify_proof,
    )
    from orahproof.util import format_instant, utc_now

    print("=" * 60)
    print("orahproof Verification Demonstration")
    print("=" * 60)

    now = utc_now()
    gateway = InMemoryLedgerGateway()
    orchestrator = VerificationOrchestrator(gateway=gateway, clock=lambda: now)

    def at(minutes_ago: int) -> str:
        return format_instant(now - timedelta(minutes=minutes_ago))

    good = [
        {"timestamp": at(20), "temperature": 22.5, "humidity": 60,
         "location": {"latitude": 5.6, "longitude": -0.2}},
        {"timestamp": at(10), "temperature": 23.1, "humidity": 58,
         "location": {"latitude": 5.6, "longitude": -0.2}},
    ]
    bad = [
        {"timestamp": at(10), "temperature": 75, "humidity": 130},
        {"timestamp": "yesterday", "temperature": 21},
    ]

    # Scenario 1: clean batch, registered, anchored
    print("\n" + "-" * 60)
    print("Scenario 1: Clean batch, registered by the producer")
    print("-" * 60)

    gateway.create_proof("BATCH-DEMO-001", metadata_cid="QmDemo", self_did="did:self:demo")
    run = asyncio.run(orchestrator.verify_and_submit("BATCH-DEMO-001", good))
    print(f"Verdict: {run.record.validation_result.summary}")
    print(f"Proof hash: {run.record.proof_hash}")
    print(f"State: {run.state.value}")
    if run.receipt:
        print(f"  Transaction: {run.receipt.transaction_ref[:42]}...")
        print(f"  Height: {run.receipt.confirmation_height}")
    ledger_record = asyncio.run(gateway.get_record("BATCH-DEMO-001"))
    check = verify_proof(run.record, good, ledger_record)
    print(f"Offline check: {check.outcome.value}")

    # Scenario 2: bad data
    print("\n" + "-" * 60)
    print("Scenario 2: Out-of-range values and a malformed timestamp")
    print("-" * 60)

    run = asyncio.run(orchestrator.verify_and_submit("BATCH-DEMO-002", bad))
    print(f"Verdict: {run.record.validation_result.summary}")
    for issue in run.record.validation_result.errors():
        print(f"  Error: {issue.field} - {issue.message}")
    print(f"State: {run.state.value}")

    # Scenario 3: valid data for a batch the registry does not know
    print("\n" + "-" * 60)
    print("Scenario 3: Valid batch that was never registered")
    print("-" * 60)

    record = orchestrator.process_verification("BATCH-DEMO-003", good)
    try:
        asyncio.run(orchestrator.submit(record))
    except LedgerSubmissionError as e:
        print(f"Submission failed: {type(e).__name__}")
        print(f"  Retryable: {e.retryable}")
        print(f"  Cause: {e.cause}")

    print("\n" + "=" * 60)
    print("Demonstration complete.")
    print("=" * 60)
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        description="orahproof IoT verification CLI",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  orahproof demo                          Run demonstration
  orahproof validate -f readings.json
  orahproof prove -b BATCH-001 -f readings.json -o proof.json
  orahproof verify -p proof.json -f readings.json
  orahproof hash -f readings.json
        """
    )

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # validate
    validate_parser = subparsers.add_parser("validate", help="Validate sensor readings")
    validate_parser.add_argument("-f", "--file", required=True, help="Readings JSON file")
    validate_parser.add_argument("-n", "--now", help="Evaluation instant (ISO-8601), default: current time")

    # prove
    prove_parser = subparsers.add_parser("prove", help="Build a proof record")
    prove_parser.add_argument("-b", "--batch", required=True, help="Batch identifier")
    prove_parser.add_argument("-f", "--file", required=True, help="Readings JSON file")
    prove_parser.add_argument("-n", "--now", help="Generation instant (ISO-8601), default: current time")
    prove_parser.add_argument("-o", "--output", help="Output file for the proof record")

    # hash
    hash_parser = subparsers.add_parser("hash", help="Compute the data hash of readings")
    hash_parser.add_argument("-f", "--file", required=True, help="Readings JSON file")

    # verify
    verify_parser = subparsers.add_parser("verify", help="Verify a proof record")
    verify_parser.add_argument("-p", "--proof", required=True, help="Proof record JSON file")
    verify_parser.add_argument("-f", "--file", required=True, help="Readings JSON file")
    verify_parser.add_argument("--replay", action="store_true", help="Also replay validation")

    # demo
    subparsers.add_parser("demo", help="Run demonstration")

    args = parser.parse_args(argv)

    commands = {
        "validate": cmd_validate,
        "prove": cmd_prove,
        "hash": cmd_hash,
        "verify": cmd_verify,
        "demo": cmd_demo,
    }
    if args.command not in commands:
        parser.print_help()
        return 2
    try:
        return commands[args.command](args)
    except (OSError, TypeError, ValueError) as e:
        print(f"error: {e}", file=sys.stderr)
        return 2


if __name__ == "__main__":
    sys.exit(main())
