"""
Proof builder tests: data hash stability and proof hash determinism.
"""

import json
import unittest
from datetime import datetime, timedelta, timezone
from decimal import Decimal

from orahproof import (
    ProofRecord,
    SensorReading,
    build_proof_hash,
    build_proof_record,
    canonical_hash,
    hash_readings,
    validate,
)
from orahproof.util import format_instant

NOW = datetime(2025, 6, 1, 12, 0, 0, tzinfo=timezone.utc)


def batch():
    return [
        {"timestamp": format_instant(NOW - timedelta(hours=2)), "temperature": 21.5, "humidity": 55},
        {"timestamp": format_instant(NOW - timedelta(hours=1)), "temperature": 22, "humidity": 57,
         "location": {"latitude": 10.0, "longitude": 20.0}},
    ]


class TestDataHash(unittest.TestCase):

    def test_key_order_does_not_matter(self):
        readings = batch()
        reordered = [dict(reversed(list(r.items()))) for r in readings]
        self.assertEqual(hash_readings(readings), hash_readings(reordered))

    def test_survives_reserialization(self):
        readings = batch()
        again = json.loads(json.dumps(readings))
        self.assertEqual(hash_readings(readings), hash_readings(again))

    def test_whole_float_equals_int(self):
        a = batch()
        b = batch()
        b[1]["temperature"] = 22.0
        self.assertEqual(hash_readings(a), hash_readings(b))

    def test_any_value_change_changes_hash(self):
        base = hash_readings(batch())
        changed = batch()
        changed[0]["humidity"] = 56
        self.assertNotEqual(base, hash_readings(changed))

    def test_reading_order_matters(self):
        readings = batch()
        self.assertNotEqual(hash_readings(readings), hash_readings(list(reversed(readings))))

    def test_extra_fields_included(self):
        plain = batch()
        tagged = batch()
        tagged[0]["sensorId"] = "probe-7"
        self.assertNotEqual(hash_readings(plain), hash_readings(tagged))

    def test_reading_objects_hash_like_dicts(self):
        readings = batch()
        objects = [SensorReading.from_dict(r) for r in readings]
        self.assertEqual(hash_readings(readings), hash_readings(objects))

    def test_decimal_extra_field_hashes_like_float(self):
        floats = batch()
        floats[0]["battery"] = 3.7
        decimals = batch()
        decimals[0]["battery"] = Decimal("3.7")
        self.assertEqual(hash_readings(floats), hash_readings(decimals))

    def test_datetime_timestamp_hashes_as_instant(self):
        readings = batch()
        as_datetime = batch()
        as_datetime[0]["timestamp"] = NOW - timedelta(hours=2)
        self.assertEqual(hash_readings(readings), hash_readings(as_datetime))

    def test_missing_batch_hashes_as_empty(self):
        self.assertEqual(hash_readings(None), canonical_hash([]))

    def test_malformed_entries_hashed_as_received(self):
        readings = [None, "probe offline"] + batch()
        self.assertEqual(
            hash_readings(readings),
            canonical_hash([None, "probe offline"] + batch()),
        )

    def test_explicit_null_differs_from_absent_field(self):
        absent = batch()
        explicit = batch()
        explicit[0]["location"] = None
        self.assertNotEqual(hash_readings(absent), hash_readings(explicit))
        self.assertEqual(hash_readings(explicit), canonical_hash(explicit))

    def test_location_hashed_as_received(self):
        readings = batch()
        readings[0]["location"] = {"latitude": 1.5, "longitude": 2.5, "altitude": 300}
        readings[1]["location"] = "field 7"
        self.assertEqual(hash_readings(readings), canonical_hash(readings))

    def test_reading_extras_are_read_only(self):
        reading = SensorReading.from_dict({"timestamp": "2025-06-01T10:00:00Z", "sensorId": "probe-7"})
        with self.assertRaises(TypeError):
            reading.extra["sensorId"] = "probe-8"
        self.assertEqual(reading.to_dict()["sensorId"], "probe-7")

    def test_hash_is_over_readings_array(self):
        readings = [{"timestamp": "2025-01-15T10:00:00Z", "temperature": 22.5}]
        self.assertEqual(hash_readings(readings), canonical_hash(readings))


class TestProofHash(unittest.TestCase):

    def setUp(self):
        self.readings = batch()
        self.result = validate(self.readings, now=NOW)
        self.data_hash = hash_readings(self.readings)

    def test_deterministic(self):
        h1 = build_proof_hash("B-1", self.result, self.data_hash, NOW)
        h2 = build_proof_hash("B-1", self.result, self.data_hash, NOW)
        self.assertEqual(h1, h2)

    def test_matches_commitment_payload(self):
        expected = canonical_hash({
            "batchId": "B-1",
            "isValid": True,
            "score": 100,
            "iotDataHash": self.data_hash,
            "timestamp": "2025-06-01T12:00:00.000Z",
        })
        self.assertEqual(build_proof_hash("B-1", self.result, self.data_hash, NOW), expected)

    def test_each_input_changes_hash(self):
        base = build_proof_hash("B-1", self.result, self.data_hash, NOW)
        failing = validate([], now=NOW)
        variants = [
            build_proof_hash("B-2", self.result, self.data_hash, NOW),
            build_proof_hash("B-1", failing, self.data_hash, NOW),
            build_proof_hash("B-1", self.result, "0" * 64, NOW),
            build_proof_hash("B-1", self.result, self.data_hash, NOW + timedelta(milliseconds=1)),
        ]
        for variant in variants:
            self.assertNotEqual(base, variant)

    def test_sub_millisecond_difference_ignored(self):
        h1 = build_proof_hash("B-1", self.result, self.data_hash, NOW)
        h2 = build_proof_hash("B-1", self.result, self.data_hash, NOW + timedelta(microseconds=400))
        self.assertEqual(h1, h2)


class TestProofRecord(unittest.TestCase):

    def test_clock_read_once(self):
        calls = []

        def clock():
            calls.append(1)
            return NOW

        readings = batch()
        record = build_proof_record("B-1", readings, validate(readings, now=NOW), clock=clock)
        self.assertEqual(len(calls), 1)
        self.assertEqual(record.generated_at, NOW)
        self.assertEqual(record.timestamp, "2025-06-01T12:00:00.000Z")
        self.assertEqual(
            record.proof_hash,
            build_proof_hash("B-1", record.validation_result, record.data_hash, NOW),
        )

    def test_failing_verdict_still_gets_proof(self):
        readings = [{"timestamp": "not a time"}]
        record = build_proof_record("B-1", readings, validate(readings, now=NOW), clock=lambda: NOW)
        self.assertFalse(record.validation_result.is_valid)
        self.assertEqual(len(record.proof_hash), 64)

    def test_dict_round_trip(self):
        readings = batch()
        record = build_proof_record("B-1", readings, validate(readings, now=NOW), clock=lambda: NOW)
        d = record.to_dict()
        self.assertEqual(d["batchId"], "B-1")
        self.assertEqual(d["iotDataHash"], hash_readings(readings))
        self.assertEqual(d["validationResult"]["score"], 100)
        self.assertEqual(ProofRecord.from_dict(json.loads(json.dumps(d))), record)

    def test_from_dict_rejects_bad_timestamp(self):
        readings = batch()
        d = build_proof_record("B-1", readings, validate(readings, now=NOW), clock=lambda: NOW).to_dict()
        d["timestamp"] = "soon"
        with self.assertRaises(ValueError):
            ProofRecord.from_dict(d)


if __name__ == "__main__":
    unittest.main()
