"""Tests for versioned failure taxonomy and deterministic fingerprinting."""

import unittest

from cyrecorder.failures import build_failure, classify_failure
from cyrecorder.recorder.errors import IndexOutOfRangeError, PersistenceError, UnhandledActionError


class FailureTaxonomyTests(unittest.TestCase):
    """Validate error.v1 payload shape and classification behavior."""

    def test_build_failure_is_deterministic(self) -> None:
        first = build_failure(
            error_class="collaborator_failure",
            error_code="REC_INJECTION_FAILED",
            action="start",
            message="page agent injection failed",
            detail="tab 3",
        )
        second = build_failure(
            error_class="collaborator_failure",
            error_code="REC_INJECTION_FAILED",
            action="start",
            message="different wording",
            detail="tab 3",
        )
        self.assertEqual(first["fingerprint"], second["fingerprint"])
        self.assertEqual(first["error_schema_version"], "error.v1")

    def test_classifies_recorder_errors_by_their_codes(self) -> None:
        failure = classify_failure(error=IndexOutOfRangeError(4, 2), action="delete")
        self.assertEqual(failure["error_class"], "caller_contract")
        self.assertEqual(failure["error_code"], "REC_INDEX_OUT_OF_RANGE")
        self.assertIn("index 4", failure["message"])

        failure = classify_failure(error=UnhandledActionError("hover"), action="hover")
        self.assertEqual(failure["error_code"], "REC_UNHANDLED_ACTION")
        self.assertEqual(failure["message"], "Uncaptured event action: hover")

        failure = classify_failure(error=PersistenceError("disk full"), action="click")
        self.assertEqual(failure["error_class"], "collaborator_failure")

    def test_classifies_generic_errors(self) -> None:
        self.assertEqual(
            classify_failure(error=TimeoutError("store timeout"))["error_code"],
            "TIMEOUT_OPERATION",
        )
        self.assertEqual(classify_failure(error=ValueError("bad"))["error_code"], "MSG_INVALID")
        self.assertEqual(classify_failure(error=RuntimeError("boom"))["error_code"], "REC_INTERNAL_ERROR")


if __name__ == "__main__":
    unittest.main()
