"""Telemetry redaction and event-shape tests."""


from pathlib import Path
import tempfile
import unittest
import json

from gitcoach import telemetry


class TelemetryTests(unittest.TestCase):
    def tearDown(self) -> None:
        telemetry.close_event_stream()

    def test_emit_event_includes_run_and_step(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            telemetry.set_run_id("testrun01")
            path = telemetry.init_event_stream(Path(tmp))
            telemetry.emit_event(
                event_type="operation",
                step_id="push",
                payload={"result": "FAIL"},
            )
            rows = [json.loads(x) for x in
                   path.read_text(encoding="utf-8").splitlines()]
            telemetry.close_event_stream()
        self.assertEqual(len(rows), 1)
        row = rows[0]
        self.assertEqual(row["run_id"], "testrun01")
        self.assertEqual(row["event_type"], "operation")
        self.assertEqual(row["step_id"], "push")
        self.assertEqual(row["payload"], {"result": "FAIL"})

    def test_validation_event(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            path = telemetry.init_event_stream(Path(tmp))
            telemetry.emit_validation("push", ["GC_FORCE_PUSH"], True)
            row = json.loads(path.read_text(encoding="utf-8"))
            telemetry.close_event_stream()
        self.assertEqual(row["event_type"], "validation")
        self.assertEqual(row["payload"]["codes"], ["GC_FORCE_PUSH"])
        self.assertTrue(row["payload"]["can_proceed"])

    def test_no_stream_is_a_noop(self) -> None:
        telemetry.close_event_stream()
        telemetry.emit_event("operation", "commit", {})
        self.assertIsNone(telemetry.events_file())

    def test_redaction_masks_auth_url_and_token_fields(self) -> None:
        payload = {
            "url": "https://ghp_1234@github.com/u/r.git",
            "token": "token=ghp_5678",
            "nested": {"password": "password: secret123"},
            "args": ["push", "https://user:pw@example.com/r.git"],
        }
        text = json.dumps(telemetry.redact(payload))
        self.assertNotIn("ghp_1234", text)
        self.assertNotIn("ghp_5678", text)
        self.assertNotIn("secret123", text)
        self.assertNotIn("user:pw", text)
        self.assertIn("<redacted>", text)


if __name__ == "__main__":
    unittest.main()
