#!/usr/bin/env python3
"""
Tests for the replay command-line tool in stardiff/replay.py.
"""

import io
import json
import sys
import tempfile
import unittest
from dataclasses import replace
from pathlib import Path
from unittest.mock import patch

from stardiff import replay
from stardiff.harness import Harness
from stardiff.oracles import OracleSpec
from stardiff.profiles import SUPERSET_PROFILE
from stardiff.suppression import PYTHON3
from tests.support import AcceptingInterpreter, PythonInterpreter

TEST_PROFILE = replace(
    SUPERSET_PROFILE, oracles=(OracleSpec(PYTHON3, (sys.executable, "-c")),), oracle_timeout=30.0
)


class TestCollectInputs(unittest.TestCase):
    def test_directories_expanded_in_order(self):
        with tempfile.TemporaryDirectory() as tmp:
            root = Path(tmp)
            corpus = root / "corpus"
            corpus.mkdir()
            (corpus / "b").write_bytes(b"")
            (corpus / "a").write_bytes(b"")
            (corpus / "nested").mkdir()
            single = root / "single"
            single.write_bytes(b"")

            inputs = replay.collect_inputs([single, corpus])

        self.assertEqual(inputs, [single, corpus / "a", corpus / "b"])


class TestReplay(unittest.TestCase):
    """Test replay() status lines and its stop-at-first-divergence rule."""

    def setUp(self):
        self.tmp_dir = tempfile.mkdtemp()
        self.root = Path(self.tmp_dir)

    def _write(self, name, data):
        path = self.root / name
        path.write_bytes(data)
        return path

    def test_status_lines(self):
        inputs = [
            self._write("ok", b"\x00True"),
            self._write("skip", b"\x00x = 2 * 2"),
            self._write("known", b"\x00enumerate(())[:]"),
        ]
        harness = Harness(TEST_PROFILE, AcceptingInterpreter())

        with patch("sys.stderr", new_callable=io.StringIO) as mock_stderr:
            status = replay.replay(harness, inputs)

        output = mock_stderr.getvalue()
        self.assertEqual(status, replay.EXIT_OK)
        self.assertIn("[+]", output)
        self.assertIn("interesting (oracle-accepted)", output)
        self.assertIn("uninteresting (multiplication)", output)
        self.assertIn("known divergence (enumerate-laziness)", output)

    def test_stops_at_first_divergence(self):
        inputs = [
            self._write("1-bug", b"\x00x = nosuchname"),
            self._write("2-never-run", b"\x00True"),
        ]
        interpreter = AcceptingInterpreter()
        harness = Harness(TEST_PROFILE, interpreter)

        with patch("sys.stderr", new_callable=io.StringIO) as mock_stderr:
            status = replay.replay(harness, inputs)

        self.assertEqual(status, replay.EXIT_DIVERGENCE)
        self.assertIn("[!] DIVERGENCE", mock_stderr.getvalue())
        self.assertIn("UNCLASSIFIED DIVERGENCE", mock_stderr.getvalue())
        self.assertEqual(interpreter.compiled, [b"x = nosuchname"])


class TestReplayMain(unittest.TestCase):
    """Test main() wiring with a Python double as the interpreter under test."""

    def setUp(self):
        self.tmp_dir = tempfile.mkdtemp()
        self.input_path = Path(self.tmp_dir) / "input"
        self.input_path.write_bytes(b"\x00True")

    def _main(self, argv, interpreter=PythonInterpreter, profile=TEST_PROFILE):
        with (
            patch.object(replay, "StarlarkGoInterpreter", interpreter),
            patch.object(replay, "get_profile", return_value=profile),
            patch("sys.stderr", new_callable=io.StringIO) as mock_stderr,
        ):
            status = replay.main(argv)
        return status, mock_stderr.getvalue()

    def test_clean_replay_exits_zero(self):
        status, output = self._main([str(self.input_path)])

        self.assertEqual(status, replay.EXIT_OK)
        self.assertIn("Replaying 1 inputs with profile 'superset'", output)
        self.assertIn('"interesting": 1', output)

    def test_divergence_exits_one(self):
        self.input_path.write_bytes(b"\x00x = nosuchname")
        status, _ = self._main([str(self.input_path)], interpreter=AcceptingInterpreter)
        self.assertEqual(status, replay.EXIT_DIVERGENCE)

    def test_no_oracle_exits_two(self):
        profile = replace(TEST_PROFILE, oracles=(OracleSpec("gone", ("/nonexistent/oracle",)),))
        status, output = self._main([str(self.input_path)], profile=profile)

        self.assertEqual(status, replay.EXIT_NO_ORACLE)
        self.assertIn("No reference interpreter", output)

    def test_health_log_written(self):
        self.input_path.write_bytes(b"\x00enumerate(())[:]")
        log_path = Path(self.tmp_dir) / "health.jsonl"

        status, output = self._main(
            [str(self.input_path), "--health-log", str(log_path)], interpreter=AcceptingInterpreter
        )

        self.assertEqual(status, replay.EXIT_OK)
        record = json.loads(log_path.read_text().splitlines()[0])
        self.assertEqual(record["rule"], "enumerate-laziness")
        self.assertIn("Health events", output)

    def test_timeouts_override_profile(self):
        with patch.object(replay, "Harness", wraps=Harness) as mock_harness:
            self._main([str(self.input_path), "--primary-timeout", "2", "--oracle-timeout", "7"])

        profile = mock_harness.call_args[0][0]
        self.assertEqual(profile.primary_timeout, 2.0)
        self.assertEqual(profile.oracle_timeout, 7.0)

    def test_unknown_profile_rejected_by_argparse(self):
        with patch("sys.stderr", new_callable=io.StringIO):
            with self.assertRaises(SystemExit):
                replay.main(["--profile", "nope", str(self.input_path)])


if __name__ == "__main__":
    unittest.main()
