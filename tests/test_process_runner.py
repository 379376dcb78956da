"""
Unit tests for the ProcessRunner class.

Runs real child processes using the current interpreter so the tests do
not depend on docker or the Fabric binaries being installed.
"""

import unittest
import os
import sys
import tempfile
from pathlib import Path
from unittest.mock import patch

sys.path.insert(0, str(Path(__file__).parent.parent))

from fabkit.core.process_runner import ProcessRunner
from fabkit.core.errors import DependencyMissingError, ProcessError
from tests import TEST_CONFIG


class TestProcessRunner(unittest.TestCase):
    """Test cases for ProcessRunner"""

    def setUp(self):
        self.runner = ProcessRunner(default_timeout=TEST_CONFIG['timeout'])

    def test_captures_stdout_and_exit_code(self):
        result = self.runner.run(sys.executable, ['-c', 'print("hello")'])

        self.assertEqual(result.exit_code, 0)
        self.assertTrue(result.ok)
        self.assertEqual(result.stdout.strip(), "hello")
        self.assertEqual(result.command[0], sys.executable)
        self.assertGreaterEqual(result.duration, 0.0)

    def test_non_zero_exit_is_returned_not_raised(self):
        result = self.runner.run(
            sys.executable, ['-c', 'import sys; sys.stderr.write("bad request"); sys.exit(3)']
        )

        self.assertEqual(result.exit_code, 3)
        self.assertFalse(result.ok)
        self.assertEqual(result.output, "bad request")

    def test_timeout_kills_child(self):
        result = self.runner.run(sys.executable, ['-c', 'import time; time.sleep(10)'], timeout=0.3)

        self.assertTrue(result.timed_out)
        self.assertFalse(result.ok)
        self.assertEqual(result.exit_code, -1)

    def test_launch_failure_raises_process_error(self):
        with self.assertRaises(ProcessError) as cm:
            self.runner.run('/nonexistent/fabkit-binary', ['--version'])

        self.assertEqual(cm.exception.command[0], '/nonexistent/fabkit-binary')

    def test_env_is_merged_over_environment(self):
        result = self.runner.run(
            sys.executable,
            ['-c', 'import os; print(os.environ["FABKIT_TEST_VALUE"], "PATH" in os.environ)'],
            env={'FABKIT_TEST_VALUE': 'channel-42'},
        )

        self.assertEqual(result.stdout.split(), ['channel-42', 'True'])

    def test_workdir(self):
        with tempfile.TemporaryDirectory() as tmp:
            result = self.runner.run(sys.executable, ['-c', 'import os; print(os.getcwd())'], workdir=tmp)

            self.assertEqual(os.path.realpath(result.stdout.strip()), os.path.realpath(tmp))

    def test_one_call_per_run(self):
        self.runner.run(sys.executable, ['-c', 'pass'])
        self.runner.run(sys.executable, ['-c', 'import sys; sys.exit(1)'])

        self.assertEqual(self.runner.calls, 2)

    def test_dry_run_spawns_nothing(self):
        runner = ProcessRunner(dry_run=True)

        with patch('fabkit.core.process_runner.subprocess.run') as mock_run:
            result = runner.run('docker', ['ps'])

        mock_run.assert_not_called()
        self.assertTrue(result.ok)
        self.assertEqual(result.command, ('docker', 'ps'))
        self.assertEqual(runner.calls, 1)

    def test_require_missing_binary(self):
        with patch('fabkit.core.process_runner.shutil.which', return_value=None):
            with self.assertRaises(DependencyMissingError) as cm:
                self.runner.require('docker-compose', "Install Docker Compose")

        self.assertEqual(cm.exception.dependency, 'docker-compose')
        self.assertIn("Install Docker Compose", str(cm.exception))

    def test_require_present_binary(self):
        with patch('fabkit.core.process_runner.shutil.which', return_value='/usr/bin/docker'):
            self.assertEqual(self.runner.require('docker'), '/usr/bin/docker')


if __name__ == '__main__':
    unittest.main()
