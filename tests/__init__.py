"""
fabkit Test Suite

Unit and integration tests for the fabkit orchestration engine.

Test Categories:
- Unit Tests: process runner, artifact store, operation graph, config
- Fabric Tests: command construction, docker manager, chaincode toolchain
- Engine Tests: lifecycle orchestrator and benchmark runner
- CLI Tests: verb dispatch and exit codes

No test talks to a real Docker daemon or Fabric network: external
commands go through FakeRunner and the docker SDK client is a MagicMock.

Usage:
    python tests/run_tests.py                # Run all tests
    python tests/run_tests.py --coverage     # Run with coverage
    python tests/run_tests.py --pattern "test_operation*"  # Specific tests
"""

import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from fabkit.core.process_runner import ProcessRunner
from fabkit.core.types import ProcessResult

# Test configuration
TEST_CONFIG = {
    'timeout': 5.0,           # Timeout for real subprocess tests
    'log_level': 'WARNING'    # Reduce logging noise in tests
}


def ok_result(argv=(), stdout=""):
    return ProcessResult(0, stdout, "", 0.01, command=tuple(argv))


def failed_result(argv=(), stderr="Error: boom", exit_code=1):
    return ProcessResult(exit_code, "", stderr, 0.01, command=tuple(argv))


class FakeRunner(ProcessRunner):
    """
    ProcessRunner that records every call instead of spawning processes.

    `responder(argv)` may return a ProcessResult for a call; returning
    None (or having no responder) yields a successful empty result.
    """

    def __init__(self, responder=None, binaries=('docker', 'docker-compose')):
        super().__init__()
        self.responder = responder
        self.binaries = set(binaries)
        self.history = []
        self.envs = []
        self.workdirs = []

    def run(self, command, args=(), env=None, workdir=None, timeout=None, stdin=None):
        argv = (command, *[str(a) for a in args])
        with self._lock:
            self.calls += 1
            self.history.append(argv)
            self.envs.append(env)
            self.workdirs.append(workdir)
        if self.responder is not None:
            result = self.responder(argv)
            if result is not None:
                return result
        return ok_result(argv)

    def which(self, binary):
        return f"/usr/bin/{binary}" if binary in self.binaries else None
