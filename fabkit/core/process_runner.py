"""
Process Runner

The single I/O boundary of fabkit towards external tools: docker,
docker-compose, go and the Fabric binaries. Every call spawns exactly one
process and produces exactly one ProcessResult. Non-zero exit codes are
data, not exceptions; only a failure to launch raises ProcessError.
"""

import logging
import os
import shutil
import subprocess
import threading
import time
from typing import Dict, Optional, Sequence

from .errors import DependencyMissingError, ProcessError
from .types import ProcessResult


class ProcessRunner:
    """Runs external commands with captured output and an optional timeout"""

    def __init__(self, default_timeout: Optional[float] = None, dry_run: bool = False):
        """
        Initialize process runner.

        Args:
            default_timeout: Timeout in seconds applied when run() gets none
            dry_run: Log commands instead of executing them
        """
        self.default_timeout = default_timeout
        self.dry_run = dry_run
        self.logger = logging.getLogger(__name__)
        self._lock = threading.Lock()
        self.calls = 0

    def run(self, command: str, args: Sequence[str] = (),
            env: Optional[Dict[str, str]] = None,
            workdir: Optional[os.PathLike] = None,
            timeout: Optional[float] = None,
            stdin: Optional[str] = None) -> ProcessResult:
        """
        Run one external command to completion.

        Args:
            command: Executable name or path
            args: Command arguments
            env: Extra environment variables merged over os.environ
            workdir: Working directory for the child process
            timeout: Seconds before the child is killed
            stdin: Text passed on standard input

        Returns:
            ProcessResult with exit code, captured output and duration

        Raises:
            ProcessError: if the command could not be launched
        """
        argv = (command, *[str(a) for a in args])
        timeout = timeout if timeout is not None else self.default_timeout

        with self._lock:
            self.calls += 1

        self.logger.debug(f"Executing command: {' '.join(argv)}")
        if self.dry_run:
            return ProcessResult(0, "", "", 0.0, command=argv)

        child_env = None
        if env:
            child_env = dict(os.environ)
            child_env.update(env)

        start_time = time.perf_counter()
        try:
            completed = subprocess.run(
                argv,
                input=stdin,
                capture_output=True,
                text=True,
                env=child_env,
                cwd=str(workdir) if workdir else None,
                timeout=timeout,
            )
        except subprocess.TimeoutExpired as e:
            duration = time.perf_counter() - start_time
            self.logger.error(f"Command timed out after {timeout}s: {' '.join(argv)}")
            return ProcessResult(
                exit_code=-1,
                stdout=_decode(e.stdout),
                stderr=_decode(e.stderr) or f"timed out after {timeout}s",
                duration=duration,
                command=argv,
                timed_out=True,
            )
        except (FileNotFoundError, PermissionError, NotADirectoryError) as e:
            raise ProcessError(argv, str(e)) from e

        duration = time.perf_counter() - start_time
        result = ProcessResult(
            exit_code=completed.returncode,
            stdout=completed.stdout or "",
            stderr=completed.stderr or "",
            duration=duration,
            command=argv,
        )
        if not result.ok:
            self.logger.debug(f"Command exited with {result.exit_code}: {result.output}")
        return result

    def which(self, binary: str) -> Optional[str]:
        """Locate a binary on PATH"""
        return shutil.which(binary)

    def require(self, binary: str, hint: Optional[str] = None) -> str:
        """
        Ensure a binary is on PATH.

        Raises:
            DependencyMissingError: with the remediation hint if it is not
        """
        path = self.which(binary)
        if path is None:
            raise DependencyMissingError(binary, hint)
        return path


def _decode(data) -> str:
    if data is None:
        return ""
    if isinstance(data, bytes):
        return data.decode('utf-8', errors='replace')
    return data
