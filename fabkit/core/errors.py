"""
Error taxonomy for fabkit.

Every error raised on purpose by fabkit derives from FabkitError and
carries the process exit code the CLI reports for it.
"""

from typing import List, Optional, Sequence

from .types import ProcessResult


class FabkitError(Exception):
    """Base class for all fabkit errors"""

    exit_code = 1


class ValidationError(FabkitError):
    """Missing or malformed argument or configuration value"""


class DependencyMissingError(FabkitError):
    """A required binary or docker image is not available"""

    def __init__(self, dependency: str, hint: Optional[str] = None):
        self.dependency = dependency
        self.hint = hint
        message = f"{dependency} required but it is not available"
        if hint:
            message = f"{message}. {hint}"
        super().__init__(message)


class ProcessError(FabkitError):
    """An external command could not be launched at all"""

    def __init__(self, command: Sequence[str], reason: str):
        self.command = tuple(command)
        self.reason = reason
        super().__init__(f"Failed to launch '{' '.join(self.command)}': {reason}")


class OrchestrationError(FabkitError):
    """
    A graph operation failed.

    Wraps the failing ProcessResult (when the command ran and exited
    non-zero) and keeps the names of the operations that completed before
    the failure, so the caller can report how far the run got.
    """

    def __init__(self, operation: str, result: Optional[ProcessResult] = None,
                 completed: Optional[List[str]] = None, reason: Optional[str] = None,
                 outcomes: Optional[list] = None):
        self.operation = operation
        self.result = result
        self.completed = list(completed or [])
        self.reason = reason
        self.outcomes = list(outcomes or [])

        detail = reason
        if detail is None and result is not None:
            detail = result.output or f"exit code {result.exit_code}"
            if result.timed_out:
                detail = f"timed out: {detail}"
        message = f"Operation '{operation}' failed"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)


class OperationCancelled(FabkitError):
    """The operator declined a confirmation; nothing was changed"""
