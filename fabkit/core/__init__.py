"""
fabkit Core Module

Contains the orchestration primitives: process runner, artifact store,
operation graph, configuration and the error taxonomy.
"""

from .config import FabkitConfig
from .context import Context
from .process_runner import ProcessRunner
from .artifact_store import Artifact, ArtifactStore
from .operation_graph import Operation, OperationGraph
from .errors import (
    FabkitError, ValidationError, DependencyMissingError,
    ProcessError, OrchestrationError, OperationCancelled
)
from .types import *

__all__ = [
    'FabkitConfig',
    'Context',
    'ProcessRunner',
    'Artifact',
    'ArtifactStore',
    'Operation',
    'OperationGraph',
    'FabkitError',
    'ValidationError',
    'DependencyMissingError',
    'ProcessError',
    'OrchestrationError',
    'OperationCancelled',
]
