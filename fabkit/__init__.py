"""
fabkit - Hyperledger Fabric development network toolkit

An orchestration engine around Docker, Docker Compose and the Fabric
toolchain that:
- Runs every external tool through a single process runner
- Tracks generated crypto material and channel artifacts on disk
- Sequences the network lifecycle as a dependency graph of operations
- Resumes interrupted runs by skipping artifacts that are already complete
- Generates parallel ledger load for quick benchmarks

Version: 1.0.0
"""

__version__ = "1.0.0"

from .core.config import FabkitConfig
from .core.context import Context
from .core.process_runner import ProcessRunner
from .core.artifact_store import ArtifactStore
from .core.operation_graph import Operation, OperationGraph
from .engine.lifecycle import LifecycleOrchestrator
from .engine.benchmark import BenchmarkRunner
from .fabric.commands import FabricCommands
from .fabric.docker_manager import FabricDockerManager
from .fabric.toolchain import ChaincodeToolchain

__all__ = [
    "FabkitConfig",
    "Context",
    "ProcessRunner",
    "ArtifactStore",
    "Operation",
    "OperationGraph",
    "LifecycleOrchestrator",
    "BenchmarkRunner",
    "FabricCommands",
    "FabricDockerManager",
    "ChaincodeToolchain",
]
