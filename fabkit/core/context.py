"""
Run context shared by the operations of one orchestration run.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from .config import FabkitConfig
from .types import PeerTarget


@dataclass
class Context:
    """
    Configuration snapshot plus the run log of one invocation.

    The config is frozen; the only mutable parts are the run log, which
    the OperationGraph appends to as operations complete or are skipped,
    and `values`, where operations may leave data for later operations.
    A Context belongs to exactly one run and must not be shared between
    concurrent runs.
    """
    config: FabkitConfig
    target: PeerTarget = field(default_factory=PeerTarget)
    force: bool = False
    run_log: List[str] = field(default_factory=list)
    values: Dict[str, Any] = field(default_factory=dict)

    @property
    def channel_name(self) -> str:
        return self.config.channel_name

    @property
    def chaincode_name(self) -> str:
        return self.config.chaincode_name

    def record(self, operation_name: str):
        """Append an operation to the run log"""
        self.run_log.append(operation_name)

    def has_run(self, operation_name: str) -> bool:
        return operation_name in self.run_log

    def last_completed(self) -> Optional[str]:
        return self.run_log[-1] if self.run_log else None
