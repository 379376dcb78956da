"""
Core data types and structures for the fabkit orchestration engine.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Tuple
from enum import Enum


class OutcomeStatus(Enum):
    """Outcome of a single operation inside a graph execution"""
    COMPLETED = "completed"
    SKIPPED = "skipped"
    FAILED = "failed"


class NetworkState(Enum):
    """Lifecycle states of a named network instance"""
    UNINITIALIZED = "uninitialized"
    RUNNING = "running"
    STOPPED = "stopped"


@dataclass(frozen=True)
class ProcessResult:
    """Result of exactly one external command invocation"""
    exit_code: int
    stdout: str
    stderr: str
    duration: float
    command: Tuple[str, ...] = ()
    timed_out: bool = False

    @property
    def ok(self) -> bool:
        return self.exit_code == 0 and not self.timed_out

    @property
    def output(self) -> str:
        """Best available diagnostic text: stderr first, then stdout"""
        return (self.stderr or self.stdout or "").strip()

    def command_line(self) -> str:
        return " ".join(self.command)


@dataclass
class OperationOutcome:
    """Record of how one graph node was handled during execute()"""
    name: str
    status: OutcomeStatus
    results: List[ProcessResult] = field(default_factory=list)
    duration: float = 0.0

    @property
    def skipped(self) -> bool:
        return self.status is OutcomeStatus.SKIPPED


@dataclass
class BenchmarkReport:
    """Aggregated result of a benchmark load run"""
    job_count: int
    entries_per_job: int
    total_entries: int
    elapsed: float
    per_job_errors: Dict[int, int] = field(default_factory=dict)

    @property
    def error_count(self) -> int:
        return sum(self.per_job_errors.values())

    @property
    def failed_jobs(self) -> List[int]:
        """Job indexes that saw at least one failed invoke"""
        return sorted(job for job, errors in self.per_job_errors.items() if errors)

    @property
    def throughput(self) -> float:
        """Entries issued per second"""
        if self.elapsed <= 0:
            return 0.0
        return self.total_entries / self.elapsed

    def to_dict(self) -> Dict[str, object]:
        return {
            'jobs': self.job_count,
            'entries_per_job': self.entries_per_job,
            'total_entries': self.total_entries,
            'elapsed': round(self.elapsed, 3),
            'errors': self.error_count,
            'failed_jobs': self.failed_jobs,
            'throughput': round(self.throughput, 2),
        }


@dataclass(frozen=True)
class PeerTarget:
    """Organization/peer pair a peer CLI command is executed against"""
    org: int = 1
    peer: int = 0

    def __str__(self) -> str:
        return f"org{self.org} peer{self.peer}"
