"""
Operation Graph

Declares lifecycle steps as named operations with explicit dependencies
and executes a requested subset of them:

- Resolves the transitive closure of dependencies for the targets
- Orders it topologically, breaking ties by declaration order
- Runs the operations one at a time, skipping idempotent operations whose
  work is already satisfied unless the run is forced
- Aborts on the first failure with an OrchestrationError naming the
  failed operation; earlier steps are not rolled back

The run log on the Context records every completed or skipped operation,
so the next invocation resumes at the first incomplete one.
"""

import heapq
import logging
import time
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Tuple, Union

from .context import Context
from .errors import FabkitError, OrchestrationError, ValidationError
from .types import OperationOutcome, OutcomeStatus, ProcessResult

RunResult = Union[None, ProcessResult, Sequence[ProcessResult]]


@dataclass(frozen=True)
class Operation:
    """A single lifecycle step backed by one or more external calls"""
    name: str
    run: Callable[[Context], RunResult]
    dependencies: Tuple[str, ...] = ()
    idempotent: bool = False
    already_satisfied: Optional[Callable[[Context], bool]] = None
    description: str = ""

    def is_satisfied(self, context: Context) -> bool:
        if not self.idempotent or self.already_satisfied is None:
            return False
        return bool(self.already_satisfied(context))


class OperationGraph:
    """Static registry of operations plus the sequential executor"""

    def __init__(self):
        self.operations: Dict[str, Operation] = {}
        self._declaration: Dict[str, int] = {}
        self.logger = logging.getLogger(__name__)

    def register(self, operation: Operation) -> Operation:
        """
        Register an operation.

        Dependencies may name operations registered later; they are
        checked when the graph is resolved.
        """
        if operation.name in self.operations:
            raise ValueError(f"Operation already registered: {operation.name}")
        self.operations[operation.name] = operation
        self._declaration[operation.name] = len(self._declaration)
        return operation

    def add(self, name: str, run: Callable[[Context], RunResult],
            dependencies: Iterable[str] = (), idempotent: bool = False,
            already_satisfied: Optional[Callable[[Context], bool]] = None,
            description: str = "") -> Operation:
        return self.register(Operation(
            name=name,
            run=run,
            dependencies=tuple(dependencies),
            idempotent=idempotent,
            already_satisfied=already_satisfied,
            description=description,
        ))

    def __contains__(self, name: str) -> bool:
        return name in self.operations

    def __len__(self) -> int:
        return len(self.operations)

    def closure(self, targets: Iterable[str]) -> List[str]:
        """All operations needed to run the targets, in no particular order"""
        needed: Dict[str, None] = {}
        stack = list(targets)
        while stack:
            name = stack.pop()
            if name in needed:
                continue
            operation = self.operations.get(name)
            if operation is None:
                raise ValidationError(f"Unknown operation: {name}")
            needed[name] = None
            for dependency in operation.dependencies:
                if dependency not in self.operations:
                    raise ValidationError(
                        f"Operation '{name}' depends on unknown operation '{dependency}'"
                    )
                stack.append(dependency)
        return list(needed)

    def resolve(self, targets: Iterable[str]) -> List[str]:
        """
        Topologically order the targets and their dependencies.

        Kahn's algorithm with a heap keyed by declaration index, so the
        order is identical every time for the same registered set.

        Raises:
            ValidationError: for unknown operation names
            ValueError: if the dependencies contain a cycle
        """
        names = self.closure(targets)
        indegree = {name: 0 for name in names}
        dependents: Dict[str, List[str]] = {name: [] for name in names}
        for name in names:
            for dependency in set(self.operations[name].dependencies):
                indegree[name] += 1
                dependents[dependency].append(name)

        ready = [(self._declaration[name], name) for name, degree in indegree.items() if degree == 0]
        heapq.heapify(ready)

        order = []
        while ready:
            _, name = heapq.heappop(ready)
            order.append(name)
            for dependent in dependents[name]:
                indegree[dependent] -= 1
                if indegree[dependent] == 0:
                    heapq.heappush(ready, (self._declaration[dependent], dependent))

        if len(order) != len(names):
            cycle = sorted((n for n, d in indegree.items() if d > 0), key=self._declaration.get)
            raise ValueError(f"Dependency cycle between operations: {', '.join(cycle)}")
        return order

    def order(self) -> List[str]:
        """Execution order of the whole graph"""
        return self.resolve(self.operations)

    def execute(self, targets: Sequence[str], context: Context,
                force: Optional[bool] = None) -> List[OperationOutcome]:
        """
        Execute the targets and everything they depend on.

        Args:
            targets: Operation names requested by the caller
            context: Run context; its run log is appended to
            force: Re-run idempotent operations even if satisfied;
                defaults to context.force

        Returns:
            One OperationOutcome per executed or skipped operation

        Raises:
            OrchestrationError: naming the first operation that failed; FabkitError
                and OSError raised by an operation are wrapped as its cause
        """
        force = context.force if force is None else force
        plan = self.resolve(targets)
        self.logger.debug(f"Execution plan: {' -> '.join(plan)}")

        outcomes: List[OperationOutcome] = []
        completed: List[str] = []
        for name in plan:
            operation = self.operations[name]

            if not force and operation.is_satisfied(context):
                self.logger.warning(f"Skipping {name}: already satisfied")
                outcomes.append(OperationOutcome(name, OutcomeStatus.SKIPPED))
                context.record(name)
                completed.append(name)
                continue

            self.logger.info(f"Running {name}" + (f": {operation.description}" if operation.description else ""))
            start_time = time.perf_counter()
            try:
                results = _as_results(operation.run(context))
            except (FabkitError, OSError) as e:
                self.logger.error(f"Operation {name} failed: {e}")
                outcomes.append(OperationOutcome(name, OutcomeStatus.FAILED,
                                                 duration=time.perf_counter() - start_time))
                raise OrchestrationError(name, completed=completed, reason=str(e),
                                         outcomes=outcomes) from e
            duration = time.perf_counter() - start_time

            failed = next((r for r in results if not r.ok), None)
            if failed is not None:
                self.logger.error(f"Operation {name} failed with exit code {failed.exit_code}")
                outcomes.append(OperationOutcome(name, OutcomeStatus.FAILED, results, duration))
                raise OrchestrationError(name, result=failed, completed=completed,
                                         outcomes=outcomes)

            outcomes.append(OperationOutcome(name, OutcomeStatus.COMPLETED, results, duration))
            context.record(name)
            completed.append(name)

        return outcomes


def _as_results(value: RunResult) -> List[ProcessResult]:
    if value is None:
        return []
    if isinstance(value, ProcessResult):
        return [value]
    return list(value)
