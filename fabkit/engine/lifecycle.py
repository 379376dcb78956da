"""
Lifecycle Orchestrator

Drives a named network instance through its lifecycle:

    UNINITIALIZED --start--> RUNNING --stop--> STOPPED --start/restart--> RUNNING

Every transition runs as an OperationGraph execution. The only decision
that depends on on-disk state is made by start(): whether the ledger data
directory exists. Without it the fresh start sequence runs unprompted;
with it the operator chooses between reusing the data (restart) and a
destructive fresh start, which needs a second explicit confirmation.
"""

import logging
from typing import Callable, List, Optional, Sequence

from ..core.artifact_store import ArtifactStore
from ..core.context import Context
from ..core.errors import OperationCancelled, ValidationError
from ..core.operation_graph import OperationGraph
from ..core.types import NetworkState, OperationOutcome
from ..fabric.docker_manager import FabricDockerManager
from ..fabric.operations import (
    CI_START_TARGETS, EXPLORER_TARGETS, FRESH_START_TARGETS,
    RESTART_TARGETS, TEARDOWN_TARGETS,
)

# confirm(question, default) -> answer
ConfirmFn = Callable[[str, bool], bool]

DATA_ARTIFACT = 'data'


def _decline(question: str, default: bool = False) -> bool:
    return False


class LifecycleOrchestrator:
    """State machine over one network instance"""

    def __init__(self, context: Context, graph: OperationGraph,
                 docker: FabricDockerManager, store: ArtifactStore,
                 confirm: Optional[ConfirmFn] = None, assume_yes: bool = False):
        """
        Initialize lifecycle orchestrator.

        Args:
            context: Run context of this invocation
            graph: Network graph from build_network_graph
            docker: Docker manager used for state inspection and images
            store: Artifact store with the network artifacts registered
            confirm: Interactive yes/no prompt; declines everything if absent
            assume_yes: Answer yes to every prompt without asking
        """
        self.context = context
        self.graph = graph
        self.docker = docker
        self.store = store
        self.confirm = confirm or _decline
        self.assume_yes = assume_yes
        self.logger = logging.getLogger(__name__)

    def _ask(self, question: str, default: bool = False) -> bool:
        if self.assume_yes:
            self.logger.info(f"{question} yes (assumed)")
            return True
        return self.confirm(question, default)

    def _run(self, targets: Sequence[str], force: Optional[bool] = None) -> List[OperationOutcome]:
        return self.graph.execute(targets, self.context, force=force)

    def has_data(self) -> bool:
        return self.store.present(DATA_ARTIFACT)

    def state(self) -> NetworkState:
        if self.docker.is_fabric_running():
            return NetworkState.RUNNING
        if self.has_data():
            return NetworkState.STOPPED
        return NetworkState.UNINITIALIZED

    def install(self) -> List[str]:
        """Check docker tooling and pull every image the network needs"""
        self.docker.check_dependencies()
        return self.docker.pull_images()

    def start(self, ci: bool = False) -> List[OperationOutcome]:
        """
        Start the network.

        Args:
            ci: Non-interactive mode: no prompts, no teardown and no
                chaincode build/test before the bring-up

        Returns:
            Outcomes of every operation executed, teardown included

        Raises:
            OperationCancelled: if a destructive fresh start was declined
            OrchestrationError: naming the first operation that failed
        """
        if ci:
            self.logger.info("Starting network in CI mode")
            return self._run(CI_START_TARGETS)

        if not self.has_data():
            self.logger.info("No data directory found, starting a fresh network")
            outcomes = self.stop(remove_data=False)
            return outcomes + self._run(FRESH_START_TARGETS)

        data_path = self.store.path_of(DATA_ARTIFACT)
        self.logger.warning(f"Found data directory: {data_path}")
        if self._ask("Do you wish to restart the network and reuse this data?", True):
            return self.restart()

        if not self._ask(f"A fresh start deletes {data_path} and regenerates all artifacts. Continue?"):
            raise OperationCancelled("Fresh start cancelled, existing data left untouched")

        outcomes = self.stop(remove_data=True)
        return outcomes + self._run(FRESH_START_TARGETS, force=True)

    def restart(self) -> List[OperationOutcome]:
        """Recreate the containers on top of the existing ledger data"""
        if not self.has_data():
            raise ValidationError(
                f"Data directory not found in: {self.store.path_of(DATA_ARTIFACT)}. Run a normal start."
            )
        outcomes = self._run(RESTART_TARGETS)
        self.logger.warning(
            "The chaincode container will be instantiated automatically once the "
            "peer executes the first invoke or query"
        )
        return outcomes

    def stop(self, remove_data: Optional[bool] = None) -> List[OperationOutcome]:
        """
        Tear the network down and clean docker leftovers.

        Args:
            remove_data: True deletes the data directory, False keeps it,
                None asks the operator
        """
        outcomes = self._run(TEARDOWN_TARGETS)

        if self.has_data():
            data_path = self.store.path_of(DATA_ARTIFACT)
            if remove_data is None:
                self.logger.warning(f"Found data directory: {data_path}")
                remove_data = self._ask("Do you wish to remove this data?")
            if remove_data:
                self.store.invalidate(DATA_ARTIFACT)
            else:
                self.logger.info(f"Keeping data directory {data_path}")
        return outcomes

    def explore(self) -> List[OperationOutcome]:
        """Start the blockchain explorer against a running network"""
        if not self.docker.is_fabric_running():
            raise ValidationError("No Fabric networks running. First launch: fabkit network start")
        outcomes = self._run(EXPLORER_TARGETS)
        self.logger.warning("Blockchain Explorer default user is admin/adminpw")
        self.logger.warning("Grafana default user is admin/admin")
        return outcomes
