"""
Hyperledger Fabric Integration Module for fabkit

Provides the Fabric-specific side of the orchestrator:
- Docker image, network and container management
- cryptogen / configtxgen artifact generation
- peer channel and chaincode commands
- fabric-ca-client identity management
- Chaincode build, test and packaging
- The network lifecycle operation graph
"""

from .commands import FabricCommands
from .docker_manager import FabricDockerManager
from .toolchain import ChaincodeToolchain, LocalGoExecutor, DockerGoExecutor
from .operations import build_network_graph, build_upgrade_graph, register_artifacts

__all__ = [
    'FabricCommands',
    'FabricDockerManager',
    'ChaincodeToolchain',
    'LocalGoExecutor',
    'DockerGoExecutor',
    'build_network_graph',
    'build_upgrade_graph',
    'register_artifacts',
]
