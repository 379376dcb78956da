"""
Lifecycle operations of a fabkit network

Declares the Fabric network lifecycle as an OperationGraph:

    build_chaincode -> test_chaincode
    generate_cryptos -> generate_genesis, generate_channeltx
    -> start_containers -> create_channel -> join_channel -> update_anchors
    -> install_chaincode -> instantiate_chaincode

Artifact generators are idempotent: they consult the ArtifactStore and
write the completion marker as their last step. Channel and chaincode
operations are not idempotent; re-running them against a network that
already advanced past them fails with the peer's own error.
"""

import time

from ..core.artifact_store import ArtifactStore
from ..core.config import FabkitConfig
from ..core.context import Context
from ..core.operation_graph import OperationGraph
from .commands import FabricCommands
from .docker_manager import FabricDockerManager
from .toolchain import ChaincodeToolchain

FRESH_START_TARGETS = ('test_chaincode', 'instantiate_chaincode')
CI_START_TARGETS = ('instantiate_chaincode',)
UPGRADE_TARGETS = ('upgrade_chaincode',)
RESTART_TARGETS = ('recreate_containers',)
TEARDOWN_TARGETS = ('cleanup_leftovers',)
EXPLORER_TARGETS = ('start_explorer',)

# Artifact name -> generating operation
GENERATORS = {
    'cryptos': 'generate_cryptos',
    'genesis': 'generate_genesis',
}


def channel_artifact(channel_name: str) -> str:
    return f"channeltx:{channel_name}"


def register_artifacts(store: ArtifactStore, config: FabkitConfig) -> ArtifactStore:
    """Register the artifacts a network produces under their logical names"""
    store.add('cryptos', config.cryptos_path)
    store.add('genesis', config.genesis_dir)
    store.add(channel_artifact(config.channel_name), config.channel_dir(config.channel_name))
    # Written by the containers, not by fabkit: presence is the only signal
    store.add('data', config.data_path, marked=False)
    return store


def _add_chaincode_build(graph: OperationGraph, toolchain: ChaincodeToolchain):
    graph.add(
        'build_chaincode',
        lambda ctx: toolchain.build(ctx.chaincode_name),
        description="compile chaincode",
    )
    graph.add(
        'test_chaincode',
        lambda ctx: toolchain.test(ctx.chaincode_name),
        dependencies=['build_chaincode'],
        description="run chaincode unit tests",
    )


def _install(commands: FabricCommands):
    def run(ctx: Context):
        return commands.install_chaincode(
            ctx.chaincode_name, ctx.config.chaincode_version, ctx.chaincode_name,
            ctx.target.org, ctx.target.peer,
        )
    return run


def build_network_graph(commands: FabricCommands, docker: FabricDockerManager,
                        toolchain: ChaincodeToolchain, store: ArtifactStore,
                        startup_delay: float = 5.0) -> OperationGraph:
    """
    Build the network lifecycle graph.

    Args:
        commands: Fabric command invocations
        docker: Docker manager used to bring containers up
        toolchain: Chaincode build/test toolchain
        store: Artifact store with the network artifacts registered
        startup_delay: Seconds to let containers settle after compose up

    Returns:
        OperationGraph in declaration order
    """
    graph = OperationGraph()
    _add_chaincode_build(graph, toolchain)

    def generate_cryptos(ctx: Context):
        config = ctx.config
        store.prepare('cryptos')
        result = commands.generate_cryptos(config.config_path, config.cryptos_path)
        if result.ok:
            commands.share_cryptos(config.cryptos_path, config.cryptos_shared_path)
            store.mark_complete('cryptos')
        return result

    def generate_genesis(ctx: Context):
        config = ctx.config
        store.prepare('genesis')
        result = commands.generate_genesis(
            config.base_path, config.config_path, config.cryptos_path,
            config.configtx_profile_network,
        )
        if result.ok:
            store.mark_complete('genesis')
        return result

    def generate_channeltx(ctx: Context):
        config = ctx.config
        artifact = channel_artifact(ctx.channel_name)
        store.prepare(artifact)
        results = commands.generate_channeltx(
            ctx.channel_name, config.base_path, config.config_path, config.cryptos_path,
            config.configtx_profile_network, config.configtx_profile_channel, config.org_msp,
        )
        if all(r.ok for r in results):
            store.mark_complete(artifact)
        return results

    def start_containers(ctx: Context):
        docker.ensure_network()
        result = docker.compose_up()
        if result.ok and startup_delay > 0:
            time.sleep(startup_delay)
        return result

    graph.add(
        'generate_cryptos', generate_cryptos,
        idempotent=True,
        already_satisfied=lambda ctx: store.exists('cryptos'),
        description="generate crypto material",
    )
    graph.add(
        'generate_genesis', generate_genesis,
        dependencies=['generate_cryptos'],
        idempotent=True,
        already_satisfied=lambda ctx: store.exists('genesis'),
        description="generate orderer genesis block",
    )
    graph.add(
        'generate_channeltx', generate_channeltx,
        dependencies=['generate_cryptos'],
        idempotent=True,
        already_satisfied=lambda ctx: store.exists(channel_artifact(ctx.channel_name)),
        description="generate channel transactions",
    )
    graph.add(
        'start_containers', start_containers,
        dependencies=['generate_genesis', 'generate_channeltx'],
        description="start network containers",
    )
    graph.add(
        'create_channel',
        lambda ctx: commands.create_channel(ctx.channel_name, ctx.target.org, ctx.target.peer),
        dependencies=['start_containers'],
    )
    graph.add(
        'join_channel',
        lambda ctx: commands.join_channel(ctx.channel_name, ctx.target.org, ctx.target.peer),
        dependencies=['create_channel'],
    )
    graph.add(
        'update_anchors',
        lambda ctx: commands.update_channel(
            ctx.channel_name, ctx.config.org_msp, ctx.target.org, ctx.target.peer),
        dependencies=['join_channel'],
    )
    graph.add(
        'install_chaincode', _install(commands),
        dependencies=['start_containers'],
    )
    graph.add(
        'instantiate_chaincode',
        lambda ctx: commands.instantiate_chaincode(
            ctx.chaincode_name, ctx.config.chaincode_version, ctx.channel_name,
            ctx.target.org, ctx.target.peer),
        dependencies=['install_chaincode', 'update_anchors'],
    )
    _add_container_operations(graph, docker)

    # Regenerating an artifact re-runs its generator; satisfied inputs are reused
    for name in store.names():
        if name in GENERATORS:
            store.get(name).regenerate = _regenerator(graph, GENERATORS[name])
        elif name.startswith(channel_artifact("")):
            store.get(name).regenerate = _regenerator(graph, 'generate_channeltx')
    return graph


def _regenerator(graph: OperationGraph, operation: str):
    def regenerate(ctx: Context):
        return graph.execute([operation], ctx)
    return regenerate


def build_upgrade_graph(commands: FabricCommands, toolchain: ChaincodeToolchain) -> OperationGraph:
    """Build, test and install a new chaincode version, then upgrade to it"""
    graph = OperationGraph()
    _add_chaincode_build(graph, toolchain)
    graph.add(
        'install_chaincode', _install(commands),
        dependencies=['test_chaincode'],
    )
    graph.add(
        'upgrade_chaincode',
        lambda ctx: commands.upgrade_chaincode(
            ctx.chaincode_name, ctx.config.chaincode_version, ctx.channel_name,
            ctx.target.org, ctx.target.peer),
        dependencies=['install_chaincode'],
    )
    return graph


def _add_container_operations(graph: OperationGraph, docker: FabricDockerManager):
    """Restart, teardown and explorer steps that reuse existing artifacts"""

    def stop_explorer(ctx: Context):
        if not docker.is_explorer_running():
            return None
        return docker.compose_down(ctx.config.explorer_path / "docker-compose.yaml")

    def cleanup_leftovers(ctx: Context):
        removed = docker.cleanup_leftovers()
        ctx.values['removed'] = removed

    def start_explorer(ctx: Context):
        result = docker.compose_up(ctx.config.explorer_path / "docker-compose.yaml")
        if result.ok:
            docker.wait_for_http(ctx.config.explorer_url)
        return result

    graph.add(
        'recreate_containers',
        lambda ctx: docker.compose_up(force_recreate=True),
        description="recreate containers on existing data",
    )
    graph.add(
        'stop_containers',
        lambda ctx: docker.compose_down(),
        description="tear network containers down",
    )
    graph.add(
        'stop_explorer', stop_explorer,
        dependencies=['stop_containers'],
    )
    graph.add(
        'cleanup_leftovers', cleanup_leftovers,
        dependencies=['stop_explorer'],
        description="remove leftover containers and images",
    )
    graph.add(
        'start_explorer', start_explorer,
        description="start blockchain explorer",
    )
