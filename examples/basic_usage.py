#!/usr/bin/env python3
"""
Basic fabkit Usage Example

Demonstrates the fabkit engine from Python instead of the CLI.
This example shows:
1. Loading configuration
2. Wiring the components and the network graph
3. Printing the fresh start plan
4. Executing it in dry-run mode, twice, to show artifact reuse
5. Running a small benchmark against the dry-run runner

Nothing is sent to Docker: the process runner only logs commands.
"""

import logging
import sys
import tempfile
from pathlib import Path

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from fabkit import ArtifactStore, BenchmarkRunner, ChaincodeToolchain, Context, FabkitConfig
from fabkit import FabricCommands, FabricDockerManager, ProcessRunner
from fabkit.fabric.operations import CI_START_TARGETS, build_network_graph, register_artifacts
from fabkit.fabric.toolchain import DockerGoExecutor


class OfflineDockerManager(FabricDockerManager):
    """Docker manager that never talks to the daemon"""

    def ensure_network(self):
        self.logger.info(f"Would ensure network {self.config.docker_network}")


def main():
    logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')

    with tempfile.TemporaryDirectory() as workspace:
        print("🔧 Loading configuration...")
        config = FabkitConfig.load(env_file=None, root=Path(workspace), channel_name="demochannel")
        print(f"   Channel: {config.channel_name}, chaincode: {config.chaincode_name}")
        print(f"   Artifacts under: {config.base_path}")

        runner = ProcessRunner(dry_run=True)
        commands = FabricCommands(runner, config)
        docker = OfflineDockerManager(config, runner)
        toolchain = ChaincodeToolchain(runner, config, executor=DockerGoExecutor(runner, config))
        store = register_artifacts(ArtifactStore(), config)
        graph = build_network_graph(commands, docker, toolchain, store, startup_delay=0)

        print("\n📋 CI start plan:")
        for step, name in enumerate(graph.resolve(CI_START_TARGETS), 1):
            print(f"   {step:2d}. {name}")

        print("\n🚀 First run (dry run)...")
        outcomes = graph.execute(CI_START_TARGETS, Context(config))
        print(f"   {len(outcomes)} operations, {runner.calls} commands")

        print("\n🔁 Second run reuses generated artifacts...")
        calls = runner.calls
        outcomes = graph.execute(CI_START_TARGETS, Context(config))
        skipped = [o.name for o in outcomes if o.skipped]
        print(f"   Skipped: {', '.join(skipped)}")
        print(f"   {runner.calls - calls} commands")

        print("\n📈 Benchmark (dry run): 4 jobs x 25 entries")
        report = BenchmarkRunner().run(
            4, 25,
            lambda key, value: commands.invoke(
                config.channel_name, config.chaincode_name, f'{{"Args":["put","{key}","{value}"]}}'),
        )
        for label, value in report.to_dict().items():
            print(f"   {label}: {value}")


if __name__ == "__main__":
    main()
