"""
Chaincode toolchain

Runs Go tooling (test, build, module management) against chaincode
sources and packs chaincode archives for deployment. Go commands run
through an executor strategy: the local Go toolchain when `go` is on
PATH, otherwise the same commands inside the golang docker image.
"""

import logging
import shlex
import shutil
import time
from pathlib import Path
from typing import Dict, List, Optional, Sequence

from ..core.config import FabkitConfig
from ..core.errors import OrchestrationError, ValidationError
from ..core.process_runner import ProcessRunner
from ..core.types import ProcessResult

GoCommand = Sequence[str]

CONTAINER_SOURCE_ROOT = '/usr/src/myapp'


class GoExecutor:
    """Strategy interface: run a sequence of go commands in a chaincode dir"""

    name = "abstract"

    def __init__(self, runner: ProcessRunner, config: FabkitConfig):
        self.runner = runner
        self.config = config

    def run(self, chaincode_name: str, commands: Sequence[GoCommand],
            env: Optional[Dict[str, str]] = None) -> List[ProcessResult]:
        raise NotImplementedError


class LocalGoExecutor(GoExecutor):
    """Runs go commands with the local toolchain, stopping at the first failure"""

    name = "local"

    def run(self, chaincode_name, commands, env=None):
        workdir = Path(self.config.chaincode_path) / chaincode_name
        results = []
        for command in commands:
            result = self.runner.run(command[0], command[1:], env=env, workdir=workdir,
                                     timeout=self.config.command_timeout)
            results.append(result)
            if not result.ok:
                break
        return results


class DockerGoExecutor(GoExecutor):
    """Runs go commands in one golang container with the chaincode mounted"""

    name = "docker"

    def run(self, chaincode_name, commands, env=None):
        script = " && ".join(shlex.join(command) for command in commands)
        args = [
            'run', '--rm',
            '-v', f"{self.config.chaincode_path}:{CONTAINER_SOURCE_ROOT}",
            '-w', f"{CONTAINER_SOURCE_ROOT}/{chaincode_name}",
        ]
        for key, value in (env or {}).items():
            args += ['-e', f"{key}={value}"]
        args += [self.config.golang_image, 'sh', '-c', script]
        return [self.runner.run('docker', args, timeout=self.config.command_timeout)]


class ChaincodeToolchain:
    """Test, build, dependency and packaging steps for chaincode"""

    def __init__(self, runner: ProcessRunner, config: FabkitConfig,
                 executor: Optional[GoExecutor] = None):
        self.runner = runner
        self.config = config
        self.logger = logging.getLogger(__name__)
        self._executor = executor

    @property
    def executor(self) -> GoExecutor:
        """Local Go when available, the dockerised toolchain otherwise"""
        if self._executor is None:
            if self.runner.which('go'):
                self._executor = LocalGoExecutor(self.runner, self.config)
            else:
                self.logger.warning("Go binary is missing in your PATH. Running the dockerised version...")
                self._executor = DockerGoExecutor(self.runner, self.config)
        return self._executor

    def chaincode_dir(self, chaincode_name: str) -> Path:
        if not chaincode_name:
            raise ValidationError("Chaincode name missing")
        path = Path(self.config.chaincode_path) / chaincode_name
        if not path.is_dir():
            raise ValidationError(f"{path} path does not exist")
        return path

    def test(self, chaincode_name: str) -> List[ProcessResult]:
        """Run the chaincode unit tests"""
        self.chaincode_dir(chaincode_name)
        self.logger.info(f"Unit testing chaincode {chaincode_name}")
        return self.executor.run(
            chaincode_name,
            [['go', 'test', './...', '-v']],
            env={'CGO_ENABLED': '0', 'CORE_CHAINCODE_LOGGING_LEVEL': 'debug'},
        )

    def build(self, chaincode_name: str) -> List[ProcessResult]:
        """Compile the chaincode and discard the produced binary"""
        path = self.chaincode_dir(chaincode_name)
        self.logger.info(f"Building chaincode {chaincode_name}")
        results = self.executor.run(
            chaincode_name,
            [['go', 'build', '-a', '-installsuffix', 'nocgo', './...']],
            env={'CGO_ENABLED': '0'},
        )
        binary = path / chaincode_name
        if binary.is_file():
            binary.unlink()
        return results

    def dep_install(self, chaincode_name: str) -> List[ProcessResult]:
        """Install all go modules as vendor, initializing go.mod if needed"""
        return self._init_go_mod(chaincode_name, ['go', 'get', './...'])

    def dep_update(self, chaincode_name: str) -> List[ProcessResult]:
        """Update go modules to the latest patch versions and re-vendor"""
        return self._init_go_mod(chaincode_name, ['go', 'get', '-u=patch', './...'])

    def _init_go_mod(self, chaincode_name: str, get_command: List[str]) -> List[ProcessResult]:
        path = self.chaincode_dir(chaincode_name)
        commands = []
        if not (path / "go.mod").is_file():
            commands.append(['go', 'mod', 'init', chaincode_name])
        shutil.rmtree(path / "vendor", ignore_errors=True)
        commands += [get_command, ['go', 'mod', 'tidy'], ['go', 'mod', 'vendor']]
        self.logger.info(f"Resolving dependencies of chaincode {chaincode_name}")
        return self.executor.run(chaincode_name, commands)

    def pack(self, chaincode_name: str) -> Path:
        """
        Create a zip archive of the chaincode and its vendored modules.

        Returns:
            Path of the archive, dist/<name>.<unix timestamp>.zip
        """
        path = self.chaincode_dir(chaincode_name)
        failed = next((r for r in self.dep_install(chaincode_name) if not r.ok), None)
        if failed is not None:
            raise OrchestrationError("dep_install", result=failed)

        dist = Path(self.config.dist_path)
        dist.mkdir(parents=True, exist_ok=True)
        base_name = dist / f"{chaincode_name}.{int(time.time())}"
        archive = shutil.make_archive(str(base_name), 'zip', root_dir=str(path))
        self.logger.info(f"Chaincode archive created in: {archive}")
        return Path(archive)
