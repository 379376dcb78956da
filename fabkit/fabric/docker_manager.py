"""
Docker management for fabkit networks

Wraps everything the orchestrator needs from the Docker daemon:
- Image pulls and tagging through the docker SDK
- Bridge network creation
- Compose up/down through the Process Runner
- Cleanup of leftover Fabric and chaincode containers and images
- Readiness polling of the blockchain explorer over HTTP
"""

import re
import time
import logging
from contextlib import contextmanager
from typing import Dict, List, Optional

import docker
import requests

from ..core.config import FabkitConfig
from ..core.errors import DependencyMissingError
from ..core.process_runner import ProcessRunner
from ..core.types import ProcessResult

FABRIC_IMAGES = ('peer', 'orderer', 'ca', 'ccenv', 'tools')
THIRD_PARTY_IMAGES = ('couchdb', 'kafka', 'zookeeper')

# Containers created by this tool or by peers for chaincode
LEFTOVER_IMAGE_PATTERN = re.compile(r'fabric|dev-')
CHAINCODE_NAME_PREFIX = 'dev-'
EXPLORER_IMAGE = 'hyperledger/explorer'


class FabricDockerManager:
    """Manages Hyperledger Fabric Docker images, networks and containers"""

    def __init__(self, config: FabkitConfig, runner: ProcessRunner,
                 client: Optional[docker.DockerClient] = None):
        self.config = config
        self.runner = runner
        self._client = client
        self.logger = logging.getLogger(__name__)

    @property
    def client(self) -> docker.DockerClient:
        """Docker SDK client, created on first use"""
        if self._client is None:
            try:
                self._client = docker.from_env()
            except docker.errors.DockerException as e:
                raise DependencyMissingError(
                    "docker", "Start the Docker daemon or set DOCKER_HOST"
                ) from e
        return self._client

    @contextmanager
    def _daemon(self, action: str):
        """Report daemon failures as DependencyMissingError naming the action"""
        try:
            yield
        except docker.errors.DockerException as e:
            raise DependencyMissingError("docker", f"Docker failed to {action}: {e}") from e

    def check_dependencies(self):
        """Ensure docker and docker-compose are installed"""
        self.runner.require("docker", "Install Docker: https://docs.docker.com/get-docker/")
        self.runner.require("docker-compose", "Install Docker Compose: https://docs.docker.com/compose/install/")

    # Images

    def required_images(self) -> List[str]:
        images = [self.config.golang_image]
        images += [self.config.fabric_image(name) for name in FABRIC_IMAGES]
        images += [
            f"hyperledger/fabric-{name}:{self.config.fabric_thirdparty_image_version}"
            for name in THIRD_PARTY_IMAGES
        ]
        return images

    def pull_images(self) -> List[str]:
        """
        Pull the Go image, the Fabric images and the third-party images.

        Fabric and third-party images are also tagged as latest.

        Returns:
            List of pulled image references
        """
        pulled = []
        for image in self.required_images():
            repository, tag = image.rsplit(':', 1)
            self.logger.info(f"Pulling image {image}")
            try:
                pulled_image = self.client.images.pull(repository, tag=tag)
            except docker.errors.APIError as e:
                raise DependencyMissingError(image, f"Docker pull failed: {e}") from e
            if repository.startswith('hyperledger/fabric-'):
                pulled_image.tag(repository, tag='latest')
            pulled.append(image)
        return pulled

    # Networks and compose

    def ensure_network(self):
        """Create the docker bridge network unless it exists"""
        with self._daemon(f"set up network {self.config.docker_network}"):
            try:
                network = self.client.networks.get(self.config.docker_network)
                self.logger.info(f"Found existing network: {self.config.docker_network}")
            except docker.errors.NotFound:
                network = self.client.networks.create(self.config.docker_network, driver="bridge")
                self.logger.info(f"Created network: {self.config.docker_network}")
        return network

    def compose_up(self, compose_file=None, force_recreate: bool = False) -> ProcessResult:
        compose_file = compose_file or self.config.compose_file
        args = ['-f', str(compose_file), 'up', '-d']
        if force_recreate:
            args.append('--force-recreate')
        return self.runner.run('docker-compose', args, timeout=self.config.command_timeout)

    def compose_down(self, compose_file=None) -> ProcessResult:
        compose_file = compose_file or self.config.compose_file
        return self.runner.run('docker-compose', ['-f', str(compose_file), 'down'],
                               timeout=self.config.command_timeout)

    # Inspection

    def _running_images(self) -> List[str]:
        images = []
        with self._daemon("list containers"):
            for container in self.client.containers.list():
                images.extend(container.image.tags or [container.attrs.get('Config', {}).get('Image', '')])
        return images

    def is_fabric_running(self) -> bool:
        return any('fabric' in image for image in self._running_images())

    def is_explorer_running(self) -> bool:
        return any(EXPLORER_IMAGE in image for image in self._running_images())

    # Cleanup

    def cleanup_leftovers(self) -> Dict[str, int]:
        """
        Remove leftover Fabric containers, chaincode containers and images.

        Removal failures are logged and skipped: a container or image that
        disappears or is still in use does not fail the teardown.
        Failing to list containers or images raises DependencyMissingError.

        Returns:
            Counts of removed containers and images
        """
        self.logger.info("Cleaning docker leftovers containers and images")
        removed = {'containers': 0, 'images': 0}

        with self._daemon("list containers"):
            containers = self.client.containers.list(all=True)
        for container in containers:
            image_name = container.attrs.get('Config', {}).get('Image', '')
            if LEFTOVER_IMAGE_PATTERN.search(image_name) or container.name.startswith(CHAINCODE_NAME_PREFIX):
                try:
                    container.remove(force=True)
                    removed['containers'] += 1
                except docker.errors.APIError as e:
                    self.logger.warning(f"Error removing container {container.name}: {e}")

        with self._daemon("list images"):
            leftovers = {image.id: image for image in self.client.images.list(filters={'dangling': True})}
            images = self.client.images.list()
        for image in images:
            if any(tag.startswith(CHAINCODE_NAME_PREFIX) for tag in image.tags):
                leftovers[image.id] = image
        for image_id in leftovers:
            try:
                self.client.images.remove(image_id, force=True)
                removed['images'] += 1
            except docker.errors.APIError as e:
                self.logger.warning(f"Error removing image {image_id[:19]}: {e}")

        return removed

    # Explorer

    def wait_for_http(self, url: str, timeout: float = 60.0, interval: float = 2.0):
        """Wait until `url` answers with HTTP 200 or raise DependencyMissingError"""
        self.logger.info(f"Waiting for {url} to be ready...")

        start_time = time.time()
        while time.time() - start_time < timeout:
            try:
                response = requests.get(url, timeout=5)
                if response.status_code == 200:
                    self.logger.info(f"{url} is ready")
                    return
            except requests.exceptions.RequestException:
                pass

            time.sleep(interval)

        raise DependencyMissingError(url, f"Service did not become ready within {timeout}s")
