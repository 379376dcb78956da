"""
Hyperledger Fabric command invocations for fabkit

Builds and runs the concrete tool calls the orchestrator sequences:
- cryptogen / configtxgen through the fabric-tools image
- peer channel and chaincode commands inside the CLI container
- fabric-ca-client registration and enrollment through the CA image

Every method validates its arguments before touching the Process Runner,
so a missing argument raises ValidationError with zero process calls.
"""

import json
import logging
import shutil
from pathlib import Path
from typing import Dict, List, Optional, Sequence

from ..core.config import FabkitConfig, ORDERER_SYSTEM_CHANNEL
from ..core.errors import ValidationError
from ..core.process_runner import ProcessRunner
from ..core.types import ProcessResult


def require_args(**named):
    """Raise ValidationError for the first argument that is None or empty"""
    for label, value in named.items():
        if value is None or (isinstance(value, str) and not value.strip()):
            raise ValidationError(f"{label.replace('_', ' ').capitalize()} missing")


def require_peer(org, peer):
    """Validate an org/peer pair as used in peer<peer>.org<org> host names"""
    require_args(org=org, peer=peer)
    try:
        org, peer = int(org), int(peer)
    except (TypeError, ValueError):
        raise ValidationError(f"Org and peer must be integers, got org={org} peer={peer}") from None
    if org < 1 or peer < 0:
        raise ValidationError(f"Invalid org{org} peer{peer}: org starts at 1, peer at 0")
    return org, peer


def parse_request(request: str) -> Dict:
    """Validate a chaincode request of the form {"Args": ["fn", "arg", ...]}"""
    require_args(request=request)
    try:
        payload = json.loads(request)
    except json.JSONDecodeError as e:
        raise ValidationError(f"Request is not valid JSON: {e}") from e
    if not isinstance(payload, dict) or not isinstance(payload.get('Args'), list):
        raise ValidationError('Request must be in the format {"Args":["function","arg1",...]}')
    return payload


class FabricCommands:
    """Fabric toolchain calls executed through the Process Runner"""

    def __init__(self, runner: ProcessRunner, config: FabkitConfig):
        self.runner = runner
        self.config = config
        self.logger = logging.getLogger(__name__)

    # Generic docker helpers

    def docker_run(self, image: str, command: Sequence[str],
                   volumes: Optional[Dict[str, str]] = None,
                   env: Optional[Dict[str, str]] = None,
                   workdir: Optional[str] = None) -> ProcessResult:
        """Run a one-off container with `docker run --rm`"""
        args: List[str] = ['run', '--rm']
        for host_path, container_path in (volumes or {}).items():
            args += ['-v', f"{host_path}:{container_path}"]
        for key, value in (env or {}).items():
            args += ['-e', f"{key}={value}"]
        if workdir:
            args += ['-w', workdir]
        args.append(image)
        args += list(command)
        return self.runner.run('docker', args, timeout=self.config.command_timeout)

    def peer_exec(self, peer_args: Sequence[str], org: int, peer: int) -> ProcessResult:
        """Run a peer CLI command in the CLI container as the given org/peer"""
        args: List[str] = ['exec']
        for key, value in self.config.peer_env(org, peer).items():
            args += ['-e', f"{key}={value}"]
        args.append(self.config.cli_container)
        args.append('peer')
        args += list(peer_args)
        return self.runner.run('docker', args, timeout=self.config.command_timeout)

    # Artifact generation

    def generate_cryptos(self, config_path, cryptos_path) -> ProcessResult:
        """
        Generate crypto material for every organization with cryptogen.

        Args:
            config_path: Directory holding crypto-config.yaml
            cryptos_path: Output directory for the certificates and keys
        """
        require_args(config_path=config_path, cryptos_path=cryptos_path)
        self.logger.info(f"Generating cryptos from {config_path} into {cryptos_path}")
        return self.docker_run(
            self.config.tools_image,
            ['cryptogen', 'generate', '--config=/crypto-config.yaml', '--output=/crypto-config'],
            volumes={
                f"{config_path}/crypto-config.yaml": '/crypto-config.yaml',
                str(cryptos_path): '/crypto-config',
            },
        )

    def share_cryptos(self, cryptos_path, shared_path):
        """Copy crypto material to the folder client applications read from"""
        require_args(cryptos_path=cryptos_path, shared_path=shared_path)
        shared_path = Path(shared_path)
        if shared_path.exists():
            shutil.rmtree(shared_path)
        shared_path.parent.mkdir(parents=True, exist_ok=True)
        shutil.copytree(cryptos_path, shared_path)
        self.logger.info(f"Crypto material copied to {shared_path}")

    def generate_genesis(self, base_path, config_path, cryptos_path,
                         network_profile) -> ProcessResult:
        """Generate and inspect the genesis block of the ordering service"""
        require_args(base_path=base_path, config_path=config_path,
                     crypto_material_path=cryptos_path, network_profile=network_profile)
        channel_dir = Path(base_path) / "channels" / ORDERER_SYSTEM_CHANNEL
        block = f"/channels/{ORDERER_SYSTEM_CHANNEL}/genesis_block.pb"
        self.logger.info(f"Generating genesis block with profile {network_profile} in {channel_dir}")
        script = (
            f"configtxgen -profile {network_profile} -channelID {ORDERER_SYSTEM_CHANNEL} "
            f"-outputBlock {block} -configPath / && "
            f"configtxgen -inspectBlock {block} -configPath /"
        )
        return self.docker_run(
            self.config.tools_image,
            ['bash', '-c', script],
            volumes=self._configtx_volumes(config_path, channel_dir, ORDERER_SYSTEM_CHANNEL, cryptos_path),
            env={'FABRIC_CFG_PATH': '/'},
        )

    def generate_channeltx(self, channel_name, base_path, config_path, cryptos_path,
                           network_profile, channel_profile, org_msp) -> List[ProcessResult]:
        """
        Generate the channel creation transaction and the anchor peer update.

        Stops after the first failing command; the returned list ends with
        the failed result in that case.
        """
        require_args(channel_name=channel_name, base_path=base_path, config_path=config_path,
                     crypto_material_path=cryptos_path, network_profile=network_profile,
                     channel_profile=channel_profile, msp=org_msp)
        channel_dir = Path(base_path) / "channels" / channel_name
        volumes = self._configtx_volumes(config_path, channel_dir, channel_name, cryptos_path)
        channel_tx = f"/channels/{channel_name}/{channel_name}_tx.pb"
        anchors_tx = f"/channels/{channel_name}/{org_msp}_anchors_tx.pb"
        self.logger.info(f"Generating channel config for {channel_name} with profile {channel_profile}")

        results = [self.docker_run(
            self.config.tools_image,
            ['bash', '-c', (
                f"configtxgen -profile {channel_profile} -outputCreateChannelTx {channel_tx} "
                f"-channelID {channel_name} -configPath / && "
                f"configtxgen -inspectChannelCreateTx {channel_tx} -configPath /"
            )],
            volumes=volumes,
            env={'FABRIC_CFG_PATH': '/'},
        )]
        if not results[-1].ok:
            return results

        results.append(self.docker_run(
            self.config.tools_image,
            ['configtxgen', '-profile', channel_profile, '-outputAnchorPeersUpdate', anchors_tx,
             '-channelID', channel_name, '-asOrg', org_msp, '-configPath', '/'],
            volumes=volumes,
            env={'FABRIC_CFG_PATH': '/'},
        ))
        return results

    @staticmethod
    def _configtx_volumes(config_path, channel_dir: Path, channel_name: str, cryptos_path) -> Dict[str, str]:
        return {
            f"{config_path}/configtx.yaml": '/configtx.yaml',
            str(channel_dir): f"/channels/{channel_name}",
            str(cryptos_path): '/crypto-config',
        }

    # Channel lifecycle

    def create_channel(self, channel_name, org, peer) -> ProcessResult:
        require_args(channel_name=channel_name)
        org, peer = require_peer(org, peer)
        self.logger.info(f"Creating channel {channel_name} with org{org} peer{peer}")
        return self.peer_exec([
            'channel', 'create',
            '-o', self.config.orderer_address,
            '-c', channel_name,
            '-f', self.config.remote_channel_file(channel_name, f"{channel_name}_tx.pb"),
            '--outputBlock', self.config.remote_channel_file(channel_name, f"{channel_name}.block"),
            *self.config.tls_args(),
        ], org, peer)

    def join_channel(self, channel_name, org, peer) -> ProcessResult:
        require_args(channel_name=channel_name)
        org, peer = require_peer(org, peer)
        self.logger.info(f"Joining channel {channel_name} with org{org} peer{peer}")
        return self.peer_exec([
            'channel', 'join',
            '-b', self.config.remote_channel_file(channel_name, f"{channel_name}.block"),
            *self.config.tls_args(),
        ], org, peer)

    def update_channel(self, channel_name, org_msp, org, peer) -> ProcessResult:
        """Submit the anchor peer update of `org_msp` on a channel"""
        require_args(channel_name=channel_name, org_msp=org_msp)
        org, peer = require_peer(org, peer)
        self.logger.info(f"Updating anchors on {channel_name} with org{org} peer{peer}")
        return self.peer_exec([
            'channel', 'update',
            '-o', self.config.orderer_address,
            '-c', channel_name,
            '-f', self.config.remote_channel_file(channel_name, f"{org_msp}_anchors_tx.pb"),
            *self.config.tls_args(),
        ], org, peer)

    # Chaincode lifecycle

    def install_chaincode(self, chaincode_name, chaincode_version, chaincode_path,
                          org=1, peer=0) -> ProcessResult:
        require_args(chaincode_name=chaincode_name, chaincode_version=chaincode_version,
                     chaincode_path=chaincode_path)
        org, peer = require_peer(org, peer)
        remote_path = f"{self.config.chaincode_remote_path}/{chaincode_path}"
        self.logger.info(
            f"Installing chaincode {chaincode_name} version {chaincode_version} from path {remote_path}"
        )
        return self.peer_exec([
            'chaincode', 'install',
            '-o', self.config.orderer_address,
            '-n', chaincode_name,
            '-v', chaincode_version,
            '-p', remote_path,
            *self.config.tls_args(),
        ], org, peer)

    def instantiate_chaincode(self, chaincode_name, chaincode_version, channel_name,
                              org=1, peer=0) -> ProcessResult:
        require_args(chaincode_name=chaincode_name, chaincode_version=chaincode_version,
                     channel_name=channel_name)
        org, peer = require_peer(org, peer)
        self.logger.info(
            f"Instantiating chaincode {chaincode_name} version {chaincode_version} into channel {channel_name}"
        )
        return self.peer_exec([
            'chaincode', 'instantiate',
            '-o', self.config.orderer_address,
            '-n', chaincode_name,
            '-v', chaincode_version,
            '-C', channel_name,
            '-c', '{"Args":[]}',
            *self.config.tls_args(),
        ], org, peer)

    def upgrade_chaincode(self, chaincode_name, chaincode_version, channel_name,
                          org=1, peer=0) -> ProcessResult:
        """Upgrade an instantiated chaincode; the new version must be installed first"""
        require_args(chaincode_name=chaincode_name, chaincode_version=chaincode_version,
                     channel_name=channel_name)
        org, peer = require_peer(org, peer)
        self.logger.info(
            f"Upgrading chaincode {chaincode_name} to version {chaincode_version} into channel {channel_name}"
        )
        return self.peer_exec([
            'chaincode', 'upgrade',
            '-o', self.config.orderer_address,
            '-n', chaincode_name,
            '-v', chaincode_version,
            '-C', channel_name,
            '-c', '{"Args":[]}',
            *self.config.tls_args(),
        ], org, peer)

    def invoke(self, channel_name, chaincode_name, request, org=1, peer=0) -> ProcessResult:
        """Submit a ledger-mutating transaction"""
        require_args(channel_name=channel_name, chaincode_name=chaincode_name)
        parse_request(request)
        org, peer = require_peer(org, peer)
        return self.peer_exec([
            'chaincode', 'invoke',
            '-o', self.config.orderer_address,
            '-C', channel_name,
            '-n', chaincode_name,
            '-c', request,
            *self.config.tls_args(),
        ], org, peer)

    def query(self, channel_name, chaincode_name, request, org=1, peer=0) -> ProcessResult:
        """Evaluate a read-only chaincode function"""
        require_args(channel_name=channel_name, chaincode_name=chaincode_name)
        parse_request(request)
        org, peer = require_peer(org, peer)
        return self.peer_exec([
            'chaincode', 'query',
            '-C', channel_name,
            '-n', chaincode_name,
            '-c', request,
        ], org, peer)

    # Certificate authority

    def register_user(self, user, password, attributes: str = "") -> ProcessResult:
        """Register a new identity with the CA using the admin identity"""
        require_args(user=user, password=password)
        self._prepare_user_msp(user)
        org = self.config.fabric_org
        command = [
            'fabric-ca-client', 'register',
            '--home', '/crypto-config',
            '--mspdir', f"{org}/users/admin/msp",
            '--url', f"https://{self.config.ca_host}:{self.config.ca_port}",
            '--tls.certfiles', f"{org}/ca/{self.config.ca_cert}",
            '--id.name', user,
            '--id.secret', password,
            '--id.affiliation', self.config.member_affiliation,
            '--id.type', 'user',
        ]
        if attributes:
            command += ['--id.attrs', attributes]
        self.logger.info(f"Registering user {user} with CA {self.config.ca_host}:{self.config.ca_port}")
        return self._ca_run(command)

    def enroll_user(self, user, password) -> ProcessResult:
        """Enroll an identity and store its MSP under the org users folder"""
        require_args(user=user, password=password)
        self._prepare_user_msp(user)
        org = self.config.fabric_org
        command = [
            'fabric-ca-client', 'enroll',
            '--home', '/crypto-config',
            '--mspdir', f"{org}/users/{user}/msp",
            '--url', f"https://{user}:{password}@{self.config.ca_host}:{self.config.ca_port}",
            '--tls.certfiles', f"{org}/ca/{self.config.ca_cert}",
        ]
        self.logger.info(f"Enrolling user {user} with CA {self.config.ca_host}:{self.config.ca_port}")
        result = self._ca_run(command)
        if result.ok:
            self._rename_signcert(user)
        return result

    def _rename_signcert(self, user: str):
        """Give the enrolled certificate the conventional <user>@<org>-cert.pem name"""
        org = self.config.fabric_org
        signcerts = Path(self.config.cryptos_path) / org / "users" / user / "msp" / "signcerts"
        target = signcerts / f"{user}@{org}-cert.pem"
        issued = [cert for cert in sorted(signcerts.glob("*.pem")) if cert != target]
        if issued:
            issued[0].replace(target)
            self.logger.info(f"Renamed user certificate to {target.name}")

    def _prepare_user_msp(self, user: str):
        org_dir = Path(self.config.cryptos_path) / self.config.fabric_org
        (org_dir / "users" / user / "msp").mkdir(parents=True, exist_ok=True)
        ca_dir = org_dir / "ca"
        if not ca_dir.is_dir():
            ca_dir.mkdir(parents=True)
            ca_cert = Path(self.config.root) / self.config.ca_cert
            if ca_cert.is_file():
                shutil.move(str(ca_cert), str(ca_dir / self.config.ca_cert))

    def _ca_run(self, command: List[str]) -> ProcessResult:
        return self.docker_run(
            f"{self.config.ca_image}:{self.config.fabric_version}",
            command,
            volumes={str(self.config.cryptos_path): '/crypto-config'},
        )
