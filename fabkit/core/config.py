"""
Configuration for fabkit.

Settings are loaded once per process from built-in defaults, an optional
``.env`` file and the process environment (highest priority), then
frozen. Components never read the environment themselves; they receive
a FabkitConfig through the run Context.
"""

import os
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

from dotenv import dotenv_values

from .errors import ValidationError

ENV_PREFIX = "FABKIT_"

ORDERER_SYSTEM_CHANNEL = "orderer-system-channel"

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}


@dataclass(frozen=True)
class FabkitConfig:
    """Immutable configuration snapshot for one fabkit invocation"""

    # Local filesystem layout
    root: Path = field(default_factory=Path.cwd)
    base_path: Optional[Path] = None
    config_path: Optional[Path] = None
    cryptos_path: Optional[Path] = None
    cryptos_shared_path: Optional[Path] = None
    data_path: Optional[Path] = None
    chaincode_path: Optional[Path] = None
    dist_path: Optional[Path] = None
    explorer_path: Optional[Path] = None
    compose_file: Optional[Path] = None

    # Paths as seen from inside the CLI container
    channels_config_path: str = "/etc/hyperledger/channels"
    cryptos_remote_path: str = "/etc/hyperledger/crypto-config"
    chaincode_remote_path: str = "chaincode"

    # Network identifiers
    domain: str = "example.com"
    channel_name: str = "mychannel"
    chaincode_name: str = "mychaincode"
    chaincode_version: str = "1.0"
    org_msp: str = "Org1MSP"
    orderer_address: str = "orderer.example.com:7050"
    tls_enabled: bool = False
    orderer_ca: str = ""
    configtx_profile_network: str = "OneOrgOrdererGenesis"
    configtx_profile_channel: str = "OneOrgChannel"

    # Docker
    fabric_version: str = "1.4.4"
    fabric_thirdparty_image_version: str = "0.4.18"
    golang_docker_image: str = "golang"
    golang_docker_tag: str = "1.13"
    docker_network: str = "fabkit"
    cli_container: str = "cli"
    explorer_url: str = "http://localhost:8090"

    # Certificate authority
    ca_host: str = "localhost"
    ca_port: int = 7054
    ca_image: str = "hyperledger/fabric-ca"
    ca_cert: str = "ca-cert.pem"
    fabric_org: str = "org1.example.com"
    member_affiliation: str = "org1"

    # Runtime behaviour
    command_timeout: Optional[float] = None
    log_level: str = "INFO"

    def __post_init__(self):
        # Frozen dataclass: derived defaults must go through object.__setattr__
        root = Path(self.root)
        object.__setattr__(self, 'root', root)
        base = Path(self.base_path) if self.base_path else root / "network"
        defaults = {
            'base_path': base,
            'config_path': base / "config",
            'cryptos_path': base / "crypto-config",
            'cryptos_shared_path': base / "shared" / "crypto-config",
            'data_path': base / "data",
            'chaincode_path': root / "chaincode",
            'dist_path': root / "dist",
            'explorer_path': root / "explorer",
            'compose_file': base / "docker-compose.yaml",
        }
        for name, default in defaults.items():
            value = getattr(self, name)
            object.__setattr__(self, name, Path(value) if value else default)

        if not self.orderer_ca:
            orderer_host = self.orderer_address.split(':')[0]
            object.__setattr__(self, 'orderer_ca', (
                f"{self.cryptos_remote_path}/ordererOrganizations/{self.domain}/orderers/"
                f"{orderer_host}/msp/tlscacerts/tlsca.{self.domain}-cert.pem"
            ))

    @classmethod
    def load(cls, env_file: Optional[os.PathLike] = ".env",
             environ: Optional[Mapping[str, str]] = None,
             **overrides: Any) -> 'FabkitConfig':
        """
        Build a configuration from a .env file and the environment.

        Args:
            env_file: Path of a dotenv file; ignored when it does not exist
            environ: Environment mapping, defaults to os.environ
            overrides: Explicit field values taking precedence over both

        Returns:
            Frozen FabkitConfig
        """
        values: Dict[str, Optional[str]] = {}
        if env_file and Path(env_file).is_file():
            values.update(dotenv_values(env_file))
        values.update(os.environ if environ is None else environ)

        kwargs: Dict[str, Any] = {}
        for f in fields(cls):
            raw = values.get(ENV_PREFIX + f.name.upper())
            if raw is None or raw == "":
                continue
            try:
                kwargs[f.name] = _coerce(f.name, raw)
            except ValueError as e:
                raise ValidationError(f"Invalid value for {ENV_PREFIX}{f.name.upper()}: {e}") from e
        kwargs.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**kwargs)

    def with_overrides(self, **changes: Any) -> 'FabkitConfig':
        """Return a copy with the given fields replaced"""
        return replace(self, **changes)

    def validate(self) -> List[str]:
        """Validate configuration and return list of errors"""
        errors = []

        if not self.channel_name:
            errors.append("channel_name must not be empty")
        if not self.chaincode_name:
            errors.append("chaincode_name must not be empty")
        if not self.org_msp:
            errors.append("org_msp must not be empty")
        if ':' not in self.orderer_address:
            errors.append("orderer_address must be in host:port form")
        if self.ca_port <= 0 or self.ca_port > 65535:
            errors.append("ca_port must be between 1 and 65535")
        if self.command_timeout is not None and self.command_timeout <= 0:
            errors.append("command_timeout must be positive")

        return errors

    # Derived locations

    @property
    def channels_path(self) -> Path:
        return self.base_path / "channels"

    @property
    def genesis_dir(self) -> Path:
        return self.channel_dir(ORDERER_SYSTEM_CHANNEL)

    def channel_dir(self, channel_name: str) -> Path:
        return self.channels_path / channel_name

    def remote_channel_file(self, channel_name: str, file_name: str) -> str:
        return f"{self.channels_config_path}/{channel_name}/{file_name}"

    def fabric_image(self, name: str) -> str:
        return f"hyperledger/fabric-{name}:{self.fabric_version}"

    @property
    def tools_image(self) -> str:
        return self.fabric_image("tools")

    @property
    def golang_image(self) -> str:
        return f"{self.golang_docker_image}:{self.golang_docker_tag}"

    # Peer identities, following the cryptogen directory convention

    def org_domain(self, org: int) -> str:
        return f"org{org}.{self.domain}"

    def peer_host(self, org: int, peer: int) -> str:
        return f"peer{peer}.{self.org_domain(org)}"

    def peer_address(self, org: int, peer: int) -> str:
        return f"{self.peer_host(org, peer)}:7051"

    def _remote_org_dir(self, org: int) -> str:
        return f"{self.cryptos_remote_path}/peerOrganizations/{self.org_domain(org)}"

    def peer_msp_path(self, org: int) -> str:
        """Admin MSP of an org as mounted in the CLI container"""
        return f"{self._remote_org_dir(org)}/users/Admin@{self.org_domain(org)}/msp"

    def peer_tls_root(self, org: int, peer: int) -> str:
        return f"{self._remote_org_dir(org)}/peers/{self.peer_host(org, peer)}/tls"

    def peer_env(self, org: int, peer: int) -> Dict[str, str]:
        """CORE_PEER_* environment selecting the identity of one peer"""
        env = {
            'CORE_PEER_ADDRESS': self.peer_address(org, peer),
            'CORE_PEER_LOCALMSPID': f"Org{org}MSP",
            'CORE_PEER_MSPCONFIGPATH': self.peer_msp_path(org),
            'CORE_PEER_TLS_ENABLED': str(self.tls_enabled).lower(),
        }
        if self.tls_enabled:
            tls_dir = self.peer_tls_root(org, peer)
            env.update({
                'CORE_PEER_TLS_ROOTCERT_FILE': f"{tls_dir}/ca.crt",
                'CORE_PEER_TLS_CERT_FILE': f"{tls_dir}/server.crt",
                'CORE_PEER_TLS_KEY_FILE': f"{tls_dir}/server.key",
            })
        return env

    def tls_args(self) -> List[str]:
        if not self.tls_enabled:
            return []
        return ['--tls', 'true', '--cafile', self.orderer_ca]


def _coerce(name: str, raw: str) -> Any:
    """Convert a raw environment string into the type of field `name`"""
    if name == 'tls_enabled':
        lowered = raw.strip().lower()
        if lowered in _TRUE_VALUES:
            return True
        if lowered in _FALSE_VALUES:
            return False
        raise ValueError(f"{ENV_PREFIX}TLS_ENABLED must be a boolean, got '{raw}'")
    if name == 'ca_port':
        return int(raw)
    if name == 'command_timeout':
        return float(raw)
    return raw
