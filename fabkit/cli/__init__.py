"""
fabkit CLI Tool

Command-line interface for running a Hyperledger Fabric development
network. Verbs are grouped by the component they drive:

    network   install | start | restart | stop | explore | status
    channel   create | join | update
    generate  cryptos | genesis | channeltx
    chaincode test | build | pack | install | instantiate | upgrade | query | invoke
    dep       install | update
    ca        register | enroll
    benchmark load

Configuration comes from FABKIT_* environment variables and an optional
.env file, loaded once when the CLI starts.
"""

import json
import logging
import sys
from typing import List, Optional, Sequence

import click

from ..core.artifact_store import ArtifactStore
from ..core.config import FabkitConfig
from ..core.context import Context
from ..core.errors import FabkitError, OperationCancelled, OrchestrationError, ValidationError
from ..core.process_runner import ProcessRunner
from ..core.types import OperationOutcome, PeerTarget, ProcessResult
from ..engine.benchmark import BenchmarkRunner
from ..engine.lifecycle import LifecycleOrchestrator
from ..fabric.commands import FabricCommands, require_args
from ..fabric.docker_manager import FabricDockerManager
from ..fabric.operations import (
    build_network_graph, build_upgrade_graph, channel_artifact, register_artifacts, UPGRADE_TARGETS,
)
from ..fabric.toolchain import ChaincodeToolchain

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


class Runtime:
    """Components wired for one invocation"""

    def __init__(self, config: FabkitConfig, dry_run: bool = False, assume_yes: bool = False):
        self.config = config
        self.assume_yes = assume_yes
        self.runner = ProcessRunner(default_timeout=config.command_timeout, dry_run=dry_run)
        self.commands = FabricCommands(self.runner, config)
        self.docker = FabricDockerManager(config, self.runner)
        self.toolchain = ChaincodeToolchain(self.runner, config)
        self.store = register_artifacts(ArtifactStore(), config)
        # Also attaches the regenerate actions of the generated artifacts
        self.graph = build_network_graph(self.commands, self.docker, self.toolchain, self.store)

    def context(self, target: Optional[PeerTarget] = None) -> Context:
        return Context(self.config, target=target or PeerTarget())

    def ask(self, question: str, default: bool = False) -> bool:
        if self.assume_yes:
            return True
        return click.confirm(question, default=default)

    def orchestrator(self, target: Optional[PeerTarget] = None) -> LifecycleOrchestrator:
        return LifecycleOrchestrator(
            self.context(target), self.graph, self.docker, self.store,
            confirm=lambda question, default: click.confirm(question, default=default),
            assume_yes=self.assume_yes,
        )


def runtime(ctx: click.Context, **overrides) -> Runtime:
    """Build the runtime, applying per-command config overrides"""
    settings = ctx.find_root().obj
    config = settings['config']
    changes = {k: v for k, v in overrides.items() if v is not None}
    if changes:
        config = config.with_overrides(**changes)
    return Runtime(config, dry_run=settings['dry_run'], assume_yes=settings['assume_yes'])


# Output helpers

def banner(text: str):
    line = "=" * len(text)
    click.secho(line, fg='cyan')
    click.secho(text, fg='cyan')
    click.secho(line, fg='cyan')


def report_error(error: FabkitError):
    click.secho(f"Error: {error}", fg='red', err=True)
    if isinstance(error, OrchestrationError):
        if error.completed:
            click.secho(f"Completed before failure: {', '.join(error.completed)}", fg='yellow', err=True)
        if error.result is not None and error.result.command:
            click.secho(f"Command: {error.result.command_line()}", fg='red', err=True)


def report_outcomes(outcomes: Sequence[OperationOutcome]):
    for outcome in outcomes:
        if outcome.skipped:
            click.secho(f"  - {outcome.name}: skipped", fg='yellow')
        else:
            click.secho(f"  - {outcome.name}: {outcome.status.value} ({outcome.duration:.1f}s)", fg='green')


def check(operation: str, results) -> List[ProcessResult]:
    """Raise OrchestrationError for the first failed result of a direct command"""
    if isinstance(results, ProcessResult):
        results = [results]
    for result in results:
        if not result.ok:
            raise OrchestrationError(operation, result=result)
    return list(results)


class FabkitGroup(click.Group):
    """Root group: turns FabkitError and OSError into a reported error and its exit code"""

    def invoke(self, ctx):
        try:
            return super().invoke(ctx)
        except FabkitError as e:
            report_error(e)
            raise click.exceptions.Exit(e.exit_code)
        except OSError as e:
            click.secho(f"Error: {e}", fg='red', err=True)
            raise click.exceptions.Exit(1)


@click.group(cls=FabkitGroup)
@click.option('--env-file', default='.env', type=click.Path(dir_okay=False),
              help='dotenv file with FABKIT_* settings')
@click.option('--log-level', default=None,
              type=click.Choice(['DEBUG', 'INFO', 'WARNING', 'ERROR'], case_sensitive=False),
              help='Logging level (default: FABKIT_LOG_LEVEL or INFO)')
@click.option('--verbose', '-v', is_flag=True, help='Debug logging, including executed commands')
@click.option('--yes', '-y', 'assume_yes', is_flag=True, help='Answer yes to every confirmation')
@click.option('--dry-run', is_flag=True, help='Log external commands instead of running them')
@click.pass_context
def fabkit(ctx, env_file, log_level, verbose, assume_yes, dry_run):
    """fabkit - Hyperledger Fabric development network toolkit"""
    config = FabkitConfig.load(env_file)
    level = 'DEBUG' if verbose else (log_level or config.log_level).upper()
    logging.basicConfig(level=getattr(logging, level, logging.INFO), format=LOG_FORMAT)

    errors = config.validate()
    if errors:
        raise ValidationError("Invalid configuration: " + "; ".join(errors))

    ctx.ensure_object(dict)
    ctx.obj.update({'config': config, 'assume_yes': assume_yes, 'dry_run': dry_run})


# network

@fabkit.group()
def network():
    """Network lifecycle"""


@network.command('install')
@click.pass_context
def network_install(ctx):
    """Install all the dependencies and docker images"""
    banner("Installing Fabric dependencies")
    images = runtime(ctx).orchestrator().install()
    for image in images:
        click.echo(f"  - {image}")
    click.secho(f"{len(images)} images pulled", fg='green')


@network.command('start')
@click.option('--org', default=1, type=int, help='Organization used for channel and chaincode setup')
@click.option('--peer', default=0, type=int, help='Peer used for channel and chaincode setup')
@click.option('--ci', is_flag=True, help='Non-interactive start without chaincode build and test')
@click.pass_context
def network_start(ctx, org, peer, ci):
    """Start the blockchain network and initialize it"""
    banner("Starting Fabric network")
    rt = runtime(ctx)
    rt.docker.check_dependencies()
    outcomes = rt.orchestrator(PeerTarget(org, peer)).start(ci=ci)
    report_outcomes(outcomes)
    click.secho("Fabric network running", fg='green')


@network.command('restart')
@click.pass_context
def network_restart(ctx):
    """Restart a previously running network reusing its data"""
    banner("Restarting Fabric network")
    rt = runtime(ctx)
    rt.docker.check_dependencies()
    report_outcomes(rt.orchestrator().restart())


@network.command('stop')
@click.option('--remove-data/--keep-data', default=None,
              help='Delete or keep the ledger data without asking')
@click.pass_context
def network_stop(ctx, remove_data):
    """Stop the network and remove all the docker containers"""
    banner("Tearing Fabric network down")
    report_outcomes(runtime(ctx).orchestrator().stop(remove_data=remove_data))


@network.command('explore')
@click.pass_context
def network_explore(ctx):
    """Run the blockchain explorer user interface"""
    banner("Starting Blockchain Explorer")
    rt = runtime(ctx)
    rt.docker.check_dependencies()
    report_outcomes(rt.orchestrator().explore())


@network.command('status')
@click.pass_context
def network_status(ctx):
    """Show the lifecycle state of the network"""
    click.echo(runtime(ctx).orchestrator().state().value)


# channel

@fabkit.group()
def channel():
    """Channel lifecycle"""


@channel.command('create')
@click.argument('channel_name', required=False)
@click.argument('org', required=False, default=1, type=int)
@click.argument('peer', required=False, default=0, type=int)
@click.pass_context
def channel_create(ctx, channel_name, org, peer):
    """Create a channel from its channel transaction"""
    banner("Creating channel")
    check('create_channel', runtime(ctx).commands.create_channel(channel_name, org, peer))
    click.secho(f"Channel {channel_name} created", fg='green')


@channel.command('join')
@click.argument('channel_name', required=False)
@click.argument('org', required=False, default=1, type=int)
@click.argument('peer', required=False, default=0, type=int)
@click.pass_context
def channel_join(ctx, channel_name, org, peer):
    """Join a peer to a channel"""
    banner("Joining channel")
    check('join_channel', runtime(ctx).commands.join_channel(channel_name, org, peer))
    click.secho(f"org{org} peer{peer} joined {channel_name}", fg='green')


@channel.command('update')
@click.argument('channel_name', required=False)
@click.argument('org', required=False, default=1, type=int)
@click.argument('peer', required=False, default=0, type=int)
@click.option('--msp', default=None, help='MSP whose anchor peers are updated (default: FABKIT_ORG_MSP)')
@click.pass_context
def channel_update(ctx, channel_name, org, peer, msp):
    """Update a channel with the anchor peers of an organization"""
    banner("Updating channel anchors")
    rt = runtime(ctx)
    check('update_anchors', rt.commands.update_channel(channel_name, msp or rt.config.org_msp, org, peer))
    click.secho(f"Anchor peers updated on {channel_name}", fg='green')


# generate

@fabkit.group()
def generate():
    """Crypto material and channel artifacts"""


def _generate(ctx, artifact: str, operation: str, force: bool, **overrides):
    rt = runtime(ctx, **overrides)
    context = rt.context()
    if rt.store.exists(artifact):
        path = rt.store.path_of(artifact)
        if not force:
            click.secho(f"{artifact} already generated in {path}, use --force to regenerate", fg='yellow')
            return
        if not rt.ask(f"Regenerate {artifact} in {path}? Existing content is deleted."):
            raise OperationCancelled(f"Regeneration of {artifact} cancelled")
        outcomes = rt.store.regenerate(artifact, context)
    else:
        outcomes = rt.graph.execute([operation], context)
    report_outcomes(outcomes)


@generate.command('cryptos')
@click.argument('config_path', required=False, type=click.Path(file_okay=False))
@click.argument('cryptos_path', required=False, type=click.Path(file_okay=False))
@click.option('--force', is_flag=True, help='Regenerate even if already generated')
@click.pass_context
def generate_cryptos(ctx, config_path, cryptos_path, force):
    """Generate all the crypto keys and certificates for the network"""
    banner("Generating crypto material")
    _generate(ctx, 'cryptos', 'generate_cryptos', force,
              config_path=config_path, cryptos_path=cryptos_path)


@generate.command('genesis')
@click.argument('base_path', required=False, type=click.Path(file_okay=False))
@click.argument('config_path', required=False, type=click.Path(file_okay=False))
@click.argument('cryptos_path', required=False, type=click.Path(file_okay=False))
@click.argument('network_profile', required=False)
@click.option('--force', is_flag=True, help='Regenerate even if already generated')
@click.pass_context
def generate_genesis(ctx, base_path, config_path, cryptos_path, network_profile, force):
    """Generate the genesis block for the ordering service"""
    banner("Generating genesis block")
    _generate(ctx, 'genesis', 'generate_genesis', force,
              base_path=base_path, config_path=config_path, cryptos_path=cryptos_path,
              configtx_profile_network=network_profile)


@generate.command('channeltx')
@click.argument('channel_name', required=False)
@click.argument('base_path', required=False, type=click.Path(file_okay=False))
@click.argument('config_path', required=False, type=click.Path(file_okay=False))
@click.argument('cryptos_path', required=False, type=click.Path(file_okay=False))
@click.argument('network_profile', required=False)
@click.argument('channel_profile', required=False)
@click.argument('org_msp', required=False)
@click.option('--force', is_flag=True, help='Regenerate even if already generated')
@click.pass_context
def generate_channeltx(ctx, channel_name, base_path, config_path, cryptos_path,
                       network_profile, channel_profile, org_msp, force):
    """Generate the channel transaction and anchor peer update"""
    banner("Generating channel configuration")
    channel_name = channel_name or ctx.find_root().obj['config'].channel_name
    _generate(ctx, channel_artifact(channel_name), 'generate_channeltx', force,
              channel_name=channel_name, base_path=base_path, config_path=config_path,
              cryptos_path=cryptos_path, configtx_profile_network=network_profile,
              configtx_profile_channel=channel_profile, org_msp=org_msp)


# chaincode

@fabkit.group()
def chaincode():
    """Chaincode build and lifecycle"""


@chaincode.command('test')
@click.argument('chaincode_name', required=False)
@click.pass_context
def chaincode_test(ctx, chaincode_name):
    """Run the chaincode unit tests"""
    banner("Unit testing chaincode")
    results = check('test_chaincode', runtime(ctx).toolchain.test(chaincode_name))
    for result in results:
        click.echo(result.stdout)
    click.secho("Tests passed", fg='green')


@chaincode.command('build')
@click.argument('chaincode_name', required=False)
@click.pass_context
def chaincode_build(ctx, chaincode_name):
    """Compile the chaincode"""
    banner("Building chaincode")
    check('build_chaincode', runtime(ctx).toolchain.build(chaincode_name))
    click.secho("Build succeeded", fg='green')


@chaincode.command('pack')
@click.argument('chaincode_name', required=False)
@click.pass_context
def chaincode_pack(ctx, chaincode_name):
    """Create an archive with the chaincode and its vendored modules"""
    banner("Packing chaincode")
    archive = runtime(ctx).toolchain.pack(chaincode_name)
    click.secho(f"Chaincode archive created in: {archive}", fg='green')


@chaincode.command('install')
@click.argument('chaincode_name', required=False)
@click.argument('chaincode_version', required=False)
@click.argument('chaincode_path', required=False)
@click.argument('org', required=False, default=1, type=int)
@click.argument('peer', required=False, default=0, type=int)
@click.pass_context
def chaincode_install(ctx, chaincode_name, chaincode_version, chaincode_path, org, peer):
    """Install chaincode on a peer"""
    banner("Installing chaincode")
    commands = runtime(ctx).commands
    check('install_chaincode', commands.install_chaincode(
        chaincode_name, chaincode_version, chaincode_path, org, peer))
    click.secho(f"Chaincode {chaincode_name} {chaincode_version} installed", fg='green')


@chaincode.command('instantiate')
@click.argument('chaincode_name', required=False)
@click.argument('chaincode_version', required=False)
@click.argument('channel_name', required=False)
@click.argument('org', required=False, default=1, type=int)
@click.argument('peer', required=False, default=0, type=int)
@click.pass_context
def chaincode_instantiate(ctx, chaincode_name, chaincode_version, channel_name, org, peer):
    """Instantiate chaincode on a channel"""
    banner("Instantiating chaincode")
    commands = runtime(ctx).commands
    check('instantiate_chaincode', commands.instantiate_chaincode(
        chaincode_name, chaincode_version, channel_name, org, peer))
    click.secho(f"Chaincode {chaincode_name} {chaincode_version} instantiated on {channel_name}", fg='green')


@chaincode.command('upgrade')
@click.argument('chaincode_name', required=False)
@click.argument('chaincode_version', required=False)
@click.argument('channel_name', required=False)
@click.argument('org', required=False, default=1, type=int)
@click.argument('peer', required=False, default=0, type=int)
@click.pass_context
def chaincode_upgrade(ctx, chaincode_name, chaincode_version, channel_name, org, peer):
    """Build, test and install a new version, then upgrade to it"""
    banner("Upgrading chaincode")
    require_args(chaincode_name=chaincode_name, chaincode_version=chaincode_version,
                 channel_name=channel_name)
    rt = runtime(ctx, chaincode_name=chaincode_name, chaincode_version=chaincode_version,
                 channel_name=channel_name)
    graph = build_upgrade_graph(rt.commands, rt.toolchain)
    report_outcomes(graph.execute(UPGRADE_TARGETS, rt.context(PeerTarget(org, peer))))
    click.secho(f"Chaincode {chaincode_name} upgraded to {chaincode_version}", fg='green')


@chaincode.command('query')
@click.argument('channel_name', required=False)
@click.argument('chaincode_name', required=False)
@click.argument('request', required=False)
@click.argument('org', required=False, default=1, type=int)
@click.argument('peer', required=False, default=0, type=int)
@click.pass_context
def chaincode_query(ctx, channel_name, chaincode_name, request, org, peer):
    """Run a query, e.g. '{"Args":["get","key"]}'"""
    result = check('query', runtime(ctx).commands.query(channel_name, chaincode_name, request, org, peer))
    click.echo(result[0].stdout.strip())


@chaincode.command('invoke')
@click.argument('channel_name', required=False)
@click.argument('chaincode_name', required=False)
@click.argument('request', required=False)
@click.argument('org', required=False, default=1, type=int)
@click.argument('peer', required=False, default=0, type=int)
@click.pass_context
def chaincode_invoke(ctx, channel_name, chaincode_name, request, org, peer):
    """Run an invoke, e.g. '{"Args":["put","key","value"]}'"""
    result = check('invoke', runtime(ctx).commands.invoke(channel_name, chaincode_name, request, org, peer))
    click.echo(result[0].output)


# dep

@fabkit.group()
def dep():
    """Chaincode Go module dependencies"""


@dep.command('install')
@click.argument('chaincode_name', required=False)
@click.pass_context
def dep_install(ctx, chaincode_name):
    """Install all go modules as vendor and init go.mod if missing"""
    banner("Installing dependencies")
    check('dep_install', runtime(ctx).toolchain.dep_install(chaincode_name))
    click.secho("Dependencies installed", fg='green')


@dep.command('update')
@click.argument('chaincode_name', required=False)
@click.pass_context
def dep_update(ctx, chaincode_name):
    """Update all go modules and re-vendor"""
    banner("Updating dependencies")
    check('dep_update', runtime(ctx).toolchain.dep_update(chaincode_name))
    click.secho("Dependencies updated", fg='green')


# ca

@fabkit.group()
def ca():
    """Certificate authority identities"""


@ca.command('register')
@click.argument('user', required=False)
@click.argument('password', required=False)
@click.argument('attributes', required=False, default="")
@click.pass_context
def ca_register(ctx, user, password, attributes):
    """Register a new user with the CA"""
    banner("Registering user")
    check('register_user', runtime(ctx).commands.register_user(user, password, attributes))
    click.secho(f"User {user} registered", fg='green')


@ca.command('enroll')
@click.argument('user', required=False)
@click.argument('password', required=False)
@click.pass_context
def ca_enroll(ctx, user, password):
    """Enroll a registered user and store its MSP"""
    banner("Enrolling user")
    check('enroll_user', runtime(ctx).commands.enroll_user(user, password))
    click.secho(f"User {user} enrolled", fg='green')


# benchmark

@fabkit.group()
def benchmark():
    """Load testing against a running network"""


@benchmark.command('load')
@click.argument('jobs', required=False, type=int)
@click.argument('entries', required=False, type=int)
@click.pass_context
def benchmark_load(ctx, jobs, entries):
    """Bulk load ENTRIES per each of JOBS parallel jobs"""
    if jobs is None:
        raise ValidationError("Provide a number of jobs to run in parallel")
    if entries is None:
        raise ValidationError("Provide a number of entries per job")
    banner("Running benchmark")
    rt = runtime(ctx)

    def invoke(key: str, value: str) -> ProcessResult:
        request = json.dumps({"Args": ["put", key, value]}, separators=(',', ':'))
        return rt.commands.invoke(rt.config.channel_name, rt.config.chaincode_name, request)

    report = BenchmarkRunner().run(jobs, entries, invoke)
    click.secho(f"Total of {report.elapsed:.2f} seconds elapsed for process", fg='yellow')
    click.secho(f"{report.total_entries} entries added", fg='green')
    if report.error_count:
        click.secho(f"{report.error_count} invokes failed in jobs {report.failed_jobs}", fg='red', err=True)


def main(argv: Optional[Sequence[str]] = None):
    """Console entry point; every failure exits with status 1"""
    try:
        code = fabkit.main(args=argv, prog_name='fabkit', standalone_mode=False)
    except click.exceptions.Abort:
        click.secho("Aborted!", fg='red', err=True)
        sys.exit(1)
    except click.ClickException as e:
        e.show()
        sys.exit(1)
    sys.exit(code if isinstance(code, int) else 0)
