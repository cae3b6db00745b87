#!/usr/bin/env python3
"""
Staking Signer - Command Line Interface

Inspect and normalize PSBTs, classify staking leaf scripts and build the
wallet policies a signing device needs for each staking spending path.
"""

import asyncio
import functools
import logging
import sys
import traceback
from pathlib import Path
from typing import Any, Optional

import click

from crypto.keys import default_derivation_path
from device.software import SoftwareDevice, WatchOnlyDevice
from policy.builder import staking_tx_policy
from policy.recognizer import classify_script, try_parse_psbt
from psbt.psbtv2 import PsbtV2
from psbt.utils import PSBT_MAGIC
from scripts.encoding import script_to_asm
from scripts.taproot import get_taproot_leaf

from .config import ConfigurationManager
from .output import OutputFormatter

PACKAGE_LOGGERS = ('psbt', 'crypto', 'scripts', 'policy', 'device')


class CLIContext:
    """Global CLI context for sharing state across commands."""

    def __init__(self):
        self.config_file: Optional[str] = None
        self.profile: Optional[str] = None
        self.output_format: Optional[str] = None
        self.verbose: int = 0
        self.config: Optional[ConfigurationManager] = None
        self.logger: logging.Logger = logging.getLogger('staking-signer')

    def setup_logging(self):
        """Configure logging based on verbosity level."""
        log_levels = {
            0: logging.WARNING,
            1: logging.INFO,
            2: logging.DEBUG
        }

        level = log_levels.get(min(self.verbose, 2), logging.DEBUG)

        formatter = logging.Formatter(
            '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
        )

        for name in ('staking-signer',) + PACKAGE_LOGGERS:
            logger = logging.getLogger(name)
            logger.setLevel(level)
            if not logger.handlers:
                handler = logging.StreamHandler(sys.stderr)
                handler.setFormatter(formatter)
                logger.addHandler(handler)

    def load_config(self):
        self.config = ConfigurationManager(self.config_file, self.profile)
        self.config.load()
        for source in self.config.get_sources():
            self.logger.debug(f"Config source: {source}")

        errors = self.config.validate()
        if errors:
            raise click.UsageError("Invalid configuration: " + "; ".join(errors))

        if self.output_format is None:
            self.output_format = self.config.get('cli.output_format', 'table')

    @property
    def is_testnet(self) -> bool:
        return self.config.is_testnet

    def output(self, data: Any):
        formatter = OutputFormatter(self.output_format,
                                    color_output=self.config.get('cli.color_output', True))
        click.echo(formatter.format(data))

    def create_device(self):
        """Build the signing device described by the configuration."""
        seed = self.config.get('device.seed')
        if seed is not None:
            self.logger.info("Using software device")
            return SoftwareDevice.from_hex(str(seed), self.is_testnet)

        fingerprint = self.config.get('device.fingerprint')
        xpub = self.config.get('device.xpub')
        if fingerprint is not None and xpub is not None:
            path = self.config.get('policy.derivation_path') or default_derivation_path(self.is_testnet)
            self.logger.info(f"Using watch-only device for {path}")
            return WatchOnlyDevice(bytes.fromhex(str(fingerprint)), {path: xpub})

        raise click.UsageError(
            "No signing device configured: set device.seed, or device.fingerprint and device.xpub"
        )


pass_context = click.make_pass_decorator(CLIContext, ensure=True)


def handle_cli_error(func):
    """Decorator to handle CLI errors gracefully."""
    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except KeyboardInterrupt:
            click.echo("\nOperation cancelled by user.", err=True)
            sys.exit(130)
        except Exception as e:
            click_ctx = click.get_current_context(silent=True)
            ctx = click_ctx.find_object(CLIContext) if click_ctx else None

            click.echo(f"Error: {e}", err=True)
            if ctx and ctx.verbose >= 2:
                click.echo(traceback.format_exc(), err=True)
            else:
                click.echo("Use -vv for detailed error information.", err=True)

            sys.exit(1)

    return wrapper


def _is_file(path: Path) -> bool:
    # Base64 strings can exceed the platform file name limit
    try:
        return path.is_file()
    except OSError:
        return False


def load_psbt(source: str) -> PsbtV2:
    """
    Load a PSBT from a file (binary or base64) or a base64 string.
    """
    path = Path(source)
    if _is_file(path):
        data = path.read_bytes()
        if data.startswith(PSBT_MAGIC):
            return PsbtV2.deserialize(data)
        return PsbtV2.from_base64(data.decode('ascii').strip())
    return PsbtV2.from_base64(source.strip())


def describe_psbt(psbt: PsbtV2) -> dict:
    """Summarize the transaction fields of a parsed (version 2) PSBT."""
    inputs = []
    for index in range(psbt.get_global_input_count()):
        utxo = psbt.get_input_witness_utxo(index)
        leaves = psbt.get_input_tap_leaf_scripts(index)
        inputs.append({
            'txid': psbt.get_input_previous_txid(index)[::-1].hex(),
            'vout': psbt.get_input_output_index(index),
            'sequence': psbt.get_input_sequence(index),
            'amount': None if utxo is None else utxo.amount,
            'leaf_scripts': len(leaves),
        })

    outputs = []
    for index in range(psbt.get_global_output_count()):
        outputs.append({
            'amount': psbt.get_output_amount(index),
            'script': psbt.get_output_script(index).hex(),
        })

    return {
        'psbt_version': psbt.get_global_psbt_version(),
        'tx_version': psbt.get_global_tx_version(),
        'fallback_locktime': psbt.get_global_fallback_locktime(),
        'input_count': len(inputs),
        'output_count': len(outputs),
        'inputs': inputs,
        'outputs': outputs,
    }


@click.group(invoke_without_command=True,
             context_settings={'help_option_names': ['-h', '--help']})
@click.option('--config-file', '-c',
              help='Path to configuration file')
@click.option('--profile',
              type=click.Choice(['mainnet', 'testnet']),
              help='Configuration profile')
@click.option('--output-format', '-o',
              type=click.Choice(['table', 'json', 'yaml']),
              help='Output format')
@click.option('--verbose', '-v',
              count=True,
              help='Increase verbosity (-v for INFO, -vv for DEBUG)')
@click.option('--version',
              is_flag=True,
              help='Show version information')
@pass_context
@handle_cli_error
def cli(ctx: CLIContext, config_file: Optional[str], profile: Optional[str],
        output_format: Optional[str], verbose: int, version: bool):
    """
    Staking Signer Command Line Interface

    Examples:
        staking-signer psbt show signing.psbt
        staking-signer policy classify signing.psbt
        staking-signer --profile testnet policy build signing.psbt
    """
    if version:
        from cli import __version__
        click.echo(f"Staking Signer CLI v{__version__}")
        sys.exit(0)

    ctx.config_file = config_file
    ctx.profile = profile
    ctx.output_format = output_format
    ctx.verbose = verbose

    ctx.setup_logging()
    ctx.load_config()

    click_ctx = click.get_current_context()
    if click_ctx.invoked_subcommand is None:
        click.echo(click_ctx.get_help())
        return

    ctx.logger.debug("CLI initialized with context")


@cli.group()
@pass_context
def psbt(ctx: CLIContext):
    """
    PSBT inspection and conversion commands.

    PSBT arguments are a file path (binary or base64) or a base64 string.
    """
    ctx.logger.debug("PSBT command group invoked")


@psbt.command('show')
@click.argument('source')
@pass_context
@handle_cli_error
def psbt_show(ctx: CLIContext, source: str):
    """Show the transaction fields of a PSBT."""
    ctx.output(describe_psbt(load_psbt(source)))


@psbt.command('normalize')
@click.argument('source')
@click.option('--output', '-O', 'output_file', type=click.Path(dir_okay=False),
              help='Write binary PSBT to this file instead of printing base64')
@pass_context
@handle_cli_error
def psbt_normalize(ctx: CLIContext, source: str, output_file: Optional[str]):
    """Convert a PSBT to version 2."""
    psbt_obj = load_psbt(source)
    psbt_obj.normalize_to_v2()

    if output_file:
        Path(output_file).write_bytes(psbt_obj.serialize())
        ctx.logger.info(f"Wrote PSBT v2 to {output_file}")
    else:
        click.echo(psbt_obj.to_base64())


@psbt.command('leaf-hash')
@click.argument('source')
@click.option('--input-index', '-i', type=int, default=0, show_default=True,
              help='Input whose leaf script to hash')
@pass_context
@handle_cli_error
def psbt_leaf_hash(ctx: CLIContext, source: str, input_index: int):
    """Show the Taproot leaf script of an input and its leaf hash."""
    leaf = get_taproot_leaf(load_psbt(source), input_index)
    if leaf is None:
        raise click.ClickException(f"Input {input_index} has no leaf script")

    ctx.output({
        'leaf_hash': leaf.leaf_hash().hex(),
        'leaf_version': leaf.leaf_version,
        'script': script_to_asm(leaf.script),
    })


@cli.group()
@pass_context
def policy(ctx: CLIContext):
    """
    Wallet policy commands.

    Recognize staking leaf scripts and build the matching wallet policies.
    """
    ctx.logger.debug("Policy command group invoked")


@policy.command('classify')
@click.argument('source')
@click.option('--script', 'is_script', is_flag=True,
              help='Treat SOURCE as a hex leaf script instead of a PSBT')
@pass_context
@handle_cli_error
def policy_classify(ctx: CLIContext, source: str, is_script: bool):
    """Classify a leaf script without contacting a device."""
    if is_script:
        script = bytes.fromhex(source)
    else:
        leaf = get_taproot_leaf(load_psbt(source))
        if leaf is None:
            ctx.output({'kind': 'key-path'})
            return
        script = leaf.script

    match = classify_script(script)
    if match is None:
        raise click.ClickException("Leaf script does not match any staking script")

    result = {'kind': match.kind.value, 'staker_pk': match.staker_pk}
    if match.finality_provider_pk is not None:
        result['finality_provider_pk'] = match.finality_provider_pk
    if match.covenant_threshold is not None:
        result['covenant_threshold'] = match.covenant_threshold
        result['covenant_pks'] = list(match.covenant_pks)
    if match.timelock_blocks is not None:
        result['timelock_blocks'] = match.timelock_blocks
    ctx.output(result)


def _policy_result(wallet_policy) -> dict:
    result = wallet_policy.to_dict()
    result['descriptor'] = wallet_policy.to_descriptor()
    return result


@policy.command('build')
@click.argument('source')
@click.option('--leaf-hash', help='Leaf hash to present (hex); computed when omitted')
@click.option('--derivation-path', help="Account derivation path (default m/86'/0'/0')")
@click.option('--display-leaf-hash/--no-display-leaf-hash', default=None,
              help='Use the display or check-only leaf hash fingerprint')
@pass_context
@handle_cli_error
def policy_build(ctx: CLIContext, source: str, leaf_hash: Optional[str],
                 derivation_path: Optional[str], display_leaf_hash: Optional[bool]):
    """Build the wallet policy a PSBT needs from the leaf script it spends."""
    psbt_obj = load_psbt(source)
    device = ctx.create_device()

    if display_leaf_hash is None:
        display_leaf_hash = ctx.config.get('policy.display_leaf_hash', True)

    wallet_policy = asyncio.run(try_parse_psbt(
        device,
        psbt_obj,
        is_testnet=ctx.is_testnet,
        leaf_hash=bytes.fromhex(leaf_hash) if leaf_hash else None,
        derivation_path=derivation_path or ctx.config.get('policy.derivation_path'),
        display_leaf_hash=display_leaf_hash,
    ))
    if wallet_policy is None:
        raise click.ClickException("Leaf script does not match any staking script")

    ctx.output(_policy_result(wallet_policy))


@policy.command('staking')
@click.option('--derivation-path', help="Account derivation path (default m/86'/0'/0')")
@pass_context
@handle_cli_error
def policy_staking(ctx: CLIContext, derivation_path: Optional[str]):
    """Build the key-path policy for the staking transaction."""
    device = ctx.create_device()
    wallet_policy = asyncio.run(staking_tx_policy(
        device,
        derivation_path=derivation_path or ctx.config.get('policy.derivation_path'),
        is_testnet=ctx.is_testnet,
    ))
    ctx.output(_policy_result(wallet_policy))


def main():
    cli()


if __name__ == '__main__':
    main()
