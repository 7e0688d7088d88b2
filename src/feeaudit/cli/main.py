#!/usr/bin/env python3
"""
feeaudit CLI - Fee Distributor Hotfix Verifier

Recomputes every node's fee numerator, then checks the published hotfix
contract against the resulting discrepancies.
"""

from __future__ import annotations

import asyncio
import json
import logging
import sys
from typing import Optional

import click
from rich import box
from rich.console import Console
from rich.table import Table

from feeaudit.core.audit_exceptions import AuditError, get_error_context
from feeaudit.core.audit_runner import AuditResult, run_audit
from feeaudit.core.config import NETWORKS, AuditSettings, load_settings
from feeaudit.core.logging_config import setup_logging
from feeaudit.core.web3_ledger import Web3LedgerReader

logger = logging.getLogger(__name__)

console = Console(soft_wrap=True)

EXIT_VERIFIED = 0
EXIT_INCORRECT = 1
EXIT_FATAL = 2


def _cli_fail(exc: Exception, exit_code: int = EXIT_FATAL) -> None:
    """Centralized CLI error handler for consistent messaging."""
    logger.error("CLI error: %s", exc, extra=get_error_context(exc))
    console.print(f"[bold red]Error:[/] {exc}")
    sys.exit(exit_code)


async def _audit(settings: AuditSettings, quiet: bool) -> AuditResult:
    reader = Web3LedgerReader(settings.eth_rpc, settings.network.storage_address)

    def on_start(total: int) -> None:
        if not quiet:
            console.print(f"Checking {total} nodes, this could take a while...")

    def on_progress(checked: int, total: int) -> None:
        if not quiet:
            console.print(f"Checked {checked} of {total}")

    try:
        return await run_audit(
            reader,
            reader.hotfix_source(settings.network.hotfix_address),
            hotfix_address=settings.network.hotfix_address,
            progress_interval=settings.progress_interval,
            on_progress=on_progress,
            concurrency=settings.concurrency,
            on_start=on_start,
        )
    finally:
        await reader.close()


def _print_report(result: AuditResult) -> None:
    report = result.report
    console.print(f"Found {len(result.discrepancies)} errors")
    console.print("Verifying hotfix errors...")

    if report.count_matches:
        console.print(f"[green]✓ Correct number of errors: {report.reported_count}[/]")

    for finding in report.findings:
        console.print(f"[red]❌ {finding.description}[/]", highlight=False)

    if report.verified:
        console.print(f"[green]✓ Hotfix at {report.hotfix_address} is correct[/]")
    else:
        console.print(f"[red]❌ Hotfix at {report.hotfix_address} is incorrect[/]")


@click.group()
def cli():
    """Fee distributor hotfix verifier."""
    pass


@cli.command("verify")
@click.option("--network", envvar="FEEAUDIT_NETWORK", help="Network to audit (goerli, mainnet).")
@click.option("--eth-rpc", envvar="FEEAUDIT_ETH_RPC", help="Ethereum JSON-RPC endpoint URL.")
@click.option(
    "--hotfix-address",
    envvar="FEEAUDIT_HOTFIX_ADDRESS",
    help="Hotfix contract address, overriding the network default.",
)
@click.option(
    "--progress-interval",
    type=click.IntRange(min=1),
    help="Print progress after every N nodes.  [default: 100]",
)
@click.option(
    "--concurrency",
    type=click.IntRange(min=1),
    help="Number of nodes checked at once.  [default: 1]",
)
@click.option("--json-output", is_flag=True, help="Output the result as JSON.")
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"], case_sensitive=False),
    help="Structured log level.  [default: INFO]",
)
@click.option("--log-file", type=click.Path(dir_okay=False), help="Write JSON logs to this file.")
@click.option("-v", "--verbose", is_flag=True, help="Also write JSON logs to stderr.")
def verify(
    network: Optional[str],
    eth_rpc: Optional[str],
    hotfix_address: Optional[str],
    progress_interval: Optional[int],
    concurrency: Optional[int],
    json_output: bool,
    log_level: Optional[str],
    log_file: Optional[str],
    verbose: bool,
):
    """
    Audit every node's fee numerator and verify the hotfix contract.

    Exits 0 when the hotfix is correct, 1 when it is not, and 2 when the
    audit could not be completed.
    """
    # configuration errors are logged before the run's handlers exist
    setup_logging(name="feeaudit", level=log_level or "INFO", enable_console=verbose)

    try:
        settings = load_settings(
            network=network,
            eth_rpc=eth_rpc,
            hotfix_address=hotfix_address,
            progress_interval=progress_interval,
            concurrency=concurrency,
            log_level=log_level,
            log_file=log_file,
        )
    except AuditError as exc:
        _cli_fail(exc)

    setup_logging(
        name="feeaudit",
        log_file=settings.log_file,
        level=settings.log_level,
        network=settings.network.network.value,
        enable_console=verbose,
    )

    try:
        result = asyncio.run(_audit(settings, quiet=json_output))
    except AuditError as exc:
        _cli_fail(exc)

    if json_output:
        click.echo(json.dumps(result.to_dict(), indent=2))
    else:
        _print_report(result)
        console.print("Done")

    sys.exit(EXIT_VERIFIED if result.verified else EXIT_INCORRECT)


@cli.command("networks")
@click.option("--json-output", is_flag=True, help="Output as JSON.")
def networks(json_output: bool):
    """List known networks and their contract addresses."""
    if json_output:
        payload = {
            config.network.value: {
                "storage_address": config.storage_address,
                "hotfix_address": config.hotfix_address,
            }
            for config in NETWORKS.values()
        }
        click.echo(json.dumps(payload, indent=2))
        return

    table = Table(title="Networks", box=box.ROUNDED)
    table.add_column("Network", style="cyan")
    table.add_column("Storage", style="green")
    table.add_column("Hotfix", style="yellow")
    for config in NETWORKS.values():
        table.add_row(
            config.network.value,
            config.storage_address,
            config.hotfix_address or "not deployed",
        )
    console.print(table)


def main():
    """Main CLI entry point"""
    try:
        cli()
    except KeyboardInterrupt:
        console.print("\n[yellow]Operation cancelled by user[/]")
        sys.exit(130)


if __name__ == "__main__":
    main()
