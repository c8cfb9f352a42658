"""
Main CLI application for the NEO wallet engine.
"""

import asyncio
import csv
import importlib
import json
import os
from datetime import datetime
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import List, Optional

import typer
from rich.console import Console
from rich.panel import Panel
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.table import Table

from .config import Config
from .engine import WalletEngine
from .exceptions import WalletEngineError
from .interfaces import NotificationKind, Notifier, SigningBackend
from .models import (
    NATIVE_ASSETS,
    HoldingsResult,
    KeySource,
    MovementRecord,
    WalletAccount,
    native_asset_for,
)
from .state import GAS_CLAIM, WalletState
from .utils import format_number, is_valid_neo_address, shorten

# Logging setup
import logging
logging.basicConfig(level=logging.WARNING)
logger = logging.getLogger(__name__)


app = typer.Typer(
    name="neo-wallet",
    help="Holdings, history, transfers and GAS claims for a NEO wallet."
)

console = Console()

CLAIM_STEPS = {
    0: "Starting claim",
    1: "Read NEO balance",
    2: "NEO sent to self",
    3: "Computed claimable GAS",
    4: "Claim transaction sent",
    5: "Claim confirmed",
}


class ConsoleNotifier(Notifier):
    """Prints notifications to the rich console."""

    STYLES = {
        NotificationKind.INFO: "cyan",
        NotificationKind.SUCCESS: "green",
        NotificationKind.ERROR: "red",
        NotificationKind.NETWORK_ERROR: "yellow",
    }

    def notify(self, kind: NotificationKind, message: str) -> None:
        style = self.STYLES.get(kind, "white")
        console.print(f"[{style}]{message}[/{style}]")


def load_config() -> Config:
    """Load application configuration."""
    try:
        return Config.from_env()
    except ValueError as e:
        console.print(f"[red]Configuration error: {e}[/red]")
        console.print("\n[yellow]Run 'neo-wallet setup' to create a .env file.[/yellow]")
        raise typer.Exit(1)


def require_address(address: str) -> str:
    address = address.strip()
    if not is_valid_neo_address(address):
        console.print(f"[red]Invalid NEO address: {address}[/red]")
        raise typer.Exit(1)
    return address


def load_signer(path: str, config: Config) -> SigningBackend:
    """Load a signing backend from a 'module:attribute' path."""
    module_name, _, attr = path.partition(":")
    if not module_name or not attr:
        console.print(f"[red]Signer must look like 'package.module:factory', got '{path}'[/red]")
        raise typer.Exit(1)

    try:
        factory = getattr(importlib.import_module(module_name), attr)
    except (ImportError, AttributeError) as e:
        logger.warning(f"Signer import failed for {path}: {e}")
        console.print(f"[red]Unable to load signer {path}: {e}[/red]")
        raise typer.Exit(1)

    backend = factory(config) if callable(factory) else factory
    if not isinstance(backend, SigningBackend):
        console.print(f"[red]{path} did not produce a SigningBackend[/red]")
        raise typer.Exit(1)
    return backend


def key_source_for(backend: SigningBackend) -> KeySource:
    """Hardware backends provide their own key source, others use NEO_WALLET_WIF."""
    key_source = getattr(backend, "key_source", None)
    if isinstance(key_source, KeySource):
        return key_source
    return KeySource(wif=os.getenv("NEO_WALLET_WIF"))


def parse_amount(value: str) -> Decimal:
    try:
        amount = Decimal(value)
    except InvalidOperation:
        console.print(f"[red]Invalid amount: {value}[/red]")
        raise typer.Exit(1)
    if amount <= 0:
        console.print("[red]Amount must be positive[/red]")
        raise typer.Exit(1)
    return amount


def parse_date(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        return datetime.strptime(value, "%Y-%m-%d")
    except ValueError:
        console.print(f"[red]Invalid date '{value}', expected YYYY-MM-DD[/red]")
        raise typer.Exit(1)


def new_state(config: Config, address: str, key_source: Optional[KeySource] = None) -> WalletState:
    wallet = WalletAccount(address=address, key_source=key_source or KeySource())
    return WalletState(wallet=wallet, network=config.network, currency=config.currency)


def display_holdings(result: HoldingsResult, address: str, config: Config):
    """Display holdings in a rich table."""
    console.print(Panel(
        f"Address: [yellow]{address}[/yellow]\n"
        f"Network: [green]{config.network}[/green]\n"
        f"Total: [bold]{format_number(result.total_balance)} {config.currency}[/bold]"
        f"  24h: {format_number(result.change_24h_value)} {config.currency}"
        f" ({result.change_24h_percent if result.change_24h_percent is not None else 'N/A'}%)",
        title="Wallet",
        expand=False
    ))

    table = Table(title="\nHoldings")
    table.add_column("Symbol", style="cyan", no_wrap=True)
    table.add_column("Name", style="white")
    table.add_column("Balance", style="green", justify="right")
    table.add_column("Price", style="white", justify="right")
    table.add_column("24h %", style="white", justify="right")
    table.add_column(f"Value ({config.currency})", style="magenta", justify="right")
    table.add_column("Claimable", style="yellow", justify="right")

    for h in result.holdings:
        table.add_row(
            h.symbol,
            h.name,
            f"{h.balance.normalize():f}",
            format_number(h.unit_value, 4),
            format_number(h.change_24h_percent),
            format_number(h.total_value),
            f"{h.available_to_claim.normalize():f}" if h.available_to_claim is not None else "",
        )

    console.print(table)


def display_history(records: List[MovementRecord], address: str):
    """Display movement records in a rich table."""
    if not records:
        console.print("[yellow]No transactions found.[/yellow]")
        return

    table = Table(title=f"\nTransactions of {shorten(address)}")
    table.add_column("Date", style="white", no_wrap=True)
    table.add_column("Block", style="white", justify="right")
    table.add_column("Hash", style="yellow", no_wrap=True)
    table.add_column("From", style="magenta", no_wrap=True)
    table.add_column("To", style="magenta", no_wrap=True)
    table.add_column("Amount", justify="right")
    table.add_column("Symbol", style="cyan")

    for r in records:
        date_str = (datetime.fromtimestamp(r.block_time).strftime("%Y-%m-%d %H:%M")
                    if r.block_time else "pending")
        style = "green" if r.value > 0 else "red" if r.value < 0 else "white"
        table.add_row(
            date_str,
            f"{r.block_index:,}" if r.block_index is not None else "-",
            shorten(r.hash, 10, 4),
            shorten(r.from_address),
            shorten(r.to_address),
            f"[{style}]{r.value.normalize():f}[/{style}]",
            r.symbol,
        )

    console.print(table)


def record_to_dict(record: MovementRecord) -> dict:
    return {
        'hash': record.hash,
        'block_index': record.block_index,
        'block_time': record.block_time,
        'from_address': record.from_address,
        'to_address': record.to_address,
        'symbol': record.symbol,
        'value': str(record.value),
        'is_token': record.is_token,
    }


def export_to_csv(records: List[MovementRecord], filepath: str):
    """Export movement records to CSV."""
    with open(filepath, 'w', newline='') as csvfile:
        writer = csv.writer(csvfile)
        writer.writerow([
            'Hash', 'Block_Index', 'Block_Time', 'Date', 'From_Address',
            'To_Address', 'Symbol', 'Value', 'Is_Token'
        ])
        for r in records:
            writer.writerow([
                r.hash,
                r.block_index,
                r.block_time,
                datetime.fromtimestamp(r.block_time).strftime("%Y-%m-%d %H:%M:%S") if r.block_time else None,
                r.from_address,
                r.to_address,
                r.symbol,
                str(r.value),
                r.is_token,
            ])


def export_to_json(records: List[MovementRecord], address: str, filepath: str):
    """Export movement records to JSON."""
    data = {
        'address': address,
        'exported_at': datetime.now().isoformat(),
        'transactions': [record_to_dict(r) for r in records],
    }
    with open(filepath, 'w') as jsonfile:
        json.dump(data, jsonfile, indent=2, default=str)


def run(coro):
    """Run a coroutine, turning engine errors into a clean exit."""
    try:
        return asyncio.run(coro)
    except WalletEngineError as e:
        logger.warning(f"Command failed: {e}")
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)


@app.command()
def holdings(
    address: str = typer.Argument(..., help="NEO address"),
    symbol: Optional[str] = typer.Option(
        None, "--symbol", "-s", help="Only show this symbol"),
    refresh_tokens: bool = typer.Option(
        True, "--refresh-tokens/--no-refresh-tokens", help="Load the known token list first"),
):
    """Show balances and valuation of an address."""
    config = load_config()
    address = require_address(address)

    async def _holdings():
        state = new_state(config, address)
        async with WalletEngine.from_config(config, state, notifier=ConsoleNotifier()) as engine:
            with Progress(SpinnerColumn(), TextColumn("[progress.description]{task.description}"),
                          console=console) as progress:
                if refresh_tokens:
                    task = progress.add_task("Loading token list...", total=None)
                    await engine.load_known_tokens()
                    progress.update(task, description="✓ Loaded token list")
                task = progress.add_task("Fetching holdings...", total=None)
                result = await engine.holdings.get_holdings(address, symbol)
                progress.update(task, description="✓ Fetched holdings")
            return result

    display_holdings(run(_holdings()), address, config)


@app.command()
def history(
    address: str = typer.Argument(..., help="NEO address"),
    from_date: Optional[str] = typer.Option(None, "--from-date", help="YYYY-MM-DD"),
    to_date: Optional[str] = typer.Option(None, "--to-date", help="YYYY-MM-DD"),
    from_block: Optional[int] = typer.Option(None, "--from-block"),
    to_block: Optional[int] = typer.Option(None, "--to-block"),
    output_format: str = typer.Option(
        "table", "--format", "-f", help="Output format: table, csv, json"),
    output_file: Optional[str] = typer.Option(
        None, "--output", "-o", help="Output file path"),
):
    """Show the reconstructed transaction history of an address."""
    config = load_config()
    address = require_address(address)
    start = parse_date(from_date)
    end = parse_date(to_date)

    async def _history():
        state = new_state(config, address)
        async with WalletEngine.from_config(config, state, notifier=ConsoleNotifier()) as engine:
            with Progress(SpinnerColumn(), TextColumn("[progress.description]{task.description}"),
                          console=console) as progress:
                task = progress.add_task("Reconciling transactions...", total=None)
                records = await engine.history.get_recent_transactions(
                    address, True, start, end, from_block, to_block)
                progress.update(task, description="✓ Reconciled transactions")
            return records

    records = run(_history())

    if output_format == "table" or not output_file:
        display_history(records, address)

    if output_file:
        if output_format == "csv":
            export_to_csv(records, output_file)
            console.print(f"[green]Results exported to {output_file}[/green]")
        elif output_format == "json":
            export_to_json(records, address, output_file)
            console.print(f"[green]Results exported to {output_file}[/green]")
        else:
            console.print(
                f"[yellow]Unsupported output format: {output_format}[/yellow]")


@app.command()
def tokens():
    """List the tokens known on the configured network."""
    config = load_config()

    async def _tokens():
        state = WalletState(network=config.network, currency=config.currency)
        async with WalletEngine.from_config(config, state, notifier=ConsoleNotifier()) as engine:
            await engine.load_known_tokens()
            return engine.catalog.tokens_for(config.network)

    table = Table(title=f"\nTokens on {config.network}")
    table.add_column("Symbol", style="cyan")
    table.add_column("Script Hash", style="yellow")
    table.add_column("Custom", style="white")
    for token in sorted(run(_tokens()), key=lambda t: t.symbol.lower()):
        table.add_row(token.symbol, token.asset_id, "yes" if token.is_custom else "")
    console.print(table)


@app.command()
def send(
    to_address: str = typer.Argument(..., help="Destination address"),
    asset: str = typer.Argument(..., help="NEO, GAS or a NEP5 script hash"),
    amount: str = typer.Argument(..., help="Amount to send"),
    from_address: str = typer.Option(..., "--from", help="Sending wallet address"),
    signer: str = typer.Option(..., "--signer", help="Signing backend as module:factory"),
):
    """Send NEO, GAS or a NEP5 token and wait for confirmation."""
    config = load_config()
    from_address = require_address(from_address)
    to_address = require_address(to_address)
    value = parse_amount(amount)
    backend = load_signer(signer, config)

    native = {a.symbol: a for a in NATIVE_ASSETS.values()}.get(asset.upper())
    asset_id = native.asset_id if native else asset
    is_token = native is None and native_asset_for(asset) is None

    async def _send():
        state = new_state(config, from_address, key_source_for(backend))
        async with WalletEngine.from_config(config, state, signer=backend,
                                            notifier=ConsoleNotifier()) as engine:
            if is_token:
                await engine.refresh_holdings()
            return await engine.send(to_address, asset_id, value, is_token)

    tx = run(_send())
    console.print(f"[green]Transaction {tx.get('hash')} confirmed[/green]")


@app.command()
def claim(
    address: str = typer.Argument(..., help="Wallet address"),
    signer: str = typer.Option(..., "--signer", help="Signing backend as module:factory"),
):
    """Claim all unclaimed GAS of a wallet."""
    config = load_config()
    address = require_address(address)
    backend = load_signer(signer, config)

    def show_step(mutation, gas_claim):
        if mutation == GAS_CLAIM and gas_claim.error is None:
            console.print(f"[cyan]{gas_claim.step}/5 {CLAIM_STEPS.get(gas_claim.step, '')}[/cyan]")

    async def _claim():
        state = new_state(config, address, key_source_for(backend))
        state.subscribe(show_step)
        async with WalletEngine.from_config(config, state, signer=backend,
                                            notifier=ConsoleNotifier()) as engine:
            return await engine.claim_gas()

    gas_claim = run(_claim())
    if gas_claim.error:
        console.print(f"[red]Claim failed: {gas_claim.error}[/red]")
        raise typer.Exit(1)
    console.print(f"[green]Claimed {gas_claim.gas_claim_amount} GAS[/green]")


@app.command()
def setup():
    """Setup the application by creating a .env file template."""
    env_content = """# NEO Wallet Engine Configuration

# Network: MainNet or TestNet
NEO_NETWORK=MainNet

# Optional endpoint overrides (defaults depend on NEO_NETWORK)
# NEO_RPC_URL=https://seed1.cityofzion.io:443
# NEOSCAN_URL=https://api.neoscan.io/api/main_net
# APH_API_URL=https://mainnet.aphelion-neo.com:62443/api

# Pricing
DISPLAY_CURRENCY=USD
# COINGECKO_API_KEY=your_coingecko_api_key_here

# Requests
REQUEST_TIMEOUT=10
RATE_LIMIT_DELAY=0

# Workflow timings (seconds)
CONFIRMATION_INITIAL_DELAY=15
CONFIRMATION_POLL_INTERVAL=1
CLAIM_SETTLE_DELAY=30

# Key used by local signing backends
# NEO_WALLET_WIF=
"""

    env_path = Path(".env")
    if env_path.exists():
        console.print("[yellow].env file already exists![/yellow]")
        if not typer.confirm("Overwrite existing .env file?"):
            return

    with open(env_path, 'w') as f:
        f.write(env_content)

    console.print(f"[green]Created .env file at {env_path.absolute()}[/green]")
    console.print(
        "\n[yellow]Edit the .env file to pick a network and endpoints, then run:[/yellow]")
    console.print("neo-wallet holdings <address>")


if __name__ == "__main__":
    app()
