"""CLI for timecapsule-vault."""

import asyncio
import json
import logging
from collections.abc import Coroutine
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any, TypeVar

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.table import Table
from rich.traceback import install

from timecapsule_vault.core.config import get_settings
from timecapsule_vault.core.errors import VaultAccessError
from timecapsule_vault.core.models import TransactionOutcome, VaultSnapshot, WalletRecord
from timecapsule_vault.core.session import VaultSession
from timecapsule_vault.data import get_network, load_networks
from timecapsule_vault.pricing import MarketPricing, PriceOraclePoller
from timecapsule_vault.rpc import ResilientRPCClient
from timecapsule_vault.wallets import JsonFileStorage, WalletStore

# Install rich traceback handler
install(show_locals=False)

logger = logging.getLogger(__name__)

# Global debug flag
DEBUG = False

T = TypeVar("T")

app = typer.Typer(
    name="timecapsule-vault",
    help="Manage TimeCapsule vaults and wallets on EVM testnets through failover-capable RPC",
    add_completion=False,
)
wallets_app = typer.Typer(help="Manage locally stored wallets")
vault_app = typer.Typer(help="Inspect and operate vault contracts")
app.add_typer(wallets_app, name="wallets")
app.add_typer(vault_app, name="vault")

console = Console()
err_console = Console(stderr=True)


class OutputFormat(StrEnum):
    """Output format options."""

    TABLE = "table"
    JSON = "json"


NetworkOption = typer.Option(None, "--network", "-n", help="Network id (defaults to TIMECAPSULE_DEFAULT_NETWORK)")
FormatOption = typer.Option(OutputFormat.TABLE, "--format", "-f", help="Output format")
WalletOption = typer.Option(..., "--wallet", "-w", help="Id of the wallet that signs")


@app.callback()
def main(debug: bool = typer.Option(False, "--debug", "-d", help="Enable debug output")) -> None:
    """Resilient access to TimeCapsule vaults."""
    global DEBUG
    DEBUG = debug

    logging.basicConfig(
        level=logging.DEBUG if debug else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=err_console, rich_tracebacks=True, show_path=debug)],
        force=True,
    )
    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.INFO if debug else logging.WARNING)


def _run(coro: Coroutine[Any, Any, T]) -> T:
    """Run a coroutine, turning access-layer errors into a one-line message."""
    try:
        return asyncio.run(coro)
    except VaultAccessError as e:
        console.print(f"[bold red]Error:[/bold red] {e.message}")
        if DEBUG:
            raise
        raise typer.Exit(1)


def _fail(message: str) -> None:
    console.print(f"[bold red]Error:[/bold red] {message}")
    raise typer.Exit(1)


def _store() -> WalletStore:
    return WalletStore(JsonFileStorage(get_settings().wallet_store_path))


def _network_id(network: str | None) -> str:
    return network or get_settings().default_network


def _print_json(data: Any) -> None:
    console.print(json.dumps(data, indent=2, default=str))


def _format_ms(value: int | None) -> str:
    if not value:
        return "-"
    return datetime.fromtimestamp(value / 1000, tz=UTC).strftime("%Y-%m-%d %H:%M")


# Registry and diagnostics


@app.command()
def networks() -> None:
    """List supported networks."""
    table = Table(title="Supported Networks", show_header=True, header_style="bold magenta")
    table.add_column("Network", style="cyan")
    table.add_column("Name")
    table.add_column("Chain ID", justify="right")
    table.add_column("Currency", style="green")
    table.add_column("RPC Endpoints", justify="right")
    table.add_column("Vault Factory", style="dim")

    for profile in load_networks().values():
        table.add_row(
            profile.id,
            profile.name,
            str(profile.chain_id),
            profile.currency,
            str(len(profile.rpc)),
            profile.contracts.vault_factory or "-",
        )

    console.print(table)


@app.command()
def probe(
    network: str = typer.Argument(..., help="Network id to probe"),
    stop_at_first: bool = typer.Option(False, "--first", help="Stop at the first working endpoint"),
) -> None:
    """Test every RPC endpoint of a network with eth_blockNumber."""

    async def _probe():
        async with ResilientRPCClient.from_settings(get_network(network), get_settings()) as client:
            return await client.probe_endpoints(stop_at_first=stop_at_first)

    with Progress(SpinnerColumn(), TextColumn("[progress.description]{task.description}"), console=console) as progress:
        progress.add_task(f"Probing {network} endpoints...", total=None)
        results = _run(_probe())

    table = Table(title=f"RPC Endpoints for {network}", show_header=True, header_style="bold magenta")
    table.add_column("Endpoint", style="cyan")
    table.add_column("Status")
    table.add_column("Block", justify="right")
    table.add_column("Latency", justify="right")

    for result in results:
        status = "[green]✓ OK[/green]" if result.success else f"[red]✗ {result.error}[/red]"
        latency = f"{result.latency_ms} ms" if result.latency_ms is not None else "-"
        table.add_row(result.url, status, str(result.block_number or "-"), latency)

    console.print(table)
    if not any(r.success for r in results):
        raise typer.Exit(1)


# Wallets


def _wallet_table(wallets: list[WalletRecord]) -> Table:
    table = Table(title="Wallets", show_header=True, header_style="bold magenta")
    table.add_column("ID", style="dim")
    table.add_column("Name", style="cyan")
    table.add_column("Network", style="blue")
    table.add_column("Address")
    table.add_column("Balance", justify="right", style="green")
    table.add_column("Txs", justify="right")
    table.add_column("Last Activity")

    for wallet in wallets:
        table.add_row(
            wallet.id,
            wallet.name or "Unnamed",
            wallet.network,
            wallet.address,
            wallet.balance,
            str(wallet.transaction_count),
            _format_ms(wallet.last_activity),
        )
    return table


def _wallet_json(wallets: list[WalletRecord]) -> list[dict]:
    return [w.model_dump(mode="json", exclude={"private_key"}) for w in wallets]


@wallets_app.command("list")
def wallets_list(format: OutputFormat = FormatOption) -> None:
    """List stored wallets (private keys are never shown)."""
    try:
        wallets = _store().list_wallets()
    except VaultAccessError as e:
        _fail(e.message)

    if format == OutputFormat.JSON:
        _print_json(_wallet_json(wallets))
    elif not wallets:
        console.print("\n[yellow]No wallets found[/yellow]")
    else:
        console.print(_wallet_table(wallets))


@wallets_app.command("create")
def wallets_create(
    name: str = typer.Argument(..., help="Display name"),
    network: str | None = NetworkOption,
) -> None:
    """Generate a new wallet."""
    try:
        wallet = _store().create(name, _network_id(network))
    except VaultAccessError as e:
        _fail(e.message)

    console.print(f"[bold green]✓ Created wallet {wallet.id}[/bold green] on {wallet.network}")
    console.print(f"  Address:     {wallet.address}")
    console.print(f"  Private key: {wallet.private_key}")
    console.print("[yellow]Store the private key somewhere safe; it is only shown once.[/yellow]")


@wallets_app.command("import")
def wallets_import(
    name: str = typer.Argument(..., help="Display name"),
    private_key: str = typer.Option(..., "--key", prompt=True, hide_input=True, help="Hex private key"),
    network: str | None = NetworkOption,
) -> None:
    """Import a wallet from a private key."""
    try:
        wallet = _store().import_wallet(name, private_key, _network_id(network))
    except VaultAccessError as e:
        _fail(e.message)

    console.print(f"[bold green]✓ Imported wallet {wallet.id}[/bold green] {wallet.address} on {wallet.network}")


@wallets_app.command("delete")
def wallets_delete(wallet_id: str = typer.Argument(..., help="Wallet id")) -> None:
    """Delete a stored wallet."""
    try:
        _store().delete(wallet_id)
    except VaultAccessError as e:
        _fail(e.message)
    console.print(f"[green]✓ Wallet {wallet_id} removed[/green]")


@wallets_app.command("refresh")
def wallets_refresh(
    network: str | None = NetworkOption,
    all_networks: bool = typer.Option(False, "--all", help="Refresh every wallet on its own network"),
    format: OutputFormat = FormatOption,
) -> None:
    """Refresh cached balances of the wallets on one network, or on all of them."""
    network_id = _network_id(network)
    label = "all networks" if all_networks else network_id

    with Progress(SpinnerColumn(), TextColumn("[progress.description]{task.description}"), console=console) as progress:
        progress.add_task(f"Refreshing balances on {label}...", total=None)
        store = _store()
        wallets = _run(store.refresh_all_balances() if all_networks else store.refresh_balances(network_id))

    scoped = wallets if all_networks else [w for w in wallets if w.network == network_id]
    if format == OutputFormat.JSON:
        _print_json(_wallet_json(scoped))
    else:
        console.print(_wallet_table(scoped))


@wallets_app.command("check")
def wallets_check() -> None:
    """Report wallet data-integrity problems."""
    try:
        report = _store().check_consistency()
    except VaultAccessError as e:
        _fail(e.message)

    console.print(f"Checked {len(report.wallets)} wallets")
    if report.ok:
        console.print("[green]✓ No issues found[/green]")
        return
    for issue in report.issues:
        console.print(f"[yellow]⚠ {issue.message}[/yellow]")
    raise typer.Exit(1)


# Vaults


def _snapshot_table(snapshot: VaultSnapshot, currency: str) -> Table:
    table = Table(title=f"Vault {snapshot.address}", show_header=False)
    table.add_column("Field", style="bold")
    table.add_column("Value")

    state = "[red]Locked[/red]" if snapshot.locked else "[green]Unlocked[/green]"
    table.add_row("Status", f"{state} ({snapshot.lock_kind.value})")
    table.add_row("Reason", snapshot.unlock_reason)
    table.add_row("Balance", f"{snapshot.balance / 10**18:,.6f} {currency}")
    table.add_row("Creator", snapshot.creator)
    if snapshot.unlock_time:
        unlock_at = datetime.fromtimestamp(snapshot.unlock_time, tz=UTC).strftime("%Y-%m-%d %H:%M UTC")
        table.add_row("Unlock Time", unlock_at)
        table.add_row("Time Remaining", f"{snapshot.time_remaining}s")
    if snapshot.target_price:
        table.add_row("Target Price", f"${snapshot.target_price / 10**8:,.2f}")
    if snapshot.current_price:
        table.add_row("Current Price", f"${snapshot.current_price / 10**8:,.2f}")
    if snapshot.goal_amount:
        table.add_row("Goal", f"{snapshot.current_amount / 10**18:,.4f} / {snapshot.goal_amount / 10**18:,.4f}")
    table.add_row("Progress", f"{snapshot.progress_percentage}%")
    return table


def _print_outcome(action: str, outcome: TransactionOutcome) -> None:
    if outcome:
        console.print(f"[bold green]✓ {action} confirmed[/bold green] {outcome.tx_hash}")
        return
    console.print(f"[bold red]✗ {action} failed:[/bold red] {outcome.reason}")
    raise typer.Exit(1)


@vault_app.command("show")
def vault_show(
    address: str = typer.Argument(..., help="Vault contract address"),
    network: str | None = NetworkOption,
    format: OutputFormat = FormatOption,
) -> None:
    """Show the current state of a vault."""

    async def _show():
        async with VaultSession.open(network) as session:
            try:
                await session.poller.fetch_once(session.network.id)
            except (VaultAccessError, ValueError) as e:
                logger.warning("Oracle price unavailable: %s", e)
            return await session.get_vault_snapshot(address), session.network.currency

    snapshot, currency = _run(_show())
    if format == OutputFormat.JSON:
        _print_json(snapshot.model_dump(mode="json"))
    else:
        console.print(_snapshot_table(snapshot, currency))


@vault_app.command("list")
def vault_list(
    wallet: str = WalletOption,
    network: str | None = NetworkOption,
    format: OutputFormat = FormatOption,
) -> None:
    """List the vaults created by a wallet."""

    async def _list():
        async with VaultSession.open(network) as session:
            session.select_wallet(wallet)
            return await session.load_vaults(), session.network.currency

    snapshots, currency = _run(_list())
    if format == OutputFormat.JSON:
        _print_json([s.model_dump(mode="json") for s in snapshots])
        return
    if not snapshots:
        console.print("\n[yellow]No vaults found[/yellow]")
        return
    for snapshot in snapshots:
        console.print(_snapshot_table(snapshot, currency))


@vault_app.command("create")
def vault_create(
    wallet: str = WalletOption,
    unlock_time: int = typer.Option(0, "--unlock-time", help="Unlock timestamp (epoch seconds)"),
    target_price: int = typer.Option(0, "--target-price", help="Target price scaled by 1e8"),
    target_amount: int = typer.Option(0, "--target-amount", help="Goal amount in wei"),
    network: str | None = NetworkOption,
) -> None:
    """Create a vault through the network's factory."""

    async def _create():
        async with VaultSession.open(network) as session:
            session.select_wallet(wallet)
            tx_hash = await session.create_vault(unlock_time, target_price, target_amount)
            return session.network.explorer_url("tx", tx_hash)

    console.print(f"[bold green]✓ Vault created[/bold green] {_run(_create())}")


@vault_app.command("deposit")
def vault_deposit(
    address: str = typer.Argument(..., help="Vault contract address"),
    amount: str = typer.Argument(..., help="Amount in native units, e.g. 0.01"),
    wallet: str = WalletOption,
    network: str | None = NetworkOption,
) -> None:
    """Deposit native currency into a vault."""

    async def _deposit():
        async with VaultSession.open(network) as session:
            session.select_wallet(wallet)
            return await session.deposit(amount, address)

    _print_outcome("Deposit", _run(_deposit()))


@vault_app.command("withdraw")
def vault_withdraw(
    address: str = typer.Argument(..., help="Vault contract address"),
    wallet: str = WalletOption,
    network: str | None = NetworkOption,
) -> None:
    """Withdraw from an unlocked vault."""

    async def _withdraw():
        async with VaultSession.open(network) as session:
            session.select_wallet(wallet)
            return await session.withdraw(address)

    _print_outcome("Withdrawal", _run(_withdraw()))


# Prices


@app.command()
def price(
    network: str = typer.Argument(..., help="Network id"),
    watch: int = typer.Option(0, "--watch", help="Keep polling and print this many updates"),
    interval: float | None = typer.Option(None, "--interval", help="Seconds between polls"),
) -> None:
    """Show the on-chain oracle price of a network."""

    async def _price():
        async with PriceOraclePoller(interval=interval) as poller:
            if not watch:
                sample = await poller.fetch_once(network)
                console.print(f"{network}: [bold green]${sample.as_decimal():,.2f}[/bold green]")
                return
            async with poller.polling(network):
                for _ in range(watch):
                    await asyncio.sleep(poller.interval)
                    sample = poller.current(network)
                    console.print(f"{network}: [bold green]${sample.as_decimal():,.2f}[/bold green]")

    try:
        _run(_price())
    except ValueError as e:
        _fail(str(e))


@app.command("market-price")
def market_price(refresh: bool = typer.Option(False, "--refresh", help="Bypass the cache")) -> None:
    """Show the off-chain ETH/USD market price."""

    async def _market():
        async with MarketPricing() as pricing:
            return await pricing.get_eth_usd(force_refresh=refresh)

    value = _run(_market())
    if value is None:
        _fail("Market price unavailable")
    console.print(f"ETH/USD: [bold green]${value:,.2f}[/bold green]")


if __name__ == "__main__":
    app()
