#!/usr/bin/env python3
"""
🧮 Mini IPAM CLI
- Buddy-system pool allocation (no overlaps, buddies merge on release)
- Host addresses leased from allocated pools
- State snapshotted to a local database after every change
"""

import ipaddress
import json
import logging
import os
import shutil
from datetime import datetime

import click
from rich import box
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table

from allocator import LOCAL_ADDRESS_SPACE, LocalAllocator
from config import load_settings
from driver import MASK_LENGTH_OPTION, Driver
from errors import CorruptSnapshot, IPAMError, SnapshotMissing
from pools import as_pool
from snapshot import SnapshotStore

console = Console()
logger = logging.getLogger("minipam")


def setup_logging(level: str) -> None:
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )


def open_allocator(store, default_pools, autosave=True) -> LocalAllocator:
    """Load the saved allocator state, or start over from the default pools"""
    try:
        allocator = LocalAllocator.from_snapshot(store, autosave=autosave)
    except (SnapshotMissing, CorruptSnapshot) as e:
        logger.info("Failed to load allocator state: %s", e)
        if isinstance(e, CorruptSnapshot):
            store.discard()

        pools = [as_pool(cidr) for cidr in default_pools]

        allocator = LocalAllocator(store, autosave=autosave)
        try:
            for pool in pools:
                allocator.add_pool(pool)
                logger.info("Added pool to allocator: %s", pool)
            # Nothing is handed out before the fresh state is on disk
            allocator.save()
        except Exception:
            allocator.close()
            raise
        return allocator

    dump = allocator.dump()
    logger.info("Successfully loaded allocator state")
    logger.debug("Free pools: %s", dump.free)
    logger.debug("Allocated: %s", dump.allocated)
    return allocator


class Minipam:
    """Settings plus the allocator and driver, opened on first use"""

    def __init__(self, settings):
        self.settings = settings
        self.store = None
        self._allocator = None
        self._driver = None

    @property
    def allocator(self) -> LocalAllocator:
        if self._allocator is None:
            self.store = SnapshotStore(self.settings.snapshot_url)
            self._allocator = open_allocator(self.store, self.settings.default_pools)
        return self._allocator

    @property
    def driver(self) -> Driver:
        if self._driver is None:
            self._driver = Driver(
                local=self.allocator,
                default_mask_length=self.settings.default_mask_length,
            )
        return self._driver

    def close(self):
        if self._allocator is not None:
            self._allocator.close()
            self._allocator = None
        if self.store is not None:
            self.store.dispose()


def fail(message):
    click.echo(f"❌ {message}")
    click.get_current_context().exit(1)


def pool_id(value: str) -> str:
    """Accept bare CIDRs as pools of the local address space"""
    if ":" in value:
        return value
    return f"{LOCAL_ADDRESS_SPACE}:{value}"


def usage_bar(percent: float) -> str:
    return "█" * min(int(percent / 5), 20) + "░" * max(20 - int(percent / 5), 0)


def leases(snapshot):
    """Split allocated identifiers into leased pools and leased addresses"""
    pools, addresses = [], []
    for key in snapshot.allocated:
        if "/" in key:
            pools.append(ipaddress.IPv4Network(key))
        else:
            addresses.append(ipaddress.IPv4Address(key))
    return sorted(pools), sorted(addresses)


@click.group(context_settings={"help_option_names": ["-h", "--help"]})
@click.version_option("1.0", "--version", "-v")
@click.option(
    "--config",
    "-c",
    "config_file",
    type=click.Path(exists=True),
    help="Path to config.yaml file",
)
@click.option("--verbose", is_flag=True, help="Log at DEBUG level")
@click.pass_context
def cli(ctx, config_file, verbose):
    """🧮 Mini IPAM CLI

    Buddy-system pools | Host leases | Snapshotted state
    Pool (/0-/31) → Address
    """
    settings = load_settings(config_file)
    setup_logging("DEBUG" if verbose else settings.log_level)

    app = Minipam(settings)
    ctx.obj = app
    ctx.call_on_close(app.close)


@cli.command()
def quickstart():
    """🚀 Quickstart guide"""
    click.echo("""
1️⃣  ./minipam.py pool add 10.0.0.0/16
2️⃣  ./minipam.py pool request --prefix 24
3️⃣  ./minipam.py address request 10.0.0.0/24
4️⃣  ./minipam.py address request 10.0.0.0/24 --ip 10.0.0.10
5️⃣  ./minipam.py report tui
    """)


# ============ POOLS ============


@cli.group()
def pool():
    """📦 Pools (/0-/31) - Power-of-two blocks"""
    pass


@pool.command(name="add")
@click.argument("cidr")
@click.pass_obj
def add_pool(app, cidr):
    """Add a subnet to the free space"""
    try:
        app.allocator.add_pool(cidr)
    except IPAMError as e:
        fail(e)
    click.echo(f"✅ Added Pool: {cidr}")


@pool.command(name="request")
@click.option(
    "--prefix",
    "-p",
    type=int,
    default=None,
    help="CIDR prefix (/0-/31), defaults to the configured mask length",
)
@click.option("--address-space", "-a", default=LOCAL_ADDRESS_SPACE, show_default=True)
@click.pass_obj
def request_pool(app, prefix, address_space):
    """Allocate a pool from the free space"""
    req = {"AddressSpace": address_space, "Options": {}}
    if prefix is not None:
        req["Options"][MASK_LENGTH_OPTION] = str(prefix)

    try:
        res = app.driver.request_pool(req)
    except IPAMError as e:
        fail(e)
    click.echo(f"✅ Allocated Pool: {res['Pool']} | ID: {res['PoolID']}")


@pool.command(name="release")
@click.argument("pool_ref", metavar="POOL_ID")
@click.pass_obj
def release_pool(app, pool_ref):
    """Release an allocated pool (POOL_ID or CIDR)"""
    try:
        app.driver.release_pool({"PoolID": pool_id(pool_ref)})
    except IPAMError as e:
        fail(e)
    click.echo(f"✅ Released Pool: {pool_ref}")


@pool.command(name="list")
@click.pass_obj
def list_pools(app):
    """List free and allocated pools"""
    try:
        snapshot = app.allocator.dump()
    except IPAMError as e:
        fail(e)
    allocated, _ = leases(snapshot)
    free = sorted(ipaddress.IPv4Network(cidr) for cidr in snapshot.free)

    if not free and not allocated:
        click.echo("No pools found.")
        return

    table = Table("CIDR", "Prefix", "#Addresses", "State", box=box.ROUNDED)
    for net in allocated:
        table.add_row(str(net), f"/{net.prefixlen}", str(net.num_addresses), "allocated")
    for net in free:
        table.add_row(str(net), f"/{net.prefixlen}", str(net.num_addresses), "free")
    console.print(table)


# ============ ADDRESSES ============


@cli.group()
def address():
    """🔢 Addresses - Leased from allocated pools"""
    pass


@address.command(name="request")
@click.argument("pool_ref", metavar="POOL_ID")
@click.option("--ip", "-i", default=None, help="Specific address to lease")
@click.pass_obj
def request_address(app, pool_ref, ip):
    """Lease an address from an allocated pool"""
    try:
        res = app.driver.request_address({"PoolID": pool_id(pool_ref), "Address": ip})
    except IPAMError as e:
        fail(e)
    click.echo(f"✅ Allocated Address: {res['Address']}")


@address.command(name="release")
@click.argument("pool_ref", metavar="POOL_ID")
@click.argument("ip")
@click.pass_obj
def release_address(app, pool_ref, ip):
    """Release a leased address"""
    try:
        app.driver.release_address({"PoolID": pool_id(pool_ref), "Address": ip})
    except IPAMError as e:
        fail(e)
    click.echo(f"✅ Released Address: {ip}")


@address.command(name="list")
@click.pass_obj
def list_addresses(app):
    """List leased addresses"""
    try:
        snapshot = app.allocator.dump()
    except IPAMError as e:
        fail(e)
    pools, addresses = leases(snapshot)
    if not addresses:
        click.echo("No addresses found.")
        return

    table = Table("Address", "Pool", box=box.ROUNDED)
    for ip in addresses:
        owner = next((str(net) for net in pools if ip in net), "?")
        table.add_row(str(ip), owner)
    console.print(table)


# ============ REPORTS ============


@cli.group()
def report():
    """📊 Reports"""
    pass


@report.command()
@click.pass_obj
def tui(app):
    """Show utilization report"""
    try:
        snapshot = app.allocator.dump()
    except IPAMError as e:
        fail(e)
    pools, addresses = leases(snapshot)
    free = [ipaddress.IPv4Network(cidr) for cidr in snapshot.free]

    console.print(Panel("🧮 IPAM Utilization Report", style="bold cyan"))

    free_ips = sum(net.num_addresses for net in free)
    leased_ips = sum(net.num_addresses for net in pools)
    total = free_ips + leased_ips
    util = (leased_ips / total) * 100 if total > 0 else 0
    console.print(f"\n🗂️  Address space: {total} IPs")
    console.print(
        f"   Allocated: {leased_ips}/{total} IPs {usage_bar(util)} {util:.1f}%"
    )
    console.print(f"   Free: {len(free)} blocks")

    for i, net in enumerate(pools):
        hosts = max(net.num_addresses - 2, 0)
        used = [ip for ip in addresses if ip in net]
        util_percent = (len(used) / hosts) * 100 if hosts > 0 else 0

        # Tree characters
        is_last = i == len(pools) - 1
        prefix = "└──" if is_last else "├──"
        connector = "    " if is_last else "│   "

        console.print(f"{prefix} 📦 {net}")
        console.print(
            f"{connector} Used: {len(used)}/{hosts} IPs "
            f"{usage_bar(util_percent)} {util_percent:.1f}%"
        )

    if not pools:
        console.print("   (no pools allocated)")


# ============ SNAPSHOTS ============


@cli.group()
def snapshot():
    """💾 Snapshots"""
    pass


@snapshot.command(name="show")
@click.option("--json", "as_json", is_flag=True, help="Print the raw dump as JSON")
@click.pass_obj
def show_snapshot(app, as_json):
    """Show the allocator state"""
    try:
        dump = app.allocator.dump()
        info = app.store.info()
    except IPAMError as e:
        fail(e)

    if as_json:
        click.echo(json.dumps(dump.to_dict(), indent=2))
        return

    saved = info.saved_at.strftime("%Y-%m-%d %H:%M:%S") if info else "never"
    click.echo(f"Snapshot: {app.settings.snapshot_url} (saved: {saved})")

    table = Table("Free", box=box.ROUNDED)
    for cidr in dump.free:
        table.add_row(cidr)
    console.print(table)

    table = Table("Allocated", box=box.ROUNDED)
    for key in dump.allocated:
        table.add_row(key)
    console.print(table)


@snapshot.command(name="backup")
@click.pass_obj
def backup_snapshot(app):
    """Create a timestamped backup of the snapshot database"""
    try:
        app.allocator.save()
    except IPAMError as e:
        fail(e)

    db_file = app.store.path
    if not db_file or not os.path.exists(db_file):
        # For other databases or memory, skip backup
        click.echo("⚠️  Backup not supported for this database type")
        return

    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    backup_file = f"minipam_{timestamp}.db"
    shutil.copy(db_file, backup_file)
    click.echo(f"✅ Backup: {backup_file}")


if __name__ == "__main__":
    cli()
