#!/usr/bin/env python3
"""
🧮 cidrmath CLI
- Summarize, diff, overlap and containment over CIDR/range lists
- VLSM planning and next-available subnet search
- IPv4 and IPv6, one address per line, bad lines reported not fatal
"""

import logging

import click
import yaml
from rich import box
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table

from cidrmath import __version__
from cidrmath.config import config_file, load_settings
from cidrmath.engine import CidrEngine
from cidrmath.errors import InvalidInput

console = Console()
engine = None

MODES = ["exact", "minimal-cover", "constrained"]


def setup_logging(debug: bool):
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_path=False)],
        force=True,
    )


def report_problems(result):
    """Print warnings and errors of a batch result"""
    for warning in getattr(result, "warnings", []):
        click.echo(f"⚠️  {warning}")
    for error in result.errors:
        click.echo(f"❌ {error}")


def finish(result, produced: bool):
    """Exit 1 when there are errors and nothing was produced"""
    report_problems(result)
    if result.errors and not produced:
        raise SystemExit(1)


def print_cidrs(title: str, ipv4, ipv6):
    table = Table("Family", title=title, box=box.ROUNDED)
    table.add_column("CIDR", no_wrap=True)
    for cidr in ipv4:
        table.add_row("IPv4", cidr)
    for cidr in ipv6:
        table.add_row("IPv6", cidr)
    console.print(table)


def print_stats(stats: dict):
    table = Table("Statistic", "Value", box=box.SIMPLE)
    for key, value in stats.items():
        if isinstance(value, int) and not isinstance(value, bool):
            value = f"{value:,}"
        table.add_row(key.replace("_", " "), str(value))
    console.print(table)


@click.group(context_settings={"help_option_names": ["-h", "--help"]})
@click.version_option(__version__, "--version", "-v")
@click.option(
    "--config",
    "-c",
    "config_path",
    type=click.Path(exists=True),
    help="Path to config.yaml file",
)
@click.option("--debug", is_flag=True, help="Enable debug logging")
def cli(config_path, debug):
    """🧮 cidrmath - IP range algebra and CIDR planning

    Inputs are files (or - for stdin) with one IP, IP/prefix or IP1-IP2 per line.
    """
    global engine
    setup_logging(debug)
    try:
        engine = CidrEngine(load_settings(config_path, create=True))
    except InvalidInput as e:
        raise click.UsageError(str(e))


@cli.command()
def quickstart():
    """🚀 Quickstart guide"""
    click.echo("""
1️⃣  printf '10.0.0.0/25\\n10.0.0.128/25\\n' | cidrmath summarize -
2️⃣  cidrmath diff all.txt reserved.txt --alignment exact
3️⃣  cidrmath contains supernets.txt candidates.txt
4️⃣  cidrmath vlsm 10.0.0.0/24 requests.txt --strategy fit-best
5️⃣  cidrmath next-available pools.txt used.txt --prefix 26 --policy best-fit
    """)


# ============ SET OPERATIONS ============


@cli.command()
@click.argument("source", type=click.File("r"), default="-")
@click.option(
    "--mode",
    "-m",
    type=click.Choice(["exact", "minimal-cover"]),
    default="exact",
    help="exact keeps coverage identical; minimal-cover may round outward",
)
def summarize(source, mode):
    """📦 Merge and summarize CIDRs, ranges and IPs"""
    result = engine.summarize(source.read(), mode)
    if result.ipv4 or result.ipv6:
        print_cidrs("Summarized", result.ipv4, result.ipv6)
        print_stats(result.stats)
    finish(result, bool(result.ipv4 or result.ipv6))


@cli.command()
@click.argument("source", type=click.File("r"), default="-")
@click.option("--mode", "-m", type=click.Choice(MODES), default="exact")
@click.option("--prefix", "-p", type=int, help="Prefix length for constrained mode")
def decompose(source, mode, prefix):
    """🔢 Convert ranges to CIDR blocks"""
    if mode == "constrained" and prefix is None:
        raise click.BadParameter("constrained mode requires --prefix", param_hint="--prefix")
    result = engine.decompose(source.read(), mode, prefix)
    if result.ipv4 or result.ipv6:
        print_cidrs("CIDR blocks", result.ipv4, result.ipv6)
    finish(result, bool(result.ipv4 or result.ipv6))


@cli.command()
@click.argument("set_a", type=click.File("r"))
@click.argument("set_b", type=click.File("r"))
@click.option("--alignment", "-a", type=click.Choice(MODES), default="exact")
@click.option("--prefix", "-p", type=int, help="Prefix length for constrained alignment")
def diff(set_a, set_b, alignment, prefix):
    """➖ Addresses in SET_A that are not in SET_B"""
    if alignment == "constrained" and prefix is None:
        raise click.BadParameter("constrained alignment requires --prefix", param_hint="--prefix")
    result = engine.difference(set_a.read(), set_b.read(), alignment, prefix)
    print_cidrs("A - B", result.ipv4, result.ipv6)
    print_stats(result.stats)
    finish(result, bool(result.stats))


@cli.command()
@click.argument("set_a", type=click.File("r"))
@click.argument("set_b", type=click.File("r"))
@click.option("--no-merge", is_flag=True, help="Do not merge each set before totalling")
def overlap(set_a, set_b, no_merge):
    """🔀 Addresses present in both sets"""
    result = engine.overlap(set_a.read(), set_b.read(), merge_inputs=not no_merge)
    if result.has_overlap:
        print_cidrs("A ∩ B", result.ipv4, result.ipv6)
    else:
        click.echo("No overlap.")
    print_stats(result.stats)
    finish(result, bool(result.stats))


@cli.command()
@click.argument("containers", type=click.File("r"))
@click.argument("candidates", type=click.File("r"))
@click.option("--no-merge", is_flag=True, help="Check against each container separately")
def contains(containers, candidates, no_merge):
    """🎯 Check whether each candidate is covered by the containers"""
    result = engine.containment(containers.read(), candidates.read(), merge_containers=not no_merge)

    table = Table(box=box.ROUNDED)
    table.add_column("Candidate", no_wrap=True)
    for header in ("Status", "Coverage", "Gaps", "Matched by"):
        table.add_column(header)
    for check in result.checks:
        table.add_row(
            check.input,
            check.status.value,
            f"{check.coverage:g}%",
            "\n".join(check.gaps) or "-",
            "\n".join(check.matching_containers) or "-",
        )
    console.print(table)
    print_stats(result.stats)
    finish(result, bool(result.checks))


@cli.command()
@click.argument("source", type=click.File("r"), default="-")
@click.option("--prefix", "-p", type=int, required=True, help="Target prefix length")
def align(source, prefix):
    """📐 Check entries against a prefix boundary"""
    result = engine.check_alignment(source.read(), prefix)

    table = Table("Input", "Aligned", "Detail", box=box.ROUNDED)
    for check in result.checks:
        if check.is_aligned:
            table.add_row(check.input, "✅", check.aligned_cidr)
            continue
        lines = [check.reason]
        for suggestion in check.suggestions:
            lines.append(f"• {suggestion.description}: {', '.join(suggestion.cidrs)}")
        table.add_row(check.input, "❌", "\n".join(lines))
    console.print(table)
    print_stats(result.stats)
    finish(result, bool(result.checks))


# ============ PLANNING ============


@cli.command()
@click.argument("parent")
@click.argument("requests", type=click.File("r"))
@click.option(
    "--strategy",
    "-s",
    type=click.Choice(["fit-best", "preserve-order"]),
    help="fit-best places the largest request first",
)
def vlsm(parent, requests, strategy):
    """🧩 Plan subnets inside PARENT for 'name hosts' lines in REQUESTS"""
    result = engine.vlsm(parent, requests.read(), strategy)
    if result.parent is None:
        finish(result, False)
        return

    console.print(Panel(f"🏢 VLSM plan for {result.parent}", style="bold cyan"))
    table = Table("Name", "Hosts", box=box.ROUNDED)
    table.add_column("CIDR", no_wrap=True)
    for header in ("Mask", "Usable range", "Broadcast", "Wasted"):
        table.add_column(header)
    for s in result.subnets:
        table.add_row(
            s.name,
            f"{s.hosts_needed}/{s.hosts_provided}",
            s.cidr,
            s.mask,
            f"{s.first_usable} - {s.last_usable}",
            s.broadcast,
            str(s.wasted_hosts),
        )
    console.print(table)
    if result.free_blocks:
        console.print(f"Free: {', '.join(result.free_blocks)}")
    print_stats(result.stats)
    finish(result, bool(result.subnets))


@cli.command(name="next-available")
@click.argument("pools", type=click.File("r"))
@click.argument("allocations", type=click.File("r"), required=False)
@click.option("--prefix", "-p", type=int, help="Desired prefix length")
@click.option("--hosts", "-n", "host_count", type=int, help="Desired host count")
@click.option("--policy", type=click.Choice(["first-fit", "best-fit"]))
@click.option("--max", "max_candidates", type=int, help="Maximum candidates to show")
def next_available(pools, allocations, prefix, host_count, policy, max_candidates):
    """🔍 Find free subnets in POOLS not used by ALLOCATIONS"""
    result = engine.next_available(
        pools.read(),
        allocations.read() if allocations else "",
        prefix_length=prefix,
        host_count=host_count,
        policy=policy,
        max_candidates=max_candidates,
    )
    if result.candidates:
        table = Table(box=box.ROUNDED)
        table.add_column("CIDR", no_wrap=True)
        for header in ("Usable hosts", "First", "Last", "Gap", "Pool"):
            table.add_column(header)
        for c in result.candidates:
            table.add_row(c.cidr, f"{c.usable_hosts:,}", c.first_host, c.last_host, f"{c.gap_size:,}", c.parent_pool)
        console.print(table)
    elif not result.errors:
        click.echo("No free subnet of the requested size.")
    if result.stats:
        print_stats(result.stats)
    finish(result, bool(result.stats))


# ============ CONFIG ============


@cli.group()
def config():
    """⚙️ Configuration"""
    pass


@config.command()
def show():
    """Show the active settings"""
    settings = engine.settings
    click.echo(f"# {settings.source or 'built-in defaults'}")
    click.echo(yaml.dump(settings.to_dict(), default_flow_style=False).rstrip())


@config.command()
def path():
    """Print the default config file location"""
    click.echo(str(config_file()))


if __name__ == "__main__":
    cli()
