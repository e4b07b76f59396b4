#!/usr/bin/env python3
# ODFetch - CLI
# SPDX-License-Identifier: Apache-2.0

"""
Command-line interface for open data retrieval.

Usage:
    odfetch retrieve msl.grib2 --source aws
    odfetch download fc.grib2 --date 20240101 --time 0
    odfetch latest --source azure
    odfetch urls --date -1 --time 12
"""

import functools
import logging
import sys

import click
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from odfetch import __version__
from odfetch.client import Client, RetrieveResult
from odfetch.config import ClientOptions
from odfetch.errors import OpenDataError
from odfetch.request import Request

console = Console()
logger = logging.getLogger(__name__)

# Demonstration request: 10-day mean sea level pressure forecast
DEMO_REQUEST = {"type": "fc", "step": 240, "param": "msl"}


def common_options(func):
    """Mirror and run selection shared by every command."""

    @click.option("--source", default=None, help="Mirror name or base URL (default: ecmwf)")
    @click.option("--model", default=None, help="Model directory (default: ifs)")
    @click.option("--resol", default=None, help="Resolution directory (default: 0p25)")
    @click.option("--date", default=None, help="Run date: YYYYMMDD, YYYY-MM-DD or -N days")
    @click.option("--time", "time_", default=None, help="Run hour: 0, 6, 12 or 18")
    @click.option("--verbose", "-v", is_flag=True, help="Debug logging")
    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        return func(*args, **kwargs)

    return wrapper


def build_client(source, model, resol, verbose) -> Client:
    logging.basicConfig(level=logging.DEBUG if verbose else logging.INFO, force=True)
    overrides = {
        k: v for k, v in (("source", source), ("model", model), ("resol", resol)) if v
    }
    return Client(ClientOptions.from_env(**overrides))


def build_request(base: dict, date, time_) -> Request:
    request = Request(**base)
    if date:
        request.set("date", date)
    if time_:
        request.set("time", time_)
    return request


def fail(error: Exception):
    stage = getattr(error, "stage", "client")
    console.print(f"[red]Error ({stage}): {escape(str(error))}[/]")
    sys.exit(1)


def show_result(result: RetrieveResult, title: str):
    table = Table(title=title, show_header=False)
    table.add_column("Property", style="cyan")
    table.add_column("Value", style="green")

    table.add_row("Target", result.target_path)
    table.add_row("Run", f"{result.datetime:%Y-%m-%d %H}z")
    table.add_row("Size", f"{result.size_bytes:,} bytes")
    if result.field_count is not None:
        table.add_row("Fields", str(result.field_count))
    for url in result.urls:
        table.add_row("URL", url)

    console.print(table)


@click.group()
@click.version_option(version=__version__, prog_name="odfetch")
def main():
    """
    ODFetch - ECMWF open data retrieval

    Download forecast files from the public mirrors, or only the fields you
    need using the index sidecars and HTTP range requests.
    """
    pass


@main.command()
@click.argument("target")
@common_options
def retrieve(target, source, model, resol, date, time_, verbose):
    """
    Retrieve only the matching fields into TARGET.

    Fetches mean sea level pressure at step 240 of the latest (or given) run.
    """
    console.print(Panel.fit(
        "[bold blue]ODFetch - Selective Retrieval[/]\n"
        f"param=msl step=240 -> {target}",
        border_style="blue",
    ))
    try:
        client = build_client(source, model, resol, verbose)
        result = client.retrieve(build_request(DEMO_REQUEST, date, time_), target=target)
    except OpenDataError as e:
        fail(e)
    show_result(result, "Retrieved")


@main.command()
@click.argument("target")
@common_options
def download(target, source, model, resol, date, time_, verbose):
    """Download the whole step 240 forecast file into TARGET."""
    base = {k: v for k, v in DEMO_REQUEST.items() if k != "param"}
    console.print(Panel.fit(
        "[bold blue]ODFetch - Whole-File Download[/]\n"
        f"step=240 -> {target}",
        border_style="blue",
    ))
    try:
        client = build_client(source, model, resol, verbose)
        result = client.download(target, request=build_request(base, date, time_))
    except OpenDataError as e:
        fail(e)
    show_result(result, "Downloaded")


@main.command()
@common_options
def latest(source, model, resol, date, time_, verbose):
    """Show the most recent run available on the mirror."""
    if date:
        raise click.UsageError("latest searches for the run date; --date cannot be given")
    try:
        client = build_client(source, model, resol, verbose)
        run = client.latest(build_request(DEMO_REQUEST, None, time_))
    except OpenDataError as e:
        fail(e)
    console.print(f"[green]Latest run on {client.options.source}:[/] {run:%Y-%m-%d %H}z")


@main.command()
@click.option("--step", "steps", multiple=True, help="Forecast step (repeatable, default: 240)")
@common_options
def urls(steps, source, model, resol, date, time_, verbose):
    """List data and index URLs for a request without downloading."""
    base = {"type": "fc", "step": list(steps) if steps else 240}
    try:
        client = build_client(source, model, resol, verbose)
        locations = client.resolve(build_request(base, date, time_))
    except OpenDataError as e:
        fail(e)

    table = Table(title=f"Locations on {client.options.source}")
    table.add_column("Run", style="cyan", no_wrap=True)
    table.add_column("Data URL", style="green")
    table.add_column("Index URL", style="dim")
    for location in locations:
        table.add_row(
            f"{location.resolved_date} {location.resolved_time:02d}z",
            location.data_url,
            location.index_url,
        )
    console.print(table)


if __name__ == "__main__":
    main()
