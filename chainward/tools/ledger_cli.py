#!/usr/bin/env python3
"""
Command-line interface for the compliance ledger and retention engine.

Admin tools to verify the hash chain, inspect recent events and run or
inspect retention policies.
"""

import json
import sys

import click
from loguru import logger

from ..audit.models import EventCategory
from ..bootstrap import build_components
from ..core.config import ChainwardConfig
from ..core.errors import ChainwardError


def _echo_json(data) -> None:
    click.echo(json.dumps(data, indent=2, default=str))


@click.group()
@click.option("--config", "config_path", default=None, help="Path to YAML configuration file")
@click.option("--base-dir", default=None, type=click.Path(file_okay=False), help="Override the data directory")
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    default="WARNING",
    help="Log level for diagnostic output (stderr)",
)
@click.pass_context
def ledger_cli(ctx, config_path, base_dir, log_level):
    """Chainward compliance ledger tools."""
    logger.remove()
    logger.add(sys.stderr, level=log_level.upper())

    try:
        config = ChainwardConfig.load_from_file(config_path)
        if base_dir:
            config = ChainwardConfig.model_validate({**config.model_dump(), "base_dir": base_dir})
        ctx.obj = build_components(config)
    except ChainwardError as e:
        click.echo(f"❌ {e}", err=True)
        ctx.exit(2)


@ledger_cli.command()
@click.pass_obj
def verify(components):
    """Replay the hash chain and report integrity."""
    report = components.verifier.verify()
    _echo_json(report.model_dump(mode="json"))
    if not report.valid:
        click.echo(
            f"❌ Chain broken at event {report.first_invalid_event_id} "
            f"({report.valid_events}/{report.total_events} valid)",
            err=True,
        )
        sys.exit(1)
    click.echo(f"✓ {report.total_events} events verified", err=True)


@ledger_cli.command()
@click.option(
    "--category",
    type=click.Choice([c.value for c in EventCategory]),
    default=None,
    help="Only events of this category",
)
@click.option("--limit", default=20, show_default=True, help="Maximum number of events")
@click.pass_obj
def events(components, category, limit):
    """Print recent events, newest first, one JSON object per line."""
    for event in components.ledger.read(category=category, limit=limit):
        click.echo(json.dumps(event.to_record()))


@ledger_cli.command()
@click.pass_obj
def stats(components):
    """Ledger statistics."""
    _echo_json(components.ledger.get_stats())


@ledger_cli.group()
def retention():
    """Retention policy tools."""


@retention.command("run")
@click.option("--force", "policy_id", default=None, help="Run this policy now, ignoring its schedule")
@click.pass_obj
def run_retention(components, policy_id):
    """Run due retention policies (or one policy with --force)."""
    if policy_id:
        results = components.engine.force_run_policy(policy_id)
        if not results:
            click.echo(f"❌ Unknown policy: {policy_id}", err=True)
            sys.exit(1)
    else:
        results = components.engine.run_due_policies()

    _echo_json([r.model_dump(mode="json") for r in results])
    if any(not r.success for r in results):
        sys.exit(1)


@retention.command("status")
@click.pass_obj
def retention_status(components):
    """Last runs and time until each policy is due."""
    _echo_json(components.engine.get_status())


@retention.command("policies")
@click.pass_obj
def list_policies(components):
    """List built-in and user policies."""
    store = components.policy_store
    _echo_json([
        {**p.to_record(), "builtin": store.is_builtin(p.id)}
        for p in store.list()
    ])


def main():
    ledger_cli()


if __name__ == "__main__":
    main()
