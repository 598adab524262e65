#!/usr/bin/env python3
"""
sncloudctl - kubectl-like interface for StreamNative Cloud resources.

Each command runs one provider operation against the configured API
server. Resource attributes are read from YAML or JSON files.
"""

import asyncio
import json
import logging
import signal
from typing import Any, Awaitable, Callable, Dict

import click
import yaml
from tabulate import tabulate

from auth import AuthError
from config import get_config
from identity import MalformedIdentityError, parse_id
from immutability import ImmutableFieldError
from provider import Provider, ProviderError, ResourceState
from resources.registry import register_builtin_resources
from validation import ValidationError

logger = logging.getLogger(__name__)

# Shown masked in table output
SENSITIVE_ATTRIBUTES = {
    "private_key",
    "private_key_data",
    "token",
    "data",
    "string_data",
    "unity_secret",
    "open_catalog_secret",
}

OPERATION_ERRORS = (
    ProviderError,
    ValidationError,
    ImmutableFieldError,
    MalformedIdentityError,
    AuthError,
    ValueError,
)


def load_attributes(filename: str) -> Dict[str, Any]:
    """Read an attribute map from a YAML or JSON file."""
    with open(filename, "r") as f:
        if filename.endswith(".yaml") or filename.endswith(".yml"):
            data = yaml.safe_load(f)
        else:
            data = json.load(f)
    if not isinstance(data, dict):
        raise click.ClickException(f"{filename} must contain a mapping of attributes")
    return data


def run(operation: Callable[[Provider], Awaitable[Any]]) -> Any:
    """
    Run one provider operation to completion.

    SIGINT and SIGTERM set the provider's cancel event, so a long poll stops
    at its next tick instead of being killed mid-request.
    """

    async def runner():
        cancel_event = asyncio.Event()
        loop = asyncio.get_running_loop()

        def signal_handler():
            logger.info("Received shutdown signal, cancelling operation")
            cancel_event.set()

        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, signal_handler)

        provider = Provider.from_config(get_config(), cancel_event=cancel_event)
        return await operation(provider)

    try:
        return asyncio.run(runner())
    except OPERATION_ERRORS as e:
        raise click.ClickException(str(e)) from e


def echo_state(state: ResourceState, output: str) -> None:
    if output == "json":
        click.echo(json.dumps({"id": state.id, "attributes": state.attributes}, indent=2))
        return
    if output == "yaml":
        click.echo(
            yaml.dump(
                {"id": state.id, "attributes": state.attributes},
                default_flow_style=False,
            )
        )
        return

    rows = []
    for key in sorted(state.attributes):
        value = state.attributes[key]
        if key in SENSITIVE_ATTRIBUTES and value:
            value = "(sensitive)"
        elif isinstance(value, (dict, list)):
            value = json.dumps(value)
        rows.append([key, value])
    click.echo(f"ID: {state.id}")
    click.echo(tabulate(rows, headers=["Attribute", "Value"], tablefmt="grid"))


output_option = click.option(
    "--output",
    "-o",
    type=click.Choice(["table", "json", "yaml"]),
    default="table",
)


@click.group()
def cli():
    """StreamNative Cloud CLI - kubectl-like interface for cloud resources"""
    logging.basicConfig(
        level=get_config().logging.log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


@cli.command()
def kinds():
    """List the supported resource kinds"""
    registry = register_builtin_resources()
    rows = []
    for type_name in registry.list_types():
        adapter = registry.get(type_name)
        mode = "read-only" if adapter.read_only else "managed"
        rows.append([type_name, adapter.kind, adapter.plural, mode])
    click.echo(
        tabulate(rows, headers=["Type", "Kind", "Plural", "Mode"], tablefmt="grid")
    )


@cli.command()
@click.argument("kind")
@click.argument("filename", type=click.Path(exists=True))
@output_option
def apply(kind, filename, output):
    """Create a resource from a YAML/JSON attribute file"""
    attributes = load_attributes(filename)
    state = run(lambda provider: provider.create(kind, attributes))
    click.echo("Resource created successfully!")
    echo_state(state, output)


@cli.command()
@click.argument("kind")
@click.argument("resource_id")
@click.argument("filename", type=click.Path(exists=True))
@output_option
def update(kind, resource_id, filename, output):
    """Update a resource from a YAML/JSON attribute file"""
    new = load_attributes(filename)

    async def operation(provider: Provider):
        # The immutability check needs the current state, so only the
        # attributes themselves can be checked before the read
        parse_id(resource_id)
        provider.writable_adapter(kind).check_attributes(new)
        current = await provider.read(kind, resource_id)
        if current is None:
            raise ProviderError(kind, parse_id(resource_id), message="does not exist")
        return await provider.update(kind, resource_id, current.attributes, new)

    state = run(operation)
    click.echo("Resource updated successfully!")
    echo_state(state, output)


@cli.command()
@click.argument("kind")
@click.argument("resource_id")
@output_option
def get(kind, resource_id, output):
    """Show the current state of a resource"""
    state = run(lambda provider: provider.read(kind, resource_id))
    if state is None:
        raise click.ClickException(f"{kind} {resource_id} not found")
    echo_state(state, output)


@cli.command(name="import")
@click.argument("kind")
@click.argument("resource_id")
@output_option
def import_(kind, resource_id, output):
    """Import an existing resource by its organization/name id"""
    state = run(lambda provider: provider.import_resource(kind, resource_id))
    if state is None:
        raise click.ClickException(f"{kind} {resource_id} not found")
    echo_state(state, output)


@cli.command()
@click.argument("kind")
@click.argument("organization")
@click.argument("name")
@output_option
def lookup(kind, organization, name, output):
    """Look up any object by organization and name, read-only kinds included"""
    state = run(lambda provider: provider.lookup(kind, organization, name))
    echo_state(state, output)


@cli.command(name="list")
@click.argument("organization")
@click.argument("resource")
def list_(organization, resource):
    """List the object names of one collection, e.g. pulsarclusters"""
    state = run(lambda provider: provider.list_names(organization, resource))
    for name in state.attributes["names"]:
        click.echo(name)


@cli.command()
@click.argument("kind")
@click.argument("resource_id")
@click.confirmation_option(prompt="Are you sure you want to delete this resource?")
def delete(kind, resource_id):
    """Delete a resource and wait until it is gone"""
    run(lambda provider: provider.delete(kind, resource_id))
    click.echo(f"{kind} {resource_id} deleted")


@cli.command(name="check-destroyed")
@click.argument("kind")
@click.argument("resource_id")
def check_destroyed(kind, resource_id):
    """Verify that a resource no longer exists"""
    run(lambda provider: provider.check_destroyed(kind, resource_id))
    click.echo(f"{kind} {resource_id} is destroyed")


@cli.command()
@click.argument("kind")
@click.argument("old_file", type=click.Path(exists=True))
@click.argument("new_file", type=click.Path(exists=True))
def plan(kind, old_file, new_file):
    """Check a planned change against the immutable fields of a kind"""
    old = load_attributes(old_file)
    new = load_attributes(new_file)

    async def operation(provider: Provider):
        provider.validate_diff(kind, old, new)

    run(operation)
    click.echo("Change can be applied in place")


if __name__ == "__main__":
    cli()
