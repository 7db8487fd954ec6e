"""Read-only stack commands: list, status, get, cacert."""

import logging
import sys

import httpx

from pttops.commands import add_common_args, run_async, run_options, stack_config
from pttops.commands.create import log_dry_run
from pttops.config import load_config
from pttops.errors import OpsError
from pttops.provisioning.create import format_outputs, insecure_client
from pttops.provisioning.stack import StackHandle, fetch_template_description, template_url
from pttops.provisioning.trust import ca_url, fetch_ca_cert, write_ca_cert

logger = logging.getLogger(__name__)


def lookup_output(outputs, key):
    """Output value for `key`, matched case-insensitively. None if absent."""
    wanted = key.lower()
    for name, value in outputs.items():
        if name.lower() == wanted:
            return value
    return None


# ── list ──────────────────────────────────────────────────────────


def handle_list(args):
    """Handle the list command."""
    run_async(_handle_list(run_options(args)))


async def _handle_list(options):
    config = load_config(options.config_path)
    try:
        description = await fetch_template_description(template_url(config.beta))
    except httpx.HTTPError as e:
        raise OpsError(f"failed to fetch stack template: {e}") from e

    stacks = await StackHandle(config).list_stacks(description)
    logger.info("Stacks currently registered in CloudFormation:")
    for summary in stacks:
        logger.info(f"  {summary.name}")


# ── status ────────────────────────────────────────────────────────


def handle_status(args):
    """Handle the status command."""
    run_async(_handle_status(run_options(args)))


async def _handle_status(options):
    config = stack_config(options)
    if options.dry_run:
        log_dry_run(config)
        return

    stack = StackHandle(config)
    status = await stack.status()
    logger.info(f'Status for stack "{stack.name}": {status}')
    logger.info("Stack Outputs:")
    for row in format_outputs(await stack.outputs()):
        logger.info(row)


# ── get ───────────────────────────────────────────────────────────


def handle_get(args):
    """Handle the get command."""
    run_async(_handle_get(run_options(args), args.field, args.no_newline))


async def _handle_get(options, field, no_newline=False):
    config = stack_config(options)
    stack = StackHandle(config)
    value = lookup_output(await stack.outputs(), field)
    if value is None:
        raise OpsError(f"stack {stack.name} has no output named {field!r}")

    if no_newline:
        sys.stdout.write(value)
        sys.stdout.flush()
    else:
        logger.info(value)


# ── cacert ────────────────────────────────────────────────────────


def handle_cacert(args):
    """Handle the cacert command."""
    run_async(_handle_cacert(run_options(args)))


async def _handle_cacert(options):
    config = stack_config(options)
    if options.dry_run:
        log_dry_run(config)
        return

    stack = StackHandle(config)
    ca_host = (await stack.outputs()).get("CA", "")
    if not ca_host:
        raise OpsError(f"stack {stack.name} has no CA output")

    logger.info(f"CA Certificate URL: {ca_url(ca_host)}")
    logger.info("Why don't I fetch that for you?\n")
    try:
        async with insecure_client() as client:
            data = await fetch_ca_cert(ca_host, client)
    except httpx.HTTPError as e:
        raise OpsError(
            f"failed to fetch CA certificate from {ca_url(ca_host)}: {e}\n\n"
            "Is your stack fully configured?  There won't be a CA until the application is deployed."
        ) from e
    write_ca_cert(ca_host, data)


def register_info_commands(subparsers):
    """Register the list, status, get and cacert subcommands."""
    parser = subparsers.add_parser("list", help="List Orion PTT System stacks")
    add_common_args(parser, positional_name=False)
    parser.set_defaults(func=handle_list)

    parser = subparsers.add_parser("status", help="Show a stack's status and outputs")
    add_common_args(parser)
    parser.set_defaults(func=handle_status)

    parser = subparsers.add_parser("get", help="Print one stack output (e.g. address, login, ca)")
    parser.add_argument("field", help="Output to print, case-insensitive")
    add_common_args(parser)
    parser.add_argument("--no-newline", action="store_true", help="Do not print a trailing newline")
    parser.set_defaults(func=handle_get)

    parser = subparsers.add_parser("cacert", help="Download a stack's CA certificate")
    add_common_args(parser)
    parser.set_defaults(func=handle_cacert)
