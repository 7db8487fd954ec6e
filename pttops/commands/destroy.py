"""destroy command."""

import logging

from pttops.commands import add_common_args, run_async, run_options, stack_config
from pttops.commands.create import log_dry_run
from pttops.provisioning.destroy import destroy
from pttops.provisioning.stack import StackHandle

logger = logging.getLogger(__name__)


def handle_destroy(args):
    """Handle the destroy command."""
    run_async(_handle_destroy(run_options(args)))


async def _handle_destroy(options):
    config = stack_config(options)
    if options.dry_run:
        log_dry_run(config)
        return

    stack = StackHandle(config)
    await destroy(stack, interactive=options.interactive)


def register_destroy_command(subparsers):
    """Register the destroy subcommand."""
    parser = subparsers.add_parser("destroy", help="Destroy an Orion PTT System stack")
    add_common_args(parser)
    parser.set_defaults(func=handle_destroy)
