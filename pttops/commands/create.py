"""create and rebuild commands."""

import asyncio
import logging

from pttops.commands import add_common_args, run_async, run_options, stack_config
from pttops.config import check_staged_files
from pttops.errors import StackNotFoundError
from pttops.provisioning.create import ProvisioningPipeline
from pttops.provisioning.destroy import destroy
from pttops.provisioning.lookups import build_stack_parameters
from pttops.provisioning.stack import StackHandle

logger = logging.getLogger(__name__)

_HIDDEN_FIELDS = {"kotsadm_password"}


def log_dry_run(config):
    logger.info("Config:")
    for key, value in config.to_dict().items():
        if key in _HIDDEN_FIELDS and value:
            value = "***"
        logger.info(f"  {key}: {value!r}")


async def provision(stack, options):
    """Resolve creation parameters for `stack` and run the provisioning pipeline."""
    parameters = await asyncio.to_thread(build_stack_parameters, stack.config, stack.session)
    return await ProvisioningPipeline(stack, options).create(parameters)


def handle_create(args):
    """Handle the create command."""
    run_async(_handle_create(run_options(args)))


async def _handle_create(options):
    config = stack_config(options, key_needed=True)
    if options.dry_run:
        log_dry_run(config)
        return

    stack = StackHandle(config, auto_rollback=options.rollback)
    await provision(stack, options)


def handle_rebuild(args):
    """Handle the rebuild command."""
    run_async(_handle_rebuild(run_options(args)))


async def _handle_rebuild(options):
    config = stack_config(options)
    if options.dry_run:
        log_dry_run(config)
        return

    stack = StackHandle(config, auto_rollback=options.rollback)
    if not await stack.exists():
        raise StackNotFoundError(f"Stack {config.stack_name} doesn't exist.  Try 'create' instead.")

    params = await stack.params()
    config.key_name = params.get("KeyName", config.key_name)
    check_staged_files(config)

    logger.info(f'Nuking and Paving Stack "{config.stack_name}".')
    logger.info(f'Using KeyPair: "{config.key_name}"')
    await destroy(stack, interactive=options.interactive)
    await provision(stack, options)


def register_create_command(subparsers):
    """Register the create and rebuild subcommands."""
    parser = subparsers.add_parser("create", help="Create an Orion PTT System stack")
    add_common_args(parser)
    parser.set_defaults(func=handle_create)

    parser = subparsers.add_parser("rebuild", help="Destroy and recreate an existing stack")
    add_common_args(parser)
    parser.set_defaults(func=handle_rebuild)
