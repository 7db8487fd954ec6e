"""Shared CLI plumbing: common flags, config resolution, error reporting."""

import argparse
import asyncio
import logging
import sys

from botocore.exceptions import BotoCoreError, ClientError

from pttops.config import RunOptions, ask_for_value, load_config, resolve_config
from pttops.errors import OpsError

logger = logging.getLogger(__name__)


def add_common_args(parser, positional_name=True):
    """Flags shared by every stack subcommand."""
    if positional_name:
        parser.add_argument("stack", nargs="?", default="", help="Stack name")
    parser.add_argument("-n", "--name", default="", help="Name of stack (overrides the positional name)")
    parser.add_argument("-k", "--keyname", default="", help="SSH key name to use for the instance")
    parser.add_argument("-c", "--config", default="", help="Config file (default: ~/.orion-ptt-system.json)")
    parser.add_argument(
        "-r", "--rollback",
        action=argparse.BooleanOptionalAction,
        default=True,
        help="Delete the stack automatically if creation rolls back (default: true)",
    )
    parser.add_argument("-d", "--dryrun", action="store_true", help="Show the resolved configuration and exit")
    parser.add_argument("-s", "--stageonly", action="store_true", help="Stop after staging license and config files")


def run_options(args):
    """Build the per-invocation RunOptions from parsed arguments."""
    return RunOptions(
        name=getattr(args, "name", "") or getattr(args, "stack", "") or "",
        keyname=getattr(args, "keyname", ""),
        config_path=getattr(args, "config", ""),
        rollback=getattr(args, "rollback", True),
        dry_run=getattr(args, "dryrun", False),
        stage_only=getattr(args, "stageonly", False),
        interactive=sys.stdin.isatty(),
    )


def stack_config(options, key_needed=False):
    """Load the config file, apply flag overrides and prompt for what is missing."""
    config = load_config(options.config_path)
    if options.name:
        config.stack_name = options.name
    if options.keyname:
        config.key_name = options.keyname
    prompt = ask_for_value if options.interactive else None
    return resolve_config(config, key_needed=key_needed, prompt=prompt)


def run_async(coro):
    """Run a command coroutine, reporting tool errors and exiting non-zero on failure."""
    try:
        return asyncio.run(coro)
    except (OpsError, BotoCoreError, ClientError) as e:
        logger.error(f"Error: {e}")
        sys.exit(1)
