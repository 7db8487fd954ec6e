"""config and template commands."""

import logging
import os
import shlex
import subprocess
import sys

from pttops.commands import add_common_args, run_async, run_options, stack_config
from pttops.config import CONFIG_FILE_TEMPLATE, default_config_path
from pttops.provisioning.kots import render_kots_config

logger = logging.getLogger(__name__)

DEFAULT_EDITOR = "nano"


def seed_config_file(path):
    """Write the blank config template to `path` unless a file is already there."""
    if os.path.exists(path):
        return False
    with open(path, "w") as f:
        f.write(CONFIG_FILE_TEMPLATE)
    os.chmod(path, 0o600)
    logger.info(f"Created config file {path}")
    return True


def handle_config(args):
    """Handle the config command."""
    path = os.path.expanduser(args.config or default_config_path())
    seed_config_file(path)

    editor = os.environ.get("EDITOR") or DEFAULT_EDITOR
    try:
        rc = subprocess.run([*shlex.split(editor), path]).returncode
    except FileNotFoundError:
        logger.error(f"Error: editor '{editor}' not found. Set $EDITOR.")
        sys.exit(1)
    if rc != 0:
        logger.error(f"Editor exited with status {rc}")
        sys.exit(rc)


def handle_template(args):
    """Handle the template command."""
    run_async(_handle_template(run_options(args)))


async def _handle_template(options):
    config = stack_config(options)
    logger.info(render_kots_config(config))


def register_config_commands(subparsers):
    """Register the config and template subcommands."""
    parser = subparsers.add_parser("config", help="Edit the config file in $EDITOR")
    parser.add_argument("-c", "--config", default="", help="Config file (default: ~/.orion-ptt-system.json)")
    parser.set_defaults(func=handle_config)

    parser = subparsers.add_parser("template", help="Print the rendered KOTS config for a stack")
    add_common_args(parser)
    parser.set_defaults(func=handle_template)
