#!/usr/bin/env python3
"""Orion PTT System stack tools: CLI entrypoint."""

import argparse

from pttops.commands.config import register_config_commands
from pttops.commands.create import register_create_command
from pttops.commands.destroy import register_destroy_command
from pttops.commands.info import register_info_commands
from pttops.commands.server import register_server_command
from pttops.logging_setup import setup_cli_logging


def main():
    parser = argparse.ArgumentParser(description="Create and manage Orion PTT System stacks in AWS")
    subparsers = parser.add_subparsers(dest="command", required=True)

    register_create_command(subparsers)
    register_destroy_command(subparsers)
    register_info_commands(subparsers)
    register_config_commands(subparsers)
    register_server_command(subparsers)

    args = parser.parse_args()
    setup_cli_logging()
    args.func(args)


if __name__ == "__main__":
    main()
