"""Stack configuration: loading, interactive resolution, shared network config."""

import base64
import binascii
import json
import logging
import os
import re
from dataclasses import asdict, dataclass, fields

from pttops.errors import ConfigError

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_FILE = ".orion-ptt-system.json"
DEFAULT_INSTANCE_TYPE = "m5.2xlarge"
DEFAULT_AMI_OWNER = "self"

CONFIG_FILE_TEMPLATE = """{
  "stack_name": "",
  "key_name": "",
  "user_name": "",
  "dns_domain": "",
  "kotsadm_password": "",
  "license_file": "",
  "instance_type": "m5.2xlarge",
  "ami_name": "orion-base*",
  "ami_owner": "self",
  "config_template": "",
  "shared_config": ""
}
"""

_S3_URL = re.compile(r"https?://(.*)\.s3\.(.*)\.amazonaws\.com/?(.*)?")


@dataclass
class StackConfig:
    """Config record for one Orion PTT System stack, as stored in the JSON config file."""

    stack_name: str = ""
    key_name: str = ""
    dns_domain: str = ""
    instance_type: str = ""
    user_name: str = ""
    license_file: str = ""
    config_template: str = ""
    kotsadm_password: str = ""
    ami_name: str = ""
    ami_owner: str = DEFAULT_AMI_OWNER
    shared_config: str = ""
    beta: bool = False

    @classmethod
    def from_dict(cls, data):
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in data.items() if k in known})

    def to_dict(self):
        return asdict(self)


@dataclass
class RunOptions:
    """Per-invocation options collected from the command line."""

    name: str = ""
    keyname: str = ""
    config_path: str = ""
    rollback: bool = True
    dry_run: bool = False
    stage_only: bool = False
    interactive: bool = True


def default_config_path():
    return os.path.join(os.path.expanduser("~"), DEFAULT_CONFIG_FILE)


def load_config(config_path=None):
    """Load a StackConfig from a JSON file.

    A missing file is not an error: it yields an empty config whose fields
    are filled in later by resolve_config().
    """
    if not config_path or config_path == f"~/{DEFAULT_CONFIG_FILE}":
        config_path = default_config_path()
    config_path = os.path.expanduser(config_path)

    if not os.path.isfile(config_path):
        logger.debug(f"No config file at {config_path}, starting empty.")
        return StackConfig()

    try:
        with open(config_path) as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        raise ConfigError(f"failed to parse json in {config_path}: {e}") from e
    except OSError as e:
        raise ConfigError(f"failed to read config file {config_path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigError(f"config file {config_path} must hold a JSON object")
    return StackConfig.from_dict(data)


def resolve_config(config, key_needed=False, prompt=None):
    """Fill in required fields that the config file left blank.

    Runs before any pipeline starts. `prompt(label)` is called for each
    missing value; without a prompt a missing value raises ConfigError.
    """
    required = [("stack_name", "Stack Name")]
    if key_needed:
        required.append(("key_name", "SSH Key Name"))
    required += [("dns_domain", "DNS Domain"), ("ami_name", "AMI Name (orion-base*)")]

    for attr, label in required:
        if getattr(config, attr):
            continue
        if prompt is None:
            raise ConfigError(f"missing required config value: {attr}")
        value = prompt(label).strip()
        if not value:
            raise ConfigError(f"no value given for {label}")
        setattr(config, attr, value)

    if not config.instance_type:
        config.instance_type = DEFAULT_INSTANCE_TYPE

    return config


def ask_for_value(label):
    """Prompt on the terminal for a single value."""
    return input(f"\nPlease enter a value for {label}:\n\n")


def is_s3_url(reference):
    return bool(_S3_URL.match(reference or ""))


def is_git_reference(reference):
    # crude on purpose: anything mentioning git is treated as a repo reference
    return "git" in (reference or "")


def check_fetchable(reference, what):
    if is_s3_url(reference):
        raise ConfigError(f"{what} {reference!r} is an S3 URL; download it and point at the local copy")
    if is_git_reference(reference) and not os.path.isfile(os.path.expanduser(reference)):
        raise ConfigError(f"{what} {reference!r} looks like a git reference; check it out and point at the local file")


def check_staged_files(config):
    """Fail unless the license and config template exist locally and are readable.

    Called before any stack is created, since both are copied to the host
    only once the stack is up.
    """
    for attr in ("license_file", "config_template"):
        reference = getattr(config, attr)
        if not reference:
            raise ConfigError(f"{attr} is not set")
        check_fetchable(reference, attr)
        path = os.path.expanduser(reference)
        if not os.path.isfile(path) or not os.access(path, os.R_OK):
            raise ConfigError(f"cannot read {attr} {path!r}")


def read_shared_config(reference):
    """Resolve the shared network config into a dict with 'subnet_ids'.

    Accepts, in priority order: a JSON literal, a base64-encoded JSON
    literal, or a path to a local JSON file.
    """
    if not reference:
        raise ConfigError("shared_config is not set")

    try:
        data = json.loads(reference)
    except json.JSONDecodeError:
        pass
    else:
        logger.info("Shared config from JSON literal.")
        return _validate_shared_config(data)

    try:
        data = json.loads(base64.b64decode(reference, validate=True))
    except (binascii.Error, ValueError):
        pass
    else:
        logger.info("Shared config from base64 encoded JSON literal.")
        return _validate_shared_config(data)

    check_fetchable(reference, "shared config")

    path = os.path.expanduser(reference)
    logger.info(f"Shared config from local file {path}.")
    try:
        with open(path) as f:
            data = json.load(f)
    except OSError as e:
        raise ConfigError(f"failed reading shared config file {path!r}: {e}") from e
    except json.JSONDecodeError as e:
        raise ConfigError(f"failed to parse shared config file {path!r}: {e}") from e
    return _validate_shared_config(data)


def _validate_shared_config(data):
    if not isinstance(data, dict) or not isinstance(data.get("subnet_ids", []), list):
        raise ConfigError("shared config must be an object with a 'subnet_ids' list")
    data.setdefault("subnet_ids", [])
    return data
