"""AWS accounts the management server can see."""

import base64
import binascii
import json
import logging
import os
from dataclasses import dataclass, fields

from botocore.exceptions import BotoCoreError, ClientError

from pttops.errors import ConfigError, OpsError
from pttops.provisioning.stack import default_session
from pttops.redact import register_secret

logger = logging.getLogger(__name__)

ACCOUNT_ENV_VAR = "AWS_ACCOUNT_CREDENTIALS"


@dataclass
class Account:
    """One account entry. Without static keys the default credential chain is used."""

    account_number: str
    aws_access_key_id: str = ""
    aws_secret_access_key: str = ""
    aws_region: str = ""

    def session(self):
        return default_session(self.aws_region or None, self.aws_access_key_id, self.aws_secret_access_key)


def parse_accounts(encoded):
    """Decode the base64 JSON account list held in AWS_ACCOUNT_CREDENTIALS."""
    try:
        data = json.loads(base64.b64decode(encoded, validate=True))
    except (binascii.Error, ValueError) as e:
        raise ConfigError(f"failed to decode {ACCOUNT_ENV_VAR}: {e}") from e
    if not isinstance(data, list):
        raise ConfigError(f"{ACCOUNT_ENV_VAR} must hold a JSON list of accounts")

    known = {f.name for f in fields(Account)}
    accounts = []
    for entry in data:
        if not isinstance(entry, dict) or not entry.get("account_number"):
            raise ConfigError(f"every entry in {ACCOUNT_ENV_VAR} needs an account_number")
        account = Account(**{k: str(v) for k, v in entry.items() if k in known})
        register_secret(account.aws_secret_access_key)
        accounts.append(account)
    return accounts


def load_accounts(environ=None, session_factory=default_session):
    """Accounts from the environment, or the caller's own account."""
    environ = os.environ if environ is None else environ
    encoded = environ.get(ACCOUNT_ENV_VAR, "")
    if encoded:
        logger.debug(f"Using Credentials from {ACCOUNT_ENV_VAR}")
        return parse_accounts(encoded)

    logger.debug("Using Default Credentials")
    try:
        identity = session_factory().client("sts").get_caller_identity()
    except (BotoCoreError, ClientError) as e:
        raise OpsError(f"Error getting caller identity: {e}") from e
    return [Account(account_number=identity["Account"])]
