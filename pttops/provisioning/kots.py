"""KOTS config-values rendering for the application install."""

import json
import logging
import os
import uuid

import jwt
import yaml
from cryptography.hazmat.primitives.asymmetric import rsa
from jinja2 import StrictUndefined, Template, TemplateError

from pttops.config import check_fetchable
from pttops.errors import ConfigError

logger = logging.getLogger(__name__)

KEYSET_SIZE = 3


def generate_keyset(count=KEYSET_SIZE):
    """JSON Web Key Set of `count` fresh RSA-2048 signing keys, private parts included."""
    keys = []
    for _ in range(count):
        private_key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
        jwk = jwt.algorithms.RSAAlgorithm.to_jwk(private_key, as_dict=True)
        jwk.update({"kid": str(uuid.uuid4()), "use": "sig", "alg": "RS256"})
        keys.append(jwk)
    return {"keys": keys}


def render_kots_config(config):
    """Render the local config template for `config`'s stack.

    Template variables: `keystore` (a freshly generated JWKS as JSON),
    `stack_name`, `domain`.
    """
    template_path = config.config_template
    if not template_path:
        raise ConfigError("config_template is not set")
    check_fetchable(template_path, "config template")

    template_path = os.path.expanduser(template_path)
    logger.info(f"Using local config template file {template_path}.")
    try:
        with open(template_path) as f:
            source = f.read()
    except OSError as e:
        raise ConfigError(f"failed reading template file {template_path!r}: {e}") from e

    try:
        content = Template(source, undefined=StrictUndefined).render(
            keystore=json.dumps(generate_keyset()),
            stack_name=config.stack_name,
            domain=config.dns_domain,
        )
    except TemplateError as e:
        raise ConfigError(f"failed to render template {template_path!r}: {e}") from e

    try:
        yaml.safe_load(content)
    except yaml.YAMLError as e:
        raise ConfigError(f"rendered template {template_path!r} is not valid YAML: {e}") from e

    return content
