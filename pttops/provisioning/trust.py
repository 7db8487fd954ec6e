"""Fetch a stack's CA certificate and (un)trust it in the local keychain."""

import logging
import os
import sys

from pttops.errors import OpsError
from pttops.provisioning.shell import run_shell_cmd

logger = logging.getLogger(__name__)

SYSTEM_KEYCHAIN = "/Library/Keychains/System.keychain"


def ca_url(host):
    return f"https://{host}/v1/pki/ca/pem"


def ca_file_name(host):
    return f"{host}-ca.pem"


async def fetch_ca_cert(host, client):
    """Download the PEM CA certificate served by `host`.

    `client` is an httpx.AsyncClient; stack CAs are self-signed, so callers
    pass one with verification disabled.
    """
    url = ca_url(host)
    logger.info(f"Fetching CA Certificate from: {url}")
    resp = await client.get(url)
    if resp.status_code != 200:
        raise OpsError(f"failed to fetch CA certificate from {url}: HTTP {resp.status_code}")
    return resp.content


def write_ca_cert(host, data, directory="."):
    path = os.path.join(directory, ca_file_name(host))
    with open(path, "wb") as f:
        f.write(data)
    os.chmod(path, 0o644)
    logger.info(f"CA certificate written to: {path}\n")
    return path


async def trust_ca(path):
    """Add the certificate at `path` as a trusted root. Returns True on success."""
    if sys.platform != "darwin":
        logger.info(f"Automatic trust is only supported on macOS. Add {path} to your trust store manually.")
        return False

    logger.info("Importing to keychain")
    rc, _, stderr = await run_shell_cmd(
        ["sudo", "security", "add-trusted-cert", "-d", "-r", "trustRoot", "-k", SYSTEM_KEYCHAIN, path],
        timeout=300,
    )
    if rc != 0:
        logger.error(f"error trusting CA cert {path}: {stderr.strip()}")
        return False
    logger.info("CA trusted.  You should be good to go.")
    return True


async def untrust_ca(host):
    """Remove trust for the CA named `host`. Returns True on success."""
    if not host:
        return False
    if sys.platform != "darwin":
        logger.info(f"Remove the trusted CA certificate for {host} from your trust store manually if you added one.")
        return False

    keychain = os.path.expanduser("~/Library/Keychains/login.keychain")
    rc, _, _ = await run_shell_cmd(["sudo", "security", "delete-certificate", "-c", host, keychain], timeout=300)
    if rc != 0:
        logger.error(f"error deleting trust for cert: {host}\nYou may have to do it manually.")
        return False
    logger.info(f"Trust removed for {host}.")
    return True
