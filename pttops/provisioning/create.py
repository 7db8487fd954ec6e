"""Provisioning pipeline: stack creation through application install and CA trust."""

import asyncio
import logging
import os
import webbrowser

import httpx

from pttops.config import RunOptions, check_staged_files
from pttops.errors import (
    ConfigError,
    OpsError,
    StackCreateError,
    StackExistsError,
    StackRolledBackError,
)
from pttops.provisioning.destroy import DELETE_TIMEOUT_MINUTES, wait_for_deletion
from pttops.provisioning.kots import render_kots_config
from pttops.provisioning.poll import RETRY_INTERVAL, STATUS_INTERVAL, format_minutes, retry_until
from pttops.provisioning.ssh import RemoteExecClient
from pttops.provisioning.stack import CREATE_COMPLETE, CREATE_TERMINAL_STATUSES, ROLLBACK_COMPLETE
from pttops.provisioning.trust import fetch_ca_cert, trust_ca, write_ca_cert
from pttops.provisioning.types import CreateRun, StackEndpoints
from pttops.redact import register_secret

logger = logging.getLogger(__name__)

STATUS_TIMEOUT_MINUTES = 10
STAGE_TIMEOUT_MINUTES = 15
KOTSADM_TIMEOUT_MINUTES = 15
KOTS_PLUGIN_TIMEOUT_MINUTES = 5
ENDPOINT_TIMEOUT_MINUTES = 15

SSH_PORT = 22
KOTSADM_PORT = 8800
KOTS_APP = "orion-ptt-system"
DEFAULT_SHARED_PASSWORD = "letmein"
KOTS_PLUGIN_CHECK = "kubectl kots --help"
LICENSE_FILE_NAME = "license.yaml"
CONFIG_FILE_NAME = "config.yaml"


def insecure_client():
    """HTTP client for probing stack endpoints, whose certificates come from the stack's own CA."""
    return httpx.AsyncClient(verify=False, timeout=30)


def kots_install_command(user_name, shared_password=DEFAULT_SHARED_PASSWORD):
    home = f"/home/{user_name}"
    return (
        f"sudo -i kubectl kots install {KOTS_APP}"
        f" --license-file {home}/{LICENSE_FILE_NAME}"
        f" --shared-password {shared_password}"
        f" --namespace default"
        f" --config-values {home}/{CONFIG_FILE_NAME}"
    )


def format_outputs(outputs):
    """Stack outputs as right-aligned `  Key:  value` rows."""
    if not outputs:
        return []
    width = max(len(k) for k in outputs)
    return [f"  {key:>{width}}:  {value}" for key, value in outputs.items()]


class ProvisioningPipeline:
    """Creates a stack and drives it to a fully installed, reachable application."""

    def __init__(
        self,
        stack,
        options=None,
        remote_factory=RemoteExecClient,
        http_client_factory=insecure_client,
        config_renderer=render_kots_config,
        trust=trust_ca,
        opener=webbrowser.open,
        retry_interval=RETRY_INTERVAL,
        status_interval=STATUS_INTERVAL,
    ):
        self.stack = stack
        self.options = options or RunOptions()
        self.remote_factory = remote_factory
        self.http_client_factory = http_client_factory
        self.config_renderer = config_renderer
        self.trust = trust
        self.opener = opener
        self.retry_interval = retry_interval
        self.status_interval = status_interval

    @property
    def config(self):
        return self.stack.config

    async def create(self, parameters):
        """Run the whole pipeline. Returns the CreateRun record."""
        loop = asyncio.get_running_loop()
        total_start = loop.time()
        name = self.stack.name
        run = CreateRun(stack_name=name)

        check_staged_files(self.config)
        if await self.stack.exists():
            raise StackExistsError(f"Stack {name} already exists.")

        logger.info(f'Creating stack "{name}".')
        await self.stack.create(parameters)
        logger.info("Stack initialized.  Polling for status.")

        status, run.phases["stack"] = await self._watch_creation()

        if status == ROLLBACK_COMPLETE and self.stack.auto_rollback:
            logger.info(f'Init failed.  Deleting Stack "{name}".')
            await self.stack.delete()
            run.phases["rollback"] = await wait_for_deletion(
                self.stack, DELETE_TIMEOUT_MINUTES, interval=self.status_interval
            )
            run.rolled_back = True
            raise StackRolledBackError(f"stack {name} failed to create and was rolled back", status=status)
        if status != CREATE_COMPLETE:
            raise StackCreateError(f"stack {name} failed to create: {status}", status=status)

        logger.info(f"Stack Creation took {format_minutes(run.phases['stack'])}.")

        run.outputs = await self.stack.outputs()
        run.endpoints = StackEndpoints.from_outputs(run.outputs)
        remote = self.remote_factory(run.endpoints.address, SSH_PORT, self.config.user_name or None)

        started = loop.time()
        await self._stage_license(remote)
        await self._stage_config(remote)
        run.phases["staging"] = loop.time() - started

        if self.options.stage_only:
            logger.info("Files staged.  Stopping here as requested.")
            run.total = loop.time() - total_start
            return run

        async with self.http_client_factory() as client:
            run.phases["kotsadm"] = await self._poll_kotsadm_console(client, run.endpoints.address)
            run.phases["kots_plugin"] = await self._poll_kots_plugin(remote)
            run.phases["install"] = await self._kots_install(remote)

            started = loop.time()
            for label, url in run.endpoints.https_probes():
                await self._poll_endpoint(client, label, url)
            run.phases["endpoints"] = loop.time() - started

            await self._install_ca(client, run.endpoints.ca)

        logger.info("Stack Outputs:")
        for row in format_outputs(run.outputs):
            logger.info(row)

        run.total = loop.time() - total_start
        logger.info(f"\n\nEnd to end creation took {format_minutes(run.total)}.\n\nHappy Hacking!\n")

        if self.options.interactive and run.endpoints.login:
            self.opener(run.endpoints.login_url)

        return run

    async def _watch_creation(self):
        logger.info("Checking Status")
        observed = {}

        async def _check():
            status = await self.stack.status()
            if status not in CREATE_TERMINAL_STATUSES:
                raise OpsError(status)
            observed["status"] = status

        elapsed = await retry_until(_check, STATUS_TIMEOUT_MINUTES, interval=self.status_interval)
        return observed["status"], elapsed

    async def _stage_license(self, remote):
        path = os.path.expanduser(self.config.license_file or "")
        if not path:
            raise ConfigError("license_file is not set")
        logger.info(f"Staging license file via ssh {remote.username}@{remote.host}:{SSH_PORT}")
        try:
            with open(path, "rb") as f:
                content = f.read()
        except OSError as e:
            raise ConfigError(f"failed to read file {path}: {e}") from e

        async def _copy():
            await remote.acopy_file(content, LICENSE_FILE_NAME)

        await retry_until(_copy, STAGE_TIMEOUT_MINUTES, interval=self.retry_interval)
        logger.info(f"License staged to /home/{remote.username}/{LICENSE_FILE_NAME}")

    async def _stage_config(self, remote):
        # single attempt; the license copy above has already proven the host reachable
        content = self.config_renderer(self.config)
        await remote.acopy_file(content, CONFIG_FILE_NAME)
        logger.info(f"Config staged to /home/{remote.username}/{CONFIG_FILE_NAME}")

    async def _poll_endpoint(self, client, label, url, timeout_minutes=ENDPOINT_TIMEOUT_MINUTES):
        logger.info(f"Now polling the {label} endpoint {url}.\n")

        async def _probe():
            # any HTTP response means the service is up
            await client.get(url)

        elapsed = await retry_until(_probe, timeout_minutes, interval=self.retry_interval)
        logger.info(f"Service initialization took {format_minutes(elapsed)}.")
        return elapsed

    async def _poll_kotsadm_console(self, client, address):
        url = f"http://{address}:{KOTSADM_PORT}"
        logger.info(f"Polling {url} for Kotsadm to be ready.")
        elapsed = await self._poll_endpoint(client, "kotsadm", url, KOTSADM_TIMEOUT_MINUTES)
        logger.info(f"Kubernetes installation took {format_minutes(elapsed)}.")
        return elapsed

    async def _poll_kots_plugin(self, remote):
        logger.info(f"Polling {remote.host} for the kots plugin to be installed.")

        async def _check():
            await remote.arun_command(KOTS_PLUGIN_CHECK, stdout=logger.debug, stderr=logger.debug)

        return await retry_until(_check, KOTS_PLUGIN_TIMEOUT_MINUTES, interval=self.retry_interval)

    async def _kots_install(self, remote):
        loop = asyncio.get_running_loop()
        started = loop.time()
        password = self.config.kotsadm_password or DEFAULT_SHARED_PASSWORD
        if self.config.kotsadm_password:
            register_secret(password)
        command = kots_install_command(remote.username, password)
        logger.info(f"Installing Kots app with the following command:\n\n  {command}\n\nThis will take a couple minutes.\n")
        await remote.arun_command(command)
        elapsed = loop.time() - started
        logger.info(f"Kots installation took {format_minutes(elapsed)}.\n")
        return elapsed

    async def _install_ca(self, client, ca_host):
        """Fetch, save and trust the stack CA. Failures are reported, never raised."""
        try:
            data = await fetch_ca_cert(ca_host, client)
            path = write_ca_cert(ca_host, data)
        except (OpsError, httpx.HTTPError, OSError) as e:
            logger.error(f"Failed to fetch CA cert for {ca_host}: {e}")
            return
        if not self.options.interactive:
            logger.info(f"Skipping CA trust in non-interactive mode.  Certificate saved to {path}.")
            return
        try:
            await self.trust(path)
        except OSError as e:
            logger.error(f"error trusting CA cert {path}: {e}\nYou may have to do it manually.")
