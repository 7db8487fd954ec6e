"""Shared pytest fixtures for all test modules."""

import json
import os
import subprocess
import sys
from datetime import datetime, timezone

import httpx
import pytest

from pttops.config import StackConfig
from pttops.errors import RemoteCommandError, TransportError
from pttops.provisioning.types import StackSummary

PROJECT_ROOT = os.path.normpath(os.path.join(os.path.dirname(__file__), ".."))

STACK_OUTPUTS = {
    "Address": "10.0.0.5",
    "Api": "api.demo.example.com",
    "Login": "login.demo.example.com",
    "Media": "media.demo.example.com",
    "Datastore": "ds.demo.example.com",
    "EventStream": "es.demo.example.com",
    "CDN": "cdn.demo.example.com",
    "CA": "ca.demo.example.com",
}


@pytest.fixture(scope="session")
def project_root():
    """Absolute path to the project root directory."""
    return PROJECT_ROOT


@pytest.fixture(scope="session")
def run_cli(project_root):
    """Return a callable that invokes the pttops CLI as a subprocess."""

    def _run(*args, env=None):
        full_env = dict(os.environ)
        full_env.update(env or {})
        result = subprocess.run(
            [sys.executable, "-m", "pttops.pttops", *args],
            capture_output=True,
            text=True,
            cwd=project_root,
            stdin=subprocess.DEVNULL,
            env=full_env,
        )
        return result.returncode, result.stdout, result.stderr

    return _run


@pytest.fixture
def stack_config(tmp_path):
    """A fully resolved StackConfig with a local license and config template."""
    license_file = tmp_path / "license.yaml"
    license_file.write_text("apiVersion: kots.io/v1beta1\nkind: License\n")
    template = tmp_path / "config.tmpl.yaml"
    template.write_text(
        "apiVersion: kots.io/v1beta1\n"
        "kind: ConfigValues\n"
        "spec:\n"
        "  values:\n"
        "    stack_name:\n"
        "      value: {{ stack_name }}\n"
        "    domain:\n"
        "      value: {{ domain }}\n"
        "    keystore:\n"
        "      value: '{{ keystore }}'\n"
    )
    return StackConfig(
        stack_name="demo",
        key_name="demo-key",
        dns_domain="demo.example.com",
        instance_type="m5.2xlarge",
        user_name="tester",
        license_file=str(license_file),
        config_template=str(template),
        ami_name="orion-base*",
        shared_config=json.dumps({"subnet_ids": ["subnet-1"]}),
    )


@pytest.fixture
def config_file(tmp_path, stack_config):
    """Write stack_config to a JSON config file and return its path."""
    path = tmp_path / "orion-ptt-system.json"
    path.write_text(json.dumps(stack_config.to_dict()))
    return str(path)


# ── Fakes ───────────────────────────────────────────────────────────


class FakeStack:
    """In-memory stand-in for StackHandle.

    `statuses` is consumed one entry per status() call; the last entry
    repeats. An Exception entry is raised instead of returned.
    """

    def __init__(self, config, statuses=("CREATE_COMPLETE",), outputs=None, params=None,
                 exists=False, auto_rollback=True, created=None, events=None, stacks=()):
        self.config = config
        self.auto_rollback = auto_rollback
        self.session = None
        self.events = [] if events is None else events
        self.parameters = None
        self._statuses = list(statuses)
        self._outputs = dict(STACK_OUTPUTS if outputs is None else outputs)
        self._params = dict(params or {})
        self._exists = exists
        self._created = created or datetime(2026, 1, 1, tzinfo=timezone.utc)
        self._stacks = list(stacks)

    @property
    def name(self):
        return self.config.stack_name

    async def exists(self):
        self.events.append("exists")
        return self._exists

    async def create(self, parameters):
        self.events.append("create")
        self.parameters = parameters
        return "arn:aws:cloudformation:us-east-1:123:stack/demo/1"

    async def status(self):
        self.events.append("status")
        item = self._statuses.pop(0) if len(self._statuses) > 1 else self._statuses[0]
        if isinstance(item, Exception):
            raise item
        return item

    async def outputs(self):
        self.events.append("outputs")
        return dict(self._outputs)

    async def params(self):
        self.events.append("params")
        return dict(self._params)

    async def created(self):
        return self._created

    async def delete(self):
        self.events.append("delete")

    async def list_stacks(self, description):
        self.events.append(f"list:{description}")
        return [StackSummary(name=n) for n in self._stacks]


class FakeRemote:
    """Stand-in for RemoteExecClient that records copies and commands."""

    def __init__(self, host, port=22, username=None, events=None, copy_failures=0, command_failures=None):
        self.host = host
        self.port = port
        self.username = username or "tester"
        self.events = [] if events is None else events
        self.copies = []
        self.commands = []
        self._copy_failures = copy_failures
        self._command_failures = dict(command_failures or {})

    async def acopy_file(self, content, remote_name, mode="0644"):
        self.events.append(f"copy:{remote_name}")
        if self._copy_failures:
            self._copy_failures -= 1
            raise TransportError(f"connection refused by {self.host}")
        self.copies.append((remote_name, content))

    async def arun_command(self, command, stdout=None, stderr=None):
        self.events.append(f"run:{command.split()[0]}")
        self.commands.append(command)
        if self._command_failures.get(command):
            self._command_failures[command] -= 1
            raise RemoteCommandError(command, 127)


class FakeHTTPClient:
    """Async context manager mimicking httpx.AsyncClient.get."""

    def __init__(self, events=None, failures=None, status_code=200, content=b"-----BEGIN CERTIFICATE-----\n"):
        self.events = [] if events is None else events
        self.urls = []
        self._failures = dict(failures or {})
        self._status_code = status_code
        self._content = content

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False

    async def get(self, url, **kwargs):
        self.events.append(f"get:{url}")
        self.urls.append(url)
        if self._failures.get(url):
            self._failures[url] -= 1
            raise httpx.ConnectError(f"connection refused: {url}")
        return httpx.Response(self._status_code, content=self._content, request=httpx.Request("GET", url))


@pytest.fixture
def fake_stack():
    return FakeStack


@pytest.fixture
def fake_remote():
    return FakeRemote


@pytest.fixture
def fake_http():
    return FakeHTTPClient
