"""Unit tests for the provisioning pipeline, driven entirely by fakes."""

import os
from unittest.mock import AsyncMock, MagicMock

import pytest

from pttops.config import RunOptions
from pttops.errors import (
    ConfigError,
    StackCreateError,
    StackExistsError,
    StackNotFoundError,
    StackRolledBackError,
)
from pttops.provisioning.create import (
    KOTS_PLUGIN_CHECK,
    ProvisioningPipeline,
    format_outputs,
    kots_install_command,
)


@pytest.fixture
def pipeline_parts(tmp_path, monkeypatch, stack_config, fake_stack, fake_remote, fake_http):
    """Build a pipeline over fakes sharing one event log."""
    monkeypatch.chdir(tmp_path)
    events = []
    parts = {"events": events, "remotes": [], "clients": []}

    def _build(statuses=("CREATE_IN_PROGRESS", "CREATE_COMPLETE"), auto_rollback=True,
               exists=False, options=None, copy_failures=0, http_failures=None, http_status=200):
        stack = fake_stack(stack_config, statuses=statuses, auto_rollback=auto_rollback, exists=exists, events=events)

        def remote_factory(host, port, username):
            remote = fake_remote(host, port, username, events=events, copy_failures=copy_failures)
            parts["remotes"].append(remote)
            return remote

        def http_client_factory():
            client = fake_http(events=events, failures=http_failures, status_code=http_status)
            parts["clients"].append(client)
            return client

        parts["trust"] = AsyncMock(return_value=True)
        parts["opener"] = MagicMock()
        parts["stack"] = stack
        parts["pipeline"] = ProvisioningPipeline(
            stack,
            options or RunOptions(interactive=True),
            remote_factory=remote_factory,
            http_client_factory=http_client_factory,
            config_renderer=lambda config: f"stack: {config.stack_name}\n",
            trust=parts["trust"],
            opener=parts["opener"],
            retry_interval=0,
            status_interval=0,
        )
        return parts

    return _build


# ── success path ────────────────────────────────────────────────


async def test_create_runs_every_step_in_order(pipeline_parts):
    parts = pipeline_parts()
    run = await parts["pipeline"].create({"KeyName": "demo-key"})

    events = parts["events"]
    assert events[:5] == ["exists", "create", "status", "status", "outputs"]
    expected_tail = [
        "copy:license.yaml",
        "copy:config.yaml",
        "get:http://10.0.0.5:8800",
        "run:kubectl",
        "run:sudo",
        "get:https://ca.demo.example.com/v1/pki/ca/pem",
        "get:https://api.demo.example.com",
        "get:https://login.demo.example.com",
        "get:https://media.demo.example.com",
        "get:https://ds.demo.example.com",
        "get:https://es.demo.example.com",
        "get:https://cdn.demo.example.com",
        "get:https://ca.demo.example.com/v1/pki/ca/pem",
    ]
    assert events[5:] == expected_tail

    remote = parts["remotes"][0]
    assert (remote.host, remote.port, remote.username) == ("10.0.0.5", 22, "tester")
    assert remote.copies[1] == ("config.yaml", "stack: demo\n")
    assert remote.commands == [KOTS_PLUGIN_CHECK, kots_install_command("tester")]

    assert parts["stack"].parameters == {"KeyName": "demo-key"}
    assert run.endpoints.login == "login.demo.example.com"
    assert run.rolled_back is False
    assert set(run.phases) == {"stack", "staging", "kotsadm", "kots_plugin", "install", "endpoints"}
    assert run.total >= 0

    parts["trust"].assert_awaited_once_with(os.path.join(".", "ca.demo.example.com-ca.pem"))
    parts["opener"].assert_called_once_with("https://login.demo.example.com")
    assert os.path.exists("ca.demo.example.com-ca.pem")


async def test_create_logs_aligned_outputs(pipeline_parts, caplog):
    parts = pipeline_parts()
    with caplog.at_level("INFO"):
        await parts["pipeline"].create({})
    assert "Stack Outputs:" in caplog.text
    assert "      Address:  10.0.0.5" in caplog.text
    assert "  EventStream:  es.demo.example.com" in caplog.text


def test_kots_install_command():
    assert kots_install_command("ubuntu", "s3cret") == (
        "sudo -i kubectl kots install orion-ptt-system"
        " --license-file /home/ubuntu/license.yaml"
        " --shared-password s3cret"
        " --namespace default"
        " --config-values /home/ubuntu/config.yaml"
    )


def test_format_outputs_empty():
    assert format_outputs({}) == []


# ── failure paths ───────────────────────────────────────────────


async def test_create_refuses_existing_stack(pipeline_parts):
    parts = pipeline_parts(exists=True)
    with pytest.raises(StackExistsError):
        await parts["pipeline"].create({})
    assert parts["events"] == ["exists"]


async def test_rollback_deletes_once_and_stops(pipeline_parts, caplog):
    parts = pipeline_parts(
        statuses=("CREATE_IN_PROGRESS", "CREATE_IN_PROGRESS", "ROLLBACK_COMPLETE", StackNotFoundError("gone"))
    )

    with caplog.at_level("INFO"):
        with pytest.raises(StackRolledBackError) as exc_info:
            await parts["pipeline"].create({})

    assert exc_info.value.status == "ROLLBACK_COMPLETE"
    assert parts["events"].count("delete") == 1
    assert parts["events"][-2:] == ["delete", "status"]
    assert parts["remotes"] == []
    assert parts["clients"] == []
    assert "  DELETE_COMPLETE" in caplog.text


async def test_rollback_without_auto_rollback_is_create_error(pipeline_parts):
    parts = pipeline_parts(statuses=("ROLLBACK_COMPLETE",), auto_rollback=False)

    with pytest.raises(StackCreateError) as exc_info:
        await parts["pipeline"].create({})

    assert not isinstance(exc_info.value, StackRolledBackError)
    assert "delete" not in parts["events"]
    assert parts["remotes"] == []


async def test_create_failed_status_stops_watch(pipeline_parts):
    parts = pipeline_parts(statuses=("CREATE_IN_PROGRESS", "CREATE_FAILED"))
    with pytest.raises(StackCreateError, match="CREATE_FAILED"):
        await parts["pipeline"].create({})
    assert parts["events"].count("status") == 2


async def test_license_copy_is_retried(pipeline_parts):
    parts = pipeline_parts(copy_failures=2)
    await parts["pipeline"].create({})
    assert parts["events"].count("copy:license.yaml") == 3
    assert parts["events"].count("copy:config.yaml") == 1


async def test_endpoint_probe_retries_until_reachable(pipeline_parts):
    parts = pipeline_parts(http_failures={"https://api.demo.example.com": 2})
    await parts["pipeline"].create({})
    assert parts["events"].count("get:https://api.demo.example.com") == 3


async def test_stage_only_stops_after_staging(pipeline_parts):
    parts = pipeline_parts(options=RunOptions(stage_only=True))
    run = await parts["pipeline"].create({})

    assert parts["events"][-2:] == ["copy:license.yaml", "copy:config.yaml"]
    assert parts["remotes"][0].commands == []
    assert parts["clients"] == []
    assert "install" not in run.phases


async def test_non_interactive_skips_trust_and_browser(pipeline_parts):
    parts = pipeline_parts(options=RunOptions(interactive=False))
    await parts["pipeline"].create({})
    parts["trust"].assert_not_called()
    parts["opener"].assert_not_called()
    assert os.path.exists("ca.demo.example.com-ca.pem")


async def test_ca_fetch_failure_is_not_fatal(pipeline_parts, caplog):
    # probes accept any response, but the certificate download needs a 200
    parts = pipeline_parts(http_status=503)
    run = await parts["pipeline"].create({})
    parts["trust"].assert_not_called()
    assert "Failed to fetch CA cert" in caplog.text
    assert run.total >= 0


async def test_trust_failure_is_not_fatal(pipeline_parts, caplog):
    parts = pipeline_parts()
    parts["trust"].side_effect = PermissionError("sudo: permission denied")

    with caplog.at_level("INFO"):
        run = await parts["pipeline"].create({})

    parts["trust"].assert_awaited_once_with(os.path.join(".", "ca.demo.example.com-ca.pem"))
    assert "error trusting CA cert" in caplog.text
    assert "Stack Outputs:" in caplog.text
    parts["opener"].assert_called_once_with(run.endpoints.login_url)


# ── staged file checks ──────────────────────────────────────────


async def test_missing_license_file(pipeline_parts, stack_config):
    stack_config.license_file = "/nonexistent/license.yaml"
    parts = pipeline_parts()
    with pytest.raises(ConfigError, match="cannot read license_file"):
        await parts["pipeline"].create({})
    assert "create" not in parts["events"]


@pytest.mark.parametrize("field", ["license_file", "config_template"])
async def test_unset_staged_file_fails_before_create(pipeline_parts, stack_config, field):
    setattr(stack_config, field, "")
    parts = pipeline_parts()
    with pytest.raises(ConfigError, match=f"{field} is not set"):
        await parts["pipeline"].create({})
    assert parts["events"] == []


async def test_s3_config_template_fails_before_create(pipeline_parts, stack_config):
    stack_config.config_template = "https://bucket.s3.us-east-1.amazonaws.com/config.tmpl.yaml"
    parts = pipeline_parts()
    with pytest.raises(ConfigError, match="S3 URL"):
        await parts["pipeline"].create({})
    assert parts["events"] == []
