"""Stack provisioning: polling, CloudFormation handle, SSH transport, pipelines."""

from pttops.provisioning.create import ProvisioningPipeline, insecure_client
from pttops.provisioning.destroy import destroy, wait_for_deletion
from pttops.provisioning.lookups import build_stack_parameters
from pttops.provisioning.poll import RETRY_INTERVAL, STATUS_INTERVAL, format_minutes, retry_until
from pttops.provisioning.shell import run_shell_cmd
from pttops.provisioning.ssh import RemoteExecClient
from pttops.provisioning.stack import StackHandle, default_session, fetch_template_description, template_url
from pttops.provisioning.types import CreateRun, StackEndpoints, StackSummary

__all__ = [
    "CreateRun",
    "StackEndpoints",
    "StackSummary",
    "retry_until",
    "format_minutes",
    "RETRY_INTERVAL",
    "STATUS_INTERVAL",
    "run_shell_cmd",
    "RemoteExecClient",
    "StackHandle",
    "default_session",
    "template_url",
    "fetch_template_description",
    "build_stack_parameters",
    "ProvisioningPipeline",
    "insecure_client",
    "destroy",
    "wait_for_deletion",
]
