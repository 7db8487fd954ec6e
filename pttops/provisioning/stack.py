"""CloudFormation stack handle: create, describe, delete and list Orion PTT System stacks."""

import asyncio
import logging
import os

import boto3
import httpx
import yaml
from botocore.exceptions import BotoCoreError, ClientError

from pttops.errors import AmbiguousStackError, OpsError, StackNotFoundError
from pttops.provisioning.types import StackSummary

logger = logging.getLogger(__name__)

DEFAULT_TEMPLATE_URL = "https://orion-ptt-system.s3.amazonaws.com/orion-ptt-system.yaml"
BETA_TEMPLATE_URL = "https://orion-ptt-system-beta.s3.amazonaws.com/orion-ptt-system.yaml"
CAPABILITIES = ["CAPABILITY_NAMED_IAM"]

CREATE_IN_PROGRESS = "CREATE_IN_PROGRESS"
CREATE_COMPLETE = "CREATE_COMPLETE"
CREATE_FAILED = "CREATE_FAILED"
ROLLBACK_COMPLETE = "ROLLBACK_COMPLETE"
ROLLBACK_FAILED = "ROLLBACK_FAILED"
DELETE_IN_PROGRESS = "DELETE_IN_PROGRESS"

CREATE_TERMINAL_STATUSES = {CREATE_COMPLETE, CREATE_FAILED, ROLLBACK_COMPLETE, ROLLBACK_FAILED}


def default_session(region=None, access_key_id=None, secret_access_key=None):
    """Build a boto3 session.

    Static credentials win when given; otherwise the normal credential chain
    (env vars, shared config, instance role) applies. AWS_REGION overrides
    the configured region.
    """
    region = region or os.environ.get("AWS_REGION") or None
    if access_key_id and secret_access_key:
        return boto3.Session(
            aws_access_key_id=access_key_id,
            aws_secret_access_key=secret_access_key,
            region_name=region,
        )
    return boto3.Session(region_name=region)


def template_url(beta=False):
    if beta:
        logger.info("----- Using Beta Template -----")
        return BETA_TEMPLATE_URL
    return DEFAULT_TEMPLATE_URL


def is_not_found(exc):
    """True when a describe call failed because the stack does not exist."""
    if not isinstance(exc, ClientError):
        return False
    message = exc.response.get("Error", {}).get("Message", "")
    return "does not exist" in message


class _CloudFormationLoader(yaml.SafeLoader):
    """SafeLoader that accepts CloudFormation short-form tags (!Ref, !Sub, ...)."""


def _construct_tagged(loader, tag_suffix, node):
    if isinstance(node, yaml.ScalarNode):
        return loader.construct_scalar(node)
    if isinstance(node, yaml.SequenceNode):
        return loader.construct_sequence(node, deep=True)
    return loader.construct_mapping(node, deep=True)


_CloudFormationLoader.add_multi_constructor("!", _construct_tagged)


def parse_template_description(text):
    """Return the top-level Description of a CloudFormation YAML template."""
    data = yaml.load(text, Loader=_CloudFormationLoader)
    if not isinstance(data, dict):
        return ""
    return data.get("Description", "") or ""


async def fetch_template_description(url):
    """Download a CloudFormation template and return its Description."""
    async with httpx.AsyncClient() as client:
        resp = await client.get(url, timeout=60)
    resp.raise_for_status()
    return parse_template_description(resp.text)


class StackHandle:
    """Reference to a single named CloudFormation stack.

    Holds no provider state of its own: every call goes to the API. All
    public methods are coroutines; the blocking boto3 calls run in a worker
    thread.
    """

    def __init__(self, config, session=None, auto_rollback=True, client=None):
        self.config = config
        self.auto_rollback = auto_rollback
        if client is None:
            session = session or default_session()
            client = session.client("cloudformation")
        self.session = session
        self.client = client

    @property
    def name(self):
        return self.config.stack_name

    async def _call(self, method, **kwargs):
        return await asyncio.to_thread(getattr(self.client, method), **kwargs)

    async def _describe_one(self):
        try:
            resp = await self._call("describe_stacks", StackName=self.name)
        except ClientError as e:
            if is_not_found(e):
                raise StackNotFoundError(f"stack {self.name} does not exist") from e
            raise OpsError(f"error getting stack {self.name}: {e}") from e
        except BotoCoreError as e:
            raise OpsError(f"error getting stack {self.name}: {e}") from e

        stacks = resp.get("Stacks", [])
        if len(stacks) != 1:
            raise AmbiguousStackError(f"expected exactly one stack named {self.name}, found {len(stacks)}")
        return stacks[0]

    async def exists(self):
        """True iff the stack can be described."""
        try:
            await self._describe_one()
        except StackNotFoundError:
            return False
        return True

    async def create(self, parameters):
        """Issue the create request. Returns the new stack id."""
        try:
            resp = await self._call(
                "create_stack",
                StackName=self.name,
                TemplateURL=template_url(self.config.beta),
                Capabilities=CAPABILITIES,
                Parameters=[{"ParameterKey": k, "ParameterValue": str(v)} for k, v in parameters.items()],
            )
        except (ClientError, BotoCoreError) as e:
            raise OpsError(f"failed to create stack {self.name}: {e}") from e
        return resp.get("StackId", "")

    async def status(self):
        stack = await self._describe_one()
        return stack["StackStatus"]

    async def outputs(self):
        stack = await self._describe_one()
        return {o["OutputKey"]: o["OutputValue"] for o in stack.get("Outputs", [])}

    async def params(self):
        stack = await self._describe_one()
        return {p["ParameterKey"]: p["ParameterValue"] for p in stack.get("Parameters", [])}

    async def created(self):
        stack = await self._describe_one()
        return stack["CreationTime"]

    async def delete(self):
        """Issue the delete request. Completion is observed through status()."""
        try:
            await self._call("delete_stack", StackName=self.name)
        except (ClientError, BotoCoreError) as e:
            raise OpsError(f"failed deleting stack {self.name}: {e}") from e

    async def list_stacks(self, description):
        """All visible stacks whose Description equals `description`."""

        def _collect():
            found = []
            paginator = self.client.get_paginator("describe_stacks")
            for page in paginator.paginate():
                for s in page.get("Stacks", []):
                    if s.get("Description") == description:
                        found.append(StackSummary(
                            name=s["StackName"],
                            status=s.get("StackStatus", ""),
                            description=s.get("Description", ""),
                            created=s.get("CreationTime"),
                        ))
            return found

        try:
            return await asyncio.to_thread(_collect)
        except (ClientError, BotoCoreError) as e:
            raise OpsError(f"error listing stacks: {e}") from e
