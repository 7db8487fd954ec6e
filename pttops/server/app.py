"""HTTP API over the stacks of one or more AWS accounts."""

import asyncio
import logging
from datetime import datetime, timezone

import httpx
from fastapi import FastAPI, HTTPException
from fastapi.responses import JSONResponse, Response
from fastapi.staticfiles import StaticFiles
from pydantic import BaseModel

from pttops.config import StackConfig
from pttops.errors import OpsError
from pttops.provisioning.stack import DEFAULT_TEMPLATE_URL, StackHandle, fetch_template_description
from pttops.provisioning.trust import ca_url
from pttops.provisioning.types import StackEndpoints

logger = logging.getLogger(__name__)

NOT_READY = "Not Ready"
PING_TIMEOUT = 1.0
KOTSADM_PORT = 8800


class StackDetails(BaseModel):
    account: str
    name: str
    cfstatus: str = ""
    address: str = ""
    kotsadm: str = NOT_READY
    api: str = NOT_READY
    login: str = NOT_READY
    ca: str = NOT_READY
    created: str = ""
    uptime: str = ""


def format_uptime(delta):
    seconds = max(int(delta.total_seconds()), 0)
    hours, rest = divmod(seconds, 3600)
    minutes, seconds = divmod(rest, 60)
    return f"{hours}h {minutes}m {seconds}s"


def default_stack_factory(account, stack_name):
    return StackHandle(StackConfig(stack_name=stack_name), session=account.session(), auto_rollback=False)


def ping_client():
    return httpx.AsyncClient(verify=False, timeout=PING_TIMEOUT)


async def _reachable(client, url):
    try:
        await client.get(url)
    except httpx.HTTPError:
        return False
    return True


async def stack_details(stack, account_number, client_factory=ping_client, now=None):
    """Provider status plus one-second readiness pings of the stack's endpoints."""
    status = await stack.status()
    created = await stack.created()
    endpoints = StackEndpoints.from_outputs(await stack.outputs())

    candidates = {
        "kotsadm": f"http://{endpoints.address}:{KOTSADM_PORT}",
        "api": f"https://{endpoints.api}",
        "login": f"https://{endpoints.login}",
        "ca": ca_url(endpoints.ca),
    }
    async with client_factory() as client:
        results = await asyncio.gather(*(_reachable(client, url) for url in candidates.values()))
    ready = {key: url if ok else NOT_READY for (key, url), ok in zip(candidates.items(), results)}

    now = now or datetime.now(timezone.utc)
    return StackDetails(
        account=account_number,
        name=stack.name,
        cfstatus=status,
        address=endpoints.address,
        created=str(created),
        uptime=format_uptime(now - created),
        **ready,
    )


def create_app(accounts, stack_factory=None, static_dir=None, template_loader=None, client_factory=ping_client):
    """Build the FastAPI app.

    `stack_factory(account, stack_name)` returns a StackHandle-like object;
    each request gets a fresh one.
    """
    stack_factory = stack_factory or default_stack_factory
    by_number = {a.account_number: a for a in accounts}

    async def _template_description():
        if template_loader is not None:
            return await template_loader()
        return await fetch_template_description(DEFAULT_TEMPLATE_URL)

    def _stack(account, stack_name):
        found = by_number.get(account)
        if found is None:
            raise HTTPException(status_code=404, detail=f"Failed to retrieve account {account!r}")
        logger.debug(f"Generating stack for account: {account!r} name: {stack_name!r}")
        return stack_factory(found, stack_name)

    app = FastAPI(title="pttops")

    @app.get("/api/")
    async def ping():
        return {"message": "pong"}

    @app.get("/api/stacks")
    async def list_stacks():
        instances = []
        try:
            description = await _template_description()
            for account in accounts:
                stacks = await stack_factory(account, "").list_stacks(description)
                logger.debug(f"{len(stacks)} instances for {account.account_number}")
                instances += [{"account": account.account_number, "name": s.name} for s in stacks]
        except (OpsError, httpx.HTTPError) as e:
            logger.error(f"Error in instances handler: {e}")
            return JSONResponse(status_code=500, content=[])
        return instances

    @app.get("/api/stacks/{account}/{stack_name}")
    async def single_stack(account: str, stack_name: str):
        stack = _stack(account, stack_name)
        try:
            details = await stack_details(stack, account, client_factory)
        except OpsError as e:
            logger.error(f"Error in single instance handler: {e}")
            empty = StackDetails(account=account, name=stack_name)
            return JSONResponse(status_code=500, content=empty.model_dump())
        return details

    @app.get("/api/stacks/{account}/{stack_name}/ca")
    async def stack_ca(account: str, stack_name: str):
        stack = _stack(account, stack_name)
        try:
            ca_host = (await stack.outputs()).get("CA", "")
            if not ca_host:
                raise HTTPException(status_code=404, detail="stack has no CA")
            async with client_factory() as client:
                resp = await client.get(ca_url(ca_host))
        except (OpsError, httpx.HTTPError) as e:
            logger.error(f"Error fetching CA for {stack_name}: {e}")
            raise HTTPException(status_code=404, detail="CA certificate unavailable") from e
        if resp.status_code != 200:
            raise HTTPException(status_code=404, detail="CA certificate unavailable")
        return Response(content=resp.content, media_type="application/pkix-cert")

    @app.delete("/api/stacks/{account}/{stack_name}")
    async def delete_stack(account: str, stack_name: str):
        stack = _stack(account, stack_name)
        try:
            await stack.delete()
        except OpsError as e:
            logger.error(f"Error deleting {stack_name}: {e}")
            raise HTTPException(status_code=400, detail=str(e)) from e
        return Response(status_code=200)

    if static_dir:
        app.mount("/", StaticFiles(directory=static_dir, html=True), name="static")

    return app
