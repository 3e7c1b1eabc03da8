"""
Test Service for the unleash-lite client

This HTTP server wraps UnleashClient and exposes a standard interface
for a contract test harness to interact with.

Protocol:
- GET /  -> Health check
- POST / -> Execute command
- DELETE / -> Cleanup/shutdown
"""

import os
import sys
from typing import Optional
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
import uvicorn

# Add parent directory to path to import unleash_lite
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from unleash_lite import ClientBuilder, FeaturesQuery, UnleashClient, UnleashError

client: Optional[UnleashClient] = None

@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    # Cleanup on shutdown
    global client
    if client:
        await client.close()
        client = None

app = FastAPI(lifespan=lifespan)


def make_response(
    value: Optional[bool] = None,
    variant: Optional[dict] = None,
    flags: Optional[dict] = None,
    is_ready: Optional[bool] = None,
    state: Optional[str] = None,
    stats: Optional[dict] = None,
    success: Optional[bool] = None,
    error: Optional[str] = None,
    message: Optional[str] = None,
) -> dict:
    resp: dict = {}
    if value is not None:
        resp["value"] = value
    if variant is not None:
        resp["variant"] = variant
    if flags is not None:
        resp["flags"] = flags
    if is_ready is not None:
        resp["isReady"] = is_ready
    if state is not None:
        resp["state"] = state
    if stats is not None:
        resp["stats"] = stats
    if success is not None:
        resp["success"] = success
    if error is not None:
        resp["error"] = error
    if message is not None:
        resp["message"] = message
    return resp


def build_client(config_data: dict) -> UnleashClient:
    builder = ClientBuilder()
    if config_data.get("instanceId"):
        builder.instance_id(config_data["instanceId"])
    if config_data.get("refreshInterval"):
        builder.refresh_interval(float(config_data["refreshInterval"]))
    if config_data.get("timeout"):
        builder.request_timeout(float(config_data["timeout"]))
    if config_data.get("disableMetrics"):
        builder.disable_metrics(True)
    if config_data.get("project") or config_data.get("namePrefix"):
        builder.features_query(FeaturesQuery(
            project=list(config_data.get("project") or []),
            name_prefix=config_data.get("namePrefix"),
        ))
    return builder.build(
        config_data.get("url", ""),
        config_data.get("appName", ""),
        config_data.get("apiToken", ""),
    )


async def handle_command(cmd: dict) -> dict:
    global client
    command = cmd.get("command")

    if command == "init":
        config_data = cmd.get("config")
        if not config_data:
            return make_response(error="ValidationError", message="config is required")

        # Cleanup previous instance
        if client:
            await client.close()
            client = None

        try:
            client = build_client(config_data)
        except UnleashError as e:
            return make_response(error=type(e).__name__, message=e.message)

        client.start_background()
        ready = await client.wait_until_ready(float(config_data.get("readyTimeout", 5)))
        return make_response(success=True, is_ready=ready)

    if not client:
        if command == "getState":
            return make_response(is_ready=False, state="stopped")
        if command == "close":
            return make_response(success=True)
        return make_response(error="NotInitializedError", message="Client not initialized")

    if command in ("isEnabled", "getVariant"):
        flag_key = cmd.get("flagKey")
        if not flag_key:
            return make_response(error="ValidationError", message="flagKey is required")

        context = cmd.get("context") or {}
        if command == "isEnabled":
            return make_response(value=client.is_enabled(flag_key, context))
        return make_response(variant=client.get_variant(flag_key, context).to_dict())

    elif command == "resolveAll":
        resolved = client.resolve_all(cmd.get("context") or {})
        return make_response(flags={name: flag.to_dict() for name, flag in resolved.items()})

    elif command == "getState":
        snap = client.get_stats().snapshot()
        return make_response(
            is_ready=client.is_ready,
            state=client.state.value,
            stats={
                "requests": snap.total_requests,
                "failures": snap.failed_requests,
                "notModified": snap.not_modified_responses,
            },
        )

    elif command == "close":
        await client.close()
        client = None
        return make_response(success=True)

    else:
        return make_response(error="UnknownCommand", message=f"Unknown command: {command}")


@app.get("/")
async def health_check():
    return {"success": True}


@app.post("/")
async def execute_command(request: Request):
    try:
        cmd = await request.json()
        result = await handle_command(cmd)
        return JSONResponse(content=result)
    except Exception as e:
        return JSONResponse(
            content=make_response(error="ParseError", message=str(e)),
            status_code=400,
        )


@app.delete("/")
async def cleanup():
    global client
    if client:
        await client.close()
        client = None
    return {"success": True}


if __name__ == "__main__":
    port = int(os.getenv("PORT", "8007"))
    print(f"[unleash-lite test-service] Listening on port {port}")
    uvicorn.run(app, host="0.0.0.0", port=port, log_level="warning")
