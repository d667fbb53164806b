"""HTTP request interface for the hub.

Every response carries ``success``. Failures add ``error`` ("<Name>: message")
and ``errorCode`` and use HTTP 404 for missing scenes and sync groups, 500
for everything else.
"""

import logging
from contextlib import asynccontextmanager
from typing import Any, Dict, List, Optional, Union

from fastapi import APIRouter, Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from atv_remote.errors import BridgeError, MissingParameters

from . import __version__
from .bridge import AndroidTVBridge

logger = logging.getLogger(__name__)

router = APIRouter()


class RequestModel(BaseModel):
    """Request body with camelCase field names; every field optional so
    missing ones surface as MissingParameters rather than validation noise."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class PairStartRequest(RequestModel):
    device_id: Optional[str] = None
    host: Optional[str] = None
    device_name: Optional[str] = None


class PairCompleteRequest(RequestModel):
    device_id: Optional[str] = None
    code: Optional[str] = None


class ConnectRequest(RequestModel):
    device_id: Optional[str] = None
    host: Optional[str] = None
    certificate: Optional[str] = None
    private_key: Optional[str] = None


class DeviceRequest(RequestModel):
    device_id: Optional[str] = None


class KeyRequest(RequestModel):
    device_id: Optional[str] = None
    key_code: Optional[Union[int, str]] = None
    key_name: Optional[str] = None


class AppLaunchRequest(RequestModel):
    device_id: Optional[str] = None
    app_url: Optional[str] = None


class TextRequest(RequestModel):
    device_id: Optional[str] = None
    text: Optional[str] = None


class SceneSaveRequest(RequestModel):
    scene_name: Optional[str] = None
    scene: Optional[Dict[str, Any]] = None


class SceneExecuteRequest(RequestModel):
    scene_name: Optional[str] = None
    device_id: Optional[str] = None


class SyncCreateRequest(RequestModel):
    group_name: Optional[str] = None
    device_ids: Optional[List[str]] = None


class SyncCommandRequest(RequestModel):
    group_name: Optional[str] = None
    command: Optional[Dict[str, Any]] = None


class WakeRequest(RequestModel):
    device_id: Optional[str] = None
    mac: Optional[str] = None
    host: Optional[str] = None


def get_bridge(request: Request) -> AndroidTVBridge:
    return request.app.state.bridge


def error_body(err: BridgeError) -> Dict[str, Any]:
    return {"success": False, "error": str(err), "errorCode": err.code}


# Pairing
@router.post("/pair/start")
async def pair_start(body: PairStartRequest, bridge: AndroidTVBridge = Depends(get_bridge)):
    displayed = await bridge.pairing.start_pairing(body.device_id, body.host, body.device_name)
    return {
        "success": True,
        "codeDisplayed": displayed,
        "message": "Pairing started - enter the code shown on the TV",
    }


@router.post("/pair/complete")
async def pair_complete(body: PairCompleteRequest, bridge: AndroidTVBridge = Depends(get_bridge)):
    credentials = await bridge.pairing.complete_pairing(body.device_id, body.code)
    encoded = credentials.to_dict()
    return {
        "success": True,
        "message": "Pairing successful",
        "certificate": encoded["certificate"],
        "privateKey": encoded["private_key"],
    }


@router.post("/unpair")
async def unpair(body: DeviceRequest, bridge: AndroidTVBridge = Depends(get_bridge)):
    removed = await bridge.unpair(body.device_id)
    return {"success": True, "removed": removed}


# Connection management
@router.post("/connect")
async def connect(body: ConnectRequest, bridge: AndroidTVBridge = Depends(get_bridge)):
    state = await bridge.connect(body.device_id, body.host, body.certificate, body.private_key)
    return {"success": True, "message": "Connected successfully", "status": state.status.value}


@router.post("/disconnect")
async def disconnect(body: DeviceRequest, bridge: AndroidTVBridge = Depends(get_bridge)):
    await bridge.disconnect(body.device_id)
    return {"success": True, "message": "Disconnected"}


@router.get("/status/{device_id}")
async def status(device_id: str, bridge: AndroidTVBridge = Depends(get_bridge)):
    return {"success": True, "deviceId": device_id, **bridge.status(device_id)}


@router.get("/power/{device_id}")
async def power(device_id: str, bridge: AndroidTVBridge = Depends(get_bridge)):
    return {"success": True, **bridge.power_state(device_id)}


@router.post("/wake")
async def wake(body: WakeRequest, bridge: AndroidTVBridge = Depends(get_bridge)):
    sent = bridge.wake(body.mac, body.device_id, body.host)
    return {"success": sent}


# Commands
@router.post("/key")
async def key(body: KeyRequest, bridge: AndroidTVBridge = Depends(get_bridge)):
    key_value = body.key_code if body.key_code not in (None, "") else body.key_name
    if key_value in (None, ""):
        raise MissingParameters("deviceId and keyCode or keyName are required")
    await bridge.connection.send_key(body.device_id, key_value)
    return {"success": True}


@router.post("/app/launch")
async def app_launch(body: AppLaunchRequest, bridge: AndroidTVBridge = Depends(get_bridge)):
    await bridge.connection.launch_app(body.device_id, body.app_url)
    return {"success": True}


@router.post("/text")
async def text(body: TextRequest, bridge: AndroidTVBridge = Depends(get_bridge)):
    await bridge.connection.send_text(body.device_id, body.text)
    return {"success": True}


# Scenes
@router.post("/scene/save")
async def scene_save(body: SceneSaveRequest, bridge: AndroidTVBridge = Depends(get_bridge)):
    scene = bridge.scenes.save(body.scene_name, body.scene)
    return {"success": True, "scene": scene.to_dict()}


@router.post("/scene/execute")
async def scene_execute(body: SceneExecuteRequest, bridge: AndroidTVBridge = Depends(get_bridge)):
    result = await bridge.scenes.execute(body.scene_name, body.device_id)
    return {"success": True, "result": result}


@router.get("/scenes")
async def scenes(bridge: AndroidTVBridge = Depends(get_bridge)):
    items = [scene.to_dict() for scene in bridge.scenes.list()]
    return {"success": True, "scenes": items, "count": len(items)}


@router.delete("/scene/{name}")
async def scene_delete(name: str, bridge: AndroidTVBridge = Depends(get_bridge)):
    bridge.scenes.delete(name)
    return {"success": True}


# Sync groups
@router.post("/sync/create")
async def sync_create(body: SyncCreateRequest, bridge: AndroidTVBridge = Depends(get_bridge)):
    group = bridge.sync.create_group(body.group_name, body.device_ids)
    return {"success": True, "group": group.to_dict()}


@router.post("/sync/command")
async def sync_command(body: SyncCommandRequest, bridge: AndroidTVBridge = Depends(get_bridge)):
    results = await bridge.sync.dispatch(body.group_name, body.command)
    return {"success": True, "results": [r.to_dict() for r in results]}


@router.get("/sync/groups")
async def sync_groups(bridge: AndroidTVBridge = Depends(get_bridge)):
    groups = [group.to_dict() for group in bridge.sync.list_groups()]
    return {"success": True, "groups": groups, "count": len(groups)}


@router.delete("/sync/{group_name}")
async def sync_delete(group_name: str, bridge: AndroidTVBridge = Depends(get_bridge)):
    bridge.sync.delete_group(group_name)
    return {"success": True}


# Introspection
@router.get("/devices")
async def devices(bridge: AndroidTVBridge = Depends(get_bridge)):
    items = bridge.list_devices()
    return {"success": True, "devices": items, "count": len(items)}


@router.get("/health")
async def health(bridge: AndroidTVBridge = Depends(get_bridge)):
    return {"success": True, "version": __version__, **bridge.health()}


async def bridge_error_handler(request: Request, exc: BridgeError) -> JSONResponse:
    logger.warning(f"{request.method} {request.url.path} failed: {exc}")
    return JSONResponse(status_code=exc.status_code, content=error_body(exc))


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    details = []
    for err in exc.errors():
        field = ".".join(str(x) for x in err.get("loc", []) if x != "body") or "request"
        details.append(f"{field}: {err.get('msg', 'Invalid value')}")
    message = "; ".join(details) or "Invalid request body"
    logger.warning(f"{request.method} {request.url.path} rejected: {message}")
    return JSONResponse(
        status_code=500,
        content={"success": False, "error": f"InvalidParameter: {message}", "errorCode": "InvalidParameter"},
    )


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(f"Unhandled error on {request.method} {request.url.path}: {exc}")
    return JSONResponse(
        status_code=500,
        content={"success": False, "error": f"InternalError: {exc}", "errorCode": "InternalError"},
    )


def create_app(bridge: AndroidTVBridge) -> FastAPI:
    """Build the HTTP application around a bridge.

    The bridge is started and stopped with the application lifespan.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        await bridge.start()
        try:
            yield
        finally:
            await bridge.stop()

    app = FastAPI(title="Android TV Remote Bridge", version=__version__, lifespan=lifespan)
    app.state.bridge = bridge
    app.include_router(router)
    app.add_exception_handler(BridgeError, bridge_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
    return app
