"""REST API for host commands against the running tunnel."""

from __future__ import annotations

import json

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from tunnelsync.errors import LogExportError
from tunnelsync.notify import read_last_error
from tunnelsync.tunnel.provider import ProviderCommand

router = APIRouter(tags=["commands"])


class CommandRequest(BaseModel):
    command: str


@router.get("/running-info")
async def running_info(request: Request):
    info = request.app.state.provider.running_info()
    if info is None:
        return JSONResponse(
            status_code=404,
            content={"detail": "Running info unavailable"},
        )
    try:
        return json.loads(info)
    except json.JSONDecodeError:
        return JSONResponse(
            status_code=502,
            content={"detail": "Running info is not valid JSON"},
        )


@router.get("/last-network-settings")
def last_network_settings(request: Request):
    snap = request.app.state.provider.last_settings()
    return snap.to_dict() if snap is not None else None


@router.post("/export-logs")
async def export_logs(request: Request):
    try:
        path = request.app.state.provider.export_logs()
    except LogExportError as exc:
        return JSONResponse(status_code=500, content={"detail": str(exc)})
    return {"path": str(path)}


@router.get("/last-error")
async def last_error(request: Request):
    return {"message": read_last_error(request.app.state.config.shared_dir)}


@router.post("/commands")
async def run_command(body: CommandRequest, request: Request):
    try:
        command = ProviderCommand(body.command)
    except ValueError:
        return JSONResponse(
            status_code=400,
            content={"detail": f"Unknown command: {body.command}"},
        )
    reply = request.app.state.provider.handle_app_message(command.value.encode("utf-8"))
    if reply is None:
        return JSONResponse(
            status_code=404,
            content={"detail": f"No reply for {command.value}"},
        )
    return {"command": command.value, "reply": reply.decode("utf-8")}
