from __future__ import annotations

from fastapi import APIRouter, Body, Request

from homecare.routers import get_repository

router = APIRouter(prefix="/roles", tags=["roles"])


@router.get("")
async def list_roles(request: Request):
    return [r.to_record() for r in await get_repository(request).list_roles()]


@router.put("")
async def upsert_role(request: Request, name: str = Body(""), role: str = Body("")):
    await get_repository(request).upsert_role(name, role)
    return {"ok": True, "name": name.strip(), "role": role}
