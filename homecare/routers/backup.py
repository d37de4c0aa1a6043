from __future__ import annotations

from datetime import date

from fastapi import APIRouter, Request, Response

from homecare.core.errors import ValidationError
from homecare.routers import get_repository

router = APIRouter(prefix="/backup", tags=["backup"])


def backup_filename(today: date | None = None) -> str:
    return f"mhhc5-backup-{(today or date.today()).isoformat()}.json"


@router.get("/export")
async def export_backup(request: Request):
    body = await get_repository(request).export_all()
    return Response(
        content=body.encode("utf-8"),
        media_type="application/json; charset=utf-8",
        headers={"Content-Disposition": f'attachment; filename="{backup_filename()}"'},
    )


@router.post("/import")
async def import_backup(request: Request):
    raw = await request.body()
    try:
        text = raw.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise ValidationError("Backup is not valid UTF-8") from exc
    await get_repository(request).import_all(text)
    return {"ok": True}
