from __future__ import annotations

from fastapi import APIRouter, Body, HTTPException, Request

from homecare.routers import get_repository

router = APIRouter(prefix="/patients", tags=["patients"])


@router.get("")
async def list_patients(request: Request):
    repo = get_repository(request)
    return [p.to_record() for p in await repo.list_patients()]


@router.post("", status_code=201)
async def add_patient(request: Request, payload: dict = Body(...)):
    repo = get_repository(request)
    patient = await repo.add_patient(payload)
    return patient.to_record()


@router.get("/{patient_id}")
async def get_patient(patient_id: str, request: Request):
    repo = get_repository(request)
    patient = await repo.get_patient(patient_id)
    if not patient:
        raise HTTPException(404, "Patient not found")
    return patient.to_record()
