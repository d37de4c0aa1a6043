"""Append-only patient records: notes, assessments, contacts, tasks, files."""
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Body, Query, Request

from homecare.routers import get_repository

router = APIRouter(tags=["records"])


# -------------------------- notes --------------------------
@router.get("/notes")
async def list_notes(request: Request, patient_id: Optional[str] = Query(None, alias="patientId")):
    repo = get_repository(request)
    return [n.to_record() for n in await repo.list_notes(patient_id)]


@router.post("/notes", status_code=201)
async def add_note(request: Request, payload: dict = Body(...)):
    note = await get_repository(request).add_note(payload)
    return note.to_record()


# -------------------------- assessments --------------------------
@router.get("/assessments")
async def list_assessments(request: Request, patient_id: Optional[str] = Query(None, alias="patientId")):
    repo = get_repository(request)
    return [a.to_record() for a in await repo.list_assessments(patient_id)]


@router.post("/assessments", status_code=201)
async def add_assessment(request: Request, payload: dict = Body(...)):
    assessment = await get_repository(request).add_assessment(payload)
    return assessment.to_record()


# -------------------------- contacts --------------------------
@router.get("/contacts")
async def list_contacts(request: Request, patient_id: Optional[str] = Query(None, alias="patientId")):
    repo = get_repository(request)
    return [c.to_record() for c in await repo.list_contacts(patient_id)]


@router.post("/contacts", status_code=201)
async def add_contact(request: Request, payload: dict = Body(...)):
    contact = await get_repository(request).add_contact(payload)
    return contact.to_record()


# -------------------------- tasks --------------------------
@router.get("/tasks")
async def list_tasks(request: Request, patient_id: Optional[str] = Query(None, alias="patientId")):
    repo = get_repository(request)
    return [t.to_record() for t in await repo.list_tasks(patient_id)]


@router.post("/tasks", status_code=201)
async def add_task(request: Request, payload: dict = Body(...)):
    task = await get_repository(request).add_task(payload)
    return task.to_record()


@router.post("/tasks/{task_id}/complete")
async def complete_task(task_id: str, request: Request):
    task = await get_repository(request).complete_task(task_id)
    return task.to_record()


# -------------------------- files --------------------------
@router.get("/files")
async def list_files(request: Request, patient_id: Optional[str] = Query(None, alias="patientId")):
    repo = get_repository(request)
    return [f.to_record() for f in await repo.list_files(patient_id)]


@router.post("/files", status_code=201)
async def add_file(request: Request, payload: dict = Body(...)):
    file_ref = await get_repository(request).add_file(payload)
    return file_ref.to_record()
