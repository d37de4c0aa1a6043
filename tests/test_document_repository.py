"""
Repository behaviour against an in-memory document slot.
"""
from __future__ import annotations

import asyncio
import json
import sys
from pathlib import Path

import pytest

# Make the homecare package importable during local test runs
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from homecare.core.errors import RoleConflict, UnsupportedSchemaVersion, ValidationError  # noqa: E402
from homecare.repositories.document_repository import DocumentRepository  # noqa: E402
from homecare.repositories.memory_storage import MemoryStore  # noqa: E402
from homecare.repositories.schema import CURRENT_VERSION, empty_document  # noqa: E402


def run(coro):
    return asyncio.run(coro)


@pytest.fixture()
def store():
    return MemoryStore(empty_document())


@pytest.fixture()
def repo(store):
    return DocumentRepository(store, clock=lambda: "2024-05-01T08:00:00.000Z")


@pytest.fixture()
def patient(repo):
    return run(repo.add_patient({"name": "مريض تجريبي", "mrn": "MRN-1", "phones": ["0500000000"]}))


def test_add_patient_then_list(repo):
    created = run(repo.add_patient({"name": "Test Patient", "mrn": "TEST-001", "phones": ["0501234567"]}))

    assert created.id.startswith("p_")
    assert created.mrn == "TEST-001"
    patients = run(repo.list_patients())
    assert len(patients) == 1
    assert [p.id for p in patients].count(created.id) == 1
    assert patients[0].name == "Test Patient"
    assert patients[0].phones == ["0501234567"]


def test_patient_ids_are_unique(repo):
    ids = {run(repo.add_patient({"name": f"P{i}", "mrn": f"M{i}", "phones": []})).id for i in range(5)}
    assert len(ids) == 5
    assert [p.name for p in run(repo.list_patients())] == ["P0", "P1", "P2", "P3", "P4"]


@pytest.mark.parametrize(
    "payload",
    [
        {"name": "", "mrn": "X", "phones": []},
        {"name": "   ", "mrn": "X", "phones": []},
        {"name": "Someone", "mrn": "", "phones": []},
        {"name": "Someone", "mrn": "X", "phones": "0500"},
        {"name": "Someone", "mrn": "X", "phones": [5]},
    ],
)
def test_invalid_patient_is_rejected_without_write(repo, store, payload):
    with pytest.raises(ValidationError):
        run(repo.add_patient(payload))
    assert store.writes == 0
    assert run(repo.list_patients()) == []


def test_get_patient(repo, patient):
    assert run(repo.get_patient(patient.id)).name == "مريض تجريبي"
    assert run(repo.get_patient("p_missing")) is None


def test_queries_never_write():
    legacy = MemoryStore({"patients": [{"nameAr": "أحمد", "nationalId": "1010"}]})
    repo = DocumentRepository(legacy)
    patients = run(repo.list_patients())
    assert patients[0].name == "أحمد"
    assert legacy.writes == 0


def test_legacy_records_are_readable():
    legacy = MemoryStore({
        "patients": [{"nameAr": "أحمد", "nationalId": "1010"}, {"nameAr": "خالد", "nationalId": "1010"}],
        "notes": [{"patientId": "1010", "text": "old"}],
    })
    repo = DocumentRepository(legacy)

    ids = [p.id for p in run(repo.list_patients())]
    assert ids[0] == "1010"
    assert len(set(ids)) == 2
    notes = run(repo.list_notes("1010"))
    assert [n.text for n in notes] == ["old"]
    assert notes[0].author_name == "System"
    assert legacy.writes == 0


def test_role_binding_without_role_is_readable():
    repo = DocumentRepository(MemoryStore({"__version": 2, "rolesDirectory": [{"name": "Mona"}]}))
    assert [(r.name, r.role) for r in run(repo.list_roles())] == [("Mona", "Admin")]


def test_malformed_current_records_are_skipped_by_views():
    doc = empty_document()
    doc["patients"] = [{"id": "p_1", "name": "A"}, "junk", {"name": "no id"}]
    doc["rolesDirectory"] = [{"name": "Mona"}]
    repo = DocumentRepository(MemoryStore(doc))

    assert [p.id for p in run(repo.list_patients())] == ["p_1"]
    assert run(repo.get_patient("p_1")).name == "A"
    assert run(repo.list_roles()) == []


def test_upsert_role_is_idempotent(repo, store):
    run(repo.upsert_role("د. أحمد", "Physician"))
    writes = store.writes
    run(repo.upsert_role("د. أحمد", "Physician"))

    assert store.writes == writes
    roles = run(repo.list_roles())
    assert [(r.name, r.role) for r in roles] == [("د. أحمد", "Physician")]


def test_upsert_role_conflict_keeps_first_binding(repo, store):
    run(repo.upsert_role("Dr. Saad", "Physician"))
    writes = store.writes

    with pytest.raises(RoleConflict) as excinfo:
        run(repo.upsert_role("Dr. Saad", "Nurse"))

    assert "Dr. Saad" in str(excinfo.value)
    assert excinfo.value.existing_role == "Physician"
    assert store.writes == writes
    assert [r.role for r in run(repo.list_roles())] == ["Physician"]


def test_upsert_role_validates_input(repo):
    with pytest.raises(ValidationError):
        run(repo.upsert_role("", "Nurse"))
    with pytest.raises(ValidationError):
        run(repo.upsert_role("Someone", "Surgeon"))


def test_add_note(repo, patient):
    note = run(repo.add_note({
        "patientId": patient.id,
        "text": "زيارة منزلية، المريض مستقر",
        "type": "general",
        "authorRole": "Nurse",
        "authorName": "Nurse Huda",
    }))

    assert note.id.startswith("n_")
    assert note.created_at == "2024-05-01T08:00:00.000Z"
    assert [n.id for n in run(repo.list_notes(patient.id))] == [note.id]
    assert run(repo.list_notes("p_other")) == []


def test_add_note_rejects_author_bound_to_other_role(repo, store, patient):
    run(repo.upsert_role("Dr. Saad", "Physician"))
    writes = store.writes

    with pytest.raises(RoleConflict, match="Dr. Saad"):
        run(repo.add_note({
            "patientId": patient.id,
            "text": "follow up",
            "authorRole": "Nurse",
            "authorName": "Dr. Saad",
        }))
    assert store.writes == writes


def test_add_note_defaults_author(repo, patient):
    run(repo.upsert_role("Mona", "SW"))

    note = run(repo.add_note({"patientId": patient.id, "text": "hello", "type": "general"}))

    assert note.author_role == "Admin"
    assert note.author_name == "System"
    assert [n.id for n in run(repo.list_notes(patient.id))] == [note.id]


@pytest.mark.parametrize(
    "overrides",
    [
        {"patientId": "p_missing"},
        {"text": ""},
        {"type": "gossip"},
        {"authorRole": "Surgeon"},
    ],
)
def test_add_note_validation(repo, patient, overrides):
    payload = {"patientId": patient.id, "text": "ok", "type": "plan", "authorRole": "SW", "authorName": "Mona"}
    payload.update(overrides)
    with pytest.raises(ValidationError):
        run(repo.add_note(payload))


def test_add_assessment_appends_linked_note(repo, patient):
    assessment = run(repo.add_assessment({
        "patientId": patient.id,
        "role": "Nurse",
        "templateId": "nurse_v2",
        "fields": {
            "status": "Improved",
            "vitals": {"bp": "120/80", "hr": "78"},
            "impression": "Stable",
        },
    }))

    assert assessment.id.startswith("a_")
    notes = run(repo.list_notes(patient.id))
    assert len(notes) == 1
    assert notes[0].type == "assessment"
    assert notes[0].author_name == "System"
    assert notes[0].linked_assessment_id == assessment.id
    assert "nurse_v2" in notes[0].text


@pytest.mark.parametrize(
    "role,template,fields",
    [
        ("Nurse", "doctor_v1", {"status": "Improved", "vitals": {"bp": "1"}, "impression": "Stable"}),
        ("Physician", "doctor_v1", {"status": "Improved", "plan": "Continue"}),
        ("PT", "pt_v1", {"status": "Better", "phase": "acute", "interventions": ["ROM"]}),
        ("Driver", "driver_v1", {}),
        ("SW", "sw_v1", "not-an-object"),
    ],
)
def test_add_assessment_rejects_invalid_variants(repo, store, patient, role, template, fields):
    writes = store.writes
    with pytest.raises(ValidationError):
        run(repo.add_assessment({"patientId": patient.id, "role": role, "templateId": template, "fields": fields}))
    assert store.writes == writes
    assert run(repo.list_assessments()) == []


def test_add_contact_logs_contact_note(repo, patient):
    contact = run(repo.add_contact({
        "patientId": patient.id,
        "via": "WhatsApp",
        "summary": "Confirmed visit time",
        "outcome": "answered",
        "authorName": "Coordinator Ali",
        "authorRole": "Admin",
    }))

    assert contact.when == "2024-05-01T08:00:00.000Z"
    notes = run(repo.list_notes(patient.id))
    assert notes[-1].type == "contact"
    assert notes[-1].text == "WhatsApp: Confirmed visit time (answered)"
    assert notes[-1].author_name == "Coordinator Ali"


def test_add_contact_without_outcome(repo, patient):
    run(repo.add_contact({"patientId": patient.id, "via": "Phone", "summary": "No answer"}))
    note = run(repo.list_notes(patient.id))[-1]
    assert note.text == "Phone: No answer (—)"
    assert note.author_role == "Admin"
    assert note.author_name == "System"


def test_add_contact_rejects_unknown_channel(repo, patient):
    with pytest.raises(ValidationError):
        run(repo.add_contact({"patientId": patient.id, "via": "Fax", "summary": "x"}))


def test_tasks_open_then_done(repo, patient):
    task = run(repo.add_task({"patientId": patient.id, "title": "Deliver dressing kit", "assignee": "Driver Sami"}))
    assert task.status == "Open"

    done = run(repo.complete_task(task.id))
    assert done.status == "Done"
    assert [t.status for t in run(repo.list_tasks(patient.id))] == ["Done"]

    with pytest.raises(ValidationError):
        run(repo.complete_task("t_missing"))


def test_add_file(repo, patient):
    ref = run(repo.add_file({"patientId": patient.id, "filename": "wound.jpg", "size": 2048, "type": "image/jpeg"}))
    assert ref.uploaded_at == "2024-05-01T08:00:00.000Z"
    assert run(repo.list_files(patient.id))[0].filename == "wound.jpg"

    with pytest.raises(ValidationError):
        run(repo.add_file({"patientId": patient.id, "filename": "bad.pdf", "size": -1}))


def test_export_then_import_into_fresh_store(repo, patient):
    run(repo.upsert_role("Dr. Saad", "Physician"))
    backup = run(repo.export_all())
    assert json.loads(backup)["__version"] == CURRENT_VERSION
    assert "مريض تجريبي" in backup

    other_store = MemoryStore()
    other = DocumentRepository(other_store)
    run(other.import_all(backup))

    assert [p.id for p in run(other.list_patients())] == [patient.id]
    assert other_store.writes == 1


def test_import_upgrades_legacy_backup(repo):
    run(repo.import_all(json.dumps({"patients": [{"nameAr": "سارة", "nationalId": "2020", "phone": "0555"}]})))
    patients = run(repo.list_patients())
    assert patients[0].id == "2020"
    assert patients[0].mrn == "2020"
    assert patients[0].phones == ["0555"]


@pytest.mark.parametrize(
    "payload,error",
    [
        ("not json", ValidationError),
        ("[1, 2]", ValidationError),
        (json.dumps({"__version": CURRENT_VERSION + 1}), UnsupportedSchemaVersion),
        (json.dumps({"__version": CURRENT_VERSION, "patients": [{"name": "no id"}]}), ValidationError),
        (
            json.dumps({
                "__version": CURRENT_VERSION,
                "rolesDirectory": [{"name": "Mona", "role": "SW"}, {"name": "Mona", "role": "Nurse"}],
            }),
            RoleConflict,
        ),
    ],
)
def test_import_rejects_bad_backups(repo, store, payload, error):
    with pytest.raises(error):
        run(repo.import_all(payload))
    assert store.writes == 0


def test_future_document_blocks_every_operation():
    repo = DocumentRepository(MemoryStore({"__version": CURRENT_VERSION + 1, "patients": []}))
    with pytest.raises(UnsupportedSchemaVersion):
        run(repo.list_patients())
    with pytest.raises(UnsupportedSchemaVersion):
        run(repo.add_patient({"name": "A", "mrn": "B", "phones": []}))


def test_concurrent_role_bindings_are_not_lost(repo):
    names = [f"staff-{i}" for i in range(20)]

    async def bind_all():
        await asyncio.gather(*(repo.upsert_role(name, "Nurse") for name in names))

    run(bind_all())
    assert sorted(r.name for r in run(repo.list_roles())) == sorted(names)
