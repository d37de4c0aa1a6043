"""Assessment variants per clinical role.

Each role that can author assessments owns a closed set of form templates
and the fields every one of its forms must carry.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping

CLINICAL_STATUSES = ("Improved", "Unchanged", "Worsened")


@dataclass(frozen=True)
class AssessmentVariant:
    role: str
    templates: tuple[str, ...]
    required_fields: tuple[str, ...]


VARIANTS = {
    "Physician": AssessmentVariant(
        role="Physician",
        templates=("doctor_v1", "doctor_followup_v1"),
        required_fields=("status", "plan", "followUpTiming"),
    ),
    "Nurse": AssessmentVariant(
        role="Nurse",
        templates=("nurse_v1", "nurse_v2", "nurse_followup_v1"),
        required_fields=("status", "vitals", "impression"),
    ),
    "PT": AssessmentVariant(
        role="PT",
        templates=("pt_v1", "pt_followup_v1"),
        required_fields=("status", "phase", "interventions"),
    ),
    "SW": AssessmentVariant(
        role="SW",
        templates=("sw_v1", "sw_followup_v1"),
        required_fields=("residence", "adlAssistance", "actions"),
    ),
}


def _blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, (list, dict, tuple)):
        return len(value) == 0
    return False


def assessment_problems(role: str, template_id: str, form: Mapping[str, Any] | None) -> list[str]:
    """Return human-readable problems with an assessment form (empty when valid)."""
    variant = VARIANTS.get(role)
    if variant is None:
        return [f"role {role!r} cannot author assessments"]
    problems = []
    if template_id not in variant.templates:
        problems.append(f"template {template_id!r} is not a {role} template ({', '.join(variant.templates)})")
    if not isinstance(form, Mapping):
        problems.append("fields must be an object")
        return problems
    missing = [name for name in variant.required_fields if _blank(form.get(name))]
    if missing:
        problems.append(f"missing required fields: {', '.join(missing)}")
    status = form.get("status")
    if status is not None and status not in CLINICAL_STATUSES:
        problems.append(f"status must be one of {', '.join(CLINICAL_STATUSES)}")
    return problems
