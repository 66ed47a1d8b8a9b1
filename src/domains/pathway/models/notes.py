"""
Clinical note payloads

Notes are stored as free text with labeled lines ("Transfer To:", "Priority:",
...). Inside the service a note is one of the tagged payloads below; text is
produced by render_note() and read back by parse_note(), both called only by
the store adapters.
"""

from datetime import date
from typing import List, Optional, Union, Dict, Callable, Literal

from pydantic import BaseModel


SURGICAL_PATHWAY_NAMES = ("Surgery Pathway", "Surgical Pathway")

TRANSFER_TITLE = "PATHWAY TRANSFER"
MEDICATION_TRANSFER_TITLE = "PATHWAY TRANSFER - MEDICATION PRESCRIBED"
INVESTIGATION_TITLE = "INVESTIGATION REQUEST"
RESCHEDULE_TITLE_SUFFIX = "APPOINTMENT RESCHEDULED"
TYPE_CHANGE_PREFIX = "Appointment type changed from"


def format_long_date(value: date) -> str:
    """Format a date the way clinicians read it in notes, e.g. 'April 30, 2024'"""
    return f"{value:%B} {value.day}, {value.year}"


class PathwayTransferPayload(BaseModel):
    """Audit record of a care pathway transition"""
    kind: Literal["pathway_transfer"] = "pathway_transfer"
    target_pathway: str
    priority: str = "normal"
    reason: str = ""
    clinical_rationale: str = ""
    additional_notes: str = ""
    medications: List[str] = []
    surgery: List[str] = []
    follow_up: List[str] = []
    psa_velocity: Optional[str] = None
    medication_prescribed: bool = False

    @property
    def title(self) -> str:
        return MEDICATION_TRANSFER_TITLE if self.medication_prescribed else TRANSFER_TITLE

    @property
    def is_surgical(self) -> bool:
        return any(name in self.target_pathway for name in SURGICAL_PATHWAY_NAMES)


class InvestigationRequestPayload(BaseModel):
    """Investigation request summary"""
    kind: Literal["investigation_request"] = "investigation_request"
    investigation_type: str = ""
    test_name: str = ""
    priority: str = "routine"
    scheduled_date: Optional[str] = None
    clinical_notes: str = ""


class ReschedulePayload(BaseModel):
    """Appointment reschedule notice, shown nested under its transfer note"""
    kind: Literal["reschedule"] = "reschedule"
    appointment_kind: str = "surgery"
    new_date: str = ""
    new_time: str = ""
    reason: str = ""

    @property
    def is_surgery(self) -> bool:
        return self.appointment_kind.lower() == "surgery"


class AppointmentTypeChangePayload(BaseModel):
    """Informational notice emitted when an appointment changes type"""
    kind: Literal["appointment_type_change"] = "appointment_type_change"
    text: str


class PlainTextPayload(BaseModel):
    """Free text note"""
    kind: Literal["text"] = "text"
    text: str = ""


NotePayload = Union[
    PathwayTransferPayload,
    InvestigationRequestPayload,
    ReschedulePayload,
    AppointmentTypeChangePayload,
    PlainTextPayload,
]


# ---------------------------------------------------------------------------
# Rendering
# ---------------------------------------------------------------------------

def _section(label: str, lines: List[str]) -> List[str]:
    if not lines:
        return []
    return ["", label] + lines


def _render_transfer(payload: PathwayTransferPayload) -> str:
    lines = [
        payload.title,
        f"Transfer To: {payload.target_pathway}",
        f"Priority: {payload.priority.capitalize()}",
    ]
    if payload.psa_velocity:
        lines.append(f"PSA Velocity: {payload.psa_velocity}")
    lines += _section("Reason for Transfer:", payload.reason.splitlines())
    lines += _section("Clinical Rationale:", payload.clinical_rationale.splitlines())
    lines += _section("Additional Notes:", payload.additional_notes.splitlines())
    lines += _section("Prescribed Medications:", [f"- {m}" for m in payload.medications])
    lines += _section("Surgery Scheduled:", [f"- {s}" for s in payload.surgery])
    lines += _section("Follow-up Appointment Scheduled:", [f"- {f}" for f in payload.follow_up])
    return "\n".join(lines)


def _render_investigation(payload: InvestigationRequestPayload) -> str:
    lines = [
        INVESTIGATION_TITLE,
        "",
        f"Type: {payload.investigation_type.upper()}",
        f"Test: {payload.test_name}",
        f"Priority: {payload.priority.capitalize()}",
    ]
    if payload.scheduled_date:
        lines.append(f"Scheduled Date: {payload.scheduled_date}")
    lines += _section("Clinical Notes:", payload.clinical_notes.splitlines())
    return "\n".join(lines)


def _render_reschedule(payload: ReschedulePayload) -> str:
    return "\n".join([
        f"{payload.appointment_kind.upper()} {RESCHEDULE_TITLE_SUFFIX}",
        "",
        "New Appointment:",
        f"- Date: {payload.new_date}",
        f"- Time: {payload.new_time}",
        "",
        f"Reason: {payload.reason or 'Not specified'}",
    ])


def render_note(payload: NotePayload) -> str:
    """Serialize a note payload to the stored text layout"""
    if isinstance(payload, PathwayTransferPayload):
        return _render_transfer(payload)
    if isinstance(payload, InvestigationRequestPayload):
        return _render_investigation(payload)
    if isinstance(payload, ReschedulePayload):
        return _render_reschedule(payload)
    return payload.text


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------

_TRANSFER_INLINE = {
    "Transfer To:": "target_pathway",
    "Priority:": "priority",
    "PSA Velocity:": "psa_velocity",
}

_TRANSFER_SECTIONS = {
    "Reason for Transfer:": "reason",
    "Clinical Rationale:": "clinical_rationale",
    "Additional Notes:": "additional_notes",
    "Prescribed Medications:": "medications",
    "Surgery Scheduled:": "surgery",
    "Follow-up Appointment Scheduled:": "follow_up",
}

_LIST_FIELDS = ("medications", "surgery", "follow_up")


def _parse_transfer(lines: List[str]) -> PathwayTransferPayload:
    data: Dict[str, object] = {"medication_prescribed": lines[0] == MEDICATION_TRANSFER_TITLE}
    sections: Dict[str, List[str]] = {}
    current = None

    for line in lines[1:]:
        inline = next((label for label in _TRANSFER_INLINE if line.startswith(label)), None)
        if inline:
            data[_TRANSFER_INLINE[inline]] = line[len(inline):].strip()
            current = None
        elif line in _TRANSFER_SECTIONS:
            current = _TRANSFER_SECTIONS[line]
            sections.setdefault(current, [])
        elif line and current:
            sections[current].append(line)

    for key, values in sections.items():
        if key in _LIST_FIELDS:
            data[key] = [v[2:] if v.startswith("- ") else v for v in values]
        else:
            data[key] = "\n".join(values)

    data["priority"] = str(data.get("priority") or "normal").lower()
    data.setdefault("target_pathway", "")
    return PathwayTransferPayload(**data)


def _parse_investigation(lines: List[str]) -> InvestigationRequestPayload:
    data: Dict[str, str] = {}
    notes: List[str] = []
    in_notes = False
    fields = {
        "Type:": "investigation_type",
        "Test:": "test_name",
        "Priority:": "priority",
        "Scheduled Date:": "scheduled_date",
    }
    for line in lines[1:]:
        if line == "Clinical Notes:":
            in_notes = True
            continue
        if in_notes:
            if line:
                notes.append(line)
            continue
        label = next((f for f in fields if line.startswith(f)), None)
        if label:
            data[fields[label]] = line[len(label):].strip()

    if "priority" in data:
        data["priority"] = data["priority"].lower()
    return InvestigationRequestPayload(clinical_notes="\n".join(notes), **data)


def _parse_reschedule(lines: List[str]) -> ReschedulePayload:
    kind = lines[0][: -len(RESCHEDULE_TITLE_SUFFIX)].strip().lower() or "surgery"
    data = {"appointment_kind": kind}
    for line in lines[1:]:
        if line.startswith("- Date:"):
            data["new_date"] = line[len("- Date:"):].strip()
        elif line.startswith("- Time:"):
            data["new_time"] = line[len("- Time:"):].strip()
        elif line.startswith("Reason:"):
            reason = line[len("Reason:"):].strip()
            data["reason"] = "" if reason == "Not specified" else reason
    return ReschedulePayload(**data)


_PARSERS: List[tuple] = [
    (lambda first: first in (TRANSFER_TITLE, MEDICATION_TRANSFER_TITLE), _parse_transfer),
    (lambda first: first == INVESTIGATION_TITLE, _parse_investigation),
    (lambda first: first.endswith(RESCHEDULE_TITLE_SUFFIX), _parse_reschedule),
]


def parse_note(text: Optional[str]) -> NotePayload:
    """Decode stored note text into a payload; unknown layouts become plain text"""
    text = text or ""
    lines = [line.strip() for line in text.strip().splitlines()]
    if not lines:
        return PlainTextPayload(text="")

    first = lines[0]
    if first.startswith(TYPE_CHANGE_PREFIX):
        return AppointmentTypeChangePayload(text=text.strip())

    parser: Optional[Callable] = next((p for match, p in _PARSERS if match(first)), None)
    if parser is None:
        return PlainTextPayload(text=text)
    return parser(lines)
