"""
Clinical timeline reconciliation

Turns the flat, newest-first note history into display order: surgical
transfer notes carry the surgery reschedule notes that followed them as
indented children.
"""

import logging
import datetime as dt
from typing import Iterable, List, Optional

from domains.pathway.models.notes import (
    AppointmentTypeChangePayload,
    InvestigationRequestPayload,
    PathwayTransferPayload,
    ReschedulePayload,
)
from domains.pathway.models.records import ClinicalNote, NoteType
from ..models.clinical import TimelineEntry

logger = logging.getLogger(__name__)

CHILD_INDENT = 1


def is_noise(note: ClinicalNote) -> bool:
    """Notes hidden from the timeline"""
    if isinstance(note.content, AppointmentTypeChangePayload):
        return True
    # Investigation requests also raise a transfer-typed copy of themselves
    return note.type == NoteType.PATHWAY_TRANSFER and isinstance(note.content, InvestigationRequestPayload)


def is_parent(note: ClinicalNote) -> bool:
    return isinstance(note.content, PathwayTransferPayload) and note.content.is_surgical


def is_child(note: ClinicalNote) -> bool:
    return isinstance(note.content, ReschedulePayload) and note.content.is_surgery


def reconcile(notes: Iterable[ClinicalNote]) -> List[TimelineEntry]:
    """
    Order notes for display

    Each surgical transfer note owns the reschedule notes created from its own
    timestamp up to (not including) the next newer transfer note. Groups are
    emitted oldest transfer first so owned notes sit between their parent and
    the next transfer, newest-first within the group. Other notes keep their
    input order and reschedule notes that no parent owns come last.
    """
    kept = [note for note in notes if not is_noise(note)]

    parents = sorted((n for n in kept if is_parent(n)), key=lambda n: n.created_at, reverse=True)
    children = [n for n in kept if is_child(n)]
    others = [n for n in kept if not is_parent(n) and not is_child(n)]

    unassigned = list(children)
    groups: List[List[TimelineEntry]] = []
    upper_bound: Optional[dt.datetime] = None

    for parent in parents:
        owned, remaining = [], []
        for child in unassigned:
            in_window = child.created_at >= parent.created_at and (
                upper_bound is None or child.created_at < upper_bound
            )
            (owned if in_window else remaining).append(child)
        unassigned = remaining

        group = [TimelineEntry(note=parent, indent_level=0)]
        group.extend(
            TimelineEntry(note=child, indent_level=CHILD_INDENT)
            for child in sorted(owned, key=lambda n: n.created_at, reverse=True)
        )
        groups.append(group)
        upper_bound = parent.created_at

    timeline: List[TimelineEntry] = [entry for group in reversed(groups) for entry in group]
    timeline.extend(TimelineEntry(note=note, indent_level=0) for note in others)
    timeline.extend(TimelineEntry(note=note, indent_level=0) for note in unassigned)

    if unassigned:
        logger.debug(f"{len(unassigned)} reschedule notes matched no surgical transfer")

    return timeline
