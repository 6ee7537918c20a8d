"""Canonical prescription text block.

A committed prescription is stored as free text on the patient record. Its
first line is machine readable::

    Prescribed on: 2024-06-15 at 09:30

and is what the record store reads back to order patients by last activity.
The formatter and the parser below are the only code that should know this
layout; keep them in step.
"""
import re
import logging
from datetime import datetime
from typing import Iterable, Optional
from medisync.models import PrescriptionSuggestion
from medisync.utils.time_utils import utc_now


logger = logging.getLogger(__name__)

PRESCRIBED_ON_PREFIX = "Prescribed on:"
DATE_FORMAT = "%Y-%m-%d"
TIME_FORMAT = "%H:%M"
NO_MEDICATIONS_LINE = "Medications: No specific medications suggested."

_PRESCRIBED_ON_LINE = re.compile(r"^[ \t]*Prescribed on:[ \t]*(\S+)[ \t]+at[ \t]+(\S+)", re.MULTILINE)
_DATE_SHAPE = re.compile(r"\d{4}-\d{2}-\d{2}")
_TIME_SHAPE = re.compile(r"\d{2}:\d{2}")


def parse_prescribed_on(text: str) -> Optional[datetime]:
    """Return the timestamp embedded in a prescription entry, or None.

    Entries without the line (seeded or legacy text) are expected and return
    None quietly. Impossible values such as month 13 are logged and skipped.
    """
    if not text:
        return None
    match = _PRESCRIBED_ON_LINE.search(text)
    if not match:
        return None
    date_part, time_part = match.group(1), match.group(2)
    if not (_DATE_SHAPE.fullmatch(date_part) and _TIME_SHAPE.fullmatch(time_part)):
        logger.debug(f"Ignoring malformed prescription timestamp: {date_part} {time_part}")
        return None
    try:
        return datetime.strptime(f"{date_part} {time_part}", f"{DATE_FORMAT} {TIME_FORMAT}")
    except ValueError as e:
        logger.warning(f"Skipping unparseable prescription timestamp {date_part} {time_part}: {e}")
        return None


def effective_activity(created_at: datetime, prescriptions: Iterable[str]) -> datetime:
    """Latest of the creation time and every parseable prescription timestamp."""
    latest = created_at
    for entry in prescriptions or ():
        stamp = parse_prescribed_on(entry)
        if stamp is not None and stamp > latest:
            latest = stamp
    return latest


def _has_text(value: Optional[str]) -> bool:
    return bool(value and value.strip())


def format_medication(index: int, medication) -> list:
    line = f"{index}. {medication.name.strip()}"
    if _has_text(medication.dosage):
        line += f" {medication.dosage.strip()}"
    if _has_text(medication.route):
        line += f" ({medication.route.strip()})"
    if _has_text(medication.frequency):
        line += f", {medication.frequency.strip()}"
    if _has_text(medication.duration):
        line += f", {medication.duration.strip()}"
    lines = [line]
    if _has_text(medication.additional_instructions):
        lines.append(f"   Instructions: {medication.additional_instructions.strip()}")
    return lines


def format_prescription(
    suggestion: PrescriptionSuggestion,
    symptoms: str,
    diagnosis: str,
    committed_at: Optional[datetime] = None,
) -> str:
    """Serialize a suggestion into the canonical text block.

    ``symptoms`` and ``diagnosis`` must be the values the suggestion was
    generated from, not whatever the form holds at commit time.
    """
    committed_at = committed_at or utc_now()
    lines = [
        f"{PRESCRIBED_ON_PREFIX} {committed_at.strftime(DATE_FORMAT)} at {committed_at.strftime(TIME_FORMAT)}"
    ]
    if _has_text(symptoms):
        lines.append(f"Symptoms: {symptoms.strip()}")
    if _has_text(diagnosis):
        lines.append(f"Diagnosis: {diagnosis.strip()}")

    lines.append("")
    if suggestion.medications:
        lines.append("Medications:")
        for index, medication in enumerate(suggestion.medications, start=1):
            lines.extend(format_medication(index, medication))
    else:
        lines.append(NO_MEDICATIONS_LINE)

    for title, value in (
        ("General Instructions", suggestion.general_instructions),
        ("Follow-up", suggestion.follow_up),
        ("Additional Notes", suggestion.additional_notes),
    ):
        if _has_text(value):
            lines.append("")
            lines.append(f"{title}: {value.strip()}")

    return "\n".join(lines)
