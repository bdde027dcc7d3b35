from __future__ import annotations

import json
import logging
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from .dates import DateError, DateOrText, parse_date
from .recurrence import describe, from_rule_text, from_rule_text_or_default, occurrences, to_rule_text, validate_rule
from .schemas import RecurrenceDescription
from .services.export_service import to_calendar_document
from .services.form_service import RecurrenceForm
from .settings import Settings, get_settings

log = logging.getLogger(__name__)


class RecurrencePickerControl:
    """Adapter between a hosting application and the recurrence form.

    The host passes the serialized recurrence and a visibility flag in and
    reads ``get_outputs()`` back whenever ``on_output_changed`` fires.
    """

    def __init__(self, settings: Settings, on_output_changed: Optional[Callable[[], None]] = None) -> None:
        self.settings = settings
        self.locale = settings.locale
        self.on_output_changed = on_output_changed or (lambda: None)
        self.recurrence: Optional[RecurrenceDescription] = None
        self.is_visible = False
        self.form: Optional[RecurrenceForm] = None

    def init(self, recurrence_data: Optional[str], is_visible: bool = False, locale: Optional[str] = None) -> None:
        self.locale = locale or self.locale
        self.is_visible = bool(is_visible)
        self.recurrence = self._load(recurrence_data) if recurrence_data else None

    def update_view(
        self, recurrence_data: Optional[str], is_visible: bool = False, locale: Optional[str] = None
    ) -> None:
        self.locale = locale or self.locale
        self.is_visible = bool(is_visible)
        if not recurrence_data:
            return
        loaded = self._load(recurrence_data)
        if loaded is not None and (self.recurrence is None or loaded.to_dict() != self.recurrence.to_dict()):
            self.recurrence = loaded

    def _load(self, raw: str) -> Optional[RecurrenceDescription]:
        try:
            payload = json.loads(raw)
        except json.JSONDecodeError as exc:
            log.error("Error parsing recurrence data: %s", exc)
            return None
        if not isinstance(payload, dict):
            log.error("Recurrence data must be a JSON object, got %s", type(payload).__name__)
            return None
        if payload.get("rrule") and "pattern" not in payload:
            desc = from_rule_text_or_default(payload["rrule"], payload.get("startDate"), self.locale)
            desc.description = describe(desc.rrule, self.locale) if desc.rrule else None
            return desc
        try:
            return RecurrenceDescription.from_dict(payload, self.locale)
        except (ValueError, TypeError) as exc:
            log.error("Invalid recurrence data: %s", exc)
            return None

    def get_outputs(self) -> Dict[str, Any]:
        return {
            "recurrenceData": json.dumps(self.recurrence.to_dict()) if self.recurrence else "",
            "isVisible": self.is_visible,
            "recurrenceDescription": (self.recurrence.description if self.recurrence else None) or "",
        }

    def open_form(self) -> RecurrenceForm:
        self.form = RecurrenceForm(self.locale, initial=self.recurrence, settings=self.settings)
        return self.form

    def handle_set(self, form: Optional[RecurrenceForm] = None) -> bool:
        form = form or self.form
        if form is None:
            return False
        saved = form.save()
        if saved is None:
            log.info("Recurrence not saved, form has errors: %s", form.errors)
            return False
        self.recurrence = saved
        self.is_visible = False
        self.on_output_changed()
        return True

    def handle_cancel(self) -> None:
        if self.form is not None:
            self.form.discard()
        self.is_visible = False
        self.on_output_changed()

    def handle_toggle_visibility(self) -> None:
        self.is_visible = not self.is_visible
        self.on_output_changed()

    def handle_remove(self) -> None:
        if self.form is not None:
            self.form.remove()
        self.recurrence = None
        self.is_visible = False
        self.on_output_changed()

    # engine operations offered to the host, bound to the active locale

    def convert_to_rule(self, desc: RecurrenceDescription) -> str:
        return to_rule_text(desc, self.locale)

    def convert_from_rule(self, text: str, fallback_start: Optional[DateOrText] = None) -> RecurrenceDescription:
        return from_rule_text(text, fallback_start, self.locale)

    def describe_rule(self, rule_text: Optional[str]) -> str:
        return describe(rule_text, self.locale)

    def list_occurrences(
        self, rule_text: Optional[str], limit: Optional[int] = None, dtstart: Optional[DateOrText] = None
    ) -> List[datetime]:
        try:
            anchor = self._anchor(dtstart)
        except DateError as exc:
            log.warning("Cannot enumerate occurrences from %r: %s", dtstart, exc)
            return []
        return occurrences(rule_text, limit or self.settings.preview_count, anchor)

    def validate_rule(self, rule_text: Optional[str]) -> bool:
        return validate_rule(rule_text)

    def export_to_calendar(self, rule_text: Optional[str], title: str, dtstart: Optional[DateOrText] = None) -> str:
        try:
            anchor = self._anchor(dtstart)
        except DateError as exc:
            log.warning("Cannot export occurrences from %r: %s", dtstart, exc)
            return ""
        return to_calendar_document(rule_text, title, anchor, prodid=self.settings.prodid)

    def _anchor(self, dtstart: Optional[DateOrText]) -> Optional[datetime]:
        return parse_date(dtstart, self.locale) if dtstart is not None else None


def build_control(
    settings: Optional[Settings] = None, on_output_changed: Optional[Callable[[], None]] = None
) -> RecurrencePickerControl:
    settings = settings or get_settings()
    logging.basicConfig(level=settings.log_level)
    return RecurrencePickerControl(settings, on_output_changed)
