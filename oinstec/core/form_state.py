"""
Form session state for a single cylinder inspection.

A session owns the answer map for one form instance:
- Which fields are visible based on current answers
- Which required fields are still missing
- Validation of answers per field type
- Change notification to subscribers after every accepted update
- Partial saves and completion
"""

import logging
import math
import re
from collections.abc import Callable
from datetime import datetime, timezone
from typing import Any

from pydantic import ValidationError

from oinstec.core.schema import (
    FieldType,
    FileAttachment,
    FormField,
    FormTemplate,
    InspectionStatus,
)
from oinstec.core.utils import is_empty, parse_date, to_number
from oinstec.core.visibility import get_visible_fields

logger = logging.getLogger(__name__)

AnswerListener = Callable[[str, Any, dict[str, Any]], None]

READONLY_STATUSES = {InspectionStatus.COMPLETED, InspectionStatus.APPROVED}


class AnswerValidationError(Exception):
    """Raised when an answer fails validation for its field type."""

    def __init__(self, field_id: str, message: str):
        self.field_id = field_id
        self.message = message
        super().__init__(f"Field '{field_id}': {message}")


class SessionReadOnlyError(Exception):
    """Raised when answers are changed on a completed or approved form."""


class IncompleteFormError(Exception):
    """Raised when completing a form with required fields unanswered."""

    def __init__(self, missing_fields: list[FormField]):
        self.missing_fields = missing_fields
        labels = ", ".join(f.label or f.id for f in missing_fields)
        super().__init__(f"Missing required fields: {labels}")


class FormSession:
    """Manages the answers of a single form-filling session.

    Args:
        template: A validated FormTemplate instance.
        answers: Previously saved answers to resume from.
        status: Current inspection status.
    """

    def __init__(
        self,
        template: FormTemplate,
        answers: dict[str, Any] | None = None,
        status: InspectionStatus = InspectionStatus.IN_PROGRESS,
    ):
        self.template = template
        self.answers: dict[str, Any] = dict(answers or {})
        self.status = status
        self.updated_at: datetime = datetime.now(timezone.utc)
        self._listeners: list[AnswerListener] = []

    @property
    def readonly(self) -> bool:
        return self.status in READONLY_STATUSES

    # -----------------------------------------------------------------
    # Field resolution
    # -----------------------------------------------------------------

    def get_visible_fields(self) -> list[FormField]:
        """Return all fields that are currently visible, in display order."""
        return get_visible_fields(self.template, self.answers)

    def get_visible_answers(self) -> dict[str, Any]:
        """Return only answers for currently visible fields."""
        visible_ids = {f.id for f in self.get_visible_fields()}
        return {k: v for k, v in self.answers.items() if k in visible_ids}

    def get_missing_required_fields(self) -> list[FormField]:
        """Return visible, required fields that have no answer yet."""
        return [
            field for field in self.get_visible_fields()
            if field.is_answerable
            and _is_required(field)
            and is_empty(self.answers.get(field.id))
        ]

    def is_complete(self) -> bool:
        """Check if all visible required fields have been answered."""
        return len(self.get_missing_required_fields()) == 0

    def progress(self) -> dict[str, Any]:
        """Count answered fields among the visible answerable ones."""
        answerable = [f for f in self.get_visible_fields() if f.is_answerable]
        answered = sum(1 for f in answerable if not is_empty(self.answers.get(f.id)))
        total = len(answerable)
        return {
            "answered": answered,
            "total": total,
            "percent": round(answered * 100 / total) if total else 100,
        }

    # -----------------------------------------------------------------
    # Answer management
    # -----------------------------------------------------------------

    def subscribe(self, listener: AnswerListener) -> Callable[[], None]:
        """Register a callback run after every accepted answer change.

        The callback receives ``(field_id, value, answers)``; ``value`` is
        None when an answer was cleared. Returns an unsubscribe function.
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def set_answer(self, field_id: str, value: Any) -> None:
        """Validate and store an answer for the given field.

        Empty values (None, "", []) are stored as given and count as
        unanswered. Answers of fields that become hidden are kept, so
        flipping a controlling answer back restores them.

        Raises:
            SessionReadOnlyError: If the form is completed or approved.
            ValueError: If the field_id does not exist in the template.
            AnswerValidationError: If the value is invalid for the field type.
        """
        field = self._require_writable_field(field_id)
        value = self._validate_answer(field, value)
        self.answers[field_id] = value
        self._notify(field_id, value)

    def get_answer(self, field_id: str) -> Any:
        """Retrieve the current answer for a field, or None if not answered."""
        return self.answers.get(field_id)

    def clear_answer(self, field_id: str) -> None:
        """Remove an answer (for corrections)."""
        if self.readonly:
            raise SessionReadOnlyError("Form is read-only")
        if field_id in self.answers:
            del self.answers[field_id]
            self._notify(field_id, None)

    def get_all_answers(self) -> dict[str, Any]:
        """Return a copy of all current answers."""
        return dict(self.answers)

    def set_answers_bulk(self, answers: dict[str, Any]) -> tuple[dict[str, Any], dict[str, str]]:
        """Set multiple answers at once, skipping invalid ones.

        Returns:
            A tuple of (accepted, rejected) where:
            - accepted: {field_id: value} for successfully stored answers
            - rejected: {field_id: error_message} for answers that failed validation
        """
        if self.readonly:
            raise SessionReadOnlyError("Form is read-only")

        accepted: dict[str, Any] = {}
        rejected: dict[str, str] = {}

        for field_id, value in answers.items():
            try:
                self.set_answer(field_id, value)
                accepted[field_id] = self.answers[field_id]
            except AnswerValidationError as e:
                rejected[field_id] = e.message
            except ValueError as e:
                rejected[field_id] = str(e)

        return accepted, rejected

    # -----------------------------------------------------------------
    # Saving
    # -----------------------------------------------------------------

    def save(self, complete: bool = False) -> dict[str, Any]:
        """Save progress, optionally marking the form completed.

        Raises:
            SessionReadOnlyError: If the form is already completed or approved.
            IncompleteFormError: If completing with required fields missing.
        """
        if self.readonly:
            raise SessionReadOnlyError("Form is read-only")

        if complete:
            missing = self.get_missing_required_fields()
            if missing:
                raise IncompleteFormError(missing)
            self.status = InspectionStatus.COMPLETED
        else:
            self.status = InspectionStatus.IN_PROGRESS

        self.updated_at = datetime.now(timezone.utc)
        logger.info(
            "Saved form '%s' as %s (%d answers)",
            self.template.id,
            self.status.value,
            len(self.answers),
        )
        return self.snapshot()

    def snapshot(self) -> dict[str, Any]:
        """Serializable view of the session."""
        return {
            "templateId": self.template.id,
            "status": self.status.value,
            "answers": _dump_answers(self.answers),
            "progress": self.progress(),
            "updatedAt": self.updated_at.isoformat(),
        }

    # -----------------------------------------------------------------
    # Answer validation per field type
    # -----------------------------------------------------------------

    def _validate_answer(self, field: FormField, value: Any) -> Any:
        """Validate an answer against its field type.

        Returns the value to store (file answers are parsed into
        FileAttachment).

        Raises:
            AnswerValidationError: If the value is invalid.
        """
        if field.type == FieldType.SECTION_HEADER:
            raise AnswerValidationError(field.id, "Section headers do not take answers")

        if is_empty(value):
            return value

        match field.type:
            case FieldType.TEXT | FieldType.TEXTAREA:
                self._validate_text(field, value)
            case FieldType.NUMBER:
                self._validate_number(field, value)
            case FieldType.SELECT | FieldType.RADIO:
                self._validate_choice(field, value)
            case FieldType.CHECKBOX:
                self._validate_checkbox(field, value)
            case FieldType.DATE:
                self._validate_date(field, value)
            case FieldType.FILE:
                return self._validate_file(field, value)

        return value

    def _validate_text(self, field: FormField, value: Any) -> None:
        """Text must be a string matching the field's pattern, if any."""
        if not isinstance(value, str):
            raise AnswerValidationError(field.id, "Text answer must be a string")
        rules = field.validation
        if rules and rules.pattern:
            try:
                matched = re.fullmatch(rules.pattern, value) is not None
            except re.error:
                logger.warning("Field '%s' has an invalid pattern: %s", field.id, rules.pattern)
                return
            if not matched:
                raise AnswerValidationError(
                    field.id,
                    rules.message or f"'{value}' does not match the expected format",
                )

    def _validate_number(self, field: FormField, value: Any) -> None:
        """Numbers may arrive as numeric strings; bounds come from validation."""
        if isinstance(value, bool) or not isinstance(value, (int, float, str)):
            raise AnswerValidationError(field.id, "Number answer must be numeric")
        number = to_number(value)
        if math.isnan(number):
            raise AnswerValidationError(field.id, f"'{value}' is not a number")
        rules = field.validation
        if rules is None:
            return
        if (rules.min is not None and number < rules.min) or (
            rules.max is not None and number > rules.max
        ):
            raise AnswerValidationError(
                field.id,
                rules.message or f"{value} is out of range ({rules.min} to {rules.max})",
            )

    def _validate_choice(self, field: FormField, value: Any) -> None:
        """Select and radio values must be one of the defined options."""
        if not isinstance(value, str):
            raise AnswerValidationError(field.id, "Choice answer must be a string")
        if field.options and value not in field.options:
            raise AnswerValidationError(
                field.id,
                f"'{value}' is not a valid option. Choose from: {field.options}",
            )

    def _validate_checkbox(self, field: FormField, value: Any) -> None:
        """Checkbox values must be a list and a subset of defined options."""
        if not isinstance(value, list):
            raise AnswerValidationError(field.id, "Checkbox answer must be a list")
        if field.options:
            invalid = [v for v in value if v not in field.options]
            if invalid:
                raise AnswerValidationError(
                    field.id,
                    f"Invalid checkbox values: {invalid}. Choose from: {field.options}",
                )

    def _validate_date(self, field: FormField, value: Any) -> None:
        """Date value must be a parseable date string (YYYY-MM-DD)."""
        if not isinstance(value, str):
            raise AnswerValidationError(field.id, "Date answer must be a string")
        if parse_date(value) is None:
            raise AnswerValidationError(field.id, f"'{value}' is not a valid date")

    def _validate_file(self, field: FormField, value: Any) -> FileAttachment:
        """File answers are attachments with at least a name."""
        if isinstance(value, FileAttachment):
            return value
        if not isinstance(value, dict):
            raise AnswerValidationError(field.id, "File answer must be an attachment object")
        try:
            return FileAttachment.model_validate(value)
        except ValidationError:
            raise AnswerValidationError(field.id, "File answer is not a valid attachment")

    # -----------------------------------------------------------------
    # Internal helpers
    # -----------------------------------------------------------------

    def _require_writable_field(self, field_id: str) -> FormField:
        if self.readonly:
            raise SessionReadOnlyError("Form is read-only")
        field = self.template.get_field(field_id)
        if field is None:
            raise ValueError(f"Field '{field_id}' does not exist in the template")
        return field

    def _notify(self, field_id: str, value: Any) -> None:
        self.updated_at = datetime.now(timezone.utc)
        for listener in list(self._listeners):
            listener(field_id, value, dict(self.answers))


def _is_required(field: FormField) -> bool:
    if field.validation is not None and field.validation.required is not None:
        return field.validation.required
    return field.required


def _dump_answers(answers: dict[str, Any]) -> dict[str, Any]:
    return {
        key: value.model_dump(by_alias=True) if isinstance(value, FileAttachment) else value
        for key, value in answers.items()
    }
