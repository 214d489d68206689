"""
Widget descriptors for the rendering layer.

Each visible field is turned into a plain dict that tells the
dashboard which input to draw and with what value. The builder is
picked once per field from a table keyed by the field's type.
"""

from collections.abc import Callable, Mapping
from typing import Any

from pydantic import ValidationError

from oinstec.core.schema import FieldType, FileAttachment, FormField, FormTemplate
from oinstec.core.visibility import get_visible_fields

WidgetBuilder = Callable[[FormField, Any], dict[str, Any]]


# --- Builders, one per field type ---


def _input_widget(input_type: str) -> WidgetBuilder:
    def build(field: FormField, value: Any) -> dict[str, Any]:
        return {
            "widget": "input",
            "inputType": input_type,
            "placeholder": field.placeholder or "",
            "value": "" if value is None else value,
        }

    return build


def _textarea_widget(field: FormField, value: Any) -> dict[str, Any]:
    return {
        "widget": "textarea",
        "placeholder": field.placeholder or "",
        "rows": 4,
        "value": value or "",
    }


def _select_widget(field: FormField, value: Any) -> dict[str, Any]:
    return {
        "widget": "select",
        "placeholder": field.placeholder or "Selecciona una opción",
        "options": list(field.options or []),
        "value": value or "",
    }


def _radio_widget(field: FormField, value: Any) -> dict[str, Any]:
    return {
        "widget": "radio",
        "options": list(field.options or []),
        "value": value or "",
    }


def _checkbox_widget(field: FormField, value: Any) -> dict[str, Any]:
    selected = list(value) if isinstance(value, (list, tuple)) else []
    return {
        "widget": "checkbox",
        "options": [
            {"id": f"{field.id}_{index}", "label": option, "checked": option in selected}
            for index, option in enumerate(field.options or [])
        ],
        "value": selected,
    }


def _file_widget(field: FormField, value: Any) -> dict[str, Any]:
    attachment = _as_attachment(value)
    widget: dict[str, Any] = {"widget": "file", "accept": "image/*", "value": None}
    if attachment is not None:
        widget["value"] = {
            "name": attachment.name,
            "mimeType": attachment.mime_type,
            "sizeKb": round(attachment.size_bytes / 1024, 2),
        }
    return widget


def _section_header_widget(field: FormField, value: Any) -> dict[str, Any]:
    return {"widget": "section-header", "section": field.section}


_WIDGET_BUILDERS: dict[FieldType, WidgetBuilder] = {
    FieldType.TEXT: _input_widget("text"),
    FieldType.NUMBER: _input_widget("number"),
    FieldType.DATE: _input_widget("date"),
    FieldType.TEXTAREA: _textarea_widget,
    FieldType.SELECT: _select_widget,
    FieldType.RADIO: _radio_widget,
    FieldType.CHECKBOX: _checkbox_widget,
    FieldType.FILE: _file_widget,
    FieldType.SECTION_HEADER: _section_header_widget,
}


# --- Public API ---


def build_widget(field: FormField, value: Any = None, readonly: bool = False) -> dict[str, Any]:
    """Build the widget descriptor for one field and its current answer.

    Args:
        field: The form field to render.
        value: The field's current answer (None if unanswered).
        readonly: Whether inputs should be disabled.

    Returns:
        A dict with the common keys (fieldId, label, required, ...) plus
        the type-specific keys of the selected builder.
    """
    builder = _WIDGET_BUILDERS.get(field.type)
    if builder is None:
        raise ValueError(f"No widget mapping for field type: {field.type}")

    widget = {
        "fieldId": field.id,
        "type": field.type.value,
        "label": field.label,
        "description": field.description,
        "required": field.required,
        "readonly": readonly,
        "helpText": field.validation.message if field.validation else None,
    }
    widget.update(builder(field, value))
    return widget


def render_form(
    template: FormTemplate,
    answers: Mapping[str, Any],
    readonly: bool = False,
) -> list[dict[str, Any]]:
    """Build widgets for every visible field, in display order."""
    return [
        build_widget(field, answers.get(field.id), readonly=readonly)
        for field in get_visible_fields(template, answers)
    ]


def _as_attachment(value: Any) -> FileAttachment | None:
    if isinstance(value, FileAttachment):
        return value
    if isinstance(value, dict) and value.get("name"):
        try:
            return FileAttachment.model_validate(value)
        except ValidationError:
            return None
    return None
