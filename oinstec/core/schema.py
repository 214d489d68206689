"""
Form template definition and validation models.

These Pydantic models define the contract between the inspection
dashboard and the backend. A template is the single source of truth
for field definitions, validation rules, and visibility conditions.

JSON keys follow the dashboard's camelCase shape (``visibilityRule``,
``fieldId``); Python attributes stay snake_case. Both spellings load.
"""

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


# --- Enums ---


class FieldType(str, Enum):
    """Supported form field types."""

    TEXT = "text"
    NUMBER = "number"
    SELECT = "select"
    RADIO = "radio"
    CHECKBOX = "checkbox"
    DATE = "date"
    FILE = "file"
    SECTION_HEADER = "section-header"
    TEXTAREA = "textarea"


class ConditionOperator(str, Enum):
    """Operators understood by the visibility evaluator."""

    EQUALS = "equals"
    NOT_EQUALS = "notEquals"
    CONTAINS = "contains"
    GREATER_THAN = "greaterThan"
    LESS_THAN = "lessThan"
    IS_EMPTY = "isEmpty"
    IS_NOT_EMPTY = "isNotEmpty"


class LogicalOperator(str, Enum):
    """How the results of a rule's conditions are combined."""

    AND = "AND"
    OR = "OR"


class InspectionStatus(str, Enum):
    """Lifecycle of a cylinder inspection form."""

    PENDING = "PENDING"
    IN_PROGRESS = "IN_PROGRESS"
    PARTIALLY_SAVED = "PARTIALLY_SAVED"
    COMPLETED = "COMPLETED"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


OPTION_FIELD_TYPES = {FieldType.SELECT, FieldType.RADIO, FieldType.CHECKBOX}

KNOWN_OPERATORS = {op.value for op in ConditionOperator}


# --- Visibility Condition Models ---


class VisibilityCondition(BaseModel):
    """A single condition within a visibility rule.

    The operator is kept as a plain string: an operator the evaluator
    does not know is data, not a load error. A missing or non-string
    operator loads as None.
    """

    model_config = ConfigDict(populate_by_name=True)

    field_id: str | None = Field(
        default=None,
        alias="fieldId",
        description="The field ID whose answer is tested",
    )
    operator: str | None = Field(
        default=None,
        description="Comparison operator (see ConditionOperator)",
    )
    value: Any = Field(
        default=None,
        description="Static comparison value",
    )

    @field_validator("operator", mode="before")
    @classmethod
    def coerce_operator(cls, value: Any) -> Any:
        if isinstance(value, ConditionOperator):
            return value.value
        if not isinstance(value, str):
            return None
        return value


class VisibilityRule(BaseModel):
    """Conditions gating a field's display, combined with AND or OR."""

    model_config = ConfigDict(populate_by_name=True)

    conditions: list[VisibilityCondition] = Field(
        ...,
        min_length=1,
        description="Conditions evaluated against the current answers",
    )
    logical_operator: LogicalOperator = Field(
        default=LogicalOperator.AND,
        alias="logicalOperator",
        description="AND: all conditions must pass. OR: any condition passes.",
    )


class FieldValidation(BaseModel):
    """Per-field answer constraints."""

    min: float | None = None
    max: float | None = None
    pattern: str | None = None
    message: str | None = None
    required: bool | None = None


# --- Answers ---


class FileAttachment(BaseModel):
    """An uploaded file stored inline with the answers."""

    model_config = ConfigDict(populate_by_name=True)

    name: str = Field(..., min_length=1)
    mime_type: str = Field(default="", alias="mimeType")
    size_bytes: int = Field(default=0, ge=0, alias="sizeBytes")
    data: str | None = Field(
        default=None,
        description="Data URL or base64 payload",
    )


# --- Form Field ---


class FormField(BaseModel):
    """Definition of a single form field.

    Select, radio and checkbox fields must include options.
    """

    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(
        ...,
        min_length=1,
        description="Unique field identifier",
    )
    type: FieldType = Field(
        ...,
        description="The widget type for this field",
    )
    label: str = Field(default="")
    placeholder: str | None = None
    description: str | None = None
    required: bool = False
    options: list[str] | None = Field(
        default=None,
        description="Available options (select, radio and checkbox types)",
    )
    validation: FieldValidation | None = None
    visibility_rule: VisibilityRule | None = Field(
        default=None,
        alias="visibilityRule",
        description="Conditional visibility rule (field is always visible if absent)",
    )
    order: int = Field(default=0, description="Display position, ascending")
    section: str | None = None

    @field_validator("type", mode="before")
    @classmethod
    def normalize_type(cls, value: Any) -> Any:
        """Accept the dashboard's upper-case spellings (``SECTION_HEADER``)."""
        if isinstance(value, str):
            return value.strip().lower().replace("_", "-")
        return value

    @model_validator(mode="after")
    def validate_options_for_type(self) -> "FormField":
        """Option-based fields must have options defined."""
        if self.type in OPTION_FIELD_TYPES and not self.options:
            raise ValueError(
                f"Field '{self.id}' of type '{self.type.value}' must have non-empty 'options'"
            )
        return self

    @property
    def is_answerable(self) -> bool:
        return self.type != FieldType.SECTION_HEADER


# --- Top-Level Form Template ---


class FormTemplate(BaseModel):
    """A versioned collection of field definitions for one form type."""

    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(default="")
    name: str = Field(...)
    description: str = ""
    version: str = "1.0"
    fields: list[FormField] = Field(
        ...,
        min_length=1,
        description="Field definitions (at least one required)",
    )
    active: bool = True
    created_by: str | None = Field(default=None, alias="createdBy")
    created_at: datetime | None = Field(default=None, alias="createdAt")
    updated_at: datetime | None = Field(default=None, alias="updatedAt")

    @model_validator(mode="after")
    def validate_template(self) -> "FormTemplate":
        """Reject blank names and duplicate field IDs."""
        if not self.name.strip():
            raise ValueError("Template name must not be blank")

        field_ids = set()
        for f in self.fields:
            if f.id in field_ids:
                raise ValueError(f"Duplicate field ID: '{f.id}'")
            field_ids.add(f.id)

        return self

    def get_field(self, field_id: str) -> FormField | None:
        """Look up a field by its ID."""
        for field in self.fields:
            if field.id == field_id:
                return field
        return None


def find_rule_problems(template: FormTemplate) -> list[str]:
    """List visibility rule problems without rejecting the template.

    The evaluator tolerates all of these (the condition passes), so they
    are surfaced to template authors instead of raised.
    """
    field_ids = {f.id for f in template.fields}
    problems: list[str] = []

    for f in template.fields:
        if f.visibility_rule is None:
            continue

        for index, condition in enumerate(f.visibility_rule.conditions):
            where = f"Field '{f.id}' condition {index + 1}"
            if not condition.field_id:
                problems.append(f"{where} has no fieldId")
            elif condition.field_id not in field_ids:
                problems.append(
                    f"{where} references non-existent field '{condition.field_id}'"
                )
            elif condition.field_id == f.id:
                problems.append(f"{where} references the field itself")

            if condition.operator is None:
                problems.append(f"{where} has no operator")
            elif condition.operator not in KNOWN_OPERATORS:
                problems.append(f"{where} uses unknown operator '{condition.operator}'")

    return problems
