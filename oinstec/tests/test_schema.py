"""
Unit tests for form template models and authoring checks.

Tests cover:
- Valid templates load from camelCase and snake_case keys
- Field type spelling normalization
- Option-based fields without options are rejected
- Duplicate field IDs, blank names and empty field lists are rejected
- Unknown or missing operators and missing fieldIds load as data
- find_rule_problems reports dangling and self references
- Loading the packaged template files
"""

import pytest
from pydantic import ValidationError

from oinstec.core.schema import (
    ConditionOperator,
    FieldType,
    FileAttachment,
    FormField,
    FormTemplate,
    LogicalOperator,
    VisibilityCondition,
    VisibilityRule,
    find_rule_problems,
)


# --- Helper: minimal valid template builder ---


def build_template(**overrides) -> dict:
    """Build a minimal valid template dict, with optional overrides."""
    base = {
        "id": "test_form",
        "name": "Test form",
        "fields": [
            {"id": "name", "type": "text", "label": "Name", "order": 1},
        ],
    }
    base.update(overrides)
    return base


# =============================================================
# Test: Valid templates
# =============================================================


class TestValidTemplates:

    def test_minimal_template(self):
        template = FormTemplate(**build_template())
        assert template.id == "test_form"
        assert template.version == "1.0"
        assert template.active is True
        assert template.fields[0].type == FieldType.TEXT
        assert template.fields[0].required is False

    def test_camel_case_keys(self):
        template = FormTemplate(**build_template(fields=[
            {"id": "a", "type": "radio", "options": ["Sí", "No"], "order": 1},
            {
                "id": "b",
                "type": "text",
                "order": 2,
                "visibilityRule": {
                    "conditions": [{"fieldId": "a", "operator": "equals", "value": "Sí"}],
                    "logicalOperator": "OR",
                },
            },
        ]))
        rule = template.fields[1].visibility_rule
        assert rule.logical_operator == LogicalOperator.OR
        assert rule.conditions[0].field_id == "a"
        assert rule.conditions[0].operator == ConditionOperator.EQUALS

    def test_snake_case_keys(self):
        field = FormField(
            id="b",
            type="text",
            visibility_rule={"conditions": [{"field_id": "a", "operator": "isEmpty"}]},
        )
        assert field.visibility_rule.conditions[0].field_id == "a"

    def test_dump_uses_aliases(self):
        template = FormTemplate(**build_template(fields=[
            {
                "id": "b",
                "type": "text",
                "visibilityRule": {"conditions": [{"fieldId": "b2", "operator": "isEmpty"}]},
            },
            {"id": "b2", "type": "text"},
        ]))
        dumped = template.model_dump(mode="json", by_alias=True)
        rule = dumped["fields"][0]["visibilityRule"]
        assert rule["conditions"][0]["fieldId"] == "b2"
        assert rule["logicalOperator"] == "AND"

    def test_operator_enum_member_accepted(self):
        condition = VisibilityCondition(fieldId="a", operator=ConditionOperator.CONTAINS)
        assert condition.operator == "contains"

    @pytest.mark.parametrize("raw, expected", [
        ("SECTION_HEADER", FieldType.SECTION_HEADER),
        ("section-header", FieldType.SECTION_HEADER),
        ("TEXTAREA", FieldType.TEXTAREA),
        (" Number ", FieldType.NUMBER),
    ])
    def test_type_spellings_normalized(self, raw, expected):
        assert FormField(id="x", type=raw).type == expected

    def test_get_field(self):
        template = FormTemplate(**build_template())
        assert template.get_field("name").label == "Name"
        assert template.get_field("missing") is None

    def test_section_header_is_not_answerable(self):
        assert FormField(id="h", type="section-header").is_answerable is False
        assert FormField(id="t", type="text").is_answerable is True


# =============================================================
# Test: Rejected templates
# =============================================================


class TestInvalidTemplates:

    def test_duplicate_field_ids(self):
        with pytest.raises(ValidationError, match="Duplicate field ID"):
            FormTemplate(**build_template(fields=[
                {"id": "a", "type": "text"},
                {"id": "a", "type": "number"},
            ]))

    def test_blank_name(self):
        with pytest.raises(ValidationError, match="name must not be blank"):
            FormTemplate(**build_template(name="   "))

    def test_no_fields(self):
        with pytest.raises(ValidationError):
            FormTemplate(**build_template(fields=[]))

    def test_unknown_field_type(self):
        with pytest.raises(ValidationError):
            FormField(id="x", type="signature")

    @pytest.mark.parametrize("field_type", ["select", "radio", "checkbox"])
    def test_option_fields_require_options(self, field_type):
        with pytest.raises(ValidationError, match="must have non-empty 'options'"):
            FormField(id="x", type=field_type)

    def test_empty_condition_list(self):
        with pytest.raises(ValidationError):
            VisibilityRule(conditions=[])

    def test_unknown_logical_operator(self):
        with pytest.raises(ValidationError):
            VisibilityRule(
                conditions=[{"fieldId": "a", "operator": "isEmpty"}],
                logicalOperator="XOR",
            )

    def test_negative_attachment_size(self):
        with pytest.raises(ValidationError):
            FileAttachment(name="foto.jpg", sizeBytes=-1)


# =============================================================
# Test: Rule problems are reported, not raised
# =============================================================


class TestFindRuleProblems:

    def test_clean_template(self, inspection_template):
        assert find_rule_problems(inspection_template) == []

    def test_unknown_operator_loads_and_is_reported(self):
        template = FormTemplate(**build_template(fields=[
            {"id": "a", "type": "text"},
            {
                "id": "b",
                "type": "text",
                "visibilityRule": {"conditions": [{"fieldId": "a", "operator": "startsWith"}]},
            },
        ]))
        assert template.fields[1].visibility_rule.conditions[0].operator == "startsWith"
        problems = find_rule_problems(template)
        assert len(problems) == 1
        assert "unknown operator 'startsWith'" in problems[0]

    def test_missing_operator_loads_and_is_reported(self):
        template = FormTemplate(**build_template(fields=[
            {"id": "a", "type": "text"},
            {
                "id": "b",
                "type": "text",
                "visibilityRule": {"conditions": [{"fieldId": "a", "operator": None}]},
            },
        ]))
        assert template.fields[1].visibility_rule.conditions[0].operator is None
        assert find_rule_problems(template) == ["Field 'b' condition 1 has no operator"]

    def test_dangling_reference(self):
        template = FormTemplate(**build_template(fields=[
            {
                "id": "b",
                "type": "text",
                "visibilityRule": {"conditions": [{"fieldId": "ghost", "operator": "isEmpty"}]},
            },
        ]))
        assert find_rule_problems(template) == [
            "Field 'b' condition 1 references non-existent field 'ghost'"
        ]

    def test_self_reference(self):
        template = FormTemplate(**build_template(fields=[
            {
                "id": "b",
                "type": "text",
                "visibilityRule": {"conditions": [{"fieldId": "b", "operator": "isEmpty"}]},
            },
        ]))
        assert "references the field itself" in find_rule_problems(template)[0]

    def test_missing_field_id(self):
        template = FormTemplate(**build_template(fields=[
            {
                "id": "b",
                "type": "text",
                "visibilityRule": {"conditions": [{"operator": "isEmpty"}]},
            },
        ]))
        assert find_rule_problems(template) == ["Field 'b' condition 1 has no fieldId"]


# =============================================================
# Test: Packaged template files
# =============================================================


class TestPackagedTemplates:

    def test_inspection_template(self, inspection_template):
        assert inspection_template.id == "inspeccion_gnv_2024"
        assert len(inspection_template.fields) == 20
        assert inspection_template.get_field("campo_8").validation.max == 5000

    def test_registration_template_from_yaml(self, registration_template):
        assert registration_template.id == "registro_cilindro"
        header = registration_template.get_field("antiguedad_alerta")
        assert header.type == FieldType.SECTION_HEADER
        assert find_rule_problems(registration_template) == []
