"""
Requirement Gate Tests.

WHY: The gate decides when a draft may be submitted and which uploads
are accepted; both are checked here without a database.
"""

import pytest

from app.core.exceptions import ValidationError
from app.models.tag import Tag
from app.services.requirement_gate import (
    evaluate,
    parse_requirements,
    validate_requirement_definitions,
    validate_upload,
)

from tests.factories import INVOICE_REQUIREMENTS


def invoice_tag() -> Tag:
    return Tag(id=1, profile_id=1, name="Supplier", color="#000000", file_requirements=INVOICE_REQUIREMENTS)


class TestEvaluate:
    def test_without_tag_is_complete(self):
        status = evaluate(None, [])
        assert status.complete is True
        assert status.missing == []

    def test_tag_without_requirements_is_complete(self):
        tag = Tag(id=1, profile_id=1, name="Plain", color="#000000", file_requirements=None)
        assert evaluate(tag, []).complete is True

    def test_missing_required_label(self):
        status = evaluate(invoice_tag(), ["Quote"])
        assert status.complete is False
        assert status.missing == ["Invoice"]
        assert status.required == ["Invoice"]

    def test_optional_labels_do_not_block(self):
        assert evaluate(invoice_tag(), ["Invoice"]).complete is True

    def test_parse_keeps_declared_order(self):
        assert [req.label for req in parse_requirements(invoice_tag())] == ["Invoice", "Quote"]


class TestValidateUpload:
    def test_any_label_without_requirements(self):
        assert validate_upload(None, "Anything", "text/plain", 10) is None

    def test_matching_upload(self):
        requirement = validate_upload(invoice_tag(), "Invoice", "application/pdf", 1024)
        assert requirement.label == "Invoice"

    def test_unknown_label(self):
        with pytest.raises(ValidationError) as exc_info:
            validate_upload(invoice_tag(), "Receipt", "application/pdf", 1024)
        assert exc_info.value.context["allowed_labels"] == ["Invoice", "Quote"]

    def test_disallowed_mime_type(self):
        with pytest.raises(ValidationError):
            validate_upload(invoice_tag(), "Invoice", "image/png", 1024)

    def test_size_limit_is_inclusive(self):
        five_mb = 5 * 1024 * 1024
        validate_upload(invoice_tag(), "Invoice", "application/pdf", five_mb)
        with pytest.raises(ValidationError):
            validate_upload(invoice_tag(), "Invoice", "application/pdf", five_mb + 1)

    def test_no_size_limit(self):
        validate_upload(invoice_tag(), "Quote", "image/png", 50 * 1024 * 1024)


class TestRequirementDefinitions:
    def test_none_stays_none(self):
        assert validate_requirement_definitions(None) is None

    def test_normalizes(self):
        normalized = validate_requirement_definitions(
            [{"label": " Invoice ", "allowed_mime_types": ["application/pdf", " application/pdf"]}]
        )
        assert normalized == [
            {
                "label": "Invoice",
                "description": None,
                "allowed_mime_types": ["application/pdf"],
                "max_file_size_mb": None,
                "required": False,
            }
        ]

    def test_lowercases_mime_types(self):
        normalized = validate_requirement_definitions(
            [{"label": "Scan", "allowed_mime_types": ["Application/PDF", "application/pdf", "IMAGE/PNG"]}]
        )
        assert normalized[0]["allowed_mime_types"] == ["application/pdf", "image/png"]

    @pytest.mark.parametrize(
        "raw",
        [
            [{"label": "","allowed_mime_types": ["application/pdf"]}],
            [{"label": "Invoice", "allowed_mime_types": []}],
            [{"label": "Invoice", "allowed_mime_types": ["application/pdf"], "max_file_size_mb": 0}],
            [
                {"label": "Invoice", "allowed_mime_types": ["application/pdf"]},
                {"label": "Invoice", "allowed_mime_types": ["image/png"]},
            ],
        ],
    )
    def test_rejects_bad_definitions(self, raw):
        with pytest.raises(ValidationError):
            validate_requirement_definitions(raw)
