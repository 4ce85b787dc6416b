"""
Requirement Gate.

WHAT: Decides whether an order's documents satisfy its tag's file
requirements, and whether a single upload is acceptable.

WHY: Submission from CREATED is blocked until every required label has
a document, and uploads that could never satisfy a requirement (wrong
label, MIME type or size) are rejected before anything is written.

HOW: Pure functions over the tag's requirement list and the uploaded
labels. No database access; callers load the tag and documents.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Sequence

from app.core.exceptions import ValidationError
from app.models.tag import Tag

BYTES_PER_MB = 1024 * 1024


@dataclass(frozen=True)
class FileRequirement:
    """One declared file requirement on a tag."""

    label: str
    allowed_mime_types: frozenset
    required: bool = False
    description: Optional[str] = None
    max_file_size_mb: Optional[float] = None

    @property
    def max_file_size_bytes(self) -> Optional[int]:
        if self.max_file_size_mb is None:
            return None
        return int(self.max_file_size_mb * BYTES_PER_MB)

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "FileRequirement":
        return cls(
            label=raw["label"],
            allowed_mime_types=frozenset(m.strip().lower() for m in raw.get("allowed_mime_types") or ()),
            required=bool(raw.get("required", False)),
            description=raw.get("description"),
            max_file_size_mb=raw.get("max_file_size_mb"),
        )


@dataclass(frozen=True)
class RequirementStatus:
    """Completeness of an order's documents against its tag."""

    complete: bool
    missing: List[str] = field(default_factory=list)
    required: List[str] = field(default_factory=list)


def parse_requirements(tag: Optional[Tag]) -> List[FileRequirement]:
    """Requirements of a tag in declared order; empty without a tag."""
    if tag is None or not tag.file_requirements:
        return []
    return [FileRequirement.from_dict(raw) for raw in tag.file_requirements]


def evaluate(tag: Optional[Tag], uploaded_labels: Iterable[str]) -> RequirementStatus:
    """
    Compute completeness for an order.

    Args:
        tag: The order's tag, if any
        uploaded_labels: requirement_label of every current document

    Returns:
        RequirementStatus; vacuously complete without requirements
    """
    required = [req.label for req in parse_requirements(tag) if req.required]
    if not required:
        return RequirementStatus(complete=True)

    uploaded = set(uploaded_labels)
    missing = [label for label in required if label not in uploaded]
    return RequirementStatus(complete=not missing, missing=missing, required=required)


def validate_upload(
    tag: Optional[Tag],
    requirement_label: str,
    mime_type: str,
    file_size: int,
) -> Optional[FileRequirement]:
    """
    Check an upload against the tag's requirements.

    Orders without a tag, or whose tag declares no requirements, accept
    any label.

    Returns:
        The matched requirement, or None when no requirements apply

    Raises:
        ValidationError: Unknown label, disallowed MIME type or oversized file
    """
    requirements = parse_requirements(tag)
    if not requirements:
        return None

    requirement = next((req for req in requirements if req.label == requirement_label), None)
    if requirement is None:
        raise ValidationError(
            message=f"Unknown requirement label: {requirement_label}",
            requirement_label=requirement_label,
            allowed_labels=[req.label for req in requirements],
        )

    mime_type = (mime_type or "").strip().lower()
    if mime_type not in requirement.allowed_mime_types:
        raise ValidationError(
            message=f"File type {mime_type} is not allowed for {requirement_label}",
            requirement_label=requirement_label,
            mime_type=mime_type,
            allowed_mime_types=sorted(requirement.allowed_mime_types),
        )

    max_bytes = requirement.max_file_size_bytes
    if max_bytes is not None and file_size > max_bytes:
        raise ValidationError(
            message=(
                f"File exceeds the maximum size of {requirement.max_file_size_mb}MB "
                f"for {requirement_label}"
            ),
            requirement_label=requirement_label,
            file_size=file_size,
            max_file_size_mb=requirement.max_file_size_mb,
        )

    return requirement


def validate_requirement_definitions(raw: Optional[Sequence[Dict[str, Any]]]) -> Optional[List[Dict[str, Any]]]:
    """
    Validate and normalize a tag's requirement list before it is stored.

    Raises:
        ValidationError: Empty or duplicate labels, no MIME types, non-positive size
    """
    if raw is None:
        return None

    seen = set()
    normalized: List[Dict[str, Any]] = []
    for item in raw:
        label = (item.get("label") or "").strip()
        if not label:
            raise ValidationError(message="Requirement label cannot be empty")
        if label in seen:
            raise ValidationError(
                message=f"Duplicate requirement label: {label}",
                requirement_label=label,
            )
        seen.add(label)

        mime_types = sorted({m.strip().lower() for m in item.get("allowed_mime_types") or () if m.strip()})
        if not mime_types:
            raise ValidationError(
                message=f"Requirement {label} must allow at least one MIME type",
                requirement_label=label,
            )

        max_size = item.get("max_file_size_mb")
        if max_size is not None and max_size <= 0:
            raise ValidationError(
                message=f"Requirement {label} must have a positive size limit",
                requirement_label=label,
            )

        normalized.append(
            {
                "label": label,
                "description": item.get("description"),
                "allowed_mime_types": mime_types,
                "max_file_size_mb": max_size,
                "required": bool(item.get("required", False)),
            }
        )
    return normalized
