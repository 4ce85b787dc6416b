"""
Tag Pydantic Schemas.

WHAT: Request/Response models for tag endpoints, including the file
requirements a tag imposes on its orders.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class FileRequirementSchema(BaseModel):
    """One required or optional file for orders carrying the tag."""

    label: str = Field(..., max_length=255, description="Unique within the tag")
    description: Optional[str] = Field(default=None, max_length=1000)
    allowed_mime_types: List[str] = Field(..., description="Accepted MIME types")
    max_file_size_mb: Optional[float] = Field(default=None, description="Size cap in MB")
    required: bool = Field(default=False, description="Blocks submission until uploaded")


def requirements_as_dicts(
    requirements: Optional[List[FileRequirementSchema]],
) -> Optional[List[Dict[str, Any]]]:
    if requirements is None:
        return None
    return [req.model_dump() for req in requirements]


class TagCreate(BaseModel):
    name: str = Field(..., max_length=100)
    color: str = Field(..., description="Hex color #RRGGBB")
    description: Optional[str] = Field(default=None, max_length=1000)
    file_requirements: Optional[List[FileRequirementSchema]] = None

    model_config = {
        "json_schema_extra": {
            "example": {
                "name": "Supplier invoice",
                "color": "#1E88E5",
                "file_requirements": [
                    {
                        "label": "Invoice",
                        "allowed_mime_types": ["application/pdf"],
                        "max_file_size_mb": 10,
                        "required": True,
                    }
                ],
            }
        }
    }


class TagUpdate(BaseModel):
    """Partial update; only fields present in the request are applied."""

    name: Optional[str] = Field(default=None, max_length=100)
    color: Optional[str] = None
    description: Optional[str] = Field(default=None, max_length=1000)
    file_requirements: Optional[List[FileRequirementSchema]] = None


class TagResponse(BaseModel):
    id: int
    profile_id: int
    name: str
    color: str
    description: Optional[str] = None
    file_requirements: Optional[List[FileRequirementSchema]] = None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class TagDeleteResponse(BaseModel):
    deleted: int
    orders_updated: int
