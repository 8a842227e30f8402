"""
API models and schemas for the FastAPI application.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

BOOK_FIELDS = ("name", "img", "summary")


class MissingFieldsError(ValueError):
    """Raised when a create or full update omits required book fields."""

    def __init__(self, missing: List[str]):
        self.missing = missing
        super().__init__("Name, img, and summary are required")


class BookPayload(BaseModel):
    """
    Request body for creating or fully replacing a book.

    Every field is optional at parse time so that a request missing one of
    them reaches the handler, which answers with a 400 naming the missing
    fields instead of a generic schema error.
    """
    name: Optional[str] = Field(None, description="Book title")
    img: Optional[str] = Field(None, description="Cover image URL or path")
    summary: Optional[str] = Field(None, description="Free text description")

    model_config = {
        "extra": "ignore",
        "json_schema_extra": {
            "example": {
                "name": "Dune",
                "img": "dune.jpg",
                "summary": "Desert planet saga"
            }
        }
    }

    def missing_fields(self) -> List[str]:
        """Return the names of required fields that are absent or empty."""
        return [field for field in BOOK_FIELDS if not getattr(self, field)]

    def require_complete(self) -> None:
        """
        Ensure the payload can be used as a full book record.

        Raises:
            MissingFieldsError: If any of name, img or summary is missing or empty
        """
        missing = self.missing_fields()
        if missing:
            raise MissingFieldsError(missing)

    def to_document(self) -> Dict[str, Optional[str]]:
        """Return the book fields as a MongoDB document body."""
        return {field: getattr(self, field) for field in BOOK_FIELDS}


class BookQueryParams(BaseModel):
    """Equality filters for book listing."""
    name: Optional[str] = Field(None, description="Filter by exact name")
    img: Optional[str] = Field(None, description="Filter by exact image reference")
    summary: Optional[str] = Field(None, description="Filter by exact summary")

    def to_filter(self) -> Dict[str, str]:
        """Build a MongoDB filter holding only the supplied fields."""
        filter_query = {}
        for field in BOOK_FIELDS:
            value = getattr(self, field)
            if value is not None:
                filter_query[field] = value
        return filter_query


class BookResponse(BaseModel):
    """Book response model for API."""
    id: str = Field(..., description="Unique book identifier")
    name: Optional[str] = Field(None, description="Book title")
    img: Optional[str] = Field(None, description="Cover image URL or path")
    summary: Optional[str] = Field(None, description="Free text description")

    @classmethod
    def from_document(cls, book_doc: Dict[str, Any]) -> "BookResponse":
        """Convert a raw MongoDB document, exposing ``_id`` as ``id``."""
        return cls(
            id=str(book_doc["_id"]),
            name=book_doc.get("name"),
            img=book_doc.get("img"),
            summary=book_doc.get("summary")
        )


class MessageResponse(BaseModel):
    """Plain confirmation message."""
    message: str = Field(..., description="Confirmation message")


class ErrorResponse(BaseModel):
    """Error response model."""
    error: str = Field(..., description="Error message")
    detail: Optional[str] = Field(None, description="Additional error details")
    status_code: int = Field(..., description="HTTP status code")


class HealthResponse(BaseModel):
    """Health check response model."""
    status: str = Field(..., description="Service status")
    timestamp: datetime = Field(..., description="Current timestamp")
    version: str = Field(..., description="API version")
    database_status: str = Field(..., description="Database connection status")
