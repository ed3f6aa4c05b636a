"""Pydantic schemas for data validation.

These schemas validate book input and describe the records the session
store hands back to the presentation layer.
"""

from datetime import date, datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, field_validator, model_validator


class SessionEventType(str, Enum):
    """Lifecycle event recorded in a session's event log."""

    START = "start"
    PAUSE = "pause"
    RESUME = "resume"
    DISTRACTION = "distraction"
    END = "end"


# ============================================================================
# Book Schemas
# ============================================================================


class BookBase(BaseModel):
    """Base book fields common to create/update operations."""

    title: str = Field(..., min_length=1, description="Book title")
    author: str = Field(..., min_length=1, description="Primary author")
    total_pages: int = Field(..., gt=0, description="Number of pages")
    difficulty: int = Field(3, ge=1, le=5, description="Difficulty 1-5")
    category: Optional[str] = Field(None, description="novel, essay, textbook, etc.")

    @field_validator("title", "author", mode="before")
    @classmethod
    def strip_text(cls, v):
        """Trim surrounding whitespace from text fields."""
        if isinstance(v, str):
            return v.strip()
        return v

    @field_validator("category", mode="before")
    @classmethod
    def empty_category_is_none(cls, v):
        """Treat blank categories as unset."""
        if isinstance(v, str) and not v.strip():
            return None
        return v


class BookCreate(BookBase):
    """Schema for creating a new book."""

    current_page: int = Field(0, ge=0)
    date_added: Optional[date] = None

    @model_validator(mode="after")
    def check_current_page(self) -> "BookCreate":
        """The current page must lie within the book."""
        if self.current_page > self.total_pages:
            raise ValueError(
                f"current_page {self.current_page} exceeds total_pages {self.total_pages}"
            )
        return self


class BookUpdate(BaseModel):
    """Schema for updating an existing book. All fields optional.

    current_page is deliberately absent: it only changes when a session ends.
    """

    title: Optional[str] = Field(None, min_length=1)
    author: Optional[str] = Field(None, min_length=1)
    total_pages: Optional[int] = Field(None, gt=0)
    difficulty: Optional[int] = Field(None, ge=1, le=5)
    category: Optional[str] = None
    is_active: Optional[bool] = None


class BookResponse(BookBase):
    """Schema for book responses (includes DB-generated fields)."""

    id: str
    current_page: int
    date_added: date
    is_active: bool
    percent_complete: float
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


# ============================================================================
# Session Schemas
# ============================================================================


class SessionResponse(BaseModel):
    """Schema for reading session responses."""

    id: str
    book_id: str
    start_time: datetime
    end_time: Optional[datetime] = None
    start_page: int = Field(..., ge=0)
    end_page: Optional[int] = Field(None, ge=0)
    location: Optional[str] = None
    distraction_count: int = Field(0, ge=0)
    pages_read: int = 0
    focus_score: float = 100.0

    model_config = {"from_attributes": True}

    @property
    def is_complete(self) -> bool:
        return self.end_time is not None
