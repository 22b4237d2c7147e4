"""Profile domain model."""

from pydantic import BaseModel, Field


class Profile(BaseModel):
    """Public profile of a marketplace user."""

    id: str = Field(..., description="Unique user ID")
    username: str = Field(..., description="Display name")
    requestor_rating: int = Field(
        default=0, ge=0, le=5, description="Latest rating received as a requestor (0 = unrated)"
    )
    doer_rating: int = Field(default=0, ge=0, le=5, description="Latest rating received as a doer (0 = unrated)")
    created_at: str = Field(..., description="Creation timestamp (ISO format)")
