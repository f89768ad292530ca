from pydantic import BaseModel, ConfigDict, Field


class ReviewDraft(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    comment: str = Field(..., min_length=1, max_length=5000)
    rating: int = Field(..., ge=1, le=5)
