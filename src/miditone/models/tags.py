"""ID3 tag data models."""

from pydantic import BaseModel, Field


class UserText(BaseModel):
    """A user-defined text frame (ID3 TXXX)."""

    description: str = Field(..., min_length=1)
    value: str


class TrackTags(BaseModel):
    """Tags embedded into the encoded MP3."""

    artist: str
    title: str
    album: str
    year: str | None = Field(default=None, pattern=r"^\d{4}$")
    genre: str | None = None
    comment: str | None = None
    comment_language: str = "eng"
    user_text: list[UserText] = Field(default_factory=list)

    def snapshot(self) -> dict:
        """Compact form persisted with the completed status."""
        data = self.model_dump(exclude_none=True, exclude={"user_text", "comment_language"})
        data["custom_fields"] = len(self.user_text)
        return data
