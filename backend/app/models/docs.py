"""Document slicing models: overlapping chunks and disjoint sections."""

from pydantic import BaseModel, ConfigDict, Field


class Chunk(BaseModel):
    """Slice of normalised document text sized for one model call.

    Consecutive chunks may overlap; `start` is the offset of `text` in the
    normalised document.
    """

    model_config = ConfigDict(frozen=True)

    order: int = Field(..., ge=0)  # 0-based
    start: int = Field(..., ge=0)
    text: str

    @property
    def end(self) -> int:
        """Offset one past the last character of the chunk."""
        return self.start + len(self.text)


class Section(BaseModel):
    """Non-overlapping partition of a document with an item quota."""

    model_config = ConfigDict(frozen=True)

    index: int = Field(..., ge=0)
    start: int = Field(..., ge=0)
    text: str
    quota: int = Field(0, ge=0)
