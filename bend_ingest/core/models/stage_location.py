"""
StageLocation model identifying an uploaded batch file in a Databend stage.
"""

from pydantic import BaseModel, Field


class StageLocation(BaseModel):
    """
    Where a batch file landed in store-side transient storage.

    Only valid until the COPY INTO statement that consumes it has run.

    Attributes:
        name: Stage name ("~" is the current user's stage)
        path: Path of the file inside the stage
    """

    name: str = Field(default="~", min_length=1)
    path: str = Field(..., min_length=1)

    class Config:
        frozen = True

    def __str__(self) -> str:
        return f"@{self.name}/{self.path}"
