"""Response envelope models shared by all endpoints."""

import time
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class Metadata(BaseModel):
    """The ``_metadata`` block carried by every response body.

    Attributes:
        timestamp: Unix seconds when the response was built
        total_count: Total rows for paginated listings
        first_index_on_page: 1-based index of the first row on this page
        last_index_on_page: 1-based index of the last row on this page
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    timestamp: int = Field(default_factory=lambda: int(time.time()))
    total_count: Optional[int] = None
    first_index_on_page: Optional[int] = None
    last_index_on_page: Optional[int] = None

    def to_wire(self) -> dict:
        return self.model_dump(by_alias=True, exclude_none=True)


class ErrorResponse(BaseModel):
    """Uniform error envelope: ``{errorMessage, _metadata}``."""

    model_config = ConfigDict(populate_by_name=True)

    error_message: str = Field(..., alias="errorMessage")
    metadata: Metadata = Field(default_factory=Metadata, alias="_metadata")

    def to_wire(self) -> dict:
        return {"errorMessage": self.error_message, "_metadata": self.metadata.to_wire()}


def envelope(metadata: Optional[Metadata] = None, **body) -> dict:
    """Build a success body with camelCase top-level keys and ``_metadata`` appended."""
    return {
        **{to_camel(key): value for key, value in body.items()},
        "_metadata": (metadata or Metadata()).to_wire(),
    }
