from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class Resource(BaseModel):
    """
    Pre-built endpoint description accepted in place of a plain base URL.

    Query parameters are appended to every tile URL after the access token,
    headers are sent with every tile request.
    """

    model_config = ConfigDict(frozen=True)

    url: str = Field(..., min_length=1)
    query_parameters: dict[str, str] = Field(default_factory=dict)
    headers: dict[str, str] = Field(default_factory=dict)
