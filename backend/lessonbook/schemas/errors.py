"""Error envelope returned for every failed request."""

from typing import Any, Dict

from pydantic import Field

from ._strict_base import StrictModel


class ErrorResponse(StrictModel):
    message: str
    code: str
    details: Dict[str, Any] = Field(default_factory=dict)
