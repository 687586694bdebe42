"""Base types for the tool-calling framework."""

import json
from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel


@dataclass
class ToolResult:
    """Result of a tool execution.

    Every tool returns one of these. The engine serializes it into the
    content of a ``tool`` message for the next model round.
    """

    data: dict[str, Any] | None = None
    error: str | None = None

    @property
    def success(self) -> bool:
        return self.error is None

    def to_content(self) -> str:
        """Serialize for the tool message content field."""
        if self.error:
            return json.dumps({"error": self.error})
        return json.dumps(self.data or {})


class ToolParams(BaseModel):
    """Base class for tool parameter models.

    Subclass with Field() definitions. The JSON schema is auto-generated
    via model_json_schema() for the function definitions.
    """
