"""Data models for conversation storage."""

from __future__ import annotations

from enum import StrEnum
from typing import Any

from pydantic import BaseModel


class Role(StrEnum):
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"
    TOOL = "tool"


class Verbosity(StrEnum):
    CONCISE = "concise"
    NORMAL = "normal"
    DETAILED = "detailed"


DEFAULT_MODEL_KEY = "auto"
DEFAULT_TEMPERATURE = 0.4


class Conversation(BaseModel):
    """Per-channel conversation settings and running summary."""

    id: int
    channel_key: str
    model_key: str = DEFAULT_MODEL_KEY
    temperature: float = DEFAULT_TEMPERATURE
    verbosity: Verbosity = Verbosity.NORMAL
    style_prompt: str | None = None
    summary_text: str | None = None
    summary_watermark: int = 0
    created_at: str
    updated_at: str

    @classmethod
    def from_row(cls, row: Any) -> Conversation:
        return cls(
            id=row[0],
            channel_key=row[1],
            model_key=row[2],
            temperature=row[3],
            verbosity=Verbosity(row[4]),
            style_prompt=row[5],
            summary_text=row[6],
            summary_watermark=row[7],
            created_at=row[8],
            updated_at=row[9],
        )


class Message(BaseModel):
    """A single persisted conversation message."""

    id: int
    conversation_id: int
    role: Role
    content: str
    name: str | None = None
    tool_call_id: str | None = None
    created_at: str

    @classmethod
    def from_row(cls, row: Any) -> Message:
        return cls(
            id=row[0],
            conversation_id=row[1],
            role=Role(row[2]),
            content=row[3],
            name=row[4],
            tool_call_id=row[5],
            created_at=row[6],
        )

    def to_chat(self) -> dict[str, Any]:
        """Chat-completion message dict."""
        message: dict[str, Any] = {"role": self.role.value, "content": self.content}
        if self.name:
            message["name"] = self.name
        if self.tool_call_id:
            message["tool_call_id"] = self.tool_call_id
        return message


class MemoryPin(BaseModel):
    """A remembered key/value fact scoped to one conversation."""

    id: int
    conversation_id: int
    key: str
    value: str
    created_at: str
    updated_at: str

    @classmethod
    def from_row(cls, row: Any) -> MemoryPin:
        return cls(
            id=row[0],
            conversation_id=row[1],
            key=row[2],
            value=row[3],
            created_at=row[4],
            updated_at=row[5],
        )


class ConversationSnapshot(BaseModel):
    """Everything stored for a conversation, for export."""

    conversation: Conversation
    memories: list[MemoryPin]
    messages: list[Message]
    exported_at: str

    def to_text(self) -> str:
        """Plain-text transcript for the /export document."""
        conv = self.conversation
        lines = [
            f"Conversation {conv.channel_key}",
            f"Exported at: {self.exported_at}",
            f"Model: {conv.model_key}",
            f"Temperature: {conv.temperature}",
            f"Verbosity: {conv.verbosity.value}",
        ]
        if conv.style_prompt:
            lines.append(f"Style: {conv.style_prompt}")
        if conv.summary_text:
            lines += ["", "Summary:", conv.summary_text]
        if self.memories:
            lines += ["", "Memories:"]
            lines += [f"- {pin.key}: {pin.value}" for pin in self.memories]
        lines += ["", "Messages:"]
        for message in self.messages:
            lines.append(f"[{message.created_at}] {message.role.value}: {message.content}")
        return "\n".join(lines) + "\n"
