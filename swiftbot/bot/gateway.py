"""Chat-platform seam: the inbound event shape and the outbound delivery protocol."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Protocol, runtime_checkable


@dataclass(frozen=True)
class Attachment:
    """An inbound file reference (e.g. a photo)."""

    kind: str
    file_id: str
    url: str | None = None


@dataclass(frozen=True)
class InboundEvent:
    """A user message routed to the conversation engine.

    Attributes:
        conversation_key: Identity scoping the conversation (chat id, or
            ``"{chat_id}:{user_id}"`` inside group chats).
        user_id: Sender identity.
        chat_id: Where replies are delivered.
        text: Message text or caption.
        attachments: Optional inbound files.
        model_override: Force a model key for this turn (e.g. ``"vision"``).
    """

    conversation_key: str
    user_id: str
    chat_id: str
    text: str
    attachments: tuple[Attachment, ...] = field(default_factory=tuple)
    model_override: str | None = None

    @property
    def rate_limit_key(self) -> str:
        if self.user_id:
            return f"user:{self.user_id}"
        return f"chat:{self.chat_id}"


@runtime_checkable
class OutboundGateway(Protocol):
    """Delivery capabilities the engine needs from a chat platform.

    Retries and connection handling belong to the implementation.
    """

    async def send_message(self, chat_id: str, text: str) -> str:
        """Send a plain text message. Returns the platform message id."""
        ...

    async def edit_message(self, chat_id: str, message_id: str, text: str) -> None:
        """Replace the text of a previously sent message."""
        ...

    async def send_typing(self, chat_id: str) -> None:
        """Show a typing/presence indicator."""
        ...

    async def send_sticker(self, chat_id: str, sticker_id: str) -> None:
        """Send an auxiliary sticker."""
        ...

    async def send_document(
        self, chat_id: str, filename: str, data: bytes, *, caption: str | None = None
    ) -> None:
        """Send a file."""
        ...
