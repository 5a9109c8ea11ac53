"""Data models for the Telegram Bot API surface used by the relay."""

from __future__ import annotations

from typing import Generic, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, Field


T = TypeVar("T")


# See https://core.telegram.org/bots/api#available-types for the full field lists.
# Only the fields the handlers read are modelled; the rest are ignored.
class _TelegramModel(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)


class User(_TelegramModel):
    """Sender of a message."""

    id: int
    is_bot: bool = False
    first_name: str
    last_name: Optional[str] = None
    username: Optional[str] = None

    @property
    def display_name(self) -> str:
        if self.last_name:
            return f"{self.first_name} {self.last_name}"
        return self.first_name


class Chat(_TelegramModel):
    id: int


class Document(_TelegramModel):
    """File attached to a message as a generic document."""

    file_id: str
    file_name: Optional[str] = None
    mime_type: Optional[str] = None


class Message(_TelegramModel):
    """Incoming message - shared read-only by every handler of one update."""

    message_id: int
    chat: Chat
    sender: Optional[User] = Field(default=None, alias="from")
    date: Optional[int] = None
    text: Optional[str] = None
    document: Optional[Document] = None

    @property
    def chat_id(self) -> int:
        return self.chat.id


class Update(_TelegramModel):
    """One unit of inbound data. Non-message updates decode with message=None."""

    update_id: int
    message: Optional[Message] = None


class File(_TelegramModel):
    """Result of getFile - file_path is relative to the file-serving URL."""

    file_id: str
    file_unique_id: Optional[str] = None
    file_size: Optional[int] = None
    file_path: str


class TelegramResponse(BaseModel, Generic[T]):
    """Envelope every Bot API method answers with."""

    ok: bool
    result: Optional[T] = None
    description: Optional[str] = None
    error_code: Optional[int] = None


class SendMessage(BaseModel):
    """Outbound text reply, built fresh for every send."""

    chat_id: int
    text: str
    reply_to_message_id: Optional[int] = None
