"""Messaging domain schemas"""

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ...shared.validators import MAX_MESSAGE_TEXT_LENGTH

MESSAGE_TYPES = {"text", "image", "audio", "video", "document"}


class SendMessageRequest(BaseModel):
    """Body of POST /messages/send (camelCase as sent by the panel)"""

    model_config = ConfigDict(extra="ignore")

    conversationId: Optional[str] = None
    contactId: Optional[str] = None
    groupId: Optional[str] = None
    body: Optional[str] = Field(None, max_length=MAX_MESSAGE_TEXT_LENGTH)
    messageType: str = "text"
    mediaUrl: Optional[str] = None
    caption: Optional[str] = None
    replyId: Optional[str] = None
    quotedBody: Optional[str] = None
    quotedSender: Optional[str] = None
    forward: bool = False
    # Automations set message.wasSentByApi to leave conversation state alone
    message: Optional[dict[str, Any]] = None

    @field_validator("messageType")
    @classmethod
    def validate_message_type(cls, v):
        if v not in MESSAGE_TYPES:
            raise ValueError(f"messageType must be one of {', '.join(sorted(MESSAGE_TYPES))}")
        return v

    @property
    def sent_by_api(self) -> bool:
        return bool(self.message and self.message.get("wasSentByApi") is True)


class SendMessageResponse(BaseModel):
    success: bool = True
    messageId: str
    providerId: Optional[str] = None


class ResolveConversationResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    success: bool = True
    id: str
    status: str
    unread_count: int = 0
