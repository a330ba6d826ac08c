"""Telegram Bot API update schema.

Only the fields the bot reads are declared; Telegram adds fields over time
and anything unknown is ignored.
"""

from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

ChatKind = Literal["private", "group", "supergroup", "channel"]


class TelegramObject(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class TelegramUser(TelegramObject):
    id: int
    is_bot: bool = False
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    username: Optional[str] = None

    @property
    def display_name(self) -> Optional[str]:
        """First and last name joined, or None when both are missing."""
        parts = [p for p in (self.first_name, self.last_name) if p]
        return " ".join(parts) if parts else None


class TelegramChat(TelegramObject):
    id: int
    type: ChatKind
    title: Optional[str] = None
    username: Optional[str] = None


class TelegramReplyTo(TelegramObject):
    message_id: int


class TelegramMessage(TelegramObject):
    message_id: int
    date: int  # unix seconds
    chat: TelegramChat
    from_user: Optional[TelegramUser] = Field(default=None, alias="from")
    text: Optional[str] = None
    caption: Optional[str] = None
    reply_to_message: Optional[TelegramReplyTo] = None

    @property
    def content(self) -> Optional[str]:
        return self.text or self.caption


class TelegramChatMember(TelegramObject):
    status: str  # creator, administrator, member, restricted, left, kicked


class TelegramChatMemberUpdated(TelegramObject):
    chat: TelegramChat
    new_chat_member: TelegramChatMember
    date: Optional[int] = None


class TelegramUpdate(TelegramObject):
    update_id: Optional[int] = None
    message: Optional[TelegramMessage] = None
    my_chat_member: Optional[TelegramChatMemberUpdated] = None
