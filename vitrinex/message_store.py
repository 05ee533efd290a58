"""Append-only message log.

``append`` and ``mark_read`` are the only writers of messages and summary rows;
each commits the message change and the matching index update together.
"""
from __future__ import annotations

from dataclasses import dataclass

from flask import current_app
from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError

from . import conversation_index
from .conversations import ConversationRef, Participant
from .errors import ValidationError
from .extensions import db
from .models import ConversationKind, Message, utc_now
from .signals import conversation_read, message_appended


@dataclass(frozen=True)
class MarkReadResult:
    conversation_id: str
    marked: int
    unread_count: int

    def to_dict(self) -> dict[str, object]:
        return {
            "conversation_id": self.conversation_id,
            "marked": self.marked,
            "unread_count": self.unread_count,
        }


def validate_content(content: object) -> str:
    if not isinstance(content, str):
        raise ValidationError("content must be a string", code="invalid_content")
    text = content.strip()
    if not text:
        raise ValidationError("message content cannot be empty", code="empty_content")
    max_length = current_app.config["MAX_MESSAGE_LENGTH"]
    if len(text) > max_length:
        raise ValidationError(
            f"message content exceeds {max_length} characters", code="content_too_long"
        )
    return text


def append(ref: ConversationRef, sender: Participant, content: object) -> Message:
    """Persist a message from ``sender`` and update the conversation summary."""
    text = validate_content(content)

    message = Message(
        conversation_id=ref.conversation_id,
        kind=ref.kind.value,
        sender_role=sender.role.value,
        sender_id=sender.user_id,
        sender_name=sender.name,
        sender_email=sender.email,
        content=text,
        is_read=False,
        created_at=utc_now(),
        **ref.message_fields(),
    )
    if ref.kind is ConversationKind.DIRECT:
        message.from_user_id = sender.user_id
        message.to_user_id = sender.counterpart_ids[0]

    try:
        db.session.add(message)
        db.session.flush()
        conversation_index.on_message_appended(ref, message)
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        raise

    current_app.logger.debug("Appended message %s to %s", message.message_id, ref.conversation_id)
    message_appended.send(
        current_app._get_current_object(),
        message=message,
        recipient_ids=sender.counterpart_ids,
    )
    return message


def list_by_conversation(ref: ConversationRef, after_id: int | None = None) -> list[Message]:
    """Messages of ``ref`` in send order; ``after_id`` limits to newer messages."""
    stmt = select(Message).where(Message.conversation_id == ref.conversation_id)
    if after_id is not None:
        stmt = stmt.where(Message.message_id > after_id)
    stmt = stmt.order_by(Message.created_at.asc(), Message.message_id.asc())
    return list(db.session.execute(stmt).scalars())


def mark_read(ref: ConversationRef, reader: Participant) -> MarkReadResult:
    """Mark every message from the other side as read. Calling it again changes nothing."""
    sender_side = conversation_index.other_side(reader.side)
    try:
        result = db.session.execute(
            update(Message)
            .where(
                Message.conversation_id == ref.conversation_id,
                Message.is_read.is_(False),
                conversation_index.sent_by_side(ref, sender_side),
            )
            .values(is_read=True, read_at=utc_now())
            .execution_options(synchronize_session=False)
        )
        marked = result.rowcount or 0
        remaining = conversation_index.on_marked_read(ref, reader.side)
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        raise

    if marked:
        conversation_read.send(
            current_app._get_current_object(),
            conversation_id=ref.conversation_id,
            reader_id=reader.user_id,
            marked=marked,
        )
    return MarkReadResult(conversation_id=ref.conversation_id, marked=marked, unread_count=remaining)
