"""Per-conversation summary rows kept in step with the message log.

Every function here runs inside the caller's unit of work and never commits.
Counters are only changed with SQL expressions evaluated by the database, so
two writers appending to the same conversation cannot lose an increment.
"""
from __future__ import annotations

from flask import current_app
from sqlalchemy import case, func, or_, select, update
from sqlalchemy.exc import IntegrityError

from .conversations import SIDE_A, SIDE_B, ConversationRef, ref_for_conversation_id
from .errors import NotFound
from .extensions import db
from .models import ConversationKind, ConversationSummary, Message, SenderRole, utc_now


def other_side(side: str) -> str:
    return SIDE_B if side == SIDE_A else SIDE_A


def counter_column(side: str):
    return ConversationSummary.unread_count_a if side == SIDE_A else ConversationSummary.unread_count_b


def sent_by_side(ref: ConversationRef, side: str):
    """SQL criterion selecting messages in ``ref`` written by ``side``."""
    if ref.kind is ConversationKind.DIRECT:
        user_id = ref.participant_a_id if side == SIDE_A else ref.participant_b_id
        return Message.sender_id == user_id
    role = SenderRole.OWNER if side == SIDE_A else SenderRole.CUSTOMER
    return Message.sender_role == role.value


def message_side(ref: ConversationRef, message: Message) -> str:
    if ref.kind is ConversationKind.DIRECT:
        return SIDE_A if message.sender_id == ref.participant_a_id else SIDE_B
    return SIDE_A if message.sender_role == SenderRole.OWNER.value else SIDE_B


def make_excerpt(content: str) -> str:
    limit = min(current_app.config["EXCERPT_LENGTH"], 255)
    text = " ".join(content.split())
    if len(text) <= limit:
        return text
    return text[: limit - 3].rstrip() + "..."


def ensure_summary(ref: ConversationRef) -> None:
    """Create the summary row for ``ref`` if it does not exist yet."""
    exists = db.session.execute(
        select(ConversationSummary.conversation_id).where(
            ConversationSummary.conversation_id == ref.conversation_id
        )
    ).first()
    if exists:
        return

    summary = ConversationSummary(
        conversation_id=ref.conversation_id,
        kind=ref.kind.value,
        store_id=ref.store_id,
        order_id=ref.order_id,
        booking_id=ref.booking_id,
        participant_a_id=ref.participant_a_id,
        participant_b_id=ref.participant_b_id,
        customer_email=ref.customer_email,
        unread_count_a=0,
        unread_count_b=0,
    )
    try:
        with db.session.begin_nested():
            db.session.add(summary)
    except IntegrityError:
        # Another request created the row first; the update below applies to it.
        current_app.logger.debug("Summary %s created concurrently", ref.conversation_id)


def on_message_appended(ref: ConversationRef, message: Message) -> None:
    """Count ``message`` as unread for the recipient side and advance the last-message fields."""
    ensure_summary(ref)

    recipient_counter = counter_column(other_side(message_side(ref, message)))
    is_newer = or_(
        ConversationSummary.last_message_at.is_(None),
        ConversationSummary.last_message_at <= message.created_at,
    )
    stmt = (
        update(ConversationSummary)
        .where(ConversationSummary.conversation_id == ref.conversation_id)
        .values(
            {
                recipient_counter: recipient_counter + 1,
                ConversationSummary.last_message_at: case(
                    (is_newer, message.created_at), else_=ConversationSummary.last_message_at
                ),
                ConversationSummary.last_message_excerpt: case(
                    (is_newer, make_excerpt(message.content)),
                    else_=ConversationSummary.last_message_excerpt,
                ),
                ConversationSummary.updated_at: utc_now(),
            }
        )
        .execution_options(synchronize_session=False)
    )
    db.session.execute(stmt)


def live_unread_count(ref: ConversationRef, reader_side: str):
    """Scalar subquery counting unread messages addressed to ``reader_side``."""
    return (
        select(func.count(Message.message_id))
        .where(
            Message.conversation_id == ref.conversation_id,
            Message.is_read.is_(False),
            sent_by_side(ref, other_side(reader_side)),
        )
        .scalar_subquery()
    )


def on_marked_read(ref: ConversationRef, reader_side: str) -> int:
    """Reset the reader's counter to the live unread count and return it."""
    counter = counter_column(reader_side)
    db.session.execute(
        update(ConversationSummary)
        .where(ConversationSummary.conversation_id == ref.conversation_id)
        .values({counter: live_unread_count(ref, reader_side), ConversationSummary.updated_at: utc_now()})
        .execution_options(synchronize_session=False)
    )
    remaining = db.session.execute(
        select(counter).where(ConversationSummary.conversation_id == ref.conversation_id)
    ).scalar()
    return remaining or 0


def get_summary(ref: ConversationRef) -> ConversationSummary:
    summary = db.session.get(ConversationSummary, ref.conversation_id, populate_existing=True)
    if summary is None:
        raise NotFound("conversation has no messages yet", code="conversation_not_found")
    return summary


def rebuild_summary(ref: ConversationRef) -> bool:
    """Recompute counters and last-message fields from the message log.

    Returns True when the stored row differed from the recomputed values.
    """
    latest = db.session.execute(
        select(Message)
        .where(Message.conversation_id == ref.conversation_id)
        .order_by(Message.created_at.desc(), Message.message_id.desc())
        .limit(1)
    ).scalar_one_or_none()
    if latest is None:
        return False

    ensure_summary(ref)
    before = db.session.execute(
        select(
            ConversationSummary.unread_count_a,
            ConversationSummary.unread_count_b,
            ConversationSummary.last_message_at,
        ).where(ConversationSummary.conversation_id == ref.conversation_id)
    ).one()

    unread_a = db.session.execute(select(live_unread_count(ref, SIDE_A))).scalar()
    unread_b = db.session.execute(select(live_unread_count(ref, SIDE_B))).scalar()

    db.session.execute(
        update(ConversationSummary)
        .where(ConversationSummary.conversation_id == ref.conversation_id)
        .values(
            unread_count_a=unread_a,
            unread_count_b=unread_b,
            last_message_at=latest.created_at,
            last_message_excerpt=make_excerpt(latest.content),
            updated_at=utc_now(),
        )
        .execution_options(synchronize_session=False)
    )
    return tuple(before) != (unread_a, unread_b, latest.created_at)


def rebuild_all() -> list[str]:
    """Rebuild every conversation that has messages; return the ids that changed."""
    changed = []
    conversation_ids = db.session.execute(
        select(Message.conversation_id).distinct().order_by(Message.conversation_id)
    ).scalars().all()
    for conversation_id in conversation_ids:
        try:
            ref = ref_for_conversation_id(conversation_id)
        except NotFound:
            current_app.logger.warning("Skipping %s: parent entity no longer exists", conversation_id)
            continue
        if rebuild_summary(ref):
            changed.append(conversation_id)
    return changed
