"""Conversation references and participant resolution.

A conversation is addressed by ``(kind, ref)``: an order id, a booking id, or,
for direct chats, the peer's user id as seen by the caller. Resolution turns
that address into a ``ConversationRef`` plus the ``Participant`` the caller
plays in it.
"""
from __future__ import annotations

from dataclasses import dataclass

from .auth import Actor
from .errors import Forbidden, NotFound, Unauthorized, ValidationError
from .extensions import db
from .models import Booking, ConversationKind, Order, SenderRole, Store, User

SIDE_A = "a"
SIDE_B = "b"


@dataclass(frozen=True)
class ConversationRef:
    kind: ConversationKind
    conversation_id: str
    store_id: int | None = None
    order_id: int | None = None
    booking_id: int | None = None
    participant_a_id: int | None = None
    participant_b_id: int | None = None
    customer_email: str | None = None

    def message_fields(self) -> dict[str, object]:
        """Reference columns a message in this conversation carries."""
        if self.kind is ConversationKind.DIRECT:
            return {}
        return {
            "store_id": self.store_id,
            "order_id": self.order_id,
            "booking_id": self.booking_id,
        }


@dataclass(frozen=True)
class Participant:
    """The side and identity an actor has within one conversation."""

    side: str
    role: SenderRole
    user_id: int | None
    name: str | None
    email: str | None
    # user ids on the other side, used to address notifications
    counterpart_ids: tuple[int, ...] = ()


def parse_kind(kind: str) -> ConversationKind:
    try:
        return ConversationKind(kind)
    except ValueError:
        raise ValidationError(f"unknown conversation kind: {kind}", code="invalid_kind") from None


def _parse_id(ref: str | int) -> int:
    try:
        value = int(ref)
    except (TypeError, ValueError):
        raise ValidationError(f"invalid conversation reference: {ref}", code="invalid_reference") from None
    if value <= 0:
        raise ValidationError(f"invalid conversation reference: {ref}", code="invalid_reference")
    return value


def conversation_id_for(kind: ConversationKind, *ids: int) -> str:
    if kind is ConversationKind.DIRECT:
        low, high = sorted(ids)
        return f"direct:{low}-{high}"
    (entity_id,) = ids
    return f"{kind.value}:{entity_id}"


def _store_conversation_ref(kind: ConversationKind, entity: Order | Booking) -> ConversationRef:
    entity_id = entity.order_id if kind is ConversationKind.ORDER else entity.booking_id
    return ConversationRef(
        kind=kind,
        conversation_id=conversation_id_for(kind, entity_id),
        store_id=entity.store_id,
        order_id=entity_id if kind is ConversationKind.ORDER else None,
        booking_id=entity_id if kind is ConversationKind.BOOKING else None,
        participant_a_id=entity.store.owner_id if entity.store else None,
        participant_b_id=entity.customer_id,
        customer_email=(entity.customer_email or "").lower() or None,
    )


def is_customer(actor: Actor, entity: Order | Booking) -> bool:
    if actor.user_id is not None and entity.customer_id == actor.user_id:
        return True
    customer_email = (entity.customer_email or "").lower()
    return bool(actor.email and customer_email and actor.email == customer_email)


def _resolve_store_conversation(
    kind: ConversationKind, ref: str | int, actor: Actor, role_hint: str | None
) -> tuple[ConversationRef, Participant]:
    model = Order if kind is ConversationKind.ORDER else Booking
    entity = db.session.get(model, _parse_id(ref))
    if entity is None:
        raise NotFound(f"{kind.value} not found")

    store: Store = entity.store
    conversation = _store_conversation_ref(kind, entity)
    is_owner = actor.user_id is not None and store.owner_id == actor.user_id
    customer_side = is_customer(actor, entity)

    if is_owner and not (customer_side and role_hint == SenderRole.CUSTOMER.value):
        counterpart = (entity.customer_id,) if entity.customer_id else ()
        return conversation, Participant(
            side=SIDE_A,
            role=SenderRole.OWNER,
            user_id=actor.user_id,
            name=actor.name or store.name,
            email=actor.email,
            counterpart_ids=counterpart,
        )
    if customer_side:
        return conversation, Participant(
            side=SIDE_B,
            role=SenderRole.CUSTOMER,
            user_id=actor.user_id,
            name=actor.name or entity.customer_name,
            email=actor.email or entity.customer_email,
            counterpart_ids=(store.owner_id,),
        )
    raise Forbidden(f"not a participant in this {kind.value} conversation")


def _resolve_direct_conversation(ref: str | int, actor: Actor) -> tuple[ConversationRef, Participant]:
    if actor.is_anonymous:
        raise Unauthorized("direct conversations require an account")

    peer_id = _parse_id(ref)
    if peer_id == actor.user_id:
        raise ValidationError("cannot start a conversation with yourself", code="invalid_reference")
    if db.session.get(User, peer_id) is None:
        raise NotFound("user not found")

    low, high = sorted((actor.user_id, peer_id))
    conversation = ConversationRef(
        kind=ConversationKind.DIRECT,
        conversation_id=conversation_id_for(ConversationKind.DIRECT, low, high),
        participant_a_id=low,
        participant_b_id=high,
    )
    return conversation, Participant(
        side=SIDE_A if actor.user_id == low else SIDE_B,
        role=SenderRole.USER,
        user_id=actor.user_id,
        name=actor.name,
        email=actor.email,
        counterpart_ids=(peer_id,),
    )


def resolve(
    kind: str | ConversationKind, ref: str | int, actor: Actor, role_hint: str | None = None
) -> tuple[ConversationRef, Participant]:
    """Resolve ``(kind, ref)`` for ``actor``.

    Raises ``NotFound`` when the order, booking or peer does not exist and
    ``Forbidden`` when the actor is neither side of the conversation.
    """
    if not isinstance(kind, ConversationKind):
        kind = parse_kind(kind)

    if kind is ConversationKind.DIRECT:
        return _resolve_direct_conversation(ref, actor)
    return _resolve_store_conversation(kind, ref, actor, role_hint)


def ref_for_conversation_id(conversation_id: str) -> ConversationRef:
    """Rebuild a reference from a stored conversation id (maintenance use)."""
    kind_value, _, rest = conversation_id.partition(":")
    kind = parse_kind(kind_value)

    if kind is ConversationKind.DIRECT:
        low, _, high = rest.partition("-")
        low_id, high_id = _parse_id(low), _parse_id(high)
        return ConversationRef(
            kind=kind,
            conversation_id=conversation_id,
            participant_a_id=low_id,
            participant_b_id=high_id,
        )

    model = Order if kind is ConversationKind.ORDER else Booking
    entity = db.session.get(model, _parse_id(rest))
    if entity is None:
        raise NotFound(f"{kind.value} not found")
    return _store_conversation_ref(kind, entity)
