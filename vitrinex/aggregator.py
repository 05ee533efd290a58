"""Merged conversation feed for one actor.

The feed is built from three independent queries, one per conversation kind.
A failing or late kind is reported on the feed instead of failing the request.
"""
from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from datetime import datetime, timezone

from flask import Flask, current_app
from sqlalchemy import func, or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import aliased

from .auth import Actor
from .conversations import is_customer
from .errors import PartialAggregationFailure
from .extensions import db
from .models import (Booking, ConversationKind, ConversationSummary, Order,
                     SenderRole, Store, User, isoformat_utc)


@dataclass(frozen=True)
class ParticipantView:
    conversation_id: str
    kind: str
    role: str
    label: str
    subject: str
    unread_count: int
    last_message_at: datetime | None
    last_message_excerpt: str | None
    store_id: int | None = None
    order_id: int | None = None
    booking_id: int | None = None
    peer_id: int | None = None

    def sort_key(self) -> tuple:
        if self.last_message_at is None:
            ts = float("-inf")
        else:
            value = self.last_message_at
            if value.tzinfo is None:
                value = value.replace(tzinfo=timezone.utc)
            ts = value.timestamp()
        return (-self.unread_count, -ts, self.conversation_id, self.role)

    def to_dict(self) -> dict[str, object]:
        return {
            "conversation_id": self.conversation_id,
            "kind": self.kind,
            "role": self.role,
            "label": self.label,
            "subject": self.subject,
            "unread_count": self.unread_count,
            "last_message_at": isoformat_utc(self.last_message_at),
            "last_message_excerpt": self.last_message_excerpt,
            "store_id": self.store_id,
            "order_id": self.order_id,
            "booking_id": self.booking_id,
            "peer_id": self.peer_id,
        }


@dataclass
class Feed:
    conversations: list[ParticipantView] = field(default_factory=list)
    failures: list[PartialAggregationFailure] = field(default_factory=list)

    @property
    def total_unread(self) -> int:
        return sum(view.unread_count for view in self.conversations)

    @property
    def partial(self) -> bool:
        return bool(self.failures)

    def unread_by_kind(self) -> dict[str, int]:
        counts = {kind.value: 0 for kind in ConversationKind}
        for view in self.conversations:
            counts[view.kind] += view.unread_count
        return counts

    def to_dict(self) -> dict[str, object]:
        return {
            "conversations": [view.to_dict() for view in self.conversations],
            "total_unread": self.total_unread,
            "partial": self.partial,
            "failed_kinds": [failure.to_dict() for failure in self.failures],
        }


def _customer_match(model, actor: Actor):
    criteria = []
    if actor.user_id is not None:
        criteria.append(model.customer_id == actor.user_id)
    if actor.email:
        criteria.append(func.lower(model.customer_email) == actor.email)
    return or_(*criteria)


class Aggregator:
    def __init__(self, deadline_seconds: float | None = None) -> None:
        self.deadline_seconds = deadline_seconds

    def get_feed_for(self, actor: Actor, store_id: int | None = None) -> Feed:
        """Build the sorted feed for ``actor``.

        The kind queries run side by side, each on its own session. Whatever
        has not finished when the deadline passes is left out of the feed
        and reported as ``deadline_exceeded``.

        With ``store_id`` the feed holds only that store's order and booking
        conversations, seen from the owner side.
        """
        loaders = {
            ConversationKind.ORDER: self._order_rows,
            ConversationKind.BOOKING: self._booking_rows,
            ConversationKind.DIRECT: self._direct_rows,
        }
        if store_id is not None:
            del loaders[ConversationKind.DIRECT]

        app = current_app._get_current_object()
        executor = ThreadPoolExecutor(max_workers=len(loaders), thread_name_prefix="feed")
        futures = {
            kind: executor.submit(self._run_loader, app, loader, actor, store_id)
            for kind, loader in loaders.items()
        }
        done, _ = wait(futures.values(), timeout=self.deadline_seconds)
        # Late queries finish in the background; their rows are discarded.
        executor.shutdown(wait=False, cancel_futures=True)

        feed = Feed()
        for kind, future in futures.items():
            if future not in done:
                current_app.logger.warning(
                    "Feed deadline of %ss exceeded while loading %s conversations",
                    self.deadline_seconds,
                    kind.value,
                )
                feed.failures.append(PartialAggregationFailure(kind.value, "deadline_exceeded"))
                continue
            try:
                feed.conversations.extend(future.result())
            except SQLAlchemyError as exc:
                current_app.logger.exception(
                    "Failed to load %s conversations for feed", kind.value, exc_info=exc
                )
                feed.failures.append(PartialAggregationFailure(kind.value, "query_failed"))

        feed.conversations.sort(key=ParticipantView.sort_key)
        return feed

    @staticmethod
    def _run_loader(app: Flask, loader, actor: Actor, store_id: int | None) -> list[ParticipantView]:
        with app.app_context():
            try:
                return loader(actor, store_id)
            except SQLAlchemyError:
                db.session.rollback()
                raise

    def _store_rows(self, kind: ConversationKind, model, actor: Actor, store_id: int | None, conversation_id: str | None):
        entity_key = ConversationSummary.order_id if kind is ConversationKind.ORDER else ConversationSummary.booking_id
        entity_pk = model.order_id if kind is ConversationKind.ORDER else model.booking_id

        stmt = (
            select(ConversationSummary, model, Store)
            .join(model, entity_pk == entity_key)
            .join(Store, Store.store_id == model.store_id)
            .where(ConversationSummary.kind == kind.value)
        )
        if store_id is not None:
            stmt = stmt.where(Store.store_id == store_id, Store.owner_id == actor.user_id)
        elif actor.user_id is not None:
            stmt = stmt.where(or_(Store.owner_id == actor.user_id, _customer_match(model, actor)))
        else:
            stmt = stmt.where(_customer_match(model, actor))
        if conversation_id is not None:
            stmt = stmt.where(ConversationSummary.conversation_id == conversation_id)

        views = []
        for summary, entity, store in db.session.execute(stmt).all():
            subject = self._subject(kind, entity)
            common = {
                "conversation_id": summary.conversation_id,
                "kind": kind.value,
                "subject": subject,
                "last_message_at": summary.last_message_at,
                "last_message_excerpt": summary.last_message_excerpt,
                "store_id": store.store_id,
                "order_id": summary.order_id,
                "booking_id": summary.booking_id,
            }
            if actor.user_id is not None and store.owner_id == actor.user_id:
                views.append(ParticipantView(
                    role=SenderRole.OWNER.value,
                    label=entity.customer_name or entity.customer_email or "Customer",
                    unread_count=summary.unread_count_a,
                    peer_id=entity.customer_id,
                    **common,
                ))
            if store_id is None and is_customer(actor, entity):
                views.append(ParticipantView(
                    role=SenderRole.CUSTOMER.value,
                    label=store.name,
                    unread_count=summary.unread_count_b,
                    peer_id=store.owner_id,
                    **common,
                ))
        return views

    @staticmethod
    def _subject(kind: ConversationKind, entity: Order | Booking) -> str:
        if kind is ConversationKind.ORDER:
            return f"Order #{entity.order_id}"
        return entity.service_name or "Booking"

    def _order_rows(self, actor: Actor, store_id: int | None, conversation_id: str | None = None) -> list[ParticipantView]:
        return self._store_rows(ConversationKind.ORDER, Order, actor, store_id, conversation_id)

    def _booking_rows(self, actor: Actor, store_id: int | None, conversation_id: str | None = None) -> list[ParticipantView]:
        return self._store_rows(ConversationKind.BOOKING, Booking, actor, store_id, conversation_id)

    def _direct_rows(self, actor: Actor, store_id: int | None, conversation_id: str | None = None) -> list[ParticipantView]:
        if actor.user_id is None:
            return []

        user_a = aliased(User)
        user_b = aliased(User)
        stmt = (
            select(ConversationSummary, user_a, user_b)
            .join(user_a, user_a.user_id == ConversationSummary.participant_a_id)
            .join(user_b, user_b.user_id == ConversationSummary.participant_b_id)
            .where(
                ConversationSummary.kind == ConversationKind.DIRECT.value,
                or_(
                    ConversationSummary.participant_a_id == actor.user_id,
                    ConversationSummary.participant_b_id == actor.user_id,
                ),
            )
        )
        if conversation_id is not None:
            stmt = stmt.where(ConversationSummary.conversation_id == conversation_id)

        views = []
        for summary, first, second in db.session.execute(stmt).all():
            is_a = first.user_id == actor.user_id
            peer = second if is_a else first
            views.append(ParticipantView(
                conversation_id=summary.conversation_id,
                kind=ConversationKind.DIRECT.value,
                role=SenderRole.USER.value,
                label=peer.username or peer.email,
                subject="",
                unread_count=summary.unread_count_a if is_a else summary.unread_count_b,
                last_message_at=summary.last_message_at,
                last_message_excerpt=summary.last_message_excerpt,
                peer_id=peer.user_id,
            ))
        return views

    def view_of(self, actor: Actor, kind: ConversationKind, conversation_id: str, role: str) -> ParticipantView | None:
        """The actor's view of a single conversation, or None before its first message."""
        loader = {
            ConversationKind.ORDER: self._order_rows,
            ConversationKind.BOOKING: self._booking_rows,
            ConversationKind.DIRECT: self._direct_rows,
        }[kind]
        for view in loader(actor, None, conversation_id):
            if view.role == role:
                return view
        return None


def build_aggregator() -> Aggregator:
    return Aggregator(deadline_seconds=current_app.config.get("FEED_DEADLINE_SECONDS"))
