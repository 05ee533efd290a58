"""In-process notifications for conversation activity.

Receivers are connected with ``signal.connect`` and removed with
``signal.disconnect``; every signal is sent after the unit of work commits.
The sender is the Flask application.
"""
from __future__ import annotations

from blinker import Namespace

_signals = Namespace()

#: kwargs: ``message`` (Message), ``recipient_ids`` (tuple[int, ...])
message_appended = _signals.signal("message-appended")

#: kwargs: ``conversation_id`` (str), ``reader_id`` (int | None), ``marked`` (int)
conversation_read = _signals.signal("conversation-read")
