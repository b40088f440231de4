"""
Conversation grouping (pure, no I/O).

Direction is a heuristic: a message is `outbound` when its sender address
contains the mailbox address (case-insensitive substring). Aliases or
shared-domain senders that do not contain the full mailbox address are
classified as inbound, and a sender that merely embeds the mailbox string
is classified as outbound.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, Optional

from stayinbox.domain.graph_message import GraphMessage
from stayinbox.domain.models.conversation import MessageDirection


@dataclass(frozen=True)
class ThreadSummary:
    first_message: GraphMessage
    last_message: GraphMessage
    first_message_at: datetime
    last_message_at: datetime
    last_message_direction: MessageDirection


def classify_direction(sender: Optional[str], mailbox: str) -> MessageDirection:
    if sender and mailbox and mailbox.strip().lower() in sender.lower():
        return MessageDirection.outbound
    return MessageDirection.inbound


def group_by_thread(messages: Iterable[GraphMessage]) -> dict[str, list[GraphMessage]]:
    """
    Partition by provider thread id.
    Each bucket is sorted oldest first; repeated provider ids are kept once.
    """
    buckets: dict[str, dict[str, GraphMessage]] = {}
    for msg in messages:
        buckets.setdefault(msg.conversation_id, {}).setdefault(msg.id, msg)

    return {
        thread_id: sorted(by_id.values(), key=lambda m: m.effective_at)
        for thread_id, by_id in buckets.items()
    }


def summarize_thread(messages: list[GraphMessage], mailbox: str) -> ThreadSummary:
    """`messages` must be one non-empty bucket from group_by_thread."""
    if not messages:
        raise ValueError("cannot summarize an empty thread")
    first, last = messages[0], messages[-1]
    return ThreadSummary(
        first_message=first,
        last_message=last,
        first_message_at=first.effective_at,
        last_message_at=last.effective_at,
        last_message_direction=classify_direction(last.from_email, mailbox),
    )
