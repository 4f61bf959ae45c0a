"""Conversation list derivation.

A viewer's conversation list holds one summary per counterpart. It can be
computed wholesale from the messages of the viewer (``build_index``) or kept
current one canonical message at a time (``patch_message``). Folding
``patch_message`` over the final version of every message, in any order,
yields the same list as ``build_index`` over those messages. Stale or
duplicated versions applied afterwards leave it unchanged: read and deleted
only move forward, and an older edit never replaces a newer one.
"""
from datetime import datetime
from typing import Iterable, List, Optional, Sequence
from uuid import UUID

from pairchat.schemas.conversation import ConversationSummaryDto
from pairchat.schemas.message import LastMessageDto, MessageDto
from pairchat.schemas.user import UserSummaryDto, ProfileUpdatedEvent


def message_key(message) -> tuple:
    # Creation time first, store sequence as tie-break
    return (message.created_at, message.id)


def content_version(message) -> tuple:
    """Orders versions of one message by content: deleted beats edited beats original."""
    return (message.deleted, message.edited_at or datetime.min)


def project_last_message(message: MessageDto) -> LastMessageDto:
    return LastMessageDto(
        id=message.id,
        sender_id=message.sender_id,
        text=message.text,
        has_image=bool(message.image),
        created_at=message.created_at,
        deleted=message.deleted,
        edited_at=message.edited_at,
    )


def summary_sort_key(summary: ConversationSummaryDto) -> tuple:
    return (summary.last_message_time, str(summary.user.id))


def sort_summaries(summaries: Iterable[ConversationSummaryDto]) -> List[ConversationSummaryDto]:
    """Most recent activity first; counterpart id breaks ties."""
    return sorted(summaries, key=summary_sort_key, reverse=True)


def empty_summary(user: UserSummaryDto) -> ConversationSummaryDto:
    # No messages yet: the counterpart sorts by its join time
    return ConversationSummaryDto(
        user=user,
        last_message=None,
        last_message_time=user.created_at,
        unread_message_ids=[],
    )


def build_index(
    viewer_id: UUID,
    users: Sequence[UserSummaryDto],
    messages: Sequence[MessageDto],
) -> List[ConversationSummaryDto]:
    """Derive the full conversation list of ``viewer_id``.

    ``users`` are the candidate counterparts; the viewer is skipped if present.
    Messages that do not involve the viewer or that concern a user outside
    ``users`` are ignored.
    """
    by_counterpart = {user.id: [] for user in users if user.id != viewer_id}
    for message in messages:
        if not message.involves(viewer_id):
            continue
        bucket = by_counterpart.get(message.counterpart_of(viewer_id))
        if bucket is not None:
            bucket.append(message)

    summaries = []
    for user in users:
        if user.id == viewer_id:
            continue
        thread = by_counterpart[user.id]
        if not thread:
            summaries.append(empty_summary(user))
            continue
        last = max(thread, key=message_key)
        received = [m for m in thread if m.receiver_id == viewer_id]
        summaries.append(ConversationSummaryDto(
            user=user,
            last_message=project_last_message(last),
            last_message_time=last.created_at,
            unread_message_ids=sorted(m.id for m in received if not m.read),
            read_message_ids=sorted(m.id for m in received if m.read),
        ))
    return sort_summaries(summaries)


def find_summary(summaries: Sequence[ConversationSummaryDto], user_id: UUID) -> Optional[ConversationSummaryDto]:
    for summary in summaries:
        if summary.user.id == user_id:
            return summary
    return None


def _replace(
    summaries: Sequence[ConversationSummaryDto],
    updated: ConversationSummaryDto,
) -> List[ConversationSummaryDto]:
    return sort_summaries(
        updated if s.user.id == updated.user.id else s
        for s in summaries
    )


def patch_message(
    summaries: Sequence[ConversationSummaryDto],
    viewer_id: UUID,
    message: MessageDto,
) -> List[ConversationSummaryDto]:
    """Apply one new or updated canonical message to the conversation list.

    Only the counterpart's summary changes. Applying the same message twice,
    or an older version after a newer one, is a no-op. Messages for
    counterparts missing from the list are ignored; the caller decides
    whether to refresh.
    """
    if not message.involves(viewer_id):
        return list(summaries)
    current = find_summary(summaries, message.counterpart_of(viewer_id))
    if current is None:
        return list(summaries)

    last_message = current.last_message
    last_message_time = current.last_message_time
    if last_message is None or message_key(message) > message_key(last_message):
        last_message = project_last_message(message)
        last_message_time = message.created_at
    elif message.id == last_message.id and content_version(message) >= content_version(last_message):
        last_message = project_last_message(message)

    unread = set(current.unread_message_ids)
    read = set(current.read_message_ids)
    if message.receiver_id == viewer_id:
        if message.read or message.id in read:
            read.add(message.id)
            unread.discard(message.id)
        else:
            unread.add(message.id)

    updated = current.model_copy(update={
        "last_message": last_message,
        "last_message_time": last_message_time,
        "unread_message_ids": sorted(unread),
        "read_message_ids": sorted(read),
    })
    return _replace(summaries, updated)


def patch_read(
    summaries: Sequence[ConversationSummaryDto],
    counterpart_id: UUID,
    message_ids: Optional[Iterable[int]] = None,
) -> List[ConversationSummaryDto]:
    """Clear unread ids of one counterpart; all of them when ``message_ids`` is None."""
    current = find_summary(summaries, counterpart_id)
    if current is None:
        return list(summaries)
    if message_ids is None:
        cleared = set(current.unread_message_ids)
    else:
        cleared = set(message_ids) & set(current.unread_message_ids)
    return _replace(summaries, current.model_copy(update={
        "unread_message_ids": [i for i in current.unread_message_ids if i not in cleared],
        "read_message_ids": sorted(cleared.union(current.read_message_ids)),
    }))


def patch_profile(
    summaries: Sequence[ConversationSummaryDto],
    profile: ProfileUpdatedEvent,
) -> List[ConversationSummaryDto]:
    current = find_summary(summaries, profile.user_id)
    if current is None:
        return list(summaries)
    user = current.user.model_copy(update={
        "full_name": profile.full_name,
        "profile_pic": profile.profile_pic,
        "description": profile.description,
    })
    return _replace(summaries, current.model_copy(update={"user": user}))


def total_unread(summaries: Sequence[ConversationSummaryDto]) -> int:
    return sum(s.unread_count for s in summaries)


def unread_chat_count(summaries: Sequence[ConversationSummaryDto]) -> int:
    """Number of conversations with at least one unread message."""
    return sum(1 for s in summaries if s.unread_count > 0)
