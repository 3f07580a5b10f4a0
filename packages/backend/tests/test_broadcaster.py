"""Tests for the Broadcaster — payload shape, targeting, failure isolation."""

from datetime import datetime, timezone

import pytest

from murmur.realtime.events import (
    ErrorEvent,
    PostCreated,
    PostDeleted,
    PostLikeChanged,
    TypingPayload,
)
from murmur.schemas.post import AuthorRead


def _post_created() -> PostCreated:
    return PostCreated(
        id=7,
        content="hello",
        author=AuthorRead(id=1, username="alice", display_name="Alice Johnson"),
        created_at=datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc),
        like_count=0,
    )


@pytest.mark.asyncio
async def test_post_created_goes_to_whole_room(sio, broadcaster):
    await sio.enter_room("a1", "main")
    await sio.enter_room("b1", "main")

    await broadcaster.notify_post_created(_post_created())

    [sent] = sio.emitted
    assert sent.event == "post:created"
    assert sent.namespace == "/sns"
    assert sent.recipients == {"a1", "b1"}
    assert sent.data == {
        "id": 7,
        "content": "hello",
        "author": {"id": 1, "username": "alice", "displayName": "Alice Johnson"},
        "createdAt": "2024-01-01T12:00:00Z",
        "likeCount": 0,
    }


@pytest.mark.asyncio
async def test_like_events_carry_absolute_count(sio, broadcaster):
    liked = PostLikeChanged(post_id=7, user_id=2, username="bob", like_count=3, is_liked=True)
    unliked = liked.model_copy(update={"like_count": 2, "is_liked": False})

    await broadcaster.notify_post_liked(liked)
    await broadcaster.notify_post_unliked(unliked)

    assert [e.event for e in sio.emitted] == ["post:liked", "post:unliked"]
    assert sio.emitted[0].data == {
        "postId": 7, "userId": 2, "username": "bob", "likeCount": 3, "isLiked": True,
    }
    assert sio.emitted[1].data["likeCount"] == 2


@pytest.mark.asyncio
async def test_post_deleted_payload(sio, broadcaster):
    await broadcaster.notify_post_deleted(PostDeleted(id=7, author_id=1))
    assert sio.emitted[0].data == {"id": 7, "authorId": 1}


@pytest.mark.asyncio
async def test_typing_skips_sender(sio, broadcaster):
    await sio.enter_room("a1", "main")
    await sio.enter_room("b1", "main")
    payload = TypingPayload(user_id=1, username="alice", display_name="Alice", is_typing=True)

    await broadcaster.typing(payload, skip_sid="a1")
    await broadcaster.typing(payload.model_copy(update={"is_typing": False}), skip_sid="a1")

    assert [e.event for e in sio.emitted] == ["typing:start", "typing:stop"]
    assert all(e.recipients == {"b1"} for e in sio.emitted)


@pytest.mark.asyncio
async def test_error_goes_to_one_socket(sio, broadcaster):
    await sio.enter_room("a1", "main")
    await sio.enter_room("b1", "main")

    await broadcaster.error("a1", ErrorEvent(error="invalid_payload", message="bad"))

    [sent] = sio.emitted
    assert sent.recipients == {"a1"}
    assert set(sent.data) == {"error", "message", "timestamp", "code"}


@pytest.mark.asyncio
async def test_transport_failure_is_swallowed(sio, broadcaster):
    sio.fail = True

    # Must not raise: the write that triggered this is already committed.
    await broadcaster.notify_post_created(_post_created())
    ok = await broadcaster.emit("post:deleted", PostDeleted(id=1, author_id=1))

    assert ok is False
    assert sio.emitted == []
