"""Receiver-side reconciliation — what a client does with the events it gets."""

import pytest

from murmur.realtime.client import FeedState, RealtimeClient, ReconnectPolicy


class FakeMonotonic:
    def __init__(self):
        self.now = 100.0

    def __call__(self):
        return self.now


def _liked(post_id, like_count, user_id=2, is_liked=True):
    return {
        "postId": post_id,
        "userId": user_id,
        "username": "bob",
        "likeCount": like_count,
        "isLiked": is_liked,
    }


def _typing(user_id, is_typing):
    return {
        "userId": user_id,
        "username": f"user{user_id}",
        "displayName": f"User {user_id}",
        "isTyping": is_typing,
    }


POST = {
    "id": 7,
    "content": "hello",
    "author": {"id": 1, "username": "alice", "displayName": "Alice Johnson"},
    "createdAt": "2024-01-01T12:00:00Z",
    "likeCount": 0,
}


def test_post_created_and_deleted():
    state = FeedState()
    state.apply("post:created", POST)
    assert state.posts[7].content == "hello"
    assert state.like_counts[7] == 0

    state.apply("post:deleted", {"id": 7, "authorId": 1})
    assert 7 not in state.posts
    assert 7 not in state.like_counts


def test_like_events_replace_count():
    state = FeedState()
    state.apply("post:created", POST)

    state.apply("post:liked", _liked(7, 3))
    state.apply("post:liked", _liked(7, 3))  # duplicate delivery
    assert state.like_counts[7] == 3

    state.apply("post:unliked", _liked(7, 2, is_liked=False))
    assert state.like_counts[7] == 2


def test_out_of_order_like_events_settle_on_last_value():
    state = FeedState()
    state.apply("post:liked", _liked(7, 2))
    state.apply("post:liked", _liked(7, 1))
    assert state.like_counts[7] == 1


def test_own_likes_tracked():
    state = FeedState(me=2)
    state.apply("post:liked", _liked(7, 1, user_id=2))
    assert 7 in state.liked_by_me
    state.apply("post:unliked", _liked(7, 0, user_id=2, is_liked=False))
    assert 7 not in state.liked_by_me


def test_presence_from_snapshot_replaces_list():
    state = FeedState()
    state.apply("user:connected", {
        "userId": 9, "username": "stale", "displayName": "Stale",
        "connectedAt": "2024-01-01T12:00:00Z",
    })
    state.apply("users:online", {
        "users": [{"userId": 1, "username": "alice", "displayName": "Alice"}],
        "count": 1,
    })
    assert list(state.online) == [1]
    assert state.online_count == 1


def test_user_disconnected_clears_typing():
    state = FeedState()
    state.apply("typing:start", _typing(3, True))
    state.apply("user:disconnected", {"userId": 3, "username": "u", "displayName": "U"})
    assert state.typing_users() == []


def test_typing_start_and_stop():
    state = FeedState()
    state.apply("typing:start", _typing(3, True))
    assert [t.user_id for t in state.typing_users()] == [3]

    state.apply("typing:stop", _typing(3, False))
    assert state.typing_users() == []


def test_typing_indicator_expires():
    clock = FakeMonotonic()
    state = FeedState(typing_timeout=2.0, clock=clock)
    state.apply("typing:start", _typing(3, True))

    clock.now += 1.5
    assert len(state.typing_users()) == 1

    # a fresh typing:start resets the timer
    state.apply("typing:start", _typing(3, True))
    clock.now += 1.5
    assert len(state.typing_users()) == 1

    clock.now += 1.0
    assert state.typing_users() == []


def test_own_typing_ignored():
    state = FeedState(me=3)
    state.apply("typing:start", _typing(3, True))
    assert state.typing_users() == []


def test_unknown_events_ignored():
    state = FeedState()
    state.apply("something:else", {"x": 1})
    state.apply("error", {"error": "unknown_room", "message": "nope"})
    assert state.posts == {}


def test_reconnect_backoff():
    policy = ReconnectPolicy(attempts=5, delay=1.0, delay_max=8.0)
    assert [policy.base_delay(n) for n in range(1, 6)] == [1.0, 2.0, 4.0, 8.0, 8.0]

    options = policy.client_options()
    assert options["reconnection"] is True
    assert options["reconnection_attempts"] == 5
    assert options["reconnection_delay_max"] == 8.0


def test_reconnect_policy_from_settings():
    policy = ReconnectPolicy.from_settings()
    assert policy.attempts == 0  # forever
    assert policy.delay == 1.0


@pytest.mark.asyncio
async def test_client_dispatches_into_state():
    seen = []
    client = RealtimeClient(
        "http://localhost:3001",
        "token",
        on_event=lambda event, data: seen.append(event),
    )

    handler = client.sio.handlers["/sns"]["post:created"]
    await handler(POST)

    assert 7 in client.state.posts
    assert seen == ["post:created"]
