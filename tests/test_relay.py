import json
from concurrent.futures import ThreadPoolExecutor

import pytest

from event_keys import CHAT_MESSAGE, JOIN_CALL, SIGNAL, USER_JOINED, USER_LEFT


def frame(event, *args):
    return json.dumps({"event": event, "args": list(args)})


@pytest.fixture
def lobby(engine, emitter):
    """C1 and C2 connected and joined to "lobby"."""
    for connection_id in ("C1", "C2", "C3"):
        engine.on_connect(connection_id)
    engine.on_join("C1", "lobby")
    engine.on_join("C2", "lobby")
    emitter.clear()
    return engine


def test_first_join_notifies_only_the_joiner(engine, emitter):
    engine.on_connect("C1")
    engine.on_join("C1", "lobby")
    assert emitter.sent == [("C1", USER_JOINED, ("C1", ["C1"]))]


def test_second_join_notifies_every_member_without_replay(engine, emitter):
    engine.on_connect("C1")
    engine.on_connect("C2")
    engine.on_join("C1", "lobby")
    emitter.clear()

    engine.on_join("C2", "lobby")
    assert emitter.events_for("C1") == [(USER_JOINED, ("C2", ["C1", "C2"]))]
    assert emitter.events_for("C2") == [(USER_JOINED, ("C2", ["C1", "C2"]))]


def test_chat_is_broadcast_and_stored(lobby, emitter):
    lobby.on_chat_message("C1", "hello", "Alice")
    expected = (CHAT_MESSAGE, ("hello", "Alice", "C1"))
    assert emitter.events_for("C1") == [expected]
    assert emitter.events_for("C2") == [expected]
    assert lobby.history.history_length("lobby") == 1


def test_late_joiner_gets_replay_before_live_messages(lobby, emitter):
    lobby.on_chat_message("C1", "hello", "Alice")
    emitter.clear()

    lobby.on_join("C3", "lobby")
    lobby.on_chat_message("C2", "welcome", "Bob")

    assert emitter.events_for("C3") == [
        (USER_JOINED, ("C3", ["C1", "C2", "C3"])),
        (CHAT_MESSAGE, ("hello", "Alice", "C1")),
        (CHAT_MESSAGE, ("welcome", "Bob", "C2")),
    ]


def test_disconnect_notifies_remaining_members(lobby, emitter):
    lobby.on_join("C3", "lobby")
    emitter.clear()

    duration = lobby.on_disconnect("C1")

    assert duration is not None and duration >= 0
    assert emitter.sent == [("C2", USER_LEFT, ("C1",)), ("C3", USER_LEFT, ("C1",))]
    assert lobby.rooms.members("lobby") == ["C2", "C3"]
    assert "C1" not in lobby.registry


def test_sole_member_leaving_deletes_room_but_keeps_history(engine, emitter):
    engine.on_connect("C1")
    engine.on_join("C1", "R1")
    engine.on_chat_message("C1", "remember me", "Alice")
    engine.on_disconnect("C1")
    assert "R1" not in engine.rooms

    engine.on_connect("C2")
    emitter.clear()
    engine.on_join("C2", "R1")
    assert emitter.events_for("C2") == [
        (USER_JOINED, ("C2", ["C2"])),
        (CHAT_MESSAGE, ("remember me", "Alice", "C1")),
    ]


def test_disconnect_leaves_every_joined_room(engine, emitter):
    for connection_id in ("A", "B", "C"):
        engine.on_connect(connection_id)
    engine.on_join("A", "one")
    engine.on_join("B", "one")
    engine.on_join("A", "two")
    engine.on_join("C", "two")
    emitter.clear()

    engine.on_disconnect("A")
    assert emitter.sent == [("B", USER_LEFT, ("A",)), ("C", USER_LEFT, ("A",))]
    assert engine.rooms.members("one") == ["B"]
    assert engine.rooms.members("two") == ["C"]


def test_rejoin_duplicates_membership(engine, emitter):
    engine.on_connect("C1")
    engine.on_join("C1", "lobby")
    engine.on_join("C1", "lobby")
    assert engine.rooms.members("lobby") == ["C1", "C1"]

    engine.on_disconnect("C1")
    assert "lobby" not in engine.rooms


def test_chat_outside_a_room_is_discarded(engine, emitter):
    engine.on_connect("C1")
    engine.on_chat_message("C1", "anyone?", "Alice")
    assert emitter.sent == []
    assert engine.history.room_keys() == []


def test_chat_uses_first_room_when_in_several(engine, emitter):
    engine.on_connect("C1")
    engine.on_join("C1", "first")
    engine.on_join("C1", "second")
    engine.on_chat_message("C1", "hi", "Alice")
    assert engine.history.history_length("first") == 1
    assert engine.history.history_length("second") == 0


def test_chat_fields_are_sanitized_before_storage_and_broadcast(lobby, emitter):
    lobby.on_chat_message("C1", "<img src=x onerror=alert(1)>", "<script>evil()</script>Mallory")

    stored = lobby.history.records("lobby")[0]
    assert "onerror" not in stored.data
    assert "<script" not in stored.sender
    assert stored.sender.endswith("Mallory")

    event, (data, sender, origin) = emitter.events_for("C2")[0]
    assert event == CHAT_MESSAGE
    assert (data, sender, origin) == (stored.data, stored.sender, "C1")


def test_signal_is_relayed_verbatim_to_any_target(engine, emitter):
    payload = {"type": "offer", "sdp": "<not sanitized>"}
    engine.on_signal("C1", "someone-else", payload)
    assert emitter.sent == [("someone-else", SIGNAL, ("C1", payload))]


def test_dispatch_routes_frames(lobby, emitter):
    assert lobby.dispatch("C3", frame(JOIN_CALL, "lobby"))
    assert lobby.rooms.members("lobby") == ["C1", "C2", "C3"]

    assert lobby.dispatch("C1", frame(SIGNAL, "C2", {"candidate": "abc"}))
    assert ("C2", SIGNAL, ("C1", {"candidate": "abc"})) in emitter.sent

    assert lobby.dispatch("C2", frame(CHAT_MESSAGE, "hey", "Bob", "extra-ignored"))
    assert lobby.history.history_length("lobby") == 1


@pytest.mark.parametrize(
    "raw",
    [
        "not json",
        json.dumps({"args": ["lobby"]}),
        json.dumps({"event": "join-call", "args": "lobby"}),
        frame("leave-call", "lobby"),
        frame(JOIN_CALL),
        frame(JOIN_CALL, 42),
        frame(SIGNAL, "C2"),
    ],
)
def test_dispatch_drops_malformed_frames(engine, emitter, raw):
    engine.on_connect("C1")
    assert engine.dispatch("C1", raw) is False
    assert emitter.sent == []


def test_room_introspection(lobby):
    lobby.on_chat_message("C1", "hello", "Alice")
    [summary] = lobby.room_summaries()
    assert summary.room_key == "lobby"
    assert summary.members == ["C1", "C2"]
    assert summary.history_length == 1

    details = lobby.room_details("lobby")
    assert details.member_count == 2
    assert lobby.room_details("nowhere") is None


def test_plain_chat_text_is_broadcast_unchanged(lobby, emitter):
    lobby.on_chat_message("C1", "Tom & Jerry", "Q&A bot")
    assert emitter.events_for("C2") == [(CHAT_MESSAGE, ("Tom & Jerry", "Q&A bot", "C1"))]


def test_concurrent_room_activity_stays_consistent(engine, emitter):
    connection_ids = [f"C{i}" for i in range(60)]
    leavers = set(connection_ids[::3])

    def session(connection_id):
        engine.on_connect(connection_id)
        engine.on_join(connection_id, "lobby")
        engine.on_chat_message(connection_id, f"hi from {connection_id}", connection_id)
        if connection_id in leavers:
            engine.on_disconnect(connection_id)

    with ThreadPoolExecutor(max_workers=8) as pool:
        list(pool.map(session, connection_ids))

    members = engine.rooms.members("lobby")
    assert sorted(members) == sorted(set(connection_ids) - leavers)
    assert len(members) == len(set(members))
    history = [(record.data, record.sender, record.sender_id) for record in engine.history.records("lobby")]
    assert len(history) == len(connection_ids)

    for connection_id in connection_ids:
        view = None
        chats = []
        for event, args in emitter.events_for(connection_id):
            if event == USER_JOINED:
                new_member, member_list = args
                if view is None:
                    assert new_member == connection_id
                else:
                    assert list(member_list) == view + [new_member]
                view = list(member_list)
            elif event == USER_LEFT:
                assert args[0] in view
                view = [member for member in view if member != args[0]]
            elif event == CHAT_MESSAGE:
                chats.append(args)
        # replay plus live messages cover the room history in order, with no gaps
        assert chats == history[:len(chats)]
        if connection_id not in leavers:
            assert view == members
