from afinidad.database import RowChange
from afinidad.database.supabase_client import decode_payload
from afinidad.realtime import LikeInserted, MatchChanged, MessageInserted, decode_change


def test_likes_insert_decodes_to_like_event():
    event = decode_change(RowChange("INSERT", "likes", {"id": 7, "user_id": "a", "target_id": "b", "direction": "super"}))

    assert isinstance(event, LikeInserted)
    assert event.like.id == "7"
    assert event.like.direction.is_positive


def test_match_insert_that_is_already_mutual_counts_as_flip():
    event = decode_change(RowChange("INSERT", "matches", {"id": "m1", "seeker_id": "s", "offerer_id": "o", "is_mutual": True}))

    assert isinstance(event, MatchChanged)
    assert event.became_mutual


def test_match_update_uses_previous_row():
    new = {"id": "m1", "seeker_id": "s", "offerer_id": "o", "is_mutual": True}

    assert decode_change(RowChange("UPDATE", "matches", new, {"is_mutual": False})).became_mutual
    assert not decode_change(RowChange("UPDATE", "matches", new, {"is_mutual": True})).became_mutual


def test_message_text_column_maps_to_body():
    event = decode_change(
        RowChange("INSERT", "conversation_messages", {"id": "x", "conversation_id": "c", "sender_id": "s", "message_text": "hola"})
    )

    assert isinstance(event, MessageInserted)
    assert event.message.body == "hola"


def test_invalid_or_unknown_rows_are_dropped():
    assert decode_change(RowChange("INSERT", "likes", {"id": "1"})) is None
    assert decode_change(RowChange("DELETE", "likes", {"id": "1", "user_id": "a", "target_id": "b"})) is None
    assert decode_change(RowChange("INSERT", "profiles", {"id": "1"})) is None


def test_realtime_payload_shapes_are_normalized():
    nested = decode_payload(
        "likes",
        {"data": {"type": "INSERT", "table": "likes", "record": {"id": "1"}, "old_record": None}},
    )
    flat = decode_payload("matches", {"eventType": "UPDATE", "new": {"id": "m"}, "old": {"is_mutual": False}})

    assert (nested.event_type, nested.table, nested.new, nested.old) == ("INSERT", "likes", {"id": "1"}, None)
    assert (flat.event_type, flat.table, flat.old) == ("UPDATE", "matches", {"is_mutual": False})
