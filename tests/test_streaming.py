"""
Tests for event stream decoding.
"""

import pytest

from firetree import DecodeError, EventStreamDecoder, EventStreamReader, EventType, StreamEvent

PUT_FRAME = b'event: put\ndata: {"path":"/","data":{"foo":"bar"}}\n\n'
KEEP_ALIVE_FRAME = b"event: keep-alive\ndata: null\n\n"


class TestStreamEvent:
    """Tests for StreamEvent.from_raw."""

    def test_put(self):
        event = StreamEvent.from_raw("put", '{"path": "/a", "data": 1}')
        assert event.type is EventType.PUT
        assert event.path == "/a"
        assert event.data == 1

    def test_patch(self):
        event = StreamEvent.from_raw("patch", '{"path": "/", "data": {"b": 2}}')
        assert event.type is EventType.PATCH
        assert event.data == {"b": 2}

    def test_put_without_data_line(self):
        with pytest.raises(DecodeError):
            StreamEvent.from_raw("put", None)

    def test_put_with_invalid_json(self):
        with pytest.raises(DecodeError) as exc_info:
            StreamEvent.from_raw("put", "{not json")
        assert exc_info.value.frame == "{not json"

    def test_put_without_path(self):
        with pytest.raises(DecodeError):
            StreamEvent.from_raw("put", '{"data": 1}')

    def test_patch_with_non_object_data(self):
        with pytest.raises(DecodeError):
            StreamEvent.from_raw("patch", '{"path": "/", "data": 5}')

    @pytest.mark.parametrize(
        "event_name,data_str",
        [
            ("put", '{"path": 5, "data": 1}'),
            ("put", '{"path": null, "data": 1}'),
            ("patch", '{"path": ["a"], "data": {"b": 1}}'),
        ],
    )
    def test_non_string_path(self, event_name, data_str):
        with pytest.raises(DecodeError) as exc_info:
            StreamEvent.from_raw(event_name, data_str)
        assert exc_info.value.frame == data_str

    @pytest.mark.parametrize("key", ["", "/", "//"])
    def test_patch_key_naming_no_child(self, key):
        with pytest.raises(DecodeError):
            StreamEvent.from_raw("patch", '{"path": "/a", "data": {"%s": 1, "b": 2}}' % key)

    def test_patch_keys_may_be_paths(self):
        event = StreamEvent.from_raw("patch", '{"path": "/", "data": {"a/b": 1, "/c": 2}}')
        assert event.data == {"a/b": 1, "/c": 2}

    def test_control_events(self):
        assert StreamEvent.from_raw("keep-alive", "null").type is EventType.KEEP_ALIVE
        assert StreamEvent.from_raw("keep-alive", None).reason is None

        cancel = StreamEvent.from_raw("cancel", '"permission denied"')
        assert cancel.type is EventType.CANCEL
        assert cancel.reason == "permission denied"

    def test_auth_revoked_spellings(self):
        assert StreamEvent.from_raw("auth_revoked", "credential is no longer valid").type is EventType.AUTH_REVOKED
        assert StreamEvent.from_raw("auth-revoked", None).type is EventType.AUTH_REVOKED

    def test_unknown_event(self):
        assert StreamEvent.from_raw("rules_debug", "{}") is None

    def test_failure(self):
        error = RuntimeError("boom")
        event = StreamEvent.failure(error)
        assert event.is_error
        assert event.error is error


class TestEventStreamDecoder:
    """Tests for incremental framing."""

    def test_put_then_keep_alive(self):
        decoder = EventStreamDecoder()
        events = decoder.feed(PUT_FRAME + KEEP_ALIVE_FRAME)
        assert [e.type for e in events] == [EventType.PUT, EventType.KEEP_ALIVE]
        assert events[0].data == {"foo": "bar"}

    def test_keep_alive_without_data(self):
        events = EventStreamDecoder().feed(b"event: keep-alive\n\n")
        assert [e.type for e in events] == [EventType.KEEP_ALIVE]

    def test_split_at_every_byte(self):
        stream = PUT_FRAME + KEEP_ALIVE_FRAME
        decoder = EventStreamDecoder()
        events = []
        for i in range(len(stream)):
            events.extend(decoder.feed(stream[i : i + 1]))
        assert [e.type for e in events] == [EventType.PUT, EventType.KEEP_ALIVE]
        assert events[0].data == {"foo": "bar"}

    def test_split_inside_utf8_sequence(self):
        frame = 'event: put\ndata: {"path":"/","data":"héllo ☃"}\n\n'.encode("utf-8")
        snowman = frame.index("☃".encode("utf-8"))
        decoder = EventStreamDecoder()
        assert decoder.feed(frame[: snowman + 1]) == []
        events = decoder.feed(frame[snowman + 1 :])
        assert events[0].data == "héllo ☃"

    def test_partial_frame_is_buffered(self):
        decoder = EventStreamDecoder()
        assert decoder.feed(b"event: put\ndata: {\"path\":") == []
        events = decoder.feed(b'"/x","data":true}\n\n')
        assert events[0].path == "/x"

    def test_crlf_line_endings(self):
        frame = b'event: put\r\ndata: {"path":"/","data":1}\r\n\r\n'
        decoder = EventStreamDecoder()
        # CR and LF arriving in different chunks
        events = decoder.feed(frame[:-1]) + decoder.feed(frame[-1:])
        assert [e.type for e in events] == [EventType.PUT]

    def test_comments_and_unknown_fields_ignored(self):
        stream = b": ping\nid: 7\nretry: 100\nevent: put\ndata: {\"path\":\"/\",\"data\":0}\n\n"
        events = EventStreamDecoder().feed(stream)
        assert len(events) == 1
        assert events[0].data == 0

    def test_multi_line_data(self):
        stream = b'event: put\ndata: {"path": "/",\ndata: "data": [1, 2]}\n\n'
        events = EventStreamDecoder().feed(stream)
        assert events[0].data == [1, 2]

    def test_unknown_event_skipped(self):
        stream = b"event: something-new\ndata: {}\n\n" + PUT_FRAME
        events = EventStreamDecoder().feed(stream)
        assert [e.type for e in events] == [EventType.PUT]

    def test_malformed_payload(self):
        with pytest.raises(DecodeError):
            EventStreamDecoder().feed(b"event: put\ndata: nope\n\n")

    def test_well_formed_json_with_bad_path(self):
        with pytest.raises(DecodeError):
            EventStreamDecoder().feed(b'event: put\ndata: {"path":5,"data":1}\n\n')


class TestEventStreamReader:
    """Tests for the one-shot event iterator."""

    def test_ends_with_chunks(self):
        reader = EventStreamReader(iter([PUT_FRAME, KEEP_ALIVE_FRAME]))
        assert [e.type for e in reader] == [EventType.PUT, EventType.KEEP_ALIVE]

    def test_ends_after_cancel(self):
        chunks = [PUT_FRAME + b"event: cancel\ndata: null\n\n" + PUT_FRAME]
        events = list(EventStreamReader(chunks))
        assert [e.type for e in events] == [EventType.PUT, EventType.CANCEL]

    def test_ends_after_auth_revoked(self):
        def chunks():
            yield b"event: auth_revoked\ndata: credential is no longer valid\n\n"
            raise AssertionError("reader kept reading after auth_revoked")

        events = list(EventStreamReader(chunks()))
        assert events[0].type is EventType.AUTH_REVOKED
        assert events[0].reason == "credential is no longer valid"

    def test_decode_error_ends_sequence(self):
        reader = iter(EventStreamReader([PUT_FRAME, b"event: patch\n\n", PUT_FRAME]))
        assert next(reader).type is EventType.PUT
        with pytest.raises(DecodeError):
            next(reader)

    def test_not_restartable(self):
        reader = EventStreamReader([PUT_FRAME])
        list(reader)
        with pytest.raises(RuntimeError):
            iter(reader)
