"""Unit tests for media stream and backend event parsing."""
import json
import pytest

from inspection_agent.services.call_session import events


class TestMediaEvents:
    """Test parsing of telephony media stream messages."""

    def test_start_event(self):
        """Test that the start event yields stream id and caller number."""
        raw = json.dumps({
            "event": "start",
            "start": {
                "streamSid": "MZ-1",
                "callSid": "CA-1",
                "customParameters": {"phone": "+15550001111"},
            },
        })

        event = events.parse_media_event(raw)

        assert isinstance(event, events.StreamStarted)
        assert event.stream_sid == "MZ-1"
        assert event.call_sid == "CA-1"
        assert event.caller_identity == "+15550001111"

    def test_start_event_without_phone(self):
        raw = json.dumps({"event": "start", "start": {"streamSid": "MZ-1"}})

        event = events.parse_media_event(raw)

        assert event.caller_identity is None

    def test_start_event_without_stream_sid(self):
        """Test that a start event missing its stream id is malformed."""
        with pytest.raises(events.ProtocolError):
            events.parse_media_event(json.dumps({"event": "start", "start": {}}))

    def test_media_event(self):
        raw = json.dumps({"event": "media", "media": {"payload": "AAAA", "track": "inbound"}})

        event = events.parse_media_event(raw)

        assert isinstance(event, events.MediaFrame)
        assert event.payload == "AAAA"

    def test_media_event_without_payload(self):
        with pytest.raises(events.ProtocolError):
            events.parse_media_event(json.dumps({"event": "media", "media": {}}))

    def test_stop_event(self):
        event = events.parse_media_event(json.dumps({"event": "stop", "streamSid": "MZ-1"}))

        assert isinstance(event, events.StreamStopped)
        assert event.stream_sid == "MZ-1"

    def test_unknown_event(self):
        """Test that events outside the vocabulary are tolerated."""
        event = events.parse_media_event(json.dumps({"event": "mark", "mark": {"name": "x"}}))

        assert isinstance(event, events.UnknownMediaEvent)
        assert event.event == "mark"

    @pytest.mark.parametrize("raw", ["not json", "[1, 2]", "", "null"])
    def test_malformed_json(self, raw):
        with pytest.raises(events.ProtocolError):
            events.parse_media_event(raw)


class TestBackendEvents:
    """Test parsing of realtime backend messages."""

    def test_audio_delta(self):
        event = events.parse_backend_event(json.dumps({"type": "response.audio.delta", "delta": "UklG"}))

        assert isinstance(event, events.AudioDelta)
        assert event.delta == "UklG"

    def test_speaking_boundaries(self):
        assert isinstance(
            events.parse_backend_event(json.dumps({"type": "response.audio.start"})), events.AudioStarted
        )
        assert isinstance(
            events.parse_backend_event(json.dumps({"type": "response.audio.done"})), events.AudioDone
        )

    def test_function_call(self):
        """Test that a completed tool call keeps its raw argument text."""
        raw = json.dumps({
            "type": "response.function_call_arguments.done",
            "call_id": "call_1",
            "name": "get_equipment_info",
            "arguments": '{"equipment_id": "SCAFF-001"}',
        })

        event = events.parse_backend_event(raw)

        assert isinstance(event, events.FunctionCallRequested)
        assert event.call_id == "call_1"
        assert event.name == "get_equipment_info"
        assert json.loads(event.arguments) == {"equipment_id": "SCAFF-001"}

    def test_function_call_missing_name(self):
        raw = json.dumps({"type": "response.function_call_arguments.done", "call_id": "call_1"})

        with pytest.raises(events.ProtocolError):
            events.parse_backend_event(raw)

    def test_session_events(self):
        assert isinstance(
            events.parse_backend_event(json.dumps({"type": "session.created", "session": {"id": "s"}})),
            events.SessionCreated,
        )
        assert isinstance(
            events.parse_backend_event(json.dumps({"type": "session.updated"})), events.SessionUpdated
        )

    def test_error_event(self):
        event = events.parse_backend_event(
            json.dumps({"type": "error", "error": {"message": "bad", "code": "invalid_value"}})
        )

        assert isinstance(event, events.BackendError)
        assert event.error["code"] == "invalid_value"

    def test_unknown_event(self):
        event = events.parse_backend_event(json.dumps({"type": "response.text.delta", "delta": "hi"}))

        assert isinstance(event, events.UnknownBackendEvent)
        assert event.type == "response.text.delta"

    def test_bytes_message(self):
        event = events.parse_backend_event(b'{"type": "response.audio.done"}')

        assert isinstance(event, events.AudioDone)


class TestOutboundEvents:
    """Test outbound message shapes."""

    def test_session_update_with_tools(self):
        tools = [{"type": "function", "name": "end_call", "description": "", "parameters": {}}]

        message = events.session_update(
            instructions="Be brief",
            voice="alloy",
            audio_format="g711_ulaw",
            turn_detection={"type": "server_vad"},
            tools=tools,
            temperature=0.8,
        )

        assert message["type"] == "session.update"
        session = message["session"]
        assert session["modalities"] == ["text", "audio"]
        assert session["tools"] == tools
        assert session["tool_choice"] == "auto"

    def test_session_update_without_tools(self):
        message = events.session_update("x", "alloy", "g711_ulaw", {"type": "server_vad"}, [], 0.8)

        assert "tools" not in message["session"]
        assert "tool_choice" not in message["session"]

    def test_function_call_output_is_serialized(self):
        message = events.function_call_output("call_1", {"success": True, "count": 2})

        assert message["item"]["type"] == "function_call_output"
        assert message["item"]["call_id"] == "call_1"
        assert json.loads(message["item"]["output"]) == {"success": True, "count": 2}

    def test_user_message(self):
        message = events.user_message("Hello")

        assert message["item"]["role"] == "user"
        assert message["item"]["content"] == [{"type": "input_text", "text": "Hello"}]

    def test_media_messages(self):
        assert events.outbound_media("MZ-1", "AAAA") == {
            "event": "media",
            "streamSid": "MZ-1",
            "media": {"payload": "AAAA"},
        }
        assert events.clear_stream("MZ-1") == {"event": "clear", "streamSid": "MZ-1"}
