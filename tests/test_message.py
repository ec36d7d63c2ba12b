"""
Tests for the message envelope
"""
import unittest

from lanspot import codec
from lanspot.codec import DecodeError
from lanspot.message import CommandType, IdCounter, Message, create_message
from lanspot.types import AlivePayload, Channel, Identity, PointKind, SearchRequest


class TestMessage(unittest.TestCase):
    """Test cases for envelope creation, serialization, and parsing."""

    def setUp(self):
        """Set up test environment."""
        self.ids = IdCounter(41)
        self.sender = {"uuid": "u-1", "type": "host", "port": 1902, "name": "Point"}

    def test_round_trip(self):
        """Test that a parsed envelope equals the one that was sent."""
        message = create_message(
            CommandType.ALIVE,
            {"from": self.sender, "channels": [{"id": 7, "name": "x"}]},
            self.ids,
        )
        parsed = Message.from_bytes(message.to_bytes())

        self.assertEqual(parsed.id, 41)
        self.assertEqual(parsed.type, "alive")
        self.assertEqual(parsed.command, CommandType.ALIVE)
        self.assertFalse(parsed.is_response)
        self.assertEqual(parsed.fields, message.fields)

    def test_response_flag_written_only_when_set(self):
        """Test that only responses carry the isr key."""
        request = create_message(CommandType.SEARCH, {"type": "*"}, self.ids)
        response = create_message(CommandType.SEARCH, {"code": 0}, self.ids, is_response=True)

        self.assertNotIn(b"isr", request.to_bytes())
        self.assertIn(b"s3:isrb1", response.to_bytes())
        self.assertTrue(Message.from_bytes(response.to_bytes()).is_response)

    def test_missing_keys_keep_defaults(self):
        """Test parsing an envelope that names no type or fields."""
        data = codec.encode({"id": 5})

        message = Message.from_bytes(data)
        self.assertEqual(message.id, 5)
        self.assertEqual(message.type, "data")
        self.assertEqual(message.fields, {})

        message = Message.from_bytes(data, type=CommandType.SEARCH)
        self.assertEqual(message.type, "search")

    def test_unknown_type_is_preserved(self):
        data = create_message("ping", {}, self.ids).to_bytes()
        message = Message.from_bytes(data)

        self.assertEqual(message.type, "ping")
        self.assertIsNone(message.command)

    def test_not_a_mapping(self):
        """Test that a non-mapping top-level value is rejected."""
        for value in ([1, 2], "alive", 3, None):
            with self.subTest(value=value):
                with self.assertRaises(DecodeError):
                    Message.from_bytes(codec.encode(value))

    def test_malformed_fields(self):
        with self.assertRaises(DecodeError):
            Message.from_bytes(codec.encode({"id": 1, "fields": [1, 2]}))

    def test_malformed_buffer(self):
        with self.assertRaises(DecodeError):
            Message.from_bytes(b"d1:s2:id")

    def test_fields_are_copied(self):
        """Test that later changes to the caller's mapping don't leak into the message."""
        fields = {"type": "*"}
        message = create_message(CommandType.SEARCH, fields, self.ids)
        fields["type"] = "host"

        self.assertEqual(message.fields["type"], "*")

    def test_controller_name_resolves_to_wire_value(self):
        """Test that the long controller name maps to PointKind.CONTROLLER."""
        identity = Identity(uuid="u-1", kind="controller")
        request = SearchRequest(from_=identity, target="controller")

        self.assertEqual(identity.kind, PointKind.CONTROLLER)
        self.assertEqual(request.to_wire()["type"], PointKind.CONTROLLER)
        self.assertEqual(request.to_wire()["from"]["type"], "cp")

    def test_create_from_payload_model(self):
        """Test that payload models are converted to their wire keys."""
        payload = AlivePayload(
            from_=Identity(uuid="u-1", name="Point"),
            channels=[Channel(id=7, name="x")],
        )
        message = create_message(CommandType.ALIVE, payload, self.ids)

        self.assertEqual(message.fields["from"]["uuid"], "u-1")
        self.assertEqual(message.fields["from"]["type"], PointKind.HOST)
        self.assertEqual(message.fields["channels"], [{"id": 7, "name": "x"}])

        parsed = Message.from_bytes(message.to_bytes())
        self.assertEqual(parsed.fields["from"]["type"], "host")


class TestIdCounter(unittest.TestCase):
    """Test cases for message id issuing."""

    def test_ids_are_consecutive(self):
        ids = IdCounter(10)
        messages = [create_message(CommandType.ALIVE, {}, ids) for _ in range(3)]

        self.assertEqual([m.id for m in messages], [10, 11, 12])
        self.assertEqual(ids.peek(), 13)

    def test_counters_are_independent(self):
        """Test that two counters don't share state."""
        first = IdCounter(1)
        second = IdCounter(1)
        first.issue()
        first.issue()

        self.assertEqual(second.issue(), 1)
        self.assertEqual(first.issue(), 3)

    def test_random_seed_range(self):
        for _ in range(20):
            self.assertTrue(1 <= IdCounter().peek() <= 100000)


if __name__ == "__main__":
    unittest.main()
