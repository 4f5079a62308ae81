"""
Client Tests

Tests RelayChatClient against a live relay server.
"""

import queue
import threading
import unittest
from unittest.mock import patch
from ..server import RelayChatServer
from ..client import RelayChatClient
from .test_integration import wait_for


class TestRelayChatClient(unittest.TestCase):
    """End-to-end tests for the client driver"""

    @classmethod
    def setUpClass(cls):
        """Start server in a separate thread"""
        cls.server = RelayChatServer(('localhost', 0))
        cls.server_thread = threading.Thread(target=cls.server.serve_forever)
        cls.server_thread.daemon = True
        cls.server_thread.start()
        cls.host, cls.port = cls.server.server_address

    @classmethod
    def tearDownClass(cls):
        cls.server.shutdown()
        cls.server.server_close()
        cls.server_thread.join(timeout=2)

    def setUp(self):
        self.clients = []

    def tearDown(self):
        for client in self.clients:
            client.disconnect()
        wait_for(lambda: len(self.server.registry) == 0)

    def make_client(self, username):
        """Create a client that queues whatever it receives"""
        inbox = queue.Queue()
        client = RelayChatClient(
            self.host, self.port, username,
            on_message=lambda message: inbox.put(message),
            on_error=lambda error: inbox.put(error),
        )
        self.clients.append(client)
        return client, inbox

    def test_connect(self):
        alice, _ = self.make_client("alice")
        self.assertTrue(alice.connect())
        self.assertTrue(alice.connected)
        self.assertIn("alice", self.server.registry)

    def test_connect_duplicate_name(self):
        first, _ = self.make_client("alice")
        second, _ = self.make_client("alice")
        self.assertTrue(first.connect())

        self.assertFalse(second.connect())
        self.assertFalse(second.connected)
        self.assertEqual(second.last_error.code, "AlreadyRegistered")

    def test_connect_twice_keeps_session(self):
        """A second connect reuses the open session instead of opening another"""
        alice, _ = self.make_client("alice")
        self.assertTrue(alice.connect())
        connection = alice.connection
        receiver = alice.receiver_thread

        with self.assertLogs(level="WARNING"):
            self.assertTrue(alice.connect())
            self.assertTrue(alice.connect("alice"))
        self.assertIs(alice.connection, connection)
        self.assertIs(alice.receiver_thread, receiver)
        self.assertEqual(self.server.registry.users(), ["alice"])

        with self.assertRaises(ValueError):
            alice.connect("bob")
        self.assertEqual(alice.username, "alice")
        self.assertTrue(alice.connected)

    def test_connect_refused(self):
        client = RelayChatClient("localhost", 1, "alice")
        self.assertFalse(client.connect())

    def test_connect_requires_username(self):
        client = RelayChatClient(self.host, self.port)
        with self.assertRaises(ValueError):
            client.connect()

    def test_send_and_receive(self):
        """Messages flow both ways between two clients"""
        alice, alice_inbox = self.make_client("alice")
        bob, bob_inbox = self.make_client("bob")
        self.assertTrue(alice.connect())
        self.assertTrue(bob.connect())

        self.assertTrue(alice.send_message("bob", "hello"))
        message = bob_inbox.get(timeout=2)
        self.assertEqual(message.sender, "alice")
        self.assertEqual(message.receiver, "bob")
        self.assertEqual(message.message, "hello")

        self.assertTrue(bob.send_message("alice", "hi | there"))
        self.assertEqual(alice_inbox.get(timeout=2).message, "hi | there")

    def test_unknown_recipient_reported(self):
        alice, alice_inbox = self.make_client("alice")
        self.assertTrue(alice.connect())

        self.assertTrue(alice.send_message("carol", "hi"))
        error = alice_inbox.get(timeout=2)
        self.assertEqual(error.code, "RecipientNotFound")
        self.assertEqual(alice.last_error, error)

    def test_send_unframeable_message(self):
        alice, _ = self.make_client("alice")
        self.assertTrue(alice.connect())
        self.assertFalse(alice.send_message("bob", "two\nlines"))
        self.assertTrue(alice.connected)

    def test_send_when_not_connected(self):
        alice, _ = self.make_client("alice")
        self.assertFalse(alice.send_message("bob", "hello"))

    def test_disconnect_frees_name(self):
        alice, _ = self.make_client("alice")
        self.assertTrue(alice.connect())
        alice.disconnect()

        self.assertFalse(alice.connected)
        self.assertTrue(wait_for(lambda: "alice" not in self.server.registry))
        again, _ = self.make_client("alice")
        self.assertTrue(again.connect())

    def test_handle_input(self):
        """Prompt lines map to messages and commands"""
        alice, _ = self.make_client("alice")
        bob, bob_inbox = self.make_client("bob")
        self.assertTrue(alice.connect())
        self.assertTrue(bob.connect())

        with patch("builtins.print") as mock_print:
            self.assertTrue(alice.handle_input("@bob good morning"))
            self.assertTrue(alice.handle_input("/help"))
            self.assertTrue(alice.handle_input("no recipient"))
            self.assertTrue(alice.handle_input(""))
            self.assertFalse(alice.handle_input("/quit"))
        self.assertEqual(mock_print.call_count, 2)

        self.assertEqual(bob_inbox.get(timeout=2).message, "good morning")

    def test_main_loop(self):
        """main_loop sends typed messages and stops on /quit"""
        alice, _ = self.make_client("alice")
        bob, bob_inbox = self.make_client("bob")
        self.assertTrue(alice.connect())
        self.assertTrue(bob.connect())

        lines = iter(["@bob first", "@bob second", "/quit"])
        with patch("builtins.input", side_effect=lambda prompt="": next(lines)), \
                patch("builtins.print"):
            alice.main_loop()

        self.assertEqual(bob_inbox.get(timeout=2).message, "first")
        self.assertEqual(bob_inbox.get(timeout=2).message, "second")

    def test_main_loop_stops_on_eof(self):
        alice, _ = self.make_client("alice")
        self.assertTrue(alice.connect())

        with patch("builtins.input", side_effect=EOFError), patch("builtins.print"):
            alice.main_loop()


if __name__ == '__main__':
    unittest.main()
