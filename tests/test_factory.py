"""Tests for the TransportFactory class."""

import unittest

from watchtask.factory import TransportFactory, default_transport
from watchtask.transport import CurlTransport, RequestsTransport


class TestTransportFactory(unittest.TestCase):
    """Verify that the factory creates the correct transport type."""

    def setUp(self):
        """Set up shared factory instance."""
        self.factory = TransportFactory()

    def test_creates_requests_transport(self):
        """kind 'requests' should produce a RequestsTransport instance."""
        self.assertIsInstance(self.factory.create("requests"), RequestsTransport)

    def test_creates_curl_transport(self):
        """kind 'curl' should produce a CurlTransport instance."""
        self.assertIsInstance(self.factory.create("curl"), CurlTransport)

    def test_requests_transport_is_cached(self):
        self.assertIs(self.factory.create("requests"), self.factory.create("requests"))

    def test_curl_transport_not_cached_by_default(self):
        self.assertIsNot(self.factory.create("curl"), self.factory.create("curl"))

    def test_curl_transport_cached_when_enabled(self):
        factory = TransportFactory(cache_curl=True)
        self.assertIs(factory.create("curl"), factory.create("curl"))

    def test_unknown_kind_raises_error(self):
        """An unrecognized kind should raise ValueError."""
        with self.assertRaises(ValueError) as ctx:
            self.factory.create("unknown")
        self.assertIn("unknown", str(ctx.exception))

    def test_default_transport_is_shared(self):
        self.assertIs(default_transport(), default_transport())


if __name__ == "__main__":
    unittest.main()
