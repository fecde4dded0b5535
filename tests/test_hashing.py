"""Tests for the content fingerprint."""

import hashlib
import unittest

from watchtask.hashing import make_hash


class TestMakeHash(unittest.TestCase):
    """Verify make_hash() covers content-type and body."""

    def test_matches_sha256_of_content_type_and_body(self):
        expected = hashlib.sha256(b"text/html" + b"<p>hi</p>").hexdigest()
        self.assertEqual(make_hash({"content-type": "text/html"}, b"<p>hi</p>"), expected)

    def test_missing_parts_hash_as_empty(self):
        """No content-type and no body should hash the empty string."""
        empty = hashlib.sha256(b"").hexdigest()
        self.assertEqual(make_hash({}, None), empty)
        self.assertEqual(make_hash(None, b""), empty)

    def test_str_body_equals_utf8_bytes(self):
        headers = {"content-type": "application/json"}
        self.assertEqual(make_hash(headers, '{"a": "é"}'), make_hash(headers, '{"a": "é"}'.encode("utf-8")))

    def test_content_type_change_changes_hash(self):
        """The same body served with a different content-type is a change."""
        body = b"{}"
        self.assertNotEqual(
            make_hash({"content-type": "application/json"}, body),
            make_hash({"content-type": "text/plain"}, body),
        )

    def test_hex_encoded_256_bit(self):
        digest = make_hash({"content-type": "text/plain"}, b"x")
        self.assertEqual(len(digest), 64)
        int(digest, 16)


if __name__ == "__main__":
    unittest.main()
