"""Tests for VAPID key decoding."""

import base64

import pytest

from push_coordinator.errors import MalformedKey
from push_coordinator.models.enums import ErrorKind
from push_coordinator.services.key_codec import decode, encode
from tests.conftest import VAPID_PUBLIC_KEY


class TestDecode:
    """Tests for decode."""

    def test_decodes_vapid_key(self):
        """A 65-byte uncompressed P-256 point decodes to 65 bytes."""
        raw = decode(VAPID_PUBLIC_KEY)
        assert len(raw) == 65
        assert raw[0] == 4
        assert raw[1:] == bytes(range(64))

    def test_is_deterministic(self):
        """Repeated decoding gives identical bytes."""
        assert decode(VAPID_PUBLIC_KEY) == decode(VAPID_PUBLIC_KEY)

    @pytest.mark.parametrize("raw", [b"\xfb\xff", b"\xfb\xff\xbf", bytes(range(256))])
    def test_maps_urlsafe_alphabet(self, raw):
        """'-' and '_' decode like '+' and '/'."""
        key = base64.urlsafe_b64encode(raw).decode().rstrip("=")
        assert "-" in key or "_" in key
        assert decode(key) == raw

    @pytest.mark.parametrize("length", [1, 2, 3, 16, 31, 32, 65])
    def test_byte_length_matches_unpadded_input(self, length):
        """The decoded length is the one implied by the unpadded input."""
        key = encode(bytes(length))
        assert len(decode(key)) == len(key) * 3 // 4

    def test_accepts_existing_padding(self):
        assert decode("AAE=") == b"\x00\x01"

    @pytest.mark.parametrize("key", ["abc!def", "abc+def", "abc/def", "ab cd", "abc\n"])
    def test_rejects_characters_outside_alphabet(self, key):
        """Invalid characters fail with MalformedKey."""
        with pytest.raises(MalformedKey) as exc_info:
            decode(key)
        assert exc_info.value.kind == ErrorKind.MALFORMED_KEY

    def test_rejects_empty_key(self):
        with pytest.raises(MalformedKey):
            decode("")

    def test_rejects_impossible_length(self):
        """A length of 4n+1 cannot be valid base64."""
        with pytest.raises(MalformedKey):
            decode("abcde")

    def test_rejects_non_string(self):
        with pytest.raises(MalformedKey):
            decode(None)


class TestEncode:
    """Tests for encode."""

    def test_produces_unpadded_urlsafe(self):
        key = encode(b"\xfb\xff")
        assert key == "-_8"
        assert "=" not in key
