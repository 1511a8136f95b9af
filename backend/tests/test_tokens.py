"""Tests for the signed token codec."""
import base64
import json

import pytest
from jose import jwt

from stagebox.auth.tokens import TokenCodec, TokenType

DAY = 24 * 60 * 60


class FakeClock:
    def __init__(self, now=1_700_000_000.0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


def _segment(data):
    return base64.urlsafe_b64encode(json.dumps(data).encode()).rstrip(b"=").decode()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def codec(clock):
    return TokenCodec("secret-one", clock=clock)


class TestSignVerify:
    """Round trip and tamper checks."""

    def test_verify_returns_signed_payload(self, codec):
        """A fresh token verifies to the payload it was signed with."""
        payload = {"sub": 7, "type": "session"}
        assert codec.verify(codec.sign(payload, 60)) == payload

    def test_token_has_three_segments_and_fixed_header(self, codec):
        token = codec.sign({"sub": 1}, 60)
        assert len(token.split(".")) == 3
        assert jwt.get_unverified_header(token) == {"alg": "HS256", "typ": "JWT"}

    def test_readable_by_standard_jwt_decoder(self, codec):
        """Tokens are plain HS256 JWTs carrying the payload and an integer exp."""
        token = codec.sign({"file": "42_song.mp3", "type": "file"}, 60)
        claims = jwt.get_unverified_claims(token)
        assert claims == {"file": "42_song.mp3", "type": "file", "exp": 1_700_000_060}

    def test_other_secret_rejected(self, codec, clock):
        """A token signed with one secret fails under another."""
        other = TokenCodec("secret-two", clock=clock)
        assert other.verify(codec.sign({"sub": 1}, 60)) is None

    def test_tampered_body_rejected(self, codec):
        header_seg, _, sig = codec.sign({"sub": 1, "type": "session"}, 60).split(".")
        forged = f"{header_seg}.{_segment({'sub': 2, 'type': 'session', 'exp': 9999999999})}.{sig}"
        assert codec.verify(forged) is None

    def test_header_algorithm_not_honored(self, codec):
        """A token signed with the same secret under another algorithm is rejected."""
        token = jwt.encode({"sub": 1, "exp": 9999999999}, "secret-one", algorithm="HS512")
        assert codec.verify(token) is None

    def test_unsigned_token_rejected(self, codec):
        """An alg=none token with an empty signature never verifies."""
        header_seg = _segment({"alg": "none", "typ": "JWT"})
        body_seg = _segment({"sub": 1, "exp": 9999999999})
        assert codec.verify(f"{header_seg}.{body_seg}.") is None

    @pytest.mark.parametrize("token", ["", "abc", "a.b", "a.b.c.d", "..", None, 42])
    def test_malformed_tokens_rejected(self, codec, token):
        assert codec.verify(token) is None

    def test_empty_secret_refused(self):
        with pytest.raises(ValueError):
            TokenCodec("")

    def test_non_positive_ttl_refused(self, codec):
        with pytest.raises(ValueError):
            codec.sign({"sub": 1}, 0)


class TestExpiry:
    """Expiry is checked against the injected clock."""

    def test_one_second_token_expires(self, codec, clock):
        token = codec.sign({"sub": 1}, 1)
        clock.advance(2)
        assert codec.verify(token) is None

    def test_expiry_boundary_is_exclusive(self, codec, clock):
        token = codec.sign({"sub": 1}, 10)
        clock.advance(9)
        assert codec.verify(token) == {"sub": 1}
        clock.advance(1)
        assert codec.verify(token) is None

    def test_file_capability_lifetime(self, codec, clock):
        """A 100-day file capability is valid now and invalid after 101 days."""
        token = codec.sign({"file": "42_song.mp3", "type": "file"}, 100 * DAY)
        assert codec.verify(token) == {"file": "42_song.mp3", "type": "file"}
        clock.advance(101 * DAY)
        assert codec.verify(token) is None

    def test_non_numeric_exp_rejected(self, codec):
        token = jwt.encode({"sub": 1, "exp": "never"}, "secret-one", algorithm="HS256")
        assert codec.verify(token) is None

    def test_token_without_exp_from_same_secret(self, codec):
        """A correctly signed token without exp is accepted as is."""
        token = jwt.encode({"sub": 1, "type": "session"}, "secret-one", algorithm="HS256")
        assert codec.verify(token) == {"sub": 1, "type": "session"}


class TestTypedVerify:
    """Session and file tokens are not interchangeable."""

    def test_file_token_rejected_as_session(self, codec):
        token = codec.sign_file("42_song.mp3", 60)
        assert codec.verify_typed(token, TokenType.SESSION) is None
        assert codec.verify_typed(token, TokenType.FILE) == {"file": "42_song.mp3", "type": "file"}

    def test_session_token_rejected_as_file(self, codec):
        token = codec.sign_session(5, 60)
        assert codec.verify_typed(token, TokenType.FILE) is None
        assert codec.verify_typed(token, TokenType.SESSION) == {"sub": 5, "type": "session"}

    def test_untyped_token_rejected(self, codec):
        token = codec.sign({"sub": 5}, 60)
        assert codec.verify_typed(token, TokenType.SESSION) is None
