"""Unit tests for webhook signature verification."""

import hashlib
import hmac

from ci_server.core.security import compute_signature, is_valid_payload

PAYLOAD = '{"test":"payload"}'
SECRET = "it-is-a-secret"


def _sign(payload: bytes, secret: str) -> str:
    digest = hmac.new(
        key=secret.encode("utf-8"),
        msg=payload,
        digestmod=hashlib.sha256,
    ).hexdigest()
    return f"sha256={digest}"


class TestIsValidPayload:
    """Tests for GitHub webhook signature verification."""

    def test_valid_signature_passes(self) -> None:
        signature = _sign(PAYLOAD.encode(), SECRET)

        assert is_valid_payload(PAYLOAD, SECRET, signature) is True
        assert is_valid_payload(PAYLOAD.encode(), SECRET, signature) is True

    def test_missing_signature_fails(self) -> None:
        assert is_valid_payload(PAYLOAD, SECRET, None) is False

    def test_single_character_payload_mutation_fails(self) -> None:
        signature = _sign(PAYLOAD.encode(), SECRET)

        for i in range(len(PAYLOAD)):
            mutated = PAYLOAD[:i] + ("X" if PAYLOAD[i] != "X" else "Y") + PAYLOAD[i + 1:]
            assert is_valid_payload(mutated, SECRET, signature) is False

    def test_wrong_secret_fails(self) -> None:
        signature = _sign(PAYLOAD.encode(), SECRET)

        assert is_valid_payload(PAYLOAD, SECRET + "x", signature) is False

    def test_missing_prefix_fails(self) -> None:
        digest = _sign(PAYLOAD.encode(), SECRET).removeprefix("sha256=")

        assert is_valid_payload(PAYLOAD, SECRET, digest) is False

    def test_comparison_is_case_sensitive(self) -> None:
        signature = _sign(PAYLOAD.encode(), SECRET)

        assert is_valid_payload(PAYLOAD, SECRET, signature.upper()) is False

    def test_non_ascii_signature_fails_closed(self) -> None:
        assert is_valid_payload(PAYLOAD, SECRET, "sha256=é\ud800") is False

    def test_verification_is_deterministic(self) -> None:
        signature = _sign(PAYLOAD.encode(), SECRET)

        results = {is_valid_payload(PAYLOAD, SECRET, signature) for _ in range(3)}
        assert results == {True}


def test_compute_signature_matches_github_format() -> None:
    signature = compute_signature(PAYLOAD, SECRET)

    assert signature.startswith("sha256=")
    assert len(signature) == len("sha256=") + 64
    assert signature == signature.lower()
    assert signature == _sign(PAYLOAD.encode(), SECRET)
