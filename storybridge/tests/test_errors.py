"""Tests for the connector's error types."""
from storybridge.errors import MAX_BODY_CHARS, InvalidCredentialError, UnknownFieldError, UpstreamError


class TestUpstreamErrorDetails:
    def test_status_and_body(self):
        err = UpstreamError(503, "maintenance window")
        assert err.details == "Upstream request failed (503): maintenance window"
        assert str(err) == err.details

    def test_no_response(self):
        assert "(no response)" in UpstreamError(None, "timed out").details

    def test_long_body_truncated(self):
        err = UpstreamError(500, "x" * (MAX_BODY_CHARS + 100))
        assert err.details.endswith("x" * MAX_BODY_CHARS + "...")
        assert len(err.body) == MAX_BODY_CHARS + 100


class TestRedaction:
    def test_secret_removed_from_body_and_url(self):
        err = UpstreamError(500, "bad token sk-live-123", "https://x.test/?t=sk-live-123")
        scrubbed = err.redacted("sk-live-123")
        assert "sk-live-123" not in scrubbed.details
        assert "sk-live-123" not in scrubbed.url
        assert scrubbed.body == "bad token ***"
        assert scrubbed.status_code == 500

    def test_short_secret_leaves_text_alone(self):
        err = UpstreamError(503, "maintenance window")
        assert err.redacted("a").details == "Upstream request failed (503): maintenance window"
        assert err.redacted("main").body == "maintenance window"

    def test_empty_secret(self):
        err = UpstreamError(503, "maintenance window")
        assert err.redacted("").body == "maintenance window"
        assert err.redacted(None).body == "maintenance window"


class TestOtherErrors:
    def test_unknown_fields_listed(self):
        err = UnknownFieldError(["owner", "epic"])
        assert err.field_ids == ["owner", "epic"]
        assert "owner, epic" in str(err)

    def test_invalid_credential_message(self):
        assert str(InvalidCredentialError()) == "Invalid API token"
        assert "401" in str(InvalidCredentialError(401))
