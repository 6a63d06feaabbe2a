"""Unit tests for affinity token parsing and issuing."""

import pytest

from skew_protection.routing import AffinityToken, issue_token, parse_token


class TestParseToken:
    def test_token_with_session(self):
        token = parse_token("a1b2c3.9f8e7d6c5b4a3921")
        assert token == AffinityToken(deployment_id="a1b2c3", session_id="9f8e7d6c5b4a3921")

    def test_bare_deployment_id(self):
        token = parse_token("a1b2c3")
        assert token.deployment_id == "a1b2c3"
        assert token.session_id is None

    def test_surrounding_whitespace_ignored(self):
        assert parse_token("  v1.abc ").deployment_id == "v1"

    @pytest.mark.parametrize(
        "raw",
        [None, "", ".abc", "v1.", "v1.has-dash", "bad id.abc", "v1.a.b", "x" * 65],
    )
    def test_malformed_tokens(self, raw):
        assert parse_token(raw) is None


class TestIssueToken:
    def test_issue_token_round_trips(self):
        token = issue_token("v2")
        assert token.deployment_id == "v2"
        assert len(token.session_id) == 16
        assert parse_token(token.encode()) == token

    def test_sessions_are_unique(self):
        assert issue_token("v2").session_id != issue_token("v2").session_id

    def test_encode_bare_token(self):
        assert AffinityToken(deployment_id="v1").encode() == "v1"
