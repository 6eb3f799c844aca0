"""Unit tests for grant/deny override tokens."""

import pytest

from pharmhub_authz.kernel.permissions.errors import InvalidDataError
from pharmhub_authz.kernel.permissions.overrides import (
    DenyOverride,
    GrantOverride,
    deny,
    grant,
    parse_override,
    split_overrides,
    stored_overrides,
)


class TestParseOverride:
    """Tests for decoding stored tokens."""

    def test_plain_name_is_grant(self):
        assert parse_override("APPROVE_PRESCRIPTION") == GrantOverride("APPROVE_PRESCRIPTION")

    def test_dash_prefix_is_deny(self):
        assert parse_override("-APPROVE_PRESCRIPTION") == DenyOverride("APPROVE_PRESCRIPTION")

    def test_only_first_dash_is_the_marker(self):
        assert parse_override("--X") == DenyOverride("-X")

    @pytest.mark.parametrize("token", ["", "-"])
    def test_malformed_tokens_rejected(self, token):
        with pytest.raises(InvalidDataError):
            parse_override(token)

    def test_token_round_trip(self):
        for token in ("auth:login", "-auth:login"):
            assert parse_override(token).token == token


class TestConstructors:
    """Tests for grant() and deny()."""

    def test_grant_and_deny_tokens(self):
        assert grant("VIEW_SALES").token == "VIEW_SALES"
        assert deny("VIEW_SALES").token == "-VIEW_SALES"

    @pytest.mark.parametrize("name", ["", "   ", "-VIEW_SALES"])
    def test_bad_names_rejected(self, name):
        with pytest.raises(InvalidDataError):
            grant(name)
        with pytest.raises(InvalidDataError):
            deny(name)


class TestSplitOverrides:
    def test_split(self):
        granted, denied = split_overrides(["A", "-B", "C", "-A"])

        assert granted == {"A", "C"}
        assert denied == {"B", "A"}

    def test_empty(self):
        assert split_overrides([]) == (frozenset(), frozenset())

    def test_tokens_naming_nothing_are_skipped(self):
        granted, denied = split_overrides(["", "-", "VIEW_SALES", "-APPROVE_PRESCRIPTION"])

        assert granted == {"VIEW_SALES"}
        assert denied == {"APPROVE_PRESCRIPTION"}

    def test_stored_overrides_keep_order(self):
        assert list(stored_overrides(["-A", "-", "B"])) == [DenyOverride("A"), GrantOverride("B")]
