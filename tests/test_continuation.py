"""Tests for gatekeep.continuation module."""

from __future__ import annotations

import pytest

from gatekeep.continuation import (
    MAX_REFERENCE_LENGTH,
    coerce_int,
    decode,
    encode,
    split_reference,
)
from gatekeep.errors import ContinuationError


class TestEncode:
    """Tests for encode."""

    def test_simple_reference(self) -> None:
        assert encode("poll-vote", ["pollId"], ["42"]) == "poll-vote:42"

    def test_no_arguments(self) -> None:
        assert encode("poll#close", [], []) == "poll#close"

    def test_values_are_stringified(self) -> None:
        assert encode("poll#vote", ["poll_id", "page"], [42, 3]) == "poll#vote:42:3"

    def test_delimiter_is_escaped(self) -> None:
        reference = encode("note#show", ["text"], ["a:b%c"])
        assert reference == "note#show:a%3Ab%25c"

    def test_arity_mismatch(self) -> None:
        with pytest.raises(ContinuationError, match="expects 2"):
            encode("poll#vote", ["a", "b"], ["1"])

    def test_empty_name(self) -> None:
        with pytest.raises(ContinuationError):
            encode("", [], [])

    def test_too_long_is_rejected_not_truncated(self) -> None:
        with pytest.raises(ContinuationError, match="limit"):
            encode("poll#vote", ["text"], ["x" * MAX_REFERENCE_LENGTH])

    def test_exact_limit_is_accepted(self) -> None:
        name = "poll#vote"
        value = "x" * (MAX_REFERENCE_LENGTH - len(name) - 1)
        assert len(encode(name, ["text"], [value])) == MAX_REFERENCE_LENGTH


class TestDecode:
    """Tests for decode and split_reference."""

    def test_round_trip(self) -> None:
        reference = encode("poll-vote", ["pollId"], ["42"])
        assert decode(reference, ["pollId"]) == ("poll-vote", {"pollId": "42"})

    def test_round_trip_with_escaped_values(self) -> None:
        values = ["a:b", "100%", "", "::"]
        names = ["w", "x", "y", "z"]
        reference = encode("note#show", names, values)
        _, args = decode(reference, names)
        assert [args[name] for name in names] == values

    def test_split_without_names(self) -> None:
        assert split_reference("poll#vote:7:x") == ("poll#vote", ("7", "x"))

    @pytest.mark.parametrize("reference", ["a:x%3ay", "a:x%3a", "a:100%25%3a"])
    def test_lowercase_escape_rejected(self, reference: str) -> None:
        with pytest.raises(ContinuationError, match="escape"):
            split_reference(reference)

    def test_arity_mismatch(self) -> None:
        with pytest.raises(ContinuationError, match="expected 2"):
            decode("poll#vote:1", ["a", "b"])

    @pytest.mark.parametrize(
        "reference",
        ["", ":42", "poll#vote:%zz", "poll#vote:50%", "x" * (MAX_REFERENCE_LENGTH + 1)],
    )
    def test_malformed(self, reference: str) -> None:
        with pytest.raises(ContinuationError):
            split_reference(reference)


class TestCoerceInt:
    """Tests for coerce_int."""

    def test_parses_int(self) -> None:
        assert coerce_int("42") == 42

    def test_none(self) -> None:
        assert coerce_int(None) is None

    def test_garbage(self) -> None:
        assert coerce_int("forty-two") is None
