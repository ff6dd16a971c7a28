"""Tests for mask_value format dispatch."""
from __future__ import annotations

import pytest

from aumos_record_security.masking.mask_formats import mask_value, split_into_chunks


class TestFixedFormats:
    def test_short_value(self) -> None:
        assert mask_value("abc", "****") == "***"

    def test_capped_at_eight(self) -> None:
        assert mask_value("a" * 20, "***") == "********"

    def test_none_passes_through(self) -> None:
        assert mask_value(None, "****") is None

    def test_non_string_stringified(self) -> None:
        assert mask_value(123456, "{last2}") == "****56"


class TestDashedFormats:
    def test_card_number_without_dashes(self) -> None:
        assert mask_value("4111111111111234", "****-****-****-{last4}") == "****-****-****-1234"

    def test_value_with_matching_dashes(self) -> None:
        assert mask_value("123-45-6789", "***-**-{last4}") == "***-**-6789"

    def test_reveal_longer_than_chunk(self) -> None:
        assert mask_value("12-34", "**-{last4}") == "**-34"

    def test_missing_chunk_uses_format_width(self) -> None:
        assert mask_value("ab", "***-***-{last2}") == "*-*-"

    @pytest.mark.parametrize(
        "card",
        ["4111111111111234", "5500005555559876", "6011000990139424"],
    )
    def test_last_four_always_revealed(self, card: str) -> None:
        assert mask_value(card, "****-****-****-{last4}").endswith(card[-4:])


class TestRevealFormats:
    def test_last_bare(self) -> None:
        assert mask_value("secret99", "{last2}") == "******99"

    def test_last_embedded(self) -> None:
        assert mask_value("5551234567", "(***) ***-{last4}") != "5551234567"
        assert mask_value("5551234567", "XXX {last4}") == "XXX 4567"

    def test_last_longer_than_value(self) -> None:
        assert mask_value("ab", "{last4}") == "ab"

    def test_last_zero_hides_everything(self) -> None:
        assert mask_value("abc", "{last0}") == "***"

    def test_first_bare(self) -> None:
        assert mask_value("secret", "{first2}") == "se****"

    def test_first_embedded(self) -> None:
        assert mask_value("Johnson", "{first1}. (hidden)") == "J. (hidden)"

    def test_backslash_in_value_is_literal(self) -> None:
        assert mask_value("ab\\1z", "tail {last3}") == "tail \\1z"


class TestEmailAndFallback:
    def test_email(self) -> None:
        assert mask_value("alice@example.com", "***@***.***") == "a***e@e*****e.com"

    def test_short_email_parts_kept(self) -> None:
        assert mask_value("al@ex.io", "***@***") == "al@ex.io"

    def test_email_format_without_at_in_value(self) -> None:
        assert mask_value("alice", "***@***") == "a***e"

    def test_fallback_keeps_ends(self) -> None:
        assert mask_value("secret", "xx") == "s****t"

    def test_fallback_short_value(self) -> None:
        assert mask_value("ab", "xx") == "**"

    def test_deterministic(self) -> None:
        assert mask_value("value", "?") == mask_value("value", "?")


class TestSplitIntoChunks:
    def test_even(self) -> None:
        assert split_into_chunks("abcdefgh", 4) == ["ab", "cd", "ef", "gh"]

    def test_uneven(self) -> None:
        assert split_into_chunks("abcdefg", 3) == ["abc", "def", "g"]

    def test_empty(self) -> None:
        assert split_into_chunks("", 3) == []
