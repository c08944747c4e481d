"""
Tests for the Mnemonic Phrase Codec
"""

import os

import pytest

from cryptostore.crypto.codec import WordCodec, join_phrase, split_phrase
from cryptostore.errors import InvalidPhrase


class TestWordCodec:
    """Test bytes <-> words conversion."""

    @pytest.mark.parametrize("payload", [
        bytes(17),
        b"\xff" * 17,
        b"\x00\x00\x01" + b"\x10" * 13 + b"\x02",
        os.urandom(16) + b"\x01",
        b"",
    ])
    def test_round_trip(self, codec, payload):
        """Decoding an encoded payload returns exactly the same bytes."""
        assert codec.words_to_bytes(codec.bytes_to_words(payload)) == payload

    def test_leading_zero_bytes_preserved(self, codec):
        payload = b"\x00\x00\x00" + b"\x42" * 14

        assert codec.words_to_bytes(codec.bytes_to_words(payload)) == payload

    def test_seventeen_bytes_is_sixteen_words(self, codec):
        words = codec.bytes_to_words(os.urandom(17))

        assert len(words) == 16
        assert all(w == w.lower() for w in words)

    def test_word_order_matters(self, codec):
        payload = os.urandom(16) + b"\x01"
        words = codec.bytes_to_words(payload)
        swapped = [words[1], words[0]] + words[2:]

        if swapped != words:
            with pytest.raises(InvalidPhrase):
                codec.words_to_bytes(swapped)

    def test_checksum_detects_changed_word(self, codec):
        words = codec.bytes_to_words(b"\x11" * 16 + b"\x01")
        wordlist = codec._words
        replacement = wordlist[(wordlist.index(words[-1]) + 1) % len(wordlist)]

        with pytest.raises(InvalidPhrase):
            codec.words_to_bytes(words[:-1] + [replacement])

    def test_unknown_word(self, codec):
        words = codec.bytes_to_words(bytes(17))
        words[3] = "notaword"

        with pytest.raises(InvalidPhrase):
            codec.words_to_bytes(words)

    def test_upper_case_rejected(self, codec):
        words = [w.upper() for w in codec.bytes_to_words(bytes(17))]

        with pytest.raises(InvalidPhrase):
            codec.words_to_bytes(words)

    def test_empty_phrase(self, codec):
        with pytest.raises(InvalidPhrase):
            codec.words_to_bytes([])

    def test_dropped_word(self, codec):
        words = codec.bytes_to_words(os.urandom(16) + b"\x02")

        with pytest.raises(InvalidPhrase):
            codec.words_to_bytes(words[1:])

    def test_wordlist_size_enforced(self):
        with pytest.raises(ValueError):
            WordCodec(["alpha", "beta"])


class TestPhraseText:
    """Test phrase joining and splitting."""

    def test_join_uses_single_spaces(self):
        assert join_phrase(["abandon", "ability", "able"]) == "abandon ability able"

    def test_split_trims_surrounding_whitespace(self):
        assert split_phrase("  abandon ability\n") == ["abandon", "ability"]

    def test_split_keeps_internal_double_space(self):
        assert split_phrase("abandon  ability") == ["abandon", "", "ability"]

    def test_double_space_fails_decoding(self, codec):
        phrase = join_phrase(codec.bytes_to_words(bytes(17)))
        broken = phrase.replace(" ", "  ", 1)

        with pytest.raises(InvalidPhrase):
            codec.words_to_bytes(split_phrase(broken))
