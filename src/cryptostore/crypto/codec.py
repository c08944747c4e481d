"""
Mnemonic Phrase Codec

Maps a byte string to a sequence of words and back. The payload is framed
as 0x01 || data || CRC32(data), read as a big-endian integer and written
out in base 2048, most significant word first. The leading marker byte
keeps leading zero bytes of data intact so the mapping is byte exact.

Words come from the BIP-39 English wordlist shipped with `mnemonic`, but
this is not BIP-39: the framing above is the only format understood here.
"""

import zlib
from abc import ABC, abstractmethod
from typing import Dict, List, Optional, Sequence

from mnemonic import Mnemonic

from ..errors import InvalidPhrase

WORDLIST_SIZE = 2048
MARKER = 0x01
CHECKSUM_SIZE = 4


class Codec(ABC):
    """Bidirectional mapping between bytes and words."""

    @abstractmethod
    def bytes_to_words(self, data: bytes) -> List[str]:
        pass

    @abstractmethod
    def words_to_bytes(self, words: Sequence[str]) -> bytes:
        pass


class WordCodec(Codec):
    """Base-2048 word codec with a CRC32 checksum."""

    def __init__(self, wordlist: Optional[Sequence[str]] = None):
        words = list(wordlist) if wordlist is not None else Mnemonic("english").wordlist
        if len(words) != WORDLIST_SIZE:
            raise ValueError(f"Wordlist must contain {WORDLIST_SIZE} words, got {len(words)}")
        self._words: List[str] = words
        self._index: Dict[str, int] = {word: i for i, word in enumerate(words)}
        if len(self._index) != WORDLIST_SIZE:
            raise ValueError("Wordlist contains duplicate words")

    def bytes_to_words(self, data: bytes) -> List[str]:
        checksum = zlib.crc32(bytes(data)).to_bytes(CHECKSUM_SIZE, 'big')
        framed = bytearray([MARKER]) + bytearray(data) + bytearray(checksum)
        value = int.from_bytes(framed, 'big')

        digits = []
        while value:
            value, digit = divmod(value, WORDLIST_SIZE)
            digits.append(digit)
        return [self._words[d] for d in reversed(digits)]

    def words_to_bytes(self, words: Sequence[str]) -> bytes:
        if not words:
            raise InvalidPhrase("Phrase is empty")

        value = 0
        for position, word in enumerate(words):
            index = self._index.get(word)
            if index is None:
                raise InvalidPhrase(f"Unknown word at position {position + 1}")
            if position == 0 and index == 0:
                raise InvalidPhrase("Phrase has a leading padding word")
            value = value * WORDLIST_SIZE + index

        framed = value.to_bytes((value.bit_length() + 7) // 8, 'big')
        if len(framed) < 1 + CHECKSUM_SIZE or framed[0] != MARKER:
            raise InvalidPhrase("Phrase is not a valid encoding")

        data, checksum = framed[1:-CHECKSUM_SIZE], framed[-CHECKSUM_SIZE:]
        if zlib.crc32(data).to_bytes(CHECKSUM_SIZE, 'big') != checksum:
            raise InvalidPhrase("Phrase checksum mismatch")
        return data


def join_phrase(words: Sequence[str]) -> str:
    """Render words as a phrase: single ASCII spaces, no surrounding whitespace."""
    return " ".join(words)


def split_phrase(phrase: str) -> List[str]:
    """
    Split a phrase into words.

    Surrounding whitespace is trimmed, but internal runs of spaces are kept
    as empty words so that they fail decoding.
    """
    return phrase.strip().split(" ")
