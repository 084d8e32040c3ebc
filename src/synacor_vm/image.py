"""Program image loading for the Synacor VM.

Binary images are sequences of little-endian 16-bit words. Programs can also
be written as text, one token per word:

    set r0 r1   ; comments run to end of line
    out 0x41
    halt

Tokens are decimal or hex numbers, register names (r0-r7, encoded as
32768-32775) and instruction mnemonics (encoded as their opcode). Commas are
treated as whitespace, so "9,32768,32769,4" works as well.
"""

import re
import struct
from pathlib import Path
from typing import List, Union

from .decode import MNEMONICS, REGISTER_BASE
from .state import REGISTER_COUNT, WORD_MAX


def decode_image(data: bytes) -> List[int]:
    """Decode little-endian 16-bit words.

    A trailing odd byte is ignored.
    """
    count = len(data) // 2
    return list(struct.unpack(f"<{count}H", data[: count * 2]))


def encode_image(words: List[int]) -> bytes:
    """Encode words as a little-endian image.

    Raises:
        ValueError: If a word does not fit in 16 bits
    """
    try:
        return struct.pack(f"<{len(words)}H", *words)
    except struct.error as e:
        raise ValueError(f"Cannot encode image: {e}") from e


def load_image(path: Union[str, Path]) -> List[int]:
    """Read and decode a binary image file."""
    return decode_image(Path(path).read_bytes())


def parse_word(token: str) -> int:
    """Parse a single program token.

    Raises:
        ValueError: If the token is not a number, register or mnemonic, or
            the number does not fit in 16 bits
    """
    lowered = token.strip().lower()

    if lowered in MNEMONICS:
        return MNEMONICS[lowered]

    if re.fullmatch(r"r[0-9]", lowered):
        index = int(lowered[1])
        if index >= REGISTER_COUNT:
            raise ValueError(f"Invalid register: {token}")
        return REGISTER_BASE + index

    try:
        value = int(lowered, 0)
    except ValueError:
        raise ValueError(f"Invalid program word: {token!r}") from None

    if not 0 <= value <= WORD_MAX:
        raise ValueError(f"Program word out of 16-bit range: {token}")
    return value


def parse_words(source: str) -> List[int]:
    """Parse a textual program into words.

    Handles:
        - Comments (starting with ; or #)
        - Commas and any whitespace as separators
        - Blank lines
    """
    words = []
    for line in source.split("\n"):
        line = re.sub(r"[;#].*$", "", line)
        for token in line.replace(",", " ").split():
            words.append(parse_word(token))
    return words
