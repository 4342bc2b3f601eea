"""
Encoding detection for uploaded CSV bytes.

Exports from job boards arrive as UTF-8 (with or without a BOM) or in one of
the legacy Windows/ISO code pages. Detection never fails: when nothing
decodes cleanly the bytes are decoded as UTF-8 with replacement characters
and the result carries a warning.
"""
import codecs
import logging
import re
from dataclasses import dataclass
from typing import Optional, Sequence

from .errors import EncodingError

logger = logging.getLogger(__name__)

UTF8 = "utf-8"
UTF8_SIG = "utf-8-sig"

# Tried in order after strict UTF-8 fails.
LEGACY_ENCODINGS: Sequence[str] = ("windows-1252", "windows-1254", "iso-8859-9", "iso-8859-1")

# C0/C1 control characters other than tab, LF and CR, plus U+FFFD.
_INVALID_CHARS = re.compile("[\x00-\x08\x0b\x0c\x0e-\x1f\x7f-\x9f\ufffd]")

# Character pairs left behind when UTF-8 text was decoded as Windows-1252.
_MOJIBAKE_MARKERS = re.compile("[ÃÂÄÅ][\x80-\xbfŒ-™]|â€")


@dataclass
class EncodingResult:
    encoding: str
    text: str
    lossy: bool = False
    warning: Optional[str] = None


def decode_strict(content: bytes, encoding: str) -> str:
    """
    Decode ``content`` with ``encoding`` and reject output that contains
    replacement or control characters.

    Raises:
        EncodingError: if the bytes are invalid for the encoding or the text is not clean
    """
    try:
        text = content.decode(encoding)
    except UnicodeDecodeError as exc:
        raise EncodingError(encoding, f"invalid byte 0x{content[exc.start]:02x} at offset {exc.start}") from exc

    bad = _INVALID_CHARS.search(text)
    if bad:
        raise EncodingError(encoding, f"decoded to control character U+{ord(bad.group(0)):04X}")
    return text


def detect_encoding(content: bytes, candidates: Sequence[str] = LEGACY_ENCODINGS) -> EncodingResult:
    """
    Determine the text encoding of ``content`` and return the decoded text.

    Args:
        content: Raw file bytes
        candidates: Legacy single-byte encodings tried after UTF-8, in priority order

    Returns:
        EncodingResult with the chosen label and decoded text
    """
    if content.startswith(codecs.BOM_UTF8):
        try:
            return EncodingResult(encoding=UTF8_SIG, text=decode_strict(content, UTF8_SIG))
        except EncodingError as exc:
            logger.debug("BOM present but strict decode failed: %s", exc)

    try:
        return EncodingResult(encoding=UTF8, text=decode_strict(content, UTF8))
    except EncodingError as exc:
        logger.info("File is not clean UTF-8 (%s); trying legacy encodings", exc.reason)

    for candidate in candidates:
        try:
            text = decode_strict(content, candidate)
        except EncodingError as exc:
            logger.debug("%s", exc)
            continue
        logger.info("Decoded upload as %s", candidate)
        return EncodingResult(encoding=candidate, text=text)

    warning = (
        "Could not determine the file encoding; decoded as UTF-8 with replacement "
        "characters. Some characters may display incorrectly."
    )
    logger.warning(warning)
    return EncodingResult(
        encoding=UTF8,
        text=content.decode(UTF8, errors="replace"),
        lossy=True,
        warning=warning,
    )


def fix_mojibake(value: str) -> str:
    """
    Repair text that was UTF-8 but got decoded as Windows-1252 somewhere
    upstream (``"CafÃ©"`` -> ``"Café"``). Values without the telltale
    sequences, or that do not round-trip, are returned unchanged.
    """
    if not value or not _MOJIBAKE_MARKERS.search(value):
        return value
    try:
        return value.encode("windows-1252").decode(UTF8)
    except (UnicodeEncodeError, UnicodeDecodeError):
        return value
