import codecs

import pytest

from tracker.domain.imports.encoding import decode_strict, detect_encoding, fix_mojibake
from tracker.domain.imports.errors import EncodingError


def test_plain_utf8():
    result = detect_encoding("Company\nCafé Zürich\n".encode("utf-8"))
    assert result.encoding == "utf-8"
    assert result.text == "Company\nCafé Zürich\n"
    assert not result.lossy
    assert result.warning is None


def test_utf8_bom_is_stripped():
    result = detect_encoding(codecs.BOM_UTF8 + "Company,Position\n".encode("utf-8"))
    assert result.encoding == "utf-8-sig"
    assert result.text.startswith("Company")


def test_windows_1252_is_detected():
    result = detect_encoding("Company\nCafé Müller\n".encode("windows-1252"))
    assert result.encoding == "windows-1252"
    assert "Café Müller" in result.text
    assert not result.lossy


def test_turkish_text_decodes_without_loss():
    result = detect_encoding("Şirket,Pozisyon\n".encode("windows-1254"))
    # 0xDE is "Þ" in windows-1252 and "Ş" in windows-1254; both decode cleanly
    assert result.encoding == "windows-1252"
    assert not result.lossy


def test_undecodable_bytes_fall_back_with_warning():
    result = detect_encoding(b"Company\nAcme\x81\n")
    assert result.lossy
    assert result.encoding == "utf-8"
    assert "�" in result.text
    assert result.warning and "encoding" in result.warning


def test_control_characters_are_rejected_by_strict_decode():
    with pytest.raises(EncodingError) as exc_info:
        decode_strict(b"Acme\x01", "utf-8")
    assert exc_info.value.encoding == "utf-8"
    assert "U+0001" in exc_info.value.reason


def test_invalid_bytes_are_reported_with_offset():
    with pytest.raises(EncodingError, match="offset 4"):
        decode_strict(b"Acme\xff", "utf-8")


def test_tabs_and_newlines_are_allowed():
    assert decode_strict(b"a\tb\r\nc", "utf-8") == "a\tb\r\nc"


@pytest.mark.parametrize("broken, fixed", [
    ("CafÃ©", "Café"),
    ("MÃ¼ller GmbH", "Müller GmbH"),
    ("donâ€™t", "don’t"),
])
def test_fix_mojibake_repairs_double_encoded_text(broken, fixed):
    assert fix_mojibake(broken) == fixed


@pytest.mark.parametrize("value", ["Café", "Plain text", "", "Ã alone"])
def test_fix_mojibake_leaves_clean_text_alone(value):
    assert fix_mojibake(value) == value
