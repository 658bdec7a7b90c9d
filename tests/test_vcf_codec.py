import logging
import pytest

from Vcf_Contact_Manager.vcf_codec import decode_quoted_printable, encode_quoted_printable
from Vcf_Contact_Manager.vcf_codec import escape_value, split_structured, unescape_value


encode_test_cases = [
    ("", ""),
    ("Plain ASCII", "Plain ASCII"),
    ("Müller", "M=C3=BCller"),
    ("a=b", "a=3Db"),
    ("last;first", "last=3Bfirst"),
    ("line\nbreak", "line=0Abreak"),
    ("🌟", "=F0=9F=8C=9F"),
    ("two words ", "two words=20"),
]


@pytest.mark.parametrize("text, expected", encode_test_cases)
def test_encode_quoted_printable(text, expected):
    assert encode_quoted_printable(text) == expected


def test_encoded_output_is_ascii_without_line_breaks():
    encoded = encode_quoted_printable("Grüße aus Köln;\r\n" * 20)
    assert encoded.isascii()
    assert "\n" not in encoded and "\r" not in encoded


@pytest.mark.parametrize("text", ["Müller", "a=b;c", "Zoë\r\nBjörk", "", "漢字 ✓", "=3D literal", "trailing space  "])
def test_quoted_printable_round_trip(text):
    assert decode_quoted_printable(encode_quoted_printable(text)) == text


def test_decode_removes_soft_line_breaks():
    assert decode_quoted_printable("Hel=\r\nlo W=\norld") == "Hello World"


def test_decode_keeps_malformed_escapes():
    assert decode_quoted_printable("100=ZZ") == "100=ZZ"


def test_decode_with_latin1_charset():
    assert decode_quoted_printable("M=FCller", "ISO-8859-1") == "Müller"


@pytest.mark.parametrize("value, charset", [("=FF=FE", "utf-8"), ("abc", "x-unknown-charset")])
def test_decode_failure_returns_input(value, charset, caplog):
    with caplog.at_level(logging.WARNING):
        assert decode_quoted_printable(value, charset) == value
    assert "Could not decode" in caplog.text


escape_test_cases = [
    ("", ""),
    ("plain", "plain"),
    ("a,b", "a\\,b"),
    ("a;b", "a\\;b"),
    ("C:\\temp", "C:\\\\temp"),
    ("a\\;b,c", "a\\\\\\;b\\,c"),
]


@pytest.mark.parametrize("value, escaped", escape_test_cases)
def test_escape_value(value, escaped):
    assert escape_value(value) == escaped
    assert unescape_value(escaped) == value


def test_split_structured_respects_escaped_separators():
    assert split_structured("a\\;b;c") == ["a;b", "c"]
    assert split_structured("Mustermann;Max;;;") == ["Mustermann", "Max", "", "", ""]


def test_split_structured_address():
    components = split_structured(";;Hauptstr. 1\\, Hinterhaus;Berlin;;10115;")
    assert len(components) == 7
    assert components[2] == "Hauptstr. 1, Hinterhaus"
    assert components[3] == "Berlin"
    assert components[5] == "10115"


def test_split_structured_empty():
    assert split_structured("") == [""]
