import logging
import quopri
import re
from typing import List


logger = logging.getLogger(__name__)

QP_SOFT_BREAK = re.compile(r"=(?:\r\n|\n|\r)")
QP_ESCAPED_BYTES = frozenset((0x3B, 0x3D))  # ';' is a vCard separator, '=' the escape itself


def encode_quoted_printable(text: str) -> str:
    """Encodes text as quoted-printable UTF-8 for a vCard value.

    Control characters, bytes outside printable ASCII, "=" and ";" are written
    as =XX with uppercase hex digits. No soft line breaks are inserted.

    A trailing space is printable ASCII but is still written as =20, because
    quoted-printable decoders (quopri included) strip trailing whitespace.
    This is the only byte encoded beyond the rule above.

    Args:
        text: The text to encode.

    Returns:
        The encoded, pure ASCII value.
    """
    if not text:
        return ""
    encoded = "".join(
        f"={byte:02X}" if byte < 0x20 or byte > 0x7E or byte in QP_ESCAPED_BYTES else chr(byte)
        for byte in text.encode("utf-8")
    )
    if encoded.endswith(" "):
        encoded = encoded[:-1] + "=20"
    return encoded


def decode_quoted_printable(value: str, charset: str = "utf-8") -> str:
    """Decode a vCard value that is quoted-printable in the given charset.

    Malformed escapes are kept literally. If the bytes cannot be decoded with
    the charset, the value is returned unchanged.
    """
    if not value:
        return ""
    try:
        value_without_breaks = QP_SOFT_BREAK.sub("", value)
        bytes_val = quopri.decodestring(value_without_breaks.encode(charset))
        return bytes_val.decode(charset)
    except (LookupError, UnicodeError) as e:
        logger.warning(f"Could not decode quoted-printable value as {charset}: {e}")
        return value


def escape_value(value: str) -> str:
    """Escapes backslash, comma and semicolon. The backslash must go first."""
    if not value:
        return ""
    return value.replace("\\", "\\\\").replace(",", "\\,").replace(";", "\\;")


def unescape_value(value: str) -> str:
    """Reverses escape_value in the opposite order."""
    if not value:
        return ""
    return value.replace("\\;", ";").replace("\\,", ",").replace("\\\\", "\\")


def split_structured(value: str) -> List[str]:
    """Splits a structured value such as N or ADR into unescaped components.

    Only semicolons that are not escaped separate components, so "a\\;b;c"
    gives ["a;b", "c"].

    Args:
        value: The raw (still escaped) property value.

    Returns:
        The list of components.
    """
    components = []
    current = []
    chars = iter(value or "")
    for char in chars:
        if char == "\\":
            current.append(char)
            current.append(next(chars, ""))
        elif char == ";":
            components.append(unescape_value("".join(current)))
            current = []
        else:
            current.append(char)
    components.append(unescape_value("".join(current)))
    return components
