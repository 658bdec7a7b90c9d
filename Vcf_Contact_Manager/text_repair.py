import logging
import re
import ftfy


logger = logging.getLogger(__name__)

# A line break followed by a space or tab continues the previous line
FOLDED_LINE = re.compile(r"(?:\r\n|\n|\r)[ \t]")
LINE_SPLIT = re.compile(r"(\r\n|\n|\r)")


def unfold_lines(text: str) -> str:
    """Joins folded vCard lines by removing each line break that is followed by a space or tab."""
    if not text:
        return ""
    return FOLDED_LINE.sub("", text)


def repair_mojibake(text: str) -> str:
    """Reverses UTF-8 text that was decoded as Windows-1252 or Latin-1.

    Each line is repaired on its own with ftfy, so a corrupted card does not
    depend on correctly encoded text elsewhere in the file, e.g. "MÃ¼ller"
    becomes "Müller" while "Müller" and „Fuß“ are kept.

    Args:
        text: The raw imported text.

    Returns:
        The repaired text.
    """
    if not text:
        return ""
    repaired = "".join(ftfy.fix_encoding(part) for part in LINE_SPLIT.split(text))
    if repaired != text:
        logger.debug(f"Repaired mojibake ({len(text) - len(repaired)} characters removed)")
    return repaired
