import logging
import os
import re
from typing import Callable, Dict, FrozenSet, Generator, Iterable, List, Optional, Sequence
from Vcf_Contact_Manager.data_model import Contact, ContactStore, SocialProfile
from Vcf_Contact_Manager.duplicates import find_duplicate
from Vcf_Contact_Manager.text_repair import repair_mojibake, unfold_lines
from Vcf_Contact_Manager.utility import CLEAR_LINE, DEFAULT_VCF_NAME, sanitize_filename
from Vcf_Contact_Manager.vcf_codec import decode_quoted_printable, encode_quoted_printable
from Vcf_Contact_Manager.vcf_codec import escape_value, split_structured, unescape_value


logger = logging.getLogger(__name__)

CRLF = "\r\n"
QP_PARAMS = "CHARSET=UTF-8;ENCODING=QUOTED-PRINTABLE"
CARD_START = re.compile(r"BEGIN:VCARD", re.IGNORECASE)
LINE_BREAK = re.compile(r"\r\n|\n|\r")
COMPACT_DATE = re.compile(r"^\d{8}$")
ENCODING_TOKENS = ("QUOTED-PRINTABLE", "BASE64")

TEXT_PROPERTIES = (
    ("NICKNAME", "nickname"),
    ("TITLE", "title"),
    ("ROLE", "role"),
    ("ORG", "company"),
)
TYPED_PROPERTIES = (
    ("EMAIL;TYPE=INTERNET,HOME", "email"),
    ("TEL;TYPE=HOME,VOICE", "phone"),
    ("TEL;TYPE=HOME,CELL", "mobile"),
    ("EMAIL;TYPE=INTERNET,WORK", "work_email"),
    ("TEL;TYPE=WORK,VOICE", "work_phone"),
    ("TEL;TYPE=WORK,CELL", "work_mobile"),
)
ADDRESSES = (
    ("HOME", "street", "city", "zip"),
    ("WORK", "work_street", "work_city", "work_zip"),
)


class VcfReadError(OSError):
    """Raised when a vCard file cannot be read or decoded."""


# Export

def _needs_encoding(value: str) -> bool:
    return any(ord(char) > 0x7F for char in value)


def _text_line(name: str, value: str) -> str:
    """Escapes the value and switches to quoted-printable only for non-ASCII content."""
    escaped = escape_value(value)
    if _needs_encoding(escaped):
        return f"{name};{QP_PARAMS}:{encode_quoted_printable(escaped)}"
    return f"{name}:{escaped}"


def serialize_contact(contact: Contact) -> str:
    """Converts one contact into a vCard 3.0 block with CRLF line endings.

    Args:
        contact: The contact to serialize.

    Returns:
        The text from BEGIN:VCARD to END:VCARD, including the final CRLF.
    """
    lines = ["BEGIN:VCARD", "VERSION:3.0"]

    # Names are always quoted-printable
    n_value = ";".join((escape_value(contact.last_name), escape_value(contact.first_name), "", "", ""))
    lines.append(f"N;{QP_PARAMS}:{encode_quoted_printable(n_value)}")
    lines.append(f"FN;{QP_PARAMS}:{encode_quoted_printable(escape_value(contact.name))}")

    for name, field in TEXT_PROPERTIES:
        value = getattr(contact, field)
        if value:
            lines.append(_text_line(name, value))

    for prefix, field in TYPED_PROPERTIES:
        value = getattr(contact, field)
        if value:
            lines.append(f"{prefix}:{escape_value(value)}")

    for address_type, street_field, city_field, zip_field in ADDRESSES:
        street = getattr(contact, street_field)
        city = getattr(contact, city_field)
        zip_code = getattr(contact, zip_field)
        if street or city or zip_code:
            adr_value = ";".join(
                ("", "", escape_value(street), escape_value(city), "", escape_value(zip_code), "")
            )
            lines.append(f"ADR;TYPE={address_type};{QP_PARAMS}:{encode_quoted_printable(adr_value)}")

    if contact.category:
        lines.append(f"CATEGORIES:{escape_value(contact.category)}")
    if contact.birthday:
        lines.append(f"BDAY:{escape_value(contact.birthday.replace('-', ''))}")
    if contact.url:
        lines.append(f"URL:{escape_value(contact.url)}")
    if contact.notes:
        lines.append(_text_line("NOTE", LINE_BREAK.sub(r"\\n", contact.notes)))

    for profile in contact.social_media:
        lines.append(
            f"X-SOCIALPROFILE;TYPE={escape_value(profile.platform)}:{escape_value(profile.username)}"
        )

    lines.append("END:VCARD")
    return CRLF.join(lines) + CRLF


def serialize_contacts(contacts: Iterable[Contact]) -> str:
    """Serializes the contacts into one vCard text, in the given order."""
    return "".join(serialize_contact(contact) for contact in contacts)


def export_contacts_to_vcf(contacts: Sequence[Contact], filename: str = DEFAULT_VCF_NAME,
                           output_folder: Optional[str] = ".") -> str:
    """
    Writes the contacts to a vCard file.

    Args:
        contacts (Sequence[Contact]): The contacts to export
        filename (str): Name of the file, defaults to contacts.vcf
        output_folder (Optional[str]): Folder to write into, defaults to the working directory

    Returns:
        str: Path of the written file

    Raises:
        ValueError: If there are no contacts to export or the file name has no valid characters
    """
    if not contacts:
        raise ValueError("No contacts to export")
    safe_name = sanitize_filename(filename)
    if not safe_name.strip(" ."):
        raise ValueError(f"Invalid file name: {filename}")
    path = os.path.join(output_folder, safe_name) if output_folder else safe_name
    vcf_text = serialize_contacts(contacts)
    with open(path, "w", encoding="utf-8", newline="") as f:
        f.write(vcf_text)
    logger.info(f"Exported {len(contacts)} contacts to {path}")
    return path


# Import

class ContentLine:
    """
    One property line of a vCard, e.g. TEL;TYPE=HOME,CELL:0171 1234567
    """

    def __init__(self, name: str, params: Dict[str, str], type_values: Sequence[str], raw_value: str) -> None:
        """
        Initialize ContentLine object.

        Args:
            name (str): Uppercase property name without group prefix
            params (Dict[str, str]): Parameters except TYPE, keys in uppercase
            type_values (Sequence[str]): TYPE values and shorthand tokens in original order and case
            raw_value (str): The value as found in the file, neither decoded nor unescaped
        """
        self.name = name
        self.params = params
        self.type_values = tuple(type_values)
        self.types: FrozenSet[str] = frozenset(value.upper() for value in self.type_values)
        self.raw_value = raw_value

    def __repr__(self) -> str:
        return f"ContentLine({self.name!r}, types={sorted(self.types)})"

    @property
    def charset(self) -> str:
        return self.params.get("CHARSET") or "utf-8"

    @property
    def is_quoted_printable(self) -> bool:
        return self.params.get("ENCODING", "").upper() == "QUOTED-PRINTABLE"

    def decoded_value(self) -> str:
        """Get the value with the transfer encoding removed but still escaped."""
        if self.is_quoted_printable:
            return decode_quoted_printable(self.raw_value, self.charset)
        return self.raw_value

    def matches(self, types: Iterable[str] = (), exclude: Iterable[str] = ()) -> bool:
        """Check that every required type is present and no excluded one."""
        required = {value.upper() for value in types or ()}
        excluded = {value.upper() for value in exclude or ()}
        return required <= self.types and not (excluded & self.types)

    @classmethod
    def parse(cls, line: str) -> Optional['ContentLine']:
        """
        Tokenize a single unfolded line.

        Returns:
            Optional[ContentLine]: The content line, or None if the line has no value separator
        """
        separator = _find_value_separator(line)
        if separator < 0:
            return None
        head, raw_value = line[:separator], line[separator + 1:]
        parts = head.split(";")
        name = parts[0].strip().rsplit(".", 1)[-1].upper()
        if not name:
            return None
        params = {}
        type_values = []
        for part in parts[1:]:
            part = part.strip()
            if not part:
                continue
            if "=" in part:
                key, value = part.split("=", 1)
                key = key.strip().upper()
                value = value.strip().strip('"')
                if key == "TYPE":
                    type_values.extend(v.strip() for v in value.split(",") if v.strip())
                else:
                    params[key] = value
            elif part.upper() in ENCODING_TOKENS:
                params["ENCODING"] = part.upper()
            else:
                type_values.append(part)
        return cls(name, params, type_values, raw_value)


def _find_value_separator(line: str) -> int:
    quoted = False
    for index, char in enumerate(line):
        if char == '"':
            quoted = not quoted
        elif char == ":" and not quoted:
            return index
    return -1


class VCard:
    """
    The tokenized content lines of one card with lookup by name and type.
    """

    def __init__(self, lines: List[ContentLine]) -> None:
        self.lines = lines

    def __len__(self) -> int:
        return len(self.lines)

    def find(self, name: str, types: Iterable[str] = (), exclude: Iterable[str] = ()) -> Optional[ContentLine]:
        """
        Get the first line with the given name that passes the type filter.

        Args:
            name (str): Property name, case-insensitive
            types (Iterable[str]): Types the line must carry, e.g. ("HOME", "CELL")
            exclude (Iterable[str]): Types the line must not carry

        Returns:
            Optional[ContentLine]: The line, or None if nothing matches
        """
        name = name.upper()
        for line in self.lines:
            if line.name == name and line.matches(types, exclude):
                return line
        return None

    def find_all(self, name: str) -> List[ContentLine]:
        name = name.upper()
        return [line for line in self.lines if line.name == name]

    def get_field(self, name: str, types: Iterable[str] = (), exclude: Iterable[str] = ()) -> Optional[str]:
        """Get the decoded, unescaped and trimmed value of the first matching line."""
        line = self.find(name, types, exclude)
        if line is None:
            return None
        return unescape_value(line.decoded_value()).strip()

    def get_components(self, name: str, types: Iterable[str] = (),
                       exclude: Iterable[str] = ()) -> Optional[List[str]]:
        """Get the trimmed components of the first matching structured line."""
        line = self.find(name, types, exclude)
        if line is None:
            return None
        return [component.strip() for component in split_structured(line.decoded_value())]


def tokenize_card(card_text: str) -> VCard:
    """Splits the text of one card into content lines.

    Quoted-printable values ending in a soft line break ("=") continue on the
    next physical line, as written by older phones.

    Args:
        card_text: The unfolded text of a single card.

    Returns:
        The tokenized card.
    """
    physical_lines = LINE_BREAK.split(card_text)
    content_lines = []
    index = 0
    while index < len(physical_lines):
        line = physical_lines[index]
        index += 1
        if not line.strip():
            continue
        content_line = ContentLine.parse(line)
        if content_line is None:
            logger.debug(f"Ignoring line without value: {line!r}")
            continue
        while (content_line.is_quoted_printable and content_line.raw_value.endswith("=")
               and index < len(physical_lines)):
            content_line.raw_value += "\n" + physical_lines[index]
            index += 1
        content_lines.append(content_line)
    return VCard(content_lines)


def split_cards(raw_text: str) -> List[str]:
    """Unfolds and repairs the raw file text, then splits it into the text of each card."""
    text = repair_mojibake(unfold_lines(raw_text))
    return [card for card in CARD_START.split(text) if card.strip()]


def normalize_birthday(value: Optional[str]) -> str:
    """Converts YYYYMMDD to YYYY-MM-DD, other values are kept."""
    if not value:
        return ""
    if COMPACT_DATE.match(value):
        return f"{value[:4]}-{value[4:6]}-{value[6:]}"
    return value


def _component(components: Optional[List[str]], position: int) -> str:
    if components is None or position >= len(components):
        return ""
    return components[position]


def contact_from_vcard(card: VCard) -> Optional[Contact]:
    """
    Build a contact from a tokenized card.

    Returns:
        Optional[Contact]: The contact without id, or None if the card has no usable name
    """
    contact = Contact()

    name_components = card.get_components("N")
    if name_components:
        contact.last_name = _component(name_components, 0)
        contact.first_name = _component(name_components, 1)

    if not contact.has_identity():
        full_name = card.get_field("FN")
        if full_name:
            parts = full_name.split()
            contact.first_name = " ".join(parts[:-1])
            contact.last_name = parts[-1]

    if not contact.has_identity():
        return None

    contact.nickname = card.get_field("NICKNAME") or ""
    contact.title = card.get_field("TITLE") or ""
    contact.role = card.get_field("ROLE") or ""
    contact.company = card.get_field("ORG") or ""

    contact.email = card.get_field("EMAIL", ("HOME",)) or card.get_field("EMAIL", exclude=("HOME", "WORK")) or ""
    contact.work_email = card.get_field("EMAIL", ("WORK",)) or ""

    contact.phone = (card.get_field("TEL", ("HOME",), exclude=("CELL",))
                     or card.get_field("TEL", exclude=("WORK", "CELL")) or "")
    contact.mobile = (card.get_field("TEL", ("HOME", "CELL"))
                      or card.get_field("TEL", ("CELL",), exclude=("WORK",)) or "")
    contact.work_phone = card.get_field("TEL", ("WORK",), exclude=("CELL",)) or ""
    contact.work_mobile = card.get_field("TEL", ("WORK", "CELL")) or ""
    if not (contact.phone or contact.mobile or contact.work_phone or contact.work_mobile):
        contact.phone = card.get_field("TEL") or ""

    home_address = card.get_components("ADR", ("HOME",)) or card.get_components("ADR", exclude=("HOME", "WORK"))
    work_address = card.get_components("ADR", ("WORK",))
    for components, (_, street_field, city_field, zip_field) in zip((home_address, work_address), ADDRESSES):
        setattr(contact, street_field, _component(components, 2))
        setattr(contact, city_field, _component(components, 3))
        setattr(contact, zip_field, _component(components, 5))

    contact.category = card.get_field("CATEGORIES") or ""
    contact.birthday = normalize_birthday(card.get_field("BDAY"))
    contact.url = card.get_field("URL") or ""
    contact.notes = (card.get_field("NOTE") or "").replace("\\n", "\n")

    profiles = []
    for line in card.find_all("X-SOCIALPROFILE"):
        platform = unescape_value(line.type_values[0]) if line.type_values else ""
        profile = SocialProfile.create(platform, unescape_value(line.decoded_value()))
        if profile is not None:
            profiles.append(profile)
    contact.social_media = profiles

    return contact


def parse_card(card_text: str) -> Optional[Contact]:
    """Parse the text of one card into a contact, None if it has no name."""
    contact = contact_from_vcard(tokenize_card(card_text))
    if contact is None:
        logger.debug("Skipping vCard without first or last name")
    return contact


def parse_vcf(raw_text: str) -> List[Contact]:
    """Parse every card of a vCard text, ignoring cards without a name."""
    contacts = []
    for card_text in split_cards(raw_text):
        contact = parse_card(card_text)
        if contact is not None:
            contacts.append(contact)
    return contacts


class DuplicateConflict:
    """
    An imported card that matches a stored contact and needs a replace or skip decision.
    """

    def __init__(self, existing: Contact, candidate: Contact) -> None:
        self.existing = existing
        self.candidate = candidate

    def __repr__(self) -> str:
        return f"DuplicateConflict(existing={self.existing!r}, candidate={self.candidate!r})"

    @property
    def message(self) -> str:
        details = f" ({self.existing.email})" if self.existing.email else ""
        return (f"A contact named '{self.existing.name}'{details} already exists. "
                f"Replace it with the imported data?")


class ImportResult:
    """
    Counters of one import run and the contact collection after it.
    """

    def __init__(self, contacts: List[Contact], imported_count: int = 0,
                 replaced_count: int = 0, skipped_count: int = 0) -> None:
        self.contacts = contacts
        self.imported_count = imported_count
        self.replaced_count = replaced_count
        self.skipped_count = skipped_count

    def __repr__(self) -> str:
        return (f"ImportResult(imported={self.imported_count}, replaced={self.replaced_count}, "
                f"skipped={self.skipped_count})")

    def to_json(self) -> Dict[str, int]:
        return {
            "importedCount": self.imported_count,
            "replacedCount": self.replaced_count,
            "skippedCount": self.skipped_count,
        }


def import_contacts(raw_text: str, store: ContactStore) -> Generator[DuplicateConflict, Optional[bool], ImportResult]:
    """
    Import every card of a vCard text into the store.

    The generator yields a DuplicateConflict for each card matching a stored
    contact and resumes with the decision sent by the caller: True replaces
    the stored contact (its id and favorite flag are kept), anything else
    skips the card. Cards are processed strictly in file order.

    Args:
        raw_text (str): The content of the vCard file
        store (ContactStore): The store receiving the contacts

    Returns:
        ImportResult: Returned as the StopIteration value
    """
    cards = split_cards(raw_text)
    total_row_number = len(cards)
    imported_count = replaced_count = skipped_count = 0
    logger.info(f"Importing vCards...(0/{total_row_number})\r")

    with store.batch():
        for index, card_text in enumerate(cards, start=1):
            candidate = parse_card(card_text)
            if candidate is not None:
                duplicate = find_duplicate(candidate, store.contacts)
                if duplicate is None:
                    store.append(candidate)
                    imported_count += 1
                else:
                    replace = yield DuplicateConflict(duplicate, candidate)
                    if replace:
                        def _overwrite(_store, existing=duplicate, incoming=candidate):
                            existing.update_from(incoming)
                        store.update(_overwrite)
                        replaced_count += 1
                    else:
                        skipped_count += 1
            if index % 100 == 0:
                logger.info(f"Importing vCards...({index}/{total_row_number})\r")

    logger.info(f"Processed {total_row_number} vCards{CLEAR_LINE}")
    return ImportResult(list(store.contacts), imported_count, replaced_count, skipped_count)


def import_vcf(raw_text: str, store: ContactStore, confirm: Callable[[str], bool]) -> ImportResult:
    """
    Run a complete import, asking confirm(message) once per duplicate.

    Args:
        raw_text (str): The content of the vCard file
        store (ContactStore): The store receiving the contacts
        confirm (Callable[[str], bool]): Returns True to replace the stored contact

    Returns:
        ImportResult: The counters and the resulting collection
    """
    session = import_contacts(raw_text, store)
    try:
        conflict = next(session)
        while True:
            conflict = session.send(bool(confirm(conflict.message)))
    except StopIteration as stop:
        return stop.value


def read_vcf_file(path: str, encoding: str = "utf-8") -> str:
    """
    Read a vCard file as text.

    Raises:
        VcfReadError: If the file cannot be opened or is not valid in the given encoding
    """
    try:
        with open(path, "r", encoding=encoding, newline="") as f:
            return f.read()
    except (OSError, UnicodeDecodeError, LookupError) as e:
        raise VcfReadError(f"Cannot read vCard file {path}: {e}") from e


def import_summary(result: ImportResult) -> str:
    """Builds the message shown after an import."""
    if not (result.imported_count or result.replaced_count or result.skipped_count):
        return "No new contacts found in the file."
    parts = [f"{result.imported_count} contacts imported"]
    if result.replaced_count:
        parts.append(f"{result.replaced_count} replaced")
    if result.skipped_count:
        parts.append(f"{result.skipped_count} skipped")
    return ", ".join(parts) + "."
