import logging
from typing import Dict, Iterable, List, Optional
from Vcf_Contact_Manager.data_model import Contact, SocialProfile


logger = logging.getLogger(__name__)

MERGE_FIELDS = (
    ("first_name", "First name"),
    ("last_name", "Last name"),
    ("nickname", "Nickname"),
    ("email", "E-mail (private)"),
    ("phone", "Phone (private)"),
    ("mobile", "Mobile (private)"),
    ("street", "Street (private)"),
    ("zip", "ZIP (private)"),
    ("city", "City (private)"),
    ("company", "Company"),
    ("title", "Title / position"),
    ("role", "Role / function"),
    ("work_email", "E-mail (work)"),
    ("work_phone", "Phone (work)"),
    ("work_mobile", "Mobile (work)"),
    ("work_street", "Street (work)"),
    ("work_zip", "ZIP (work)"),
    ("work_city", "City (work)"),
    ("birthday", "Birthday"),
    ("category", "Category"),
    ("url", "Website"),
    ("notes", "Notes"),
)


def _fold(value: Optional[str]) -> str:
    return (value or "").strip().casefold()


def _emails(contact: Contact) -> set:
    return {email for email in (_fold(contact.email), _fold(contact.work_email)) if email}


def find_duplicate(candidate: Contact, existing_contacts: Iterable[Contact],
                   exclude_id: Optional[int] = None) -> Optional[Contact]:
    """Finds an existing contact that the candidate would duplicate.

    A matching first and last name wins over a matching e-mail address. Both
    comparisons ignore case and surrounding whitespace, and either e-mail
    field of the candidate may match either e-mail field of a stored contact.

    Args:
        candidate: The contact about to be stored.
        existing_contacts: The stored contacts.
        exclude_id: Id to ignore, used when the candidate is the edited version of a stored contact.

    Returns:
        The first matching contact, or None.
    """
    others = [c for c in existing_contacts if exclude_id is None or c.id != exclude_id]

    first_name, last_name = _fold(candidate.first_name), _fold(candidate.last_name)
    if first_name and last_name:
        for contact in others:
            if _fold(contact.first_name) == first_name and _fold(contact.last_name) == last_name:
                return contact

    emails = _emails(candidate)
    if emails:
        for contact in others:
            if emails & _emails(contact):
                return contact
    return None


class MergeField:
    """
    One row of the merge comparison between a stored and an incoming contact.
    """

    def __init__(self, field: str, label: str, existing: str, new: str) -> None:
        self.field = field
        self.label = label
        self.existing = existing
        self.new = new
        self.conflict = bool(existing and new and existing != new)
        self.selected = existing or new

    def __repr__(self) -> str:
        return f"MergeField({self.field!r}, conflict={self.conflict})"

    def choose(self, source: str) -> None:
        """
        Select the value of one side.

        Args:
            source (str): "existing" or "new"

        Raises:
            ValueError: If source is neither "existing" nor "new"
        """
        if source == "existing":
            self.selected = self.existing
        elif source == "new":
            self.selected = self.new
        else:
            raise ValueError(f"Unknown merge source: {source}")


def plan_merge(existing: Contact, incoming: Contact) -> List[MergeField]:
    """Compares two contacts field by field, skipping fields empty on both sides."""
    rows = []
    for field, label in MERGE_FIELDS:
        existing_value = getattr(existing, field) or ""
        new_value = getattr(incoming, field) or ""
        if not existing_value and not new_value:
            continue
        rows.append(MergeField(field, label, existing_value, new_value))
    return rows


def _merge_social_media(existing: Contact, incoming: Contact, prefer_new: bool) -> List[SocialProfile]:
    profiles = {p.platform: p for p in existing.social_media}
    for profile in incoming.social_media:
        if prefer_new or profile.platform not in profiles:
            profiles[profile.platform] = profile
    return [SocialProfile(p.platform, p.username) for p in profiles.values()]


def merge_contacts(existing: Contact, incoming: Contact,
                   choices: Optional[Dict[str, str]] = None) -> Contact:
    """Builds the union of two contacts.

    Fields set on only one side are taken from that side. For conflicting
    fields the existing value is kept unless choices maps the field to "new".
    The result keeps the id and favorite flag of the existing contact.

    Args:
        existing: The stored contact.
        incoming: The contact that turned out to be a duplicate.
        choices: Optional mapping of field name to "existing" or "new".

    Returns:
        A new Contact with the merged values.
    """
    choices = choices or {}
    merged = existing.copy()
    for row in plan_merge(existing, incoming):
        if row.conflict and row.field in choices:
            row.choose(choices[row.field])
        setattr(merged, row.field, row.selected)
    merged.social_media = _merge_social_media(
        existing, incoming, choices.get("social_media") == "new"
    )
    logger.debug(f"Merged contact {incoming.name!r} into id {existing.id}")
    return merged
