import logging
import os
from typing import Dict, Iterable, List, Optional, Tuple
from Vcf_Contact_Manager.data_model import Contact, ContactStore, TEXT_FIELDS
from Vcf_Contact_Manager.duplicates import find_duplicate, merge_contacts
from Vcf_Contact_Manager.utility import CLEAR_LINE, DEFAULT_HTML_NAME, is_valid_email, is_valid_german_zip
from Vcf_Contact_Manager.utility import natural_key, rendering, sanitize_filename, setup_template


logger = logging.getLogger(__name__)

FAVORITES_FILTER = "favorites"
FAVORITES_GROUP = "Favorites"
UNKNOWN_LETTER = "#"
SORT_FIELDS = ("first_name", "last_name", "company", "phone", "email", "street", "zip", "city")
SORT_ORDERS = ("asc", "desc")


class ContactValidationError(ValueError):
    """Raised when manually entered contact data is invalid."""


class DuplicateContactError(Exception):
    """
    Raised when saving would create a duplicate of a stored contact.

    Attributes:
        duplicate (Contact): The stored contact that matched
        candidate (Contact): The contact that was about to be saved
    """

    def __init__(self, duplicate: Contact, candidate: Contact) -> None:
        super().__init__(f"'{candidate.name}' duplicates the stored contact '{duplicate.name}' (id {duplicate.id})")
        self.duplicate = duplicate
        self.candidate = candidate


def validate_contact(contact: Contact) -> None:
    """
    Check manually entered contact data.

    Raises:
        ContactValidationError: If the name is missing, an e-mail address is
            malformed or a ZIP code does not have 5 digits
    """
    if not contact.has_identity():
        raise ContactValidationError("First or last name is required.")
    if not is_valid_email(contact.email):
        raise ContactValidationError(f"Invalid e-mail address: {contact.email}")
    if not is_valid_email(contact.work_email):
        raise ContactValidationError(f"Invalid work e-mail address: {contact.work_email}")
    if not is_valid_german_zip(contact.zip):
        raise ContactValidationError(f"ZIP code must have 5 digits: {contact.zip}")
    if not is_valid_german_zip(contact.work_zip):
        raise ContactValidationError(f"Work ZIP code must have 5 digits: {contact.work_zip}")


def _stripped(contact: Contact) -> Contact:
    cleaned = contact.copy()
    for field in TEXT_FIELDS:
        setattr(cleaned, field, (getattr(cleaned, field) or "").strip())
    return cleaned


def save_contact(store: ContactStore, contact: Contact, contact_id: Optional[int] = None,
                 check_duplicates: bool = True) -> Contact:
    """Creates a new contact or updates an existing one.

    Input values are trimmed and validated first. A new contact gets a fresh id
    and is not a favorite. An edit copies the new values onto the stored
    contact, keeping its id and favorite flag.

    Args:
        store: The store holding the contacts.
        contact: The entered data. Its id is ignored.
        contact_id: Id of the contact being edited, None to create one.
        check_duplicates: Whether to look for a stored duplicate first.

    Returns:
        The stored contact.

    Raises:
        ContactValidationError: If the data is invalid.
        DuplicateContactError: If another stored contact has the same name or e-mail.
        KeyError: If contact_id is not a stored contact.
    """
    candidate = _stripped(contact)
    validate_contact(candidate)

    existing = None
    if contact_id is not None:
        existing = store.get(contact_id)
        if existing is None:
            raise KeyError(contact_id)

    if check_duplicates:
        duplicate = find_duplicate(candidate, store.contacts, exclude_id=contact_id)
        if duplicate is not None:
            candidate.id = contact_id
            raise DuplicateContactError(duplicate, candidate)

    if existing is not None:
        updated = existing.copy()
        updated.update_from(candidate)
        store.replace(updated)
        logger.info(f"Updated contact {updated.name} (id {updated.id})")
        return updated

    candidate.id = None
    candidate.is_favorite = False
    store.append(candidate)
    logger.info(f"Created contact {candidate.name} (id {candidate.id})")
    return candidate


def resolve_merge(store: ContactStore, existing: Contact, incoming: Contact,
                  choices: Optional[Dict[str, str]] = None, editing_id: Optional[int] = None) -> Contact:
    """
    Merge a duplicate into the stored contact so that only one record remains.

    Args:
        store (ContactStore): The store holding the contacts
        existing (Contact): The stored contact found as duplicate
        incoming (Contact): The new or edited data
        choices (Optional[Dict[str, str]]): Field name to "existing" or "new" for conflicting fields
        editing_id (Optional[int]): Id of the contact that was being edited, it is
            removed when it differs from the existing contact

    Returns:
        Contact: The merged contact

    Raises:
        KeyError: If the existing contact is no longer stored
    """
    if store.get(existing.id) is None:
        raise KeyError(existing.id)
    merged = merge_contacts(existing, incoming, choices)

    def _merge(s):
        s.contacts = [merged if c.id == existing.id else c for c in s.contacts]
        if editing_id is not None and editing_id != existing.id:
            s.contacts = [c for c in s.contacts if c.id != editing_id]
            s.selected_contact_ids.discard(editing_id)
    store.update(_merge)
    logger.info(f"Merged into contact {merged.name} (id {merged.id})")
    return merged


def delete_contact(store: ContactStore, contact_id: int) -> Contact:
    """
    Delete a single contact.

    Raises:
        KeyError: If no contact has this id
    """
    contact = store.get(contact_id)
    if contact is None:
        raise KeyError(contact_id)
    store.remove([contact_id])
    logger.info(f"Deleted contact {contact.name} (id {contact_id})")
    return contact


def delete_contacts(store: ContactStore, contact_ids: Iterable[int]) -> int:
    """Delete several contacts, unknown ids are ignored. Returns the number deleted."""
    count = store.remove(contact_ids)
    logger.info(f"Deleted {count} contacts")
    return count


def toggle_favorite(store: ContactStore, contact_id: int) -> bool:
    """
    Flip the favorite flag of a contact.

    Returns:
        bool: The new favorite state

    Raises:
        KeyError: If no contact has this id
    """
    contact = store.get(contact_id)
    if contact is None:
        raise KeyError(contact_id)

    def _toggle(_store):
        contact.is_favorite = not contact.is_favorite
    store.update(_toggle)
    state = "marked as favorite" if contact.is_favorite else "removed from favorites"
    logger.info(f"{contact.name} {state}")
    return contact.is_favorite


def toggle_selection(store: ContactStore, contact_id: int) -> bool:
    """Select or deselect a contact. Returns whether it is selected afterwards."""
    if store.get(contact_id) is None:
        raise KeyError(contact_id)

    def _toggle(s):
        if contact_id in s.selected_contact_ids:
            s.selected_contact_ids.discard(contact_id)
        else:
            s.selected_contact_ids.add(contact_id)
    store.update(_toggle)
    return contact_id in store.selected_contact_ids


def selected_contacts(store: ContactStore) -> List[Contact]:
    return [c for c in store.contacts if c.id in store.selected_contact_ids]


def _matches_search(contact: Contact, search_term: str) -> bool:
    values = [contact.name] + [getattr(contact, field) or "" for field in TEXT_FIELDS]
    return any(search_term in value.casefold() for value in values)


def filter_contacts(contacts: Iterable[Contact], search_term: str = "",
                    category_filter: str = "") -> List[Contact]:
    """
    Filter contacts by category and search term.

    Args:
        contacts (Iterable[Contact]): The contacts to filter
        search_term (str): Case-insensitive substring searched in the name and every text field
        category_filter (str): A category, "favorites" for favorites only, or empty for all

    Returns:
        List[Contact]: The matching contacts in their original order
    """
    filtered = list(contacts)
    if category_filter == FAVORITES_FILTER:
        filtered = [c for c in filtered if c.is_favorite]
    elif category_filter:
        filtered = [c for c in filtered if c.category == category_filter]

    search_term = (search_term or "").strip().casefold()
    if search_term:
        filtered = [c for c in filtered if _matches_search(c, search_term)]
    return filtered


def _check_sort(by: str, order: str) -> None:
    if by not in SORT_FIELDS:
        raise ValueError(f"Cannot sort by {by}, choose one of {', '.join(SORT_FIELDS)}")
    if order not in SORT_ORDERS:
        raise ValueError(f"Unknown sort order: {order}")


def sort_contacts(contacts: Iterable[Contact], by: str = "first_name", order: str = "asc") -> List[Contact]:
    """Sorts favorites first, then by the chosen field in natural, case-insensitive order.

    A descending order reverses the whole list, favorites included.

    Raises:
        ValueError: If the field or order is unknown.
    """
    _check_sort(by, order)
    return sorted(
        contacts,
        key=lambda c: (not c.is_favorite, natural_key(getattr(c, by))),
        reverse=order == "desc"
    )


def visible_contacts(store: ContactStore) -> List[Contact]:
    """The filtered and sorted contacts according to the store's current view state."""
    filtered = filter_contacts(store.contacts, store.search_term, store.category_filter)
    return sort_contacts(filtered, store.sort["by"], store.sort["order"])


def group_by_letter(contacts: Iterable[Contact], by: str = "first_name",
                    order: str = "asc") -> List[Tuple[str, List[Contact]]]:
    """
    Group contacts for display.

    Favorites come first in their own group, the rest is grouped by the first
    letter of the sort field. Contacts without a value go to "#", which is
    always the last group.

    Returns:
        List[Tuple[str, List[Contact]]]: Pairs of group label and contacts
    """
    ordered = sort_contacts(contacts, by, order)
    groups = []
    favorites = [c for c in ordered if c.is_favorite]
    if favorites:
        groups.append((FAVORITES_GROUP, favorites))

    letters: Dict[str, List[Contact]] = {}
    for contact in ordered:
        if contact.is_favorite:
            continue
        value = (getattr(contact, by) or "").strip()
        letter = value[0].upper() if value else UNKNOWN_LETTER
        letters.setdefault(letter, []).append(contact)

    known = sorted((key for key in letters if key != UNKNOWN_LETTER), key=natural_key, reverse=order == "desc")
    groups.extend((letter, letters[letter]) for letter in known)
    if UNKNOWN_LETTER in letters:
        groups.append((UNKNOWN_LETTER, letters[UNKNOWN_LETTER]))
    return groups


def contact_statistics(contacts: Iterable[Contact]) -> Dict[str, int]:
    """
    Count data quality gaps over the unfiltered contacts.

    A contact only counts as without e-mail, address or mobile number when
    both the private and the work field are empty.
    """
    contacts = list(contacts)

    def _empty(*values):
        return all(not (value or "").strip() for value in values)

    return {
        "total": len(contacts),
        "without_company": sum(1 for c in contacts if _empty(c.company)),
        "without_title": sum(1 for c in contacts if _empty(c.title)),
        "without_email": sum(1 for c in contacts if _empty(c.email, c.work_email)),
        "without_address": sum(1 for c in contacts if _empty(c.street, c.work_street)),
        "without_mobile": sum(1 for c in contacts if _empty(c.mobile, c.work_mobile)),
    }


def create_html(store: ContactStore, output_file: str = DEFAULT_HTML_NAME,
                template: Optional[str] = None, headline: str = "Contacts") -> str:
    """Render the visible contacts as a grouped HTML list and return the path of the written file."""
    template = setup_template(template)
    contacts = visible_contacts(store)
    groups = group_by_letter(contacts, store.sort["by"], store.sort["order"])

    output_folder, file_name = os.path.split(output_file)
    safe_name = sanitize_filename(file_name)
    if not safe_name.strip(" ."):
        raise ValueError(f"Invalid file name: {file_name}")
    output_file = os.path.join(output_folder, safe_name)
    if output_folder and not os.path.isdir(output_folder):
        os.makedirs(output_folder)

    rendering(output_file, template, groups, len(store), len(contacts), store.search_term, headline)
    logger.info(f"Rendered {len(contacts)} of {len(store)} contacts to {output_file}{CLEAR_LINE}")
    return output_file
