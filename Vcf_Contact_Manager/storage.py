import json
import logging
import os
from typing import Any, Dict, Optional
from Vcf_Contact_Manager.contacts import SORT_FIELDS, SORT_ORDERS
from Vcf_Contact_Manager.data_model import Contact, ContactStore
from Vcf_Contact_Manager.utility import DEFAULT_STORE_NAME


logger = logging.getLogger(__name__)

CONTACTS_KEY = "contacts"
SORT_KEY = "sort"


class JsonBlobStore:
    """
    A small key/value store kept in a single JSON file.

    Every set() rewrites the whole file. Read and write failures are logged
    and reported through the return value, they are never raised.
    """

    def __init__(self, path: str = DEFAULT_STORE_NAME) -> None:
        self.path = path

    def __repr__(self) -> str:
        return f"JsonBlobStore({self.path!r})"

    def _read(self) -> Dict[str, Any]:
        if not os.path.isfile(self.path):
            return {}
        with open(self.path, "r", encoding="utf-8") as f:
            blob = json.load(f)
        if not isinstance(blob, dict):
            raise ValueError(f"{self.path} does not contain a JSON object")
        return blob

    def get(self, key: str, default: Any = None) -> Any:
        """Get the value stored under key, or default if it is missing or unreadable."""
        try:
            return self._read().get(key, default)
        except (OSError, ValueError) as e:
            logger.error(f"Could not read {key} from {self.path}: {e}")
            return default

    def set(self, key: str, value: Any) -> bool:
        """
        Store a JSON-serializable value under key.

        Returns:
            bool: True if the file was written
        """
        try:
            blob = self._read()
        except (OSError, ValueError) as e:
            logger.warning(f"Replacing unreadable store {self.path}: {e}")
            blob = {}
        blob[key] = value
        try:
            with open(self.path, "w", encoding="utf-8") as f:
                json.dump(blob, f, ensure_ascii=False, indent=2)
        except (OSError, TypeError, ValueError) as e:
            logger.error(f"Could not write {key} to {self.path}: {e}")
            return False
        return True


def persist_contacts(blob: JsonBlobStore, store: ContactStore) -> bool:
    return blob.set(CONTACTS_KEY, store.to_json())


def _replace_contacts(store: ContactStore, entries: Any, source: str) -> bool:
    if not isinstance(entries, list):
        logger.error(f"Contacts in {source} must be a list")
        return False
    try:
        contacts = [Contact.from_json(entry) for entry in entries]
    except (AttributeError, TypeError, ValueError) as e:
        logger.error(f"Invalid contact data in {source}: {e}")
        return False

    def _assign(s):
        s.contacts = contacts
        s.selected_contact_ids = set()
        s.reset_next_id()
    store.update(_assign)
    return True


def load_contacts(blob: JsonBlobStore, store: ContactStore) -> bool:
    """
    Load the persisted contacts into the store and reset the id counter.

    Returns:
        bool: True if contacts were loaded, False if there are none or they are unreadable
    """
    entries = blob.get(CONTACTS_KEY)
    if not entries:
        return False
    if not _replace_contacts(store, entries, blob.path):
        return False
    logger.info(f"Loaded {len(store)} contacts from {blob.path}")
    return True


def persist_sort(blob: JsonBlobStore, store: ContactStore) -> bool:
    return blob.set(SORT_KEY, dict(store.sort))


def load_sort(blob: JsonBlobStore, store: ContactStore) -> bool:
    """Restore the persisted sort order, ignoring values that are not valid."""
    sort = blob.get(SORT_KEY)
    if not sort:
        return False
    if (not isinstance(sort, dict) or sort.get("by") not in SORT_FIELDS
            or sort.get("order") not in SORT_ORDERS):
        logger.warning(f"Ignoring invalid sort order in {blob.path}: {sort}")
        return False
    store.set(sort={"by": sort["by"], "order": sort["order"]})
    return True


def load_seed_contacts(blob: JsonBlobStore, store: ContactStore, seed_file: str) -> bool:
    """
    Replace the contacts with the sample data of a JSON file and persist them.

    Args:
        blob (JsonBlobStore): The store file to persist into
        store (ContactStore): The state receiving the contacts
        seed_file (str): JSON file containing a list of contacts

    Returns:
        bool: True if the seed data was loaded
    """
    try:
        with open(seed_file, "r", encoding="utf-8") as f:
            entries = json.load(f)
    except (OSError, ValueError) as e:
        logger.error(f"Could not load seed contacts from {seed_file}: {e}")
        return False
    if not _replace_contacts(store, entries, seed_file):
        return False
    persist_contacts(blob, store)
    logger.info(f"Loaded {len(store)} seed contacts from {seed_file}")
    return True


def attach(blob: JsonBlobStore, store: ContactStore) -> None:
    """Persist the contacts whenever they change and the sort order whenever it changes."""
    last_sort = [dict(store.sort)]

    def _persist_sort():
        if store.sort != last_sort[0]:
            last_sort[0] = dict(store.sort)
            persist_sort(blob, store)

    store.subscribe_to_persist(lambda: persist_contacts(blob, store))
    store.subscribe(_persist_sort)


def open_store(path: Optional[str] = None, seed_file: Optional[str] = None) -> ContactStore:
    """
    Create a store backed by a JSON file, load its content and keep it persisted.

    Args:
        path (Optional[str]): The store file, defaults to contacts.json
        seed_file (Optional[str]): Sample contacts to load when the store file has none

    Returns:
        ContactStore: The loaded store
    """
    blob = JsonBlobStore(path or DEFAULT_STORE_NAME)
    store = ContactStore()
    if not load_contacts(blob, store) and seed_file is not None:
        load_seed_contacts(blob, store, seed_file)
    load_sort(blob, store)
    attach(blob, store)
    return store
