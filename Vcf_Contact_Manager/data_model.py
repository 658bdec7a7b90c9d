import logging
from contextlib import contextmanager
from typing import Any, Callable, Dict, Iterable, List, Optional
from Vcf_Contact_Manager.utility import SOCIAL_PROFILE_URLS, normalize_platform


logger = logging.getLogger(__name__)

# Python attribute -> key used in the persisted JSON blob
JSON_KEYS = {
    "first_name": "firstName",
    "last_name": "lastName",
    "nickname": "nickname",
    "birthday": "birthday",
    "category": "category",
    "url": "url",
    "notes": "notes",
    "email": "email",
    "phone": "phone",
    "mobile": "mobile",
    "street": "street",
    "zip": "zip",
    "city": "city",
    "company": "company",
    "title": "title",
    "role": "role",
    "work_email": "workEmail",
    "work_phone": "workPhone",
    "work_mobile": "workMobile",
    "work_street": "workStreet",
    "work_zip": "workZip",
    "work_city": "workCity",
}
TEXT_FIELDS = tuple(JSON_KEYS)


class SocialProfile:
    """
    A username on one of the known social platforms.
    """

    def __init__(self, platform: str, username: str) -> None:
        """
        Initialize SocialProfile object.

        Args:
            platform (str): Platform name, e.g. "GitHub"
            username (str): Username on that platform
        """
        self.platform = platform
        self.username = username

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, SocialProfile):
            return NotImplemented
        return (self.platform, self.username) == (other.platform, other.username)

    def __repr__(self) -> str:
        return f"SocialProfile({self.platform!r}, {self.username!r})"

    def profile_url(self) -> Optional[str]:
        """Get the public profile URL, or None for an unknown platform."""
        known = normalize_platform(self.platform)
        if known is None:
            return None
        return SOCIAL_PROFILE_URLS[known] + self.username

    def to_json(self) -> Dict[str, str]:
        return {"platform": self.platform, "username": self.username}

    @classmethod
    def create(cls, platform: Optional[str], username: Optional[str]) -> Optional['SocialProfile']:
        """
        Create a profile with a normalized platform name.

        Args:
            platform (Optional[str]): Platform label in any casing
            username (Optional[str]): Username, surrounding whitespace is removed

        Returns:
            Optional[SocialProfile]: The profile, or None if the platform is unknown
                or either value is empty
        """
        known = normalize_platform(platform)
        username = (username or "").strip()
        if known is None or not username:
            if platform or username:
                logger.debug(f"Dropping social profile {platform!r}: {username!r}")
            return None
        return cls(known.value, username)


class Contact:
    """
    A single entry of the address book.
    """

    def __init__(
            self,
            id: Optional[int] = None,
            *,
            first_name: str = "",
            last_name: str = "",
            nickname: str = "",
            birthday: str = "",
            category: str = "",
            url: str = "",
            notes: str = "",
            email: str = "",
            phone: str = "",
            mobile: str = "",
            street: str = "",
            zip: str = "",
            city: str = "",
            company: str = "",
            title: str = "",
            role: str = "",
            work_email: str = "",
            work_phone: str = "",
            work_mobile: str = "",
            work_street: str = "",
            work_zip: str = "",
            work_city: str = "",
            social_media: Optional[Iterable[SocialProfile]] = None,
            is_favorite: bool = False
    ) -> None:
        """
        Initialize Contact object.

        Args:
            id (Optional[int]): Unique identifier, None until the contact is stored
            first_name, last_name (str): At least one of them must be set before storing
            social_media (Optional[Iterable[SocialProfile]]): Profiles, incomplete ones are dropped
            is_favorite (bool): Whether the contact is pinned to the top of the list

        The remaining keyword arguments are the private and work text fields.
        """
        self.id = id
        self.first_name = first_name
        self.last_name = last_name
        self.nickname = nickname
        self.birthday = birthday
        self.category = category
        self.url = url
        self.notes = notes
        self.email = email
        self.phone = phone
        self.mobile = mobile
        self.street = street
        self.zip = zip
        self.city = city
        self.company = company
        self.title = title
        self.role = role
        self.work_email = work_email
        self.work_phone = work_phone
        self.work_mobile = work_mobile
        self.work_street = work_street
        self.work_zip = work_zip
        self.work_city = work_city
        self.social_media = social_media
        self.is_favorite = bool(is_favorite)

    @property
    def name(self) -> str:
        """Combined display name, always derived from first and last name."""
        return f"{self.first_name or ''} {self.last_name or ''}".strip()

    @property
    def social_media(self) -> List[SocialProfile]:
        return self._social_media

    @social_media.setter
    def social_media(self, profiles: Optional[Iterable[SocialProfile]]) -> None:
        self._social_media = [
            profile for profile in (profiles or ())
            if profile.platform and profile.username
        ]

    def __repr__(self) -> str:
        return f"Contact(id={self.id!r}, name={self.name!r})"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Contact):
            return NotImplemented
        return self.to_json() == other.to_json()

    def has_identity(self) -> bool:
        """A contact needs a first or a last name to be stored."""
        return bool((self.first_name or "").strip() or (self.last_name or "").strip())

    def copy(self) -> 'Contact':
        return Contact.from_json(self.to_json())

    def update_from(self, other: 'Contact') -> None:
        """Overwrite every field with the values of other, keeping id and favorite flag.

        Args:
            other (Contact): The contact providing the new values
        """
        for field in TEXT_FIELDS:
            setattr(self, field, getattr(other, field))
        self.social_media = [SocialProfile(p.platform, p.username) for p in other.social_media]

    def to_json(self) -> Dict[str, Any]:
        """Convert contact to JSON-serializable dict."""
        json_dict = {"id": self.id}
        for field, key in JSON_KEYS.items():
            json_dict[key] = getattr(self, field) or ""
        json_dict["name"] = self.name
        json_dict["socialMedia"] = [profile.to_json() for profile in self.social_media]
        json_dict["isFavorite"] = self.is_favorite
        return json_dict

    @classmethod
    def from_json(cls, data: Dict) -> 'Contact':
        """Create a contact from JSON data. The stored name is ignored and recomputed."""
        fields = {field: data.get(key) or "" for field, key in JSON_KEYS.items()}
        profiles = [
            SocialProfile(entry.get("platform") or "", entry.get("username") or "")
            for entry in data.get("socialMedia") or ()
        ]
        return cls(
            data.get("id"),
            social_media=profiles,
            is_favorite=data.get("isFavorite", False),
            **fields
        )


class ContactStore:
    """
    Process-wide application state with explicit change notification.

    Every committed change calls the subscribed listeners synchronously.
    Persist listeners are only called when the contact collection changed.
    """

    def __init__(self) -> None:
        """Initialize an empty store."""
        self.contacts: List[Contact] = []
        self.search_term = ""
        self.category_filter = ""
        self.sort = {"by": "first_name", "order": "asc"}
        self.selected_contact_ids = set()
        self.next_id = 1
        self._listeners: List[Callable[[], None]] = []
        self._persist_listeners: List[Callable[[], None]] = []
        self._batch_snapshot: Optional[List[Dict[str, Any]]] = None

    def __len__(self) -> int:
        """Get number of contacts."""
        return len(self.contacts)

    def __iter__(self):
        return iter(self.contacts)

    def subscribe(self, listener: Callable[[], None]) -> None:
        """Register a listener for every state change."""
        if listener not in self._listeners:
            self._listeners.append(listener)

    def subscribe_to_persist(self, listener: Callable[[], None]) -> None:
        """Register a listener for changes of the contact collection only."""
        if listener not in self._persist_listeners:
            self._persist_listeners.append(listener)

    def _snapshot(self) -> List[Dict[str, Any]]:
        return [contact.to_json() for contact in self.contacts]

    def update(self, mutator: Callable[['ContactStore'], None]) -> None:
        """
        Apply a change and notify the listeners.

        Args:
            mutator (Callable[[ContactStore], None]): Function changing the store in place
        """
        if self._batch_snapshot is not None or not self._persist_listeners:
            mutator(self)
            self._notify()
            return
        before = self._snapshot()
        mutator(self)
        contacts_changed = before != self._snapshot()
        self._notify()
        if contacts_changed:
            self._notify_persist()

    @contextmanager
    def batch(self):
        """
        Group several updates so the persist listeners run at most once.

        State listeners are still called for every update. Nested batches
        are merged into the outermost one.
        """
        if self._batch_snapshot is not None:
            yield self
            return
        self._batch_snapshot = self._snapshot()
        try:
            yield self
        finally:
            before, self._batch_snapshot = self._batch_snapshot, None
            if before != self._snapshot():
                self._notify_persist()

    def _notify(self) -> None:
        for listener in list(self._listeners):
            listener()

    def _notify_persist(self) -> None:
        for listener in list(self._persist_listeners):
            listener()

    def set(self, **changes: Any) -> None:
        """Set one or more state attributes, e.g. store.set(search_term="max")."""
        unknown = [key for key in changes if key.startswith("_") or not hasattr(self, key)]
        if unknown:
            raise AttributeError(f"Unknown state attribute(s): {', '.join(unknown)}")

        def _assign(store):
            for key, value in changes.items():
                setattr(store, key, value)
        self.update(_assign)

    def allocate_id(self) -> int:
        """Get the next free id (post-increment)."""
        allocated = self.next_id
        self.next_id += 1
        return allocated

    def reset_next_id(self) -> None:
        """Set the id counter to one above the highest stored id."""
        ids = [contact.id for contact in self.contacts if isinstance(contact.id, int)]
        self.next_id = max(ids, default=0) + 1

    def get(self, contact_id: int) -> Optional[Contact]:
        """
        Get a contact by its ID.

        Args:
            contact_id (int): The ID of the contact to retrieve

        Returns:
            Optional[Contact]: The contact if found, None otherwise
        """
        for contact in self.contacts:
            if contact.id == contact_id:
                return contact
        return None

    def append(self, contact: Contact) -> Contact:
        """
        Add a contact, allocating an id if it has none.

        Raises:
            TypeError: If contact is not a Contact object
        """
        if not isinstance(contact, Contact):
            raise TypeError("contact must be a Contact object")

        def _append(store):
            if contact.id is None:
                contact.id = store.allocate_id()
            elif contact.id >= store.next_id:
                store.next_id = contact.id + 1
            store.contacts.append(contact)
        self.update(_append)
        return contact

    def replace(self, contact: Contact) -> None:
        """
        Replace the stored contact with the same id.

        Raises:
            KeyError: If no contact with that id exists
        """
        for index, stored in enumerate(self.contacts):
            if stored.id == contact.id:
                break
        else:
            raise KeyError(contact.id)

        def _replace(store):
            store.contacts[index] = contact
        self.update(_replace)

    def remove(self, contact_ids: Iterable[int]) -> int:
        """
        Remove contacts by id.

        Returns:
            int: Number of removed contacts
        """
        contact_ids = set(contact_ids)
        count = sum(1 for contact in self.contacts if contact.id in contact_ids)

        def _remove(store):
            store.contacts = [c for c in store.contacts if c.id not in contact_ids]
            store.selected_contact_ids -= contact_ids
        self.update(_remove)
        return count

    def to_json(self) -> List[Dict[str, Any]]:
        """Convert the collection to a JSON-serializable list."""
        return self._snapshot()
