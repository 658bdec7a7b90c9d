#!/usr/bin/python3

import logging
import os
from argparse import ArgumentParser
from sys import exit
from typing import Dict, List, Tuple
from Vcf_Contact_Manager import __version__
from Vcf_Contact_Manager.contacts import DuplicateContactError, SORT_FIELDS, SORT_ORDERS
from Vcf_Contact_Manager.contacts import contact_statistics, create_html, delete_contacts, group_by_letter
from Vcf_Contact_Manager.contacts import resolve_merge, save_contact, selected_contacts, toggle_favorite
from Vcf_Contact_Manager.contacts import visible_contacts
from Vcf_Contact_Manager.data_model import Contact, ContactStore, JSON_KEYS, SocialProfile
from Vcf_Contact_Manager.duplicates import MERGE_FIELDS
from Vcf_Contact_Manager.storage import open_store
from Vcf_Contact_Manager.utility import DEFAULT_HTML_NAME, DEFAULT_STORE_NAME, DEFAULT_VCF_NAME
from Vcf_Contact_Manager.utility import format_german_phone_number
from Vcf_Contact_Manager.vcf_handler import VcfReadError, export_contacts_to_vcf, import_summary
from Vcf_Contact_Manager.vcf_handler import import_vcf, read_vcf_file


logger = logging.getLogger(__name__)

# Accept both the attribute names and the keys of the JSON file on the command line
FIELD_NAMES = {**{field: field for field in JSON_KEYS}, **{key: field for field, key in JSON_KEYS.items()}}
ACTIONS = ("import_file", "export", "list", "stats", "html", "add", "delete", "favorite")


def setup_argument_parser() -> ArgumentParser:
    """Set up and return the argument parser with all options."""
    parser = ArgumentParser(
        description='A contact manager that keeps your address book in a JSON file '
                    'and imports and exports contacts as vCard 3.0 (VCF).',
        epilog=f'VCF Contact Manager: {__version__} Licensed with MIT.'
    )

    # Storage
    storage_group = parser.add_argument_group('Storage')
    storage_group.add_argument(
        "-s", "--store", dest="store", default=DEFAULT_STORE_NAME,
        help=f"Path to the JSON file holding the contacts (default: {DEFAULT_STORE_NAME})"
    )
    storage_group.add_argument(
        "--seed", dest="seed", default=None,
        help="JSON file with sample contacts, loaded when the store is empty"
    )

    # Import and export
    vcf_group = parser.add_argument_group('Import/Export')
    vcf_group.add_argument(
        "--import", dest="import_file", default=None,
        help="Import the contacts of a vCard file"
    )
    vcf_group.add_argument(
        "--encoding", dest="encoding", default="utf-8",
        help="Encoding of the imported vCard file (default: utf-8)"
    )
    vcf_group.add_argument(
        "--on-duplicate", dest="on_duplicate", default="ask", choices=("ask", "replace", "skip"),
        help="What to do when an imported or added contact already exists (default: ask)"
    )
    vcf_group.add_argument(
        "--export", dest="export", default=None, nargs='?', const=DEFAULT_VCF_NAME,
        help=f"Export the contacts to a vCard file (default: {DEFAULT_VCF_NAME})"
    )
    vcf_group.add_argument(
        "--ids", dest="ids", default=None, nargs='+', type=int,
        help="Only export the contacts with these ids"
    )

    # Listing
    list_group = parser.add_argument_group('Listing')
    list_group.add_argument(
        "-l", "--list", dest="list", default=False, action='store_true',
        help="List the contacts grouped by initial letter"
    )
    list_group.add_argument(
        "--search", dest="search", default=None,
        help="Only show contacts containing this text in any field"
    )
    list_group.add_argument(
        "--category", dest="category", default=None,
        help="Only show contacts of this category, use 'favorites' for favorites"
    )
    list_group.add_argument(
        "--sort-by", dest="sort_by", default=None, choices=SORT_FIELDS,
        help="Field to sort by, remembered in the store (default: first_name)"
    )
    list_group.add_argument(
        "--order", dest="order", default=None, choices=SORT_ORDERS,
        help="Sort order, remembered in the store (default: asc)"
    )
    list_group.add_argument(
        "--stats", dest="stats", default=False, action='store_true',
        help="Show how many contacts lack a company, title, e-mail, address or mobile number"
    )
    list_group.add_argument(
        "--html", dest="html", default=None, nargs='?', const=DEFAULT_HTML_NAME,
        help=f"Render the listed contacts as HTML (default: {DEFAULT_HTML_NAME})"
    )
    list_group.add_argument(
        "-t", "--template", dest="template", default=None,
        help="Path to custom HTML template"
    )
    list_group.add_argument(
        "--headline", dest="headline", default="Contacts",
        help="The headline of the HTML page"
    )

    # Editing
    edit_group = parser.add_argument_group('Editing')
    edit_group.add_argument(
        "--add", dest="add", default=None, nargs='+', metavar="FIELD=VALUE",
        help="Create a contact, e.g. --add first_name=Max lastName=Mustermann social=GitHub:max"
    )
    edit_group.add_argument(
        "--edit", dest="edit", default=None, type=int, metavar="ID",
        help="Update the contact with this id using the values of --add instead of creating one"
    )
    edit_group.add_argument(
        "--delete", dest="delete", default=None, nargs='+', type=int, metavar="ID",
        help="Delete the contacts with these ids"
    )
    edit_group.add_argument(
        "--favorite", dest="favorite", default=None, nargs='+', type=int, metavar="ID",
        help="Toggle the favorite flag of the contacts with these ids"
    )

    # Miscellaneous
    misc_group = parser.add_argument_group('Miscellaneous')
    misc_group.add_argument(
        "--debug", dest="debug", default=False, action='store_true',
        help="Show debug messages"
    )

    return parser


def parse_fields(parser: ArgumentParser, items: List[str]) -> Tuple[Dict[str, str], List[SocialProfile]]:
    """Parse FIELD=VALUE pairs, social=Platform:username may repeat."""
    values: Dict[str, str] = {}
    profiles = []
    for item in items:
        if "=" not in item:
            parser.error(f"'{item}' is not in the form FIELD=VALUE.")
        key, value = item.split("=", 1)
        key = key.strip()
        if key == "social":
            platform, _, username = value.partition(":")
            profile = SocialProfile.create(platform, username)
            if profile is None:
                parser.error(f"'{value}' is not a known social platform followed by :username.")
            profiles.append(profile)
        elif key in FIELD_NAMES:
            values[FIELD_NAMES[key]] = value
        else:
            parser.error(f"Unknown contact field: {key}")
    return values, profiles


def validate_args(parser: ArgumentParser, args) -> None:
    """Validate command line arguments."""
    if not any(getattr(args, action) for action in ACTIONS):
        parser.error("You must specify at least one action (--import, --export, --list, "
                     "--stats, --html, --add, --delete or --favorite).")
    if args.edit is not None and not args.add:
        parser.error("--edit needs the new values given with --add.")
    if args.ids is not None and args.export is None:
        parser.error("--ids can only be used together with --export.")
    if args.import_file is not None and not os.path.isfile(args.import_file):
        parser.error("vCard file not found.")
    if args.seed is not None and not os.path.isfile(args.seed):
        parser.error("Seed file not found.")
    if args.template is not None and not os.path.isfile(args.template):
        parser.error("Template file not found.")
    if args.add:
        args.fields, args.profiles = parse_fields(parser, args.add)


def prompt_yes_no(message: str) -> bool:
    """Ask the user a yes/no question until a valid answer is given"""
    while True:
        ans = input(f"{message} (Y/N)").lower()
        if ans == "y":
            return True
        elif ans == "n":
            return False
        else:
            print("Invalid response. Please enter 'Y' or 'N'.")


def duplicate_policy(on_duplicate: str):
    """Get the confirm callback for the chosen duplicate handling."""
    if on_duplicate == "replace":
        return lambda message: True
    if on_duplicate == "skip":
        return lambda message: False
    return prompt_yes_no


def process_import(args, store: ContactStore) -> None:
    """Import a vCard file and report what happened."""
    raw_text = read_vcf_file(args.import_file, args.encoding)
    result = import_vcf(raw_text, store, duplicate_policy(args.on_duplicate))
    logger.info(import_summary(result))


def process_add(args, store: ContactStore) -> None:
    """Create or update a contact, merging it into a duplicate if confirmed."""
    if args.edit is not None:
        stored = store.get(args.edit)
        if stored is None:
            raise KeyError(args.edit)
        # Fields not given on the command line keep their stored values
        entered = stored.copy()
        for field, value in args.fields.items():
            setattr(entered, field, value)
        entered.social_media = entered.social_media + args.profiles
    else:
        entered = Contact(social_media=args.profiles, **args.fields)

    try:
        contact = save_contact(store, entered, args.edit)
    except DuplicateContactError as e:
        message = (f"'{e.candidate.name}' matches the stored contact '{e.duplicate.name}' "
                   f"(id {e.duplicate.id}). Merge them, preferring the new values?")
        if not duplicate_policy(args.on_duplicate)(message):
            logger.info("Nothing saved.")
            return
        choices = {field: "new" for field, _ in MERGE_FIELDS}
        choices["social_media"] = "new"
        contact = resolve_merge(store, e.duplicate, e.candidate, choices, args.edit)
    print(f"Saved contact {contact.id}: {contact.name}")


def process_favorites(args, store: ContactStore) -> None:
    for contact_id in args.favorite:
        state = toggle_favorite(store, contact_id)
        print(f"Contact {contact_id} is {'now' if state else 'no longer'} a favorite")


def print_contacts(store: ContactStore) -> None:
    """Print the visible contacts grouped like the HTML list."""
    contacts = visible_contacts(store)
    if not contacts:
        print("No contacts found.")
        return
    for label, group in group_by_letter(contacts, store.sort["by"], store.sort["order"]):
        print(f"\n{label}")
        for contact in group:
            phone = contact.mobile or contact.phone or contact.work_mobile or contact.work_phone
            details = [value for value in (contact.company, contact.email or contact.work_email,
                                           format_german_phone_number(phone) if phone else "") if value]
            print(f"{contact.id:>5}  {contact.name}" + (f"  ({', '.join(details)})" if details else ""))
    if store.search_term:
        print(f"\n{len(contacts)} of {len(store)} contacts")
    else:
        print(f"\n{len(store)} contact{'s' if len(store) != 1 else ''}")


def print_statistics(store: ContactStore) -> None:
    stats = contact_statistics(store.contacts)
    print(f"Contacts:            {stats['total']}")
    print(f"Without company:     {stats['without_company']}")
    print(f"Without title:       {stats['without_title']}")
    print(f"Without e-mail:      {stats['without_email']}")
    print(f"Without address:     {stats['without_address']}")
    print(f"Without mobile:      {stats['without_mobile']}")


def process_export(args, store: ContactStore) -> None:
    """Export all contacts or only the ones given with --ids."""
    if args.ids is not None:
        missing = [contact_id for contact_id in args.ids if store.get(contact_id) is None]
        if missing:
            raise KeyError(missing[0])
        store.set(selected_contact_ids=set(args.ids))
        contacts = selected_contacts(store)
    else:
        contacts = list(store.contacts)
    export_contacts_to_vcf(contacts, os.path.basename(args.export), os.path.dirname(args.export) or ".")


def apply_view(args, store: ContactStore) -> None:
    """Apply search, category and sort options to the store."""
    changes = {}
    if args.search is not None:
        changes["search_term"] = args.search
    if args.category is not None:
        changes["category_filter"] = args.category
    if args.sort_by is not None or args.order is not None:
        changes["sort"] = {
            "by": args.sort_by or store.sort["by"],
            "order": args.order or store.sort["order"],
        }
    if changes:
        store.set(**changes)


def run(args) -> None:
    store = open_store(args.store, args.seed)

    if args.import_file is not None:
        process_import(args, store)
    if args.add:
        process_add(args, store)
    if args.favorite:
        process_favorites(args, store)
    if args.delete:
        delete_contacts(store, args.delete)

    apply_view(args, store)
    if args.list:
        print_contacts(store)
    if args.stats:
        print_statistics(store)
    if args.html is not None:
        create_html(store, args.html, args.template, args.headline)
    if args.export is not None:
        process_export(args, store)


def main():
    """Main function to run the VCF Contact Manager."""
    # Set up and parse arguments
    parser = setup_argument_parser()
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.debug else logging.INFO,
        format="%(message)s"
    )

    # Validate arguments
    validate_args(parser, args)

    try:
        run(args)
    except VcfReadError as e:
        logger.error(str(e))
        exit(1)
    except KeyError as e:
        logger.error(f"No contact with id {e.args[0]}")
        exit(1)
    except ValueError as e:
        logger.error(str(e))
        exit(1)

    logger.debug("Everything is done!")


if __name__ == "__main__":
    main()
