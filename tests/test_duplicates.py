import pytest

from Vcf_Contact_Manager.data_model import Contact, SocialProfile
from Vcf_Contact_Manager.duplicates import find_duplicate, merge_contacts, plan_merge


@pytest.fixture
def existing():
    return [
        Contact(1, first_name="Max", last_name="Mustermann", email="max@example.com"),
        Contact(2, first_name="Erika", last_name="Musterfrau", work_email="erika@work.example"),
        Contact(3, last_name="Solo"),
    ]


def test_name_match_ignores_case_and_whitespace(existing):
    candidate = Contact(first_name="  max ", last_name="MUSTERMANN")
    assert find_duplicate(candidate, existing).id == 1


def test_email_match_across_fields(existing):
    candidate = Contact(first_name="E.", last_name="M.", email="Erika@Work.Example")
    assert find_duplicate(candidate, existing).id == 2

    candidate = Contact(first_name="Maximilian", last_name="M.", work_email="max@example.com")
    assert find_duplicate(candidate, existing).id == 1


def test_name_match_wins_over_email(existing):
    candidate = Contact(first_name="Erika", last_name="Musterfrau", email="max@example.com")
    assert find_duplicate(candidate, existing).id == 2


def test_name_tier_needs_both_names(existing):
    assert find_duplicate(Contact(last_name="Solo"), existing) is None
    assert find_duplicate(Contact(first_name="Max"), existing) is None


def test_no_duplicate(existing):
    candidate = Contact(first_name="Max", last_name="Other", email="other@example.com")
    assert find_duplicate(candidate, existing) is None


def test_empty_emails_never_match():
    existing = [Contact(1, first_name="A", last_name="B")]
    assert find_duplicate(Contact(first_name="C", last_name="D"), existing) is None


def test_exclude_id_skips_the_edited_contact(existing):
    edited = Contact(1, first_name="Max", last_name="Mustermann", email="max@example.com")
    assert find_duplicate(edited, existing, exclude_id=1) is None
    assert find_duplicate(edited, existing, exclude_id=2).id == 1


def test_plan_merge_marks_conflicts():
    stored = Contact(1, first_name="Max", last_name="Mustermann", city="Berlin", phone="123")
    incoming = Contact(first_name="Max", last_name="Mustermann", city="Hamburg", email="max@example.com")
    rows = {row.field: row for row in plan_merge(stored, incoming)}

    assert set(rows) == {"first_name", "last_name", "city", "phone", "email"}
    assert rows["city"].conflict
    assert rows["city"].selected == "Berlin"
    assert not rows["first_name"].conflict
    assert not rows["email"].conflict and rows["email"].selected == "max@example.com"
    assert not rows["phone"].conflict and rows["phone"].selected == "123"


def test_merge_field_choose_rejects_unknown_source():
    row = plan_merge(Contact(city="A"), Contact(city="B"))[0]
    row.choose("new")
    assert row.selected == "B"
    with pytest.raises(ValueError):
        row.choose("both")


def test_merge_contacts():
    stored = Contact(7, first_name="Max", last_name="Mustermann", city="Berlin", phone="123",
                     social_media=[SocialProfile("GitHub", "old")], is_favorite=True)
    incoming = Contact(first_name="Max", last_name="Mustermann", city="Hamburg", zip="20095",
                       notes="new note", social_media=[SocialProfile("GitHub", "new"),
                                                      SocialProfile("Xing", "max")])

    merged = merge_contacts(stored, incoming)
    assert merged.id == 7
    assert merged.is_favorite
    assert merged.city == "Berlin"
    assert merged.zip == "20095"
    assert merged.phone == "123"
    assert merged.notes == "new note"
    assert merged.social_media == [SocialProfile("GitHub", "old"), SocialProfile("Xing", "max")]
    # The inputs stay untouched
    assert stored.zip == ""


def test_merge_contacts_with_choices():
    stored = Contact(7, first_name="Max", last_name="Mustermann", city="Berlin", phone="123",
                     social_media=[SocialProfile("GitHub", "old")])
    incoming = Contact(first_name="Max", last_name="Mustermann", city="Hamburg",
                       social_media=[SocialProfile("GitHub", "new")])

    merged = merge_contacts(stored, incoming, {"city": "new", "phone": "new", "social_media": "new"})
    assert merged.city == "Hamburg"
    # Only conflicting fields follow the choice
    assert merged.phone == "123"
    assert merged.social_media == [SocialProfile("GitHub", "new")]
