import pytest
import os
from Vcf_Contact_Manager.data_model import Contact, ContactStore, SocialProfile


def pytest_collection_modifyitems(config, items):
    """
    Moves the command line tests in test_exporter.py to the end.
    """
    target_file = "test_exporter.py"

    cli_tests = []
    remaining_tests = []

    for item in items:
        if target_file in item.nodeid:
            cli_tests.append(item)
        else:
            remaining_tests.append(item)

    items[:] = remaining_tests + cli_tests


@pytest.fixture
def data_dir():
    return os.path.join(os.path.dirname(__file__), "data")


@pytest.fixture
def sample_vcf(data_dir):
    with open(os.path.join(data_dir, "contacts.vcf"), "r", encoding="utf-8") as f:
        return f.read()


@pytest.fixture
def store():
    return ContactStore()


@pytest.fixture
def max_mustermann():
    return Contact(
        first_name="Max",
        last_name="Mustermann",
        nickname="Maxi",
        birthday="1985-07-23",
        category="Friends",
        notes="Met at the conference\nLikes coffee",
        email="max@example.com",
        mobile="0171 1234567",
        street="Hauptstraße 1",
        zip="10115",
        city="Berlin",
        company="Müller & Söhne GmbH",
        title="Engineer",
        work_email="m.mustermann@example.org",
        work_phone="030 987654",
        work_city="Potsdam",
        social_media=[SocialProfile("GitHub", "maxm"), SocialProfile("LinkedIn", "max-mustermann")],
    )


@pytest.fixture
def filled_store(store, max_mustermann):
    store.append(max_mustermann)
    store.append(Contact(first_name="Erika", last_name="Musterfrau", email="erika@example.com",
                         company="ACME", category="Work", city="Hamburg"))
    store.append(Contact(first_name="anna", last_name="Zander", phone="040 123456", is_favorite=True))
    store.append(Contact(last_name="Übel", street="Ringstraße 3"))
    return store
