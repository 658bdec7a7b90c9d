import json
import os
import subprocess
import pytest


@pytest.fixture
def command_runner():
    """
    A pytest fixture to simplify running commands.  This is a helper
    function that you can use in multiple tests.
    """
    def _run_command(command_list, check=True):
        """
        Runs a command and returns the result.

        Args:
            command_list (list): A list of strings representing the command
                and its arguments (e.g., ["vcfcontacts", "--list"]).
            check (bool, optional):  If True, raise an exception if the
                command returns a non-zero exit code.  Defaults to True.

        Returns:
            subprocess.CompletedProcess: The result of the command.
        """
        return subprocess.run(
            command_list,
            capture_output=True,
            text=True,
            check=check,
        )
    return _run_command


def test_sanity_check(command_runner):
    """
    This is a basic sanity check to make sure all modules can be imported
    This runs the manager without any arguments.  It should fail with a
    message about missing actions.
    """
    result = command_runner(["vcfcontacts"], False)
    expected_stderr = "You must specify at least one action"
    assert expected_stderr in result.stderr, f"STDERR was: {result.stderr}"
    assert result.returncode == 2


def test_import_list_and_export(command_runner, data_dir, tmp_path):
    store = str(tmp_path / "contacts.json")
    vcf = os.path.join(data_dir, "contacts.vcf")

    result = command_runner(["vcfcontacts", "--store", store, "--import", vcf])
    assert "5 contacts imported." in result.stderr
    with open(store, "r", encoding="utf-8") as f:
        assert len(json.load(f)["contacts"]) == 5

    # The airline card has no last name and no e-mail, so it is not a duplicate
    result = command_runner(["vcfcontacts", "--store", store, "--import", vcf, "--on-duplicate", "skip"])
    assert "1 contacts imported, 4 skipped." in result.stderr

    result = command_runner(["vcfcontacts", "--store", store, "--list", "--sort-by", "last_name"])
    assert "John Butler 🌟💫🌟" in result.stdout
    assert "Yard Lawn Guy, Inc." in result.stdout

    exported = str(tmp_path / "export.vcf")
    command_runner(["vcfcontacts", "--store", store, "--export", exported, "--ids", "1", "2"])
    with open(exported, "r", encoding="utf-8", newline="") as f:
        assert f.read().count("BEGIN:VCARD\r\n") == 2


def test_add_edit_and_favorite(command_runner, tmp_path):
    store = str(tmp_path / "contacts.json")

    result = command_runner(["vcfcontacts", "--store", store, "--add", "first_name=Max",
                             "lastName=Mustermann", "email=max@example.com", "social=github:maxm"])
    assert "Saved contact 1: Max Mustermann" in result.stdout

    command_runner(["vcfcontacts", "--store", store, "--edit", "1", "--add", "city=Berlin"])
    command_runner(["vcfcontacts", "--store", store, "--favorite", "1"])
    with open(store, "r", encoding="utf-8") as f:
        contact = json.load(f)["contacts"][0]
    assert contact["city"] == "Berlin"
    assert contact["email"] == "max@example.com"
    assert contact["isFavorite"] is True
    assert contact["socialMedia"] == [{"platform": "GitHub", "username": "maxm"}]

    result = command_runner(["vcfcontacts", "--store", store, "--stats"])
    assert "Contacts:            1" in result.stdout


def test_invalid_input(command_runner, tmp_path):
    store = str(tmp_path / "contacts.json")

    result = command_runner(["vcfcontacts", "--store", store, "--add", "zip=123", "last_name=Doe"], False)
    assert result.returncode == 1
    assert "ZIP code must have 5 digits" in result.stderr

    result = command_runner(["vcfcontacts", "--store", store, "--add", "shoe_size=44"], False)
    assert result.returncode == 2
    assert "Unknown contact field" in result.stderr

    result = command_runner(["vcfcontacts", "--store", store, "--delete", "1", "--export",
                             str(tmp_path / "empty.vcf")], False)
    assert result.returncode == 1
    assert "No contacts to export" in result.stderr
