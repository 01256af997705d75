"""Accounts file loading."""

import pytest
from conftest import ALICE, BOB

from accounts import load_accounts, parse_account_line


@pytest.mark.parametrize(
    "line, expected",
    [
        ("Main = " + ALICE, ("Main", ALICE)),
        ("Main " + ALICE + "  # cold", ("Main", ALICE)),
        ("  # comment", None),
        ("", None),
        ("lonely", None),
    ],
)
def test_parse_account_line(line, expected):
    assert parse_account_line(line) == expected


def test_load_accounts(tmp_path):
    path = tmp_path / "my_accounts.txt"
    path.write_text(f"# wallets\nMain = {ALICE}\n\nStash {BOB}\n")

    assert load_accounts(path) == {"Main": ALICE, "Stash": BOB}


def test_load_accounts_rejects_bad_address(tmp_path):
    path = tmp_path / "my_accounts.txt"
    path.write_text("Main = not-an-address\n")

    with pytest.raises(ValueError, match="line 1"):
        load_accounts(path)


def test_load_accounts_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_accounts(tmp_path / "missing.txt")
