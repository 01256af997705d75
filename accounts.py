"""
Account loader module - loads wallet addresses from text files.
"""

from pathlib import Path

from balance_derive.utils import validate_ss58_address


def parse_account_line(line: str) -> tuple[str, str] | None:
    """
    Parse one accounts file line.

    Accepts "name = address" or "name address"; returns None for blank,
    comment and incomplete lines.
    """
    line = line.strip()
    if not line or line.startswith("#"):
        return None

    if "=" in line:
        name, address = line.split("=", 1)
        return name.strip(), address.strip()

    parts = line.split()
    if len(parts) < 2:
        return None
    return parts[0], parts[1]


def load_accounts(file_path: str | Path) -> dict[str, str]:
    """
    Load accounts from a text file.

    File format:
        # Comment line
        AccountName = WalletAddress

    Args:
        file_path: Path to the accounts file

    Returns:
        Dict of {name: address}

    Raises:
        FileNotFoundError: If the file does not exist
        ValueError: If an invalid SS58 address is found
    """
    path = Path(file_path)
    if not path.exists():
        raise FileNotFoundError(f"Accounts file not found: {path}")

    accounts = {}
    with open(path, "r") as f:
        for line_num, line in enumerate(f, 1):
            parsed = parse_account_line(line)
            if parsed is None:
                continue
            name, address = parsed
            if not validate_ss58_address(address):
                raise ValueError(f"Invalid SS58 address at line {line_num}: {name} = {address}")
            accounts[name] = address

    return accounts
