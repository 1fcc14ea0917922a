"""
Contract source selection.

Contest repositories mix production contracts with Foundry tests and
deployment scripts in the same tree. Names alone decide eligibility.
"""

import re

from .content import ContentEntry

SOURCE_SUFFIX = ".sol"
TEST_SUFFIX = ".t.sol"
SCRIPT_SUFFIX = ".s.sol"
TEST_MARKER = "Test"

_PRAGMA_RE = re.compile(r"^pragma solidity (\^?[0-9.]+);")


def is_eligible_name(name: str) -> bool:
    """Check whether a file name looks like a production contract source."""
    return (
        name.endswith(SOURCE_SUFFIX)
        and not name.endswith(TEST_SUFFIX)
        and not name.endswith(SCRIPT_SUFFIX)
        and TEST_MARKER not in name
    )


def is_eligible(entry: ContentEntry) -> bool:
    """Check whether a listing entry is an eligible contract source file."""
    if not entry.is_file or entry.name is None:
        return False
    return is_eligible_name(entry.name)


def contract_identifier(file_name: str) -> str:
    """Strip the source suffix: `Token.sol` -> `Token`."""
    if file_name.endswith(SOURCE_SUFFIX):
        return file_name[: -len(SOURCE_SUFFIX)]
    return file_name


def pragma_version(source: str) -> str | None:
    """Return the version of the first `pragma solidity` line, e.g. `^0.8.20`."""
    for line in source.splitlines():
        match = _PRAGMA_RE.match(line)
        if match:
            return match.group(1)
    return None
