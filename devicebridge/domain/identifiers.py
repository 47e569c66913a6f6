"""Deterministic identifiers for published signals."""

from __future__ import annotations

from typing import Union
from uuid import UUID, uuid3

# Shared by every deployment of this driver family; changing it renames
# every timeseries.
ROOT_NAMESPACE = UUID("d8b61708-2797-11e6-836b-0cc47a0f7eea")


def derive(root: Union[UUID, str], name: str) -> str:
    """Return the name-based (v3) UUID of ``name`` under ``root``."""
    if not isinstance(root, UUID):
        root = UUID(root)
    return str(uuid3(root, name))


def derive_all(names, root: Union[UUID, str] = ROOT_NAMESPACE) -> dict[str, str]:
    return {name: derive(root, name) for name in names}
