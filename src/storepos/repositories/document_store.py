from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Protocol


@dataclass(frozen=True)
class Versioned:
    key: str
    data: dict
    version: int


class DocumentStore(Protocol):
    """Key-value document store with a compare-and-swap primitive.

    Documents live in flat collections and carry a version that increases on
    every write. Conditional writes succeed only when the caller's expected
    version still matches the stored one.
    """

    def get(self, collection: str, key: str) -> Optional[Versioned]: ...
    def list(self, collection: str) -> list[Versioned]: ...
    def new_key(self, collection: str) -> str: ...
    def insert_if_absent(self, collection: str, key: str, data: dict) -> bool: ...
    def compare_and_set(self, collection: str, key: str, expected_version: int, data: dict) -> bool: ...
    def delete_if_version(self, collection: str, key: str, expected_version: int) -> bool: ...
    def put(self, collection: str, key: str, data: dict) -> None: ...
