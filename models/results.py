"""Tagged results returned by the record store for bulk writes.

A bulk write ends in exactly one of three shapes:

- ``Ok``: every record was written.
- ``PartialFailure``: some records were written, the rest carry a reason.
- ``Err``: nothing usable came back from the store.

Callers branch on the variant with ``isinstance`` instead of inspecting
exceptions raised by the driver.
"""
from dataclasses import dataclass, field
from typing import Any, Dict, List, Union


@dataclass(frozen=True)
class WriteFailure:
    """A single element that the store refused; ``index`` is its position in the submitted batch."""
    index: int
    reason: str


@dataclass
class Ok:
    records: List[Dict[str, Any]] = field(default_factory=list)
    matched_count: int = 0
    modified_count: int = 0


@dataclass
class PartialFailure:
    records: List[Dict[str, Any]] = field(default_factory=list)
    failures: List[WriteFailure] = field(default_factory=list)
    matched_count: int = 0
    modified_count: int = 0


@dataclass
class Err:
    kind: str
    message: str = ""


StoreResult = Union[Ok, PartialFailure, Err]
