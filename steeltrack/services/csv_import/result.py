"""
Import result
"""
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List


@dataclass
class ImportResult:
    """
    Outcome of one import call.

    success counts imported rows, or new lots for the combined import.
    skipped counts duplicates, failed counts rejected rows or sales.
    messages keeps skip, error and notice messages in file order.
    """
    success: int = 0
    skipped: int = 0
    failed: int = 0
    inventory_imported: int = 0
    sales_imported: int = 0
    messages: List[str] = field(default_factory=list)

    def add_error(self, message: str) -> None:
        self.failed += 1
        self.messages.append(message)

    def add_skip(self, message: str) -> None:
        self.skipped += 1
        self.messages.append(message)

    def add_notice(self, message: str) -> None:
        self.messages.append(message)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
