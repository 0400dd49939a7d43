"""
Human-readable identifier generation.

Codes are a prefix plus a zero-padded number taken from the store's atomic
sequence. Each sequence is seeded from the current record count so codes
continue from data that predates the counter.
"""

import time
from typing import Dict, Tuple

from .storage import StorageInterface


# kind -> (prefix, digits, table)
IDENTIFIER_FORMATS: Dict[str, Tuple[str, int, str]] = {
    "customer": ("CUS", 6, "customers"),
    "ornament": ("ORN", 6, "ornaments"),
    "loan": ("LN", 8, "loans"),
    "payment": ("PAY", 8, "payments"),
}


class IdentifierGenerator:
    """Issues sequential display codes such as CUS000001 and LN00000001"""

    def __init__(self, storage: StorageInterface):
        self.storage = storage

    def next_id(self, kind: str) -> str:
        if kind not in IDENTIFIER_FORMATS:
            raise ValueError(f"Unknown identifier kind: {kind}")
        prefix, digits, table = IDENTIFIER_FORMATS[kind]
        number = self.storage.next_sequence(kind, start=self.storage.count(table))
        return f"{prefix}{number:0{digits}d}"

    @staticmethod
    def receipt_number() -> str:
        """RCP followed by the current epoch time in milliseconds"""
        return f"RCP{int(time.time() * 1000)}"
