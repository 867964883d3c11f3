"""Key-value persistence collaborator consumed by the lending core.

Records are plain JSON-compatible dicts keyed by ``(table, id)``. Each call
either succeeds or fails as a whole; the core assumes nothing else.
"""

from __future__ import annotations
import copy
from typing import Any, Dict, List, Mapping, Optional, Protocol

Record = Dict[str, Any]

BOOKS = "books"
LOANS = "loans"
REQUESTS = "requests"
USERS = "users"

def matches(record: Mapping[str, Any], filter: Optional[Mapping[str, Any]]) -> bool:
    if not filter:
        return True
    return all(record.get(k) == v for k, v in filter.items())

class Store(Protocol):
    def get(self, table: str, id: str) -> Optional[Record]: ...

    def get_all(self, table: str, filter: Optional[Mapping[str, Any]] = None) -> List[Record]: ...

    def put(self, table: str, record: Record) -> None: ...

    def patch(self, table: str, id: str, fields: Mapping[str, Any]) -> None: ...

    def delete(self, table: str, id: str) -> bool: ...

class MemoryStore:
    def __init__(self) -> None:
        self._tables: Dict[str, Dict[str, Record]] = {}

    def get(self, table: str, id: str) -> Optional[Record]:
        rec = self._tables.get(table, {}).get(id)
        return copy.deepcopy(rec) if rec is not None else None

    def get_all(self, table: str, filter: Optional[Mapping[str, Any]] = None) -> List[Record]:
        rows = self._tables.get(table, {}).values()
        return [copy.deepcopy(r) for r in rows if matches(r, filter)]

    def put(self, table: str, record: Record) -> None:
        self._tables.setdefault(table, {})[record["id"]] = copy.deepcopy(record)

    def patch(self, table: str, id: str, fields: Mapping[str, Any]) -> None:
        rows = self._tables.setdefault(table, {})
        if id not in rows:
            raise KeyError(f"{table}/{id}")
        merged = {**rows[id], **copy.deepcopy(dict(fields))}
        rows[id] = merged

    def delete(self, table: str, id: str) -> bool:
        return self._tables.get(table, {}).pop(id, None) is not None
