"""
Record Store

A row-oriented store over named tables (see schemas.py for the layouts).
Every lookup is a linear scan of the key column in storage order, and the
store performs no validation or uniqueness checks of its own: callers check
before they write.

Two physical backends sit behind the same logical contract:
- MemoryBackend: process-local lists (default, and what the tests use)
- MongoBackend:  one MongoDB collection per table, rows ordered by _id

There is no locking. Two requests updating the same row race and the later
write wins.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterator, List, Optional, Tuple

from pymongo import ASCENDING, MongoClient
from pymongo.database import Database

from config import Settings
from log import get_logger
from schemas import Record, TableSchema

logger = get_logger("store")

RowRef = Any


class StoreError(RuntimeError):
    pass


# --------------------- Backends ---------------------

class Backend(ABC):
    name = "abstract"

    @abstractmethod
    def has_table(self, table: str) -> bool: ...

    @abstractmethod
    def create_table(self, table: str, header: List[str], frozen_rows: int) -> None:
        """Create the table with its header row. No-op if it exists."""

    @abstractmethod
    def list_tables(self) -> List[str]: ...

    @abstractmethod
    def header(self, table: str) -> List[str]: ...

    @abstractmethod
    def frozen_rows(self, table: str) -> int: ...

    @abstractmethod
    def scan(self, table: str) -> Iterator[Tuple[RowRef, List[Any]]]:
        """Yield (row reference, values) for every data row, in storage order."""

    @abstractmethod
    def append(self, table: str, values: List[Any]) -> None: ...

    @abstractmethod
    def write(self, table: str, ref: RowRef, values: List[Any]) -> None: ...

    @abstractmethod
    def remove(self, table: str, ref: RowRef) -> None: ...


@dataclass
class _MemoryTable:
    header: List[str]
    frozen_rows: int
    rows: List[List[Any]] = field(default_factory=list)


class MemoryBackend(Backend):
    name = "memory"

    def __init__(self):
        self._tables: Dict[str, _MemoryTable] = {}

    def _table(self, table: str) -> _MemoryTable:
        try:
            return self._tables[table]
        except KeyError:
            raise StoreError(f"Table {table!r} does not exist") from None

    def has_table(self, table: str) -> bool:
        return table in self._tables

    def create_table(self, table: str, header: List[str], frozen_rows: int) -> None:
        if table not in self._tables:
            self._tables[table] = _MemoryTable(header=list(header), frozen_rows=frozen_rows)

    def list_tables(self) -> List[str]:
        return list(self._tables)

    def header(self, table: str) -> List[str]:
        return list(self._table(table).header)

    def frozen_rows(self, table: str) -> int:
        return self._table(table).frozen_rows

    def scan(self, table: str) -> Iterator[Tuple[RowRef, List[Any]]]:
        # Snapshot so a write during iteration does not shift indices under us
        for index, values in enumerate(list(self._table(table).rows)):
            yield index, list(values)

    def append(self, table: str, values: List[Any]) -> None:
        self._table(table).rows.append(list(values))

    def write(self, table: str, ref: RowRef, values: List[Any]) -> None:
        self._table(table).rows[ref] = list(values)

    def remove(self, table: str, ref: RowRef) -> None:
        del self._table(table).rows[ref]


class MongoBackend(Backend):
    """Each table is a collection of {"values": [...]} documents.

    Headers live in the _tables collection, keyed by table name.
    """

    name = "mongodb"
    META = "_tables"

    def __init__(self, db: Database):
        self.db = db

    def has_table(self, table: str) -> bool:
        return self.db[self.META].count_documents({"_id": table}, limit=1) > 0

    def create_table(self, table: str, header: List[str], frozen_rows: int) -> None:
        self.db[self.META].update_one(
            {"_id": table},
            {"$setOnInsert": {"header": list(header), "frozen_rows": frozen_rows}},
            upsert=True,
        )

    def list_tables(self) -> List[str]:
        return [doc["_id"] for doc in self.db[self.META].find({}, {"_id": 1})]

    def _meta(self, table: str) -> Dict[str, Any]:
        doc = self.db[self.META].find_one({"_id": table})
        if not doc:
            raise StoreError(f"Table {table!r} does not exist")
        return doc

    def header(self, table: str) -> List[str]:
        return list(self._meta(table).get("header", []))

    def frozen_rows(self, table: str) -> int:
        return int(self._meta(table).get("frozen_rows", 1))

    def scan(self, table: str) -> Iterator[Tuple[RowRef, List[Any]]]:
        for doc in self.db[table].find({}, sort=[("_id", ASCENDING)]):
            yield doc["_id"], list(doc.get("values") or [])

    def append(self, table: str, values: List[Any]) -> None:
        if not self.has_table(table):
            raise StoreError(f"Table {table!r} does not exist")
        self.db[table].insert_one({"values": list(values)})

    def write(self, table: str, ref: RowRef, values: List[Any]) -> None:
        self.db[table].update_one({"_id": ref}, {"$set": {"values": list(values)}})

    def remove(self, table: str, ref: RowRef) -> None:
        self.db[table].delete_one({"_id": ref})


# --------------------- Store ---------------------

class RecordStore:
    def __init__(self, backend: Backend):
        self.backend = backend

    def has_table(self, table: TableSchema) -> bool:
        return self.backend.has_table(table.name)

    def ensure_table(self, table: TableSchema) -> None:
        if not self.backend.has_table(table.name):
            logger.info("create_table", extra={"data": {"table": table.name, "header": table.header}})
            self.backend.create_table(table.name, table.header, table.frozen_rows)

    def rows(self, table: TableSchema) -> Iterator[Record]:
        """Every record of the table in storage order. A missing table has none."""
        if not self.has_table(table):
            return
        for _, values in self.backend.scan(table.name):
            yield table.model.from_row(values)

    def find_all(self, table: TableSchema, predicate: Optional[Callable[[Any], bool]] = None) -> List[Any]:
        return [r for r in self.rows(table) if predicate is None or predicate(r)]

    def find_first(self, table: TableSchema, predicate: Callable[[Any], bool]) -> Optional[Any]:
        for record in self.rows(table):
            if predicate(record):
                return record
        return None

    def _locate(self, table: TableSchema, key: Any) -> Optional[Tuple[RowRef, List[Any]]]:
        if not self.has_table(table):
            return None
        wanted = table.key_of(key)
        for ref, values in self.backend.scan(table.name):
            if values and table.key_of(values[0]) == wanted:
                return ref, values
        return None

    def find_row_by_key(self, table: TableSchema, key: Any) -> Optional[Any]:
        found = self._locate(table, key)
        if found is None:
            return None
        return table.model.from_row(found[1])

    def append(self, table: TableSchema, record: Record) -> None:
        self.backend.append(table.name, record.to_row())

    def update_row(self, table: TableSchema, key: Any, **fields: Any) -> bool:
        """Overwrite only the named fields of the first row with this key."""
        unknown = set(fields) - set(table.columns)
        if unknown:
            raise StoreError(f"{table.name} has no column(s) {sorted(unknown)}")
        found = self._locate(table, key)
        if found is None:
            return False
        ref, values = found
        row = list(values) + [None] * (len(table.columns) - len(values))
        for name, value in fields.items():
            row[table.columns.index(name)] = value
        self.backend.write(table.name, ref, row)
        return True

    def replace_row(self, table: TableSchema, key: Any, record: Record) -> bool:
        """Overwrite every column of the first row with this key in one write."""
        found = self._locate(table, key)
        if found is None:
            return False
        self.backend.write(table.name, found[0], record.to_row())
        return True

    def delete_row(self, table: TableSchema, key: Any) -> bool:
        found = self._locate(table, key)
        if found is None:
            return False
        self.backend.remove(table.name, found[0])
        return True

    def describe(self) -> Dict[str, int]:
        """Row count per existing table."""
        return {name: sum(1 for _ in self.backend.scan(name)) for name in self.backend.list_tables()}


def build_store(settings: Settings) -> RecordStore:
    if settings.database_url:
        client = MongoClient(settings.database_url)
        logger.info("store_backend", extra={"data": {"backend": "mongodb", "database": settings.database_name}})
        return RecordStore(MongoBackend(client[settings.database_name]))
    logger.info("store_backend", extra={"data": {"backend": "memory"}})
    return RecordStore(MemoryBackend())
