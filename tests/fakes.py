"""
In-memory stand-in for the Supabase client used by service tests.

Supports the query-builder subset the services use: select / insert /
update / delete with eq, neq, gte, lte, lt, in_, like, or_ (eq terms),
is_ and not_.is_, order, limit, maybe_single; plus rpc, storage and auth.
Filters on "a.b" paths read embedded objects (estimate.ticket_id).
"""

import copy
import itertools
import re
from types import SimpleNamespace
from typing import Any, Callable, Dict, List, Optional

from intelliservice.reports.base import parse_timestamp

_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}")


class FakeAPIError(Exception):
    """Mimics a PostgREST error carrying a Postgres error code"""

    def __init__(self, message: str, code: Optional[str] = None):
        super().__init__(message)
        self.code = code
        self.message = message


def unique_violation(message: str = "duplicate key value violates unique constraint") -> FakeAPIError:
    return FakeAPIError(message, code="23505")


def _resolve(row: dict, path: str) -> Any:
    value: Any = row
    for part in path.split("."):
        if isinstance(value, dict):
            value = value.get(part)
        else:
            return None
    return value


def _comparable(value: Any) -> Any:
    if isinstance(value, str) and _DATE_RE.match(value):
        return parse_timestamp(value)
    if isinstance(value, bool) or value is None:
        return value
    if isinstance(value, (int, float)):
        return float(value)
    return value


class FakeResult:
    def __init__(self, data: Any = None, count: Optional[int] = None):
        self.data = data
        self.count = count


class FakeQuery:
    def __init__(self, db: "FakeSupabase", table: str):
        self.db = db
        self.table_name = table
        self.operation = "select"
        self.payload: Any = None
        self.filters: List[Callable[[dict], bool]] = []
        self.orders: List[tuple] = []
        self.row_limit: Optional[int] = None
        self.single_mode: Optional[str] = None
        self._negate_next = False

    # ----- operations -----

    def select(self, fields: str = "*", count: Optional[str] = None):
        self.operation = "select"
        return self

    def insert(self, rows):
        self.operation = "insert"
        self.payload = rows
        return self

    def update(self, values: dict):
        self.operation = "update"
        self.payload = values
        return self

    def delete(self):
        self.operation = "delete"
        return self

    # ----- filters -----

    def _add(self, predicate: Callable[[dict], bool]):
        if self._negate_next:
            self._negate_next = False
            self.filters.append(lambda row: not predicate(row))
        else:
            self.filters.append(predicate)
        return self

    @property
    def not_(self):
        self._negate_next = True
        return self

    def eq(self, column: str, value: Any):
        return self._add(lambda row: _comparable(_resolve(row, column)) == _comparable(value))

    def neq(self, column: str, value: Any):
        return self._add(lambda row: _comparable(_resolve(row, column)) != _comparable(value))

    def _compare(self, column: str, value: Any, op: Callable[[Any, Any], bool]):
        def predicate(row):
            current = _comparable(_resolve(row, column))
            if current is None:
                return False
            return op(current, _comparable(value))
        return self._add(predicate)

    def gte(self, column: str, value: Any):
        return self._compare(column, value, lambda a, b: a >= b)

    def lte(self, column: str, value: Any):
        return self._compare(column, value, lambda a, b: a <= b)

    def lt(self, column: str, value: Any):
        return self._compare(column, value, lambda a, b: a < b)

    def gt(self, column: str, value: Any):
        return self._compare(column, value, lambda a, b: a > b)

    def in_(self, column: str, values: List[Any]):
        allowed = [_comparable(v) for v in values]
        return self._add(lambda row: _comparable(_resolve(row, column)) in allowed)

    def is_(self, column: str, value: str):
        if value == "null":
            return self._add(lambda row: _resolve(row, column) is None)
        return self._add(lambda row: _resolve(row, column) == (value == "true"))

    def like(self, column: str, pattern: str):
        translated = "".join(
            ".*" if ch == "%" else "." if ch == "_" else re.escape(ch)
            for ch in pattern
        )
        regex = re.compile("^" + translated + "$")
        return self._add(lambda row: isinstance(_resolve(row, column), str) and bool(regex.match(_resolve(row, column))))

    def or_(self, expression: str):
        terms = []
        for term in expression.split(","):
            column, op, value = term.split(".", 2)
            if op != "eq":
                raise NotImplementedError(f"or_ operator {op}")
            terms.append((column, value))
        return self._add(lambda row: any(str(_resolve(row, c)) == v for c, v in terms))

    # ----- modifiers -----

    def order(self, column: str, desc: bool = False):
        self.orders.append((column, desc))
        return self

    def limit(self, count: int):
        self.row_limit = count
        return self

    def maybe_single(self):
        self.single_mode = "maybe"
        return self

    def single(self):
        self.single_mode = "single"
        return self

    # ----- execution -----

    def _matching(self) -> List[dict]:
        return [row for row in self.db.tables.setdefault(self.table_name, []) if all(f(row) for f in self.filters)]

    def execute(self):
        self.db.calls.append((self.table_name, self.operation))
        self.db._maybe_fail(self.table_name, self.operation)

        if self.operation == "insert":
            return self._execute_insert()
        if self.operation == "update":
            updated = []
            for row in self._matching():
                row.update(copy.deepcopy(self.payload))
                updated.append(copy.deepcopy(row))
            return FakeResult(updated)
        if self.operation == "delete":
            doomed = self._matching()
            self.db.tables[self.table_name] = [r for r in self.db.tables[self.table_name] if r not in doomed]
            return FakeResult(doomed)

        rows = [copy.deepcopy(r) for r in self._matching()]
        for column, desc in reversed(self.orders):
            present = [r for r in rows if _resolve(r, column) is not None]
            missing = [r for r in rows if _resolve(r, column) is None]
            present.sort(key=lambda r: _comparable(_resolve(r, column)), reverse=desc)
            rows = present + missing
        if self.row_limit is not None:
            rows = rows[:self.row_limit]
        if self.db.max_rows is not None:
            rows = rows[:self.db.max_rows]

        if self.single_mode == "maybe":
            return FakeResult(rows[0]) if rows else None
        if self.single_mode == "single":
            if len(rows) != 1:
                raise FakeAPIError("JSON object requested, multiple (or no) rows returned", code="PGRST116")
            return FakeResult(rows[0])
        return FakeResult(rows, count=len(rows))

    def _execute_insert(self):
        rows = self.payload if isinstance(self.payload, list) else [self.payload]
        table = self.db.tables.setdefault(self.table_name, [])
        unique_column = self.db.unique_columns.get(self.table_name)

        inserted = []
        for row in rows:
            record = copy.deepcopy(row)
            record.setdefault("id", f"{self.table_name}-{next(self.db._ids)}")
            if unique_column and any(r.get(unique_column) == record.get(unique_column) for r in table):
                raise unique_violation(f"duplicate {unique_column}: {record.get(unique_column)}")
            inserted.append(record)

        table.extend(inserted)
        return FakeResult(copy.deepcopy(inserted))


class FakeRPC:
    def __init__(self, db: "FakeSupabase", name: str, params: dict):
        self.db = db
        self.name = name
        self.params = params

    def execute(self):
        self.db.rpc_calls.append((self.name, self.params))
        handler = self.db.rpc_handlers.get(self.name)
        if handler is None:
            raise FakeAPIError(f"function {self.name} does not exist", code="42883")
        return FakeResult(handler(self.params))


class FakeBucket:
    def __init__(self, storage: "FakeStorage", name: str):
        self.storage = storage
        self.name = name

    def upload(self, path: str, content: bytes, file_options: Optional[dict] = None):
        self.storage.uploads.append({"bucket": self.name, "path": path, "size": len(content), "options": file_options})
        return SimpleNamespace(path=path)

    def get_public_url(self, path: str) -> str:
        return f"https://storage.test/{self.name}/{path}"


class FakeStorage:
    def __init__(self):
        self.uploads: List[dict] = []

    def from_(self, bucket: str) -> FakeBucket:
        return FakeBucket(self, bucket)


class FakeAuth:
    def __init__(self, tokens: Dict[str, str]):
        self.tokens = tokens

    def get_user(self, token: str):
        if token not in self.tokens:
            raise FakeAPIError("invalid JWT", code="401")
        return SimpleNamespace(user=SimpleNamespace(id=self.tokens[token]))


class FakeSupabase:
    """Dict-of-lists database with a PostgREST-shaped API"""

    def __init__(self, tables: Optional[Dict[str, List[dict]]] = None, max_rows: Optional[int] = None):
        self.tables: Dict[str, List[dict]] = copy.deepcopy(tables or {})
        # PostgREST db-max-rows cap on selects
        self.max_rows = max_rows
        self.unique_columns: Dict[str, str] = {}
        self.rpc_handlers: Dict[str, Callable[[dict], Any]] = {}
        self.rpc_calls: List[tuple] = []
        self.calls: List[tuple] = []
        self.storage = FakeStorage()
        self.auth = FakeAuth({})
        self._failures: Dict[tuple, List[Exception]] = {}
        self._ids = itertools.count(1)

    def table(self, name: str) -> FakeQuery:
        return FakeQuery(self, name)

    def rpc(self, name: str, params: Optional[dict] = None) -> FakeRPC:
        return FakeRPC(self, name, params or {})

    def fail(self, table: str, operation: str = "select", error: Optional[Exception] = None, times: int = 1):
        """Raise error on the next `times` executions of operation on table"""
        queue = self._failures.setdefault((table, operation), [])
        queue.extend([error or FakeAPIError(f"{operation} on {table} failed")] * times)

    def _maybe_fail(self, table: str, operation: str):
        queue = self._failures.get((table, operation))
        if queue:
            raise queue.pop(0)

    def rows(self, table: str) -> List[dict]:
        return self.tables.get(table, [])
