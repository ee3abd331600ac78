"""
SQL repositories for the business entities.

Each repository exposes the same three lookups (paginated list, fetch by id,
free-text search) over one table, always excluding soft-deleted rows.
Database failures are returned as ``Failed`` results, never raised.
"""

import logging
from typing import Any, Awaitable, Callable, Optional, Sequence, Tuple

import aiosqlite

from bizdata_mcp.data.database import Database
from bizdata_mcp.data.results import Failed, Found, LookupResult, NotFound
from bizdata_mcp.errors import InvalidInputError, UpstreamError

logger = logging.getLogger(__name__)

DEFAULT_SKIP = 0
DEFAULT_LIMIT = 10
MAX_LIMIT = 100


def _as_int(value: Any, name: str) -> int:
    if isinstance(value, bool):
        raise InvalidInputError(f"'{name}' must be a whole number")
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str) and value.strip().lstrip("-").isdigit():
        return int(value.strip())
    raise InvalidInputError(f"'{name}' must be a whole number", details=repr(value))


def clamp_pagination(skip: Any = None, limit: Any = None) -> Tuple[int, int]:
    """Normalise skip/limit: defaults 0/10, skip at least 0, limit within 1..100."""
    skip = DEFAULT_SKIP if skip is None else max(0, _as_int(skip, "skip"))
    limit = DEFAULT_LIMIT if limit is None else min(max(_as_int(limit, "limit"), 1), MAX_LIMIT)
    return skip, limit


def require_id(value: Any, name: str = "id") -> int:
    """Validate a positive integer identifier."""
    if value is None:
        raise InvalidInputError(f"'{name}' is required")
    number = _as_int(value, name)
    if number < 1:
        raise InvalidInputError(f"'{name}' must be 1 or greater", details=str(number))
    return number


def require_text(value: Any, name: str = "query") -> str:
    """Validate a non-empty string argument."""
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        value = str(value)
    if not isinstance(value, str) or not value.strip():
        raise InvalidInputError(f"'{name}' must be a non-empty string")
    return value.strip()


class SqlRepository:
    """Base class for the table-backed repositories."""

    entity = "record"
    table = ""
    select = ""
    id_column = "Id"
    deleted_column = "Deleted"
    search_columns: Tuple[str, ...] = ()

    def __init__(self, db: Database):
        self.db = db

    @property
    def base_query(self) -> str:
        return self.select or f"SELECT * FROM {self.table}"

    @property
    def not_deleted(self) -> str:
        return f"({self.deleted_column} IS NULL OR {self.deleted_column} = 0)"

    async def list(self, skip: Any = None, limit: Any = None) -> LookupResult:
        """
        List records ordered by id.

        Args:
            skip: Number of records to skip (default: 0)
            limit: Maximum number of records (default: 10, at most 100)
        """
        skip, limit = clamp_pagination(skip, limit)
        query = (
            f"{self.base_query} WHERE {self.not_deleted} "
            f"ORDER BY {self.id_column} LIMIT ? OFFSET ?"
        )
        return await self._run("list", lambda: self.db.fetch_all(query, (limit, skip)))

    async def get_by_id(self, record_id: Any) -> LookupResult:
        record_id = require_id(record_id)
        query = f"{self.base_query} WHERE {self.id_column} = ? AND {self.not_deleted}"

        result = await self._run("get", lambda: self.db.fetch_one(query, (record_id,)))
        if isinstance(result, Found) and result.value is None:
            return NotFound(f"No {self.entity} found with ID {record_id}")
        return result

    async def search(self, text: Any) -> LookupResult:
        """Case-insensitive substring search over the searchable columns."""
        text = require_text(text)
        pattern = f"%{text}%"
        matches = " OR ".join(f"{column} LIKE ?" for column in self.search_columns)
        query = (
            f"{self.base_query} WHERE {self.not_deleted} AND ({matches}) "
            f"ORDER BY {self.id_column}"
        )
        params = [pattern] * len(self.search_columns)
        return await self._run("search", lambda: self.db.fetch_all(query, params))

    async def _run(self, action: str, operation: Callable[[], Awaitable[Any]]) -> LookupResult:
        try:
            return Found(await operation())
        except (aiosqlite.Error, UpstreamError) as exc:
            logger.error("Error in %s %s: %s", action, self.table, exc)
            return Failed("database", f"Could not {action} {self.entity} records: {exc}")


class VendorRepository(SqlRepository):
    entity = "vendor"
    table = "Vendors"
    search_columns = ("Name", "Address", "ContactNo", "Email", "Type", "BankCode")


class UserRepository(SqlRepository):
    entity = "user"
    table = "Users"
    select = (
        "SELECT U.*, R.Name AS RoleName FROM Users U "
        "LEFT JOIN Roles R ON R.Id = U.RoleId"
    )
    id_column = "U.Id"
    deleted_column = "U.Deleted"
    search_columns = ("U.Name", "U.Email", "U.Username")

    async def list(
        self,
        skip: Any = None,
        limit: Any = None,
        department: Optional[str] = None,
        role: Optional[str] = None,
    ) -> LookupResult:
        """
        List users, optionally filtered by department and role name.

        Args:
            skip: Number of users to skip
            limit: Maximum number of users
            department: Department name, matched case-insensitively
            role: Role name, matched case-insensitively
        """
        skip, limit = clamp_pagination(skip, limit)
        conditions = [self.not_deleted]
        params: list = []
        if department:
            conditions.append("U.Department = ? COLLATE NOCASE")
            params.append(require_text(department, "department"))
        if role:
            conditions.append("R.Name = ? COLLATE NOCASE")
            params.append(require_text(role, "role"))

        query = (
            f"{self.base_query} WHERE {' AND '.join(conditions)} "
            f"ORDER BY {self.id_column} LIMIT ? OFFSET ?"
        )
        params.extend([limit, skip])
        return await self._run("list", lambda: self.db.fetch_all(query, params))


class RoleRepository(SqlRepository):
    entity = "role"
    table = "Roles"
    search_columns = ("Name",)


class CommodityRepository(SqlRepository):
    entity = "commodity"
    table = "Commodities"
    search_columns = ("Name", "Code", "ShortName", "BankCode")


class CurrencyRepository(SqlRepository):
    entity = "currency"
    table = "Currency"
    search_columns = ("Name", "ShortName")


class Repositories:
    """All SQL repositories sharing one database handle."""

    def __init__(self, db: Database):
        self.vendors = VendorRepository(db)
        self.users = UserRepository(db)
        self.roles = RoleRepository(db)
        self.commodities = CommodityRepository(db)
        self.currencies = CurrencyRepository(db)

    def all(self) -> Sequence[SqlRepository]:
        return (self.vendors, self.users, self.roles, self.commodities, self.currencies)
