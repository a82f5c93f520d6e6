"""Store client: the session, query, procedure and blob capability handed to
every page controller.

Queries are assembled with a small builder (``client.from_("slides").eq(...)``)
that records its predicates in order and runs them through async SQLAlchemy.
"""

import logging
import secrets
import uuid
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Awaitable, Callable, Optional

from sqlalchemy import String, delete, func, select
from sqlalchemy.exc import DisconnectionError, InterfaceError, OperationalError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from studydash.config import settings
from studydash.models.auth_session import AuthSession
from studydash.models.quiz import Quiz
from studydash.models.slide import Slide
from studydash.services.errors import (
    NotAuthenticatedError,
    PolicyViolationError,
    QueryError,
    StoreConnectionError,
    StoreError,
)
from studydash.services.storage_service import BlobStore

logger = logging.getLogger(__name__)

TABLES = {
    "slides": Slide,
    "quizzes": Quiz,
}

DELETE_POLICIES = ("owner", "any", "deny")

Procedure = Callable[[AsyncSession, dict], Awaitable[Any]]
PROCEDURES: dict[str, Procedure] = {}


def procedure(name: str):
    """Register a named remote procedure callable through ``StoreClient.rpc``."""
    def decorator(fn: Procedure) -> Procedure:
        PROCEDURES[name] = fn
        return fn
    return decorator


@procedure("delete_slide")
async def _delete_slide(db: AsyncSession, params: dict) -> int:
    """Privileged delete: ignores the row delete policy."""
    slide_id = params.get("slide_id")
    if not slide_id:
        raise QueryError("delete_slide requires a slide_id")
    result = await db.execute(delete(Slide).where(Slide.id == slide_id))
    return result.rowcount


def _utcnow() -> datetime:
    # Stored naive, in UTC (SQLite drops tzinfo)
    return datetime.now(timezone.utc).replace(tzinfo=None)


@dataclass
class SessionInfo:
    user_id: str
    email: str
    access_token: str
    expires_at: datetime


class TableQuery:
    """Filter/sort query against one table."""

    def __init__(self, client: "StoreClient", table: str):
        if table not in TABLES:
            raise QueryError(f'relation "{table}" does not exist')
        self._client = client
        self.table = table
        self.model = TABLES[table]
        self.columns: list[str] = []
        self.filters: list[tuple[str, str, Any]] = []
        self.ordering: Optional[tuple[str, bool]] = None
        self.row_limit: Optional[int] = None

    def _column(self, name: str):
        try:
            return self.model.__table__.columns[name]
        except KeyError:
            raise QueryError(f"column {self.table}.{name} does not exist") from None

    def select(self, *columns: str) -> "TableQuery":
        for name in columns:
            self._column(name)
        self.columns = list(columns)
        return self

    def eq(self, column: str, value: Any) -> "TableQuery":
        self._column(column)
        self.filters.append((column, "eq", value))
        return self

    def ilike(self, column: str, pattern: str) -> "TableQuery":
        """Case-insensitive LIKE; ``\\`` escapes wildcards in *pattern*."""
        self._column(column)
        self.filters.append((column, "ilike", pattern))
        return self

    def not_(self, column: str, op: str, value: Any) -> "TableQuery":
        if op not in ("eq", "ilike"):
            raise QueryError(f"unsupported negated operator: {op}")
        self._column(column)
        self.filters.append((column, f"not.{op}", value))
        return self

    def order(self, column: str, ascending: bool = True) -> "TableQuery":
        self._column(column)
        self.ordering = (column, ascending)
        return self

    def limit(self, count: int) -> "TableQuery":
        self.row_limit = count
        return self

    def _conditions(self) -> list:
        conditions = []
        for name, op, value in self.filters:
            column = self._column(name)
            negated = op.startswith("not.")
            base_op = op.removeprefix("not.")
            if base_op == "ilike":
                clause = column.ilike(value, escape="\\")
            else:
                clause = column == value
            conditions.append(~clause if negated else clause)
        return conditions

    def _as_dict(self, row, columns: Optional[list[str]] = None) -> dict:
        keys = columns or [c.key for c in self.model.__table__.columns]
        return {key: getattr(row, key) for key in keys}

    async def execute(self) -> list[dict]:
        stmt = select(self.model)
        conditions = self._conditions()
        if conditions:
            stmt = stmt.where(*conditions)
        if self.ordering:
            name, ascending = self.ordering
            column = self._column(name)
            keys = [column]
            if isinstance(column.type, String):
                # Text sorts case-insensitively; exact value breaks ties
                keys.insert(0, func.lower(column))
            stmt = stmt.order_by(*(k.asc() if ascending else k.desc() for k in keys))
        if self.row_limit is not None:
            stmt = stmt.limit(self.row_limit)

        async with self._client.transaction() as db:
            result = await db.execute(stmt)
            rows = result.scalars().all()
            return [self._as_dict(row, self.columns) for row in rows]

    async def count(self) -> int:
        stmt = select(func.count()).select_from(self.model)
        conditions = self._conditions()
        if conditions:
            stmt = stmt.where(*conditions)
        async with self._client.transaction() as db:
            result = await db.execute(stmt)
            return result.scalar_one()

    async def insert(self, values: dict) -> dict:
        session = await self._client.require_session()
        try:
            row = self.model(**values)
        except TypeError as e:
            raise QueryError(f"Invalid {self.table} record: {e}") from e
        if hasattr(row, "owner_id") and row.owner_id is None:
            row.owner_id = session.user_id

        async with self._client.transaction() as db:
            db.add(row)
            await db.flush()
            await db.refresh(row)
            return self._as_dict(row)

    async def delete(self) -> list[dict]:
        """Delete matching rows under the configured row delete policy."""
        conditions = self._conditions()
        if not conditions:
            raise QueryError("DELETE requires a filter")
        session = await self._client.require_session()
        policy = self._client.delete_policy
        if policy not in ("owner", "any"):
            raise PolicyViolationError(
                f"permission denied for table {self.table}: no delete policy"
            )

        async with self._client.transaction() as db:
            result = await db.execute(select(self.model).where(*conditions))
            rows = result.scalars().all()
            if policy == "owner":
                foreign = [r for r in rows if getattr(r, "owner_id", None) != session.user_id]
                if foreign:
                    raise PolicyViolationError(
                        f"permission denied: row-level security policy on {self.table} "
                        f"does not allow deleting {len(foreign)} row(s)"
                    )
            deleted = [self._as_dict(r) for r in rows]
            for row in rows:
                await db.delete(row)
            return deleted


class StoreClient:
    """Session provider handed to each controller."""

    def __init__(
        self,
        session_factory: Optional[async_sessionmaker],
        storage: Optional[BlobStore] = None,
        access_token: Optional[str] = None,
        delete_policy: Optional[str] = None,
        session_ttl_hours: Optional[int] = None,
    ):
        self._session_factory = session_factory
        self.storage = storage if storage is not None else BlobStore()
        self.access_token = access_token
        self.delete_policy = delete_policy or settings.delete_policy
        self.session_ttl_hours = session_ttl_hours or settings.session_ttl_hours
        if self.delete_policy not in DELETE_POLICIES:
            logger.warning(f"Unknown delete policy '{self.delete_policy}', deletes will be refused")

    @property
    def is_configured(self) -> bool:
        return self._session_factory is not None

    @asynccontextmanager
    async def transaction(self):
        """Yield a database session, committing on success.

        Transport failures become StoreConnectionError, anything else raised
        by SQLAlchemy becomes QueryError.
        """
        if self._session_factory is None:
            raise StoreConnectionError("NetworkError: content store is not configured")
        try:
            async with self._session_factory() as db:
                yield db
                await db.commit()
        except StoreError:
            raise
        except (OperationalError, InterfaceError, DisconnectionError, OSError) as e:
            raise StoreConnectionError(f"NetworkError: content store connection failed ({e})") from e
        except SQLAlchemyError as e:
            raise QueryError(f"Query failed: {e}") from e

    def from_(self, table: str) -> TableQuery:
        return TableQuery(self, table)

    async def ping(self) -> int:
        """Lightweight connectivity check; returns the slide count."""
        return await self.from_("slides").count()

    async def rpc(self, name: str, params: dict) -> Any:
        fn = PROCEDURES.get(name)
        if fn is None:
            raise QueryError(f"function {name}({', '.join(params)}) does not exist")
        await self.require_session()
        async with self.transaction() as db:
            return await fn(db, params)

    # ------------------------------------------------------------------
    # Auth sessions
    # ------------------------------------------------------------------
    async def get_session(self) -> Optional[SessionInfo]:
        if not self.access_token:
            return None
        async with self.transaction() as db:
            result = await db.execute(
                select(AuthSession).where(
                    AuthSession.token == self.access_token,
                    AuthSession.expires_at > _utcnow(),
                )
            )
            row = result.scalar_one_or_none()
            if row is None:
                return None
            return SessionInfo(
                user_id=row.user_id,
                email=row.email,
                access_token=row.token,
                expires_at=row.expires_at,
            )

    async def require_session(self) -> SessionInfo:
        session = await self.get_session()
        if session is None:
            raise NotAuthenticatedError("permission denied: not authenticated")
        return session

    async def sign_in(self, email: str) -> SessionInfo:
        email = email.strip().lower()
        token = secrets.token_urlsafe(32)
        record = AuthSession(
            token=token,
            user_id=str(uuid.uuid5(uuid.NAMESPACE_URL, f"mailto:{email}")),
            email=email,
            expires_at=_utcnow() + timedelta(hours=self.session_ttl_hours),
        )
        async with self.transaction() as db:
            db.add(record)
        self.access_token = token
        logger.info(f"Signed in {email}")
        return SessionInfo(
            user_id=record.user_id,
            email=record.email,
            access_token=token,
            expires_at=record.expires_at,
        )

    async def sign_out(self) -> None:
        if not self.access_token:
            return
        async with self.transaction() as db:
            await db.execute(delete(AuthSession).where(AuthSession.token == self.access_token))
        self.access_token = None
