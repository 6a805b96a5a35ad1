"""Persistent single-file backend, sqlmodel tables emulating the redis data types."""

import asyncio
import builtins
import threading
import time
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any, ClassVar, ParamSpec, TypeVar

from sqlalchemy import func, literal
from sqlalchemy.exc import OperationalError
from sqlmodel import Field, Session, SQLModel, col, create_engine, select

from moonstore.utils.logger import get_logger

from .base import KeyValueBackend, normalise_range

logger = get_logger(__name__)

P = ParamSpec("P")
R = TypeVar("R")

# Upper bound for prefix range scans
_PREFIX_END = "\uffff"


class KVEntry(SQLModel, table=True):
    """String values."""

    __tablename__ = "kv_entry"
    key: str = Field(primary_key=True)
    value: str = Field(nullable=False)


class KVSortedSetMember(SQLModel, table=True):
    """Sorted set members."""

    __tablename__ = "kv_sorted_set"
    key: str = Field(primary_key=True)
    member: str = Field(primary_key=True)
    score: float = Field(nullable=False, index=True)


class KVSetMember(SQLModel, table=True):
    """Set members."""

    __tablename__ = "kv_set"
    key: str = Field(primary_key=True)
    member: str = Field(primary_key=True)


class KVListItem(SQLModel, table=True):
    """List items, lower position is nearer the head."""

    __tablename__ = "kv_list"
    key: str = Field(primary_key=True)
    position: int = Field(primary_key=True)
    value: str = Field(nullable=False)


class KVExpiry(SQLModel, table=True):
    """Expiry deadlines (epoch seconds) for keys of any type."""

    __tablename__ = "kv_expiry"
    key: str = Field(primary_key=True)
    expires_at: float = Field(nullable=False, index=True)


_VALUE_TABLES: tuple[type[SQLModel], ...] = (KVEntry, KVSortedSetMember, KVSetMember, KVListItem)


class SQLiteBackend(KeyValueBackend):
    """SQLite through sqlmodel, every call is pushed to a worker thread."""

    name: ClassVar[str] = "sqlite"
    transient_errors: ClassVar[tuple[type[BaseException], ...]] = (OperationalError,)

    def __init__(self, database_path: Path, clock: Callable[[], float] = time.time) -> None:
        """Create the engine and the tables."""
        database_path.parent.mkdir(parents=True, exist_ok=True)
        self._clock = clock
        self._engine = create_engine(
            f"sqlite:///{database_path}",
            echo=False,
            connect_args={"check_same_thread": False},
        )
        # SQLite only has one writer anyway, serialising here avoids "database is locked"
        self._lock = threading.Lock()
        SQLModel.metadata.create_all(
            self._engine,
            tables=[model.__table__ for model in (*_VALUE_TABLES, KVExpiry)],  # type: ignore[attr-defined]
        )
        logger.debug("Initialised sqlite backend at %s", database_path)

    # region Plumbing
    async def _run(self, fn: Callable[P, R], *args: P.args, **kwargs: P.kwargs) -> R:
        return await asyncio.to_thread(self._locked, fn, *args, **kwargs)

    def _locked(self, fn: Callable[P, R], *args: P.args, **kwargs: P.kwargs) -> R:
        with self._lock:
            return fn(*args, **kwargs)

    @contextmanager
    def _get_session(self) -> Iterator[Session]:
        with Session(self._engine) as session:
            yield session

    def _purge_if_expired(self, session: Session, key: str) -> None:
        expiry = session.get(KVExpiry, key)
        if expiry is not None and expiry.expires_at <= self._clock():
            self._remove(session, key)

    def _purge_all_expired(self, session: Session) -> None:
        expired = session.exec(select(KVExpiry.key).where(KVExpiry.expires_at <= self._clock())).all()
        for key in expired:
            self._remove(session, key)

    def _delete_where(self, session: Session, model: type[SQLModel], *conditions: Any) -> int:  # noqa: ANN401
        rows = session.exec(select(model).where(*conditions)).all()
        for row in rows:
            session.delete(row)
        session.flush()
        return len(rows)

    def _remove(self, session: Session, key: str) -> bool:
        removed = 0
        for model in _VALUE_TABLES:
            removed += self._delete_where(session, model, col(model.key) == key)  # type: ignore[attr-defined]
        self._delete_where(session, KVExpiry, col(KVExpiry.key) == key)
        return removed > 0

    def _exists(self, session: Session, key: str) -> bool:
        for model in _VALUE_TABLES:
            if session.exec(select(model).where(col(model.key) == key).limit(1)).first() is not None:  # type: ignore[attr-defined]
                return True
        return False

    def _sorted_members(self, session: Session, key: str) -> list[KVSortedSetMember]:
        statement = (
            select(KVSortedSetMember)
            .where(KVSortedSetMember.key == key)
            .order_by(col(KVSortedSetMember.score), col(KVSortedSetMember.member))
        )
        return list(session.exec(statement).all())

    def _list_items(self, session: Session, key: str) -> list[KVListItem]:
        statement = select(KVListItem).where(KVListItem.key == key).order_by(col(KVListItem.position))
        return list(session.exec(statement).all())

    # region Strings
    async def get(self, key: str) -> str | None:
        def _get() -> str | None:
            with self._get_session() as session:
                self._purge_if_expired(session, key)
                session.commit()
                entry = session.get(KVEntry, key)
                return entry.value if entry else None

        return await self._run(_get)

    async def set(self, key: str, value: str, ttl_seconds: int | None = None) -> None:
        def _set() -> None:
            with self._get_session() as session:
                self._remove(session, key)
                session.add(KVEntry(key=key, value=value))
                if ttl_seconds is not None:
                    session.add(KVExpiry(key=key, expires_at=self._clock() + ttl_seconds))
                session.commit()

        await self._run(_set)

    async def delete(self, *keys: str) -> int:
        def _delete() -> int:
            with self._get_session() as session:
                removed = 0
                for key in keys:
                    self._purge_if_expired(session, key)
                    if self._remove(session, key):
                        removed += 1
                session.commit()
                return removed

        return await self._run(_delete)

    async def exists(self, key: str) -> bool:
        def _exists() -> bool:
            with self._get_session() as session:
                self._purge_if_expired(session, key)
                session.commit()
                return self._exists(session, key)

        return await self._run(_exists)

    async def keys(self, prefix: str) -> list[str]:
        def _keys() -> list[str]:
            with self._get_session() as session:
                self._purge_all_expired(session)
                session.commit()
                found: set[str] = set()
                for model in _VALUE_TABLES:
                    key_col = col(model.key)  # type: ignore[attr-defined]
                    statement = select(key_col).where(key_col >= prefix, key_col < prefix + _PREFIX_END).distinct()
                    found.update(session.exec(statement).all())
                return sorted(key for key in found if key.startswith(prefix))

        return await self._run(_keys)

    async def mget(self, keys: list[str]) -> list[str | None]:
        return [await self.get(key) for key in keys]

    async def expire(self, key: str, ttl_seconds: int) -> bool:
        def _expire() -> bool:
            with self._get_session() as session:
                self._purge_if_expired(session, key)
                if not self._exists(session, key):
                    session.commit()
                    return False
                session.merge(KVExpiry(key=key, expires_at=self._clock() + ttl_seconds))
                session.commit()
                return True

        return await self._run(_expire)

    async def incr(self, key: str) -> int:
        def _incr() -> int:
            with self._get_session() as session:
                self._purge_if_expired(session, key)
                entry = session.get(KVEntry, key)
                if entry is None:
                    entry = KVEntry(key=key, value="0")
                    session.add(entry)
                new_value = int(entry.value) + 1
                entry.value = str(new_value)
                session.commit()
                return new_value

        return await self._run(_incr)

    # region Sorted sets
    async def zadd(self, key: str, member: str, score: float) -> None:
        def _zadd() -> None:
            with self._get_session() as session:
                self._purge_if_expired(session, key)
                session.merge(KVSortedSetMember(key=key, member=member, score=score))
                session.commit()

        await self._run(_zadd)

    def _zrem(self, session: Session, key: str, members: list[str]) -> int:
        if not members:
            return 0
        return self._delete_where(
            session,
            KVSortedSetMember,
            col(KVSortedSetMember.key) == key,
            col(KVSortedSetMember.member).in_(members),
        )

    async def zrem(self, key: str, *members: str) -> int:
        def _zrem_all() -> int:
            with self._get_session() as session:
                self._purge_if_expired(session, key)
                removed = self._zrem(session, key, list(members))
                session.commit()
                return removed

        return await self._run(_zrem_all)

    async def zcard(self, key: str) -> int:
        def _zcard() -> int:
            with self._get_session() as session:
                self._purge_if_expired(session, key)
                session.commit()
                statement = select(func.count()).select_from(KVSortedSetMember).where(KVSortedSetMember.key == key)
                return int(session.exec(statement).one())

        return await self._run(_zcard)

    async def zrange_by_score(self, key: str, min_score: float, max_score: float) -> list[str]:
        def _zrange_by_score() -> list[str]:
            with self._get_session() as session:
                self._purge_if_expired(session, key)
                session.commit()
                return [
                    row.member for row in self._sorted_members(session, key) if min_score <= row.score <= max_score
                ]

        return await self._run(_zrange_by_score)

    async def zrevrange(self, key: str, start: int, stop: int) -> list[str]:
        def _zrevrange() -> list[str]:
            with self._get_session() as session:
                self._purge_if_expired(session, key)
                session.commit()
                members = [row.member for row in reversed(self._sorted_members(session, key))]
                lower, upper = normalise_range(len(members), start, stop)
                return members[lower:upper]

        return await self._run(_zrevrange)

    async def zremrangebyrank(self, key: str, start: int, stop: int) -> int:
        def _zremrangebyrank() -> int:
            with self._get_session() as session:
                self._purge_if_expired(session, key)
                members = [row.member for row in self._sorted_members(session, key)]
                lower, upper = normalise_range(len(members), start, stop)
                removed = self._zrem(session, key, members[lower:upper])
                session.commit()
                return removed

        return await self._run(_zremrangebyrank)

    async def zremrangebyscore(self, key: str, min_score: float, max_score: float) -> int:
        def _zremrangebyscore() -> int:
            with self._get_session() as session:
                self._purge_if_expired(session, key)
                removed = self._delete_where(
                    session,
                    KVSortedSetMember,
                    col(KVSortedSetMember.key) == key,
                    col(KVSortedSetMember.score) >= min_score,
                    col(KVSortedSetMember.score) <= max_score,
                )
                session.commit()
                return removed

        return await self._run(_zremrangebyscore)

    # region Sets
    async def sadd(self, key: str, *members: str) -> int:
        def _sadd() -> int:
            with self._get_session() as session:
                self._purge_if_expired(session, key)
                added = 0
                for member in set(members):
                    if session.get(KVSetMember, (key, member)) is None:
                        session.add(KVSetMember(key=key, member=member))
                        added += 1
                session.commit()
                return added

        return await self._run(_sadd)

    async def srem(self, key: str, *members: str) -> int:
        def _srem() -> int:
            with self._get_session() as session:
                self._purge_if_expired(session, key)
                if not members:
                    return 0
                removed = self._delete_where(
                    session,
                    KVSetMember,
                    col(KVSetMember.key) == key,
                    col(KVSetMember.member).in_(list(members)),
                )
                session.commit()
                return removed

        return await self._run(_srem)

    async def smembers(self, key: str) -> builtins.set[str]:
        def _smembers() -> set[str]:
            with self._get_session() as session:
                self._purge_if_expired(session, key)
                session.commit()
                return set(session.exec(select(KVSetMember.member).where(KVSetMember.key == key)).all())

        return await self._run(_smembers)

    # region Lists
    async def lpush(self, key: str, *values: str) -> int:
        def _lpush() -> int:
            with self._get_session() as session:
                self._purge_if_expired(session, key)
                items = self._list_items(session, key)
                head = items[0].position if items else 0
                for offset, value in enumerate(values, start=1):
                    session.add(KVListItem(key=key, position=head - offset, value=value))
                session.commit()
                return len(items) + len(values)

        return await self._run(_lpush)

    async def lrem(self, key: str, value: str) -> int:
        def _lrem() -> int:
            with self._get_session() as session:
                self._purge_if_expired(session, key)
                removed = self._delete_where(
                    session, KVListItem, col(KVListItem.key) == key, col(KVListItem.value) == value
                )
                session.commit()
                return removed

        return await self._run(_lrem)

    async def ltrim(self, key: str, start: int, stop: int) -> None:
        def _ltrim() -> None:
            with self._get_session() as session:
                self._purge_if_expired(session, key)
                items = self._list_items(session, key)
                lower, upper = normalise_range(len(items), start, stop)
                keep = {item.position for item in items[lower:upper]}
                for item in items:
                    if item.position not in keep:
                        session.delete(item)
                session.commit()

        await self._run(_ltrim)

    async def lrange(self, key: str, start: int, stop: int) -> list[str]:
        def _lrange() -> list[str]:
            with self._get_session() as session:
                self._purge_if_expired(session, key)
                session.commit()
                values = [item.value for item in self._list_items(session, key)]
                lower, upper = normalise_range(len(values), start, stop)
                return values[lower:upper]

        return await self._run(_lrange)

    # region Lifecycle
    async def ping(self) -> bool:
        def _ping() -> bool:
            with self._get_session() as session:
                session.exec(select(literal(1))).one()
                return True

        return await self._run(_ping)

    async def close(self) -> None:
        await asyncio.to_thread(self._engine.dispose)
