"""
SQLAlchemy Closure Store.

Stores closure rows in a single table in any SQLAlchemy-compatible database
(PostgreSQL, MySQL, SQLite, etc.):

    id | ancestor_kind | ancestor_id | descendant_kind | descendant_id | depth | type
    ---|---------------|-------------|-----------------|---------------|-------|-------
     1 | user          | 1           | user            | 1             | 0     | seller
     2 | user          | 2           | user            | 2             | 0     | seller
     3 | user          | 1           | user            | 2             | 1     | seller

A unique constraint on (ancestor, descendant, type) backs the engine's
uniqueness invariant, and three composite indexes serve the ancestor,
descendant and root-node lookups.

Example:
    >>> store = SQLAlchemyClosureStore(url="sqlite:///:memory:", key_type="string")
    >>> with store.transaction() as tx:
    ...     tx.insert(ClosureRow(NodeRef("user", "a"), NodeRef("user", "a"), 0, "seller"))
    >>> store.close()
"""

import logging
import threading
import uuid
from typing import Any, Iterable, List, Optional, Union

from sqlalchemy import (
    BigInteger,
    Column,
    DateTime,
    Index,
    Integer,
    String,
    UniqueConstraint,
    Uuid,
    and_,
    create_engine,
    func,
    or_,
    select,
)
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, aliased, declarative_base, sessionmaker

from ..exceptions import ConstraintViolationError
from ..nodes import ClosureRow, DepthFilter, NodeRef
from ..settings import KeyType
from .base import ClosureStore, ClosureTransaction, register_store

logger = logging.getLogger(__name__)


def key_column_type(key_type: Union[KeyType, str]):
    """SQL column type for node ids of the given key type."""
    key_type = KeyType(key_type)
    if key_type == KeyType.INT:
        return BigInteger()
    if key_type == KeyType.UUID:
        return Uuid(as_uuid=False)
    if key_type == KeyType.ULID:
        return String(26)
    return String(255)


def normalize_key(key_type: Union[KeyType, str], value: Any) -> Any:
    """
    Canonical form of a node id for the given key type.

    UUID ids are kept as lowercase hyphenated strings whether they arrive as
    ``uuid.UUID`` objects or as strings in any accepted spelling.

    Raises:
        ValueError: If a UUID id is not a valid UUID
    """
    if value is None or KeyType(key_type) != KeyType.UUID:
        return value
    if isinstance(value, uuid.UUID):
        return str(value)
    return str(uuid.UUID(str(value)))


def create_engine_for_url(
    url: str,
    pool_size: int = 5,
    echo: bool = False,
    isolation_level: Optional[str] = None,
):
    """
    Create a SQLAlchemy engine with pooling suited to the URL.

    In-memory SQLite needs StaticPool so every session shares the one
    connection that holds the database.
    """
    extra = {}
    if isolation_level:
        extra["isolation_level"] = isolation_level

    if url.startswith("sqlite"):
        from sqlalchemy.pool import StaticPool

        if ":memory:" in url or url == "sqlite://":
            return create_engine(
                url,
                echo=echo,
                poolclass=StaticPool,
                connect_args={"check_same_thread": False},
                **extra,
            )
        return create_engine(
            url,
            echo=echo,
            pool_size=pool_size,
            connect_args={"check_same_thread": False},
            **extra,
        )

    return create_engine(
        url,
        echo=echo,
        pool_size=pool_size,
        max_overflow=pool_size * 2,
        **extra,
    )


def _create_closure_model(base, table_name: str, key_type: KeyType):
    """Create the closure table ORM model with the given declarative base."""

    class HierarchyRecord(base):
        """
        One ancestor/descendant path.

        depth 0 = self row, 1 = direct parent/child, etc.
        """

        __tablename__ = table_name

        id = Column(Integer, primary_key=True, autoincrement=True)
        ancestor_kind = Column(String(255), nullable=False)
        ancestor_id = Column(key_column_type(key_type), nullable=False)
        descendant_kind = Column(String(255), nullable=False)
        descendant_id = Column(key_column_type(key_type), nullable=False)
        depth = Column(Integer, nullable=False)
        type = Column(String(50), nullable=False)
        created_at = Column(DateTime, default=func.now())

        __table_args__ = (
            UniqueConstraint(
                "ancestor_kind",
                "ancestor_id",
                "descendant_kind",
                "descendant_id",
                "type",
                name=f"{table_name}_path_unique",
            ),
            Index(
                f"{table_name}_descendant_type",
                "descendant_kind",
                "descendant_id",
                "type",
                "depth",
            ),
            Index(
                f"{table_name}_ancestor_type",
                "ancestor_kind",
                "ancestor_id",
                "type",
                "depth",
            ),
            Index(f"{table_name}_type_depth", "type", "depth"),
        )

    return HierarchyRecord


class SQLAlchemyClosureStore(ClosureStore):
    """
    SQLAlchemy implementation of ClosureStore.

    Args:
        url: SQLAlchemy connection URL
        table_name: Closure table name (default: "hierarchies")
        key_type: Column type for node ids ("int", "string", "uuid", "ulid")
        pool_size: Maximum pool connections (default: 5)
        echo: Enable SQL logging (default: False)
        isolation_level: Optional isolation level (e.g. "SERIALIZABLE")
        lazy: Defer engine/table creation until first use (default: False)
    """

    def __init__(
        self,
        url: str = "sqlite:///:memory:",
        table_name: str = "hierarchies",
        key_type: Union[KeyType, str] = KeyType.INT,
        pool_size: int = 5,
        echo: bool = False,
        isolation_level: Optional[str] = None,
        lazy: bool = False,
    ):
        self._url = url
        self._table_name = table_name
        self._key_type = KeyType(key_type)
        self._pool_size = pool_size
        self._echo = echo
        self._isolation_level = isolation_level
        # Held for the whole life of a transaction.
        self._lock = threading.RLock()
        self._init_lock = threading.Lock()

        self._engine = None
        self._session_factory = None
        self._base = None
        self._model = None
        self._initialized = False

        if not lazy:
            self._ensure_initialized()

    @property
    def table_name(self) -> str:
        return self._table_name

    @property
    def key_type(self) -> KeyType:
        return self._key_type

    @property
    def model(self):
        """The closure row ORM class."""
        self._ensure_initialized()
        return self._model

    @property
    def bind(self):
        """The underlying SQLAlchemy engine (shared with the snapshot projector)."""
        self._ensure_initialized()
        return self._engine

    @property
    def lock(self) -> threading.RLock:
        return self._lock

    def normalize_node(self, node: NodeRef) -> NodeRef:
        """Reference with its id in the canonical form for this key type."""
        return NodeRef(node.kind, normalize_key(self._key_type, node.id))

    def _ensure_initialized(self) -> None:
        """Lazily initialize engine, session factory, and schema."""
        if self._initialized:
            return

        with self._init_lock:
            if self._initialized:
                return

            self._engine = create_engine_for_url(
                self._url,
                pool_size=self._pool_size,
                echo=self._echo,
                isolation_level=self._isolation_level,
            )
            self._session_factory = sessionmaker(bind=self._engine)
            self._base = declarative_base()
            self._model = _create_closure_model(
                self._base, self._table_name, self._key_type
            )
            self._base.metadata.create_all(self._engine)

            self._initialized = True
            logger.debug(
                "Closure store initialized: table=%s, key_type=%s",
                self._table_name,
                self._key_type.value,
            )

    def _get_session(self) -> "Session":
        """Get a new session for database operations."""
        self._ensure_initialized()
        return self._session_factory()

    def transaction(self) -> "SQLAlchemyClosureTransaction":
        return SQLAlchemyClosureTransaction(self)

    def close(self) -> None:
        """Close engine and release resources."""
        if self._engine is not None:
            self._engine.dispose()
            self._engine = None
            self._session_factory = None
            self._initialized = False
        logger.debug("Closure store closed")


class SQLAlchemyClosureTransaction(ClosureTransaction):
    """
    Session-backed closure transaction.

    Holds the store lock from ``__enter__`` to ``__exit__``.
    """

    def __init__(self, store: SQLAlchemyClosureStore):
        self._store = store
        self._model = None
        self._session: Optional["Session"] = None

    def __enter__(self) -> "SQLAlchemyClosureTransaction":
        self._store._ensure_initialized()
        self._store.lock.acquire()
        try:
            self._model = self._store.model
            self._session = self._store._get_session()
        except Exception:
            self._store.lock.release()
            raise
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        session = self._session
        try:
            if exc_type is not None:
                session.rollback()
                return False

            try:
                session.commit()
            except IntegrityError as e:
                session.rollback()
                raise ConstraintViolationError(
                    f"Closure table constraint violated on commit: {e.orig}"
                ) from e
            except Exception:
                session.rollback()
                raise
        finally:
            session.close()
            self._session = None
            self._store.lock.release()
        return False

    @property
    def session(self) -> "Session":
        if self._session is None:
            raise RuntimeError("Transaction not started. Use 'with' context manager.")
        return self._session

    # ------------------------------------------------------------------
    # Clause helpers
    # ------------------------------------------------------------------

    def _endpoint(self, side: str, node: NodeRef):
        model = self._model
        return and_(
            getattr(model, f"{side}_kind") == node.kind,
            getattr(model, f"{side}_id") == normalize_key(self._store.key_type, node.id),
        )

    def _depth_clauses(self, depth: Optional[DepthFilter]) -> list:
        if depth is None:
            return []
        clauses = []
        if depth.greater_than is not None:
            clauses.append(self._model.depth > depth.greater_than)
        if depth.equals is not None:
            clauses.append(self._model.depth == depth.equals)
        if depth.at_most is not None:
            clauses.append(self._model.depth <= depth.at_most)
        return clauses

    @staticmethod
    def _to_row(record) -> ClosureRow:
        return ClosureRow(
            ancestor=NodeRef(record.ancestor_kind, record.ancestor_id),
            descendant=NodeRef(record.descendant_kind, record.descendant_id),
            depth=record.depth,
            hierarchy_type=record.type,
        )

    # ------------------------------------------------------------------
    # Primitive operations
    # ------------------------------------------------------------------

    def insert(self, row: ClosureRow) -> None:
        key_type = self._store.key_type
        record = self._model(
            ancestor_kind=row.ancestor.kind,
            ancestor_id=normalize_key(key_type, row.ancestor.id),
            descendant_kind=row.descendant.kind,
            descendant_id=normalize_key(key_type, row.descendant.id),
            depth=row.depth,
            type=row.hierarchy_type,
        )
        self.session.add(record)
        try:
            self.session.flush()
        except IntegrityError as e:
            raise ConstraintViolationError(
                f"Closure row [{row.ancestor}] -> [{row.descendant}] "
                f"already exists in hierarchy '{row.hierarchy_type}'."
            ) from e

    def delete_where(
        self,
        hierarchy_type: str,
        ancestor: Optional[NodeRef] = None,
        descendant: Optional[NodeRef] = None,
        depth: Optional[DepthFilter] = None,
        involving: Optional[NodeRef] = None,
        ancestors: Optional[Iterable[NodeRef]] = None,
        descendants: Optional[Iterable[NodeRef]] = None,
    ) -> int:
        clauses = [self._model.type == hierarchy_type]

        if ancestor is not None:
            clauses.append(self._endpoint("ancestor", ancestor))
        if descendant is not None:
            clauses.append(self._endpoint("descendant", descendant))
        if involving is not None:
            clauses.append(
                or_(
                    self._endpoint("ancestor", involving),
                    self._endpoint("descendant", involving),
                )
            )
        if ancestors is not None:
            ancestors = list(ancestors)
            if not ancestors:
                return 0
            clauses.append(or_(*[self._endpoint("ancestor", n) for n in ancestors]))
        if descendants is not None:
            descendants = list(descendants)
            if not descendants:
                return 0
            clauses.append(
                or_(*[self._endpoint("descendant", n) for n in descendants])
            )
        clauses.extend(self._depth_clauses(depth))

        return (
            self.session.query(self._model)
            .filter(*clauses)
            .delete(synchronize_session=False)
        )

    def query_ancestors(
        self,
        descendant: NodeRef,
        hierarchy_type: str,
        depth: Optional[DepthFilter] = None,
    ) -> List[ClosureRow]:
        records = (
            self.session.query(self._model)
            .filter(
                self._endpoint("descendant", descendant),
                self._model.type == hierarchy_type,
                *self._depth_clauses(depth),
            )
            .order_by(self._model.depth, self._model.id)
            .all()
        )
        return [self._to_row(r) for r in records]

    def query_descendants(
        self,
        ancestor: NodeRef,
        hierarchy_type: str,
        depth: Optional[DepthFilter] = None,
    ) -> List[ClosureRow]:
        records = (
            self.session.query(self._model)
            .filter(
                self._endpoint("ancestor", ancestor),
                self._model.type == hierarchy_type,
                *self._depth_clauses(depth),
            )
            .order_by(self._model.depth, self._model.id)
            .all()
        )
        return [self._to_row(r) for r in records]

    def exists(
        self,
        ancestor: NodeRef,
        descendant: NodeRef,
        hierarchy_type: str,
        depth: Optional[DepthFilter] = None,
    ) -> bool:
        found = (
            self.session.query(self._model.id)
            .filter(
                self._endpoint("ancestor", ancestor),
                self._endpoint("descendant", descendant),
                self._model.type == hierarchy_type,
                *self._depth_clauses(depth),
            )
            .first()
        )
        return found is not None

    def max_depth_for(self, node: NodeRef, hierarchy_type: str) -> Optional[int]:
        return (
            self.session.query(func.max(self._model.depth))
            .filter(
                self._endpoint("descendant", node),
                self._model.type == hierarchy_type,
            )
            .scalar()
        )

    def exists_self_row(self, node: NodeRef, hierarchy_type: str) -> bool:
        return self.exists(node, node, hierarchy_type, DepthFilter.exactly(0))

    def find_root_nodes(self, hierarchy_type: str) -> List[NodeRef]:
        model = self._model
        parent_link = aliased(model)
        has_parent = (
            select(parent_link.id)
            .where(
                parent_link.descendant_kind == model.descendant_kind,
                parent_link.descendant_id == model.descendant_id,
                parent_link.type == hierarchy_type,
                parent_link.depth > 0,
            )
            .exists()
        )
        records = (
            self.session.query(model)
            .filter(model.type == hierarchy_type, model.depth == 0, ~has_parent)
            .order_by(model.id)
            .all()
        )
        return [NodeRef(r.descendant_kind, r.descendant_id) for r in records]

    def rows(self, hierarchy_type: Optional[str] = None) -> List[ClosureRow]:
        query = self.session.query(self._model)
        if hierarchy_type is not None:
            query = query.filter(self._model.type == hierarchy_type)
        records = query.order_by(self._model.type, self._model.id).all()
        return [self._to_row(r) for r in records]


register_store("sqlalchemy", SQLAlchemyClosureStore)


__all__ = [
    "SQLAlchemyClosureStore",
    "SQLAlchemyClosureTransaction",
    "create_engine_for_url",
    "key_column_type",
    "normalize_key",
]
