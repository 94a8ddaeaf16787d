"""
StudioDash Repositories
=======================

Data access for the StudioDash domain.

``BaseRepository`` implements CRUD over one table; the domain repositories add
the queries the dashboard needs. ``CachedRepository`` wraps any repository so
that reads are memoized in the memory cache and writes clear the repository's
cache namespace.

Usage:
    database = init_database(settings.database)
    repositories = create_cached_repositories(database)
    projects = await repositories.projects.find_recent_for_user(user_id)
"""

import functools
import inspect
import json
import logging
from dataclasses import dataclass, fields
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, ClassVar, Dict, List, Mapping, Optional, Sequence, Type, TypeVar, Union

from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy import Table, and_, delete, func, insert, or_, select, update
from sqlalchemy.exc import SQLAlchemyError

from .config import RetrySettings
from .core import MemoryCache, get_memory_cache
from .database import (
    DatabaseManager, retry_operation, utcnow, new_id,
    users, projects, project_members, tasks, expenses, file_uploads, notes
)

logger = logging.getLogger(__name__)

T = TypeVar("T")
Row = Dict[str, Any]

# Task statuses that count as pending work
PENDING_TASK_STATUSES = ("todo", "in_progress")


# ==================== EXCEPTIONS ====================

class RepositoryError(Exception):
    """Base exception for repository operations."""
    pass


class RecordNotFoundError(RepositoryError):
    """Raised when a record to update does not exist."""
    pass


def mutation(method: Callable) -> Callable:
    """
    Mark a repository method as a write.

    A cached repository forwards marked methods and then clears its cache
    namespace instead of memoizing their result.
    """
    method.__cache_mutation__ = True
    return method


# ==================== INSERT SCHEMAS ====================

EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"


class InsertSchema(BaseModel):
    """Base for validated insert payloads."""
    model_config = ConfigDict(extra="forbid", str_strip_whitespace=True)

    id: Optional[str] = None


class UserCreate(InsertSchema):
    name: str = Field(..., min_length=1, max_length=255)
    email: str = Field(..., pattern=EMAIL_PATTERN)
    role: str = "user"


class ProjectCreate(InsertSchema):
    name: str = Field(..., min_length=1, max_length=255)
    description: str = ""
    type: str = Field(..., min_length=1)
    status: str = "active"
    start_date: datetime
    end_date: Optional[datetime] = None
    owner_id: str


class ProjectMemberCreate(InsertSchema):
    user_id: str
    project_id: str
    role: str = "member"


class TaskCreate(InsertSchema):
    title: str = Field(..., min_length=1, max_length=255)
    description: str = ""
    status: str = "todo"
    priority: str = "medium"
    due_date: Optional[datetime] = None
    project_id: str
    assignee_id: Optional[str] = None


class ExpenseCreate(InsertSchema):
    title: str = Field(..., min_length=1, max_length=255)
    description: str = ""
    amount: float = Field(..., ge=0)
    date: datetime
    category: str = Field(..., min_length=1)
    invoice_number: Optional[str] = None
    paid: bool = False
    user_id: str
    project_id: Optional[str] = None


class FileUploadCreate(InsertSchema):
    name: str = Field(..., min_length=1, max_length=255)
    type: str = Field(..., min_length=1)
    size: int = Field(..., ge=0)
    url: str = Field(..., min_length=1)
    google_drive_id: Optional[str] = None
    uploader_id: str
    project_id: Optional[str] = None
    storage_path: Optional[str] = None
    storage_bucket: Optional[str] = None


class NoteCreate(InsertSchema):
    title: str = Field(..., min_length=1, max_length=255)
    content: str
    is_public: bool = False
    author_id: str
    project_id: Optional[str] = None


# ==================== BASE REPOSITORY ====================

class BaseRepository:
    """
    CRUD over a single table.

    Rows are returned as plain dicts. Every statement runs under the retry
    policy; SQLAlchemy errors that survive it are logged and re-raised as
    ``RepositoryError``.
    """

    table: ClassVar[Table]
    insert_schema: ClassVar[Type[InsertSchema]]

    def __init__(self, database: DatabaseManager, retry: Optional[RetrySettings] = None):
        self.database = database
        self.retry = retry or database.retry

    @property
    def table_name(self) -> str:
        return self.table.name

    async def _execute(self, action: str, operation: Callable[[], T]) -> T:
        try:
            return await retry_operation(
                operation,
                max_retries=self.retry.max_retries,
                initial_delay=self.retry.initial_delay,
            )
        except SQLAlchemyError as e:
            logger.error(f"Error in {self.table_name} {action}: {e}")
            raise RepositoryError(f"{self.table_name} {action} failed: {e}") from e

    # Statement helpers, called inside _execute

    def _fetch_all(self, statement) -> List[Row]:
        with self.database.connect() as connection:
            return [dict(row) for row in connection.execute(statement).mappings()]

    def _fetch_one(self, statement) -> Optional[Row]:
        with self.database.connect() as connection:
            row = connection.execute(statement).mappings().first()
        return dict(row) if row is not None else None

    def _scalar(self, statement) -> Any:
        with self.database.connect() as connection:
            return connection.execute(statement).scalar()

    @staticmethod
    def _related(table, name: str, *columns: str) -> list:
        """Label related columns as ``name__column`` for ``_nest``."""
        return [table.c[column].label(f"{name}__{column}") for column in columns]

    @staticmethod
    def _nest(row: Row) -> Row:
        """Fold ``name__column`` keys into nested dicts; all-null relations become None."""
        record: Row = {}
        related: Dict[str, Row] = {}
        for key, value in row.items():
            if "__" in key:
                name, column = key.split("__", 1)
                related.setdefault(name, {})[column] = value
            else:
                record[key] = value
        for name, values in related.items():
            record[name] = None if all(v is None for v in values.values()) else values
        return record

    def _fetch_nested(self, statement) -> List[Row]:
        return [self._nest(row) for row in self._fetch_all(statement)]

    def _column(self, field: str):
        column = self.table.c.get(field)
        if column is None:
            raise RepositoryError(f"Unknown field '{field}' for {self.table_name}")
        return column

    def _validate_insert(self, data: Union[Mapping[str, Any], BaseModel]) -> Row:
        if isinstance(data, BaseModel):
            data = data.model_dump()
        values = self.insert_schema(**dict(data)).model_dump(exclude_none=True)
        values.setdefault("id", new_id())
        return values

    # CRUD

    async def find_by_id(self, id: str) -> Optional[Row]:
        """Return the row with this id or None."""
        statement = select(self.table).where(self.table.c.id == id)
        return await self._execute("find_by_id", lambda: self._fetch_one(statement))

    async def find_all(self) -> List[Row]:
        return await self._execute("find_all", lambda: self._fetch_all(select(self.table)))

    async def find_by_field(self, field: str, value: Any) -> List[Row]:
        """Rows whose ``field`` equals ``value``."""
        statement = select(self.table).where(self._column(field) == value)
        return await self._execute("find_by_field", lambda: self._fetch_all(statement))

    async def count(self) -> int:
        statement = select(func.count()).select_from(self.table)
        return await self._execute("count", lambda: self._scalar(statement))

    async def create(self, data: Union[Mapping[str, Any], BaseModel]) -> Row:
        """
        Insert a row.

        Args:
            data: Column values; validated by the repository's insert schema

        Returns:
            The stored row, including generated id and timestamps

        Raises:
            pydantic.ValidationError: If the data is invalid
            RepositoryError: If the insert fails
        """
        values = self._validate_insert(data)

        def _insert() -> Row:
            with self.database.begin() as connection:
                connection.execute(insert(self.table).values(**values))
                row = connection.execute(
                    select(self.table).where(self.table.c.id == values["id"])
                ).mappings().one()
            return dict(row)

        return await self._execute("create", _insert)

    async def update(self, id: str, data: Mapping[str, Any]) -> Row:
        """
        Update a row by id.

        Raises:
            RecordNotFoundError: If no row has this id
            RepositoryError: On unknown fields or database failure
        """
        values = dict(data)
        values.pop("id", None)
        values.pop("created_at", None)
        unknown = [key for key in values if key not in self.table.c]
        if unknown:
            raise RepositoryError(f"Unknown fields for {self.table_name}: {', '.join(sorted(unknown))}")
        if "updated_at" in self.table.c:
            values["updated_at"] = utcnow()

        def _update() -> Row:
            with self.database.begin() as connection:
                if values:
                    result = connection.execute(
                        update(self.table).where(self.table.c.id == id).values(**values)
                    )
                    if result.rowcount == 0:
                        raise RecordNotFoundError(f"{self.table_name} with ID {id} not found")
                row = connection.execute(
                    select(self.table).where(self.table.c.id == id)
                ).mappings().first()
            if row is None:
                raise RecordNotFoundError(f"{self.table_name} with ID {id} not found")
            return dict(row)

        return await self._execute("update", _update)

    async def delete(self, id: str) -> bool:
        """Delete a row; True if a row was removed."""
        def _delete() -> bool:
            with self.database.begin() as connection:
                result = connection.execute(delete(self.table).where(self.table.c.id == id))
            return result.rowcount > 0

        return await self._execute("delete", _delete)


# ==================== DOMAIN REPOSITORIES ====================

class UserRepository(BaseRepository):
    table = users
    insert_schema = UserCreate

    async def find_by_email(self, email: str) -> Optional[Row]:
        statement = select(users).where(users.c.email == email)
        return await self._execute("find_by_email", lambda: self._fetch_one(statement))

    async def find_by_role(self, role: str) -> List[Row]:
        return await self.find_by_field("role", role)


def _member_project_ids(user_id: str):
    return select(project_members.c.project_id).where(project_members.c.user_id == user_id)


def _owned_project_ids(user_id: str):
    return select(projects.c.id).where(projects.c.owner_id == user_id)


def _accessible_project_ids(user_id: str):
    return select(projects.c.id).where(
        or_(projects.c.owner_id == user_id, projects.c.id.in_(_member_project_ids(user_id)))
    )


class ProjectRepository(BaseRepository):
    table = projects
    insert_schema = ProjectCreate

    async def find_by_owner_id(self, owner_id: str) -> List[Row]:
        return await self.find_by_field("owner_id", owner_id)

    async def find_by_status(self, status: str) -> List[Row]:
        return await self.find_by_field("status", status)

    async def find_with_owner(self) -> List[Row]:
        """All projects with ``owner`` details."""
        statement = (
            select(projects, *self._related(users, "owner", "id", "name", "email"))
            .join(users, users.c.id == projects.c.owner_id)
        )
        return await self._execute("find_with_owner", lambda: self._fetch_nested(statement))

    async def find_with_members(self, project_id: str) -> Optional[Row]:
        """A project with its ``members`` list, or None."""
        project_statement = select(projects).where(projects.c.id == project_id)
        members_statement = (
            select(
                project_members.c.id, project_members.c.user_id, project_members.c.role,
                *self._related(users, "user", "id", "name", "email"),
            )
            .join(users, users.c.id == project_members.c.user_id)
            .where(project_members.c.project_id == project_id)
            .order_by(project_members.c.created_at)
        )

        def _load() -> Optional[Row]:
            project = self._fetch_one(project_statement)
            if project is None:
                return None
            project["members"] = self._fetch_nested(members_statement)
            return project

        return await self._execute("find_with_members", _load)

    async def find_by_member_id(self, user_id: str) -> List[Row]:
        """Projects the user is a member of."""
        statement = (
            select(projects)
            .join(project_members, project_members.c.project_id == projects.c.id)
            .where(project_members.c.user_id == user_id)
        )
        return await self._execute("find_by_member_id", lambda: self._fetch_all(statement))

    async def find_recent_for_user(self, user_id: str, limit: int = 5) -> List[Row]:
        """Most recently updated projects the user owns or belongs to."""
        owned_statement = (
            select(projects)
            .where(projects.c.owner_id == user_id)
            .order_by(projects.c.updated_at.desc())
            .limit(limit)
        )
        member_statement = (
            select(projects)
            .join(project_members, project_members.c.project_id == projects.c.id)
            .where(project_members.c.user_id == user_id)
            .order_by(project_members.c.created_at.desc())
            .limit(limit)
        )

        def _load() -> List[Row]:
            combined: Dict[str, Row] = {}
            for project in self._fetch_all(owned_statement) + self._fetch_all(member_statement):
                combined.setdefault(project["id"], project)
            ordered = sorted(combined.values(), key=lambda project: project["updated_at"], reverse=True)
            return ordered[:limit]

        return await self._execute("find_recent_for_user", _load)

    async def count_active_for_user(self, user_id: str) -> int:
        statement = (
            select(func.count())
            .select_from(projects)
            .where(and_(projects.c.status == "active", projects.c.id.in_(_accessible_project_ids(user_id))))
        )
        return await self._execute("count_active_for_user", lambda: self._scalar(statement))

    @mutation
    async def add_member(self, project_id: str, user_id: str, role: str = "member") -> Row:
        """Add a user to a project."""
        values = ProjectMemberCreate(project_id=project_id, user_id=user_id, role=role).model_dump(exclude_none=True)
        values["id"] = new_id()

        def _insert() -> Row:
            with self.database.begin() as connection:
                connection.execute(insert(project_members).values(**values))
                row = connection.execute(
                    select(project_members).where(project_members.c.id == values["id"])
                ).mappings().one()
            return dict(row)

        return await self._execute("add_member", _insert)


class TaskRepository(BaseRepository):
    table = tasks
    insert_schema = TaskCreate

    async def find_by_project_id(self, project_id: str) -> List[Row]:
        return await self.find_by_field("project_id", project_id)

    async def find_by_assignee_id(self, assignee_id: str) -> List[Row]:
        return await self.find_by_field("assignee_id", assignee_id)

    async def find_by_status(self, status: str) -> List[Row]:
        return await self.find_by_field("status", status)

    def _details_statement(self):
        return (
            select(
                tasks,
                *self._related(users, "assignee", "id", "name", "email"),
                *self._related(projects, "project", "id", "name", "status"),
            )
            .outerjoin(users, users.c.id == tasks.c.assignee_id)
            .join(projects, projects.c.id == tasks.c.project_id)
        )

    async def find_with_details(
        self,
        project_id: Optional[str] = None,
        assignee_id: Optional[str] = None,
        status: Optional[str] = None,
    ) -> List[Row]:
        """Tasks with ``assignee`` and ``project`` details, optionally filtered."""
        statement = self._details_statement()
        if project_id:
            statement = statement.where(tasks.c.project_id == project_id)
        if assignee_id:
            statement = statement.where(tasks.c.assignee_id == assignee_id)
        if status:
            statement = statement.where(tasks.c.status == status)
        return await self._execute("find_with_details", lambda: self._fetch_nested(statement))

    async def find_upcoming_for_user(self, user_id: str, limit: int = 5) -> List[Row]:
        """Tasks assigned to the user that are due from now on, soonest first."""
        statement = (
            self._details_statement()
            .where(tasks.c.assignee_id == user_id, tasks.c.due_date >= utcnow())
            .order_by(tasks.c.due_date.asc())
            .limit(limit)
        )
        return await self._execute("find_upcoming_for_user", lambda: self._fetch_nested(statement))

    async def count_pending_for_user(self, user_id: str) -> int:
        """Open tasks assigned to the user or belonging to projects the user owns."""
        statement = (
            select(func.count())
            .select_from(tasks)
            .where(
                tasks.c.status.in_(PENDING_TASK_STATUSES),
                or_(tasks.c.assignee_id == user_id, tasks.c.project_id.in_(_owned_project_ids(user_id))),
            )
        )
        return await self._execute("count_pending_for_user", lambda: self._scalar(statement))


class ExpenseRepository(BaseRepository):
    table = expenses
    insert_schema = ExpenseCreate

    async def find_by_user_id(self, user_id: str) -> List[Row]:
        return await self.find_by_field("user_id", user_id)

    async def find_by_project_id(self, project_id: str) -> List[Row]:
        return await self.find_by_field("project_id", project_id)

    async def find_recent_by_user_id(self, user_id: str, limit: int = 5) -> List[Row]:
        statement = (
            select(expenses)
            .where(expenses.c.user_id == user_id)
            .order_by(expenses.c.date.desc())
            .limit(limit)
        )
        return await self._execute("find_recent_by_user_id", lambda: self._fetch_all(statement))

    async def find_with_project_by_user_id(self, user_id: str) -> List[Row]:
        statement = (
            select(expenses, *self._related(projects, "project", "id", "name", "status"))
            .outerjoin(projects, projects.c.id == expenses.c.project_id)
            .where(expenses.c.user_id == user_id)
            .order_by(expenses.c.date.desc())
        )
        return await self._execute("find_with_project_by_user_id", lambda: self._fetch_nested(statement))

    async def get_summary_by_category(self, user_id: str) -> List[Dict[str, Any]]:
        """Totals per category for the user's expenses, in first-seen category order."""
        statement = (
            select(expenses.c.category, expenses.c.amount)
            .where(expenses.c.user_id == user_id)
            .order_by(expenses.c.date)
        )

        def _summarize() -> List[Dict[str, Any]]:
            totals: Dict[str, float] = {}
            for row in self._fetch_all(statement):
                totals[row["category"]] = totals.get(row["category"], 0.0) + float(row["amount"])
            return [{"category": category, "total": total} for category, total in totals.items()]

        return await self._execute("get_summary_by_category", _summarize)

    async def get_total_for_user(self, user_id: str) -> float:
        """Sum of expenses filed by the user or booked on projects the user can access."""
        statement = (
            select(func.coalesce(func.sum(expenses.c.amount), 0))
            .where(or_(expenses.c.user_id == user_id, expenses.c.project_id.in_(_accessible_project_ids(user_id))))
        )
        return float(await self._execute("get_total_for_user", lambda: self._scalar(statement)))

    async def get_monthly_totals_for_user(
        self, user_id: str, months: int = 6, now: Optional[datetime] = None
    ) -> List[Dict[str, Any]]:
        """
        Monthly expense totals over the last ``months`` calendar months.

        Covers the same expenses as ``get_total_for_user``. The current month
        is the last entry; months without expenses report 0.

        Args:
            user_id: User whose accessible expenses are summed
            months: Number of calendar months, current month included
            now: Reference time, defaults to the current UTC time

        Returns:
            ``{"month": "Jan 24", "amount": 12.5}`` entries, oldest first
        """
        if months < 1:
            raise ValueError(f"months must be at least 1, got {months}")

        now = now or utcnow()
        window = []
        for offset in range(months - 1, -1, -1):
            year, month = divmod(now.year * 12 + now.month - 1 - offset, 12)
            window.append((year, month + 1))

        first_year, first_month = window[0]
        start = datetime(first_year, first_month, 1, tzinfo=timezone.utc)
        statement = (
            select(expenses.c.amount, expenses.c.date)
            .where(
                expenses.c.date >= start,
                or_(expenses.c.user_id == user_id, expenses.c.project_id.in_(_accessible_project_ids(user_id))),
            )
        )

        def _bucket() -> List[Dict[str, Any]]:
            buckets = dict.fromkeys(window, 0.0)
            for row in self._fetch_all(statement):
                month_key = (row["date"].year, row["date"].month)
                # Dates past the current month are outside the window
                if month_key in buckets:
                    buckets[month_key] += float(row["amount"])
            return [
                {"month": f"{datetime(year, month, 1):%b %y}", "amount": round(total, 2)}
                for (year, month), total in buckets.items()
            ]

        return await self._execute("get_monthly_totals_for_user", _bucket)


class FileRepository(BaseRepository):
    table = file_uploads
    insert_schema = FileUploadCreate

    async def find_by_uploader_id(self, uploader_id: str) -> List[Row]:
        return await self.find_by_field("uploader_id", uploader_id)

    async def find_by_project_id(self, project_id: str) -> List[Row]:
        return await self.find_by_field("project_id", project_id)

    async def find_by_type(self, type: str) -> List[Row]:
        return await self.find_by_field("type", type)

    async def find_recent_for_user(self, user_id: str, limit: int = 5) -> List[Row]:
        statement = (
            select(
                file_uploads,
                *self._related(users, "uploader", "id", "name", "email"),
                *self._related(projects, "project", "id", "name", "status"),
            )
            .join(users, users.c.id == file_uploads.c.uploader_id)
            .outerjoin(projects, projects.c.id == file_uploads.c.project_id)
            .where(file_uploads.c.uploader_id == user_id)
            .order_by(file_uploads.c.created_at.desc())
            .limit(limit)
        )
        return await self._execute("find_recent_for_user", lambda: self._fetch_nested(statement))

    async def find_by_google_drive_id(self, google_drive_id: str) -> Optional[Row]:
        statement = select(file_uploads).where(file_uploads.c.google_drive_id == google_drive_id)
        return await self._execute("find_by_google_drive_id", lambda: self._fetch_one(statement))

    async def count_recent_for_user(self, user_id: str, days: int = 7) -> int:
        """Files uploaded in the last ``days`` days by the user or to projects the user can access."""
        since = utcnow() - timedelta(days=days)
        statement = (
            select(func.count())
            .select_from(file_uploads)
            .where(
                file_uploads.c.created_at >= since,
                or_(
                    file_uploads.c.uploader_id == user_id,
                    file_uploads.c.project_id.in_(_accessible_project_ids(user_id)),
                ),
            )
        )
        return await self._execute("count_recent_for_user", lambda: self._scalar(statement))


class NoteRepository(BaseRepository):
    table = notes
    insert_schema = NoteCreate

    async def find_by_author_id(self, author_id: str) -> List[Row]:
        return await self.find_by_field("author_id", author_id)

    async def find_by_project_id(self, project_id: str) -> List[Row]:
        return await self.find_by_field("project_id", project_id)

    async def find_public(self) -> List[Row]:
        return await self.find_by_field("is_public", True)

    def _details_statement(self):
        return (
            select(
                notes,
                *self._related(users, "author", "id", "name", "email"),
                *self._related(projects, "project", "id", "name", "status"),
            )
            .join(users, users.c.id == notes.c.author_id)
            .outerjoin(projects, projects.c.id == notes.c.project_id)
        )

    async def find_recent_for_user(self, user_id: str, limit: int = 5) -> List[Row]:
        statement = (
            self._details_statement()
            .where(notes.c.author_id == user_id)
            .order_by(notes.c.updated_at.desc())
            .limit(limit)
        )
        return await self._execute("find_recent_for_user", lambda: self._fetch_nested(statement))

    async def search_by_content(self, query: str, user_id: Optional[str] = None) -> List[Row]:
        """
        Case-insensitive search over title and content.

        Without a user only public notes are searched; with one, only that
        user's notes.
        """
        pattern = f"%{query}%"
        statement = self._details_statement().where(
            or_(notes.c.title.ilike(pattern), notes.c.content.ilike(pattern))
        )
        if user_id:
            statement = statement.where(notes.c.author_id == user_id)
        else:
            statement = statement.where(notes.c.is_public.is_(True))
        return await self._execute("search_by_content", lambda: self._fetch_nested(statement))


# ==================== CACHED REPOSITORY ====================

class CachedRepository:
    """
    Caching decorator around a repository.

    Reads go through the memory cache under ``"{prefix}:{method}:{json args}"``;
    ``create``, ``update``, ``delete`` and methods marked with ``@mutation``
    delegate and then remove every key under ``"{prefix}:"``. Namespaces listed in
    ``invalidates`` are cleared too, for repositories whose reads depend on
    this one. All other public
    coroutine methods of the repository are cached with the default TTL.
    """

    _EXPLICIT_METHODS = frozenset({"find_by_id", "find_all", "find_by_field", "create", "update", "delete"})

    def __init__(
        self,
        repository: Any,
        prefix: str,
        default_ttl: float,
        cache: Optional[MemoryCache] = None,
        invalidates: Sequence[str] = (),
    ):
        self._repository = repository
        self.prefix = prefix
        self.invalidates = tuple(invalidates)
        self.default_ttl = default_ttl
        self.cache = cache if cache is not None else get_memory_cache()
        self._wrap_repository_methods()

    def _wrap_repository_methods(self) -> None:
        for name, attribute in inspect.getmembers(type(self._repository)):
            if name.startswith("_") or name in self._EXPLICIT_METHODS:
                continue
            if not inspect.iscoroutinefunction(attribute):
                continue
            method = getattr(self._repository, name)
            if getattr(attribute, "__cache_mutation__", False):
                wrapper = self._mutating(method)
            else:
                wrapper = self._memoized(name, method)
            setattr(self, name, wrapper)

    def _memoized(self, name: str, method: Callable) -> Callable:
        @functools.wraps(method)
        async def wrapper(*args, **kwargs):
            key = self._cache_key(name, args, kwargs)
            return await self.cache.get_or_set(key, lambda: method(*args, **kwargs), self.default_ttl)
        return wrapper

    def _mutating(self, method: Callable) -> Callable:
        @functools.wraps(method)
        async def wrapper(*args, **kwargs):
            result = await method(*args, **kwargs)
            self.invalidate_cache()
            return result
        return wrapper

    def _cache_key(self, method: str, args: tuple, kwargs: Optional[Dict[str, Any]] = None) -> str:
        payload = list(args)
        if kwargs:
            payload.append(kwargs)
        return f"{self.prefix}:{method}:{json.dumps(payload, default=str)}"

    def _ttl(self, ttl: Optional[float]) -> float:
        return self.default_ttl if ttl is None else ttl

    async def find_by_id(self, id: str, ttl: Optional[float] = None) -> Optional[Row]:
        return await self.cache.get_or_set(
            self._cache_key("find_by_id", (id,)),
            lambda: self._repository.find_by_id(id),
            self._ttl(ttl),
        )

    async def find_all(self, ttl: Optional[float] = None) -> List[Row]:
        return await self.cache.get_or_set(
            self._cache_key("find_all", ()),
            lambda: self._repository.find_all(),
            self._ttl(ttl),
        )

    async def find_by_field(self, field: str, value: Any, ttl: Optional[float] = None) -> List[Row]:
        return await self.cache.get_or_set(
            self._cache_key("find_by_field", (field, value)),
            lambda: self._repository.find_by_field(field, value),
            self._ttl(ttl),
        )

    async def create(self, data: Any) -> Row:
        result = await self._repository.create(data)
        self.invalidate_cache()
        return result

    async def update(self, id: str, data: Mapping[str, Any]) -> Row:
        result = await self._repository.update(id, data)
        self.invalidate_cache()
        return result

    async def delete(self, id: str) -> bool:
        result = await self._repository.delete(id)
        self.invalidate_cache()
        return result

    def invalidate_cache(self) -> int:
        """Remove every cached entry of this repository and of the dependent namespaces."""
        return sum(
            self.cache.invalidate_by_prefix(f"{prefix}:")
            for prefix in (self.prefix, *self.invalidates)
        )

    def get_repository(self) -> Any:
        return self._repository

    def __getattr__(self, name: str) -> Any:
        if name == "_repository":
            raise AttributeError(name)
        return getattr(self._repository, name)

    def __repr__(self) -> str:
        return f"CachedRepository(prefix={self.prefix!r}, repository={type(self._repository).__name__})"


class RepositoryFactory:
    """Builds cached repositories."""

    @staticmethod
    def create_cached(
        repository: Any,
        prefix: str,
        default_ttl: float = 60,
        cache: Optional[MemoryCache] = None,
        invalidates: Sequence[str] = (),
    ) -> CachedRepository:
        """
        Wrap a repository with the memory cache.

        Args:
            repository: Repository to decorate
            prefix: Cache namespace, unique per repository
            default_ttl: Lifetime in seconds of cached reads
            cache: Cache to use (process-wide cache when None)
            invalidates: Other namespaces to clear on every write
        """
        return CachedRepository(repository, prefix, default_ttl, cache, invalidates)


@dataclass
class Repositories:
    """The cached domain repositories used by the application."""
    users: CachedRepository
    projects: CachedRepository
    tasks: CachedRepository
    expenses: CachedRepository
    files: CachedRepository
    notes: CachedRepository

    def all(self) -> List[CachedRepository]:
        return [getattr(self, f.name) for f in fields(self)]

    def invalidate_all(self) -> int:
        return sum(repository.invalidate_cache() for repository in self.all())


def create_cached_repositories(
    database: DatabaseManager,
    cache: Optional[MemoryCache] = None,
    default_ttl: float = 300,
    retry: Optional[RetrySettings] = None,
) -> Repositories:
    """
    Create the six domain repositories wrapped with caching.

    Args:
        database: Initialized database manager
        cache: Cache to use (process-wide cache when None)
        default_ttl: Lifetime in seconds of cached reads
        retry: Retry policy (the database manager's when None)
    """
    def cached(repository_class: Type[BaseRepository], prefix: str, invalidates: Sequence[str] = ()) -> CachedRepository:
        return RepositoryFactory.create_cached(
            repository_class(database, retry), prefix, default_ttl, cache, invalidates
        )

    # Reads that embed users or filter by project access go stale on their writes
    return Repositories(
        users=cached(UserRepository, "user", invalidates=("project", "task", "file", "note")),
        projects=cached(ProjectRepository, "project", invalidates=("task", "expense", "file", "note")),
        tasks=cached(TaskRepository, "task"),
        expenses=cached(ExpenseRepository, "expense"),
        files=cached(FileRepository, "file"),
        notes=cached(NoteRepository, "note"),
    )
