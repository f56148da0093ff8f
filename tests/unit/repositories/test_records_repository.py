"""
Unit tests for the record repositories.

The in-memory store is tested directly; the SQL store runs against a
file-backed SQLite database through aiosqlite.
"""

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from src.database.exceptions import DatabaseConnectionError, EntityNotFoundError, RecordConflictError
from src.database.models import Base
from src.database.repositories.records import InMemoryRecordRepository, SqlRecordRepository
from src.models.bulk import SelectionFilter, TargetType


@pytest_asyncio.fixture
async def session_factory(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'records.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(engine, expire_on_commit=False)
    await engine.dispose()


@pytest_asyncio.fixture
async def sql_repository(session_factory):
    repo = SqlRecordRepository(session_factory)
    await repo.create(TargetType.TASKS, "1", {"title": "Reconcile bank feed", "status": "todo"})
    await repo.create(TargetType.PROJECTS, "1", {"name": "Year-end close", "status": "active"})
    return repo


# ============================================================
# IN-MEMORY STORE
# ============================================================

@pytest.mark.asyncio
async def test_memory_update_bumps_version():
    repo = InMemoryRecordRepository()
    repo.seed(TargetType.TASKS, "1", {"status": "todo", "title": "A"})

    written = await repo.update(TargetType.TASKS, "1", {"status": "done"}, expected_version=1)

    assert written.version == 2
    assert written.values == {"status": "done", "title": "A"}
    assert repo.write_count == 1


@pytest.mark.asyncio
async def test_memory_update_unsets_fields():
    repo = InMemoryRecordRepository()
    repo.seed(TargetType.CLIENTS, "c1", {"name": "Acme", "tags": ["vip"]})

    written = await repo.update(TargetType.CLIENTS, "c1", {"name": "Acme"}, unset=["tags", "missing"])

    assert written.values == {"name": "Acme"}


@pytest.mark.asyncio
async def test_memory_stale_version_conflicts():
    repo = InMemoryRecordRepository()
    repo.seed(TargetType.TASKS, "1", {"status": "todo"}, version=4)

    with pytest.raises(RecordConflictError) as exc:
        await repo.update(TargetType.TASKS, "1", {"status": "done"}, expected_version=3)

    assert exc.value.actual_version == 4
    assert repo.write_count == 0


@pytest.mark.asyncio
async def test_memory_snapshots_are_detached():
    repo = InMemoryRecordRepository()
    repo.seed(TargetType.TASKS, "1", {"tags": ["a"]})

    snapshot = await repo.get(TargetType.TASKS, "1")
    snapshot.values["tags"].append("b")

    assert (await repo.get(TargetType.TASKS, "1")).values["tags"] == ["a"]


@pytest.mark.asyncio
async def test_memory_get_many_skips_missing():
    repo = InMemoryRecordRepository()
    repo.seed(TargetType.CLIENTS, "c1", {"name": "Acme"})

    found = await repo.get_many("clients", ["c1", "c2"])

    assert list(found) == ["c1"]
    with pytest.raises(EntityNotFoundError):
        await repo.get(TargetType.CLIENTS, "c2")


@pytest.mark.asyncio
async def test_memory_unavailable():
    repo = InMemoryRecordRepository()
    repo.set_unavailable()

    with pytest.raises(DatabaseConnectionError):
        await repo.get_many(TargetType.TASKS, ["1"])


@pytest.mark.asyncio
async def test_memory_select_filters(repository):
    open_tasks = await repository.select(TargetType.TASKS, SelectionFilter(status=["todo", "in_progress"]))
    tagged = await repository.select(TargetType.TASKS, SelectionFilter(tags=["tax", "payroll"]))
    alices = await repository.select(TargetType.TASKS, SelectionFilter(assigned_to=["alice"]))

    assert [s.id for s in open_tasks] == ["1", "3"]
    assert [s.id for s in tagged] == ["3"]
    assert [s.id for s in alices] == ["1"]


@pytest.mark.asyncio
async def test_memory_select_search_date_range_and_limit(repository):
    by_name = await repository.select(TargetType.CLIENTS, SelectionFilter(search="GLOBEX"))
    in_february = await repository.select(
        TargetType.PROJECTS,
        SelectionFilter.model_validate({"dateRange": {"field": "start_date", "from": "2026-02-01", "to": "2026-02-28"}}),
    )
    everything = await repository.select(TargetType.TASKS)
    first_two = await repository.select(TargetType.TASKS, limit=2)

    assert [s.id for s in by_name] == ["c2"]
    assert [s.id for s in in_february] == ["p2"]
    assert [s.id for s in everything] == ["1", "2", "3"]
    assert [s.id for s in first_two] == ["1", "2"]


@pytest.mark.asyncio
async def test_memory_select_unavailable(repository):
    repository.set_unavailable()

    with pytest.raises(DatabaseConnectionError):
        await repository.select(TargetType.TASKS)


# ============================================================
# SQL STORE
# ============================================================

@pytest.mark.asyncio
async def test_sql_get_is_scoped_by_type(sql_repository):
    task = await sql_repository.get(TargetType.TASKS, "1")
    project = await sql_repository.get(TargetType.PROJECTS, "1")

    assert task.values["title"] == "Reconcile bank feed"
    assert project.values["name"] == "Year-end close"
    assert task.version == 1


@pytest.mark.asyncio
async def test_sql_update_merges_and_bumps_version(sql_repository):
    written = await sql_repository.update(TargetType.TASKS, "1", {"status": "done"}, expected_version=1)

    assert written.version == 2
    assert written.values == {"title": "Reconcile bank feed", "status": "done"}

    reread = await sql_repository.get(TargetType.TASKS, "1")
    assert reread.version == 2
    assert reread.values["status"] == "done"


@pytest.mark.asyncio
async def test_sql_stale_version_conflicts(sql_repository):
    await sql_repository.update(TargetType.TASKS, "1", {"status": "in_progress"})

    with pytest.raises(RecordConflictError):
        await sql_repository.update(TargetType.TASKS, "1", {"status": "done"}, expected_version=1)

    assert (await sql_repository.get(TargetType.TASKS, "1")).values["status"] == "in_progress"


@pytest.mark.asyncio
async def test_sql_missing_record(sql_repository):
    assert await sql_repository.get_many(TargetType.TASKS, ["1", "2"]) != {}
    assert "2" not in await sql_repository.get_many(TargetType.TASKS, ["1", "2"])

    with pytest.raises(EntityNotFoundError):
        await sql_repository.update(TargetType.TASKS, "2", {"status": "done"})


@pytest.mark.asyncio
async def test_sql_get_many_empty(sql_repository):
    assert await sql_repository.get_many(TargetType.TASKS, []) == {}


@pytest.mark.asyncio
async def test_sql_select_is_scoped_and_filtered(sql_repository):
    await sql_repository.create(TargetType.TASKS, "2", {"title": "File quarterly return", "status": "done"})
    await sql_repository.create(TargetType.TASKS, "3", {"title": "Chase invoices", "status": "todo"})

    todo = await sql_repository.select(TargetType.TASKS, SelectionFilter(status=["todo"]))
    projects = await sql_repository.select(TargetType.PROJECTS)
    limited = await sql_repository.select(TargetType.TASKS, limit=1)

    assert [s.id for s in todo] == ["1", "3"]
    assert [s.id for s in projects] == ["1"]
    assert [s.id for s in limited] == ["1"]


@pytest.mark.asyncio
async def test_sql_update_unsets_fields(sql_repository):
    await sql_repository.update(TargetType.TASKS, "1", {"tags": ["q4"]})

    written = await sql_repository.update(TargetType.TASKS, "1", {"status": "todo"}, unset=["tags"])

    assert written.values == {"title": "Reconcile bank feed", "status": "todo"}
    assert (await sql_repository.get(TargetType.TASKS, "1")).values == written.values
