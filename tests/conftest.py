"""
Pytest configuration and shared fixtures.
"""

import pytest

from src.database.repositories.records import InMemoryRecordRepository
from src.models.bulk import ChangeDescriptor, OperationOptions, TargetType
from src.operations.orchestrator import BulkOperationOrchestrator
from src.operations.registry import get_action_registry
from src.operations.tracker import OperationTracker


@pytest.fixture
def sample_tasks():
    """Three tasks; task 2 is archived."""
    return {
        "1": {"title": "Reconcile bank feed", "status": "todo", "assignedTo": "alice", "tags": ["finance"]},
        "2": {"title": "Old engagement letter", "status": "archived", "assignedTo": None, "tags": []},
        "3": {"title": "File quarterly return", "status": "in_progress", "assignedTo": None, "tags": ["tax"]},
    }


@pytest.fixture
def repository(sample_tasks):
    """In-memory record store seeded with tasks, projects and clients."""
    repo = InMemoryRecordRepository()
    for record_id, values in sample_tasks.items():
        repo.seed(TargetType.TASKS, record_id, values)

    repo.seed(TargetType.PROJECTS, "p1", {
        "name": "Year-end close",
        "status": "active",
        "budgetAmount": 1000.0,
        "start_date": "2026-01-01",
        "end_date": "2026-03-31",
        "tags": [],
    })
    repo.seed(TargetType.PROJECTS, "p2", {
        "name": "Payroll migration",
        "status": "completed",
        "budgetAmount": 200.0,
        "start_date": "2026-02-01",
        "end_date": "2026-02-28",
        "tags": ["payroll"],
    })

    repo.seed(TargetType.CLIENTS, "c1", {"name": "Acme Ltd", "status": "active", "accountType": "individual"})
    repo.seed(TargetType.CLIENTS, "c2", {
        "name": "Globex Corp",
        "status": "prospect",
        "accountType": "corporation",
        "primaryContactId": "contact-9",
    })
    return repo


@pytest.fixture
def registry():
    return get_action_registry()


@pytest.fixture
def tracker():
    return OperationTracker(retention_hours=48)


@pytest.fixture
def orchestrator(repository, tracker):
    return BulkOperationOrchestrator(
        repository=repository,
        tracker=tracker,
        max_targets=50,
        concurrency=3,
        item_timeout=2.0,
    )


@pytest.fixture
def make_descriptor(registry):
    """Build a descriptor the way the API does."""

    def _make(action_id="status", target_type="tasks", target_ids=("1", "2", "3"), parameters=None, **options):
        record_type = TargetType(target_type)
        params = registry.parse_parameters(action_id, parameters or {"newStatus": "done"}, record_type)
        return ChangeDescriptor(
            action_id=action_id,
            target_type=record_type,
            target_ids=list(target_ids),
            parameters=params,
            options=OperationOptions(**options),
        )

    return _make
