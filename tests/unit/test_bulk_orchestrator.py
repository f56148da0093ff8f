"""
End-to-end tests of the orchestrator against the in-memory record store.
"""

import pytest

from src.database.repositories.records import InMemoryRecordRepository
from src.models.api_validation import BulkOperationRequest, BulkSelectRequest
from src.models.bulk import OperationStatus, RecordStatus, TargetType
from src.operations.exceptions import OperationFault, RequestError
from src.operations.orchestrator import BulkOperationOrchestrator
from src.operations.tracker import OperationTracker


class ObservingTracker(OperationTracker):
    """Keeps every state returned by report() for invariant checks."""

    def __init__(self):
        super().__init__(retention_hours=1)
        self.observed = []

    async def report(self, operation_id, result):
        state = await super().report(operation_id, result)
        self.observed.append(state)
        return state


def _request(**overrides):
    body = {
        "type": "tasks",
        "action": "status",
        "targetIds": [1, 2, 3],
        "changes": {"newStatus": "done"},
        "options": {"continueOnError": True, "createBackup": True},
    }
    body.update(overrides)
    return BulkOperationRequest.model_validate(body)


@pytest.mark.asyncio
class TestScenario:
    """Three tasks to done, task 2 archived."""

    async def test_status_change_with_archived_task(self, orchestrator, repository):
        descriptor = orchestrator.descriptor_from_request(_request())

        report = await orchestrator.validate(descriptor)
        assert report.result_for("2").status == RecordStatus.ERROR

        operation_id = await orchestrator.execute(descriptor, user_id="ops-lead")
        final = await orchestrator.wait_for(operation_id, timeout=5)

        assert final.status == OperationStatus.COMPLETED
        assert final.success_count == 2
        assert final.error_count == 1
        assert final.can_rollback is True

        result = await orchestrator.rollback(operation_id)

        assert result.restored_ids == ["1", "3"]
        assert (await repository.get(TargetType.TASKS, "1")).values["status"] == "todo"
        assert (await repository.get(TargetType.TASKS, "3")).values["status"] == "in_progress"
        assert (await repository.get(TargetType.TASKS, "2")).values["status"] == "archived"


@pytest.mark.asyncio
class TestProperties:

    async def test_validation_is_repeatable(self, orchestrator, make_descriptor):
        descriptor = make_descriptor()

        assert await orchestrator.validate(descriptor) == await orchestrator.validate(descriptor)

    async def test_preview_matches_written_values(self, orchestrator, repository, make_descriptor):
        descriptor = make_descriptor(action_id="add_tags", parameters={"tags": ["q4", "finance"]})
        preview = await orchestrator.preview(descriptor)

        operation_id = await orchestrator.execute(descriptor)
        await orchestrator.wait_for(operation_id, timeout=5)

        for entry in preview.preview_data:
            if entry.status == RecordStatus.ERROR:
                continue
            written = await repository.get(TargetType.TASKS, entry.record_id)
            assert written.values == entry.new_values

    async def test_counter_invariant(self, repository, make_descriptor):
        tracker = ObservingTracker()
        orchestrator = BulkOperationOrchestrator(
            repository=repository, tracker=tracker, max_targets=50, concurrency=3, item_timeout=2.0
        )
        for i in range(30):
            repository.seed(TargetType.TASKS, f"bulk-{i}", {"title": f"Task {i}", "status": "todo"})
        target_ids = [f"bulk-{i}" for i in range(30)] + ["2"]

        operation_id = await orchestrator.execute(make_descriptor(target_ids=target_ids))
        final = await orchestrator.wait_for(operation_id, timeout=5)

        assert len(tracker.observed) == 31
        for state in tracker.observed:
            assert state.success_count + state.error_count == state.progress_current <= state.progress_total
        currents = [state.progress_current for state in tracker.observed]
        assert currents == sorted(currents)
        assert final.success_count == 30
        assert final.error_count == 1

    async def test_injected_empty_components_are_kept(self, registry):
        tracker = OperationTracker(retention_hours=1)
        empty_store = InMemoryRecordRepository()

        orchestrator = BulkOperationOrchestrator(repository=empty_store, registry=registry, tracker=tracker)

        assert len(tracker) == 0
        assert orchestrator.tracker is tracker
        assert orchestrator.repository is empty_store
        assert orchestrator.executor.tracker is tracker

    async def test_snapshot_differs_from_written_state(self, orchestrator, repository, make_descriptor):
        operation_id = await orchestrator.execute(make_descriptor())
        await orchestrator.wait_for(operation_id, timeout=5)

        operation = orchestrator.tracker._operations[operation_id]
        assert operation.snapshots
        for record_id, snapshot in operation.snapshots.items():
            written = await repository.get(TargetType.TASKS, record_id)
            assert written.values != snapshot.values

    async def test_partial_failure_completes(self, orchestrator, make_descriptor):
        operation_id = await orchestrator.execute(make_descriptor(target_ids=("1", "2", "3", "404")))
        final = await orchestrator.wait_for(operation_id, timeout=5)

        assert final.status == OperationStatus.COMPLETED
        assert final.success_count == 2
        assert final.error_count == 2
        assert "404: Task 404 not found" in final.errors


@pytest.mark.asyncio
class TestRequestErrors:

    async def test_unknown_action(self, orchestrator):
        with pytest.raises(RequestError) as exc:
            orchestrator.descriptor_from_request(_request(action="merge"))

        assert "Unknown action" in str(exc.value)

    async def test_bad_parameters(self, orchestrator):
        with pytest.raises(RequestError):
            orchestrator.descriptor_from_request(_request(changes={"newStatus": "approved"}))

    async def test_empty_targets(self, orchestrator):
        with pytest.raises(RequestError):
            orchestrator.descriptor_from_request(_request(targetIds=[]))

    async def test_ceiling_rejects_execute(self, repository, make_descriptor):
        orchestrator = BulkOperationOrchestrator(repository=repository, tracker=OperationTracker(1), max_targets=2)

        with pytest.raises(RequestError) as exc:
            await orchestrator.execute(make_descriptor())

        assert "Too many records selected" in exc.value.errors[0]
        assert repository.write_count == 0

    async def test_store_down_is_a_fault(self, orchestrator, repository, make_descriptor):
        repository.set_unavailable()

        with pytest.raises(OperationFault):
            await orchestrator.validate(make_descriptor())

    async def test_list_actions(self, orchestrator):
        ids = [a["id"] for a in orchestrator.list_actions("task")]

        assert "assign_to" in ids
        assert "update_budget" not in ids

        with pytest.raises(RequestError):
            orchestrator.list_actions("invoices")


@pytest.mark.asyncio
class TestSelectionAndHistory:

    async def test_select_feeds_execute(self, orchestrator, repository):
        records = await orchestrator.select(
            BulkSelectRequest.model_validate({"type": "task", "filters": {"tags": ["finance", "tax"]}})
        )
        target_ids = [record.id for record in records]
        assert target_ids == ["1", "3"]

        operation_id = await orchestrator.execute(orchestrator.descriptor_from_request(_request(targetIds=target_ids)))
        final = await orchestrator.wait_for(operation_id, timeout=5)

        assert final.success_count == 2
        assert (await repository.get(TargetType.TASKS, "3")).values["status"] == "done"

    async def test_history_filters(self, orchestrator, make_descriptor):
        task_op = await orchestrator.execute(make_descriptor(target_ids=("1",)))
        await orchestrator.wait_for(task_op, timeout=5)
        project_op = await orchestrator.execute(
            make_descriptor(target_type="projects", target_ids=("p1",), parameters={"newStatus": "on_hold"})
        )
        await orchestrator.wait_for(project_op, timeout=5)

        assert [op.id for op in orchestrator.history()] == [project_op, task_op]
        assert [op.id for op in orchestrator.history(target_type="task")] == [task_op]

        with pytest.raises(RequestError):
            orchestrator.history(status="exploded")
