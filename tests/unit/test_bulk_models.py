"""
Unit tests for the bulk operation data model.
"""

import pytest
from pydantic import ValidationError

from src.models.actions import StatusChangeParams
from src.models.api_validation import BulkOperationRequest, BulkSelectRequest
from src.models.bulk import (
    ChangeDescriptor,
    ItemResult,
    Operation,
    RecordSnapshot,
    RecordStatus,
    SelectionFilter,
    TargetType,
    ValidationResult,
)


class TestTargetType:

    def test_accepts_singular(self):
        assert TargetType("task") == TargetType.TASKS
        assert TargetType("Client") == TargetType.CLIENTS

    def test_rejects_unknown(self):
        with pytest.raises(ValueError):
            TargetType("invoice")


class TestChangeDescriptor:

    def test_ids_normalised_and_collapsed(self):
        descriptor = ChangeDescriptor(
            action_id="status",
            target_type="tasks",
            target_ids=[1, "1", " 2 "],
            parameters=StatusChangeParams(new_status="done"),
        )

        assert descriptor.target_ids == ("1", "2")
        assert descriptor.duplicate_ids == ("1",)

    def test_empty_targets_rejected(self):
        with pytest.raises(ValidationError):
            ChangeDescriptor(
                action_id="status",
                target_type="tasks",
                target_ids=[],
                parameters=StatusChangeParams(new_status="done"),
            )

    def test_serialises_subclass_parameters(self):
        descriptor = ChangeDescriptor(
            action_id="status",
            target_type="tasks",
            target_ids=["1"],
            parameters=StatusChangeParams(new_status="done"),
        )

        data = descriptor.to_dict()

        assert data["targetIds"] == ["1"]
        assert data["parameters"] == {"newStatus": "done"}
        assert data["options"] == {"skipValidation": False, "continueOnError": True, "createBackup": True}


class TestValidationResult:

    def test_error_status_drops_changes(self):
        result = ValidationResult(record_id="1", status=RecordStatus.ERROR, computed_changes={"status": "done"})

        assert result.computed_changes == {}


class TestOperation:

    def test_snapshots_never_serialised(self):
        operation = Operation(
            id="op-1",
            descriptor=ChangeDescriptor(
                action_id="status",
                target_type="tasks",
                target_ids=["1"],
                parameters=StatusChangeParams(new_status="done"),
            ),
            progress_total=1,
        )
        operation.snapshots["1"] = RecordSnapshot(record_type=TargetType.TASKS, id="1", values={"status": "todo"})
        operation.item_results["1"] = ItemResult.succeeded("1", 2, ["status"])

        data = operation.to_dict()

        assert "snapshots" not in data
        assert data["progressTotal"] == 1
        assert data["itemResults"]["1"]["changedFields"] == ["status"]

    def test_round_trip_from_mirror(self):
        operation = Operation(
            id="op-2",
            descriptor=ChangeDescriptor(
                action_id="status",
                target_type="tasks",
                target_ids=["1"],
                parameters=StatusChangeParams(new_status="done"),
            ),
        )

        restored = Operation.model_validate(operation.to_dict())

        assert restored.id == "op-2"
        assert restored.descriptor.target_ids == ("1",)


class TestBulkOperationRequest:

    def test_accepts_wire_names(self):
        request = BulkOperationRequest.model_validate({
            "type": "tasks",
            "action": "status",
            "targetIds": [1, "2"],
            "changes": {"newStatus": "done"},
            "options": {"continueOnError": False},
        })

        assert request.target_ids == [1, "2"]
        assert request.options.continue_on_error is False

    def test_rejects_markup_in_action(self):
        with pytest.raises(ValidationError):
            BulkOperationRequest(type="tasks", action="<script>", targetIds=["1"])


class TestSelection:

    def test_accepts_ui_payload(self):
        request = BulkSelectRequest.model_validate({
            "type": "tasks",
            "filters": {
                "type": "tasks",
                "status": ["todo"],
                "assignedTo": ["alice"],
                "dateRange": {"field": "due_date", "from": "2026-01-01"},
                "search": "",
            },
            "limit": 1000,
        })

        assert request.filters.assigned_to == ["alice"]
        assert request.filters.date_range.from_.isoformat() == "2026-01-01"
        assert request.filters.date_range.to is None

    def test_limit_is_capped(self):
        with pytest.raises(ValidationError):
            BulkSelectRequest(type="tasks", limit=5000)

    def test_matches(self):
        snapshot = RecordSnapshot(record_type="tasks", id="7", values={
            "title": "Reconcile bank feed",
            "status": "todo",
            "assignedTo": "alice",
            "tags": ["finance"],
            "due_date": "2026-03-15T09:00:00",
        })

        assert SelectionFilter().matches(snapshot)
        assert SelectionFilter(assigned_to=["alice", "bob"], tags=["finance"]).matches(snapshot)
        assert SelectionFilter(search="bank").matches(snapshot)
        assert SelectionFilter.model_validate(
            {"dateRange": {"field": "due_date", "from": "2026-03-01", "to": "2026-03-15"}}
        ).matches(snapshot)
        assert not SelectionFilter(status=["done"]).matches(snapshot)
        assert not SelectionFilter.model_validate({"dateRange": {"field": "start_date"}}).matches(snapshot)

    def test_item_shape(self):
        snapshot = RecordSnapshot(record_type="clients", id="c1", version=3, values={"name": "Acme", "status": "active"})

        item = snapshot.to_item()

        assert item["id"] == "c1"
        assert item["name"] == "Acme"
        assert item["type"] == "clients"
        assert item["version"] == 3
