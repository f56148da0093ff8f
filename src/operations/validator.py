"""
Dry-run validation of a bulk change.

validate() is a pure function of the descriptor and the record snapshots it
is given: it performs no I/O and returns the same report for the same inputs.
"""

import logging
from typing import List, Mapping, Optional

from config import settings
from ..models.bulk import (
    ChangeDescriptor,
    RecordSnapshot,
    RecordStatus,
    ValidationReport,
    ValidationResult,
)
from .registry import ActionRegistry, changed_values, get_action_registry

logger = logging.getLogger(__name__)


class BulkValidator:
    """Per-record and global checks for a ChangeDescriptor."""

    def __init__(self, registry: Optional[ActionRegistry] = None, max_targets: Optional[int] = None):
        self.registry = registry if registry is not None else get_action_registry()
        self.max_targets = max_targets if max_targets is not None else settings.bulk_max_targets

    def validate(
        self,
        descriptor: ChangeDescriptor,
        snapshots: Mapping[str, RecordSnapshot],
    ) -> ValidationReport:
        """
        Validate every target record.

        Args:
            descriptor: The requested change
            snapshots: Current state of the targets, keyed by record ID.
                IDs missing from the map are reported as not found.

        Returns:
            ValidationReport; ``valid`` is True iff there are no global errors
        """
        global_errors: List[str] = []
        global_warnings: List[str] = []

        target_count = len(descriptor.target_ids)
        if target_count > self.max_targets:
            global_errors.append(
                f"Too many records selected: {target_count} (maximum {self.max_targets} per operation)"
            )

        if descriptor.duplicate_ids:
            global_warnings.append(
                f"Ignored {len(descriptor.duplicate_ids)} duplicate ID(s): "
                f"{', '.join(sorted(set(descriptor.duplicate_ids)))}"
            )

        unknown = [rid for rid in descriptor.target_ids if rid not in snapshots]
        if unknown:
            global_warnings.append(
                f"{len(unknown)} {descriptor.target_type.value} not found: {', '.join(unknown)}"
            )

        per_record = [
            self.validate_record(descriptor, snapshots.get(record_id), record_id)
            for record_id in descriptor.target_ids
        ]

        error_count = sum(1 for r in per_record if r.status == RecordStatus.ERROR)
        if error_count and not descriptor.options.continue_on_error:
            global_errors.append(
                f"{error_count} record(s) failed validation and continueOnError is disabled"
            )
        if error_count == len(per_record):
            global_warnings.append("No records can be changed")

        report = ValidationReport(
            per_record=per_record,
            global_errors=global_errors,
            global_warnings=global_warnings,
            valid=not global_errors,
        )

        logger.debug(
            f"Validated {descriptor.action_id} on {target_count} {descriptor.target_type.value}: "
            f"{error_count} error(s), valid={report.valid}"
        )
        return report

    def validate_record(
        self,
        descriptor: ChangeDescriptor,
        snapshot: Optional[RecordSnapshot],
        record_id: str,
    ) -> ValidationResult:
        """Validate one record against the descriptor."""
        if snapshot is None:
            return ValidationResult(
                record_id=record_id,
                status=RecordStatus.ERROR,
                errors=[f"{descriptor.target_type.singular.title()} {record_id} not found"],
            )

        current = snapshot.values
        try:
            new_values = self.registry.transform(descriptor.action_id, current, descriptor.parameters)
        except (TypeError, ValueError) as e:
            return ValidationResult(
                record_id=record_id,
                item_name=snapshot.display_name,
                status=RecordStatus.ERROR,
                errors=[f"Cannot apply {descriptor.action_id}: {e}"],
            )

        changes = changed_values(current, new_values)

        errors: List[str] = []
        warnings: List[str] = []
        if not descriptor.options.skip_validation:
            errors, warnings = self.registry.check(
                descriptor.action_id,
                descriptor.target_type,
                current,
                new_values,
                descriptor.parameters,
            )

        if not errors and not changes:
            errors = ["No changes to apply"]

        if errors:
            status = RecordStatus.ERROR
        elif warnings:
            status = RecordStatus.WARNING
        else:
            status = RecordStatus.VALID

        return ValidationResult(
            record_id=record_id,
            item_name=snapshot.display_name,
            status=status,
            warnings=warnings,
            errors=errors,
            computed_changes=changes if status != RecordStatus.ERROR else {},
        )
