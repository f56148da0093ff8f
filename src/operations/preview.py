"""Before/after preview of a validated bulk change."""

import copy
import logging
from typing import Mapping, Optional

from ..models.bulk import (
    ChangeDescriptor,
    PreviewEntry,
    PreviewReport,
    RecordSnapshot,
    RecordStatus,
    ValidationReport,
)
from .registry import ActionRegistry, changed_values, get_action_registry

logger = logging.getLogger(__name__)


class PreviewBuilder:
    """Builds field-level diffs from a validation report. Never mutates its inputs."""

    def __init__(self, registry: Optional[ActionRegistry] = None):
        self.registry = registry if registry is not None else get_action_registry()

    def build_preview(
        self,
        descriptor: ChangeDescriptor,
        report: ValidationReport,
        snapshots: Mapping[str, RecordSnapshot],
    ) -> PreviewReport:
        entries = []
        affected = 0

        for result in report.per_record:
            snapshot = snapshots.get(result.record_id)
            current = copy.deepcopy(snapshot.values) if snapshot else {}

            if result.status == RecordStatus.ERROR or snapshot is None:
                new_values = copy.deepcopy(current)
                changes = {}
            else:
                new_values = self.registry.transform(descriptor.action_id, current, descriptor.parameters)
                changes = changed_values(current, new_values)
                affected += 1

            entries.append(PreviewEntry(
                record_id=result.record_id,
                item_name=result.item_name,
                status=result.status,
                current_values=current,
                new_values=new_values,
                changed_fields=sorted(changes),
                changes=changes,
                warnings=list(result.warnings),
                errors=list(result.errors),
            ))

        logger.debug(f"Preview for {descriptor.action_id}: {affected}/{len(entries)} record(s) affected")

        return PreviewReport(
            valid=report.valid,
            errors=list(report.global_errors),
            warnings=list(report.global_warnings),
            affected_count=affected,
            preview_data=entries,
        )
