"""
Action registry.

Each bulk action owns a typed parameter model, a pure transform from current
field values to updated field values, and optional request- and record-level
checks. Validator, preview builder and executor are all generic over this
registry, so adding an action never touches them.
"""

import copy
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, FrozenSet, List, Mapping, Optional, Tuple, Type

from pydantic import ValidationError as PydanticValidationError

from ..models.actions import ActionParameters
from ..models.bulk import TargetType
from .exceptions import RequestError

logger = logging.getLogger(__name__)

TransformFn = Callable[[Mapping[str, Any], ActionParameters], Dict[str, Any]]
CheckFn = Callable[[TargetType, Mapping[str, Any], Mapping[str, Any], ActionParameters], Tuple[List[str], List[str]]]
RequestCheckFn = Callable[[TargetType, ActionParameters], List[str]]
InvariantFn = Callable[[Mapping[str, Any], Mapping[str, Any]], List[str]]
OptionsFn = Callable[[TargetType], List[Dict[str, str]]]


def changed_values(current: Mapping[str, Any], new: Mapping[str, Any]) -> Dict[str, Any]:
    """Fields of `new` that are absent from or differ from `current`."""
    return {
        key: value
        for key, value in new.items()
        if key not in current or current[key] != value
    }


@dataclass(frozen=True)
class ActionDefinition:
    """Everything the orchestrator needs to know about one action."""

    id: str
    label: str
    category: str  # status | assignment | fields | tags | advanced
    target_types: FrozenSet[TargetType]
    params_model: Type[ActionParameters]
    transform: TransformFn
    check: Optional[CheckFn] = None
    request_check: Optional[RequestCheckFn] = None
    options: Optional[OptionsFn] = None
    description: str = ""
    requires_confirmation: bool = False
    requires_input: bool = True

    def supports(self, target_type: TargetType) -> bool:
        return target_type in self.target_types

    def catalog_entry(self, target_type: TargetType) -> Dict[str, Any]:
        """Shape served by GET /api/bulk/actions/{type}."""
        entry: Dict[str, Any] = {
            "id": self.id,
            "label": self.label,
            "description": self.description,
            "category": self.category,
            "requiresInput": self.requires_input,
            "requiresConfirmation": self.requires_confirmation,
        }
        if self.options:
            entry["options"] = self.options(target_type)
        return entry


@dataclass
class ActionRegistry:
    """Registry of bulk actions keyed by action ID."""

    _actions: Dict[str, ActionDefinition] = field(default_factory=dict)
    _invariants: Dict[TargetType, List[Tuple[InvariantFn, FrozenSet[str]]]] = field(default_factory=dict)

    def register(self, definition: ActionDefinition) -> None:
        if definition.id in self._actions:
            raise ValueError(f"Action {definition.id} already registered")
        self._actions[definition.id] = definition
        logger.debug(f"Registered bulk action {definition.id}")

    def register_invariant(
        self,
        target_type: TargetType,
        invariant: InvariantFn,
        fields: FrozenSet[str] = frozenset(),
    ) -> None:
        """
        Add a rule every resulting record of this type must satisfy.

        A record that already breaks the rule is only rejected when the change
        writes one of `fields`; unrelated actions leave the violation as it was.
        """
        self._invariants.setdefault(target_type, []).append((invariant, frozenset(fields)))

    def get(self, action_id: str) -> ActionDefinition:
        definition = self._actions.get(action_id)
        if definition is None:
            raise RequestError(f"Unknown action: {action_id}")
        return definition

    def schema(self, action_id: str) -> Dict[str, Any]:
        """JSON schema of the action's parameters (camelCase)."""
        return self.get(action_id).params_model.model_json_schema(by_alias=True)

    def parse_parameters(
        self,
        action_id: str,
        raw: Mapping[str, Any],
        target_type: Optional[TargetType] = None,
    ) -> ActionParameters:
        """Validate raw parameters against the action schema."""
        definition = self.get(action_id)

        if target_type is not None and not definition.supports(target_type):
            raise RequestError(f"Action {action_id} is not available for {target_type.value}")

        try:
            params = definition.params_model.model_validate(dict(raw or {}))
        except PydanticValidationError as e:
            errors = [
                f"{'.'.join(str(p) for p in err['loc']) or 'parameters'}: {err['msg']}"
                for err in e.errors()
            ]
            raise RequestError(f"Invalid parameters for {action_id}", errors) from e

        if target_type is not None and definition.request_check:
            errors = definition.request_check(target_type, params)
            if errors:
                raise RequestError(f"Invalid parameters for {action_id}", errors)

        return params

    def transform(self, action_id: str, current_values: Mapping[str, Any], params: ActionParameters) -> Dict[str, Any]:
        """Pure: return the record's full field map after the action."""
        definition = self.get(action_id)
        new_values = copy.deepcopy(dict(current_values))
        new_values.update(definition.transform(current_values, params))
        return new_values

    def compute_changes(
        self,
        action_id: str,
        current_values: Mapping[str, Any],
        params: ActionParameters,
    ) -> Dict[str, Any]:
        """Pure: only the fields whose value would actually change."""
        return changed_values(current_values, self.transform(action_id, current_values, params))

    def check(
        self,
        action_id: str,
        target_type: TargetType,
        current_values: Mapping[str, Any],
        new_values: Mapping[str, Any],
        params: ActionParameters,
    ) -> Tuple[List[str], List[str]]:
        """Record-level rules: returns (errors, warnings)."""
        definition = self.get(action_id)
        errors: List[str] = []
        warnings: List[str] = []

        if definition.check:
            action_errors, action_warnings = definition.check(target_type, current_values, new_values, params)
            errors.extend(action_errors)
            warnings.extend(action_warnings)

        changed = set(changed_values(current_values, new_values))
        for invariant, fields in self._invariants.get(target_type, []):
            violations = invariant(current_values, new_values)
            if not violations:
                continue
            if changed & fields or not invariant(current_values, current_values):
                errors.extend(violations)
            else:
                logger.debug(f"{action_id} leaves pre-existing violation untouched: {violations}")

        return errors, warnings

    def actions_for(self, target_type: TargetType) -> List[Dict[str, Any]]:
        """Catalog of actions available for a record type."""
        return [
            definition.catalog_entry(target_type)
            for definition in self._actions.values()
            if definition.supports(target_type)
        ]

    @property
    def action_ids(self) -> List[str]:
        return list(self._actions)


# Singleton
_registry: Optional[ActionRegistry] = None


def get_action_registry() -> ActionRegistry:
    """Get the registry preloaded with the built-in actions."""
    global _registry
    if _registry is None:
        from .actions import register_builtin_actions

        _registry = ActionRegistry()
        register_builtin_actions(_registry)
    return _registry
