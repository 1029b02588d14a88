"""API Container (composition root state holder).

This module only defines types/structure for objects created in the real
composition root (`flowheal/interfaces/api/main.py`).
"""

from __future__ import annotations

from dataclasses import dataclass

from flowheal.application.services.workflow_generation_service import WorkflowGenerationService
from flowheal.domain.services.deterministic_fixer import DeterministicWorkflowFixer, FixOptions
from flowheal.domain.services.graph_structure_validator import GraphStructureValidator
from flowheal.domain.services.structure_healer import GraphStructureHealer
from flowheal.domain.services.validation_spec import ValidationProfile
from flowheal.domain.services.variable_reference_healer import VariableReferenceHealer


@dataclass(frozen=True, slots=True)
class ApiContainer:
    """Typed container attached to `app.state.container`."""

    validators: dict[ValidationProfile, GraphStructureValidator]
    fixers: dict[ValidationProfile, DeterministicWorkflowFixer]
    structure_healer: GraphStructureHealer
    variable_healer: VariableReferenceHealer
    generation_service: WorkflowGenerationService
    default_profile: ValidationProfile
    fix_options: FixOptions

    def validator_for(self, profile: ValidationProfile | None) -> GraphStructureValidator:
        return self.validators[profile or self.default_profile]

    def fixer_for(self, profile: ValidationProfile | None) -> DeterministicWorkflowFixer:
        return self.fixers[profile or self.default_profile]
