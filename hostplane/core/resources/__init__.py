"""
Resources: modelos, constructores y validación del plan.

Lógica pura; sin I/O ni dependencias de CLI o providers.
"""

from hostplane.core.resources.models import (
    ErrorDetail,
    OutcomeStatus,
    ProbeResult,
    ReconcileOutcome,
    Resource,
    ResourceKind,
    RunPolicy,
    RunReport,
)
from hostplane.core.resources.validator import dedupe, topological_order, validate_plan

__all__ = [
    "ErrorDetail",
    "OutcomeStatus",
    "ProbeResult",
    "ReconcileOutcome",
    "Resource",
    "ResourceKind",
    "RunPolicy",
    "RunReport",
    "dedupe",
    "topological_order",
    "validate_plan",
]
