"""Integration orchestration: driver contract, registry, fan-out and merge."""

from cont3xt.integrations.base import Integration, SettingSchema, SourceContext
from cont3xt.integrations.http import HttpIntegration
from cont3xt.integrations.orchestrator import (
    OutcomeStatus,
    QueryOrchestrator,
    QueryRequest,
    SourceOutcome,
)
from cont3xt.integrations.registry import IntegrationRegistry, build_registry

__all__ = [
    "HttpIntegration",
    "Integration",
    "IntegrationRegistry",
    "OutcomeStatus",
    "QueryOrchestrator",
    "QueryRequest",
    "SettingSchema",
    "SourceContext",
    "SourceOutcome",
    "build_registry",
]
