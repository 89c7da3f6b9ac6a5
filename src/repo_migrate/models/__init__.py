"""Data models for pipelines, policies and triggers."""

from .pipeline import (
    BranchPolicy,
    PipelineDefinition,
    RewireRequest,
    RewireResult,
    RewireStatus,
    RewireSummary,
    TargetRepository,
)
from .triggers import (
    ContinuousIntegrationTrigger,
    OtherTrigger,
    PullRequestTrigger,
    ScheduleTrigger,
    Trigger,
)

__all__ = [
    'BranchPolicy',
    'PipelineDefinition',
    'RewireRequest',
    'RewireResult',
    'RewireStatus',
    'RewireSummary',
    'TargetRepository',
    'ContinuousIntegrationTrigger',
    'OtherTrigger',
    'PullRequestTrigger',
    'ScheduleTrigger',
    'Trigger',
]
