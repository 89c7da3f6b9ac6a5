"""Migration services built on the platform API clients."""

from .archive_uploader import ArchiveUploader
from .branch_policy import BranchPolicyEvaluator
from .pipeline_rewire import PipelineRewireOrchestrator, PipelineTriggerReconciler

__all__ = [
    'ArchiveUploader',
    'BranchPolicyEvaluator',
    'PipelineRewireOrchestrator',
    'PipelineTriggerReconciler',
]
