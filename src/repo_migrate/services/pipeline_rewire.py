"""Rewire Azure DevOps pipelines to GitHub repositories."""

import asyncio
from datetime import datetime
from typing import Any, List, Optional

from loguru import logger

from ..api.ado import AdoApi
from ..api.exceptions import ApiError, AuthenticationError, NotFoundError
from ..models.pipeline import (
    PipelineDefinition,
    RewireRequest,
    RewireResult,
    RewireStatus,
    RewireSummary,
    TargetRepository,
)
from ..models.triggers import reconcile_triggers, triggers_to_payload
from .branch_policy import BranchPolicyEvaluator


class PipelineTriggerReconciler:
    """Points a build definition at a GitHub repository and fixes its triggers.

    Each call fetches the definition fresh, decides whether a branch policy
    requires the pipeline, reconciles the trigger list and writes the full
    definition back. Nothing is cached between calls.
    """

    def __init__(self, ado: AdoApi, evaluator: Optional[BranchPolicyEvaluator] = None):
        """Initialize reconciler.

        Args:
            ado: Azure DevOps API facade
            evaluator: Branch policy evaluator (built from ado if omitted)
        """
        self.ado = ado
        self.evaluator = evaluator or BranchPolicyEvaluator(ado)
        self.logger = logger.bind(component='PipelineTriggerReconciler')

    def _skipped(self, pipeline_id: int, reason: str) -> RewireResult:
        self.logger.warning(reason)
        return RewireResult(
            pipeline_id=pipeline_id,
            status=RewireStatus.SKIPPED,
            reason=reason,
            completed_at=datetime.now(),
        )

    def _resolve_repository_id(
        self, org: str, project: str, definition: PipelineDefinition
    ) -> Optional[str]:
        if definition.repository_id:
            self.logger.debug(
                'Using repository ID from pipeline definition for branch policy '
                f'check: {definition.repository_id}'
            )
            return definition.repository_id

        if not definition.repository_name:
            return None

        return self.ado.get_repository(org, project, definition.repository_name)['id']

    def rewire_pipeline(
        self,
        org: str,
        project: str,
        pipeline_id: int,
        target: TargetRepository,
        original_triggers: Optional[List[Any]] = None,
    ) -> RewireResult:
        """Rewire one pipeline to a GitHub repository.

        Args:
            org: ADO organization
            project: ADO team project
            pipeline_id: Build definition ID
            target: GitHub repository to point the pipeline at
            original_triggers: Triggers captured before rewiring; the
                definition's current triggers are used when omitted

        Returns:
            Completed result, or a skipped one when the pipeline or its
            repository could not be fetched

        Raises:
            AuthenticationError: If the credential was rejected
            ApiError: If writing the definition back failed
        """
        location = f'{org}/{project}'

        try:
            definition = self.ado.get_build_definition(org, project, pipeline_id)
        except AuthenticationError:
            raise
        except NotFoundError:
            return self._skipped(
                pipeline_id,
                f'Pipeline {pipeline_id} not found in {location}. '
                'Skipping pipeline rewiring.',
            )
        except ApiError as e:
            return self._skipped(
                pipeline_id,
                f'HTTP error retrieving pipeline {pipeline_id} in {location}: {e}. '
                'Skipping pipeline rewiring.',
            )

        try:
            repository_id = self._resolve_repository_id(org, project, definition)
        except AuthenticationError:
            raise
        except NotFoundError:
            return self._skipped(
                pipeline_id,
                f'Repository {definition.repository_name} of pipeline {pipeline_id} '
                f'not found in {location}. Skipping pipeline rewiring.',
            )
        except ApiError as e:
            return self._skipped(
                pipeline_id,
                f'HTTP error retrieving repository {definition.repository_name} of '
                f'pipeline {pipeline_id} in {location}: {e}. '
                'Skipping pipeline rewiring.',
            )

        required = self.evaluator.is_pipeline_required_by_branch_policy(
            org, project, repository_id, pipeline_id
        )

        if required:
            self.logger.info(
                f'ADO Pipeline ID = {pipeline_id} IS required by branch policy - '
                'enabling build status reporting to support branch protection'
            )
        else:
            self.logger.info(
                f'ADO Pipeline ID = {pipeline_id} is NOT required by branch policy - '
                'preserving original trigger configuration'
            )

        if original_triggers is None:
            original_triggers = definition.triggers

        triggers = triggers_to_payload(reconcile_triggers(original_triggers, required))

        target = target.copy(
            update={
                'default_branch': target.default_branch or definition.default_branch,
                'clean': target.clean or definition.clean,
                'checkout_submodules': (
                    target.checkout_submodules or definition.checkout_submodules
                ),
            }
        )
        payload = definition.to_payload(target.to_repository_payload(), triggers)

        self.ado.put_build_definition(org, project, pipeline_id, payload)
        self.logger.success(
            f'Successfully rewired pipeline {pipeline_id} to {target.full_name}'
        )

        return RewireResult(
            pipeline_id=pipeline_id,
            status=RewireStatus.COMPLETED,
            required_by_branch_policy=required,
            triggers=triggers,
            completed_at=datetime.now(),
        )


class PipelineRewireOrchestrator:
    """Rewires independent pipelines concurrently."""

    def __init__(self, reconciler: PipelineTriggerReconciler):
        self.reconciler = reconciler
        self.logger = logger.bind(component='PipelineRewireOrchestrator')

    async def rewire_all(
        self, requests: List[RewireRequest], max_concurrent: int = 5
    ) -> RewireSummary:
        """Rewire a batch of pipelines with concurrency control.

        Each reconciliation runs in a worker thread. Authentication errors
        are re-raised once the whole batch has settled; any other error
        becomes a failed result.

        Args:
            requests: Pipelines to rewire
            max_concurrent: Maximum reconciliations in flight

        Returns:
            Summary of the batch
        """
        self.logger.info(f'Rewiring {len(requests)} pipelines')

        semaphore = asyncio.Semaphore(max_concurrent)

        async def rewire_one(request: RewireRequest) -> RewireResult:
            async with semaphore:
                return await asyncio.to_thread(
                    self.reconciler.rewire_pipeline,
                    request.ado_org,
                    request.ado_team_project,
                    request.pipeline_id,
                    request.target,
                    request.original_triggers,
                )

        outcomes = await asyncio.gather(
            *[rewire_one(request) for request in requests], return_exceptions=True
        )

        results = []
        auth_error = None
        for request, outcome in zip(requests, outcomes):
            if isinstance(outcome, AuthenticationError):
                auth_error = auth_error or outcome
                continue

            if isinstance(outcome, Exception):
                self.logger.error(
                    f'Failed to rewire pipeline {request.pipeline_id}: {outcome}'
                )
                results.append(
                    RewireResult(
                        pipeline_id=request.pipeline_id,
                        status=RewireStatus.FAILED,
                        reason=str(outcome),
                        completed_at=datetime.now(),
                    )
                )
            else:
                results.append(outcome)

        if auth_error is not None:
            raise auth_error

        summary = RewireSummary.from_results(results)
        self.logger.info(
            f'Pipeline rewiring completed: {summary.completed} completed, '
            f'{summary.skipped} skipped, {summary.failed} failed'
        )
        return summary
