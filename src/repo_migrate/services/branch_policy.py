"""Decide whether a pipeline is required by a branch policy."""

from typing import Optional

from loguru import logger

from ..api.ado import AdoApi
from ..api.exceptions import ApiError, ApiTimeoutError, AuthenticationError, NotFoundError


def _error_type(error: Exception) -> str:
    if isinstance(error, ApiTimeoutError):
        return 'Branch policy check timed out'
    if isinstance(error, ApiError):
        return 'HTTP error'
    if isinstance(error, ValueError):
        return 'JSON parsing error'
    return 'Error'


class BranchPolicyEvaluator:
    """Checks build validation policies on a pipeline's repository."""

    def __init__(self, ado: AdoApi):
        self.ado = ado
        self.logger = logger.bind(component='BranchPolicyEvaluator')

    def is_pipeline_required_by_branch_policy(
        self, org: str, project: str, repo: Optional[str], pipeline_id: int
    ) -> bool:
        """Check if an enabled build validation policy requires the pipeline.

        Any failure other than authentication is logged and treated as
        "not required" so rewiring can go on with default triggers.

        Args:
            org: ADO organization
            project: ADO team project
            repo: Repository name or id
            pipeline_id: Build definition ID

        Returns:
            True if an enabled build validation policy targets pipeline_id

        Raises:
            AuthenticationError: If the credential was rejected
        """
        if not repo:
            self.logger.warning(
                f'Branch policy check skipped for pipeline {pipeline_id} - repository '
                'name and ID not available. Pipeline trigger configuration may not '
                'preserve branch policy requirements.'
            )
            return False

        location = f'{org}/{project}/{repo}'

        try:
            repository = self.ado.get_repository(org, project, repo)

            if not repository['id']:
                self.logger.warning(
                    f'Repository ID not found for {location}. Branch policy check '
                    f'cannot be performed for pipeline {pipeline_id}.'
                )
                return False

            if repository['is_disabled']:
                self.logger.info(
                    f'Repository {location} is disabled. Branch policy check skipped '
                    f'for pipeline {pipeline_id} - will use default trigger configuration.'
                )
                return False

            policies = self.ado.get_policy_configurations(
                org, project, repository['id']
            )
        except AuthenticationError:
            raise
        except NotFoundError:
            self.logger.warning(
                f'Repository {location} was not found. Branch policy check cannot be '
                f'performed for pipeline {pipeline_id}.'
            )
            return False
        except (ApiError, ValueError, KeyError, TypeError) as e:
            self.logger.warning(
                f'{_error_type(e)} during branch policy check for pipeline '
                f'{pipeline_id} in {location}: {e}. Pipeline trigger configuration '
                'may not preserve branch policy requirements.'
            )
            return False

        if not policies:
            self.logger.debug(
                f'No branch policies found for repository {location}. '
                f'ADO Pipeline ID = {pipeline_id} is not required by branch policy.'
            )
            return False

        required = any(policy.requires_pipeline(pipeline_id) for policy in policies)

        if required:
            self.logger.debug(
                f'ADO Pipeline ID = {pipeline_id} is required by branch policy in '
                f'{location}. Build status reporting will be enabled to support '
                'branch protection.'
            )
        else:
            self.logger.debug(
                f'ADO Pipeline ID = {pipeline_id} is not required by any branch '
                f'policies in {location}.'
            )

        return required
