"""Azure DevOps REST API facade."""

import json
from typing import Any, Dict, List, Optional
from urllib.parse import quote

from loguru import logger

from ..models.pipeline import BranchPolicy, PipelineDefinition
from .client import ResilientApiClient

API_VERSION = '6.0'


def _escape(value: str) -> str:
    return quote(str(value), safe='')


class AdoApi:
    """Typed access to the Azure DevOps endpoints used for pipeline rewiring."""

    def __init__(self, client: ResilientApiClient, base_url: str = 'https://dev.azure.com'):
        """Initialize facade.

        Args:
            client: Authenticated API client
            base_url: Organization host, e.g. https://dev.azure.com
        """
        self.client = client
        self.base_url = base_url.rstrip('/')
        self.logger = logger.bind(component='AdoApi')

    def _project_url(self, org: str, project: str) -> str:
        return f'{self.base_url}/{_escape(org)}/{_escape(project)}/_apis'

    def build_definition_url(self, org: str, project: str, pipeline_id: int) -> str:
        return (
            f'{self._project_url(org, project)}/build/definitions/'
            f'{pipeline_id}?api-version={API_VERSION}'
        )

    def repository_url(self, org: str, project: str, repo: str) -> str:
        return (
            f'{self._project_url(org, project)}/git/repositories/'
            f'{_escape(repo)}?api-version={API_VERSION}'
        )

    def policy_configurations_url(self, org: str, project: str, repo_id: str) -> str:
        return (
            f'{self._project_url(org, project)}/policy/configurations'
            f'?repositoryId={_escape(repo_id)}&api-version={API_VERSION}'
        )

    def get_build_definition(
        self, org: str, project: str, pipeline_id: int
    ) -> PipelineDefinition:
        """Fetch a build definition.

        Raises:
            NotFoundError: If the pipeline does not exist
            ApiError: On other failures
        """
        body = self.client.get(self.build_definition_url(org, project, pipeline_id))
        return PipelineDefinition.from_api(json.loads(body))

    def get_pipeline(
        self, org: str, project: str, pipeline_id: int
    ) -> Dict[str, Any]:
        """Fetch the settings a rewire carries over from the current definition.

        Returns:
            Dict with default_branch, clean, checkout_submodules and triggers
        """
        definition = self.get_build_definition(org, project, pipeline_id)
        return {
            'default_branch': definition.default_branch,
            'clean': definition.clean,
            'checkout_submodules': definition.checkout_submodules,
            'triggers': definition.triggers,
        }

    def put_build_definition(
        self, org: str, project: str, pipeline_id: int, payload: Dict[str, Any]
    ) -> str:
        """Write a full build definition back."""
        return self.client.put(
            self.build_definition_url(org, project, pipeline_id), payload
        )

    def get_repository(self, org: str, project: str, repo: str) -> Dict[str, Any]:
        """Look up a git repository by name or id.

        Returns:
            Dict with the repository id, name and disabled flag
        """
        data = json.loads(self.client.get(self.repository_url(org, project, repo)))
        is_disabled = data.get('isDisabled', False)
        if isinstance(is_disabled, str):
            is_disabled = is_disabled.lower() == 'true'

        return {
            'id': data.get('id'),
            'name': data.get('name'),
            'is_disabled': bool(is_disabled),
        }

    def get_policy_configurations(
        self, org: str, project: str, repo_id: str
    ) -> List[BranchPolicy]:
        """List the policy configurations scoped to a repository."""
        body = self.client.get(self.policy_configurations_url(org, project, repo_id))
        data: Optional[Dict[str, Any]] = json.loads(body) if body else None
        values = (data or {}).get('value') or []
        return [BranchPolicy.from_api(item) for item in values]
