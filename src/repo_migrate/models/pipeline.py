"""Azure DevOps pipeline, branch policy and rewiring models."""

import copy
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional
from urllib.parse import quote, urlsplit

from pydantic import BaseModel, Field, validator


BUILD_VALIDATION_POLICY_TYPE_ID = '0609b952-1397-4640-95ec-e00a01b2c241'
BUILD_VALIDATION_DISPLAY_NAME = 'Build'

GITHUB_API_URL = 'https://api.github.com'
GITHUB_WEB_URL = 'https://github.com'


def _escape(value: str) -> str:
    return quote(value, safe='')


def _flag(value: Any) -> str:
    # ADO stores these options as strings; absent ones are written back as "null"
    if value is None:
        return 'null'
    return str(value).lower()


class BranchPolicy(BaseModel):
    """Branch policy configuration attached to a repository."""

    id: Optional[int] = Field(default=None, description='Policy configuration ID')
    type_id: Optional[str] = Field(default=None, description='Policy type GUID')
    type_display_name: Optional[str] = Field(
        default=None, description='Policy type display name'
    )
    is_enabled: bool = Field(default=False, description='Policy is enabled')
    build_definition_id: Optional[str] = Field(
        default=None, description='Build definition the policy requires'
    )
    valid_duration_minutes: Optional[float] = Field(
        default=None, description='Minutes a successful build stays valid'
    )

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> 'BranchPolicy':
        """Build a policy from a policy/configurations entry."""
        policy_type = data.get('type') or {}
        settings = data.get('settings') or {}
        build_definition_id = settings.get('buildDefinitionId')

        return cls(
            id=data.get('id'),
            type_id=policy_type.get('id'),
            type_display_name=policy_type.get('displayName'),
            is_enabled=bool(data.get('isEnabled', False)),
            build_definition_id=(
                str(build_definition_id) if build_definition_id is not None else None
            ),
            valid_duration_minutes=settings.get('validDuration'),
        )

    @property
    def is_build_validation(self) -> bool:
        """Policy is a build validation policy."""
        if self.type_id and self.type_id.lower() == BUILD_VALIDATION_POLICY_TYPE_ID:
            return True
        return self.type_display_name == BUILD_VALIDATION_DISPLAY_NAME

    def requires_pipeline(self, pipeline_id: int) -> bool:
        """Enabled build validation policy pointing at pipeline_id."""
        return (
            self.is_enabled
            and self.is_build_validation
            and self.build_definition_id == str(pipeline_id)
        )


class PipelineDefinition(BaseModel):
    """Build definition as returned by the ADO build API.

    Only the fields rewiring needs are typed; ``raw`` keeps the full body so
    every other field is written back unchanged.
    """

    id: Optional[int] = Field(default=None, description='Build definition ID')
    name: Optional[str] = Field(default=None, description='Pipeline name')
    repository: Dict[str, Any] = Field(
        default_factory=dict, description='Current repository reference'
    )
    triggers: Optional[List[Any]] = Field(
        default=None, description='Raw triggers array'
    )
    raw: Dict[str, Any] = Field(default_factory=dict, description='Full API body')

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> 'PipelineDefinition':
        """Build a definition from the API body."""
        return cls(
            id=data.get('id'),
            name=data.get('name'),
            repository=data.get('repository') or {},
            triggers=data.get('triggers'),
            raw=copy.deepcopy(data),
        )

    @property
    def repository_id(self) -> Optional[str]:
        value = self.repository.get('id')
        return str(value) if value else None

    @property
    def repository_name(self) -> Optional[str]:
        return self.repository.get('name') or None

    @property
    def default_branch(self) -> Optional[str]:
        """Default branch without the refs/heads/ prefix."""
        branch = self.repository.get('defaultBranch')
        if branch and branch.startswith('refs/heads/'):
            return branch[len('refs/heads/'):]
        return branch

    @property
    def clean(self) -> str:
        return _flag(self.repository.get('clean'))

    @property
    def checkout_submodules(self) -> str:
        return _flag(self.repository.get('checkoutSubmodules'))

    def to_payload(
        self, repository: Dict[str, Any], triggers: List[Any]
    ) -> Dict[str, Any]:
        """Full body for write-back with repository and triggers replaced.

        Every other field is kept with its original value and position.
        """
        payload = {}
        for key, value in self.raw.items():
            if key == 'repository':
                value = repository
            elif key == 'triggers':
                value = triggers
            payload[key] = copy.deepcopy(value)

        payload.setdefault('repository', copy.deepcopy(repository))
        payload.setdefault('triggers', copy.deepcopy(triggers))
        return payload


class TargetRepository(BaseModel):
    """GitHub repository a pipeline is rewired to."""

    github_org: str = Field(..., description='GitHub organization')
    github_repo: str = Field(..., description='GitHub repository name')
    service_connection_id: str = Field(
        ..., description='ADO service connection for GitHub'
    )
    default_branch: Optional[str] = Field(default=None, description='Default branch')
    clean: Optional[str] = Field(default=None, description='Clean option')
    checkout_submodules: Optional[str] = Field(
        default=None, description='Checkout submodules option'
    )
    target_api_url: Optional[str] = Field(
        default=None, description='GitHub API URL (GHES or data residency)'
    )

    @validator('target_api_url')
    def validate_target_api_url(cls, v):
        """Validate target API URL format."""
        if v is None or not v.strip():
            return None
        if not v.startswith(('http://', 'https://')):
            raise ValueError('Target API URL must start with http:// or https://')
        return v.rstrip('/')

    @property
    def full_name(self) -> str:
        return f'{self.github_org}/{self.github_repo}'

    def github_urls(self) -> Dict[str, str]:
        """API, clone, branches, refs and manage URLs for the repository."""
        api_base = self.target_api_url or GITHUB_API_URL
        if self.target_api_url:
            parts = urlsplit(self.target_api_url)
            host = parts.hostname or ''
            if host.startswith('api.'):
                host = host[len('api.'):]
            web_base = f'{parts.scheme}://{host}'
        else:
            web_base = GITHUB_WEB_URL

        path = f'{_escape(self.github_org)}/{_escape(self.github_repo)}'
        api_url = f'{api_base}/repos/{path}'
        web_url = f'{web_base}/{path}'

        return {
            'api_url': api_url,
            'web_url': web_url,
            'clone_url': f'{web_url}.git',
            'branches_url': f'{api_url}/branches',
            'refs_url': f'{api_url}/git/refs',
            'manage_url': web_url,
        }

    def to_repository_payload(self) -> Dict[str, Any]:
        """Repository reference for a build definition."""
        urls = self.github_urls()
        return {
            'properties': {
                'apiUrl': urls['api_url'],
                'branchesUrl': urls['branches_url'],
                'cloneUrl': urls['clone_url'],
                'connectedServiceId': self.service_connection_id,
                'defaultBranch': self.default_branch,
                'fullName': self.full_name,
                'manageUrl': urls['manage_url'],
                'orgName': self.github_org,
                'refsUrl': urls['refs_url'],
                'safeRepository': (
                    f'{_escape(self.github_org)}/{_escape(self.github_repo)}'
                ),
                'shortName': self.github_repo,
                'reportBuildStatus': 'true',
            },
            'id': self.full_name,
            'type': 'GitHub',
            'name': self.full_name,
            'url': urls['clone_url'],
            'defaultBranch': self.default_branch,
            'clean': self.clean,
            'checkoutSubmodules': self.checkout_submodules,
        }


class RewireStatus(str, Enum):
    """Pipeline rewiring status enumeration."""

    COMPLETED = 'completed'
    SKIPPED = 'skipped'
    FAILED = 'failed'


class RewireRequest(BaseModel):
    """One pipeline to rewire."""

    ado_org: str = Field(..., description='ADO organization')
    ado_team_project: str = Field(..., description='ADO team project')
    pipeline_id: int = Field(..., description='Build definition ID')
    target: TargetRepository = Field(..., description='GitHub repository')
    original_triggers: Optional[List[Any]] = Field(
        default=None, description='Triggers captured before rewiring'
    )


class RewireResult(BaseModel):
    """Result of rewiring one pipeline."""

    pipeline_id: int = Field(..., description='Build definition ID')
    status: RewireStatus = Field(..., description='Rewiring status')
    required_by_branch_policy: bool = Field(
        default=False, description='Pipeline is required by a branch policy'
    )
    reason: Optional[str] = Field(
        default=None, description='Why the pipeline was skipped or failed'
    )
    triggers: List[Any] = Field(
        default_factory=list, description='Triggers written back'
    )
    started_at: datetime = Field(default_factory=datetime.now)
    completed_at: Optional[datetime] = Field(default=None)

    @property
    def success(self) -> bool:
        return self.status == RewireStatus.COMPLETED


class RewireSummary(BaseModel):
    """Summary of a batch of pipeline rewirings."""

    total: int = Field(..., description='Pipelines processed')
    completed: int = Field(..., description='Pipelines rewired')
    skipped: int = Field(..., description='Pipelines skipped')
    failed: int = Field(..., description='Pipelines that failed')
    results: List[RewireResult] = Field(default_factory=list)

    @classmethod
    def from_results(cls, results: List[RewireResult]) -> 'RewireSummary':
        return cls(
            total=len(results),
            completed=sum(1 for r in results if r.status == RewireStatus.COMPLETED),
            skipped=sum(1 for r in results if r.status == RewireStatus.SKIPPED),
            failed=sum(1 for r in results if r.status == RewireStatus.FAILED),
            results=results,
        )
