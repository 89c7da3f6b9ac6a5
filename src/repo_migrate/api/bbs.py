"""Bitbucket Server REST API facade."""

from typing import Any, Dict, Iterator, Tuple
from urllib.parse import quote

from loguru import logger

from .client import ResilientApiClient


class BbsApi:
    """Lazy listings of Bitbucket Server projects and repositories."""

    def __init__(self, client: ResilientApiClient, base_url: str):
        self.client = client
        self.base_url = base_url.rstrip('/')
        self.logger = logger.bind(component='BbsApi')

    def get_projects(self) -> Iterator[Dict[str, Any]]:
        """Iterate every project visible to the credential."""
        return self.client.get_all(f'{self.base_url}/rest/api/1.0/projects')

    def get_repos(self, project_key: str) -> Iterator[Dict[str, Any]]:
        """Iterate the repositories of one project."""
        key = quote(project_key, safe='')
        return self.client.get_all(f'{self.base_url}/rest/api/1.0/projects/{key}/repos')

    def get_all_repos(self) -> Iterator[Tuple[str, Dict[str, Any]]]:
        """Iterate (project key, repository) pairs across every project."""
        for project in self.get_projects():
            key = project.get('key')
            if not key:
                self.logger.warning(f'Skipping project without a key: {project}')
                continue
            for repo in self.get_repos(key):
                yield key, repo
