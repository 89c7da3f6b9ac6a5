"""Repo Migration Tool

Moves repositories and pipelines from Bitbucket Server and Azure DevOps to
GitHub: resilient API clients, archive uploads and pipeline rewiring.
"""

__version__ = '0.1.0'

from .cli.main import main

__all__ = ['main']
