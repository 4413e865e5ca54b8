"""Analyzers for fetching and scoring repository data."""

from revivalscope.analyzers.github import GitHubFetcher, RepositoryNotFoundError
from revivalscope.analyzers.scorer import HeuristicScorer

__all__ = ["GitHubFetcher", "HeuristicScorer", "RepositoryNotFoundError"]
