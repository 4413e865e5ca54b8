"""Feature schema shared by training and inference.

The order and transforms of FEATURE_SCHEMA are the contract between the
trainer and the predictor. Any change to either must bump
FEATURE_SCHEMA_VERSION, which invalidates every persisted model.
"""

import math
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable

import numpy as np

from revivalscope.analyzers.activity import days_since
from revivalscope.models.schemas import (
    ActivitySignals,
    DependencyHealthSummary,
    FeatureVector,
    RepositorySnapshot,
    SocialSignals,
)

FEATURE_SCHEMA_VERSION = 1

LANGUAGE_POPULARITY = {
    "javascript": 95,
    "typescript": 90,
    "python": 92,
    "java": 85,
    "go": 80,
    "rust": 75,
    "c++": 70,
    "cpp": 70,
    "c#": 75,
    "csharp": 75,
    "php": 65,
    "ruby": 60,
    "swift": 70,
    "kotlin": 65,
}
LANGUAGE_POPULARITY_DEFAULT = 50

ECOSYSTEM_HEALTH = {
    "javascript": 85,
    "typescript": 90,
    "python": 88,
    "java": 80,
    "go": 85,
    "rust": 88,
    "c++": 70,
    "cpp": 70,
    "c#": 75,
    "csharp": 75,
    "php": 65,
    "ruby": 70,
}
ECOSYSTEM_HEALTH_DEFAULT = 60


class FeatureSchemaMismatchError(ValueError):
    """Raised when a feature vector and a model disagree on the schema."""


@dataclass(frozen=True)
class _Inputs:
    snapshot: RepositorySnapshot
    activity: ActivitySignals
    dependencies: DependencyHealthSummary | None
    social: SocialSignals
    now: datetime


def _log1p(value: float) -> float:
    return math.log(max(value, 0) + 1)


def _years(days: float | None) -> float:
    return (days or 0.0) / 365


def _language_score(table: dict[str, int], default: int, language: str | None) -> float:
    if not language:
        return default / 100
    return table.get(language.lower(), default) / 100


def _years_since_release(inputs: _Inputs) -> float:
    days = inputs.activity.days_since_last_release
    if days is None:
        # Never released: as old as the repository itself
        days = days_since(inputs.snapshot.created_at, inputs.now)
    return _years(days)


def _deps(attr: str) -> Callable[[_Inputs], float]:
    def extract(inputs: _Inputs) -> float:
        if inputs.dependencies is None:
            return 0.0
        return float(getattr(inputs.dependencies, attr))

    return extract


# (name, extractor) in wire order
FEATURE_SCHEMA: tuple[tuple[str, Callable[[_Inputs], float]], ...] = (
    ("log_stargazers_count", lambda i: _log1p(i.snapshot.stars)),
    ("log_forks_count", lambda i: _log1p(i.snapshot.forks)),
    ("log_open_issues_count", lambda i: _log1p(i.snapshot.open_issues)),
    ("log_size", lambda i: _log1p(i.snapshot.size)),
    ("log_watchers_count", lambda i: _log1p(i.snapshot.watchers)),
    ("age_years", lambda i: _years(days_since(i.snapshot.created_at, i.now))),
    ("years_since_last_commit", lambda i: _years(days_since(i.snapshot.pushed_at, i.now))),
    ("years_since_last_release", _years_since_release),
    ("commits_last_30_days", lambda i: float(i.activity.commits_last_30_days)),
    ("commits_last_90_days", lambda i: float(i.activity.commits_last_90_days)),
    ("commits_last_365_days", lambda i: float(i.activity.commits_last_365_days)),
    ("issues_opened_last_30_days", lambda i: float(i.activity.issues_opened_last_30_days)),
    ("issues_closed_last_30_days", lambda i: float(i.activity.issues_closed_last_30_days)),
    ("contributor_count", lambda i: float(i.activity.contributor_count)),
    ("unique_contributors_last_year", lambda i: float(i.activity.unique_contributors_last_year)),
    ("issue_response_months", lambda i: (i.activity.avg_issue_close_days or 0.0) / 30),
    ("pr_merge_rate", lambda i: float(i.activity.pr_merge_rate)),
    ("has_tests", lambda i: float(i.snapshot.has_tests)),
    ("has_ci", lambda i: float(i.snapshot.has_ci)),
    ("has_documentation", lambda i: float(i.snapshot.has_documentation)),
    ("has_license", lambda i: float(i.snapshot.has_license)),
    ("has_contributing_guide", lambda i: float(i.snapshot.has_contributing_guide)),
    (
        "language_popularity_norm",
        lambda i: _language_score(
            LANGUAGE_POPULARITY, LANGUAGE_POPULARITY_DEFAULT, i.snapshot.language
        ),
    ),
    (
        "ecosystem_health_norm",
        lambda i: _language_score(ECOSYSTEM_HEALTH, ECOSYSTEM_HEALTH_DEFAULT, i.snapshot.language),
    ),
    ("log_dependency_count", lambda i: _log1p(_deps("total_dependencies")(i))),
    ("outdated_dependency_ratio", _deps("outdated_ratio")),
    ("vulnerable_dependency_count", _deps("vulnerable_dependencies")),
    ("critical_vulnerability_count", _deps("critical_vulnerabilities")),
    ("log_awesome_list_mentions", lambda i: _log1p(i.social.awesome_list_mentions)),
    ("log_stackoverflow_mentions", lambda i: _log1p(i.social.stackoverflow_mentions)),
    ("log_reddit_mentions", lambda i: _log1p(i.social.reddit_mentions)),
    ("log_blog_post_mentions", lambda i: _log1p(i.social.blog_post_mentions)),
)

FEATURE_NAMES: tuple[str, ...] = tuple(name for name, _ in FEATURE_SCHEMA)
FEATURE_COUNT = len(FEATURE_SCHEMA)


class FeatureExtractor:
    """Maps repository data onto the fixed-order feature vector.

    Stateless and re-entrant. Missing optional inputs map to neutral
    defaults; the vector length never changes.
    """

    def extract(
        self,
        snapshot: RepositorySnapshot,
        activity: ActivitySignals | None = None,
        dependencies: DependencyHealthSummary | None = None,
        social: SocialSignals | None = None,
        now: datetime | None = None,
    ) -> FeatureVector:
        """Build the feature vector for one repository.

        Args:
            snapshot: Repository facts.
            activity: Issue/commit aggregates, zeros when absent.
            dependencies: Dependency summary, zeros when absent.
            social: Mention counts, zeros when absent.
            now: Reference time. Defaults to the current UTC time.

        Returns:
            FeatureVector stamped with the current schema version.
        """
        inputs = _Inputs(
            snapshot=snapshot,
            activity=activity or ActivitySignals(),
            dependencies=dependencies,
            social=social or SocialSignals(),
            now=now or datetime.now(timezone.utc),
        )
        values = tuple(float(extract(inputs)) for _, extract in FEATURE_SCHEMA)
        return FeatureVector(values=values, schema_version=FEATURE_SCHEMA_VERSION)

    def as_dict(self, vector: FeatureVector) -> dict[str, float]:
        """Name each value of a vector."""
        check_vector(vector)
        return dict(zip(FEATURE_NAMES, vector.values))


def check_vector(vector: FeatureVector) -> None:
    """Verify a vector was produced by the current schema."""
    if vector.schema_version != FEATURE_SCHEMA_VERSION:
        raise FeatureSchemaMismatchError(
            f"Feature vector has schema version {vector.schema_version}, "
            f"expected {FEATURE_SCHEMA_VERSION}"
        )
    if len(vector.values) != FEATURE_COUNT:
        raise FeatureSchemaMismatchError(
            f"Feature vector has {len(vector.values)} values, expected {FEATURE_COUNT}"
        )


def to_matrix(vectors: list[FeatureVector]) -> np.ndarray:
    """Stack vectors into an (n_samples, n_features) matrix."""
    for vector in vectors:
        check_vector(vector)
    if not vectors:
        return np.empty((0, FEATURE_COUNT))
    return np.array([vector.values for vector in vectors], dtype=float)
