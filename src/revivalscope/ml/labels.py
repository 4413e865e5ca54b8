"""Training label derivation for collected repositories.

Labels come from simple rules over the observed repository state, except
for a small set of repositories whose revival outcome is already known.
"""

from dataclasses import dataclass
from datetime import datetime, timezone

from revivalscope.analyzers.activity import days_since
from revivalscope.models.schemas import (
    DependencyHealthSummary,
    FeatureVector,
    RepositorySnapshot,
    TechnicalComplexity,
    TrainingLabels,
    TrainingSample,
)

BASE_EFFORT_DAYS = 30


@dataclass(frozen=True)
class KnownOutcome:
    outcome: str  # successful, failed, ongoing
    community_interest: str  # very_high, high, medium, low


CURATED_OUTCOMES: dict[str, KnownOutcome] = {
    "bower/bower": KnownOutcome("failed", "high"),
    "angular/angular.js": KnownOutcome("successful", "high"),
    "atom/atom": KnownOutcome("failed", "medium"),
    "meteor/meteor": KnownOutcome("ongoing", "medium"),
    "facebook/react": KnownOutcome("successful", "very_high"),
    "microsoft/typescript": KnownOutcome("successful", "very_high"),
    "jquery/jquery": KnownOutcome("ongoing", "medium"),
    "moment/moment": KnownOutcome("failed", "low"),
}

# outcome -> (is_abandoned, revival success, community adoption)
OUTCOME_LABELS = {
    "successful": (False, 0.9, 0.8),
    "failed": (True, 0.1, 0.2),
    "ongoing": (False, 0.7, 0.6),
}

INTEREST_EFFORT_MULTIPLIERS = {
    "very_high": 0.5,
    "high": 0.7,
    "medium": 1.0,
    "low": 1.5,
}


def derive_labels(
    snapshot: RepositorySnapshot,
    dependencies: DependencyHealthSummary | None = None,
    complexity: TechnicalComplexity = TechnicalComplexity.LOW,
    now: datetime | None = None,
) -> TrainingLabels:
    """Rule-based labels for a repository with no known outcome."""
    since_commit = days_since(snapshot.pushed_at, now) or 0.0
    is_abandoned = since_commit > 365 and snapshot.open_issues > 5

    revival = 0.5
    if snapshot.stars > 50:
        revival += 0.2
    if snapshot.forks > 10:
        revival += 0.1
    if dependencies and dependencies.health_score > 70:
        revival += 0.1
    if snapshot.has_license:
        revival += 0.05
    if since_commit > 730:
        revival -= 0.2
    if dependencies and dependencies.critical_vulnerabilities > 0:
        revival -= 0.15

    multiplier = 1.0
    if complexity == TechnicalComplexity.HIGH:
        multiplier += 0.5
    if dependencies and dependencies.outdated_dependencies > 10:
        multiplier += 0.3
    if dependencies and dependencies.critical_vulnerabilities > 0:
        multiplier += 0.4

    return TrainingLabels(
        is_abandoned=is_abandoned,
        revival_success_probability=max(0.0, min(1.0, revival)),
        estimated_effort_days=max(1, round(BASE_EFFORT_DAYS * multiplier)),
        community_adoption_likelihood=min(1.0, (snapshot.stars + snapshot.forks) / 1000),
    )


def apply_curated_outcome(
    repository: str, labels: TrainingLabels
) -> tuple[TrainingLabels, str]:
    """Override labels for repositories with a known revival outcome.

    Returns:
        The (possibly replaced) labels and the outcome name, "unknown" if the
        repository is not curated.
    """
    known = CURATED_OUTCOMES.get(repository.lower())
    if known is None:
        return labels, "unknown"

    is_abandoned, revival, adoption = OUTCOME_LABELS[known.outcome]
    multiplier = INTEREST_EFFORT_MULTIPLIERS.get(known.community_interest, 1.0)
    curated = TrainingLabels(
        is_abandoned=is_abandoned,
        revival_success_probability=revival,
        estimated_effort_days=max(1, round(labels.estimated_effort_days * multiplier)),
        community_adoption_likelihood=adoption,
    )
    return curated, known.outcome


def build_training_sample(
    snapshot: RepositorySnapshot,
    features: FeatureVector,
    dependencies: DependencyHealthSummary | None = None,
    complexity: TechnicalComplexity = TechnicalComplexity.LOW,
    now: datetime | None = None,
) -> TrainingSample:
    """Label a repository and pair it with its features."""
    now = now or datetime.now(timezone.utc)
    labels = derive_labels(snapshot, dependencies, complexity, now)
    labels, outcome = apply_curated_outcome(snapshot.full_name, labels)
    return TrainingSample(
        features=features,
        labels=labels,
        source_repository=snapshot.full_name,
        observed_at=now,
        revival_outcome=outcome,
    )
