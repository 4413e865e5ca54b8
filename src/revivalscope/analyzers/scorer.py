"""Rule-based abandonment and revival potential scoring."""

import logging
from datetime import datetime, timezone
from typing import Any

from pydantic import ValidationError

from revivalscope.analyzers.activity import days_since, whole_days_since
from revivalscope.models.schemas import (
    ActivitySignals,
    DependencyHealthSummary,
    HealthLabel,
    HeuristicScore,
    RepositorySnapshot,
    TechnicalComplexity,
)

logger = logging.getLogger(__name__)

POPULAR_LANGUAGES = {"javascript", "typescript", "python", "java", "go", "rust"}


def coerce_dependency_health(raw: Any) -> DependencyHealthSummary | None:
    """Accept a dependency summary in any shape, dropping malformed ones.

    Args:
        raw: A DependencyHealthSummary, a dict payload, or None.

    Returns:
        A validated summary, or None when the payload is missing or invalid.
    """
    if raw is None or isinstance(raw, DependencyHealthSummary):
        return raw
    if not isinstance(raw, dict):
        logger.warning(f"Ignoring dependency summary of type {type(raw).__name__}")
        return None
    try:
        return DependencyHealthSummary.model_validate(raw)
    except ValidationError as e:
        logger.warning(f"Ignoring malformed dependency summary: {e.error_count()} errors")
        return None


class HeuristicScorer:
    """Scores repositories from raw metrics without any learned model.

    Abandonment (0-100, higher = more neglected):
    - Commit recency: 0-40
    - Unresponsive open issues: 0-30
    - Low commit volume over the last year: 0-20
    - Archived: +10

    Revival potential (0-100, higher = better takeover candidate):
    - Community interest: 0-30
    - Recent issue activity: 0-25
    - Project maturity: 0-20
    - Documentation and structure: 0-15
    - Size: 0-10
    - Dependency health: -10 to +10

    The scorer holds no mutable state; one instance may be shared freely.
    """

    # (days since last commit, points), checked in order
    RECENCY_TIERS = ((365, 40), (180, 30), (90, 20), (30, 10))
    UNRESPONSIVE_MAX = 30
    STALE_ISSUE_DAYS = 30
    # (commits in the last year below, points)
    COMMIT_VOLUME_TIERS = ((1, 20), (5, 15), (10, 10))
    ARCHIVED_POINTS = 10

    STARS_PER_POINT = 10
    STARS_CAP = 20
    FORKS_PER_POINT = 5
    FORKS_CAP = 10
    # (issues opened in the last year above, points)
    ISSUE_ACTIVITY_TIERS = ((10, 25), (5, 20), (2, 15), (0, 10))
    SIZE_SWEET_SPOT = (100, 10_000)

    DEPENDENCY_ADJUSTMENTS = {
        HealthLabel.EXCELLENT: 10,
        HealthLabel.GOOD: 5,
        HealthLabel.FAIR: 0,
        HealthLabel.POOR: -5,
        HealthLabel.CRITICAL: -10,
        HealthLabel.UNKNOWN: 0,
    }

    def score(
        self,
        snapshot: RepositorySnapshot,
        activity: ActivitySignals | None = None,
        dependency_health: DependencyHealthSummary | dict | None = None,
        now: datetime | None = None,
    ) -> HeuristicScore:
        """Calculate both headline scores plus auxiliary metrics.

        Args:
            snapshot: Repository facts.
            activity: Issue/commit aggregates. None when they could not be fetched.
            dependency_health: Dependency summary; malformed payloads are ignored.
            now: Reference time. Defaults to the current UTC time.

        Returns:
            HeuristicScore with scores, reasons and recommendations.
        """
        now = now or datetime.now(timezone.utc)
        dependencies = coerce_dependency_health(dependency_health)

        abandonment = self.score_abandonment(snapshot, activity, now)
        revival = self.score_revival_potential(snapshot, activity, dependencies, now)

        return HeuristicScore(
            abandonment_score=abandonment,
            revival_potential=revival,
            last_commit_age_days=whole_days_since(snapshot.pushed_at, now),
            issue_response_days=activity.avg_issue_close_days if activity else None,
            community_engagement=self._community_engagement(snapshot, activity),
            technical_complexity=self._technical_complexity(snapshot),
            market_relevance=self._market_relevance(snapshot, now),
            dependency_health=dependencies.health if dependencies else HealthLabel.UNKNOWN,
            reasons=self.abandonment_reasons(snapshot, activity, now),
            recommendations=self.recommendations(snapshot, abandonment, revival),
        )

    def score_abandonment(
        self,
        snapshot: RepositorySnapshot,
        activity: ActivitySignals | None = None,
        now: datetime | None = None,
    ) -> float:
        """Calculate abandonment score (0-100, higher = more abandoned)."""
        score = self._recency_points(whole_days_since(snapshot.pushed_at, now))

        if activity is not None:
            # Issue responsiveness
            if activity.open_issues > 0:
                ratio = min(1.0, activity.stale_open_issues / activity.open_issues)
                score += round(ratio * self.UNRESPONSIVE_MAX)

            # Commit volume over the last year
            for below, points in self.COMMIT_VOLUME_TIERS:
                if activity.commits_last_365_days < below:
                    score += points
                    break

        if snapshot.is_archived:
            score += self.ARCHIVED_POINTS

        return float(max(0, min(100, score)))

    def score_revival_potential(
        self,
        snapshot: RepositorySnapshot,
        activity: ActivitySignals | None = None,
        dependency_health: DependencyHealthSummary | dict | None = None,
        now: datetime | None = None,
    ) -> float:
        """Calculate revival potential (0-100, higher = better candidate)."""
        score = 0.0

        # Community interest
        score += min(snapshot.stars / self.STARS_PER_POINT, self.STARS_CAP)
        score += min(snapshot.forks / self.FORKS_PER_POINT, self.FORKS_CAP)

        # Active user base
        if activity is not None:
            for above, points in self.ISSUE_ACTIVITY_TIERS:
                if activity.issues_opened_last_365_days > above:
                    score += points
                    break

        # Project maturity: 1-5 years old is the sweet spot
        age = whole_days_since(snapshot.created_at, now)
        if age is not None:
            if 365 < age < 1825:
                score += 20
            elif age > 180:
                score += 15
            elif age > 90:
                score += 10

        # Documentation and structure
        if snapshot.description and len(snapshot.description) > 20:
            score += 5
        if snapshot.topics:
            score += 5
        if snapshot.has_license:
            score += 5

        # Size: not too small, not too large
        low, high = self.SIZE_SWEET_SPOT
        if low < snapshot.size < high:
            score += 10
        elif snapshot.size > 50:
            score += 5

        dependencies = coerce_dependency_health(dependency_health)
        if dependencies is not None:
            score += self.DEPENDENCY_ADJUSTMENTS.get(dependencies.health, 0)

        return float(max(0.0, min(100.0, score)))

    def _recency_points(self, days: int | None) -> int:
        if days is None:
            return 0
        for threshold, points in self.RECENCY_TIERS:
            if days > threshold:
                return points
        return 0

    def _community_engagement(
        self, snapshot: RepositorySnapshot, activity: ActivitySignals | None
    ) -> float:
        """Community engagement (0-100) from stars, issues and watchers."""
        ratio = snapshot.stars / snapshot.forks if snapshot.forks > 0 else snapshot.stars
        score = min(ratio / 2, 30)
        if activity is not None:
            score += min(activity.issues_opened_last_365_days * 2, 30)
        score += min(snapshot.watchers, 20)
        score += min(snapshot.open_issues, 20)
        return float(min(score, 100))

    def _technical_complexity(self, snapshot: RepositorySnapshot) -> TechnicalComplexity:
        if snapshot.size < 1000:
            return TechnicalComplexity.LOW
        if snapshot.size < 10_000:
            return TechnicalComplexity.MEDIUM
        return TechnicalComplexity.HIGH

    def _market_relevance(self, snapshot: RepositorySnapshot, now: datetime | None) -> float:
        """Market relevance (0-100) from language, recent updates and topics."""
        score = 50

        if snapshot.language and snapshot.language.lower() in POPULAR_LANGUAGES:
            score += 20

        since_update = days_since(snapshot.updated_at, now)
        if since_update is not None:
            if since_update < 30:
                score += 20
            elif since_update < 90:
                score += 10
            elif since_update > 730:
                score -= 20

        if len(snapshot.topics) > 2:
            score += 10

        return float(max(0, min(100, score)))

    def abandonment_reasons(
        self,
        snapshot: RepositorySnapshot,
        activity: ActivitySignals | None = None,
        now: datetime | None = None,
    ) -> list[str]:
        """Human-readable evidence of abandonment."""
        reasons = []

        age = whole_days_since(snapshot.pushed_at, now)
        if age is not None:
            if age > 365:
                reasons.append(f"No commits in {round(age / 365, 1)} years")
            elif age > 180:
                reasons.append(f"No commits in {round(age / 30)} months")

        open_issues = activity.open_issues if activity else snapshot.open_issues
        if open_issues > 10:
            reasons.append(f"{open_issues} unresolved issues")

        if snapshot.is_archived:
            reasons.append("Repository is archived")

        if activity and activity.recent_open_issues > 5:
            reasons.append("Recent issues remain unaddressed")

        return reasons

    def recommendations(
        self,
        snapshot: RepositorySnapshot,
        abandonment_score: float,
        revival_potential: float,
    ) -> list[str]:
        """Human-readable revival guidance."""
        recommendations = []

        if revival_potential > 70:
            recommendations.append("High revival potential - strong community interest")
        if snapshot.stars > 100:
            recommendations.append("Established user base - consider reaching out to community")
        if abandonment_score > 70 and revival_potential > 50:
            recommendations.append("Clear abandonment with good potential - ideal for takeover")
        if snapshot.forks > 10:
            recommendations.append("Multiple forks exist - check for active alternatives")
        if not snapshot.has_license:
            recommendations.append("No license specified - clarify licensing before revival")
        if snapshot.open_issues > 20:
            recommendations.append("Many open issues - good starting point for contributions")

        return recommendations
