"""Activity signal aggregation from raw hosting API payloads."""

import math
from datetime import datetime, timedelta, timezone

from revivalscope.models.schemas import ActivitySignals, ensure_utc


def parse_timestamp(value: str | None) -> datetime | None:
    """Parse an ISO 8601 timestamp as returned by the GitHub API."""
    if not value:
        return None
    return ensure_utc(datetime.fromisoformat(value.replace("Z", "+00:00")))


def days_since(timestamp: datetime | None, now: datetime | None = None) -> float | None:
    """Fractional days elapsed since a timestamp, or None if unknown.

    Future timestamps count as zero days. Naive datetimes are taken as UTC.
    """
    if timestamp is None:
        return None
    now = ensure_utc(now) if now else datetime.now(timezone.utc)
    return max(0.0, (now - ensure_utc(timestamp)).total_seconds() / 86400)


def whole_days_since(timestamp: datetime | None, now: datetime | None = None) -> int | None:
    """Days since a timestamp rounded up to whole days."""
    days = days_since(timestamp, now)
    if days is None:
        return None
    return math.ceil(days)


def _commit_date(commit: dict) -> datetime | None:
    return parse_timestamp(commit.get("commit", {}).get("author", {}).get("date"))


def build_activity_signals(
    issues: list[dict],
    commits: list[dict],
    contributors: list[dict] | None = None,
    releases: list[dict] | None = None,
    now: datetime | None = None,
) -> ActivitySignals:
    """Aggregate issue, commit, contributor and release payloads.

    The issues endpoint mixes pull requests into its results; entries with a
    ``pull_request`` key are counted towards the PR merge rate only.

    Args:
        issues: Issue objects from the issues endpoint (state=all).
        commits: Commit objects from the commits endpoint.
        contributors: Contributor objects, if fetched.
        releases: Release objects, newest first, if fetched.
        now: Reference time. Defaults to the current UTC time.

    Returns:
        ActivitySignals for the repository.
    """
    now = ensure_utc(now) if now else datetime.now(timezone.utc)
    cutoff_30 = now - timedelta(days=30)
    cutoff_90 = now - timedelta(days=90)
    cutoff_365 = now - timedelta(days=365)

    pulls = [i for i in issues if "pull_request" in i]
    issues = [i for i in issues if "pull_request" not in i]

    # Commit windows
    commit_dates = [d for d in (_commit_date(c) for c in commits) if d is not None]
    commits_30 = sum(1 for d in commit_dates if d > cutoff_30)
    commits_90 = sum(1 for d in commit_dates if d > cutoff_90)
    commits_365 = sum(1 for d in commit_dates if d > cutoff_365)

    authors_last_year = set()
    for commit in commits:
        date = _commit_date(commit)
        login = (commit.get("author") or {}).get("login")
        if date and date > cutoff_365 and login:
            authors_last_year.add(login)

    # Issue windows
    open_issues = [i for i in issues if i.get("state") == "open"]
    closed_issues = [i for i in issues if i.get("state") == "closed"]

    opened_30 = 0
    opened_365 = 0
    for issue in issues:
        created = parse_timestamp(issue.get("created_at"))
        if created is None:
            continue
        if created > cutoff_30 and issue.get("state") == "open":
            opened_30 += 1
        if created > cutoff_365:
            opened_365 += 1

    closed_30 = 0
    close_latencies = []
    for issue in closed_issues:
        created = parse_timestamp(issue.get("created_at"))
        closed = parse_timestamp(issue.get("closed_at"))
        if closed is None:
            continue
        if closed > cutoff_30:
            closed_30 += 1
        if created is not None:
            close_latencies.append((closed - created).total_seconds() / 86400)

    stale_open = 0
    recent_open = 0
    for issue in open_issues:
        created = parse_timestamp(issue.get("created_at"))
        if created is None:
            continue
        if created < cutoff_30:
            stale_open += 1
        if created >= cutoff_90:
            recent_open += 1

    # Pull requests
    merged = sum(
        1
        for pr in pulls
        if pr.get("state") == "closed" and (pr.get("pull_request") or {}).get("merged_at")
    )
    pr_merge_rate = merged / len(pulls) if pulls else 0.0

    days_since_release = None
    if releases:
        published = parse_timestamp(releases[0].get("published_at"))
        days_since_release = days_since(published, now)

    return ActivitySignals(
        commits_last_30_days=commits_30,
        commits_last_90_days=commits_90,
        commits_last_365_days=commits_365,
        issues_opened_last_30_days=opened_30,
        issues_closed_last_30_days=closed_30,
        issues_opened_last_365_days=opened_365,
        open_issues=len(open_issues),
        stale_open_issues=stale_open,
        recent_open_issues=recent_open,
        avg_issue_close_days=(
            sum(close_latencies) / len(close_latencies) if close_latencies else None
        ),
        contributor_count=len(contributors or []),
        unique_contributors_last_year=len(authors_last_year),
        pr_merge_rate=pr_merge_rate,
        days_since_last_release=days_since_release,
    )
