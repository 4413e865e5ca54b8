"""Shared fixtures for revival-scope tests."""

from datetime import datetime, timedelta, timezone

import httpx
import numpy as np
import pytest

from revivalscope.ml.features import FEATURE_COUNT, FEATURE_NAMES, FEATURE_SCHEMA_VERSION
from revivalscope.ml.store import ModelStore
from revivalscope.models.schemas import (
    Algorithm,
    FeatureVector,
    PredictionTarget,
    RepositorySnapshot,
    TrainedModel,
    TrainingLabels,
    TrainingSample,
)

NOW = datetime(2025, 6, 1, 12, 0, tzinfo=timezone.utc)


def days_ago(days: float) -> datetime:
    return NOW - timedelta(days=days)


def iso(dt: datetime) -> str:
    """Format a timestamp the way the GitHub API does."""
    return dt.isoformat().replace("+00:00", "Z")


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def make_snapshot():
    """Factory for snapshots of a mid-life repository."""

    def factory(**overrides) -> RepositorySnapshot:
        fields = {
            "owner": "acme",
            "name": "widget",
            "description": "A small widget library for testing",
            "stars": 100,
            "forks": 10,
            "open_issues": 12,
            "watchers": 8,
            "size": 500,
            "created_at": days_ago(1000),
            "pushed_at": days_ago(10),
            "updated_at": days_ago(10),
            "license": "MIT",
            "language": "Python",
            "topics": ("widgets",),
        }
        fields.update(overrides)
        return RepositorySnapshot(**fields)

    return factory


@pytest.fixture
def make_model():
    """Factory for stored models matching the current feature schema."""

    def factory(
        target: PredictionTarget,
        algorithm: Algorithm = Algorithm.LINEAR_REGRESSION,
        weights: list[float] | None = None,
        bias: float = 0.0,
        accuracy: float = 0.9,
        **overrides,
    ) -> TrainedModel:
        fields = {
            "target_name": target,
            "algorithm": algorithm,
            "weights": weights if weights is not None else [0.0] * FEATURE_COUNT,
            "bias": bias,
            "accuracy": accuracy,
            "trained_at": NOW,
            "training_sample_count": 100,
            "feature_names": list(FEATURE_NAMES),
            "feature_schema_version": FEATURE_SCHEMA_VERSION,
        }
        fields.update(overrides)
        return TrainedModel(**fields)

    return factory


@pytest.fixture
def store_with(tmp_path):
    """Build a model store on disk holding the given models."""

    def factory(*models: TrainedModel) -> ModelStore:
        store = ModelStore(tmp_path / "models.json")
        if models:
            with store.writer():
                store.save_models({m.target_name: m for m in models})
        return store

    return factory


def make_separable_samples(n: int = 300, seed: int = 0) -> list[TrainingSample]:
    """Synthetic samples whose labels are linear in a few features.

    Abandonment is the sign of the first feature, with a margin around zero.
    """
    rng = np.random.default_rng(seed)
    samples = []
    for i in range(n):
        values = rng.normal(size=FEATURE_COUNT)
        sign = 1 if i % 2 else -1
        values[0] = sign * (1.0 + abs(values[0]))
        labels = TrainingLabels(
            is_abandoned=sign > 0,
            revival_success_probability=float(np.clip(0.5 + 0.1 * values[1], 0, 1)),
            estimated_effort_days=max(1, int(round(60 + 10 * values[2]))),
            community_adoption_likelihood=float(np.clip(0.5 + 0.1 * values[3], 0, 1)),
        )
        samples.append(
            TrainingSample(
                features=FeatureVector(
                    values=tuple(float(v) for v in values),
                    schema_version=FEATURE_SCHEMA_VERSION,
                ),
                labels=labels,
                source_repository=f"synthetic/repo-{i}",
                observed_at=NOW,
            )
        )
    return samples


@pytest.fixture
def separable_samples():
    return make_separable_samples()


def _repo_payload(owner: str, name: str) -> dict:
    return {
        "name": name,
        "owner": {"login": owner},
        "description": "A small widget library for testing",
        "stargazers_count": 250,
        "forks_count": 30,
        "open_issues_count": 15,
        "subscribers_count": 12,
        "size": 2048,
        "created_at": iso(days_ago(1200)),
        "pushed_at": iso(days_ago(400)),
        "updated_at": iso(days_ago(300)),
        "archived": False,
        "license": {"spdx_id": "MIT", "name": "MIT License"},
        "language": "Python",
        "topics": ["widgets", "testing"],
    }


@pytest.fixture
def github_api():
    """Factory for an httpx client backed by a fake GitHub API.

    ``fail`` maps a path suffix (e.g. "issues") to an HTTP status to return.
    Repositories not in ``repos`` return 404.
    """

    def factory(repos=("acme/widget",), fail=None, issues=None) -> httpx.AsyncClient:
        fail = fail or {}

        def handler(request: httpx.Request) -> httpx.Response:
            parts = request.url.path.strip("/").split("/")
            headers = {
                "X-RateLimit-Remaining": "4321",
                "X-RateLimit-Limit": "5000",
                "X-RateLimit-Reset": "1750000000",
            }
            if len(parts) < 3 or parts[0] != "repos" or f"{parts[1]}/{parts[2]}" not in repos:
                return httpx.Response(404, json={"message": "Not Found"}, headers=headers)

            owner, name = parts[1], parts[2]
            rest = "/".join(parts[3:])
            if rest in fail:
                return httpx.Response(fail[rest], json={"message": "error"}, headers=headers)

            if rest == "":
                body = _repo_payload(owner, name)
            elif rest == "contents":
                body = [
                    {"name": "README.md", "type": "file"},
                    {"name": "CONTRIBUTING.md", "type": "file"},
                    {"name": "tests", "type": "dir"},
                    {"name": ".github", "type": "dir"},
                    {"name": "src", "type": "dir"},
                ]
            elif rest == "contents/.github":
                body = [{"name": "workflows", "type": "dir"}]
            elif rest == "issues":
                all_issues = issues if issues is not None else [
                    {"state": "open", "created_at": iso(days_ago(100))},
                    {"state": "open", "created_at": iso(days_ago(5))},
                    {
                        "state": "closed",
                        "created_at": iso(days_ago(20)),
                        "closed_at": iso(days_ago(10)),
                    },
                ]
                page = int(request.url.params.get("page", 1))
                per_page = int(request.url.params.get("per_page", 100))
                body = all_issues[(page - 1) * per_page:page * per_page]
            elif rest == "commits":
                body = [
                    {"commit": {"author": {"date": iso(days_ago(40))}}, "author": {"login": "ann"}},
                    {"commit": {"author": {"date": iso(days_ago(200))}}, "author": {"login": "bob"}},
                ]
            elif rest == "contributors":
                body = [{"login": "ann"}, {"login": "bob"}, {"login": "cat"}]
            elif rest == "releases":
                body = [{"published_at": iso(days_ago(500))}]
            else:
                return httpx.Response(404, json={"message": "Not Found"}, headers=headers)

            return httpx.Response(200, json=body, headers=headers)

        return httpx.AsyncClient(transport=httpx.MockTransport(handler))

    return factory
