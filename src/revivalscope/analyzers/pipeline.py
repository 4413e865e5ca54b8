"""End-to-end analysis pipeline for repositories."""

import asyncio
import json
import logging
from datetime import datetime, timezone
from pathlib import Path

import httpx
from pydantic import TypeAdapter

from revivalscope.analyzers.github import GitHubFetcher, parse_repo
from revivalscope.analyzers.scorer import HeuristicScorer, coerce_dependency_health
from revivalscope.ml.blender import ScoreBlender
from revivalscope.ml.features import FeatureExtractor, FeatureSchemaMismatchError
from revivalscope.ml.labels import build_training_sample
from revivalscope.ml.predictor import Predictor
from revivalscope.ml.report import TrainingReport
from revivalscope.ml.store import ModelStore, TrainingCorpus
from revivalscope.ml.trainer import ModelTrainer, TrainingResult
from revivalscope.models.schemas import (
    ActivitySignals,
    BlendedAnalysis,
    DependencyHealthSummary,
    PredictionConfig,
    RepositorySnapshot,
    SocialSignals,
    TrainingConfig,
    TrainingSample,
)

logger = logging.getLogger(__name__)

_analysis_adapter = TypeAdapter(BlendedAnalysis)


class AnalysisPipeline:
    """Orchestrates repository analysis.

    Pipeline stages:
    1. Fetch repository snapshot and activity from GitHub
    2. Heuristic scoring (always)
    3. Feature extraction and prediction (when ML is requested and available)
    4. Blend heuristic and learned scores
    5. Save results (optional)
    """

    def __init__(
        self,
        data_dir: Path | None = None,
        github_token: str | None = None,
        prediction_config: PredictionConfig | None = None,
        store: ModelStore | None = None,
        max_concurrency: int = 5,
        batch_size: int = 10,
        batch_delay: float = 1.0,
    ) -> None:
        """Initialize the pipeline.

        Args:
            data_dir: Directory for models, corpus and results. Defaults to ./data.
            github_token: GitHub personal access token.
            prediction_config: Whether and when to use the learned models.
            store: Model store. Defaults to ``data_dir/models.json``.
            max_concurrency: Repositories fetched at once in batch mode.
            batch_size: Repositories per batch in batch mode.
            batch_delay: Seconds to wait between batches.
        """
        self.data_dir = data_dir or Path("data")
        self.github_token = github_token
        self.github = GitHubFetcher(token=github_token)
        self.prediction_config = prediction_config or PredictionConfig()
        self.store = store or ModelStore(self.data_dir / "models.json")
        self.scorer = HeuristicScorer()
        self.extractor = FeatureExtractor()
        self.blender = ScoreBlender()
        self.max_concurrency = max_concurrency
        self.batch_size = batch_size
        self.batch_delay = batch_delay
        self._predictor: Predictor | None = None
        self._http_client: httpx.AsyncClient | None = None

    async def __aenter__(self) -> "AnalysisPipeline":
        """Set up shared HTTP client."""
        self._http_client = httpx.AsyncClient(timeout=60.0)
        self.github = GitHubFetcher(token=self.github_token, client=self._http_client)
        return self

    async def __aexit__(self, *args) -> None:
        """Clean up HTTP client."""
        if self._http_client:
            await self._http_client.aclose()

    @property
    def predictor(self) -> Predictor | None:
        """Predictor over the store's current snapshot, None without enough models."""
        if not self.store.is_ml_available():
            return None
        if self._predictor is None:
            self._predictor = Predictor(self.store)
        return self._predictor

    def reload_models(self) -> None:
        self.store.reload()
        self._predictor = None

    def evaluate(
        self,
        snapshot: RepositorySnapshot,
        activity: ActivitySignals | None = None,
        dependency_health: DependencyHealthSummary | dict | None = None,
        social: SocialSignals | None = None,
        now: datetime | None = None,
    ) -> BlendedAnalysis:
        """Score one repository from already-fetched data.

        Raises:
            FeatureSchemaMismatchError: If stored models do not match the
                current feature schema.
        """
        now = now or datetime.now(timezone.utc)
        dependencies = coerce_dependency_health(dependency_health)
        heuristic = self.scorer.score(snapshot, activity, dependencies, now=now)

        prediction = None
        if self.prediction_config.use_ml:
            predictor = self.predictor
            if predictor is None:
                logger.info("ML requested but models are not available, using rule-based scoring")
            else:
                vector = self.extractor.extract(snapshot, activity, dependencies, social, now=now)
                prediction = predictor.predict(
                    vector, confidence_threshold=self.prediction_config.confidence_threshold
                )

        return self.blender.blend(snapshot.full_name, heuristic, prediction)

    async def analyze_repository(
        self,
        full_name: str,
        dependency_health: DependencyHealthSummary | dict | None = None,
        save: bool = False,
    ) -> BlendedAnalysis:
        """Fetch and analyze a single repository.

        Args:
            full_name: Repository as owner/repo.
            dependency_health: Optional dependency summary from an external analyzer.
            save: Whether to save the result under ``data_dir/analyzed``.

        Raises:
            RepositoryNotFoundError: If the repository is not accessible.
        """
        owner, repo = parse_repo(full_name)
        now = datetime.now(timezone.utc)
        snapshot, activity = await self.github.fetch_repository(owner, repo, now=now)
        analysis = self.evaluate(snapshot, activity, dependency_health, now=now)

        if save:
            self._save_analysis(analysis)
        return analysis

    def _save_analysis(self, analysis: BlendedAnalysis) -> Path:
        """Save analysis result to disk."""
        owner, repo = parse_repo(analysis.repository)
        output_dir = self.data_dir / "analyzed" / owner
        output_dir.mkdir(parents=True, exist_ok=True)

        filepath = output_dir / f"{repo}.json"
        data = _analysis_adapter.dump_python(analysis, mode="json")
        filepath.write_text(json.dumps(data, indent=2, default=str))
        return filepath

    async def analyze_many(
        self,
        repositories: list[str],
        save: bool = True,
        progress_callback=None,
    ) -> list[BlendedAnalysis]:
        """Analyze repositories in batches with bounded concurrency.

        Failed repositories are logged and skipped. A feature schema mismatch
        with the stored models aborts the whole run.

        Args:
            repositories: Repositories as owner/repo.
            save: Whether to save each result to disk.
            progress_callback: Optional callback(current, total, repository).
        """
        return await self._run_batched(
            repositories,
            lambda name: self.analyze_repository(name, save=save),
            progress_callback,
        )

    async def _run_batched(self, repositories: list[str], task, progress_callback=None) -> list:
        semaphore = asyncio.Semaphore(self.max_concurrency)
        total = len(repositories)
        done = 0
        results = []

        async def run(name: str):
            nonlocal done
            async with semaphore:
                try:
                    return await task(name)
                except FeatureSchemaMismatchError:
                    raise
                except (httpx.HTTPError, ValueError, LookupError) as e:
                    logger.error(f"Error analyzing {name}: {e}")
                    return None
                finally:
                    done += 1
                    if progress_callback:
                        progress_callback(done, total, name)

        for start in range(0, total, self.batch_size):
            batch = repositories[start:start + self.batch_size]
            batch_results = await asyncio.gather(*(run(name) for name in batch))
            results.extend(r for r in batch_results if r is not None)

            if start + self.batch_size < total and self.batch_delay > 0:
                await asyncio.sleep(self.batch_delay)

        return results

    async def collect_training_sample(
        self,
        full_name: str,
        dependency_health: DependencyHealthSummary | dict | None = None,
    ) -> TrainingSample:
        """Fetch a repository and turn it into a labelled training sample."""
        owner, repo = parse_repo(full_name)
        now = datetime.now(timezone.utc)
        snapshot, activity = await self.github.fetch_repository(owner, repo, now=now)
        dependencies = coerce_dependency_health(dependency_health)

        features = self.extractor.extract(snapshot, activity, dependencies, now=now)
        complexity = self.scorer.score(snapshot, activity, dependencies, now=now).technical_complexity
        return build_training_sample(snapshot, features, dependencies, complexity, now=now)

    async def collect(
        self,
        repositories: list[str],
        corpus: TrainingCorpus | None = None,
        progress_callback=None,
    ) -> TrainingCorpus:
        """Collect samples for repositories and persist them to the corpus."""
        corpus = corpus or TrainingCorpus(self.data_dir / "training-data.json")
        samples = await self._run_batched(
            repositories, self.collect_training_sample, progress_callback
        )
        corpus.add(samples)
        corpus.save()
        logger.info(f"Collected {len(samples)} samples, corpus now has {len(corpus)}")
        return corpus

    def train(
        self,
        config: TrainingConfig | None = None,
        corpus: TrainingCorpus | None = None,
    ) -> tuple[TrainingResult, TrainingReport]:
        """Train models from the corpus and persist those that pass the gate.

        Raises:
            InsufficientDataError: If the corpus is too small.
            ModelStoreLockedError: If another training run holds the store.
        """
        corpus = corpus or TrainingCorpus(self.data_dir / "training-data.json")
        samples = corpus.samples

        with self.store.writer():
            result = ModelTrainer(config).train(samples)
            if result.models:
                self.store.save_models(result.models)
            else:
                logger.warning("No models passed the accuracy gate, keeping existing models")

        self._predictor = None
        report = TrainingReport.from_result(result, total_samples=len(samples))
        report.save(self.data_dir / "training-report.json")
        return result, report
