"""Pydantic models for repository viability data."""

from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Literal, Union

from pydantic import AfterValidator, BaseModel, Field


def ensure_utc(value: datetime) -> datetime:
    """Treat naive timestamps as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


UtcDatetime = Annotated[datetime, AfterValidator(ensure_utc)]


class HealthLabel(str, Enum):
    """Categorical dependency health."""

    EXCELLENT = "excellent"
    GOOD = "good"
    FAIR = "fair"
    POOR = "poor"
    CRITICAL = "critical"
    UNKNOWN = "unknown"


class ScoringMethod(str, Enum):
    """How the final scores of an analysis were produced."""

    RULE_BASED = "rule-based"
    ML_ENHANCED = "ml-enhanced"
    HYBRID = "hybrid"


class PredictionTarget(str, Enum):
    """Targets the learned models predict."""

    ABANDONMENT = "abandonment"
    REVIVAL_SUCCESS = "revival_success"
    EFFORT = "effort_estimation"
    ADOPTION = "community_adoption"


class Algorithm(str, Enum):
    """Linear model variants."""

    LINEAR_REGRESSION = "linear_regression"
    LOGISTIC_REGRESSION = "logistic_regression"


class TechnicalComplexity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


# --- Collaborator inputs ---


class RepositorySnapshot(BaseModel):
    """Point-in-time facts about a repository."""

    model_config = {"frozen": True}

    owner: str
    name: str
    description: str | None = None
    stars: int = Field(default=0, ge=0)
    forks: int = Field(default=0, ge=0)
    open_issues: int = Field(default=0, ge=0)
    watchers: int = Field(default=0, ge=0)
    size: int = Field(default=0, ge=0)  # KB, as reported by the hosting API
    created_at: UtcDatetime | None = None
    pushed_at: UtcDatetime | None = None
    updated_at: UtcDatetime | None = None
    is_archived: bool = False
    license: str | None = None
    language: str | None = None
    topics: tuple[str, ...] = ()
    # Technical hygiene
    has_tests: bool = False
    has_ci: bool = False
    has_documentation: bool = False
    has_contributing_guide: bool = False

    @property
    def full_name(self) -> str:
        return f"{self.owner}/{self.name}"

    @property
    def has_license(self) -> bool:
        return bool(self.license)


class ActivitySignals(BaseModel):
    """Aggregates derived from issues, commits, pull requests and releases."""

    commits_last_30_days: int = 0
    commits_last_90_days: int = 0
    commits_last_365_days: int = 0
    issues_opened_last_30_days: int = 0
    issues_closed_last_30_days: int = 0
    issues_opened_last_365_days: int = 0
    open_issues: int = 0  # Open issues in the fetched sample
    stale_open_issues: int = 0  # Open for more than 30 days
    recent_open_issues: int = 0  # Opened within the last 90 days and still open
    avg_issue_close_days: float | None = None
    contributor_count: int = 0
    unique_contributors_last_year: int = 0
    pr_merge_rate: float = Field(default=0.0, ge=0, le=1)
    days_since_last_release: float | None = None


class DependencyHealthSummary(BaseModel):
    """Dependency health produced by the per-language analyzers."""

    total_dependencies: int = Field(default=0, ge=0)
    outdated_dependencies: int = Field(default=0, ge=0)
    vulnerable_dependencies: int = Field(default=0, ge=0)
    critical_vulnerabilities: int = Field(default=0, ge=0)
    health_score: float = Field(default=0.0, ge=0, le=100)
    health: HealthLabel = HealthLabel.UNKNOWN

    @property
    def outdated_ratio(self) -> float:
        return self.outdated_dependencies / max(self.total_dependencies, 1)


class SocialSignals(BaseModel):
    """Mention counts from outside the hosting platform."""

    awesome_list_mentions: int = Field(default=0, ge=0)
    stackoverflow_mentions: int = Field(default=0, ge=0)
    reddit_mentions: int = Field(default=0, ge=0)
    blog_post_mentions: int = Field(default=0, ge=0)


# --- Heuristic scoring ---


class HeuristicScore(BaseModel):
    """Output of the rule-based scorer."""

    abandonment_score: float = Field(ge=0, le=100)
    revival_potential: float = Field(ge=0, le=100)
    last_commit_age_days: int | None = None
    issue_response_days: float | None = None
    community_engagement: float = Field(default=0.0, ge=0, le=100)
    technical_complexity: TechnicalComplexity = TechnicalComplexity.LOW
    market_relevance: float = Field(default=50.0, ge=0, le=100)
    dependency_health: HealthLabel = HealthLabel.UNKNOWN
    reasons: list[str] = Field(default_factory=list)
    recommendations: list[str] = Field(default_factory=list)


# --- Machine learning ---


class FeatureVector(BaseModel):
    """Ordered numeric encoding of a repository, tied to a schema version."""

    model_config = {"frozen": True}

    values: tuple[float, ...]
    schema_version: int


class TrainingLabels(BaseModel):
    is_abandoned: bool
    revival_success_probability: float = Field(ge=0, le=1)
    estimated_effort_days: int = Field(ge=1)
    community_adoption_likelihood: float = Field(ge=0, le=1)


class TrainingSample(BaseModel):
    """A labelled feature vector collected from one repository."""

    model_config = {"frozen": True}

    features: FeatureVector
    labels: TrainingLabels
    source_repository: str
    observed_at: UtcDatetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    revival_outcome: str = "unknown"  # successful, failed, ongoing, unknown


class TrainedModel(BaseModel):
    """A fitted linear model for one prediction target."""

    target_name: PredictionTarget
    algorithm: Algorithm
    weights: list[float]
    bias: float = 0.0
    accuracy: float = Field(ge=0, le=1)
    trained_at: UtcDatetime
    training_sample_count: int
    feature_names: list[str]
    feature_schema_version: int
    # Standardisation parameters, present when features were scaled for training
    feature_means: list[float] | None = None
    feature_stds: list[float] | None = None


class ModelPerformance(BaseModel):
    """Validation metrics for one trained target."""

    target_name: PredictionTarget
    accuracy: float = Field(ge=0, le=1)
    precision: float = 0.0
    recall: float = 0.0
    f1_score: float = 0.0
    r_squared: float | None = None
    confusion_matrix: list[list[int]] = Field(default_factory=lambda: [[0, 0], [0, 0]])
    validation_loss: float | None = None
    epochs_run: int = 0
    accepted: bool = False


class Prediction(BaseModel):
    """Output of the learned models for one repository."""

    abandonment_probability: float = Field(ge=0, le=1)
    revival_success_probability: float = Field(ge=0, le=1)
    estimated_effort_days: int = Field(ge=1, le=365)
    community_adoption_likelihood: float = Field(ge=0, le=1)
    confidence_score: float = Field(ge=0, le=1)
    key_factors: list[str] = Field(default_factory=list)
    recommendations: list[str] = Field(default_factory=list)


# --- Blended result ---


class _AnalysisBase(BaseModel):
    repository: str
    abandonment_score: float = Field(ge=0, le=100)
    revival_potential: float = Field(ge=0, le=100)
    heuristic: HeuristicScore
    reasons: list[str] = Field(default_factory=list)
    recommendations: list[str] = Field(default_factory=list)


class RuleBasedAnalysis(_AnalysisBase):
    scoring_method: Literal["rule-based"] = "rule-based"


class MlEnhancedAnalysis(_AnalysisBase):
    scoring_method: Literal["ml-enhanced"] = "ml-enhanced"
    prediction: Prediction


class HybridAnalysis(_AnalysisBase):
    scoring_method: Literal["hybrid"] = "hybrid"
    prediction: Prediction


BlendedAnalysis = Annotated[
    Union[RuleBasedAnalysis, MlEnhancedAnalysis, HybridAnalysis],
    Field(discriminator="scoring_method"),
]


# --- Configuration ---


class TrainingConfig(BaseModel):
    """Gradient descent and quality gating settings."""

    learning_rate: float = Field(default=0.05, gt=0)
    epochs: int = Field(default=5000, ge=1)
    l2_penalty: float = Field(default=0.01, ge=0)
    max_patience: int = Field(default=100, ge=1)
    validation_fraction: float = Field(default=0.2, ge=0, lt=1)
    standardize: bool = True
    min_accuracy: float = Field(default=0.5, ge=0, le=1)
    min_samples: int = Field(default=10, ge=1)
    abandonment_algorithm: Literal["logistic", "linear"] = "logistic"
    seed: int | None = None


class PredictionConfig(BaseModel):
    """Whether and when to trust the learned models."""

    use_ml: bool = False
    confidence_threshold: float = Field(default=0.7, ge=0, le=1)
