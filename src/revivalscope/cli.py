"""CLI entry point for revival-scope."""

import asyncio
import json
import logging
import os
from pathlib import Path

# Load .env file if it exists
from dotenv import load_dotenv
load_dotenv()

import typer
from pydantic import ValidationError
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.progress import BarColumn, Progress, SpinnerColumn, TaskProgressColumn, TextColumn
from rich.table import Table

from revivalscope.analyzers.github import RepositoryNotFoundError
from revivalscope.analyzers.pipeline import AnalysisPipeline
from revivalscope.ml.features import FeatureSchemaMismatchError
from revivalscope.ml.store import ModelStore, ModelStoreLockedError
from revivalscope.ml.trainer import InsufficientDataError
from revivalscope.models.schemas import PredictionConfig, TrainingConfig

app = typer.Typer(help="Repository abandonment and revival potential scoring.")

console = Console()


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug logging"),
) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_path=False)],
    )


def _score_bar(score: float, width: int = 20, invert: bool = False) -> str:
    """Create a visual score bar."""
    filled = int(score / 100 * width)
    empty = width - filled
    good = 100 - score if invert else score
    color = "green" if good >= 70 else "yellow" if good >= 40 else "red"
    return f"[{color}]{'█' * filled}[/{color}][dim]{'░' * empty}[/dim]"


def _load_deps(path: Path | None) -> dict | None:
    if path is None:
        return None
    try:
        return json.loads(path.read_text())
    except (OSError, json.JSONDecodeError) as e:
        console.print(f"[red]Could not read dependency summary {path}: {e}[/red]")
        raise typer.Exit(1)


def _read_repo_list(repos: list[str], repo_file: Path | None) -> list[str]:
    names = list(repos)
    if repo_file is not None:
        for line in repo_file.read_text().splitlines():
            line = line.strip()
            if line and not line.startswith("#"):
                names.append(line)
    return names


@app.command()
def analyze(
    repository: str = typer.Argument(..., help="Repository as OWNER/REPO"),
    ml: bool = typer.Option(False, "--ml", help="Blend in trained model predictions"),
    confidence: float = typer.Option(
        0.7, "--confidence", "-c", min=0.0, max=1.0, help="Minimum ML confidence"
    ),
    deps: Path | None = typer.Option(None, "--deps", help="Dependency health summary JSON"),
    as_json: bool = typer.Option(False, "--json", help="Print the result as JSON"),
    output: Path | None = typer.Option(None, "--output", "-o", help="Output JSON file"),
    data_dir: Path = typer.Option(Path("data"), "--data-dir", "-d", help="Data directory"),
) -> None:
    """Analyze a repository for abandonment and revival potential."""
    asyncio.run(_analyze(repository, ml, confidence, deps, as_json, output, data_dir))


async def _analyze(
    repository: str,
    use_ml: bool,
    confidence: float,
    deps: Path | None,
    as_json: bool,
    output: Path | None,
    data_dir: Path,
) -> None:
    """Async implementation of analyze."""
    dependency_health = _load_deps(deps)
    config = PredictionConfig(use_ml=use_ml, confidence_threshold=confidence)

    async with AnalysisPipeline(
        data_dir=data_dir,
        github_token=os.environ.get("GITHUB_TOKEN"),
        prediction_config=config,
    ) as pipeline:
        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            console=console,
            transient=True,
            disable=as_json,
        ) as progress:
            progress.add_task(f"Analyzing {repository}...", total=None)
            try:
                analysis = await pipeline.analyze_repository(repository, dependency_health)
            except (RepositoryNotFoundError, ValueError) as e:
                console.print(f"[red]{e}[/red]")
                raise typer.Exit(1)
            except FeatureSchemaMismatchError as e:
                console.print(f"[red]Stored models are incompatible: {e}[/red]")
                raise typer.Exit(1)

    data = analysis.model_dump(mode="json")
    if output:
        output.write_text(json.dumps(data, indent=2, default=str))
    if as_json:
        console.print_json(json.dumps(data, default=str))
        return

    heuristic = analysis.heuristic
    console.print()
    console.print(f"[bold cyan]{analysis.repository}[/bold cyan]  [dim]({analysis.scoring_method})[/dim]")
    console.print()

    table = Table(title="Viability Scores", show_header=True)
    table.add_column("Score", style="bold")
    table.add_column("Value", justify="right")
    table.add_column("Bar", width=20)
    table.add_row(
        "Abandonment",
        f"{analysis.abandonment_score:.0f}",
        _score_bar(analysis.abandonment_score, invert=True),
    )
    table.add_row(
        "Revival potential",
        f"{analysis.revival_potential:.0f}",
        _score_bar(analysis.revival_potential),
    )
    table.add_row(
        "Community engagement",
        f"{heuristic.community_engagement:.0f}",
        _score_bar(heuristic.community_engagement),
    )
    table.add_row(
        "Market relevance",
        f"{heuristic.market_relevance:.0f}",
        _score_bar(heuristic.market_relevance),
    )
    console.print(table)

    last_commit = (
        f"{heuristic.last_commit_age_days} days ago"
        if heuristic.last_commit_age_days is not None
        else "unknown"
    )
    console.print(f"[bold]Last commit:[/bold] {last_commit}")
    console.print(f"[bold]Complexity:[/bold] {heuristic.technical_complexity.value}")
    console.print(f"[bold]Dependency health:[/bold] {heuristic.dependency_health.value}")

    if analysis.scoring_method != "rule-based":
        prediction = analysis.prediction
        console.print()
        console.print(
            Panel(
                f"Abandonment probability: {prediction.abandonment_probability:.0%}\n"
                f"Revival success: {prediction.revival_success_probability:.0%}\n"
                f"Community adoption: {prediction.community_adoption_likelihood:.0%}\n"
                f"Estimated effort: {prediction.estimated_effort_days} days\n"
                f"Confidence: {prediction.confidence_score:.0%}",
                title="ML Prediction",
                expand=False,
            )
        )
    elif use_ml:
        console.print("[dim]ML prediction unavailable or below confidence threshold[/dim]")

    if analysis.reasons:
        console.print()
        console.print("[bold yellow]Reasons:[/bold yellow]")
        for reason in analysis.reasons:
            console.print(f"  [yellow]![/yellow] {reason}")

    if analysis.recommendations:
        console.print()
        console.print("[bold green]Recommendations:[/bold green]")
        for recommendation in analysis.recommendations:
            console.print(f"  [green]+[/green] {recommendation}")

    if output:
        console.print(f"\n[green]Saved to {output}[/green]")


@app.command()
def analyze_batch(
    repositories: list[str] = typer.Argument(None, help="Repositories as OWNER/REPO"),
    repo_file: Path | None = typer.Option(None, "--file", "-f", help="File with one repository per line"),
    ml: bool = typer.Option(False, "--ml", help="Blend in trained model predictions"),
    confidence: float = typer.Option(0.7, "--confidence", "-c", min=0.0, max=1.0),
    concurrency: int = typer.Option(5, "--concurrency", help="Repositories fetched at once"),
    delay: float = typer.Option(1.0, "--delay", help="Seconds between batches"),
    data_dir: Path = typer.Option(Path("data"), "--data-dir", "-d", help="Data directory"),
) -> None:
    """Analyze many repositories and save the results."""
    names = _read_repo_list(repositories or [], repo_file)
    if not names:
        console.print("[red]No repositories given[/red]")
        raise typer.Exit(1)
    asyncio.run(_analyze_batch(names, ml, confidence, concurrency, delay, data_dir))


async def _analyze_batch(
    names: list[str],
    use_ml: bool,
    confidence: float,
    concurrency: int,
    delay: float,
    data_dir: Path,
) -> None:
    """Async implementation of analyze_batch."""
    config = PredictionConfig(use_ml=use_ml, confidence_threshold=confidence)

    async with AnalysisPipeline(
        data_dir=data_dir,
        github_token=os.environ.get("GITHUB_TOKEN"),
        prediction_config=config,
        max_concurrency=concurrency,
        batch_delay=delay,
    ) as pipeline:
        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            BarColumn(),
            TaskProgressColumn(),
            console=console,
        ) as progress:
            task = progress.add_task("Analyzing...", total=len(names))

            def on_progress(current: int, total: int, name: str) -> None:
                progress.update(task, completed=current, description=f"Analyzed {name}")

            try:
                results = await pipeline.analyze_many(names, save=True, progress_callback=on_progress)
            except FeatureSchemaMismatchError as e:
                console.print(f"[red]Stored models are incompatible: {e}[/red]")
                raise typer.Exit(1)

    table = Table(title=f"Analyzed {len(results)} of {len(names)} repositories")
    table.add_column("Repository", style="cyan")
    table.add_column("Abandonment", justify="right")
    table.add_column("Revival", justify="right")
    table.add_column("Method", style="dim")

    for analysis in sorted(results, key=lambda a: a.revival_potential, reverse=True):
        table.add_row(
            analysis.repository,
            f"{analysis.abandonment_score:.0f}",
            f"{analysis.revival_potential:.0f}",
            analysis.scoring_method,
        )

    console.print(table)
    console.print(f"[dim]Results saved to {data_dir / 'analyzed'}[/dim]")


@app.command()
def collect(
    repositories: list[str] = typer.Argument(None, help="Repositories as OWNER/REPO"),
    repo_file: Path | None = typer.Option(None, "--file", "-f", help="File with one repository per line"),
    data_dir: Path = typer.Option(Path("data"), "--data-dir", "-d", help="Data directory"),
) -> None:
    """Collect labelled training samples into the training corpus."""
    names = _read_repo_list(repositories or [], repo_file)
    if not names:
        console.print("[red]No repositories given[/red]")
        raise typer.Exit(1)
    asyncio.run(_collect(names, data_dir))


async def _collect(names: list[str], data_dir: Path) -> None:
    """Async implementation of collect."""
    async with AnalysisPipeline(
        data_dir=data_dir, github_token=os.environ.get("GITHUB_TOKEN")
    ) as pipeline:
        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            BarColumn(),
            TaskProgressColumn(),
            console=console,
        ) as progress:
            task = progress.add_task("Collecting...", total=len(names))

            def on_progress(current: int, total: int, name: str) -> None:
                progress.update(task, completed=current, description=f"Collected {name}")

            try:
                corpus = await pipeline.collect(names, progress_callback=on_progress)
            except (json.JSONDecodeError, ValidationError) as e:
                console.print(f"[red]Could not read training corpus: {e}[/red]")
                raise typer.Exit(1)

    console.print(f"[green]Training corpus has {len(corpus)} samples[/green]")
    console.print(f"[dim]Saved to {corpus.data_file}[/dim]")


@app.command()
def train(
    data_dir: Path = typer.Option(Path("data"), "--data-dir", "-d", help="Data directory"),
    epochs: int = typer.Option(5000, "--epochs", help="Epoch budget per model"),
    learning_rate: float = typer.Option(0.05, "--learning-rate", help="Gradient descent step size"),
    min_accuracy: float = typer.Option(0.5, "--min-accuracy", help="Validation accuracy gate"),
    linear_abandonment: bool = typer.Option(
        False, "--linear-abandonment", help="Train abandonment with linear instead of logistic regression"
    ),
    seed: int | None = typer.Option(None, "--seed", help="Shuffle seed"),
) -> None:
    """Train models from the collected training corpus."""
    config = TrainingConfig(
        epochs=epochs,
        learning_rate=learning_rate,
        min_accuracy=min_accuracy,
        abandonment_algorithm="linear" if linear_abandonment else "logistic",
        seed=seed,
    )
    pipeline = AnalysisPipeline(data_dir=data_dir)

    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        console=console,
        transient=True,
    ) as progress:
        progress.add_task("Training models...", total=None)
        try:
            result, report = pipeline.train(config)
        except (InsufficientDataError, ModelStoreLockedError) as e:
            console.print(f"[red]{e}[/red]")
            raise typer.Exit(1)
        except FeatureSchemaMismatchError as e:
            console.print(f"[red]Training corpus does not match the feature schema: {e}[/red]")
            raise typer.Exit(1)
        except (json.JSONDecodeError, ValidationError) as e:
            console.print(f"[red]Could not read training corpus: {e}[/red]")
            raise typer.Exit(1)

    table = Table(title="Model Performance")
    table.add_column("Target", style="cyan")
    table.add_column("Accuracy", justify="right")
    table.add_column("Epochs", justify="right", style="dim")
    table.add_column("Status")

    for performance in result.performances:
        status = "[green]saved[/green]" if performance.accepted else "[red]discarded[/red]"
        table.add_row(
            performance.target_name.value,
            f"{performance.accuracy:.0%}",
            str(performance.epochs_run),
            status,
        )

    console.print(table)
    console.print(
        f"[dim]{result.training_samples} training / {result.validation_samples} validation samples[/dim]"
    )

    recommendations = report.recommendations()
    if recommendations:
        console.print()
        console.print("[bold]Recommendations:[/bold]")
        for recommendation in recommendations:
            console.print(f"  - {recommendation}")


@app.command()
def ml_info(
    data_dir: Path = typer.Option(Path("data"), "--data-dir", "-d", help="Data directory"),
) -> None:
    """Show the trained models and whether ML scoring is available."""
    store = ModelStore(data_dir / "models.json")
    info = store.model_info()

    if not info:
        console.print("[yellow]No trained models. Run 'collect' and 'train' first.[/yellow]")
        return

    table = Table(title="Trained Models")
    table.add_column("Target", style="cyan")
    table.add_column("Algorithm")
    table.add_column("Accuracy", justify="right")
    table.add_column("Samples", justify="right")
    table.add_column("Trained", style="dim")

    for target, details in info.items():
        table.add_row(
            target,
            details["algorithm"],
            f"{details['accuracy']:.0%}",
            str(details["training_samples"]),
            details["trained_at"][:19],
        )

    console.print(table)
    status = "[green]available[/green]" if store.is_ml_available() else "[yellow]unavailable[/yellow]"
    console.print(f"ML scoring: {status}")


@app.command()
def version() -> None:
    """Show version information."""
    from revivalscope import __version__

    console.print(f"revival-scope v{__version__}")


if __name__ == "__main__":
    app()
