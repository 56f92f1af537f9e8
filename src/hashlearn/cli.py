"""Command-line interface for hashlearn.

Provides ``train``, ``classify``, ``similarity`` and ``stream`` commands
with rich terminal output using the ``click`` and ``rich`` libraries.

Usage::

    hashlearn train data/20news-bydate-train data/20news-bydate-test --save nb.json
    hashlearn classify nb.json message.txt
    hashlearn similarity --model nb.json a.txt b.txt
    hashlearn stream --port 9999 --interval 10 --save weights.json
"""

from __future__ import annotations

import json
import logging
import signal
import sys
import threading
from pathlib import Path

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table

from .classifier import DocumentClassifier
from .config import PipelineConfig, StreamingConfig
from .corpus import load_corpus, read_document
from .errors import HashLearnError, PipelineError
from .evaluation import ClassificationMetrics
from .features import tfidf_range
from .models import cosine_similarity
from .streaming import BatchReport, LinearModel, SocketBatchSource, StreamingLinearRegression

console = Console()
log_console = Console(stderr=True)


def configure_logging(verbose: bool = False) -> None:
    """Route library log records through rich."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=log_console, rich_tracebacks=True, show_path=False)],
        force=True,
    )


def _fail(exc: Exception) -> None:
    if isinstance(exc, PipelineError):
        where = f" ({exc.source})" if exc.source else ""
        console.print(f"[bold red]Error in {exc.stage} stage{where}:[/] {exc.cause}")
    else:
        console.print(f"[bold red]Error:[/] {exc}")
    sys.exit(1)


@click.group()
@click.version_option(package_name="hashlearn")
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging.")
def main(verbose: bool) -> None:
    """Hashed TF-IDF document classification and streaming regression."""
    configure_logging(verbose)


@main.command()
@click.argument("train_dir", type=click.Path(exists=True, file_okay=False, path_type=Path))
@click.argument("test_dir", type=click.Path(exists=True, file_okay=False, path_type=Path))
@click.option("--num-features", type=int, default=None, help="Hashing dimension D.")
@click.option("--smoothing", type=float, default=None, help="Naive Bayes lambda.")
@click.option("--min-token-count", type=int, default=None,
              help="Tokens rarer than this across the training corpus are dropped.")
@click.option("--raw", is_flag=True,
              help="Baseline: hash whitespace-split words as-is, without filtering or IDF.")
@click.option("--save", "-s", type=click.Path(path_type=Path), default=None,
              help="Save the trained model to a JSON file.")
@click.option("--output", "-o", type=click.Choice(["rich", "json"]), default="rich",
              help="Output format.")
def train(
    train_dir: Path,
    test_dir: Path,
    num_features: int | None,
    smoothing: float | None,
    min_token_count: int | None,
    raw: bool,
    save: Path | None,
    output: str,
) -> None:
    """Train on TRAIN_DIR and report accuracy and weighted F on TEST_DIR.

    Both directories hold one sub-directory per category.

    Example: hashlearn train 20news-bydate-train 20news-bydate-test
    """
    try:
        config = PipelineConfig.from_env()
        if num_features is not None:
            config.num_features = num_features
        if smoothing is not None:
            config.smoothing = smoothing
        if min_token_count is not None:
            config.min_token_count = min_token_count
        if raw:
            config.raw_tokens = True
            config.use_idf = False
        config.validate()

        train_docs, train_labels = load_corpus(train_dir)
        test_docs, test_labels = load_corpus(test_dir)

        classifier = DocumentClassifier(config.pipeline_kwargs(), config.classifier_kwargs())
        with console.status("[bold blue]Training...", spinner="dots"):
            classifier.train(train_docs, train_labels)
        with console.status("[bold blue]Evaluating...", spinner="dots"):
            metrics = classifier.evaluate(test_docs, test_labels)
            value_range = tfidf_range(classifier.transform(test_docs[:100]))
    except (HashLearnError, OSError, ValueError) as e:
        _fail(e)
        return

    if output == "json":
        click.echo(json.dumps(metrics.to_dict(), indent=2))
    else:
        _render_metrics(metrics, len(train_docs), len(test_docs))
        console.print(f"[dim]Feature value range (first 100 test docs): "
                      f"{value_range[0]:.4f} .. {value_range[1]:.4f}[/]")

    if save:
        try:
            classifier.save(save)
        except OSError as e:
            _fail(e)
            return
        console.print(f"\n[dim]Model saved to {save}[/]")


@main.command()
@click.argument("model", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.argument("file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--output", "-o", type=click.Choice(["rich", "json"]), default="rich",
              help="Output format.")
def classify(model: Path, file: Path, output: str) -> None:
    """Classify FILE with a saved MODEL.

    Example: hashlearn classify nb.json message.txt
    """
    try:
        classifier = DocumentClassifier.load(model)
        result = classifier.classify(read_document(file))
    except (HashLearnError, OSError, ValueError) as e:
        _fail(e)
        return

    if output == "json":
        click.echo(json.dumps(result.to_dict(), indent=2))
        return

    table = Table(title=f"Top classes: {file.name}")
    table.add_column("Class", style="cyan")
    table.add_column("Probability", justify="right")
    for name, prob in result.ranked(top_n=5):
        table.add_row(name, f"{prob:.2%}")
    console.print(Panel(
        f"[bold]{result.predicted_class}[/] ({result.confidence:.0%})",
        title="Predicted class",
        border_style="blue",
    ))
    console.print(table)


@main.command()
@click.argument("file_a", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.argument("file_b", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--model", "-m", required=True,
              type=click.Path(exists=True, dir_okay=False, path_type=Path),
              help="Saved model whose feature pipeline is used.")
def similarity(file_a: Path, file_b: Path, model: Path) -> None:
    """Cosine similarity of two documents' TF-IDF vectors.

    Example: hashlearn similarity -m nb.json hockey1.txt hockey2.txt
    """
    try:
        classifier = DocumentClassifier.load(model)
        vec_a, vec_b = classifier.transform([read_document(file_a), read_document(file_b)])
    except (HashLearnError, OSError, ValueError) as e:
        _fail(e)
        return
    click.echo(f"{cosine_similarity(vec_a, vec_b):.6f}")


@main.command()
@click.option("--host", default=None, help="Record source host.")
@click.option("--port", type=int, default=None, help="Record source port.")
@click.option("--interval", type=float, default=None, help="Batch interval in seconds.")
@click.option("--num-features", type=int, default=None, help="Feature count per record.")
@click.option("--step-size", type=float, default=None, help="SGD step size.")
@click.option("--iterations", type=int, default=None, help="Passes over each batch.")
@click.option("--resume", type=click.Path(exists=True, dir_okay=False, path_type=Path),
              default=None, help="Start from saved weights.")
@click.option("--save", "-s", type=click.Path(path_type=Path), default=None,
              help="Save the weights to a JSON file on shutdown.")
def stream(
    host: str | None,
    port: int | None,
    interval: float | None,
    num_features: int | None,
    step_size: float | None,
    iterations: int | None,
    resume: Path | None,
    save: Path | None,
) -> None:
    """Train a linear model on records streamed over TCP until Ctrl-C.

    Each record is a line ``label<TAB>f1,f2,...,fn``.

    Example: hashlearn stream --port 9999 --interval 10
    """
    try:
        config = StreamingConfig.from_env()
        for name, value in (
            ("host", host), ("port", port), ("batch_interval", interval),
            ("num_features", num_features), ("step_size", step_size),
            ("num_iterations", iterations),
        ):
            if value is not None:
                setattr(config, name, value)
        config.validate()

        if resume:
            model = LinearModel.from_dict(json.loads(resume.read_text(encoding="utf-8")))
        else:
            model = LinearModel.zeros(config.num_features)
        learner = StreamingLinearRegression(
            model,
            step_size=config.step_size,
            num_iterations=config.num_iterations,
            fit_intercept=config.fit_intercept,
        )
        source = SocketBatchSource(config.host, config.port, config.batch_interval)
    except (HashLearnError, OSError, ValueError) as e:
        _fail(e)
        return

    stop = threading.Event()

    def _shutdown(signum, frame) -> None:
        console.print("[dim]Stopping after the current batch...[/]")
        stop.set()
        source.close()

    previous = signal.signal(signal.SIGINT, _shutdown)
    try:
        applied = learner.train_on(source, stop_event=stop, on_batch=_render_batch)
    except OSError as e:
        _fail(e)
        return
    finally:
        signal.signal(signal.SIGINT, previous)

    console.print(f"Applied {applied} batches; model is {model.state.value}.")
    if save:
        try:
            save.parent.mkdir(parents=True, exist_ok=True)
            save.write_text(json.dumps(model.to_dict()), encoding="utf-8")
        except OSError as e:
            _fail(e)
            return
        console.print(f"[dim]Weights saved to {save}[/]")


# ------------------------------------------------------------------
# Rich rendering helpers
# ------------------------------------------------------------------

def _render_metrics(metrics: ClassificationMetrics, n_train: int, n_test: int) -> None:
    console.print()
    console.print(Panel(
        f"Train documents: {n_train} | Test documents: {n_test}\n"
        f"[bold]Accuracy:[/] {metrics.accuracy:.4f} | "
        f"[bold]Weighted F-measure:[/] {metrics.weighted_f1:.4f}",
        title="Naive Bayes evaluation",
        border_style="blue",
    ))

    table = Table(title="Per-class scores", show_lines=False)
    table.add_column("Class", style="cyan")
    table.add_column("Precision", justify="right")
    table.add_column("Recall", justify="right")
    table.add_column("F1", justify="right")
    table.add_column("Support", justify="right")
    for name, precision, recall, f1, support in metrics.rows():
        table.add_row(name, f"{precision:.4f}", f"{recall:.4f}", f"{f1:.4f}", str(support))
    console.print(table)
    console.print()


def _render_batch(report: BatchReport) -> None:
    if report.error:
        console.print(f"[bold yellow]batch {report.index}[/] rejected: {report.error}")
    elif report.applied:
        console.print(
            f"batch {report.index}: {report.size} records, "
            f"mse={report.mse:.6f}, |w|={report.weights_norm:.6f}"
        )


if __name__ == "__main__":
    main()
