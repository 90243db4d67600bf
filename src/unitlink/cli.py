"""Diagnostic command-line tools for unitlink.

Lets developers inspect how names are canonicalized and compared, and check
locator configuration files, without running an automation session.

Usage:
    unitlink normalize TEXT
    unitlink tokens TEXT [--min-length N]
    unitlink score A B [--threshold T]
    unitlink pick TARGET CANDIDATE... [--threshold T]
    unitlink locators [--file PATH] [--kind KIND]
"""

import json
import sys
from pathlib import Path

import click
from pydantic import ValidationError

from .config import get_settings
from .errors import AmbiguousMatch
from .logging import setup_logging
from .matching import Canonicalizer, EquivalenceDecider, EquivalenceThresholds, SimilarityScorer
from .resolver.locators import LocatorRegistry

EXIT_AMBIGUOUS = 2


def _decider() -> EquivalenceDecider:
    settings = get_settings()
    canonicalizer = Canonicalizer(cache_capacity=settings.token_cache_capacity)
    return EquivalenceDecider(
        scorer=SimilarityScorer(canonicalizer),
        thresholds=EquivalenceThresholds.from_settings(settings),
    )


@click.group()
@click.version_option(version="0.1.0", prog_name="unitlink")
@click.option("--verbose", "-v", is_flag=True, help="Enable log output")
def main(verbose: bool):
    """unitlink - unit identity resolution and link verification.

    Diagnostic tools for name matching and locator configuration.
    """
    if verbose:
        setup_logging()


@main.command()
@click.argument("text")
def normalize(text: str):
    """Print the canonical form of TEXT."""
    click.echo(Canonicalizer().normalize(text))


@main.command()
@click.argument("text")
@click.option("--min-length", type=int, default=2, help="Minimum token length")
def tokens(text: str, min_length: int):
    """Print the significant tokens of TEXT, one per line."""
    for token in Canonicalizer().tokenize(text, min_length=min_length):
        click.echo(token)


@main.command()
@click.argument("a")
@click.argument("b")
@click.option("--threshold", type=float, default=None, help="Combined-score threshold")
@click.option("--json", "as_json", is_flag=True, help="Print the metrics as JSON")
def score(a: str, b: str, threshold: float | None, as_json: bool):
    """Compare two names and show every similarity metric.

    Examples:

        unitlink score "1ª VT de SP" "1ª Vara do Trabalho de São Paulo"
    """
    decider = _decider()
    result = decider.score(a, b)
    equivalent = decider.equivalent(a, b, threshold)

    if as_json:
        click.echo(json.dumps({**result.model_dump(), "equivalent": equivalent}, indent=2))
        return

    click.echo(f"A: {decider.canonicalizer.normalize(a)}")
    click.echo(f"B: {decider.canonicalizer.normalize(b)}")
    click.echo(f"Tokens A: {', '.join(result.tokens_a) or '-'}")
    click.echo(f"Tokens B: {', '.join(result.tokens_b) or '-'}")
    click.echo("-" * 40)
    click.echo(f"  Exact match:     {result.exact_match}")
    click.echo(f"  Coverage A->B:   {result.coverage_a_to_b:.3f}")
    click.echo(f"  Coverage B->A:   {result.coverage_b_to_a:.3f}")
    click.echo(f"  Jaccard:         {result.jaccard:.3f}")
    click.echo(f"  Edit similarity: {result.edit_similarity:.3f}")
    click.echo(f"  Combined score:  {result.combined_score:.3f}")
    click.echo("  Equivalent:      ", nl=False)
    click.secho(str(equivalent), fg="green" if equivalent else "red")


@main.command()
@click.argument("target")
@click.argument("candidates", nargs=-1, required=True)
@click.option("--threshold", type=float, default=None, help="Combined-score threshold")
def pick(target: str, candidates: tuple[str, ...], threshold: float | None):
    """Pick the candidate equivalent to TARGET.

    Exits with status 1 when nothing matches and 2 when several candidates
    are indistinguishable.
    """
    decider = _decider()

    try:
        best = decider.pick_best(list(candidates), target, threshold)
    except AmbiguousMatch as e:
        click.secho(f"Ambiguous: {e.message}", fg="yellow", err=True)
        for candidate, value in zip(e.candidates, e.scores):
            click.echo(f"  {value:.3f}  {candidate}", err=True)
        sys.exit(EXIT_AMBIGUOUS)

    if best is None:
        click.echo(f"No candidate matches: {target}", err=True)
        sys.exit(1)

    click.echo(best)


@main.command()
@click.option(
    "--file",
    "path",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    default=None,
    help="JSON locator file (defaults to the configured or built-in targets)",
)
@click.option("--kind", default=None, help="Show a single target kind")
def locators(path: Path | None, kind: str | None):
    """List and validate locator tiers."""
    path = path or get_settings().locator_config_path

    try:
        registry = LocatorRegistry.from_file(path) if path else LocatorRegistry.default()
    except (ValidationError, ValueError, OSError) as e:
        click.echo(f"Invalid locator configuration: {e}", err=True)
        sys.exit(1)

    if kind is not None:
        try:
            targets = [registry.get(kind)]
        except KeyError as e:
            click.echo(f"Error: {e.args[0]}", err=True)
            sys.exit(1)
    else:
        targets = list(registry)

    click.echo(f"\nLocator targets ({len(registry)} defined)")
    click.echo("=" * 60)

    for target in targets:
        click.echo()
        click.secho(target.kind, bold=True, nl=False)
        if target.expand_via:
            click.echo(f"  (expands via {target.expand_via})")
        else:
            click.echo()
        for tier, pattern in target.ladder():
            marker = "*" if pattern.rule else " "
            click.echo(f"  {tier.value:<10} {marker} {pattern.strategy_id:<28} {pattern.selector}")


if __name__ == "__main__":
    main()
