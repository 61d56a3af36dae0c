"""Click-based command line entry point for epgsplit."""

from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import Iterable, Optional, Tuple

import click

from . import __version__
from .classify import rule_summary
from .config import ConfigError, SplitConfig, load_config
from .logging_conf import configure_logging
from .splitter import SplitError, SplitResult, run_split


@click.group(help="XMLTV EPG splitter: per-province and per-category guide files")
@click.version_option(__version__)
@click.option("--verbose", is_flag=True, help="Enable verbose logging output.")
@click.pass_context
def cli(ctx: click.Context, verbose: bool) -> None:
    """
    Root CLI group configuring logging before subcommands execute.
    """

    configure_logging("DEBUG" if verbose else "INFO")
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose


@cli.command("split")
@click.option("--url", default=None, help="Feed URL, defaults to the configured source.")
@click.option("--input", "inp", default=None, type=click.Path(path_type=Path, exists=True, dir_okay=False))
@click.option("--output", "out", required=True, type=click.Path(path_type=Path, file_okay=False))
@click.option("--config", default=None, type=click.Path(path_type=Path, exists=True, dir_okay=False))
@click.option("--lang", default="zh", show_default=True, help="Value written to every lang attribute.")
@click.option("--tz", default="+0800", show_default=True, help="Offset written to every start/stop time.")
@click.option(
    "--normalise/--no-normalise",
    default=True,
    show_default=True,
    help="Rewrite lang attributes and time offsets before parsing.",
)
@click.option(
    "--validate-manifest/--no-validate-manifest",
    default=True,
    show_default=True,
    help="Validate index.json against the bundled schema.",
)
@click.option("--strict", is_flag=True, default=False, help="Treat configuration gaps as fatal.")
def cli_split(
    url: Optional[str],
    inp: Optional[Path],
    out: Path,
    config: Optional[Path],
    lang: str,
    tz: str,
    normalise: bool,
    validate_manifest: bool,
    strict: bool,
) -> None:
    """Download (or read) an XMLTV feed and write the split bundles."""

    if url and inp:
        raise click.UsageError("--url and --input are mutually exclusive")
    try:
        result: SplitResult = run_split(
            out=out,
            url=url,
            inp=inp,
            config=config,
            lang=lang,
            tz=tz,
            normalise=normalise,
            strict=strict,
            validate_manifest=validate_manifest,
        )
    except SplitError as exc:
        raise click.ClickException(str(exc)) from exc
    logging.getLogger(__name__).info(
        "split completed with %d warnings -> %s", len(result.warnings), result.output_path
    )


@cli.command("classify")
@click.argument("names", nargs=-1, required=True)
@click.option("--config", default=None, type=click.Path(path_type=Path, exists=True, dir_okay=False))
def cli_classify(names: Tuple[str, ...], config: Optional[Path]) -> None:
    """Print the canonical name and category of each NAME."""

    split_config = _load(config)
    canonicalizer = split_config.canonicalizer()
    classifier = split_config.classifier()
    for name in names:
        canonical = canonicalizer.canonicalize(name)
        result = classifier.classify(canonical.canonical)
        if result.is_fallback:
            scope = "fallback"
        else:
            scope = "universal" if result.is_universal else "regional"
        click.echo(f"{name}\t{canonical.canonical}\t{result.category}\t{scope}")


@cli.command("rules")
@click.option("--config", default=None, type=click.Path(path_type=Path, exists=True, dir_okay=False))
def cli_rules(config: Optional[Path]) -> None:
    """List the effective rule table in evaluation order."""

    split_config = _load(config)
    for priority, label, is_universal, pattern, keywords in rule_summary(split_config.rules):
        scope = "universal" if is_universal else "regional"
        mapping = split_config.universal if is_universal else split_config.regions
        identifier = mapping.get(label, "-")
        index = ",".join(keywords) if keywords else "(full scan)"
        click.echo(f"{priority:>3}  {label}\t{scope}\t{identifier}\t{pattern}\t{index}")
    click.echo(f"  -  {split_config.fallback_label}\tfallback\t{split_config.universal.get(split_config.fallback_label, '-')}")


def _load(config: Optional[Path]) -> SplitConfig:
    try:
        return load_config(config)
    except ConfigError as exc:
        raise click.ClickException(str(exc)) from exc


def main(argv: Optional[Iterable[str]] = None) -> int:
    """
    Entry point returning an exit code for setuptools console scripts.
    """

    argv_list = list(argv or sys.argv[1:])
    try:
        cli.main(args=argv_list, prog_name="epgsplit", standalone_mode=False)
    except click.ClickException as exc:
        exc.show()
        return 1
    except SystemExit as exc:
        return int(exc.code or 0)
    return 0


if __name__ == "__main__":
    sys.exit(main())
