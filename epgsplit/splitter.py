"""
High-level split orchestration.

中文:
    EPG 拆分流程编排：获取、解析、清洗去重、分类、分组、输出。
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import List, Optional, Union

from . import validate
from .classify import (
    BundleSet,
    ClassificationOutcome,
    InvariantViolation,
    NameCache,
    classify_channels,
    plan_bundles,
)
from .config import ConfigError, SplitConfig, load_config
from .fetch import FetchError, fetch_feed, normalise_feed, read_feed
from .io_xmltv import WriteReport, WriterError, write_bundles
from .models import ClassificationSummary, SplitOptions
from .xmltv import FeedContents, FeedParseError, parse_feed

log = logging.getLogger(__name__)


class SplitError(Exception):
    """Raised when a split run fails. / 拆分失败时抛出。"""


@dataclass
class SplitResult:
    output_path: Path
    summary: ClassificationSummary
    bundles: BundleSet
    report: WriteReport
    warnings: List[str] = field(default_factory=list)
    duration: float = 0.0


def split_feed(
    text: str,
    output_path: Path,
    options: SplitOptions,
    config: SplitConfig,
    *,
    cache: Optional[NameCache] = None,
    now: Optional[datetime] = None,
    started: Optional[float] = None,
) -> SplitResult:
    """
    Split one XMLTV snapshot into per-region and per-category bundles.

    ``started`` is a ``time.monotonic()`` reading taken when the run began;
    it defaults to the moment this function is entered.

    中文:
        将一份 XMLTV 数据拆分为各省份与各通用分类文件。
    """

    started = time.monotonic() if started is None else started
    output_path = Path(output_path)
    if options.normalise:
        text = normalise_feed(text, lang=options.lang, tz_offset=options.tz_offset)

    try:
        contents = parse_feed(text)
    except FeedParseError as exc:
        raise SplitError(str(exc)) from exc
    if not contents.channels:
        raise SplitError("feed contains no usable channels")

    outcome = _classify(contents, config, cache)
    summary = outcome.summary
    summary.malformed_channels = contents.malformed_channels
    summary.malformed_programmes = contents.malformed_programmes

    bundles = plan_bundles(
        outcome.partition,
        contents.programmes,
        region_map=config.regions,
        universal_map=config.universal,
        fallback_label=config.fallback_label,
        complete=outcome.channels,
    )
    warnings = [gap.message for gap in bundles.gaps]
    summary.configuration_gaps = list(warnings)
    if options.strict:
        try:
            validate.assert_no_gaps(warnings)
        except validate.ValidationError as exc:
            raise SplitError(f"{exc}; aborting due to strict mode") from exc

    log.info("writing bundles to %s", output_path)
    try:
        report = write_bundles(
            bundles,
            output_path,
            options,
            summary=summary,
            decisions=outcome.dedupe.decisions,
            output_timezone=config.output_timezone,
            fallback_label=config.fallback_label,
            now=now,
            started=started,
        )
        validate.assert_output_files(output_path, report.manifest)
    except (WriterError, validate.ValidationError) as exc:
        raise SplitError(str(exc)) from exc

    _log_summary(summary, report)
    return SplitResult(
        output_path=output_path,
        summary=summary,
        bundles=bundles,
        report=report,
        warnings=warnings,
        duration=report.duration,
    )


def _classify(contents: FeedContents, config: SplitConfig, cache: Optional[NameCache]) -> ClassificationOutcome:
    try:
        return classify_channels(contents.channels, config.canonicalizer(cache), config.classifier())
    except InvariantViolation as exc:
        log.error("partition check failed: %s", exc)
        raise SplitError(f"internal consistency check failed: {exc}") from exc


def _log_summary(summary: ClassificationSummary, report: WriteReport) -> None:
    log.info(
        "split complete in %.2fs: %d channels (%d duplicates removed), %d region files, %d category files",
        report.duration,
        summary.total_after_dedup,
        summary.duplicate_count,
        len(report.regions),
        len(report.universal),
    )
    for category, count in sorted(summary.per_category_counts.items(), key=lambda item: -item[1]):
        log.info("  %s: %d", category, count)


def run_split(
    *,
    out: Union[str, Path],
    url: Optional[str] = None,
    inp: Optional[Union[str, Path]] = None,
    config: Optional[Union[str, Path]] = None,
    lang: str = "zh",
    tz: str = "+0800",
    normalise: bool = True,
    strict: bool = False,
    validate_manifest: bool = True,
) -> SplitResult:
    """
    Convenience wrapper used by the CLI to orchestrate a split run.
    """

    if url and inp:
        raise SplitError("use either a feed URL or an input file, not both")
    started = time.monotonic()
    try:
        split_config = load_config(config)
    except ConfigError as exc:
        raise SplitError(str(exc)) from exc

    try:
        if inp:
            text = read_feed(inp)
        else:
            text = fetch_feed(
                url or split_config.source_url,
                timeout=split_config.source_timeout,
                attempts=split_config.source_attempts,
            )
    except FetchError as exc:
        raise SplitError(str(exc)) from exc

    options = SplitOptions(
        lang=lang,
        tz_offset=tz,
        normalise=normalise,
        strict=strict,
        validate_manifest=validate_manifest,
    )
    return split_feed(text, Path(out), options, split_config, started=started)
