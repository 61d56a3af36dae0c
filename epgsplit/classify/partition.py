"""
Partitioning of classified channels into regional/universal/unclassified groups
and resolution of the per-region bundles.

中文:
    将已分类频道划分为省份、通用、未分类三组，并计算每个省份文件应包含的频道。
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Set

from ..models import ClassifiedChannel, ProgrammeRecord

log = logging.getLogger(__name__)


class InvariantViolation(RuntimeError):
    """Raised when the partition is not an exact, disjoint cover of its input."""


@dataclass
class Partition:
    """
    Disjoint grouping of deduplicated channels (insertion ordered).

    中文:
        去重后频道的互斥分组（保持插入顺序）。
    """

    universal: Dict[str, List[ClassifiedChannel]] = field(default_factory=dict)
    regional: Dict[str, List[ClassifiedChannel]] = field(default_factory=dict)
    unclassified: List[ClassifiedChannel] = field(default_factory=list)

    def universal_channels(self) -> List[ClassifiedChannel]:
        return [channel for channels in self.universal.values() for channel in channels]

    def regional_channels(self) -> List[ClassifiedChannel]:
        return [channel for channels in self.regional.values() for channel in channels]

    def channel_count(self) -> int:
        return len(self.universal_channels()) + len(self.regional_channels()) + len(self.unclassified)

    def counts(self) -> Dict[str, Dict[str, int]]:
        return {
            "universal": {category: len(channels) for category, channels in self.universal.items()},
            "regional": {region: len(channels) for region, channels in self.regional.items()},
            "unclassified": {"count": len(self.unclassified)},
        }


@dataclass
class ConfigurationGap:
    kind: str  # region|universal
    label: str
    channel_count: int

    @property
    def message(self) -> str:
        return f"no output identifier for {self.kind} {self.label!r} ({self.channel_count} channels skipped)"


@dataclass
class BundlePlan:
    """
    Resolved channel and programme set for one output file.

    中文:
        单个输出文件的频道与节目集合。
    """

    kind: str  # region|universal|complete
    label: str
    identifier: str
    channels: List[ClassifiedChannel]
    programmes: List[ProgrammeRecord]
    local_count: int = 0
    universal_count: int = 0
    other_count: int = 0

    @property
    def channel_ids(self) -> List[str]:
        return [channel.id for channel in self.channels]


@dataclass
class BundleSet:
    regions: List[BundlePlan] = field(default_factory=list)
    universal: List[BundlePlan] = field(default_factory=list)
    complete: Optional[BundlePlan] = None
    gaps: List[ConfigurationGap] = field(default_factory=list)

    def all_plans(self) -> List[BundlePlan]:
        plans = list(self.regions) + list(self.universal)
        if self.complete is not None:
            plans.append(self.complete)
        return plans


def partition(channels: Iterable[ClassifiedChannel]) -> Partition:
    """
    Group every channel into exactly one bucket based on its classification.
    """

    result = Partition()
    for channel in channels:
        if channel.classification.is_fallback:
            result.unclassified.append(channel)
        elif channel.is_universal:
            result.universal.setdefault(channel.category, []).append(channel)
        else:
            result.regional.setdefault(channel.category, []).append(channel)
    log.info(
        "partitioned %d channels: %d universal categories, %d regions, %d unclassified",
        result.channel_count(),
        len(result.universal),
        len(result.regional),
        len(result.unclassified),
    )
    return result


def universal_categories(part: Partition, fallback_label: str) -> Dict[str, List[ClassifiedChannel]]:
    """Universal buckets with the unclassified set surfaced as the fallback category."""

    categories = {category: list(channels) for category, channels in part.universal.items()}
    if part.unclassified:
        categories[fallback_label] = list(part.unclassified)
    return categories


def region_bundle(part: Partition, region: str) -> List[ClassifiedChannel]:
    """
    Channels the bundle for ``region`` must contain: its regional channels,
    every universal channel (grouped by category) and every unclassified
    channel, each exactly once.
    """

    bundle: List[ClassifiedChannel] = []
    seen: Set[str] = set()
    groups: List[Sequence[ClassifiedChannel]] = [part.regional.get(region, [])]
    groups.extend(part.universal.values())
    groups.append(part.unclassified)
    for group in groups:
        for channel in group:
            if channel.id in seen:
                continue
            seen.add(channel.id)
            bundle.append(channel)
    return bundle


def filter_programmes(programmes: Iterable[ProgrammeRecord], channel_ids: Iterable[str]) -> List[ProgrammeRecord]:
    wanted = set(channel_ids)
    return [programme for programme in programmes if programme.channel_id in wanted]


def plan_bundles(
    part: Partition,
    programmes: Sequence[ProgrammeRecord],
    *,
    region_map: Mapping[str, str],
    universal_map: Mapping[str, str],
    fallback_label: str,
    complete: Optional[Sequence[ClassifiedChannel]] = None,
) -> BundleSet:
    """
    Build bundle plans for every non-empty region and universal category.

    Groups without an identifier mapping become ``ConfigurationGap`` entries
    instead of bundles. ``complete`` (all deduplicated channels) adds the
    consolidated bundle.
    """

    bundles = BundleSet()
    universal_count = len(part.universal_channels())
    other_count = len(part.unclassified)

    for region, local in part.regional.items():
        if not local:
            continue
        identifier = region_map.get(region)
        if not identifier:
            gap = ConfigurationGap(kind="region", label=region, channel_count=len(local))
            log.warning("%s", gap.message)
            bundles.gaps.append(gap)
            continue
        channels = region_bundle(part, region)
        bundles.regions.append(
            BundlePlan(
                kind="region",
                label=region,
                identifier=identifier,
                channels=channels,
                programmes=filter_programmes(programmes, (channel.id for channel in channels)),
                local_count=len(local),
                universal_count=universal_count,
                other_count=other_count,
            )
        )

    for category, channels in universal_categories(part, fallback_label).items():
        if not channels:
            continue
        identifier = universal_map.get(category)
        if not identifier:
            gap = ConfigurationGap(kind="universal", label=category, channel_count=len(channels))
            log.warning("%s", gap.message)
            bundles.gaps.append(gap)
            continue
        bundles.universal.append(
            BundlePlan(
                kind="universal",
                label=category,
                identifier=identifier,
                channels=list(channels),
                programmes=filter_programmes(programmes, (channel.id for channel in channels)),
                universal_count=len(channels) if category != fallback_label else 0,
                other_count=len(channels) if category == fallback_label else 0,
            )
        )

    if complete is not None:
        everything = list(complete)
        bundles.complete = BundlePlan(
            kind="complete",
            label="all",
            identifier="all",
            channels=everything,
            programmes=filter_programmes(programmes, (channel.id for channel in everything)),
            local_count=len(part.regional_channels()),
            universal_count=universal_count,
            other_count=other_count,
        )
    return bundles


def check_partition(part: Partition, expected: Sequence[ClassifiedChannel]) -> None:
    """
    Raise ``InvariantViolation`` unless the buckets are pairwise disjoint and
    their union is exactly ``expected`` (by channel id).
    """

    owners: Dict[str, str] = {}
    problems: List[str] = []

    def claim(channel: ClassifiedChannel, bucket: str) -> None:
        previous = owners.get(channel.id)
        if previous is not None:
            problems.append(f"channel {channel.id} in both {previous} and {bucket}")
            return
        owners[channel.id] = bucket

    for category, channels in part.universal.items():
        for channel in channels:
            if channel.classification.is_fallback:
                problems.append(f"unclassified channel {channel.id} placed in universal {category!r}")
            claim(channel, f"universal:{category}")
    for region, channels in part.regional.items():
        for channel in channels:
            claim(channel, f"regional:{region}")
    for channel in part.unclassified:
        claim(channel, "unclassified")

    expected_ids = {channel.id for channel in expected}
    if len(expected_ids) != len(expected):
        problems.append("input to partition contains repeated channel ids")
    missing = expected_ids - set(owners)
    extra = set(owners) - expected_ids
    if missing:
        problems.append(f"channels missing from partition: {', '.join(sorted(missing)[:5])}")
    if extra:
        problems.append(f"unexpected channels in partition: {', '.join(sorted(extra)[:5])}")
    if problems:
        raise InvariantViolation("; ".join(problems))
