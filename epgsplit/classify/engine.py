"""
Single-pass classification run: canonicalise, deduplicate, classify, partition.

中文:
    一次完整的分类流程：清洗、去重、分类、分组。
"""

from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass
from typing import List, Sequence

from ..models import ChannelRecord, ClassificationSummary, ClassifiedChannel
from .canonical import NameCanonicalizer
from .classifier import Classifier
from .dedupe import DedupeResult, dedupe
from .partition import Partition, check_partition, partition

log = logging.getLogger(__name__)


@dataclass
class ClassificationOutcome:
    channels: List[ClassifiedChannel]
    partition: Partition
    dedupe: DedupeResult
    summary: ClassificationSummary


def classify_channels(
    records: Sequence[ChannelRecord],
    canonicalizer: NameCanonicalizer,
    classifier: Classifier,
) -> ClassificationOutcome:
    """
    Run the core engine over one feed snapshot.

    The result only depends on ``records`` (and their order) plus the rule
    table; an ``InvariantViolation`` propagates to the caller.
    """

    deduped = dedupe(records, canonicalizer)
    classified: List[ClassifiedChannel] = []
    for record, name in deduped.pairs():
        classified.append(
            ClassifiedChannel(record=record, name=name, classification=classifier.classify(name.canonical))
        )

    grouped = partition(classified)
    check_partition(grouped, classified)

    per_category = Counter(channel.category for channel in classified)
    summary = ClassificationSummary(
        total_input=len(records),
        total_after_dedup=len(classified),
        duplicate_count=deduped.duplicate_count,
        per_category_counts=dict(per_category),
    )
    log.info(
        "classified %d channels (%d input, %d duplicates removed, %d cached names)",
        summary.total_after_dedup,
        summary.total_input,
        summary.duplicate_count,
        len(canonicalizer.cache),
    )
    log.debug(
        "classifier stats: %d lookups, %d shortlisted, %d full scans",
        classifier.stats.lookups,
        classifier.stats.shortlisted,
        classifier.stats.full_scans,
    )
    return ClassificationOutcome(channels=classified, partition=grouped, dedupe=deduped, summary=summary)
