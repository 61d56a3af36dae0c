"""
Channel classification engine.

中文:
    频道分类引擎：名称清洗、规则匹配、去重与分组。
"""

from __future__ import annotations

from .canonical import NameCache, NameCanonicalizer
from .classifier import Classifier, KeywordIndex, extract_keywords, rule_summary
from .dedupe import DedupDecision, DedupeResult, dedupe
from .engine import ClassificationOutcome, classify_channels
from .partition import (
    BundlePlan,
    BundleSet,
    ConfigurationGap,
    InvariantViolation,
    Partition,
    check_partition,
    filter_programmes,
    partition,
    plan_bundles,
    region_bundle,
    universal_categories,
)
from .rules import CategoryRule, RuleTable, RuleTableError

__all__ = [
    "BundlePlan",
    "BundleSet",
    "CategoryRule",
    "ClassificationOutcome",
    "Classifier",
    "ConfigurationGap",
    "DedupDecision",
    "DedupeResult",
    "InvariantViolation",
    "KeywordIndex",
    "NameCache",
    "NameCanonicalizer",
    "Partition",
    "RuleTable",
    "RuleTableError",
    "check_partition",
    "classify_channels",
    "dedupe",
    "extract_keywords",
    "filter_programmes",
    "partition",
    "plan_bundles",
    "region_bundle",
    "rule_summary",
    "universal_categories",
]
