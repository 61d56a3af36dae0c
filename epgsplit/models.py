"""
Shared data models for the epgsplit pipeline.

中文:
    EPG 拆分流程共用的数据模型。
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Optional
from xml.etree import ElementTree as ET

FALLBACK_CATEGORY = "其他"


@dataclass(frozen=True)
class ChannelRecord:
    """
    Channel as delivered by the feed: feed-assigned id plus raw display name.

    中文:
        源数据中的频道：频道 ID 与原始显示名称。
    """

    id: str
    raw_name: str
    element: Optional[ET.Element] = field(default=None, compare=False, repr=False)


@dataclass(frozen=True)
class ProgrammeRecord:
    """
    Scheduled programme, only ever filtered by ``channel_id``.

    中文:
        节目记录，仅按频道 ID 过滤，不参与分类。
    """

    start: str
    stop: Optional[str]
    channel_id: str
    title: Optional[str] = None
    desc: Optional[str] = None
    category: Optional[str] = None
    episode: Optional[str] = None
    element: Optional[ET.Element] = field(default=None, compare=False, repr=False)


@dataclass(frozen=True)
class CanonicalName:
    original: str
    canonical: str
    upper: str


@dataclass(frozen=True)
class Classification:
    category: str
    is_universal: bool
    priority: Optional[int]

    @property
    def is_fallback(self) -> bool:
        return self.priority is None


@dataclass(frozen=True)
class ClassifiedChannel:
    """
    Deduplicated channel with the category assigned by the classifier.

    中文:
        去重后并已分类的频道。
    """

    record: ChannelRecord
    name: CanonicalName
    classification: Classification

    @property
    def id(self) -> str:
        return self.record.id

    @property
    def category(self) -> str:
        return self.classification.category

    @property
    def is_universal(self) -> bool:
        return self.classification.is_universal

    @property
    def display_name(self) -> str:
        # Pure-decoration names canonicalize to "", keep something readable.
        return self.name.canonical or self.record.raw_name.strip()


@dataclass
class ClassificationSummary:
    """
    Counters describing one classification run, used for reporting only.

    中文:
        分类与去重统计，仅用于报告。
    """

    total_input: int = 0
    total_after_dedup: int = 0
    duplicate_count: int = 0
    per_category_counts: Dict[str, int] = field(default_factory=dict)
    malformed_channels: int = 0
    malformed_programmes: int = 0
    configuration_gaps: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, object]:
        return {
            "totalInput": self.total_input,
            "totalAfterDedup": self.total_after_dedup,
            "duplicateCount": self.duplicate_count,
            "perCategoryCounts": dict(self.per_category_counts),
            "malformedChannels": self.malformed_channels,
            "malformedProgrammes": self.malformed_programmes,
            "configurationGaps": list(self.configuration_gaps),
        }


@dataclass
class SplitOptions:
    """
    User-supplied CLI options controlling the split behaviour.

    中文:
        控制拆分行为的命令行选项。
    """

    lang: str = "zh"
    tz_offset: str = "+0800"
    normalise: bool = True
    strict: bool = False
    validate_manifest: bool = True
    generator_name: str = "epgsplit"
