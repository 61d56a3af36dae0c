"""
Channel de-duplication by canonical name.

中文:
    按标准名称对频道去重，保留首次出现的记录。
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Tuple

from ..models import CanonicalName, ChannelRecord
from .canonical import NameCanonicalizer


@dataclass
class DedupDecision:
    """
    Records a dropped duplicate for QA reporting.

    中文:
        记录一次去重决策，用于报告。
    """

    identity: str
    kept: ChannelRecord
    dropped: ChannelRecord


@dataclass
class DedupeResult:
    channels: List[ChannelRecord]
    names: Dict[str, CanonicalName] = field(default_factory=dict)
    decisions: List[DedupDecision] = field(default_factory=list)

    @property
    def duplicate_count(self) -> int:
        return len(self.decisions)

    def pairs(self) -> List[Tuple[ChannelRecord, CanonicalName]]:
        return [(record, self.names[record.id]) for record in self.channels]


def dedupe(channels: Iterable[ChannelRecord], canonicalizer: NameCanonicalizer) -> DedupeResult:
    """
    Keep the first record (input order) for every canonical name.

    ``names`` maps each surviving channel id to its canonical name.
    """

    seen: Dict[str, ChannelRecord] = {}
    kept: List[ChannelRecord] = []
    names: Dict[str, CanonicalName] = {}
    decisions: List[DedupDecision] = []
    for record in channels:
        name = canonicalizer.canonicalize(record.raw_name)
        identity = dedup_identity(record, name)
        existing = seen.get(identity)
        if existing is not None:
            decisions.append(DedupDecision(identity=identity, kept=existing, dropped=record))
            continue
        if record.id in names:
            # Same feed id under a different name: the first one already owns the id.
            decisions.append(DedupDecision(identity=f"id:{record.id}", kept=_owner(kept, record.id), dropped=record))
            continue
        seen[identity] = record
        names[record.id] = name
        kept.append(record)
    return DedupeResult(channels=kept, names=names, decisions=decisions)


def dedup_identity(record: ChannelRecord, name: CanonicalName) -> str:
    # Names made only of decoration carry no identity of their own.
    if not name.canonical:
        return f"id:{record.id}"
    return f"name:{name.canonical}"


def _owner(kept: List[ChannelRecord], channel_id: str) -> ChannelRecord:
    return next(record for record in kept if record.id == channel_id)
