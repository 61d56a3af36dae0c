"""
Channel name canonicalisation.

中文:
    频道名称清洗：去除装饰性字符并统一编号写法。
"""

from __future__ import annotations

import logging
import re
from typing import Dict, Iterator, Mapping, Optional, Union

from ..models import CanonicalName

log = logging.getLogger(__name__)

# Whitespace, bracket/dash punctuation and the "channel", "ultra-clear", "HD"
# and "high definition" suffixes. 高清 survives when the same bracket segment
# goes on to say 电影 (a distinct movie channel, not decoration).
DEFAULT_DECORATION = r"\s+|[()（）－_—·•\-]|频道|超清|HD|高清(?![^()（）]*电影)"

# CCTV + digits + optional "+" + trailing CJK qualifier -> CCTV + digits + "+".
# Qualifier runs naming 欧洲/美洲 denote separate feeds and are preserved.
DEFAULT_NUMBERING = r"(CCTV)(\d+)(\+?)(?![\u4e00-\u9fa5]*(?:欧洲|美洲))[\u4e00-\u9fa5]+"
DEFAULT_NUMBERING_REPLACEMENT = r"\1\2\3"

PatternLike = Union[str, "re.Pattern[str]"]


class NameCache:
    """
    Memo of canonical names keyed by raw display name, scoped to one run.

    中文:
        以原始名称为键的清洗结果缓存，仅在一次运行内有效。
    """

    def __init__(self) -> None:
        self._entries: Dict[str, CanonicalName] = {}
        self.hits = 0
        self.misses = 0

    def get(self, raw_name: str) -> Optional[CanonicalName]:
        entry = self._entries.get(raw_name)
        if entry is None:
            self.misses += 1
        else:
            self.hits += 1
        return entry

    def put(self, raw_name: str, entry: CanonicalName) -> None:
        self._entries[raw_name] = entry

    def clear(self) -> None:
        self._entries.clear()
        self.hits = self.misses = 0

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, raw_name: object) -> bool:
        return raw_name in self._entries

    def __iter__(self) -> Iterator[str]:
        return iter(self._entries)


class NameCanonicalizer:
    """
    Turn raw display names into canonical names used for matching and dedup.

    Both substitutions are repeated until the text stops changing, so the
    result is a fixpoint and canonicalising it again is a no-op.

    中文:
        将原始显示名称转换为用于匹配和去重的标准名称（幂等）。
    """

    def __init__(
        self,
        decoration: PatternLike = DEFAULT_DECORATION,
        numbering: Optional[PatternLike] = DEFAULT_NUMBERING,
        numbering_replacement: str = DEFAULT_NUMBERING_REPLACEMENT,
        cache: Optional[NameCache] = None,
    ) -> None:
        self.decoration = _compile(decoration)
        self.numbering = _compile(numbering) if numbering else None
        self.numbering_replacement = numbering_replacement
        self.cache = cache if cache is not None else NameCache()

    @classmethod
    def from_config(
        cls, config: Optional[Mapping[str, object]], cache: Optional[NameCache] = None
    ) -> "NameCanonicalizer":
        config = config or {}
        # An explicit null/empty numbering pattern disables the collapse step.
        numbering = config.get("numbering", DEFAULT_NUMBERING)
        return cls(
            decoration=str(config.get("decoration") or DEFAULT_DECORATION),
            numbering=str(numbering) if numbering else None,
            numbering_replacement=str(config.get("numbering_replacement") or DEFAULT_NUMBERING_REPLACEMENT),
            cache=cache,
        )

    def canonicalize(self, raw_name: str) -> CanonicalName:
        cached = self.cache.get(raw_name)
        if cached is not None:
            return cached
        canonical = self.clean(raw_name)
        result = CanonicalName(original=raw_name, canonical=canonical, upper=canonical.upper())
        self.cache.put(raw_name, result)
        return result

    def clean(self, text: str) -> str:
        current = str(text or "")
        # A pass that changes the text removes at least one character.
        for _ in range(len(current) + 1):
            updated = self._apply_once(current)
            if updated == current:
                return current
            current = updated
        log.debug("canonical name for %r did not settle after %d passes", text, len(str(text or "")) + 1)
        return current

    def _apply_once(self, text: str) -> str:
        text = self.decoration.sub("", text)
        if self.numbering is not None:
            text = self.numbering.sub(self.numbering_replacement, text)
        return text.strip()


def _compile(pattern: PatternLike) -> "re.Pattern[str]":
    if isinstance(pattern, re.Pattern):
        return pattern
    return re.compile(pattern, re.IGNORECASE)
