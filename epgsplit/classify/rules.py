"""
Ordered category rules.

中文:
    有序的频道分类规则表。
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Iterable, Iterator, List, Mapping, Optional, Sequence


class RuleTableError(ValueError):
    """Raised when the configured rule table is unusable."""


@dataclass(frozen=True)
class CategoryRule:
    """
    One classification rule. Lower ``priority`` values take precedence.

    The compiled pattern is only ever used through ``search``, which keeps no
    position state between calls.

    中文:
        单条分类规则，priority 越小优先级越高。
    """

    label: str
    pattern: str
    is_universal: bool
    priority: int
    regex: "re.Pattern[str]" = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        try:
            compiled = re.compile(self.pattern, re.IGNORECASE)
        except re.error as exc:
            raise RuleTableError(f"rule {self.label!r} has invalid pattern {self.pattern!r}: {exc}") from exc
        object.__setattr__(self, "regex", compiled)

    def matches(self, name: str) -> bool:
        return self.regex.search(name) is not None


class RuleTable:
    """
    Immutable rule list ordered by ascending priority.

    中文:
        按优先级升序排列的只读规则表。
    """

    def __init__(self, rules: Iterable[CategoryRule], fallback_label: str) -> None:
        ordered = list(rules)
        seen: dict[int, CategoryRule] = {}
        for rule in ordered:
            other = seen.get(rule.priority)
            if other is not None:
                raise RuleTableError(
                    f"rules {other.label!r} and {rule.label!r} share priority {rule.priority}"
                )
            seen[rule.priority] = rule
            if rule.label == fallback_label:
                raise RuleTableError(f"fallback category {fallback_label!r} cannot be a configured rule")
        # Priorities are unique, so the order is total.
        self._rules: Sequence[CategoryRule] = tuple(sorted(ordered, key=lambda rule: rule.priority))
        self.fallback_label = fallback_label

    @classmethod
    def from_config(cls, entries: Sequence[Mapping[str, Any]], fallback_label: str) -> "RuleTable":
        rules: List[CategoryRule] = []
        for index, entry in enumerate(entries):
            label = str(entry.get("label") or entry.get("name") or "").strip()
            pattern = entry.get("pattern") or entry.get("regex")
            if not label or not pattern:
                raise RuleTableError(f"rule #{index} needs both a label and a pattern")
            priority = entry.get("priority", index + 1)
            try:
                priority_value = int(priority)
            except (TypeError, ValueError) as exc:
                raise RuleTableError(f"rule {label!r} has non-integer priority {priority!r}") from exc
            rules.append(
                CategoryRule(
                    label=label,
                    pattern=str(pattern),
                    is_universal=bool(entry.get("universal", entry.get("is_universal", False))),
                    priority=priority_value,
                )
            )
        return cls(rules, fallback_label)

    @property
    def rules(self) -> Sequence[CategoryRule]:
        return self._rules

    def __iter__(self) -> Iterator[CategoryRule]:
        return iter(self._rules)

    def __len__(self) -> int:
        return len(self._rules)

    def labels(self, *, universal: Optional[bool] = None) -> List[str]:
        labels: List[str] = []
        for rule in self._rules:
            if universal is not None and rule.is_universal != universal:
                continue
            if rule.label not in labels:
                labels.append(rule.label)
        return labels
