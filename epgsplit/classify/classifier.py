"""
First-match-wins channel classifier with a keyword shortlist.

中文:
    按优先级顺序“首个匹配即胜出”的频道分类器，并带有关键词索引预筛选。
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Dict, FrozenSet, List, Optional, Sequence, Set, Tuple

from ..models import Classification
from .rules import CategoryRule, RuleTable

log = logging.getLogger(__name__)

MIN_PROBE = 2
MAX_PROBE = 6

_QUANTIFIER = re.compile(r"\{(\d*)(,?)(\d*)\}")
_ANCHORS = set("^$.|)")


@dataclass
class ClassifierStats:
    lookups: int = 0
    shortlisted: int = 0
    full_scans: int = 0


class KeywordIndex:
    """
    Maps lower-cased literal keywords to the rules whose matches must contain them.

    A rule only enters the index when *every* top-level alternative of its
    pattern has a required literal run of at least ``MIN_PROBE`` characters.
    All other rules are kept in ``unindexed`` and are always candidates, so a
    rule that matches a name is always part of that name's shortlist.

    Keywords hold only ASCII or caseless characters. Names with a cased
    non-ASCII character are not covered and go to a full scan, since
    ``re.IGNORECASE`` pairs such characters with ASCII letters (``İ`` with
    ``i``, ``ſ`` with ``s``) in ways ``lower()`` does not reproduce.

    中文:
        关键词索引：仅收录每个分支都含有必需字面量的规则，其余规则始终参与匹配。
    """

    def __init__(self, rules: Sequence[CategoryRule]) -> None:
        self._index: Dict[str, Set[int]] = {}
        self._unindexed: Set[int] = set()
        for rule in rules:
            keywords = extract_keywords(rule)
            if not keywords:
                self._unindexed.add(rule.priority)
                continue
            for keyword in keywords:
                self._index.setdefault(keyword, set()).add(rule.priority)
        log.debug("keyword index: %d keywords, %d unindexed rules", len(self._index), len(self._unindexed))

    @property
    def keywords(self) -> FrozenSet[str]:
        return frozenset(self._index)

    @property
    def unindexed(self) -> FrozenSet[int]:
        return frozenset(self._unindexed)

    def covers(self, name: str) -> bool:
        return not any(_is_cased_non_ascii(char) for char in name)

    def candidates(self, name: str) -> Set[int]:
        """Return priorities of every rule that could match ``name``."""

        found: Set[int] = set(self._unindexed)
        text = name.lower()
        length = len(text)
        for start in range(length):
            for size in range(MIN_PROBE, MAX_PROBE + 1):
                end = start + size
                if end > length:
                    break
                hit = self._index.get(text[start:end])
                if hit:
                    found.update(hit)
        return found


class Classifier:
    """
    Assigns exactly one category per canonical name.

    Rules are tried in ascending priority and the first match wins. The
    keyword shortlist only reduces the number of patterns evaluated; when no
    shortlisted rule matches the whole table is scanned before falling back.

    中文:
        为每个标准名称分配唯一分类；关键词索引只用于减少正则匹配次数。
    """

    def __init__(self, table: RuleTable, *, use_index: bool = True) -> None:
        self.table = table
        self.index: Optional[KeywordIndex] = KeywordIndex(table.rules) if use_index else None
        self.stats = ClassifierStats()
        self._fallback = Classification(category=table.fallback_label, is_universal=True, priority=None)

    @property
    def fallback(self) -> Classification:
        return self._fallback

    def classify(self, name: str) -> Classification:
        self.stats.lookups += 1
        if self.index is not None and self.index.covers(name):
            candidates = self.index.candidates(name)
            if candidates:
                self.stats.shortlisted += 1
                rule = _first_match((rule for rule in self.table if rule.priority in candidates), name)
                if rule is not None:
                    return _as_classification(rule)
        self.stats.full_scans += 1
        return self.classify_full_scan(name)

    def classify_full_scan(self, name: str) -> Classification:
        rule = _first_match(self.table, name)
        if rule is None:
            return self._fallback
        return _as_classification(rule)


def _first_match(rules, name: str) -> Optional[CategoryRule]:
    for rule in rules:
        if rule.matches(name):
            return rule
    return None


def _as_classification(rule: CategoryRule) -> Classification:
    return Classification(category=rule.label, is_universal=rule.is_universal, priority=rule.priority)


def extract_keywords(rule: CategoryRule) -> List[str]:
    """
    Return one keyword per top-level alternative, or ``[]`` if any alternative
    has no literal run that all of its matches must contain.
    """

    if rule.regex.flags & re.VERBOSE:
        return []
    keywords: List[str] = []
    for branch in split_alternatives(rule.pattern):
        runs = [run for run in required_literals(branch) if len(run) >= MIN_PROBE and _case_stable(run)]
        if not runs:
            return []
        best = max(runs, key=len)
        keywords.append(best[:MAX_PROBE].lower())
    return keywords


def split_alternatives(pattern: str) -> List[str]:
    branches: List[str] = []
    current: List[str] = []
    depth = 0
    in_class = False
    index = 0
    while index < len(pattern):
        char = pattern[index]
        if char == "\\":
            current.append(pattern[index : index + 2])
            index += 2
            continue
        if in_class:
            if char == "]":
                in_class = False
        elif char == "[":
            in_class = True
        elif char == "(":
            depth += 1
        elif char == ")":
            depth = max(depth - 1, 0)
        elif char == "|" and depth == 0:
            branches.append("".join(current))
            current = []
            index += 1
            continue
        current.append(char)
        index += 1
    branches.append("".join(current))
    return branches


def required_literals(branch: str) -> List[str]:
    """
    Literal runs that appear verbatim in every match of ``branch``.

    Escapes, classes and groups end a run; an optional quantifier also drops
    the atom it applies to, and any repetition ends the run after its atom.
    """

    runs: List[str] = []
    current: List[str] = []

    def flush() -> None:
        if current:
            runs.append("".join(current))
            current.clear()

    index = 0
    length = len(branch)
    while index < length:
        char = branch[index]
        if char == "\\":
            flush()
            index += 2
        elif char == "[":
            flush()
            index = _skip_class(branch, index)
        elif char == "(":
            flush()
            index = _skip_group(branch, index)
        elif char in "?*":
            if current:
                current.pop()
            flush()
            index += 1
        elif char == "+":
            flush()
            index += 1
        elif char == "{":
            match = _QUANTIFIER.match(branch, index)
            if match and (match.group(1) or match.group(3)):
                if not match.group(1) or int(match.group(1)) == 0:
                    if current:
                        current.pop()
                flush()
                index = match.end()
            else:
                flush()
                index += 1
        elif char in _ANCHORS:
            flush()
            index += 1
        else:
            current.append(char)
            index += 1
    flush()
    return runs


def _skip_class(pattern: str, start: int) -> int:
    index = start + 1
    if index < len(pattern) and pattern[index] == "^":
        index += 1
    if index < len(pattern) and pattern[index] == "]":
        index += 1
    while index < len(pattern):
        char = pattern[index]
        if char == "\\":
            index += 2
            continue
        if char == "]":
            return index + 1
        index += 1
    return index


def _skip_group(pattern: str, start: int) -> int:
    depth = 0
    index = start
    while index < len(pattern):
        char = pattern[index]
        if char == "\\":
            index += 2
            continue
        if char == "[":
            index = _skip_class(pattern, index)
            continue
        if char == "(":
            depth += 1
        elif char == ")":
            depth -= 1
            if depth == 0:
                return _skip_quantifier(pattern, index + 1)
        index += 1
    return index


def _skip_quantifier(pattern: str, index: int) -> int:
    if index < len(pattern) and pattern[index] in "?*+":
        index += 1
        if index < len(pattern) and pattern[index] in "?+":
            index += 1
        return index
    match = _QUANTIFIER.match(pattern, index)
    if match:
        return match.end()
    return index


def _is_cased_non_ascii(char: str) -> bool:
    return not char.isascii() and (char.lower() != char or char.upper() != char)


def _case_stable(text: str) -> bool:
    return not any(_is_cased_non_ascii(char) for char in text)


def rule_summary(table: RuleTable) -> List[Tuple[int, str, bool, str, List[str]]]:
    """Tabular view of a rule table with the keywords the index derives for it."""

    return [
        (rule.priority, rule.label, rule.is_universal, rule.pattern, extract_keywords(rule))
        for rule in table
    ]
