"""
XMLTV bundle writer plus index/report generation.

中文:
    输出各省份、各通用分类与完整 XMLTV 文件，并生成索引与报告。
"""

from __future__ import annotations

import copy
import json
import logging
import re
import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional
from xml.etree import ElementTree as ET

from .classify import BundlePlan, BundleSet, DedupDecision
from .models import FALLBACK_CATEGORY, ClassificationSummary, ClassifiedChannel, ProgrammeRecord, SplitOptions
from .validate import assert_valid_manifest

log = logging.getLogger(__name__)

INDEX_FILE = "index.json"
REPORT_FILE = "report.json"
COMPLETE_FILE = "all.xml"
RESERVED_IDENTIFIERS = {"all", "index", "report"}


class WriterError(RuntimeError):
    """Raised when bundle output fails. / 输出文件失败时抛出。"""


@dataclass
class BundleFile:
    kind: str
    label: str
    identifier: str
    file_name: str
    path: Path
    channel_count: int
    programme_count: int
    local_count: int = 0
    universal_count: int = 0
    other_count: int = 0
    file_size: str = "0.00MB"


@dataclass
class WriteReport:
    regions: List[BundleFile] = field(default_factory=list)
    universal: List[BundleFile] = field(default_factory=list)
    complete: Optional[BundleFile] = None
    index_path: Optional[Path] = None
    report_path: Optional[Path] = None
    manifest: Dict[str, Any] = field(default_factory=dict)
    duration: float = 0.0

    @property
    def generated_files(self) -> int:
        # Bundles plus index.json plus report.json.
        bundles = len(self.regions) + len(self.universal) + (1 if self.complete else 0)
        return bundles + 2


def write_bundles(
    bundles: BundleSet,
    out_dir: Path,
    options: SplitOptions,
    *,
    summary: ClassificationSummary,
    decisions: Optional[List[DedupDecision]] = None,
    output_timezone: str = "+08:00",
    fallback_label: str = FALLBACK_CATEGORY,
    now: Optional[datetime] = None,
    started: Optional[float] = None,
) -> WriteReport:
    """
    Write one XMLTV file per bundle plan, then ``index.json`` and ``report.json``.

    ``started`` is a ``time.monotonic()`` reading taken when the run began.
    The elapsed seconds up to the report are recorded as its ``duration``.

    中文:
        为每个输出计划写出一个 XMLTV 文件，并生成 index.json 与 report.json。
    """

    out_dir = Path(out_dir)
    out_dir.mkdir(parents=True, exist_ok=True)
    now = now or datetime.now(timezone.utc)
    stamp = format_local_time(now, output_timezone)

    _ensure_unique_identifiers(bundles)

    report = WriteReport()
    for plan in bundles.regions:
        report.regions.append(_write_plan(plan, out_dir, options, stamp))
    for plan in bundles.universal:
        report.universal.append(_write_plan(plan, out_dir, options, stamp))
    if bundles.complete is not None:
        report.complete = _write_plan(bundles.complete, out_dir, options, stamp)

    report.manifest = build_manifest(report, summary, now, fallback_label=fallback_label)
    if options.validate_manifest:
        assert_valid_manifest(report.manifest)
    report.index_path = out_dir / INDEX_FILE
    _write_json_atomic(report.index_path, report.manifest)
    log.info("wrote %s", INDEX_FILE)

    report.report_path = out_dir / REPORT_FILE
    if started is not None:
        report.duration = round(time.monotonic() - started, 2)
    _write_json_atomic(report.report_path, build_report(report, summary, decisions or [], now))
    log.info("wrote %s", REPORT_FILE)
    return report


def _write_plan(plan: BundlePlan, out_dir: Path, options: SplitOptions, stamp: str) -> BundleFile:
    file_name = f"{plan.identifier}.xml"
    path = out_dir / file_name
    root = build_tree(plan, options, stamp)
    _indent(root)
    tmp_path = path.with_suffix(path.suffix + ".tmp")
    try:
        ET.ElementTree(root).write(tmp_path, encoding="utf-8", xml_declaration=True)
        tmp_path.replace(path)
    except OSError as exc:
        raise WriterError(f"failed to write {path}: {exc}") from exc

    size = format_size_mb(path.stat().st_size)
    log.info(
        "%s - %s (%d local + %d universal + %d other channels, %d programmes, %s)",
        file_name,
        plan.label,
        plan.local_count,
        plan.universal_count,
        plan.other_count,
        len(plan.programmes),
        size,
    )
    return BundleFile(
        kind=plan.kind,
        label=plan.label,
        identifier=plan.identifier,
        file_name=file_name,
        path=path,
        channel_count=len(plan.channels),
        programme_count=len(plan.programmes),
        local_count=plan.local_count,
        universal_count=plan.universal_count,
        other_count=plan.other_count,
        file_size=size,
    )


def build_tree(plan: BundlePlan, options: SplitOptions, stamp: str) -> ET.Element:
    """
    Build the ``<tv>`` element for one bundle.

    Structure:
        <tv generator-info-name="epgsplit">
          <!-- header comments -->
          <channel id="..."><display-name lang="zh">CCTV1</display-name></channel>
          <!-- programme list -->
          <programme channel="..." start="..." stop="...">...</programme>
        </tv>
    """

    root = ET.Element("tv")
    root.set("generator-info-name", options.generator_name)
    for line in _header_lines(plan, stamp):
        root.append(ET.Comment(f" {line} "))

    section: Optional[str] = None
    for channel in plan.channels:
        current = _section_of(plan, channel)
        if current != section:
            section = current
            if plan.kind == "region":
                root.append(ET.Comment(f" {section} "))
        root.append(channel_element(channel, options.lang))

    root.append(ET.Comment(" 节目列表 "))
    if plan.programmes:
        root.append(ET.Comment(f" 共 {len(plan.programmes)} 个节目 "))
    else:
        root.append(ET.Comment(" 未找到相关节目信息 "))
    for programme in plan.programmes:
        root.append(programme_element(programme))
    return root


def channel_element(channel: ClassifiedChannel, lang: str) -> ET.Element:
    source = channel.record.element
    if source is None:
        element = ET.Element("channel", {"id": channel.id})
        ET.SubElement(element, "display-name")
    else:
        element = copy.deepcopy(source)
        element.tail = None
    display = element.find("display-name")
    if display is None:
        display = ET.Element("display-name")
        element.insert(0, display)
    display.text = channel.display_name
    display.attrib.clear()
    if lang:
        display.set("lang", lang)
    return element


def programme_element(programme: ProgrammeRecord) -> ET.Element:
    if programme.element is not None:
        element = copy.deepcopy(programme.element)
        element.tail = None
        return element
    element = ET.Element("programme", {"start": programme.start, "channel": programme.channel_id})
    if programme.stop:
        element.set("stop", programme.stop)
    for tag, value in (
        ("title", programme.title),
        ("desc", programme.desc),
        ("category", programme.category),
        ("episode-num", programme.episode),
    ):
        if value:
            ET.SubElement(element, tag).text = value
    return element


def _header_lines(plan: BundlePlan, stamp: str) -> List[str]:
    if plan.kind == "region":
        return [
            f"{plan.label}电视频道 ({plan.identifier}.xml)",
            f"生成时间：{stamp}",
            f"包含：{plan.label}本地频道 + 全国通用频道（含未分类频道）",
            f"共 {len(plan.channels)} 个频道",
        ]
    if plan.kind == "universal":
        return [
            f"{plan.label}频道 ({plan.identifier}.xml)",
            f"共 {len(plan.channels)} 个频道",
            f"共 {len(plan.programmes)} 个节目",
            f"生成时间：{stamp}",
        ]
    return [
        f"完整EPG数据 ({COMPLETE_FILE})",
        f"生成时间：{stamp}",
        f"包含 {len(plan.channels)} 个频道，{len(plan.programmes)} 个节目",
    ]


def _section_of(plan: BundlePlan, channel: ClassifiedChannel) -> str:
    if channel.classification.is_fallback:
        return "其他频道（未能自动分类）"
    if channel.category == plan.label and not channel.is_universal:
        return f"{plan.label}本地频道"
    return channel.category


def build_manifest(
    report: WriteReport,
    summary: ClassificationSummary,
    now: datetime,
    *,
    fallback_label: str = FALLBACK_CATEGORY,
) -> Dict[str, Any]:
    complete = report.complete
    manifest: Dict[str, Any] = {
        "updateTime": now.isoformat(),
        "files": {
            "provinces": {
                item.identifier: {
                    "name": item.label,
                    "file": item.file_name,
                    "localChannelCount": item.local_count,
                    "universalChannelCount": item.universal_count,
                    "otherChannelCount": item.other_count,
                    "channelCount": item.channel_count,
                    "programmeCount": item.programme_count,
                    "fileSize": item.file_size,
                }
                for item in report.regions
            },
            "universal": {
                item.identifier: {
                    "name": item.label,
                    "file": item.file_name,
                    "channelCount": item.channel_count,
                    "programmeCount": item.programme_count,
                    "fileSize": item.file_size,
                }
                for item in report.universal
            },
            "complete": {},
        },
        "summary": {
            "totalProvinces": len(report.regions),
            "totalUniversalCategories": len(report.universal),
            "provinceChannelCount": sum(item.local_count for item in report.regions),
            "universalChannelCount": sum(item.channel_count for item in report.universal),
            "otherChannelCount": summary.per_category_counts.get(fallback_label, 0),
            "totalChannels": complete.channel_count if complete else summary.total_after_dedup,
            "totalProgrammes": complete.programme_count if complete else 0,
            "duplicatesRemoved": summary.duplicate_count,
            "generatedFiles": report.generated_files,
        },
    }
    if complete is not None:
        manifest["files"]["complete"]["all"] = {
            "file": complete.file_name,
            "channelCount": complete.channel_count,
            "programmeCount": complete.programme_count,
            "fileSize": complete.file_size,
        }
    return manifest


def build_report(
    report: WriteReport,
    summary: ClassificationSummary,
    decisions: List[DedupDecision],
    now: datetime,
) -> Dict[str, Any]:
    return {
        "timestamp": now.isoformat(),
        "duration": report.duration,
        "statistics": summary.to_dict(),
        "provinces": [
            {
                "province": item.label,
                "file": item.file_name,
                "local": item.local_count,
                "universal": item.universal_count,
                "other": item.other_count,
                "total": item.channel_count,
                "programmes": item.programme_count,
                "size": item.file_size,
            }
            for item in report.regions
        ],
        "categories": [
            {
                "category": item.label,
                "file": item.file_name,
                "channels": item.channel_count,
                "programmes": item.programme_count,
                "size": item.file_size,
            }
            for item in report.universal
        ],
        "duplicates": [
            {
                "identity": decision.identity,
                "kept": decision.kept.id,
                "keptName": decision.kept.raw_name,
                "dropped": decision.dropped.id,
                "droppedName": decision.dropped.raw_name,
            }
            for decision in decisions[:50]
        ],
    }


def _ensure_unique_identifiers(bundles: BundleSet) -> None:
    seen: Dict[str, str] = {}
    for plan in bundles.regions + bundles.universal:
        if plan.identifier in RESERVED_IDENTIFIERS:
            raise WriterError(f"identifier {plan.identifier!r} for {plan.label!r} is reserved")
        other = seen.get(plan.identifier)
        if other is not None:
            raise WriterError(f"{other!r} and {plan.label!r} both write {plan.identifier}.xml")
        seen[plan.identifier] = plan.label


def format_size_mb(size: int) -> str:
    return f"{size / 1024 / 1024:.2f}MB"


_OFFSET = re.compile(r"^([+-])(\d{2}):?(\d{2})$")


def format_local_time(moment: datetime, offset: str) -> str:
    match = _OFFSET.match(offset.strip())
    if not match:
        raise ValueError(f"invalid timezone offset {offset!r}")
    sign = -1 if match.group(1) == "-" else 1
    delta = timedelta(hours=int(match.group(2)), minutes=int(match.group(3)))
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone(sign * delta)).strftime("%Y-%m-%d %H:%M:%S")


def _indent(element: ET.Element, level: int = 0) -> None:
    """Add two-space indentation to XML elements for pretty printing."""
    indent_str = "  "
    indent = "\n" + indent_str * level
    if len(element):
        if not element.text or not element.text.strip():
            element.text = indent + indent_str
        for child in list(element):
            _indent(child, level + 1)
            if not child.tail or not child.tail.strip():
                child.tail = indent + indent_str
        if not element[-1].tail or not element[-1].tail.strip():
            element[-1].tail = indent
    else:
        if level and (not element.tail or not element.tail.strip()):
            element.tail = indent


def _write_json_atomic(path: Path, payload: Dict[str, Any]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_suffix(path.suffix + ".tmp")
    tmp_path.write_text(json.dumps(payload, indent=2, ensure_ascii=False), encoding="utf-8")
    tmp_path.replace(path)
