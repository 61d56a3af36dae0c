"""
XMLTV extraction helpers.

中文:
    XMLTV 解析：提取频道与节目记录。
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional
from xml.etree import ElementTree as ET

from .models import ChannelRecord, ProgrammeRecord

log = logging.getLogger(__name__)


class FeedParseError(Exception):
    """Raised when the feed is not well-formed XML. / 源数据不是合法 XML 时抛出。"""


@dataclass
class FeedContents:
    """
    Channel and programme records extracted from one feed snapshot.

    中文:
        从一次 EPG 数据中提取出的频道与节目。
    """

    channels: List[ChannelRecord] = field(default_factory=list)
    programmes: List[ProgrammeRecord] = field(default_factory=list)
    malformed_channels: int = 0
    malformed_programmes: int = 0
    attributes: Dict[str, str] = field(default_factory=dict)


def parse_feed(text: str) -> FeedContents:
    """
    Parse XMLTV text. Records missing required fields are skipped and counted.

    中文:
        解析 XMLTV 文本；缺少必要字段的记录会被跳过并计数。
    """

    parser = ET.XMLParser(encoding="utf-8")
    try:
        parser.feed(text.encode("utf-8"))
        root = parser.close()
    except ET.ParseError as exc:
        raise FeedParseError(f"feed is not well-formed XML: {exc}") from exc

    if root.tag != "tv":
        log.warning("unexpected feed root element <%s>, expected <tv>", root.tag)

    contents = FeedContents(attributes=dict(root.attrib))
    for element in root:
        if element.tag == "channel":
            record = _channel_record(element)
            if record is None:
                contents.malformed_channels += 1
            else:
                contents.channels.append(record)
        elif element.tag == "programme":
            programme = _programme_record(element)
            if programme is None:
                contents.malformed_programmes += 1
            else:
                contents.programmes.append(programme)

    if contents.malformed_channels or contents.malformed_programmes:
        log.warning(
            "skipped %d malformed channels and %d malformed programmes",
            contents.malformed_channels,
            contents.malformed_programmes,
        )
    log.info("found %d channels and %d programmes", len(contents.channels), len(contents.programmes))
    return contents


def _channel_record(element: ET.Element) -> Optional[ChannelRecord]:
    channel_id = (element.get("id") or "").strip()
    name = _text(element.find("display-name"))
    if not channel_id or not name:
        log.debug("malformed channel element: id=%r name=%r", channel_id, name)
        return None
    return ChannelRecord(id=channel_id, raw_name=name, element=element)


def _programme_record(element: ET.Element) -> Optional[ProgrammeRecord]:
    channel_id = (element.get("channel") or "").strip()
    start = (element.get("start") or "").strip()
    if not channel_id or not start:
        return None
    return ProgrammeRecord(
        start=start,
        stop=element.get("stop"),
        channel_id=channel_id,
        title=_text(element.find("title")),
        desc=_text(element.find("desc")),
        category=_text(element.find("category")),
        episode=_text(element.find("episode-num")),
        element=element,
    )


def _text(element: Optional[ET.Element]) -> Optional[str]:
    if element is None or element.text is None:
        return None
    value = element.text.strip()
    return value or None
