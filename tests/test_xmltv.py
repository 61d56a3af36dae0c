from __future__ import annotations

from pathlib import Path

import pytest

from epgsplit.fetch import normalise_feed
from epgsplit.xmltv import FeedParseError, parse_feed

FIXTURE_DIR = Path(__file__).parent / "fixtures"


@pytest.fixture()
def sample_text() -> str:
    return (FIXTURE_DIR / "sample_epg.xml").read_text(encoding="utf-8")


def test_parse_counts_malformed_records(sample_text: str) -> None:
    contents = parse_feed(sample_text)

    assert len(contents.channels) == 7
    assert contents.malformed_channels == 1
    assert len(contents.programmes) == 7
    assert contents.malformed_programmes == 1
    assert contents.attributes["generator-info-name"] == "epg.pw"


def test_parse_keeps_feed_order_and_fields(sample_text: str) -> None:
    contents = parse_feed(sample_text)

    assert [channel.id for channel in contents.channels][:3] == ["cctv1", "cctv1-alt", "hunan"]
    assert contents.channels[0].raw_name == "CCTV-1 高清"
    assert contents.channels[0].element is not None

    first = contents.programmes[0]
    assert first.channel_id == "cctv1"
    assert first.title == "朝闻天下"
    assert first.desc == "新闻节目"
    assert first.stop == "20250101070000 +0000"


def test_parse_after_normalise(sample_text: str) -> None:
    contents = parse_feed(normalise_feed(sample_text, lang="zh", tz_offset="+0800"))
    assert contents.programmes[0].start == "20250101060000 +0800"
    lang = contents.channels[0].element.find("display-name").get("lang")
    assert lang == "zh"


def test_parse_rejects_broken_xml() -> None:
    with pytest.raises(FeedParseError):
        parse_feed("<tv><channel id='x'>")


def test_channel_without_id_is_malformed() -> None:
    contents = parse_feed('<tv><channel><display-name>A</display-name></channel></tv>')
    assert contents.channels == []
    assert contents.malformed_channels == 1
