from __future__ import annotations

import json
import time
from datetime import datetime, timezone
from pathlib import Path
from xml.etree import ElementTree as ET

import pytest

from epgsplit.config import config_from_mapping, load_config
from epgsplit.models import SplitOptions
from epgsplit.splitter import SplitError, run_split, split_feed

FIXTURE_DIR = Path(__file__).parent / "fixtures"
NOW = datetime(2025, 1, 1, 4, 0, 0, tzinfo=timezone.utc)


@pytest.fixture()
def sample_text() -> str:
    return (FIXTURE_DIR / "sample_epg.xml").read_text(encoding="utf-8")


def _channel_ids(path: Path) -> list:
    return [channel.get("id") for channel in ET.parse(path).getroot().findall("channel")]


def _programme_channels(path: Path) -> list:
    return [programme.get("channel") for programme in ET.parse(path).getroot().findall("programme")]


def test_split_writes_all_bundles(sample_text: str, tmp_path: Path) -> None:
    out_dir = tmp_path / "out"
    result = split_feed(sample_text, out_dir, SplitOptions(), load_config(), now=NOW)

    names = sorted(path.name for path in out_dir.iterdir())
    assert names == [
        "all.xml",
        "bj.xml",
        "cctv.xml",
        "guangdong.xml",
        "index.json",
        "other.xml",
        "report.json",
        "ws.xml",
    ]

    assert _channel_ids(out_dir / "bj.xml") == ["btv-life", "cctv1", "hunan", "bjws", "phoenix"]
    assert _channel_ids(out_dir / "guangdong.xml") == ["gz-news", "cctv1", "hunan", "bjws", "phoenix"]
    assert _channel_ids(out_dir / "cctv.xml") == ["cctv1"]
    assert _channel_ids(out_dir / "ws.xml") == ["hunan", "bjws"]
    assert _channel_ids(out_dir / "other.xml") == ["phoenix"]
    assert _channel_ids(out_dir / "all.xml") == ["cctv1", "hunan", "bjws", "btv-life", "gz-news", "phoenix"]

    assert sorted(_programme_channels(out_dir / "bj.xml")) == ["btv-life", "cctv1", "cctv1", "hunan", "phoenix"]
    assert "cctv1-alt" not in _programme_channels(out_dir / "all.xml")
    assert len(_programme_channels(out_dir / "all.xml")) == 6

    assert result.summary.duplicate_count == 1
    assert result.summary.malformed_channels == 1
    assert result.summary.malformed_programmes == 1
    assert result.warnings == []


def test_display_names_are_canonical(sample_text: str, tmp_path: Path) -> None:
    out_dir = tmp_path / "out"
    split_feed(sample_text, out_dir, SplitOptions(), load_config(), now=NOW)

    root = ET.parse(out_dir / "all.xml").getroot()
    assert root.get("generator-info-name") == "epgsplit"
    channels = {channel.get("id"): channel for channel in root.findall("channel")}
    display = channels["cctv1"].find("display-name")
    assert display.text == "CCTV1"
    assert display.get("lang") == "zh"
    assert channels["cctv1"].find("icon") is not None
    assert channels["bjws"].find("display-name").text == "北京卫视"

    programme = root.find("programme")
    assert programme.get("start").endswith("+0800")


def test_headers_use_configured_timezone(sample_text: str, tmp_path: Path) -> None:
    out_dir = tmp_path / "out"
    split_feed(sample_text, out_dir, SplitOptions(), load_config(), now=NOW)
    text = (out_dir / "bj.xml").read_text(encoding="utf-8")
    assert "生成时间：2025-01-01 12:00:00" in text
    assert "北京本地频道" in text


def test_index_manifest(sample_text: str, tmp_path: Path) -> None:
    out_dir = tmp_path / "out"
    split_feed(sample_text, out_dir, SplitOptions(), load_config(), now=NOW)

    manifest = json.loads((out_dir / "index.json").read_text(encoding="utf-8"))
    assert manifest["updateTime"] == NOW.isoformat()
    assert sorted(manifest["files"]["provinces"]) == ["bj", "guangdong"]
    assert sorted(manifest["files"]["universal"]) == ["cctv", "other", "ws"]

    bj = manifest["files"]["provinces"]["bj"]
    assert bj["name"] == "北京"
    assert bj["file"] == "bj.xml"
    assert (bj["localChannelCount"], bj["universalChannelCount"], bj["otherChannelCount"]) == (1, 3, 1)
    assert bj["channelCount"] == 5
    assert bj["fileSize"].endswith("MB")

    complete = manifest["files"]["complete"]["all"]
    assert complete["channelCount"] == 6
    assert complete["programmeCount"] == 6

    summary = manifest["summary"]
    assert summary["totalChannels"] == 6
    assert summary["generatedFiles"] == 8
    assert summary["duplicatesRemoved"] == 1
    assert summary["otherChannelCount"] == 1


def test_report_json(sample_text: str, tmp_path: Path) -> None:
    out_dir = tmp_path / "out"
    split_feed(sample_text, out_dir, SplitOptions(), load_config(), now=NOW)

    report = json.loads((out_dir / "report.json").read_text(encoding="utf-8"))
    stats = report["statistics"]
    assert stats["totalInput"] == 7
    assert stats["totalAfterDedup"] == 6
    assert stats["duplicateCount"] == 1
    assert stats["perCategoryCounts"]["卫视"] == 2
    assert stats["malformedChannels"] == 1
    assert report["duplicates"][0]["kept"] == "cctv1"
    assert report["duplicates"][0]["dropped"] == "cctv1-alt"
    assert [item["province"] for item in report["provinces"]] == ["北京", "广东"]


def test_report_records_run_duration(sample_text: str, tmp_path: Path) -> None:
    out_dir = tmp_path / "out"
    result = split_feed(
        sample_text, out_dir, SplitOptions(), load_config(), now=NOW, started=time.monotonic() - 5
    )

    report = json.loads((out_dir / "report.json").read_text(encoding="utf-8"))
    assert isinstance(report["duration"], float)
    assert report["duration"] >= 5.0
    assert report["duration"] == result.duration == result.report.duration


def test_gaps_are_warnings_unless_strict(sample_text: str, tmp_path: Path) -> None:
    config = config_from_mapping(
        {
            "rules": [
                {"label": "央视", "pattern": r"^CCTV\d{1,2}$", "universal": True},
                {"label": "北京", "pattern": "北京|BTV"},
            ],
            "universal": {"央视": "cctv"},
        }
    )

    result = split_feed(sample_text, tmp_path / "lenient", SplitOptions(), config, now=NOW)
    assert any("北京" in warning for warning in result.warnings)
    assert any("其他" in warning for warning in result.warnings)
    assert result.summary.configuration_gaps == result.warnings
    assert not (tmp_path / "lenient" / "bj.xml").exists()
    assert (tmp_path / "lenient" / "cctv.xml").exists()

    with pytest.raises(SplitError, match="strict"):
        split_feed(sample_text, tmp_path / "strict", SplitOptions(strict=True), config, now=NOW)


def test_split_rejects_broken_feed(tmp_path: Path) -> None:
    with pytest.raises(SplitError):
        split_feed("<tv><channel>", tmp_path, SplitOptions(), load_config())


def test_split_rejects_empty_feed(tmp_path: Path) -> None:
    with pytest.raises(SplitError, match="no usable channels"):
        split_feed("<tv></tv>", tmp_path, SplitOptions(), load_config())


def test_run_split_wrapper(tmp_path: Path) -> None:
    out_dir = tmp_path / "wrapper"
    result = run_split(inp=FIXTURE_DIR / "sample_epg.xml", out=out_dir, lang="zh", tz="+0800")
    assert result.output_path == out_dir
    assert (out_dir / "index.json").exists()
    report = json.loads((out_dir / "report.json").read_text(encoding="utf-8"))
    assert report["duration"] >= 0.0


def test_run_split_rejects_url_and_input(tmp_path: Path) -> None:
    with pytest.raises(SplitError):
        run_split(url="https://example.test/epg.xml", inp=FIXTURE_DIR / "sample_epg.xml", out=tmp_path)
