from __future__ import annotations

import random
from typing import List

import pytest

from epgsplit.classify import (
    InvariantViolation,
    Partition,
    check_partition,
    classify_channels,
    filter_programmes,
    partition,
    plan_bundles,
    region_bundle,
)
from epgsplit.config import SplitConfig, load_config
from epgsplit.models import (
    CanonicalName,
    ChannelRecord,
    Classification,
    ClassifiedChannel,
    ProgrammeRecord,
)


@pytest.fixture()
def config() -> SplitConfig:
    return load_config()


def _channel(channel_id: str, category: str, universal: bool, priority=1) -> ClassifiedChannel:
    return ClassifiedChannel(
        record=ChannelRecord(id=channel_id, raw_name=channel_id),
        name=CanonicalName(original=channel_id, canonical=channel_id, upper=channel_id.upper()),
        classification=Classification(category=category, is_universal=universal, priority=priority),
    )


def _fallback(channel_id: str) -> ClassifiedChannel:
    return _channel(channel_id, "其他", True, priority=None)


def _ids(channels: List[ClassifiedChannel]) -> List[str]:
    return [channel.id for channel in channels]


def test_partition_is_disjoint_and_complete(config: SplitConfig) -> None:
    records = [
        ChannelRecord(id="cctv1", raw_name="CCTV-1 高清"),
        ChannelRecord(id="hunan", raw_name="湖南卫视"),
        ChannelRecord(id="btv", raw_name="BTV生活"),
        ChannelRecord(id="gz", raw_name="广州综合"),
        ChannelRecord(id="phoenix", raw_name="凤凰中文"),
        ChannelRecord(id="cctv1-dup", raw_name="CCTV1 综合"),
    ]
    outcome = classify_channels(records, config.canonicalizer(), config.classifier())
    part = outcome.partition

    assert _ids(part.universal_channels()) == ["cctv1", "hunan"]
    assert _ids(part.regional_channels()) == ["btv", "gz"]
    assert _ids(part.unclassified) == ["phoenix"]
    assert part.channel_count() == len(outcome.channels) == 5

    summary = outcome.summary
    assert summary.total_input == 6
    assert summary.total_after_dedup == 5
    assert summary.duplicate_count == 1
    assert summary.per_category_counts == {"央视": 1, "卫视": 1, "北京": 1, "广东": 1, "其他": 1}
    assert sum(summary.per_category_counts.values()) == summary.total_after_dedup


def test_region_bundle_contains_local_universal_and_unclassified() -> None:
    r1 = _channel("R1", "北京", False)
    r2 = _channel("R2", "广东", False)
    u1 = _channel("U1", "央视", True)
    u2 = _channel("U2", "卫视", True, priority=2)
    x = _fallback("X")
    part = partition([r1, u1, r2, u2, x])

    assert _ids(region_bundle(part, "北京")) == ["R1", "U1", "U2", "X"]
    assert _ids(region_bundle(part, "广东")) == ["R2", "U1", "U2", "X"]


def test_region_bundle_lists_each_channel_once() -> None:
    shared = _channel("U1", "央视", True)
    part = Partition(universal={"央视": [shared]}, regional={"北京": [shared]})
    assert _ids(region_bundle(part, "北京")) == ["U1"]


def test_unclassified_never_in_universal() -> None:
    part = partition([_fallback("X"), _channel("U1", "央视", True)])
    assert "其他" not in part.universal
    assert _ids(part.unclassified) == ["X"]


def test_check_partition_detects_overlap() -> None:
    channel = _channel("U1", "央视", True)
    part = Partition(universal={"央视": [channel]}, regional={"北京": [channel]})
    with pytest.raises(InvariantViolation, match="in both"):
        check_partition(part, [channel])


def test_check_partition_detects_missing_channel() -> None:
    kept = _channel("U1", "央视", True)
    lost = _channel("U2", "卫视", True)
    part = Partition(universal={"央视": [kept]})
    with pytest.raises(InvariantViolation, match="missing"):
        check_partition(part, [kept, lost])


def test_check_partition_rejects_fallback_in_universal() -> None:
    stray = _fallback("X")
    part = Partition(universal={"其他": [stray]})
    with pytest.raises(InvariantViolation, match="unclassified"):
        check_partition(part, [stray])


def test_filter_programmes_keeps_only_listed_channels() -> None:
    programmes = [
        ProgrammeRecord(start="1", stop="2", channel_id="a"),
        ProgrammeRecord(start="1", stop="2", channel_id="b"),
        ProgrammeRecord(start="2", stop="3", channel_id="a"),
    ]
    kept = filter_programmes(programmes, ["a"])
    assert [(item.channel_id, item.start) for item in kept] == [("a", "1"), ("a", "2")]
    assert filter_programmes(programmes, []) == []


def test_plan_bundles_records_gaps_and_skips_empty_regions() -> None:
    channels = [
        _channel("R1", "北京", False),
        _channel("R9", "西藏", False),
        _channel("U1", "央视", True),
        _channel("U9", "体育", True, priority=7),
        _fallback("X"),
    ]
    part = partition(channels)
    programmes = [ProgrammeRecord(start="1", stop=None, channel_id=channel.id) for channel in channels]
    bundles = plan_bundles(
        part,
        programmes,
        region_map={"北京": "bj", "广东": "guangdong"},
        universal_map={"央视": "cctv", "其他": "other"},
        fallback_label="其他",
        complete=channels,
    )

    assert [plan.identifier for plan in bundles.regions] == ["bj"]
    assert [plan.identifier for plan in bundles.universal] == ["cctv", "other"]
    assert sorted((gap.kind, gap.label) for gap in bundles.gaps) == [("region", "西藏"), ("universal", "体育")]

    bj = bundles.regions[0]
    assert _ids(bj.channels) == ["R1", "U1", "U9", "X"]
    assert (bj.local_count, bj.universal_count, bj.other_count) == (1, 2, 1)
    assert sorted(item.channel_id for item in bj.programmes) == ["R1", "U1", "U9", "X"]

    assert bundles.complete is not None
    assert len(bundles.complete.channels) == 5
    assert len(bundles.complete.programmes) == 5


_UNIVERSAL = ["央视", "卫视", "体育"]
_REGIONAL = ["北京", "广东", "西藏"]


def _random_channel(rng: random.Random, channel_id: str) -> ClassifiedChannel:
    roll = rng.random()
    if roll < 0.2:
        return _fallback(channel_id)
    if roll < 0.6:
        return _channel(channel_id, rng.choice(_UNIVERSAL), True, priority=rng.randint(1, 9))
    return _channel(channel_id, rng.choice(_REGIONAL), False, priority=rng.randint(1, 9))


def test_random_partitions_are_disjoint_and_complete() -> None:
    rng = random.Random(20240615)
    for _ in range(50):
        channels = [_random_channel(rng, f"c{index}") for index in range(rng.randint(0, 30))]
        part = partition(channels)
        check_partition(part, channels)

        assert part.channel_count() == len(channels)
        sizes = [len(group) for group in part.universal.values()]
        sizes += [len(group) for group in part.regional.values()]
        sizes.append(len(part.unclassified))
        assert sum(sizes) == len(channels)

        for region in _REGIONAL:
            bundle = region_bundle(part, region)
            local = len(part.regional.get(region, []))
            assert len(bundle) == local + len(part.universal_channels()) + len(part.unclassified)
            assert len(set(_ids(bundle))) == len(bundle)


def test_random_feeds_classify_into_a_valid_partition(config: SplitConfig) -> None:
    rng = random.Random(20240616)
    pieces = ["CCTV", "-", "1", "5", "+", " ", "高清", "北京", "BTV", "广东", "卫视", "湖南", "频道", "凤凰"]
    for _ in range(30):
        records = [
            ChannelRecord(id=f"c{index}", raw_name="".join(rng.choice(pieces) for _ in range(rng.randint(1, 5))))
            for index in range(rng.randint(1, 25))
        ]
        outcome = classify_channels(records, config.canonicalizer(), config.classifier())
        check_partition(outcome.partition, outcome.channels)
        assert outcome.partition.channel_count() == len(outcome.channels)
        assert len(outcome.channels) + outcome.summary.duplicate_count == len(records)
