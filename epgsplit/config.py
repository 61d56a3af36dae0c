"""
Configuration loading: rule table, canonicalisation patterns and output identifiers.

中文:
    配置加载：分类规则、名称清洗正则以及省份/通用分类的输出文件标识。
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from importlib import resources
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Union

import yaml

from .classify import Classifier, NameCache, NameCanonicalizer, RuleTable, RuleTableError
from .models import FALLBACK_CATEGORY
from .schemas import schema_errors

log = logging.getLogger(__name__)

DEFAULT_CONFIG_RESOURCE = "default_config.yml"
DEFAULT_SOURCE_URL = "https://epg.pw/xmltv/epg_CN.xml.gz"


class ConfigError(Exception):
    """Raised when the configuration cannot be loaded. / 配置无法加载时抛出。"""


@dataclass
class SplitConfig:
    """
    Static, read-only configuration consumed by the engine and the writer.

    中文:
        分类引擎与输出模块共享的只读配置。
    """

    rules: RuleTable
    regions: Dict[str, str] = field(default_factory=dict)
    universal: Dict[str, str] = field(default_factory=dict)
    canonical: Dict[str, Any] = field(default_factory=dict)
    fallback_label: str = FALLBACK_CATEGORY
    source_url: str = DEFAULT_SOURCE_URL
    source_timeout: float = 30.0
    source_attempts: int = 3
    output_timezone: str = "+08:00"
    origin: str = "<default>"

    def canonicalizer(self, cache: Optional[NameCache] = None) -> NameCanonicalizer:
        return NameCanonicalizer.from_config(self.canonical, cache=cache)

    def classifier(self, *, use_index: bool = True) -> Classifier:
        return Classifier(self.rules, use_index=use_index)


def load_config(path: Optional[Union[str, Path]] = None) -> SplitConfig:
    """
    Load ``path`` (YAML or JSON) or the bundled default configuration.

    中文:
        读取指定配置文件（YAML/JSON），未指定时使用内置默认配置。
    """

    if path is None:
        text = resources.files("epgsplit.data").joinpath(DEFAULT_CONFIG_RESOURCE).read_text(encoding="utf-8")
        origin = f"epgsplit.data/{DEFAULT_CONFIG_RESOURCE}"
        data = _parse(text, suffix=".yml", origin=origin)
    else:
        path = Path(path)
        if not path.exists():
            raise ConfigError(f"config file {path} not found")
        origin = str(path)
        data = _parse(path.read_text(encoding="utf-8"), suffix=path.suffix.lower(), origin=origin)
    return config_from_mapping(data, origin=origin)


def config_from_mapping(data: Mapping[str, Any], origin: str = "<mapping>") -> SplitConfig:
    errors = schema_errors("config.schema.json", data)
    if errors:
        raise ConfigError(f"{origin} failed schema validation: {'; '.join(errors)}")

    fallback = data.get("fallback") or {}
    fallback_label = str(fallback.get("label") or FALLBACK_CATEGORY)
    try:
        rules = RuleTable.from_config(data.get("rules") or [], fallback_label)
    except RuleTableError as exc:
        raise ConfigError(f"{origin}: {exc}") from exc

    universal = {str(k): str(v) for k, v in (data.get("universal") or {}).items()}
    fallback_identifier = fallback.get("identifier")
    if fallback_identifier and fallback_label not in universal:
        universal[fallback_label] = str(fallback_identifier)

    source = data.get("source") or {}
    output = data.get("output") or {}
    config = SplitConfig(
        rules=rules,
        regions={str(k): str(v) for k, v in (data.get("regions") or {}).items()},
        universal=universal,
        canonical=dict(data.get("canonical") or {}),
        fallback_label=fallback_label,
        source_url=str(source.get("url") or DEFAULT_SOURCE_URL),
        source_timeout=float(source.get("timeout", 30)),
        source_attempts=int(source.get("attempts", 3)),
        output_timezone=str(output.get("timezone") or "+08:00"),
        origin=origin,
    )
    _warn_unmapped(config)
    return config


def _parse(text: str, *, suffix: str, origin: str) -> Dict[str, Any]:
    try:
        if suffix == ".json":
            data = json.loads(text)
        else:
            data = yaml.safe_load(text)
    except (json.JSONDecodeError, yaml.YAMLError) as exc:
        raise ConfigError(f"failed to parse config {origin}: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigError(f"config {origin} must contain a mapping")
    return data


def _warn_unmapped(config: SplitConfig) -> None:
    for label in config.rules.labels(universal=False):
        if label not in config.regions:
            log.debug("region rule %r has no output identifier in %s", label, config.origin)
    for label in config.rules.labels(universal=True):
        if label not in config.universal:
            log.debug("universal rule %r has no output identifier in %s", label, config.origin)
