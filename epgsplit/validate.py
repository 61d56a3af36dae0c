"""
Validation helpers for generated bundle files and the index manifest.

中文:
    输出文件与索引文件的校验工具。
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, Iterable, Mapping
from xml.etree import ElementTree as ET

from .schemas import schema_errors

log = logging.getLogger(__name__)

MANIFEST_SCHEMA = "manifest.schema.json"


class ValidationError(Exception):
    """Raised when validation fails. / 校验失败时抛出。"""


def assert_valid_manifest(manifest: Mapping[str, Any]) -> None:
    errors = schema_errors(MANIFEST_SCHEMA, manifest)
    if errors:
        raise ValidationError(f"index.json failed schema validation: {'; '.join(errors)}")


def assert_no_gaps(messages: Iterable[str]) -> None:
    messages = list(messages)
    if messages:
        raise ValidationError(f"configuration gaps: {'; '.join(messages)}")


def assert_output_files(output_dir: Path, manifest: Mapping[str, Any]) -> None:
    """
    Re-read every file listed in ``manifest`` and compare its channel and
    programme counts with the recorded ones.
    """

    output_dir = Path(output_dir)
    files = manifest.get("files") or {}
    for group in ("provinces", "universal", "complete"):
        for key, entry in (files.get(group) or {}).items():
            _validate_bundle_xml(output_dir / entry["file"], entry, f"{group}.{key}")


def _validate_bundle_xml(path: Path, entry: Dict[str, Any], where: str) -> None:
    if not path.exists():
        raise ValidationError(f"{where}: missing {path.name}")
    try:
        root = ET.parse(path).getroot()
    except ET.ParseError as exc:
        raise ValidationError(f"{where}: {path.name} is not well-formed: {exc}") from exc
    if root.tag != "tv":
        raise ValidationError(f"{where}: {path.name} root element must be <tv>")

    channels = root.findall("channel")
    programmes = root.findall("programme")
    if len(channels) != entry["channelCount"]:
        raise ValidationError(
            f"{where}: {path.name} contains {len(channels)} channels, expected {entry['channelCount']}"
        )
    if len(programmes) != entry["programmeCount"]:
        raise ValidationError(
            f"{where}: {path.name} contains {len(programmes)} programmes, expected {entry['programmeCount']}"
        )

    ids = [channel.get("id") for channel in channels]
    if len(set(ids)) != len(ids):
        raise ValidationError(f"{where}: {path.name} lists a channel more than once")
    known = set(ids)
    for programme in programmes:
        if programme.get("channel") not in known:
            raise ValidationError(
                f"{where}: {path.name} has a programme for unknown channel {programme.get('channel')}"
            )
    log.debug("validated %s (%d channels, %d programmes)", path.name, len(channels), len(programmes))
