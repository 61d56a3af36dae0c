"""
epgsplit - classify, deduplicate and split XMLTV guide feeds into regional bundles.

中文:
    EPG 频道分类、去重与按省份拆分工具。
"""

from __future__ import annotations

__all__ = ["__version__"]

__version__ = "1.2.0"
