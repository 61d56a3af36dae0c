"""Bundled default configuration. / 内置默认配置。"""
