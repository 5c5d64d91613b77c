"""Prompting package.

This package contains deterministic prompt-construction helpers used by the engine
and pipelines. It does not perform routing, extraction, search, or model invocation.
"""
