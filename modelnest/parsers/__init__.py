"""Parsers for code generation output."""

from modelnest.parsers.code_blocks import CodeBlock, CodeBlockParser, extract_artifacts

__all__ = [
    "CodeBlock",
    "CodeBlockParser",
    "extract_artifacts",
]
