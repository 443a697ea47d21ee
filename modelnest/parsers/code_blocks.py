"""Build artifact extraction from code generation replies.

The generation service answers in markdown; the Dockerfile, the Python entry
point and the requirements list arrive as fenced code blocks.
"""

import re
from dataclasses import dataclass

from modelnest.models.deployment import FAILED_CODE_MARKER, GeneratedArtifacts

MISSING_CODE = f"{FAILED_CODE_MARKER} to generate code. Please run code generation again."

DEFAULT_REQUIREMENTS = "\n".join(
    [
        "# fastapi",
        "# uvicorn",
        "# transformers",
        "# torch",
        "# Pillow",
        "# Default requirements if AI output format fails",
    ]
)

# Fence languages accepted for each artifact, in order of preference
FENCE_LANGUAGES: dict[str, tuple[str, ...]] = {
    "dockerfile": ("dockerfile", "docker"),
    "python_code": ("python", "py"),
    "requirements_txt": ("text", "requirements", "txt"),
}


@dataclass
class CodeBlock:
    """A fenced code block."""

    language: str
    content: str


class CodeBlockParser:
    """Parser for fenced code blocks in markdown text."""

    FENCE_PATTERN = re.compile(r"```[ \t]*([\w.+-]*)[ \t]*\r?\n(.*?)\r?\n```", re.DOTALL)

    def parse(self, content: str) -> list[CodeBlock]:
        """Return every fenced block, in document order."""
        return [
            CodeBlock(language=match.group(1).strip().lower(), content=match.group(2))
            for match in self.FENCE_PATTERN.finditer(content)
        ]

    def first(self, blocks: list[CodeBlock], languages: tuple[str, ...]) -> str | None:
        """Content of the first block tagged with one of ``languages``."""
        for language in languages:
            for block in blocks:
                if block.language == language:
                    return block.content.strip()
        return None

    def extract_artifacts(self, content: str) -> GeneratedArtifacts:
        """Pull the three build artifacts out of a reply, with fallbacks."""
        blocks = self.parse(content)

        dockerfile = self.first(blocks, FENCE_LANGUAGES["dockerfile"])
        python_code = self.first(blocks, FENCE_LANGUAGES["python_code"])
        requirements = self.first(blocks, FENCE_LANGUAGES["requirements_txt"])

        return GeneratedArtifacts(
            dockerfile=dockerfile or MISSING_CODE,
            python_code=python_code or MISSING_CODE,
            requirements_txt=requirements or DEFAULT_REQUIREMENTS,
            raw=content,
        )


def extract_artifacts(content: str) -> GeneratedArtifacts:
    """Convenience function to extract build artifacts."""
    return CodeBlockParser().extract_artifacts(content)
