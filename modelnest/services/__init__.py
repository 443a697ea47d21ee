"""Services for the ModelNest deployment API."""

from modelnest.services.codegen_service import (
    CodeGenerationService,
    build_prompt,
    get_codegen_service,
)

__all__ = [
    "CodeGenerationService",
    "build_prompt",
    "get_codegen_service",
]
