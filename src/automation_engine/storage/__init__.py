"""Storage and repository interfaces"""

from .repository import (
    VersionRepository,
    TemplateRepository,
    ExecutionRepository,
    InMemoryVersionRepository,
    InMemoryTemplateRepository,
    InMemoryExecutionRepository
)

__all__ = [
    "VersionRepository",
    "TemplateRepository",
    "ExecutionRepository",
    "InMemoryVersionRepository",
    "InMemoryTemplateRepository",
    "InMemoryExecutionRepository"
]
