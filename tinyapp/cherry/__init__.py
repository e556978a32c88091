"""Cherry service: spec generation, storage and models."""

from .deepseek_client import DeepSeekClient, LLMResponse
from .models import (
    CherryBuildRecord,
    CherryBuildResult,
    CherryBuildStatus,
    CherryRequest,
    CherrySpec,
    TechnicalDetails,
)
from .spec_gen import (
    DeepSeekSpecGenerator,
    FallbackSpecGenerator,
    RuleBasedSpecGenerator,
    SpecGenerator,
)
from .store import (
    FileBuildRecordStore,
    FileSpecStore,
    InMemoryBuildRecordStore,
    InMemorySpecStore,
)

__all__ = [
    "CherryBuildRecord",
    "CherryBuildResult",
    "CherryBuildStatus",
    "CherryRequest",
    "CherrySpec",
    "DeepSeekClient",
    "DeepSeekSpecGenerator",
    "FallbackSpecGenerator",
    "FileBuildRecordStore",
    "FileSpecStore",
    "InMemoryBuildRecordStore",
    "InMemorySpecStore",
    "LLMResponse",
    "RuleBasedSpecGenerator",
    "SpecGenerator",
    "TechnicalDetails",
]
