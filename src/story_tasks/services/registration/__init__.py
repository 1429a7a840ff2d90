"""IP Org and IP asset registration service module."""

from story_tasks.services.registration.schemas import (
    IPAssetType,
    IpAssetInput,
    OperationResult,
    UploadResult,
)
from story_tasks.services.registration.service import (
    StoryProtocolService,
    get_story_protocol_service,
)

__all__ = [
    # Schemas
    "IPAssetType",
    "IpAssetInput",
    "OperationResult",
    "UploadResult",
    # Service
    "StoryProtocolService",
    "get_story_protocol_service",
]
