"""Activity events recorded alongside catalog mutations."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class ActivityAction(str, Enum):
    CREATE = "create"
    DELETE_CHILD_RESOURCE = "delete_child_resource"


class ActivityTarget(str, Enum):
    GROUP = "group"
    VERSION_MIRROR = "terraform_provider_version_mirror"
    PLATFORM_MIRROR = "terraform_provider_platform_mirror"


class ActivityEvent(BaseModel):
    """An audit record of who did what to which mirror resource.

    Events are written in the same transaction as the change they describe,
    so an event exists if and only if the change was committed.
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    created_by: str
    namespace_path: str
    action: ActivityAction
    target_type: ActivityTarget
    target_id: str
    payload: dict[str, Any] = Field(default_factory=dict)
