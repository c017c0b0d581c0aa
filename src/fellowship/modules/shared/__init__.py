"""
Shared module - model base, column types, service errors and clock helpers.
"""

from fellowship.modules.shared.clock import as_utc, utc_now
from fellowship.modules.shared.errors import (
    GOOGLE_REMEDIATION,
    GoogleNotConnectedError,
    ServiceError,
    StorageUnavailableError,
    handle_service_error,
    internal_error,
)
from fellowship.modules.shared.models import BaseModel, UTCDateTime, enum_column_type, new_id
from fellowship.modules.shared.schemas import (
    EntityId,
    MessageResponse,
    RequestModel,
    UTCDatetime,
)

__all__ = [
    "BaseModel",
    "UTCDateTime",
    "enum_column_type",
    "new_id",
    "RequestModel",
    "MessageResponse",
    "UTCDatetime",
    "EntityId",
    "ServiceError",
    "GoogleNotConnectedError",
    "StorageUnavailableError",
    "GOOGLE_REMEDIATION",
    "handle_service_error",
    "internal_error",
    "utc_now",
    "as_utc",
]
