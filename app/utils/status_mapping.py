"""
Translation of raw provider status strings into internal status enums.

Unrecognized values map to the provider's UNKNOWN member so that a new
provider status never causes a webhook delivery to be rejected.
"""
import enum
from typing import Optional, Union
from app.models.applicant import IdenfyStatus, CheckrStatus


class ScreeningProvider(enum.Enum):
    IDENFY = "idenfy"
    CHECKR = "checkr"


# iDenfy reports upper-case overall statuses
IDENFY_STATUS_MAP = {
    'ACTIVE': IdenfyStatus.PENDING,
    'PENDING': IdenfyStatus.PENDING,
    'REVIEWING': IdenfyStatus.PENDING,
    'APPROVED': IdenfyStatus.APPROVED,
    'DENIED': IdenfyStatus.DENIED,
    'SUSPECTED': IdenfyStatus.DENIED,
    'EXPIRED': IdenfyStatus.EXPIRED,
}

# Checkr reports lower-case report statuses and results
CHECKR_STATUS_MAP = {
    'pending': CheckrStatus.PENDING,
    'dispute': CheckrStatus.PENDING,
    'clear': CheckrStatus.CLEAR,
    'consider': CheckrStatus.CONSIDER,
    'suspended': CheckrStatus.SUSPENDED,
}


def map_idenfy_status(raw_status: Optional[str]) -> IdenfyStatus:
    if not isinstance(raw_status, str):
        return IdenfyStatus.UNKNOWN
    return IDENFY_STATUS_MAP.get(raw_status.strip().upper(), IdenfyStatus.UNKNOWN)


def map_checkr_status(raw_status: Optional[str]) -> CheckrStatus:
    if not isinstance(raw_status, str):
        return CheckrStatus.UNKNOWN
    return CHECKR_STATUS_MAP.get(raw_status.strip().lower(), CheckrStatus.UNKNOWN)


def map_provider_status(provider: Union[ScreeningProvider, str],
                        raw_status: Optional[str]) -> Union[IdenfyStatus, CheckrStatus]:
    """Map a raw provider status to the internal enum for that provider"""
    provider = ScreeningProvider(provider)

    if provider == ScreeningProvider.IDENFY:
        return map_idenfy_status(raw_status)
    return map_checkr_status(raw_status)
