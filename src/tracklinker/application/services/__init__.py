from .transfer_service import (
    TransferService,
    VerifyResult,
    acceptance_policy_from_settings,
    create_transfer_service,
)

__all__ = [
    "TransferService",
    "VerifyResult",
    "acceptance_policy_from_settings",
    "create_transfer_service",
]
