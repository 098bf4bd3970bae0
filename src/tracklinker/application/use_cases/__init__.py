from .manual_match import ManualMatchUseCase, parse_manual_target
from .transfer_playlist import ExecuteOptions, TransferOrchestrator

__all__ = [
    "ExecuteOptions",
    "ManualMatchUseCase",
    "TransferOrchestrator",
    "parse_manual_target",
]
