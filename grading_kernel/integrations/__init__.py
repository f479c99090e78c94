"""httpx adapters for the kernel's collaborator ports."""

from grading_kernel.integrations.image_host import CloudinaryImageHost
from grading_kernel.integrations.ledger_rpc import JsonRpcLedgerEventSource

__all__ = [
    "CloudinaryImageHost",
    "JsonRpcLedgerEventSource",
]
