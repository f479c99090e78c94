"""
Bridges from parsed configuration to kernel inputs.

The kernel knows nothing about YAML.  These functions build the values
and adapters its services take: the ``WorkflowPolicy`` and the optional
httpx-backed ledger event source and image host.
"""

from __future__ import annotations

from grading_config.schema import WorkflowConfig
from grading_kernel.domain.policy import WorkflowPolicy
from grading_kernel.domain.validator import GradeScale
from grading_kernel.integrations.image_host import CloudinaryImageHost
from grading_kernel.integrations.ledger_rpc import JsonRpcLedgerEventSource


def build_workflow_policy(config: WorkflowConfig) -> WorkflowPolicy:
    scale = config.grade_scale
    return WorkflowPolicy(
        grade_scale=GradeScale(
            minimum=scale.minimum,
            maximum=scale.maximum,
            step=scale.step,
        ),
        anchored_statuses=frozenset(config.ledger.anchored_statuses),
    )


def build_ledger_event_source(config: WorkflowConfig) -> JsonRpcLedgerEventSource | None:
    """The configured ledger feed, or None when the ledger is disabled."""
    ledger = config.ledger
    if not ledger.enabled:
        return None
    return JsonRpcLedgerEventSource(
        rpc_url=ledger.rpc_url,
        contract_address=ledger.contract_address,
        event_topics=ledger.event_topics,
        timeout_seconds=ledger.timeout_seconds,
    )


def build_image_host(config: WorkflowConfig) -> CloudinaryImageHost | None:
    """The configured image host, or None when uploads are disabled."""
    host = config.image_host
    if not host.enabled:
        return None
    return CloudinaryImageHost(
        cloud_name=host.cloud_name,
        api_key=host.api_key,
        api_secret=host.api_secret,
        folder=host.folder,
        timeout_seconds=host.timeout_seconds,
    )
