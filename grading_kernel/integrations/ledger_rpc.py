"""
JSON-RPC ledger event source.

Reads the attestation contract's ``TransactionSubmitted`` and
``TransactionApproved`` logs for one submission over Ethereum JSON-RPC
(``eth_getLogs`` + ``eth_getBlockByNumber``) and maps them to
``LedgerEvent`` values.

Event layout (first indexed topic is the submission id):

    TransactionSubmitted(uint256 indexed id, address indexed sender,
                         address indexed recipient, uint256 amount,
                         uint256 timestamp)
    TransactionApproved(uint256 indexed id, address indexed evaluator,
                        address oldRecipient, uint256 oldAmount,
                        address newRecipient, uint256 newAmount)

Topic hashes of the two event signatures come from configuration.
Transport errors, non-2xx answers and JSON-RPC error objects raise
``ExternalLedgerUnavailableError``.  So does a reply whose shape does not
match the JSON-RPC envelope or the log and block objects read below; its
reason is ``"malformed response"``.
"""

from collections.abc import Mapping
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any

import httpx

from grading_kernel.domain.history import LedgerEvent, LedgerEventKind
from grading_kernel.exceptions import ConfigurationError, ExternalLedgerUnavailableError
from grading_kernel.logging_config import get_logger

logger = get_logger("integrations.ledger_rpc")

WEI_PER_ETHER = Decimal(10) ** 18

MALFORMED_RESPONSE = "malformed response"


def submission_topic(submission_id: int) -> str:
    """uint256 indexed topic for a submission id."""
    return "0x" + format(submission_id, "064x")


def _hex_to_int(value: str | None) -> int:
    if not value:
        return 0
    return int(value, 16)


def _topic_address(topic: str) -> str:
    return "0x" + topic[-40:]


def _data_words(data: str | None) -> list[str]:
    raw = (data or "0x")[2:]
    return [raw[i : i + 64] for i in range(0, len(raw), 64)]


def _word_address(word: str) -> str:
    return "0x" + word[-40:]


def _word_ether(word: str) -> str:
    return str(Decimal(int(word, 16)) / WEI_PER_ETHER)


def _decode_detail(kind: LedgerEventKind, log: Mapping[str, Any]) -> dict[str, Any]:
    topics = log.get("topics") or []
    words = _data_words(log.get("data"))
    if kind == LedgerEventKind.SUBMITTED:
        detail: dict[str, Any] = {}
        if len(topics) > 2:
            detail["sender"] = _topic_address(topics[2])
        if len(topics) > 3:
            detail["recipient"] = _topic_address(topics[3])
        if len(words) >= 2:
            detail["amount"] = _word_ether(words[0])
            detail["contract_timestamp"] = int(words[1], 16)
        return detail

    detail = {}
    if len(topics) > 2:
        detail["approver"] = _topic_address(topics[2])
    if len(words) >= 4:
        detail["old_recipient"] = _word_address(words[0])
        detail["old_amount"] = _word_ether(words[1])
        detail["new_recipient"] = _word_address(words[2])
        detail["new_amount"] = _word_ether(words[3])
    return detail


def _decode_log(kind: LedgerEventKind, log: Any) -> tuple[int, str, int, dict[str, Any]]:
    """``(block_number, tx_hash, log_index, detail)`` of one ``eth_getLogs`` entry."""
    if not isinstance(log, Mapping) or not isinstance(log.get("transactionHash"), str):
        raise ExternalLedgerUnavailableError("eth_getLogs", MALFORMED_RESPONSE)
    try:
        return (
            _hex_to_int(log.get("blockNumber")),
            log["transactionHash"],
            _hex_to_int(log.get("logIndex")),
            _decode_detail(kind, log),
        )
    except (TypeError, ValueError, IndexError) as exc:
        raise ExternalLedgerUnavailableError("eth_getLogs", MALFORMED_RESPONSE) from exc


class JsonRpcLedgerEventSource:
    """``LedgerEventSource`` backed by an Ethereum JSON-RPC endpoint."""

    def __init__(
        self,
        rpc_url: str,
        contract_address: str,
        event_topics: Mapping[LedgerEventKind, str],
        timeout_seconds: float = 10.0,
        from_block: str = "0x0",
        client: httpx.Client | None = None,
    ):
        missing = [k.value for k in LedgerEventKind if not event_topics.get(k)]
        if missing:
            raise ConfigurationError(
                "ledger.event_topics", f"missing topic for {', '.join(missing)}"
            )
        self._rpc_url = rpc_url
        self._contract_address = contract_address
        self._event_topics = dict(event_topics)
        self._from_block = from_block
        self._client = client or httpx.Client(timeout=timeout_seconds)
        self._request_id = 0

    def close(self) -> None:
        self._client.close()

    def query_events(self, submission_id: int, kind: LedgerEventKind) -> list[LedgerEvent]:
        logs = self._call(
            "eth_getLogs",
            [
                {
                    "address": self._contract_address,
                    "fromBlock": self._from_block,
                    "toBlock": "latest",
                    "topics": [self._event_topics[kind], submission_topic(submission_id)],
                }
            ],
        )
        if logs is None:
            logs = []
        if not isinstance(logs, list):
            raise ExternalLedgerUnavailableError("eth_getLogs", MALFORMED_RESPONSE)

        block_times: dict[int, datetime] = {}
        events = []
        for log in logs:
            block_number, tx_hash, log_index, detail = _decode_log(kind, log)
            if block_number not in block_times:
                block_times[block_number] = self._block_timestamp(block_number)
            events.append(
                LedgerEvent(
                    kind=kind,
                    submission_id=submission_id,
                    tx_hash=tx_hash,
                    block_number=block_number,
                    timestamp=block_times[block_number],
                    log_index=log_index,
                    data=detail,
                )
            )
        logger.debug(
            "ledger_events_read",
            extra={
                "submission_id": submission_id,
                "event_kind": kind.value,
                "count": len(events),
            },
        )
        return events

    def _block_timestamp(self, block_number: int) -> datetime:
        block = self._call("eth_getBlockByNumber", [hex(block_number), False])
        if not block:
            raise ExternalLedgerUnavailableError(
                "eth_getBlockByNumber", f"block {block_number} not found"
            )
        try:
            return datetime.fromtimestamp(_hex_to_int(block["timestamp"]), tz=timezone.utc)
        except (KeyError, TypeError, ValueError, OverflowError, OSError) as exc:
            raise ExternalLedgerUnavailableError("eth_getBlockByNumber", MALFORMED_RESPONSE) from exc

    def _call(self, method: str, params: list[Any]) -> Any:
        self._request_id += 1
        body = {
            "jsonrpc": "2.0",
            "id": self._request_id,
            "method": method,
            "params": params,
        }
        try:
            response = self._client.post(self._rpc_url, json=body)
        except httpx.TimeoutException as exc:
            raise ExternalLedgerUnavailableError(method, f"request timed out: {exc}") from exc
        except httpx.RequestError as exc:
            raise ExternalLedgerUnavailableError(method, f"request failed: {exc}") from exc

        if response.status_code >= 400:
            raise ExternalLedgerUnavailableError(method, f"HTTP {response.status_code}")

        try:
            payload = response.json()
        except ValueError as exc:
            raise ExternalLedgerUnavailableError(method, "response is not JSON") from exc
        if not isinstance(payload, dict):
            raise ExternalLedgerUnavailableError(method, MALFORMED_RESPONSE)

        error = payload.get("error")
        if error:
            message = error.get("message", "unknown error") if isinstance(error, dict) else str(error)
            raise ExternalLedgerUnavailableError(method, message)
        return payload.get("result")
