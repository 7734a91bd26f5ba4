"""A Cosmos client that signs, broadcasts and batches transactions."""

from __future__ import annotations

import dataclasses
import logging
import queue
import re
import threading
import time
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Callable, Protocol

DEFAULT_BROADCAST_STATUS_POLL = 0.1
DEFAULT_BROADCAST_TIMEOUT = 60.0
MSG_COMMIT_BATCH_SIZE_LIMIT = 1024
MSG_COMMIT_BATCH_TIME_LIMIT = 0.5
ENQUEUE_TIMEOUT = 10.0
SIGN_MODE_DIRECT = "SIGN_MODE_DIRECT"

_SEQUENCE_MISMATCH = "account sequence mismatch"
_DEC_COIN_RE = re.compile(
    r"^([0-9]+(?:\.[0-9]+)?|\.[0-9]+)\s*([a-zA-Z][a-zA-Z0-9/:._-]{2,127})$"
)

AccountRetriever = Callable[[str], "tuple[int, int]"]


class QueueClosedError(Exception):
    """Raised when messages are queued after the client was closed."""

    def __init__(self, message: str = "queue is closed"):
        super().__init__(message)


class EnqueueTimeoutError(Exception):
    """Raised when the message queue stays full for too long."""

    def __init__(self, message: str = "enqueue timeout"):
        super().__init__(message)


class ReadOnlyError(Exception):
    """Raised when a client without a signing account is asked to broadcast."""

    def __init__(self, message: str = "client is in read-only mode"):
        super().__init__(message)


class TxTimedOutError(Exception):
    """Raised when a broadcast transaction is not included in time."""

    def __init__(self, tx_hash: str):
        super().__init__(f"{tx_hash}: tx timed out")
        self.tx_hash = tx_hash


@dataclass
class TxResponse:
    """The outcome of broadcasting a transaction."""

    tx_hash: str = ""
    code: int = 0
    codespace: str = ""
    raw_log: str = ""
    height: int = 0


@dataclass(frozen=True)
class TxFactory:
    """Parameters used to build and sign a transaction."""

    chain_id: str = ""
    account_number: int = 0
    sequence: int = 0
    gas: int = 0
    gas_adjustment: float = 1.5
    gas_prices: str = ""
    simulate_and_execute: bool = True
    sign_mode: str = SIGN_MODE_DIRECT

    def replace(self, **changes: Any) -> "TxFactory":
        """Return a copy with the given fields changed."""
        return dataclasses.replace(self, **changes)


class TxSender(Protocol):
    """Builds, signs and submits transactions, and looks up their inclusion."""

    def broadcast_tx_sync(self, factory: TxFactory, msgs: tuple[Any, ...]) -> TxResponse: ...

    def query_tx(self, tx_hash: str) -> TxResponse | None: ...


def parse_dec_coins(gas_prices: str) -> list[tuple[str, Decimal]]:
    """Parse ``"0.025uumee,1stake"`` into sorted ``(denom, amount)`` pairs.

    Zero amounts are dropped; duplicate denominations are an error.
    """
    if not gas_prices.strip():
        return []
    coins: dict[str, Decimal] = {}
    for part in gas_prices.split(","):
        text = part.strip()
        match = _DEC_COIN_RE.match(text)
        if match is None:
            raise ValueError(f"invalid decimal coin expression: {text}")
        amount_text, denom = match.groups()
        if denom in coins:
            raise ValueError(f"duplicate denomination {denom}")
        coins[denom] = Decimal(amount_text)
    return sorted((denom, amount) for denom, amount in coins.items() if amount != 0)


class CosmosClient:
    """Broadcasts messages from one Cosmos account, keeping its sequence in step."""

    def __init__(
        self,
        tx_sender: TxSender,
        account_retriever: AccountRetriever,
        from_address: str | None = None,
        logger: logging.Logger | None = None,
        gas_prices: str = "",
    ):
        base = logger if logger is not None else logging.getLogger(__name__)
        self.logger = base.getChild("cosmos_client")
        try:
            parse_dec_coins(gas_prices)
        except ValueError as exc:
            raise ValueError(f"failed to ParseDecCoins {gas_prices}: {exc}") from exc

        self.tx_sender = tx_sender
        self.account_retriever = account_retriever
        self.tx_factory = TxFactory(gas_prices=gas_prices)
        self.broadcast_poll_interval = DEFAULT_BROADCAST_STATUS_POLL
        self.broadcast_timeout = DEFAULT_BROADCAST_TIMEOUT
        self.enqueue_timeout = ENQUEUE_TIMEOUT

        self._from_address = from_address or ""
        self._can_sign = bool(from_address)
        self._lock = threading.Lock()
        self._closed = threading.Event()
        self._close_lock = threading.Lock()
        self._queue: queue.Queue[Any] = queue.Queue(maxsize=MSG_COMMIT_BATCH_SIZE_LIMIT)
        self._sentinel = object()
        self._worker: threading.Thread | None = None
        self.account_number = 0
        self.sequence = 0

        if self._can_sign:
            try:
                self.account_number, self.sequence = account_retriever(self._from_address)
            except Exception as exc:
                raise RuntimeError(f"failed to get initial account num and seq: {exc}") from exc
            self._worker = threading.Thread(
                target=self._run_batch_broadcast, name="cosmos-batch-broadcast", daemon=True
            )
            self._worker.start()

    def can_sign_transactions(self) -> bool:
        """Return True if the client has an account to sign with."""
        return self._can_sign

    def from_address(self) -> str:
        """Return the signing account, or an empty string in read-only mode."""
        return self._from_address if self._can_sign else ""

    def sync_broadcast_msg(self, *msgs: Any) -> TxResponse:
        """Broadcast ``msgs`` and wait until the transaction is in a block."""
        return self._broadcast_locked(msgs, await_commit=True, label="sync")

    def async_broadcast_msg(self, *msgs: Any) -> TxResponse:
        """Broadcast ``msgs`` without waiting for block inclusion."""
        return self._broadcast_locked(msgs, await_commit=False, label="async")

    def queue_broadcast_msg(self, *msgs: Any) -> None:
        """Queue ``msgs`` to be grouped into transactions and broadcast later."""
        if not self._can_sign:
            raise ReadOnlyError()
        if self._closed.is_set():
            raise QueueClosedError()
        deadline = time.monotonic() + self.enqueue_timeout
        for msg in msgs:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                raise EnqueueTimeoutError()
            try:
                self._queue.put(msg, timeout=remaining)
            except queue.Full:
                raise EnqueueTimeoutError() from None

    def close(self) -> None:
        """Flush queued messages and stop the background broadcaster."""
        if not self._can_sign:
            return
        with self._close_lock:
            if not self._closed.is_set():
                self._closed.set()
                self._queue.put(self._sentinel)
        if self._worker is not None:
            self._worker.join()

    def _factory_for_current_account(self) -> TxFactory:
        self.tx_factory = self.tx_factory.replace(
            sequence=self.sequence, account_number=self.account_number
        )
        return self.tx_factory

    def _broadcast_with_retry(self, msgs: tuple[Any, ...], await_commit: bool) -> TxResponse:
        try:
            return self._broadcast_tx(self._factory_for_current_account(), await_commit, msgs)
        except Exception as exc:
            if _SEQUENCE_MISMATCH not in str(exc):
                raise
        self._sync_nonce()
        factory = self._factory_for_current_account()
        self.logger.debug("retrying broadcastTx with nonce nonce=%d", self.sequence)
        return self._broadcast_tx(factory, await_commit, msgs)

    def _broadcast_locked(self, msgs: tuple[Any, ...], await_commit: bool, label: str) -> TxResponse:
        with self._lock:
            try:
                response = self._broadcast_with_retry(msgs, await_commit)
            except Exception:
                self.logger.exception("failed to (%s) broadcast tx size=%d", label, len(msgs))
                raise
            self.sequence += 1
            return response

    def _sync_nonce(self) -> None:
        try:
            number, sequence = self.account_retriever(self._from_address)
        except Exception:
            self.logger.exception("failed to get account seq")
            return
        if number != self.account_number:
            raise RuntimeError(
                f"account number changed during nonce sync: got {number}, "
                f"expected {self.account_number}"
            )
        self.sequence = sequence

    def _prepare_factory(self, factory: TxFactory) -> TxFactory:
        if factory.account_number and factory.sequence:
            return factory
        number, sequence = self.account_retriever(self._from_address)
        if factory.account_number == 0:
            factory = factory.replace(account_number=number)
        if factory.sequence == 0:
            factory = factory.replace(sequence=sequence)
        return factory

    def _broadcast_tx(
        self, factory: TxFactory, await_commit: bool, msgs: tuple[Any, ...]
    ) -> TxResponse:
        factory = self._prepare_factory(factory)
        response = self.tx_sender.broadcast_tx_sync(factory, msgs)
        if not await_commit:
            return response

        deadline = time.monotonic() + self.broadcast_timeout
        while True:
            remaining = deadline - time.monotonic()
            time.sleep(max(0.0, min(self.broadcast_poll_interval, remaining)))
            if time.monotonic() >= deadline:
                raise TxTimedOutError(response.tx_hash)
            try:
                result = self.tx_sender.query_tx(response.tx_hash)
            except Exception:
                self.logger.exception(
                    "Tx error on broadcastTx tx_hash=%s raw_log=%s",
                    response.tx_hash,
                    response.raw_log,
                )
                continue
            if result is not None and result.height > 0:
                return result

    def _submit_batch(self, batch: list[Any]) -> None:
        with self._lock:
            self.logger.debug("broadcastTx with nonce nonce=%d", self.sequence)
            try:
                response = self._broadcast_with_retry(tuple(batch), await_commit=True)
            except Exception:
                self.logger.exception("failed to (sync) broadcast batch tx size=%d", len(batch))
                return
            if response.code != 0:
                self.logger.error(
                    "failed to (sync) broadcast tx batch error code != 0: "
                    "error %d (%s): %s tx_hash=%s",
                    response.code,
                    response.codespace,
                    response.raw_log,
                    response.tx_hash,
                )
            else:
                self.logger.debug("batch tx committed successfully tx_hash=%s", response.tx_hash)
            self.sequence += 1
            self.logger.debug("nonce incremented nonce=%d", self.sequence)

    def _run_batch_broadcast(self) -> None:
        batch: list[Any] = []
        deadline = time.monotonic() + MSG_COMMIT_BATCH_TIME_LIMIT
        while True:
            try:
                msg = self._queue.get(timeout=max(0.0, deadline - time.monotonic()))
            except queue.Empty:
                if batch:
                    to_submit, batch = batch, []
                    self._submit_batch(to_submit)
                deadline = time.monotonic() + MSG_COMMIT_BATCH_TIME_LIMIT
                continue

            if msg is self._sentinel:
                if batch:
                    self._submit_batch(batch)
                return

            batch.append(msg)
            if len(batch) >= MSG_COMMIT_BATCH_SIZE_LIMIT:
                to_submit, batch = batch, []
                deadline = time.monotonic() + MSG_COMMIT_BATCH_TIME_LIMIT
                self._submit_batch(to_submit)