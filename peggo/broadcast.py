"""Broadcasting of Gravity Bridge confirmations and Ethereum claims to Cosmos."""

from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable, Protocol, Sequence, Union

from peggo.address import hex_to_address

ZERO_ADDRESS = "0x" + "00" * 20

PersonalSignFn = Callable[[str, bytes], bytes]
SignerFn = Callable[..., Any]


class BroadcastError(Exception):
    """Raised when a message cannot be signed or queued for broadcast."""


class BroadcastClient(Protocol):
    """What the broadcast client needs from a Cosmos client."""

    def from_address(self) -> str: ...

    def queue_broadcast_msg(self, *msgs: Any) -> None: ...

    def sync_broadcast_msg(self, *msgs: Any) -> Any: ...


@dataclass(frozen=True)
class BridgeValidator:
    """A validator's Ethereum address and voting power."""

    ethereum_address: str = ""
    power: int = 0


@dataclass
class Valset:
    """A validator set at a given nonce."""

    nonce: int = 0
    members: list[BridgeValidator] = field(default_factory=list)
    height: int = 0
    reward_amount: int = 0
    reward_token: str = ""


@dataclass
class OutgoingTxBatch:
    """A batch of outgoing transactions for one token contract."""

    batch_nonce: int = 0
    batch_timeout: int = 0
    transactions: list[Any] = field(default_factory=list)
    token_contract: str = ""
    cosmos_block_created: int = 0


@dataclass
class SendToCosmosEvent:
    """A deposit observed on the Gravity contract."""

    event_nonce: int = 0
    token_contract: str = ZERO_ADDRESS
    sender: str = ZERO_ADDRESS
    destination: str = ""
    amount: int = 0
    block_number: int = 0


@dataclass
class TransactionBatchExecutedEvent:
    """An executed withdrawal batch observed on the Gravity contract."""

    event_nonce: int = 0
    batch_nonce: int = 0
    token: str = ZERO_ADDRESS
    block_number: int = 0


@dataclass
class ValsetUpdatedEvent:
    """A validator set update observed on the Gravity contract."""

    event_nonce: int = 0
    new_valset_nonce: int = 0
    reward_amount: int = 0
    reward_token: str = ZERO_ADDRESS
    validators: list[str] = field(default_factory=list)
    powers: list[int] = field(default_factory=list)
    block_number: int = 0


@dataclass
class ERC20DeployedEvent:
    """An ERC20 deployment observed on the Gravity contract."""

    event_nonce: int = 0
    cosmos_denom: str = ""
    token_contract: str = ZERO_ADDRESS
    name: str = ""
    symbol: str = ""
    decimals: int = 0
    block_number: int = 0


@dataclass(frozen=True)
class MsgValsetConfirm:
    """A validator's signature over a validator set."""

    orchestrator: str
    eth_address: str
    nonce: int
    signature: str


@dataclass(frozen=True)
class MsgConfirmBatch:
    """A validator's signature over a transaction batch."""

    orchestrator: str
    nonce: int
    signature: str
    eth_signer: str
    token_contract: str


@dataclass(frozen=True)
class MsgRequestBatch:
    """A request that a batch of withdrawals be built for a denomination."""

    denom: str
    sender: str


@dataclass(frozen=True)
class MsgSendToCosmosClaim:
    """A claim that a deposit happened on Ethereum."""

    event_nonce: int
    block_height: int
    token_contract: str
    amount: int
    ethereum_sender: str
    cosmos_receiver: str
    orchestrator: str


@dataclass(frozen=True)
class MsgBatchSendToEthClaim:
    """A claim that a batch was executed on Ethereum."""

    event_nonce: int
    batch_nonce: int
    block_height: int
    token_contract: str
    orchestrator: str


@dataclass(frozen=True)
class MsgValsetUpdatedClaim:
    """A claim that the validator set was updated on Ethereum."""

    event_nonce: int
    valset_nonce: int
    block_height: int
    reward_amount: int
    reward_token: str
    members: tuple[BridgeValidator, ...]
    orchestrator: str


@dataclass(frozen=True)
class MsgERC20DeployedClaim:
    """A claim that an ERC20 token was deployed on Ethereum."""

    event_nonce: int
    block_height: int
    orchestrator: str
    cosmos_denom: str
    token_contract: str
    name: str
    decimals: int
    symbol: str


Event = Union[
    SendToCosmosEvent, TransactionBatchExecutedEvent, ValsetUpdatedEvent, ERC20DeployedEvent
]


def split_msgs(msgs: Sequence[Any], limit: int) -> list[list[Any]]:
    """Split ``msgs`` into consecutive chunks of at most ``limit`` items."""
    if limit <= 0:
        raise ValueError(f"limit must be positive, got {limit}")
    return [list(msgs[start:start + limit]) for start in range(0, len(msgs), limit)]


class GravityBroadcastClient:
    """Builds Gravity messages and hands them to a Cosmos client for broadcast."""

    def __init__(
        self,
        logger: logging.Logger | None,
        query_client: Any,
        broadcast_client: BroadcastClient,
        eth_signer_fn: SignerFn | None,
        eth_personal_sign_fn: PersonalSignFn | None,
        msgs_per_tx: int,
        valset_encoder: Callable[[str, Valset], bytes],
        batch_encoder: Callable[[str, OutgoingTxBatch], bytes],
    ):
        base = logger if logger is not None else logging.getLogger(__name__)
        self.logger = base.getChild("gravity_broadcast_client")
        self.query_client = query_client
        self.broadcast_client = broadcast_client
        self.eth_signer_fn = eth_signer_fn
        self.eth_personal_sign_fn = eth_personal_sign_fn
        self.msgs_per_tx = msgs_per_tx
        self.valset_encoder = valset_encoder
        self.batch_encoder = batch_encoder

    def acc_from_address(self) -> str:
        """Return the Cosmos account that sends the messages."""
        return self.broadcast_client.from_address()

    def _personal_sign(self, eth_from: str, data: bytes) -> str:
        if self.eth_personal_sign_fn is None:
            raise BroadcastError("failed to sign validator address")
        try:
            signature = self.eth_personal_sign_fn(eth_from, data)
        except Exception as exc:
            raise BroadcastError("failed to sign validator address") from exc
        return bytes(signature).hex()

    def _queue(self, msg: Any) -> None:
        try:
            self.broadcast_client.queue_broadcast_msg(msg)
        except Exception as exc:
            raise BroadcastError(
                f"broadcasting {type(msg).__name__} failed: {exc}"
            ) from exc

    def send_valset_confirm(self, eth_from: str, gravity_id: str, valset: Valset) -> None:
        """Sign a validator set and queue the confirmation."""
        eth_address = hex_to_address(eth_from)
        confirm_hash = self.valset_encoder(gravity_id, valset)
        signature = self._personal_sign(eth_address, confirm_hash)
        self._queue(
            MsgValsetConfirm(
                orchestrator=self.acc_from_address(),
                eth_address=eth_address,
                nonce=valset.nonce,
                signature=signature,
            )
        )

    def send_batch_confirm(self, eth_from: str, gravity_id: str, batch: OutgoingTxBatch) -> None:
        """Sign a transaction batch and queue the confirmation."""
        eth_address = hex_to_address(eth_from)
        confirm_hash = self.batch_encoder(gravity_id, batch)
        signature = self._personal_sign(eth_address, confirm_hash)
        self._queue(
            MsgConfirmBatch(
                orchestrator=self.acc_from_address(),
                nonce=batch.batch_nonce,
                signature=signature,
                eth_signer=eth_address,
                token_contract=batch.token_contract,
            )
        )

    def send_request_batch(self, denom: str) -> None:
        """Queue a request for a withdrawal batch in ``denom``."""
        self._queue(MsgRequestBatch(denom=denom, sender=self.acc_from_address()))

    def send_ethereum_claims(
        self,
        last_claim_event: int,
        deposits: Iterable[SendToCosmosEvent],
        withdraws: Iterable[TransactionBatchExecutedEvent],
        valset_updates: Iterable[ValsetUpdatedEvent],
        erc20_deployed: Iterable[ERC20DeployedEvent],
        loop_duration: float,
    ) -> None:
        """Broadcast claims for every event newer than ``last_claim_event``, in nonce order."""
        events: list[Event] = [
            event
            for group in (deposits, withdraws, valset_updates, erc20_deployed)
            for event in group
            if event.event_nonce > last_claim_event
        ]
        self._broadcast_ethereum_events(events)

    def _claim_for(self, event: Event) -> Any:
        orchestrator = self.acc_from_address()
        if isinstance(event, SendToCosmosEvent):
            return MsgSendToCosmosClaim(
                event_nonce=event.event_nonce,
                block_height=event.block_number,
                token_contract=hex_to_address(event.token_contract),
                amount=event.amount,
                ethereum_sender=hex_to_address(event.sender),
                cosmos_receiver=event.destination,
                orchestrator=orchestrator,
            )
        if isinstance(event, TransactionBatchExecutedEvent):
            return MsgBatchSendToEthClaim(
                event_nonce=event.event_nonce,
                batch_nonce=event.batch_nonce,
                block_height=event.block_number,
                token_contract=hex_to_address(event.token),
                orchestrator=orchestrator,
            )
        if isinstance(event, ValsetUpdatedEvent):
            members = tuple(
                BridgeValidator(ethereum_address=hex_to_address(validator), power=power)
                for validator, power in zip(event.validators, event.powers, strict=True)
            )
            return MsgValsetUpdatedClaim(
                event_nonce=event.event_nonce,
                valset_nonce=event.new_valset_nonce,
                block_height=event.block_number,
                reward_amount=event.reward_amount,
                reward_token=hex_to_address(event.reward_token),
                members=members,
                orchestrator=orchestrator,
            )
        if isinstance(event, ERC20DeployedEvent):
            return MsgERC20DeployedClaim(
                event_nonce=event.event_nonce,
                block_height=event.block_number,
                orchestrator=orchestrator,
                cosmos_denom=event.cosmos_denom,
                token_contract=hex_to_address(event.token_contract),
                name=event.name,
                decimals=event.decimals,
                symbol=event.symbol,
            )
        raise TypeError(f"unsupported event type: {type(event).__name__}")

    def _broadcast_ethereum_events(self, events: list[Event]) -> None:
        ordered = sorted(events, key=lambda event: event.event_nonce)
        msgs = [self._claim_for(event) for event in ordered]
        counts = Counter(type(msg).__name__ for msg in msgs)

        self.logger.info(
            "oracle observed events; sending claims "
            "num_send_to_cosmos=%d num_transaction_batch_executed=%d "
            "num_valset_update=%d num_erc20_deploy=%d num_total_claims=%d",
            counts[MsgSendToCosmosClaim.__name__],
            counts[MsgBatchSendToEthClaim.__name__],
            counts[MsgValsetUpdatedClaim.__name__],
            counts[MsgERC20DeployedClaim.__name__],
            len(ordered),
        )

        for msg_set in split_msgs(msgs, self.msgs_per_tx):
            try:
                response = self.broadcast_client.sync_broadcast_msg(*msg_set)
            except Exception:
                self.logger.exception("broadcasting multiple claims failed")
                raise
            self.logger.info(
                "oracle sent set of claims successfully tx_hash=%s total_claims=%d claims_sent=%d",
                getattr(response, "tx_hash", ""),
                len(ordered),
                len(msg_set),
            )