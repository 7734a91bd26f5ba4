from types import SimpleNamespace

import pytest

from peggo.broadcast import (
    BridgeValidator,
    BroadcastError,
    ERC20DeployedEvent,
    GravityBroadcastClient,
    MsgBatchSendToEthClaim,
    MsgConfirmBatch,
    MsgERC20DeployedClaim,
    MsgRequestBatch,
    MsgSendToCosmosClaim,
    MsgValsetConfirm,
    MsgValsetUpdatedClaim,
    OutgoingTxBatch,
    SendToCosmosEvent,
    TransactionBatchExecutedEvent,
    Valset,
    ValsetUpdatedEvent,
    split_msgs,
)

ZERO = "0x0000000000000000000000000000000000000000"


class FakeCosmos:
    def __init__(self, queue_error=None, sync_error=None, address=""):
        self.queue_error = queue_error
        self.sync_error = sync_error
        self.address = address
        self.queued = []
        self.synced = []

    def from_address(self):
        return self.address

    def queue_broadcast_msg(self, *msgs):
        if self.queue_error is not None:
            raise self.queue_error
        self.queued.extend(msgs)

    def sync_broadcast_msg(self, *msgs):
        if self.sync_error is not None:
            raise self.sync_error
        self.synced.append(list(msgs))
        return SimpleNamespace(tx_hash="ABCD")


def ok_sign(account, data):
    return b""


def failing_sign(account, data):
    raise RuntimeError("some error during signing")


def make_client(cosmos, sign_fn=ok_sign, msgs_per_tx=10, calls=None):
    def valset_encoder(gravity_id, valset):
        if calls is not None:
            calls.append(("valset", gravity_id, valset.nonce))
        return b"\xaa" * 32

    def batch_encoder(gravity_id, batch):
        if calls is not None:
            calls.append(("batch", gravity_id, batch.batch_nonce))
        return b"\xbb" * 32

    return GravityBroadcastClient(
        None, None, cosmos, None, sign_fn, msgs_per_tx, valset_encoder, batch_encoder
    )


def test_send_valset_confirm_success():
    cosmos = FakeCosmos()
    calls = []
    client = make_client(cosmos, calls=calls)
    client.send_valset_confirm(ZERO, "", Valset(reward_amount=0))
    assert cosmos.queued == [MsgValsetConfirm(orchestrator="", eth_address=ZERO, nonce=0, signature="")]
    assert calls == [("valset", "", 0)]


def test_send_valset_confirm_signs_encoded_hash():
    seen = []

    def sign(account, data):
        seen.append((account, data))
        return b"\x01\x02"

    cosmos = FakeCosmos(address="umee1orch")
    client = make_client(cosmos, sign_fn=sign)
    client.send_valset_confirm(ZERO, "gid", Valset(nonce=7))
    assert seen == [(ZERO, b"\xaa" * 32)]
    assert cosmos.queued[0].signature == "0102"
    assert cosmos.queued[0].nonce == 7
    assert cosmos.queued[0].orchestrator == "umee1orch"


def test_send_valset_confirm_sign_failure():
    cosmos = FakeCosmos()
    client = make_client(cosmos, sign_fn=failing_sign)
    with pytest.raises(BroadcastError) as info:
        client.send_valset_confirm(ZERO, "", Valset())
    assert str(info.value) == "failed to sign validator address"
    assert cosmos.queued == []


def test_send_valset_confirm_broadcast_error():
    cosmos = FakeCosmos(queue_error=RuntimeError("some error during broadcast"))
    client = make_client(cosmos)
    with pytest.raises(BroadcastError) as info:
        client.send_valset_confirm(ZERO, "", Valset())
    assert str(info.value) == "broadcasting MsgValsetConfirm failed: some error during broadcast"


def test_send_batch_confirm_success():
    cosmos = FakeCosmos()
    calls = []
    client = make_client(cosmos, calls=calls)
    client.send_batch_confirm(ZERO, "", OutgoingTxBatch())
    assert cosmos.queued == [
        MsgConfirmBatch(orchestrator="", nonce=0, signature="", eth_signer=ZERO, token_contract="")
    ]
    assert calls == [("batch", "", 0)]


def test_send_batch_confirm_sign_failure():
    client = make_client(FakeCosmos(), sign_fn=failing_sign)
    with pytest.raises(BroadcastError) as info:
        client.send_batch_confirm(ZERO, "", OutgoingTxBatch())
    assert str(info.value) == "failed to sign validator address"


def test_send_batch_confirm_broadcast_error():
    cosmos = FakeCosmos(queue_error=RuntimeError("some error during broadcast"))
    client = make_client(cosmos)
    with pytest.raises(BroadcastError) as info:
        client.send_batch_confirm(ZERO, "", OutgoingTxBatch())
    assert str(info.value) == "broadcasting MsgConfirmBatch failed: some error during broadcast"


def _events(last_valset_nonce, erc20_nonce):
    deposits = [
        SendToCosmosEvent(event_nonce=2, amount=123),
        SendToCosmosEvent(event_nonce=6, amount=456),
    ]
    withdraws = [
        TransactionBatchExecutedEvent(event_nonce=1, batch_nonce=0),
        TransactionBatchExecutedEvent(event_nonce=3, batch_nonce=0),
    ]
    valsets = [
        ValsetUpdatedEvent(event_nonce=4),
        ValsetUpdatedEvent(event_nonce=5),
        ValsetUpdatedEvent(event_nonce=last_valset_nonce),
    ]
    erc20 = [ERC20DeployedEvent(event_nonce=erc20_nonce)]
    return deposits, withdraws, valsets, erc20


def test_send_ethereum_claims_sorted_in_one_tx():
    cosmos = FakeCosmos()
    client = make_client(cosmos)
    client.send_ethereum_claims(0, *_events(7, 8), 0.000001)
    assert len(cosmos.synced) == 1
    msgs = cosmos.synced[0]
    assert [m.event_nonce for m in msgs] == [1, 2, 3, 4, 5, 6, 7, 8]
    assert [type(m) for m in msgs] == [
        MsgBatchSendToEthClaim,
        MsgSendToCosmosClaim,
        MsgBatchSendToEthClaim,
        MsgValsetUpdatedClaim,
        MsgValsetUpdatedClaim,
        MsgSendToCosmosClaim,
        MsgValsetUpdatedClaim,
        MsgERC20DeployedClaim,
    ]
    assert msgs[1].amount == 123
    assert msgs[5].amount == 456


def test_send_ethereum_claims_non_sequential_nonces():
    cosmos = FakeCosmos()
    client = make_client(cosmos)
    client.send_ethereum_claims(0, *_events(9, 7), 0.000001)
    assert len(cosmos.synced) == 1
    nonces = [m.event_nonce for m in cosmos.synced[0]]
    assert nonces == [1, 2, 3, 4, 5, 6, 7, 9]


def test_send_ethereum_claims_filters_old_events():
    cosmos = FakeCosmos()
    client = make_client(cosmos)
    client.send_ethereum_claims(4, *_events(7, 8), 0.0)
    assert [m.event_nonce for m in cosmos.synced[0]] == [5, 6, 7, 8]


def test_send_ethereum_claims_split_into_batches():
    cosmos = FakeCosmos()
    client = make_client(cosmos, msgs_per_tx=3)
    client.send_ethereum_claims(0, *_events(7, 8), 0.0)
    assert [[m.event_nonce for m in chunk] for chunk in cosmos.synced] == [
        [1, 2, 3],
        [4, 5, 6],
        [7, 8],
    ]


def test_send_ethereum_claims_no_events_sends_nothing():
    cosmos = FakeCosmos()
    client = make_client(cosmos)
    client.send_ethereum_claims(10, *_events(7, 8), 0.0)
    assert cosmos.synced == []


def test_send_ethereum_claims_propagates_error():
    cosmos = FakeCosmos(sync_error=RuntimeError("boom"))
    client = make_client(cosmos)
    with pytest.raises(RuntimeError, match="boom"):
        client.send_ethereum_claims(0, *_events(7, 8), 0.0)


def test_valset_update_claim_members():
    cosmos = FakeCosmos(address="umee1orch")
    client = make_client(cosmos)
    event = ValsetUpdatedEvent(
        event_nonce=1,
        new_valset_nonce=3,
        reward_amount=10,
        validators=["0xc0a4df35568f116c370e6a6a6022ceb908eeddac"],
        powers=[42],
        block_number=99,
    )
    client.send_ethereum_claims(0, [], [], [event], [], 0.0)
    msg = cosmos.synced[0][0]
    assert msg.members == (
        BridgeValidator(ethereum_address="0xc0a4Df35568F116C370E6a6A6022Ceb908eedDaC", power=42),
    )
    assert msg.valset_nonce == 3
    assert msg.block_height == 99
    assert msg.reward_token == ZERO
    assert msg.orchestrator == "umee1orch"


def test_send_request_batch_success():
    cosmos = FakeCosmos()
    client = make_client(cosmos)
    client.send_request_batch("uumee")
    assert cosmos.queued == [MsgRequestBatch(denom="uumee", sender="")]


def test_send_request_batch_broadcast_error():
    cosmos = FakeCosmos(queue_error=RuntimeError("some error during broadcast"))
    client = make_client(cosmos)
    with pytest.raises(BroadcastError) as info:
        client.send_request_batch("uumee")
    assert str(info.value) == "broadcasting MsgRequestBatch failed: some error during broadcast"


@pytest.mark.parametrize(
    "items, limit, expected",
    [
        ([1, 2, 3, 4, 5], 2, [[1, 2], [3, 4], [5]]),
        ([1, 2, 3, 4], 2, [[1, 2], [3, 4]]),
        ([1], 10, [[1]]),
        ([], 3, []),
    ],
)
def test_split_msgs(items, limit, expected):
    assert split_msgs(items, limit) == expected


def test_split_msgs_rejects_non_positive_limit():
    with pytest.raises(ValueError):
        split_msgs([1, 2], 0)