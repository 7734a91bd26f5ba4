# peggo

`peggo` holds the building blocks of a Gravity Bridge validator's
orchestrator:

- `peggo.cosmos_client`: a Cosmos client that keeps an account's sequence in
  step, retries on sequence mismatches and batches queued messages in the
  background.
- `peggo.broadcast`: builds Gravity confirmation and claim messages and hands
  them to that client.
- `peggo.coingecko`: looks up ERC20 token symbols.
- `peggo.address`: parses Ethereum addresses and formats their EIP-55
  checksums.
- `peggo.netaddr`: splits and dials `proto://address` strings.
- `peggo.orchestrator_cmd`: the orchestrator's options and helpers.
- `peggo.cli`: a small command line.

## Installation

```console
pip install .
```

To run the test suite as well:

```console
pip install ".[test]"
pytest
```

## Command line

Installing the package provides the `peggo` command.

```console
peggo --help
peggo version
peggo version --format json
```

`peggo version` prints the version, commit, SDK version and Python runtime.
The default output is YAML, and `--format json` prints compact JSON instead.
`peggo query` (alias `q`) and `peggo tx` only print their help.

The root command and every subcommand accept `--log-level` (default `info`),
`--log-format` (`text` or `json`) and `--svc-wait-timeout` (default `1m`).

## Library use

### Addresses

```python
from peggo.address import is_hex_address, hex_to_address

is_hex_address("0xc0a4df35568f116c370e6a6a6022ceb908eeddac")   # True
hex_to_address("0xc0a4df35568f116c370e6a6a6022ceb908eeddac")
# "0xc0a4Df35568F116C370E6a6A6022Ceb908eedDaC"
```

`hex_to_address` is lenient. It stops decoding at the first invalid
character, keeps the last 20 bytes of longer input and left-pads shorter input
with zeros. `checksum_address` formats 20 raw bytes and raises `ValueError`
for any other length.

### Network addresses

```python
from peggo.netaddr import protocol_and_address, connect

protocol_and_address("unix:///tmp/test.sock")   # ("unix", "/tmp/test.sock")
protocol_and_address("127.0.0.1:8080")          # ("tcp", "127.0.0.1:8080")
```

`connect` opens a socket for `unix`, `tcp`, `tcp4`, `tcp6`, `udp`, `udp4` or
`udp6` addresses. It raises `ValueError` for any other protocol or for a
malformed address.

### Token symbols

```python
import logging
from peggo.coingecko import CoinGecko, Config

gecko = CoinGecko(logging.getLogger("peggo"), Config())
gecko.get_token_symbol("0xc0a4Df35568F116C370E6a6A6022Ceb908eedDaC")  # "UMEE"
```

Tokens already deployed on the bridge resolve from a built-in table. Any
other token is fetched once from `<base_url>/coins/ethereum/contract/<address>`,
upper-cased and cached. An empty `Config.base_url` falls back to the public
CoinGecko API. A failed lookup raises `CoinGeckoError`.

### Broadcasting

`CosmosClient(tx_sender, account_retriever, from_address=None, logger=None,
gas_prices="")` needs two things from you:

- `tx_sender` provides `broadcast_tx_sync(factory, msgs)` and
  `query_tx(tx_hash)`, both returning `TxResponse`.
- `account_retriever(address)` returns `(account_number, sequence)`.

Without a `from_address` the client is read-only, and
`queue_broadcast_msg` raises `ReadOnlyError`. Once the client is closed,
queuing raises `QueueClosedError`. A queue that stays full raises
`EnqueueTimeoutError`. A sync broadcast that is not included in time raises
`TxTimedOutError`.

`sync_broadcast_msg` waits for block inclusion and `async_broadcast_msg`
returns at once. `close()` flushes the queue. Gas prices are checked with
`parse_dec_coins`.

`GravityBroadcastClient` signs validator sets and batches through the
`valset_encoder`, `batch_encoder` and personal-sign functions you pass in. It
then queues `MsgValsetConfirm`, `MsgConfirmBatch` and `MsgRequestBatch`
messages. A failed signature or queue raises `BroadcastError`.

`send_ethereum_claims` keeps only events newer than the last claimed nonce and
sorts them by event nonce. It then sends them with `sync_broadcast_msg` in
chunks of at most `msgs_per_tx`:

```python
from peggo.broadcast import split_msgs

split_msgs(["a", "b", "c"], 2)   # [["a", "b"], ["c"]]
```

### Orchestrator options

```python
from peggo.orchestrator_cmd import validate_relay_valsets_mode, loop_duration

validate_relay_valsets_mode("minimum")   # ValsetRelayMode.MINIMUM
loop_duration(12000, 3.0)                # timedelta(seconds=36)
```

- `validate_relay_valsets_mode` raises `ValueError` for an unknown mode.
- `add_orchestrator_arguments(parser)` adds the orchestrator's gravity
  address argument and its options to an `argparse` parser.
- `log_level_to_severity` maps log levels to Google Cloud `Severity` values.
- `strings_to_provider_names` checks oracle provider names.
- `trap_signal(cancel)` calls `cancel` on the first SIGINT or SIGTERM and
  returns a function that restores the previous handlers.

### Configuration

`peggo.cli.parse_server_config(flags, environ)` merges flag values with
`PEGGO_`-prefixed environment variables. `PEGGO_LOG_LEVEL` becomes
`log-level`. A flag marked as changed wins over the environment, and the
environment wins over flag defaults. `get_logger(level, log_format)`
configures the `peggo` logger for text or JSON output.

## What this package does not do

The package does not contact a Cosmos chain, an Ethereum node or a keyring on
its own. Transactions are built, signed and sent by the `tx_sender` you
supply, and confirmation hashes come from the encoders you pass to
`GravityBroadcastClient`.

There is no `peggo orchestrator` command that runs the orchestration loop,
and there are no commands to deploy contracts or send tokens. The `peggo`
command offers only `version`, `query` and `tx`, as described above.