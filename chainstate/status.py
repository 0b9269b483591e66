import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, List, Optional, Tuple, Union

from chainstate import metrics
from chainstate.cache import ResultCache, cache_key
from chainstate.rpc import RpcError, RpcGateway, hex_to_int

logger = logging.getLogger(__name__)

CHAIN_ID_TTL = 3000
SYNCING_TTL = 15
HEAD_BLOCK_TTL = 5
GAPS_TTL = 5

DEFAULT_GAPS_METHOD = "parity_chainStatus"
UNSUPPORTED_SYNCING = "method eth_syncing"


@dataclass(frozen=True)
class SyncDone:
    syncing: bool


@dataclass(frozen=True)
class SyncProgress:
    starting_block: int
    current_block: int
    highest_block: int

    @property
    def percent(self) -> int:
        if self.highest_block == 0:
            return 0
        return self.current_block * 100 // self.highest_block


SyncState = Union[SyncDone, SyncProgress]


def _quantity(value: Any) -> int:
    if isinstance(value, bool):
        raise TypeError(f"not a quantity: {value!r}")
    if isinstance(value, int):
        if value < 0:
            raise ValueError(f"negative quantity: {value!r}")
        return value
    return hex_to_int(value)


def decode_chain_id(value: Any) -> int:
    """net_version answers with a number or a numeric string."""
    if isinstance(value, bool):
        raise TypeError(f"not a chain id: {value!r}")
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        text = value.strip()
        if text.startswith("0x"):
            return int(text, 16)
        return int(text)
    raise TypeError(f"not a chain id: {value!r}")


def decode_sync_state(value: Any) -> SyncState:
    """
    eth_syncing is untagged: either a bare boolean or a progress object.
    The boolean shape is tried first.
    """
    if isinstance(value, bool):
        return SyncDone(value)
    if isinstance(value, dict):
        return SyncProgress(
            starting_block=_quantity(value["startingBlock"]),
            current_block=_quantity(value["currentBlock"]),
            highest_block=_quantity(value["highestBlock"]),
        )
    raise TypeError(f"neither a boolean nor a sync object: {value!r}")


def decode_gaps(value: Any) -> List[Tuple[int, int]]:
    """
    Decode a gap report into (low, high) pairs.

    Accepts the parity_chainStatus object ({"blockGap": [lo, hi] | null}) or a
    plain list of [lo, hi] pairs.
    """
    if isinstance(value, dict):
        value = value["blockGap"]
        if value is None:
            return []
        value = [value]
    if not isinstance(value, list):
        raise TypeError(f"not a gap report: {value!r}")
    gaps = []
    for pair in value:
        if not isinstance(pair, (list, tuple)) or len(pair) != 2:
            raise ValueError(f"not a range pair: {pair!r}")
        gaps.append((_quantity(pair[0]), _quantity(pair[1])))
    return gaps


def render_gaps(gaps: List[Tuple[int, int]]) -> str:
    if not gaps:
        return "none"
    return "..".join(f"{low}..{high}" for low, high in gaps)


class StatusLevel(Enum):
    OK = "ok"
    WARN = "warn"
    FAIL = "fail"


@dataclass(frozen=True)
class ChainStatus:
    level: StatusLevel
    message: str

    @classmethod
    def ok(cls, message: str) -> "ChainStatus":
        return cls(StatusLevel.OK, message)

    @classmethod
    def warn(cls, message: str) -> "ChainStatus":
        return cls(StatusLevel.WARN, message)

    @classmethod
    def fail(cls, message: str) -> "ChainStatus":
        return cls(StatusLevel.FAIL, message)

    @property
    def is_ok(self) -> bool:
        return self.level is StatusLevel.OK

    def _log_level(self) -> int:
        if self.level is StatusLevel.OK:
            return logging.INFO
        if self.level is StatusLevel.WARN:
            return logging.WARNING
        return logging.ERROR

    def log(self):
        logger.log(self._log_level(), self.message)

    def log_with_address(self, address: str):
        logger.log(self._log_level(), f"{address} {self.message}")


class ChainStatusEvaluator:
    """
    Classifies one endpoint as ok / warn / fail.

    Stages run in order and stop at the first hard failure:
    net_version, eth_syncing, eth_blockNumber, then the gap report.
    Each stage is memoized separately with its own TTL.
    """

    def __init__(
        self,
        gateway: RpcGateway,
        cache: ResultCache,
        gaps_method: str = DEFAULT_GAPS_METHOD,
    ):
        self.gateway = gateway
        self.cache = cache
        self.gaps_method = gaps_method

    def chain_id(self, endpoint: str) -> int:
        return self.cache.memoize(
            cache_key("net_version", endpoint),
            CHAIN_ID_TTL,
            lambda: self.gateway.send(endpoint, "net_version", decode=decode_chain_id),
        )

    def syncing(self, endpoint: str) -> SyncState:
        return self.cache.memoize(
            cache_key("eth_syncing", endpoint),
            SYNCING_TTL,
            lambda: self.gateway.send(endpoint, "eth_syncing", decode=decode_sync_state),
        )

    def head_block(self, endpoint: str) -> int:
        return self.cache.memoize(
            cache_key("eth_blockNumber", endpoint),
            HEAD_BLOCK_TTL,
            lambda: self.gateway.send(endpoint, "eth_blockNumber", decode=hex_to_int),
        )

    def gaps(self, endpoint: str) -> List[Tuple[int, int]]:
        return self.cache.memoize(
            cache_key(self.gaps_method, endpoint),
            GAPS_TTL,
            lambda: self.gateway.send(endpoint, self.gaps_method, decode=decode_gaps),
        )

    def evaluate(self, endpoint: str) -> ChainStatus:
        status = self._evaluate(endpoint)
        metrics.NODE_STATUS_GAUGE.labels(node=endpoint).set(
            metrics.STATUS_CODES[status.level.value]
        )
        return status

    def _evaluate(self, endpoint: str) -> ChainStatus:
        try:
            chain_id = self.chain_id(endpoint)
        except RpcError as e:
            return ChainStatus.fail(f"chain id: {e}")
        metrics.CHAIN_ID_GAUGE.labels(node=endpoint).set(chain_id)

        sync_state: Optional[SyncState]
        try:
            sync_state = self.syncing(endpoint)
        except RpcError as e:
            if UNSUPPORTED_SYNCING not in str(e):
                return ChainStatus.fail(f"chain {chain_id}, syncing: {e}")
            # rollup nodes don't implement eth_syncing
            logger.debug(f"{endpoint} has no eth_syncing, assuming synced")
            sync_state = None
        if isinstance(sync_state, SyncProgress):
            return ChainStatus.warn(
                f"chain {chain_id}, {sync_state.percent}% "
                f"{sync_state.current_block} out of {sync_state.highest_block}"
            )

        try:
            head = self.head_block(endpoint)
        except RpcError as e:
            return ChainStatus.fail(f"chain {chain_id}, block number: {e}")
        metrics.HEAD_BLOCK_GAUGE.labels(node=endpoint).set(head)

        try:
            gaps = self.gaps(endpoint)
        except RpcError as e:
            logger.debug(f"{endpoint} gap report unavailable: {e}")
            if head == 0:
                return ChainStatus.warn(f"chain {chain_id}, zero head block")
            return ChainStatus.ok(f"chain {chain_id}, block {head}")
        return ChainStatus.ok(f"chain {chain_id}, block {head}, gaps {render_gaps(gaps)}")
