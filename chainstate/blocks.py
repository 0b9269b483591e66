import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from chainstate.cache import ResultCache, cache_key
from chainstate.rpc import DecodeError, NotReady, RpcError, RpcGateway, hex_to_int

logger = logging.getLogger(__name__)

BLOCK_TTL = 30
RECENT_BLOCKS_TTL = 10

DEFAULT_RECEIPTS_METHOD = "eth_getBlockReceipts"

# keccak256("Transfer(address,address,uint256)")
TRANSFER_SIGNATURE = 0xDDF252AD1BE2C89B69C2B068FC378DAA952BA7F163C4A11628F55A4DF523B3EF

TRANSFER = "Transfer"
PUBLISH = "Publish"


@dataclass
class Tx:
    hash: str
    gas_used: int
    effective_gas_price: Optional[int] = None
    status: Optional[int] = None
    classification: Optional[str] = None
    contract_address: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "hash": self.hash,
            "gasUsed": self.gas_used,
            "effectiveGasPrice": self.effective_gas_price,
            "status": self.status,
        }
        if self.classification is not None:
            data["classification"] = self.classification
        if self.contract_address is not None:
            data["contractAddress"] = self.contract_address
        return data


@dataclass
class Block:
    number: int
    hash: str
    miner: str
    gas_used: int
    gas_limit: int
    transactions: List[Tx] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "number": self.number,
            "hash": self.hash,
            "miner": self.miner,
            "gasUsed": self.gas_used,
            "gasLimit": self.gas_limit,
            "transactions": [tx.to_dict() for tx in self.transactions],
        }


def _optional_quantity(value: Any) -> Optional[int]:
    if value is None:
        return None
    return hex_to_int(value)


def _log_data(log: Dict[str, Any]) -> bytes:
    data = log.get("data") or "0x"
    if data.startswith("0x"):
        data = data[2:]
    return bytes.fromhex(data)


def classify(receipt: Dict[str, Any]) -> Optional[str]:
    """
    Best-effort label for a transaction, from its receipt alone.

    Contract creations are "Publish". Otherwise, when there is more than one
    log and the first log carries more than 32 bytes of data, the leading 32
    bytes are compared with the Transfer event signature.

    Note the signature is looked up in log data, not in topics.
    """
    if receipt.get("contractAddress") is not None:
        return PUBLISH
    logs = receipt.get("logs") or []
    if len(logs) > 1:
        data = _log_data(logs[0])
        if len(data) > 32 and int.from_bytes(data[:32], "big") == TRANSFER_SIGNATURE:
            return TRANSFER
    return None


def decode_tx(receipt: Dict[str, Any]) -> Tx:
    return Tx(
        hash=receipt["transactionHash"],
        gas_used=hex_to_int(receipt["gasUsed"]),
        effective_gas_price=_optional_quantity(receipt.get("effectiveGasPrice")),
        status=_optional_quantity(receipt.get("status")),
        classification=classify(receipt),
        contract_address=receipt.get("contractAddress"),
    )


def decode_block(raw: Any, receipts: Any) -> Block:
    if not isinstance(raw, dict):
        raise TypeError(f"block not found: {raw!r}")
    if not isinstance(receipts, list):
        raise TypeError(f"receipts not found: {receipts!r}")
    return Block(
        number=hex_to_int(raw["number"]),
        hash=raw["hash"],
        miner=raw["miner"],
        gas_used=hex_to_int(raw["gasUsed"]),
        gas_limit=hex_to_int(raw["gasLimit"]),
        transactions=[decode_tx(receipt) for receipt in receipts],
    )


class BlockFetcher:
    """Loads blocks with their receipts, and windows of the latest blocks."""

    def __init__(
        self,
        gateway: RpcGateway,
        cache: ResultCache,
        receipts_method: str = DEFAULT_RECEIPTS_METHOD,
    ):
        self.gateway = gateway
        self.cache = cache
        self.receipts_method = receipts_method

    def _load_block(self, endpoint: str, number: int) -> Block:
        block_param = hex(number)
        raw, receipts = self.gateway.send_batch(
            endpoint,
            [
                ("eth_getBlockByNumber", [block_param, False], 1),
                (self.receipts_method, [block_param], 2),
            ],
        )
        try:
            return decode_block(raw, receipts)
        except (ValueError, TypeError, KeyError, AttributeError) as e:
            raise DecodeError(raw, e)

    def fetch_block(self, endpoint: str, number: int) -> Optional[Block]:
        """Return the block with classified transactions, or None on any failure."""
        try:
            return self.cache.memoize(
                cache_key("block", endpoint, number),
                BLOCK_TTL,
                lambda: self._load_block(endpoint, number),
            )
        except RpcError as e:
            logger.warning(f"Failed to fetch block {number} from {endpoint}: {e}")
            return None

    def _load_recent(self, endpoint: str, count: int) -> List[Block]:
        head = self.gateway.send(endpoint, "eth_blockNumber", decode=hex_to_int)
        if head == 0:
            raise NotReady(f"{endpoint} reports zero head block")
        blocks = []
        for offset in range(max(count - 1, 0)):
            number = head - offset
            if number < 0:
                break
            block = self.fetch_block(endpoint, number)
            if block is not None:
                blocks.append(block)
        return blocks

    def fetch_recent_blocks(self, endpoint: str, count: int) -> Optional[List[Block]]:
        """
        Return the count-1 latest blocks, newest first.

        Blocks that fail to load are left out. None when the head can't be
        resolved or is still zero.
        """
        try:
            return self.cache.memoize(
                cache_key("recent_blocks", endpoint, count),
                RECENT_BLOCKS_TTL,
                lambda: self._load_recent(endpoint, count),
            )
        except NotReady as e:
            logger.info(f"Node not ready: {e}")
            return None
        except RpcError as e:
            logger.warning(f"Failed to fetch recent blocks from {endpoint}: {e}")
            return None
