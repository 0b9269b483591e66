import time
import logging
import requests
import threading
from typing import Any, Callable, List, Optional, Tuple

from chainstate import metrics

logger = logging.getLogger(__name__)

READ_TIMEOUT = 25


class RpcError(Exception):
    """Base class for everything that can go wrong talking to a node."""


class TransportError(RpcError):
    """Connection refused, timeout, or a non-JSON HTTP failure."""


class RemoteError(RpcError):
    def __init__(self, code: int, message: str):
        super().__init__(f"RPC error {code}: {message}")
        self.code = code
        self.message = message


class DecodeError(RpcError):
    def __init__(self, raw: Any, cause: Exception):
        super().__init__(f"unexpected response {raw!r}: {cause}")
        self.raw = raw
        self.cause = cause


class NotReady(RpcError):
    """Node answered, but has no usable head yet."""


def hex_to_int(value: Any) -> int:
    """Decode a JSON-RPC hex quantity ("0x1a") into an unsigned integer."""
    if not isinstance(value, str) or not value.startswith("0x"):
        raise ValueError(f"not a hex quantity: {value!r}")
    return int(value, 16)


def build_request(method: str, params: Optional[list], request_id: int) -> dict:
    return {
        "jsonrpc": "2.0",
        "method": method,
        "params": params if params is not None else [],
        "id": request_id,
    }


def decode_envelope(envelope: Any, decode: Optional[Callable[[Any], Any]] = None):
    """
    Unwrap a single JSON-RPC response.

    Exactly one of "result" or "error" is accepted; the error shape raises
    RemoteError, anything else that is not a result envelope raises DecodeError.
    """
    if not isinstance(envelope, dict):
        raise DecodeError(envelope, ValueError("response is not an object"))
    has_error = envelope.get("error") is not None
    has_result = "result" in envelope
    if has_error and has_result:
        raise DecodeError(envelope, ValueError("both result and error present"))
    if has_error:
        error = envelope["error"]
        if not isinstance(error, dict):
            raise DecodeError(envelope, ValueError("malformed error object"))
        raise RemoteError(error.get("code", 0), str(error.get("message", "")))
    if not has_result:
        raise DecodeError(envelope, ValueError("missing result"))
    result = envelope["result"]
    if decode is None:
        return result
    try:
        return decode(result)
    except (ValueError, TypeError, KeyError) as e:
        raise DecodeError(result, e)


class RpcGateway:
    """
    Sends JSON-RPC 2.0 requests over HTTP POST.

    One request per call, no retry. Every call blocks for at most READ_TIMEOUT
    seconds waiting for the node.
    """

    def __init__(self, session: Optional[requests.Session] = None, timeout=READ_TIMEOUT):
        self.session = session
        self.timeout = timeout
        self._local = threading.local()

    def _session(self) -> requests.Session:
        """The injected session, or one session per calling thread."""
        if self.session is not None:
            return self.session
        session = getattr(self._local, "session", None)
        if session is None:
            session = requests.Session()
            self._local.session = session
        return session

    def _post(self, endpoint: str, payload: Any, label: str) -> Any:
        start_time = time.time()
        try:
            resp = self._session().post(
                endpoint,
                json=payload,
                headers={"Content-Type": "application/json"},
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            metrics.RPC_FAILURES_COUNTER.labels(node=endpoint, kind="transport").inc()
            raise TransportError(f"{endpoint}: {e}") from e
        finally:
            metrics.RPC_RESPONSE_TIME_GAUGE.labels(node=endpoint, method=label).set(
                time.time() - start_time
            )

        try:
            body = resp.json()
        except ValueError as e:
            if resp.status_code >= 400:
                metrics.RPC_FAILURES_COUNTER.labels(node=endpoint, kind="transport").inc()
                raise TransportError(f"{endpoint}: HTTP {resp.status_code}") from e
            metrics.RPC_FAILURES_COUNTER.labels(node=endpoint, kind="decode").inc()
            raise DecodeError(resp.text, e)

        if logger.isEnabledFor(logging.DEBUG):
            logger.debug({"event": "node_response", "url": endpoint, "response": body})
        return body

    def send(
        self,
        endpoint: str,
        method: str,
        params: Optional[list] = None,
        request_id: int = 1,
        decode: Optional[Callable[[Any], Any]] = None,
    ) -> Any:
        """
        Call one method and return its (optionally decoded) result.

        Raises:
            TransportError: the node could not be reached
            RemoteError: the node answered with an error envelope
            DecodeError: the answer did not have the expected shape
        """
        body = self._post(endpoint, build_request(method, params, request_id), method)
        try:
            return decode_envelope(body, decode)
        except RemoteError:
            metrics.RPC_FAILURES_COUNTER.labels(node=endpoint, kind="remote").inc()
            raise
        except DecodeError:
            metrics.RPC_FAILURES_COUNTER.labels(node=endpoint, kind="decode").inc()
            raise

    def send_batch(
        self, endpoint: str, calls: List[Tuple[str, Optional[list], int]]
    ) -> List[Any]:
        """
        Call several methods in one POST.

        Results are returned in the order of `calls`, matched by id. The first
        error envelope in the batch raises RemoteError.
        """
        payload = [build_request(method, params, rid) for method, params, rid in calls]
        label = ",".join(method for method, _, _ in calls)
        body = self._post(endpoint, payload, label)

        if isinstance(body, dict):
            # some nodes reject a whole batch with a single envelope
            decode_envelope(body)
            raise DecodeError(body, ValueError("expected a batch response"))
        if not isinstance(body, list):
            raise DecodeError(body, ValueError("expected a batch response"))

        by_id = {}
        for item in body:
            if isinstance(item, dict) and "id" in item:
                by_id[item["id"]] = item

        results = []
        for method, _, rid in calls:
            if rid not in by_id:
                metrics.RPC_FAILURES_COUNTER.labels(node=endpoint, kind="decode").inc()
                raise DecodeError(body, KeyError(f"no response for id {rid} ({method})"))
            try:
                results.append(decode_envelope(by_id[rid]))
            except RemoteError:
                metrics.RPC_FAILURES_COUNTER.labels(node=endpoint, kind="remote").inc()
                raise
        return results
