import logging
import threading
from typing import Callable, List, NamedTuple, Optional

from chainstate.network import Network
from chainstate.status import ChainStatus, ChainStatusEvaluator

logger = logging.getLogger(__name__)


class CheckResult(NamedTuple):
    endpoint: str
    status: ChainStatus


class FanoutScheduler:
    """
    Runs one thread per network and waits for all of them.

    Nothing is cancelled once started; a slow node only holds up the final
    join, bounded by the RPC read timeout of each of its calls.
    """

    def __init__(self, evaluator: ChainStatusEvaluator):
        self.evaluator = evaluator

    def _check(self, endpoint: str) -> ChainStatus:
        try:
            return self.evaluator.evaluate(endpoint)
        except Exception as e:
            logger.exception(f"Unexpected error checking {endpoint}")
            return ChainStatus.fail(f"internal error: {e}")

    def run(
        self,
        networks: List[Network],
        on_result: Optional[Callable[[str, ChainStatus], None]] = None,
    ) -> List[CheckResult]:
        """
        Evaluate every network concurrently and block until all are done.

        on_result is called from the worker thread as soon as its network is
        evaluated. The returned list is in the order of `networks`.
        """
        # each worker writes only its own slot
        results: List[Optional[CheckResult]] = [None] * len(networks)

        def unit(index: int, endpoint: str):
            status = self._check(endpoint)
            results[index] = CheckResult(endpoint, status)
            if on_result is not None:
                try:
                    on_result(endpoint, status)
                except Exception:
                    logger.exception(f"Failed to record result for {endpoint}")

        threads = []
        for index, network in enumerate(networks):
            thread = threading.Thread(
                target=unit,
                args=(index, network.endpoint),
                name=f"check-{network.endpoint}",
                daemon=True,
            )
            thread.start()
            threads.append(thread)

        for thread in threads:
            thread.join()
        return [result for result in results if result is not None]

    def log_all(self, networks: List[Network]) -> List[CheckResult]:
        """Log one status line per network, prefixed by its address."""
        return self.run(
            networks, lambda endpoint, status: status.log_with_address(endpoint)
        )

    def healthy_endpoints(self, networks: List[Network]) -> List[str]:
        """Addresses of networks evaluating to ok, in completion order."""
        matches: List[str] = []
        lock = threading.Lock()

        def on_result(endpoint: str, status: ChainStatus):
            if status.is_ok:
                with lock:
                    matches.append(endpoint)

        self.run(networks, on_result)
        return matches
