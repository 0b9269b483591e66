import sys
import time
import logging
import argparse
from prometheus_client import start_http_server

from chainstate.blocks import BlockFetcher
from chainstate.cache import ResultCache
from chainstate.config import parse_addr, resolve_config
from chainstate.logs import setup_logging
from chainstate.network import filter_networks, parse_networks, tags_from_args
from chainstate.rpc import RpcGateway
from chainstate.scheduler import FanoutScheduler
from chainstate.server import ChainstateService, run_server
from chainstate.status import ChainStatusEvaluator

logger = logging.getLogger("chainstate")


class Core:
    """One cache and one gateway per process, shared by every component."""

    def __init__(self, config):
        self.config = config
        self.cache = ResultCache()
        self.gateway = RpcGateway()
        self.evaluator = ChainStatusEvaluator(
            self.gateway, self.cache, gaps_method=config["gaps_method"]
        )
        self.fetcher = BlockFetcher(
            self.gateway, self.cache, receipts_method=config["receipts_method"]
        )
        self.scheduler = FanoutScheduler(self.evaluator)


def read_networks(path, tag):
    with open(path, "r") as f:
        networks = parse_networks(f.read().splitlines())
    return filter_networks(networks, tags_from_args(tag))


def build_parser():
    parser = argparse.ArgumentParser(
        prog="chainstate", description="EVM node chainstate checker and API server"
    )
    parser.add_argument("--config", help="YAML config file")
    parser.add_argument("--eth1", help="RPC endpoint served by the API")
    parser.add_argument("-a", "--addr", help="API listen address, host:port")
    parser.add_argument("--static-dir", dest="static_dir")
    parser.add_argument("--metrics-port", dest="metrics_port", type=int)
    parser.add_argument("--log-format", dest="log_format", choices=["text", "json"])
    parser.add_argument("--log-level", dest="log_level")
    parser.add_argument("--tag", default="", help="comma-separated tag query")
    mode = parser.add_mutually_exclusive_group()
    mode.add_argument(
        "--network",
        nargs="?",
        const="",
        default=None,
        help="check a single endpoint (eth1 when no URL is given)",
    )
    mode.add_argument("--networks-file", dest="networks_file", default="")
    mode.add_argument("--server", action="store_true", help="serve the chainstate API")
    parser.add_argument(
        "--endpoints",
        action="store_true",
        help="with --networks-file, print the healthy endpoints only",
    )
    return parser


def serve(core, config):
    service = ChainstateService(core.fetcher, config["eth1"], config["recent_blocks"])
    host, port = parse_addr(config["addr"])
    server = run_server(service, host, port, config["static_dir"])
    logger.info(f"Chainstate API running on {host}:{port}/api/chainstate")
    if config["metrics_port"]:
        start_http_server(config["metrics_port"])
        logger.info(f"Metrics running on :{config['metrics_port']}/metrics")
    try:
        # Keep main thread alive
        while True:
            time.sleep(60)
    except KeyboardInterrupt:
        logger.info("Shutting down...")
        server.shutdown()


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)
    if args.endpoints and not args.networks_file:
        parser.error("--endpoints requires --networks-file")

    config = resolve_config(
        args.config,
        overrides={
            "eth1": args.eth1,
            "addr": args.addr,
            "static_dir": args.static_dir,
            "metrics_port": args.metrics_port,
            "log_format": args.log_format,
            "log_level": args.log_level,
        },
    )
    setup_logging(config["log_format"], config["log_level"])
    logger.debug(f"Loaded config: {config}")
    core = Core(config)

    if args.networks_file:
        networks = read_networks(args.networks_file, args.tag)
        if args.endpoints:
            for endpoint in core.scheduler.healthy_endpoints(networks):
                print(endpoint)
        else:
            core.scheduler.log_all(networks)
        return 0

    if args.network is not None:
        core.evaluator.evaluate(args.network or config["eth1"]).log()
        return 0

    if args.server:
        serve(core, config)
        return 0

    parser.print_help()
    return 0


if __name__ == "__main__":
    sys.exit(main())
