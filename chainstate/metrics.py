from prometheus_client import Counter, Gauge

STATUS_CODES = {"ok": 0, "warn": 1, "fail": 2}

NODE_STATUS_GAUGE = Gauge(
    "chainstate_node_status",
    "Evaluated node status (0=ok, 1=warn, 2=fail)",
    ["node"],
)
HEAD_BLOCK_GAUGE = Gauge(
    "chainstate_node_head_block",
    "Latest block number reported by the node",
    ["node"],
)
CHAIN_ID_GAUGE = Gauge(
    "chainstate_node_chain_id",
    "Chain id reported by net_version",
    ["node"],
)
RPC_RESPONSE_TIME_GAUGE = Gauge(
    "chainstate_rpc_response_time_seconds",
    "Response time of the last RPC request",
    ["node", "method"],
)
RPC_FAILURES_COUNTER = Counter(
    "chainstate_rpc_failures_total",
    "Failed RPC requests",
    ["node", "kind"],  # "transport", "remote", "decode"
)
