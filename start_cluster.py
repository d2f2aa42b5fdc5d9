import argparse
import logging
import sys

from meshlib.config import ClusterConfig, ConfigError, WAIT_MODES
from meshlib.launcher import NodeStartupError, start_cluster

logger = logging.getLogger("start_cluster")


def define_and_get_arguments(args=sys.argv[1:]):
    parser = argparse.ArgumentParser(
        description="Start the mesh nodes and connect them to each other."
    )
    parser.add_argument(
        "--config",
        type=str,
        default=None,
        help="Path to cluster config, e.g. configs/cluster.ini. Built-in three node cluster if omitted.",
    )
    parser.add_argument(
        "--nodes",
        type=str,
        default=None,
        help="Path to node table csv, overrides the one named in the config.",
    )
    parser.add_argument(
        "--wait",
        type=str,
        choices=WAIT_MODES,
        default=None,
        help="sleep: fixed delay before connecting, poll: wait until every node answers.",
    )
    parser.add_argument(
        "--delay", type=float, default=None, help="Seconds to sleep with --wait=sleep."
    )
    parser.add_argument(
        "--timeout",
        type=float,
        default=None,
        help="Seconds to wait for all nodes with --wait=poll.",
    )
    parser.add_argument(
        "--attach",
        action="store_true",
        help="Stay in the foreground and stop the nodes on Ctrl+C.",
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="debug logging")
    return parser.parse_args(args)


def main(args=sys.argv[1:]) -> int:
    cmd_args = define_and_get_arguments(args)
    logging.basicConfig(format="%(asctime)s | %(message)s")
    logging.getLogger().setLevel(logging.DEBUG if cmd_args.verbose else logging.INFO)

    try:
        config = ClusterConfig.from_files(cmd_args.config, cmd_args.nodes)
        if cmd_args.wait is not None:
            config.wait_mode = cmd_args.wait
        if cmd_args.delay is not None:
            config.startup_delay = cmd_args.delay
        if cmd_args.timeout is not None:
            config.ready_timeout = cmd_args.timeout
        config.validate()
    except ConfigError as e:
        logger.error("Invalid configuration: %s", e)
        return 1
    logger.debug("cluster config:\n%s", config)

    try:
        cluster = start_cluster(config)
    except (NodeStartupError, OSError) as e:
        logger.error(str(e))
        return 1

    if cluster.failed:
        logger.error(
            "%d of %d connect calls failed", len(cluster.failed), len(cluster.results)
        )
    else:
        logger.info("mesh connected: %d links", len(cluster.results))

    if cmd_args.attach:
        cluster.attach()
    return 1 if cluster.failed else 0


if __name__ == "__main__":
    sys.exit(main())
