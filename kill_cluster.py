import argparse
import logging
import sys

from tabulate import tabulate

from meshlib.config import ClusterConfig, ConfigError
from meshlib.reclaim import clear_log_dir, reclaim_ports

logger = logging.getLogger("kill_cluster")


def define_and_get_arguments(args=sys.argv[1:]):
    parser = argparse.ArgumentParser(
        description="Stop whatever listens on the cluster ports and clear the logs."
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
        "--yes", "-y", action="store_true", help="Delete the logs without asking."
    )
    parser.add_argument(
        "--force",
        action="store_true",
        help="SIGKILL processes still alive after the grace period.",
    )
    parser.add_argument(
        "--grace",
        type=float,
        default=3.0,
        help="Seconds to wait before SIGKILL with --force.",
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="debug logging")
    return parser.parse_args(args)


def main(args=sys.argv[1:]) -> int:
    cmd_args = define_and_get_arguments(args)
    logging.basicConfig(format="%(asctime)s | %(message)s")
    logging.getLogger().setLevel(logging.DEBUG if cmd_args.verbose else logging.INFO)

    try:
        config = ClusterConfig.from_files(cmd_args.config, cmd_args.nodes)
    except ConfigError as e:
        logger.error("Invalid configuration: %s", e)
        return 1

    reclaimed = reclaim_ports(config.ports, force=cmd_args.force, grace=cmd_args.grace)
    logger.debug(
        "\n%s",
        tabulate(
            [[port, " ".join(str(p) for p in pids) or "-"] for port, pids in reclaimed.items()],
            headers=["port", "pids"],
        ),
    )
    clear_log_dir(config.log_dir, assume_yes=cmd_args.yes)
    return 0


if __name__ == "__main__":
    sys.exit(main())
