import argparse
import logging
import sys

from jetcoffea.analysis_config import build_config
from jetcoffea.cli_utils import describe_config, list_eras
from jetcoffea.errors import ConfigurationError

logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(levelname)s - %(message)s')


def parse_args(argv=None):
    parser = argparse.ArgumentParser(
        description="Validate the analysis configuration and print its tables."
    )
    parser.add_argument(
        "era",
        nargs="?",
        choices=list_eras(),
        help="Era to check (default: all eras).",
    )
    parser.add_argument(
        "--config",
        default=None,
        help="Path to an alternative config.yaml.",
    )
    parser.add_argument(
        "--quiet",
        action="store_true",
        help="Only validate; do not print the tables.",
    )
    return parser.parse_args(argv)


def main(argv=None):
    args = parse_args(argv)
    eras = [args.era] if args.era else list_eras()

    failed = []
    for era in eras:
        try:
            config = build_config(era, path=args.config)
        except ConfigurationError as e:
            logging.error("Era %s: invalid configuration: %s", era, e)
            failed.append(era)
            continue
        if not args.quiet:
            print("\n".join(describe_config(config)))
            print()

    if failed:
        logging.error("Configuration check failed for: %s", ", ".join(failed))
        return 1
    logging.info("Configuration OK for %d era(s).", len(eras))
    return 0


if __name__ == "__main__":
    sys.exit(main())
