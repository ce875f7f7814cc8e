"""Argument parsing functionality for nugetharvest."""

import argparse
from constants import Constants


def build_parser():
    """Build the argument parser."""
    parser = argparse.ArgumentParser(
        prog="nugetharvest",
        description=(
            "nugetharvest - download a NuGet package and its full dependency closure"
        ),
        add_help=True,
    )

    # Checked after parsing so an empty value is reported the same way as a missing one
    parser.add_argument("-p", "--package-id",
                        dest="PACKAGE_ID",
                        help="Package id to resolve (prefix unless --exact is given)",
                        action="store", type=str)
    parser.add_argument("-e", "--exact",
                        dest="EXACT_MATCH",
                        help="Only take the search result whose id equals --package-id",
                        action="store_true")
    parser.add_argument("--platform",
                        dest="PLATFORMS",
                        help=("Framework family prefix whose dependency groups are followed "
                              f"(repeatable, default: {', '.join(Constants.PLATFORM_PREFIXES)})"),
                        action="append", type=str)
    parser.add_argument("--search-framework",
                        dest="SEARCH_FRAMEWORKS",
                        help=("Target framework sent to the search service (repeatable, default: "
                              f"{', '.join(Constants.SEARCH_FRAMEWORKS)})"),
                        action="append", type=str)
    parser.add_argument("-j", "--max-parallelism",
                        dest="MAX_PARALLELISM",
                        help=f"Maximum packages processed concurrently (default: {Constants.MAX_PARALLELISM})",
                        action="store", type=int)
    parser.add_argument("-o", "--output-dir",
                        dest="OUTPUT_DIR",
                        help=f"Download directory (default: {Constants.DOWNLOAD_DIRECTORY})",
                        action="store", type=str)
    parser.add_argument("--source",
                        dest="SOURCE",
                        help=f"NuGet V3 service index URL (default: {Constants.REGISTRY_URL_NUGET_V3})",
                        action="store", type=str)
    parser.add_argument("--take",
                        dest="TAKE",
                        help=f"Maximum search results for the root query (default: {Constants.SEARCH_TAKE})",
                        action="store", type=int)
    parser.add_argument("--timeout",
                        dest="TIMEOUT",
                        help=f"HTTP timeout in seconds (default: {Constants.REQUEST_TIMEOUT})",
                        action="store", type=int)
    parser.add_argument("-c", "--config",
                        dest="CONFIG",
                        help="Path to YAML configuration file",
                        action="store", type=str)
    parser.add_argument("--loglevel",
                        dest="LOG_LEVEL",
                        help="Set the logging level",
                        action="store",
                        type=str,
                        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'],
                        default='INFO')
    parser.add_argument("--logfile",
                        dest="LOG_FILE",
                        help="Log output file",
                        action="store",
                        type=str)
    parser.add_argument("-q", "--quiet",
                        dest="QUIET",
                        help="Only log warnings and errors to the console.",
                        action="store_true")
    return parser


def parse_args(argv=None):
    """Parses the arguments passed to the program."""
    return build_parser().parse_args(argv)
