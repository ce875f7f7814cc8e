"""Constants used in the project."""

from enum import Enum


class ExitCodes(Enum):
    """Exit codes for the program.

    Args:
        Enum (int): Exit codes for the program.
    """

    SUCCESS = 0
    FILE_ERROR = 1
    CONNECTION_ERROR = 2
    INTERRUPTED = 130


class Constants:  # pylint: disable=too-few-public-methods
    """General constants used in the project.
    Data holder for configuration constants; not intended to provide behavior.
    """

    REGISTRY_URL_NUGET_V3 = "https://api.nuget.org/v3/index.json"
    DOWNLOAD_DIRECTORY = "nuget-downloads"
    PACKAGE_EXTENSION = ".nupkg"
    PARTIAL_SUFFIX = ".part-"

    # Frameworks sent to the search service; only packages supporting one of them are returned
    SEARCH_FRAMEWORKS = ["net48", "net5.0", "net6.0"]
    SEARCH_TAKE = 1000
    # Dependency groups whose framework family does not start with one of these are ignored
    PLATFORM_PREFIXES = [".net"]
    MAX_PARALLELISM = 4

    LOG_FORMAT = "[%(levelname)s] %(message)s"
    LOG_LEVEL_ENV = "NUGETHARVEST_LOG_LEVEL"
    CONFIG_SECTION = "harvest"
    REQUEST_TIMEOUT = 30  # Timeout in seconds for all HTTP requests
    DOWNLOAD_CHUNK_SIZE = 64 * 1024
    USER_AGENT = "nugetharvest/1.0"

    # NuGet V3 service index resource types
    SEARCH_RESOURCE_TYPES = [
        "SearchQueryService/3.5.0",
        "SearchQueryService/3.0.0-rc",
        "SearchQueryService",
    ]
    PACKAGE_BASE_RESOURCE_TYPE = "PackageBaseAddress/3.0.0"
