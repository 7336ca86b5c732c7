"""Engine version reported on every PolicyExecutionResult."""

import re
from importlib.metadata import PackageNotFoundError, version

DISTRIBUTION_NAME = "flowrules"


def format_version(raw: str) -> str:
    """
    Normalize a version string to four numeric parts.

    "1.2" -> "1.2.0.0", "1.2.3.4.5" -> "1.2.3.4", "2.0.1rc1" -> "2.0.1.0"
    """
    parts = []
    for segment in raw.split(".")[:4]:
        match = re.match(r"\d+", segment)
        if not match:
            break
        parts.append(str(int(match.group())))
    parts.extend(["0"] * (4 - len(parts)))
    return ".".join(parts)


def get_engine_version() -> str:
    """Return the installed engine version as major.minor.build.revision."""
    try:
        return format_version(version(DISTRIBUTION_NAME))
    except PackageNotFoundError:
        return "0.0.0.0"
