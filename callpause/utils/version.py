"""Version utility for reading application version."""

import os
from pathlib import Path

from callpause.utils.logger import get_module_logger

logger = get_module_logger(__name__)


def get_version() -> str:
    """
    Get the application version.

    Reads APP_VERSION first, then a VERSION file written at image build
    time, and falls back to 'dev'.

    Returns:
        Version string (commit SHA or 'dev')
    """
    version = os.getenv("APP_VERSION")
    if version:
        return version

    version_file = Path(__file__).parent.parent / "VERSION"
    if version_file.exists():
        try:
            return version_file.read_text().strip()
        except (OSError, UnicodeDecodeError) as e:
            logger.warning(
                f"Failed to read VERSION file at {version_file}: {type(e).__name__}: {e}"
            )

    return "dev"


VERSION: str = get_version()
