"""Version information for the Ankra CLI."""
import platform
import sys

VERSION = "0.1.121"
PLATFORM_URL = "https://platform.ankra.app"


def get_version():
    """Get version information.

    Returns:
        dict: Version information with keys:
            - version: CLI version
            - python: Interpreter version
            - platform: OS and architecture
            - platform_url: Default Ankra platform URL
    """
    return {
        'version': VERSION,
        'python': platform.python_version(),
        'platform': f"{sys.platform}/{platform.machine()}",
        'platform_url': PLATFORM_URL,
    }
