"""team-streaks — cross-device streak, period-reset and fetch coalescing core."""
from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("team-streaks")
except PackageNotFoundError:
    __version__ = "0.0.0"
