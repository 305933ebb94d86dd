import multiprocessing
import os
from pathlib import Path

try:
    import tomllib
except ModuleNotFoundError:
    import tomli as tomllib  # pyright: ignore[reportMissingImports]

from .archive.reader import DEFAULT_CHUNK_SIZE
from .digest import DEFAULT_DIGEST
from .filter import DEFAULT_SPOOL_SIZE, DEFAULT_THRESHOLD
from .utils.pipe import DEFAULT_MAX_CHUNKS

CONFIG_ENVIRONMENT_VARIABLE = 'LAYERDEDUP_CONFIG'

# Settings key constants
SETTING_THRESHOLD = 'filter.threshold'
SETTING_DIGEST = 'filter.digest'
SETTING_SPOOL_SIZE = 'filter.spool_size'
SETTING_CHUNK_SIZE = 'pipe.chunk_size'
SETTING_MAX_CHUNKS = 'pipe.max_chunks'
SETTING_JOBS = 'jobs'
SETTING_LOGGING_PATH = 'logging.path'
SETTING_LOGGING_LEVEL = 'logging.level'


class Settings:
    """Read-only view of a layerdedup TOML configuration file.

    Keys use dot notation for nested tables, e.g. ``filter.threshold`` reads
    ``threshold`` from the ``[filter]`` table. A missing file behaves like an
    empty one, so every lookup falls back to its default.

    Example:
        settings = Settings.load(Path('layerdedup.toml'))
        threshold = settings.get_int(SETTING_THRESHOLD, DEFAULT_THRESHOLD)
    """

    def __init__(self, data: dict | None = None, path: Path | None = None):
        self._settings = data or {}
        self._path = path

    @classmethod
    def load(cls, path: str | os.PathLike | None = None) -> 'Settings':
        """Load settings from ``path``, or from ``$LAYERDEDUP_CONFIG`` if no path is given.

        Raises:
            FileNotFoundError: An explicitly requested file does not exist
            tomllib.TOMLDecodeError: The file is not valid TOML
        """
        if path is None:
            path = os.environ.get(CONFIG_ENVIRONMENT_VARIABLE)
            if not path:
                return cls()

        path = Path(path)
        with open(path, 'rb') as f:
            return cls(tomllib.load(f), path)

    @property
    def path(self) -> Path | None:
        return self._path

    def get(self, key: str, default=None):
        """Get a setting value by dotted key, or ``default`` if any part of the path is missing."""
        value = self._settings

        for k in key.split('.'):
            if isinstance(value, dict) and k in value:
                value = value[k]
            else:
                return default

        return value

    def get_int(self, key: str, default: int, minimum: int = 0) -> int:
        """Get an integer setting.

        Raises:
            ValueError: If the value is not an integer or is below ``minimum``
        """
        value = self.get(key, default)
        if isinstance(value, bool) or not isinstance(value, int):
            raise ValueError(f"Setting {key} must be an integer, got {value!r}")
        if value < minimum:
            raise ValueError(f"Setting {key} must be at least {minimum}, got {value}")
        return value

    @property
    def threshold(self) -> int:
        return self.get_int(SETTING_THRESHOLD, DEFAULT_THRESHOLD)

    @property
    def digest(self) -> str:
        return str(self.get(SETTING_DIGEST, DEFAULT_DIGEST))

    @property
    def spool_size(self) -> int:
        return self.get_int(SETTING_SPOOL_SIZE, DEFAULT_SPOOL_SIZE)

    @property
    def chunk_size(self) -> int:
        return self.get_int(SETTING_CHUNK_SIZE, DEFAULT_CHUNK_SIZE, minimum=1)

    @property
    def max_chunks(self) -> int:
        return self.get_int(SETTING_MAX_CHUNKS, DEFAULT_MAX_CHUNKS, minimum=1)

    @property
    def jobs(self) -> int:
        return self.get_int(SETTING_JOBS, multiprocessing.cpu_count(), minimum=1)
