"""
Initial data sources for replay sessions.

A data source returns the trip list and raw event log a session is
built from:

    {"trips": [...], "events": [...]}
"""

import asyncio
import copy
import json
import logging
from pathlib import Path
from typing import Any, Dict, Optional

import aiohttp

logger = logging.getLogger(__name__)


class DataFetchError(Exception):
    """The initial dataset could not be obtained."""


def _validate_dataset(data: Any, origin: str) -> Dict[str, Any]:
    if not isinstance(data, dict):
        raise DataFetchError(f"Dataset from {origin} is not an object")

    for key in ("trips", "events"):
        if not isinstance(data.get(key), list):
            raise DataFetchError(f"Dataset from {origin} has no '{key}' list")

    return data


class DataSource:
    """Base class for initial dataset providers."""

    async def fetch(self) -> Dict[str, Any]:
        """
        Fetch the initial dataset.

        Raises:
            DataFetchError: If the dataset is unavailable or malformed
        """
        raise NotImplementedError

    async def close(self):
        pass


class StaticDataSource(DataSource):
    """Serves a dataset held in memory."""

    def __init__(self, dataset: Dict[str, Any]):
        self.dataset = dataset

    async def fetch(self) -> Dict[str, Any]:
        # Sessions must never share mutable records with the source
        return _validate_dataset(copy.deepcopy(self.dataset), "memory")


class JsonFileDataSource(DataSource):
    """Reads the dataset from a JSON file."""

    def __init__(self, path: Path):
        self.path = Path(path)

    async def fetch(self) -> Dict[str, Any]:
        try:
            text = await asyncio.to_thread(self.path.read_text, encoding="utf-8")
            data = json.loads(text)
        except OSError as e:
            raise DataFetchError(f"Could not read {self.path}: {e}") from e
        except ValueError as e:
            raise DataFetchError(f"Invalid JSON in {self.path}: {e}") from e

        logger.info(f"Loaded dataset from {self.path}")
        return _validate_dataset(data, str(self.path))


class HttpDataSource(DataSource):
    """Fetches the dataset from an HTTP endpoint."""

    def __init__(self, url: str, timeout_s: float = 10.0):
        self.url = url
        self.timeout_s = timeout_s
        self._session: Optional[aiohttp.ClientSession] = None

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.timeout_s)
            )
        return self._session

    async def close(self):
        if self._session:
            await self._session.close()

    async def fetch(self) -> Dict[str, Any]:
        session = await self._get_session()

        try:
            async with session.get(self.url) as response:
                if response.status != 200:
                    raise DataFetchError(f"Dataset request to {self.url} failed: HTTP {response.status}")
                data = await response.json(content_type=None)
        except DataFetchError:
            raise
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            raise DataFetchError(f"Dataset request to {self.url} failed: {e}") from e

        logger.info(f"Loaded dataset from {self.url}")
        return _validate_dataset(data, self.url)


def create_data_source_from_config(config: dict) -> DataSource:
    """
    Create a data source from configuration.

    Config example:
    {
        "path": "data/trip-data.json",
        # or
        "url": "http://localhost:8080/trip-data.json",
        "timeout_s": 10.0,
    }
    """
    if config.get("url"):
        return HttpDataSource(config["url"], timeout_s=config.get("timeout_s", 10.0))

    return JsonFileDataSource(Path(config.get("path", "data/trip-data.json")))
