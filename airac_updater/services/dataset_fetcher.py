"""AIXM dataset retrieval from the publisher, with on-disk caching.

The DFS dataset index (``https://aip.dfs.de/datasets/rest/``) lists
amendments, each with a tree of dataset groups and leaves. A leaf has one
release per format; its filename carries the effective dates, e.g.
``ED_Navaids_2025-02-20_2025-03-20_revision.xml``. The dataset of a cycle is
the release whose first filename date is the cycle's effective date, served at
``<index>/<amendment>/<filename>``.

Usage:
    async with DatasetFetcher(settings, DatasetCache(settings.cache_dir)) as fetcher:
        payloads = await fetcher.fetch(resolve_cycle())
"""

from __future__ import annotations

import asyncio
import io
import logging
import re
from collections.abc import Iterator
from typing import Annotated, Literal, Union
from zipfile import BadZipFile, ZipFile

import httpx
from pydantic import BaseModel, ConfigDict, Field, ValidationError
from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from airac_updater.config import UpdaterSettings
from airac_updater.errors import (
    CacheCorruption,
    DatasetFetchError,
    DatasetNotPublished,
    NetworkError,
)
from airac_updater.services.airac_cycle import AiracCycle
from airac_updater.services.dataset_cache import DatasetCache, DatasetReference

logger = logging.getLogger(__name__)

ACCEPTED_CONTENT_TYPES = ("xml", "zip", "octet-stream")
ZIP_MAGIC = b"PK\x03\x04"
RETRYABLE_STATUS = {408, 429}
NOT_PUBLISHED_STATUS = {404, 410}
_FILENAME_DATE_RE = re.compile(r"\d{4}-\d{2}-\d{2}")


# ============ DFS index ============

class DfsRelease(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    release_type: str = Field(alias="type")
    filename: str


class DfsLeaf(BaseModel):
    type: Literal["leaf"]
    name: str
    releases: list[DfsRelease] = Field(default_factory=list)


class DfsGroup(BaseModel):
    type: Literal["group"]
    name: str = ""
    items: list[DfsDataset] = Field(default_factory=list)


DfsDataset = Annotated[Union[DfsGroup, DfsLeaf], Field(discriminator="type")]


class DfsAmendmentMetadata(BaseModel):
    datasets: list[DfsDataset] = Field(default_factory=list)


class DfsAmendment(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    amdt: int = Field(alias="Amdt")
    metadata: DfsAmendmentMetadata = Field(alias="Metadata")


class DfsIndex(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    amdts: list[DfsAmendment] = Field(alias="Amdts")


DfsGroup.model_rebuild()
DfsAmendmentMetadata.model_rebuild()


def _leaves(items: list[DfsGroup | DfsLeaf]) -> Iterator[DfsLeaf]:
    for item in items:
        if isinstance(item, DfsLeaf):
            yield item
        else:
            yield from _leaves(item.items)


def release_effective_date(filename: str) -> str | None:
    """First ISO date of a release filename: its effective date."""
    match = _FILENAME_DATE_RE.search(filename)
    return match.group(0) if match else None


def find_release(
    index: DfsIndex,
    dataset: str,
    release_type: str,
    cycle: AiracCycle,
) -> tuple[int, str] | None:
    """Locate the release of *dataset* effective for *cycle*.

    Returns:
        ``(amendment, filename)`` or ``None`` if nothing is published
    """
    effective = cycle.start.date().isoformat()
    for amdt in index.amdts:
        for leaf in _leaves(amdt.metadata.datasets):
            if leaf.name != dataset:
                continue
            for release in leaf.releases:
                if release.release_type == release_type and release_effective_date(release.filename) == effective:
                    return amdt.amdt, release.filename
    return None


def dataset_url(index_url: str, amdt: int, filename: str) -> str:
    return f"{index_url.rstrip('/')}/{amdt}/{filename}"


# ============ Payloads ============

def unpack_documents(payload: bytes) -> list[bytes]:
    """Return the XML documents of a payload (a bare document or a ZIP archive)."""
    if not payload.startswith(ZIP_MAGIC):
        return [payload]
    try:
        with ZipFile(io.BytesIO(payload)) as archive:
            names = sorted(
                info.filename for info in archive.infolist()
                if not info.is_dir() and info.filename.lower().endswith(".xml")
            )
            documents = [archive.read(name) for name in names]
    except BadZipFile as e:
        raise DatasetFetchError(f"Corrupt dataset archive: {e}")
    if not documents:
        raise DatasetFetchError("Dataset archive contains no XML document")
    return documents


def _looks_like_dataset(data: bytes) -> bool:
    head = data.lstrip(b"\xef\xbb\xbf \t\r\n")
    return head.startswith(b"<") or data.startswith(ZIP_MAGIC)


# ============ Fetcher ============

class DatasetFetcher:
    """Downloads the AIXM datasets of a cycle, reusing cached copies."""

    def __init__(
        self,
        settings: UpdaterSettings,
        cache: DatasetCache,
        http_client: httpx.AsyncClient | None = None,
    ):
        self._settings = settings
        self._cache = cache
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(
            timeout=settings.request_timeout,
            headers={"User-Agent": settings.user_agent},
            follow_redirects=True,
        )

    async def __aenter__(self) -> DatasetFetcher:
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def fetch(self, cycle: AiracCycle) -> dict[str, bytes]:
        """Fetch every configured dataset for *cycle*.

        Returns:
            Dataset name -> raw payload (XML document or ZIP archive)

        Raises:
            NetworkError: Publisher unreachable and no complete cached copy
            DatasetNotPublished: A dataset has no release for the cycle
            CacheCorruption: The cache keeps failing verification
        """
        try:
            index = await self._retrying(self._fetch_index)
        except NetworkError as e:
            cached = self._cached_payloads(cycle)
            if cached is None:
                raise
            logger.warning("Dataset index unavailable (%s), using cached AIRAC %s", e, cycle.ident)
            return cached

        names = list(self._settings.datasets)
        tasks = [asyncio.ensure_future(self._fetch_dataset(index, cycle, name)) for name in names]
        try:
            payloads = await asyncio.gather(*tasks)
        except BaseException:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise
        return dict(zip(names, payloads))

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _retrying(self, func, *args):
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self._settings.retry_attempts),
            wait=wait_exponential(
                multiplier=self._settings.retry_backoff,
                max=self._settings.retry_max_wait,
            ),
            retry=retry_if_exception_type(NetworkError),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        )
        return await retrying(func, *args)

    async def _get(self, url: str, headers: dict[str, str] | None = None) -> httpx.Response:
        try:
            return await self._client.get(url, headers=headers)
        except httpx.TimeoutException:
            raise NetworkError(f"Timeout fetching {url}")
        except httpx.TransportError as e:
            raise NetworkError(f"Failed to fetch {url}: {e}")

    async def _fetch_index(self) -> DfsIndex:
        url = self._settings.index_url
        response = await self._get(url)
        if response.status_code in RETRYABLE_STATUS or response.status_code >= 500:
            raise NetworkError(f"HTTP {response.status_code} fetching dataset index {url}")
        if response.status_code >= 400:
            raise DatasetFetchError(f"HTTP {response.status_code} fetching dataset index {url}")
        try:
            return DfsIndex.model_validate_json(response.content)
        except ValidationError as e:
            raise DatasetFetchError(f"Unexpected dataset index format: {e.error_count()} errors")

    async def _fetch_dataset(self, index: DfsIndex, cycle: AiracCycle, name: str) -> bytes:
        release = find_release(index, name, self._settings.release_type, cycle)
        if release is None:
            raise DatasetNotPublished(name, cycle.ident)
        url = dataset_url(self._settings.index_url, *release)

        ref = self._cache.lookup(cycle.ident, name)
        if ref is not None and ref.url != url:
            logger.info("Release of %s changed for AIRAC %s, re-downloading", name, cycle.ident)
            ref = None

        try:
            return await self._retrying(self._download, cycle, name, url, ref)
        except NetworkError as e:
            if ref is None:
                raise
            logger.warning("Download of %s failed (%s), using cached AIRAC %s copy", name, e, cycle.ident)
            return self._cache.read(ref)
        except CacheCorruption as e:
            logger.warning("%s; re-downloading %s", e, name)
            self._cache.discard(cycle.ident, name)
            return await self._retrying(self._download, cycle, name, url, None)

    async def _download(
        self,
        cycle: AiracCycle,
        name: str,
        url: str,
        ref: DatasetReference | None,
    ) -> bytes:
        headers = {"If-None-Match": ref.etag} if ref is not None and ref.etag else None
        logger.info("Fetching AIXM: %s", name)
        response = await self._get(url, headers=headers)

        if response.status_code == 304 and ref is not None:
            logger.info("AIXM %s unchanged, using cache", name)
            return self._cache.read(ref)

        status = response.status_code
        if status in NOT_PUBLISHED_STATUS:
            raise DatasetNotPublished(name, cycle.ident)
        if status in RETRYABLE_STATUS or status >= 500:
            raise NetworkError(f"HTTP {status} fetching {url}")
        if status >= 300:
            raise DatasetFetchError(f"HTTP {status} fetching {url}")

        data = response.content
        if not data:
            raise DatasetFetchError(f"Empty response for {name} from {url}")
        content_type = response.headers.get("content-type", "").lower()
        if not any(t in content_type for t in ACCEPTED_CONTENT_TYPES) and not _looks_like_dataset(data):
            raise DatasetFetchError(f"Response for {name} is not an AIXM dataset (content-type: {content_type})")

        new_ref = self._cache.store(cycle, name, url, data, etag=response.headers.get("etag"))
        logger.info("Fetched AIXM: %s (%d bytes)", name, len(data))
        return self._cache.read(new_ref)

    def _cached_payloads(self, cycle: AiracCycle) -> dict[str, bytes] | None:
        """Every dataset of *cycle* from the cache, or ``None`` if incomplete."""
        payloads: dict[str, bytes] = {}
        for name in self._settings.datasets:
            ref = self._cache.lookup(cycle.ident, name)
            if ref is None:
                return None
            try:
                payloads[name] = self._cache.read(ref)
            except CacheCorruption as e:
                logger.warning("%s", e)
                return None
        return payloads
