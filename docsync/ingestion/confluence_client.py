"""Confluence implementation of the source collaborator."""

from datetime import timezone, tzinfo
from typing import Any, Iterator
from zoneinfo import ZoneInfo

import structlog
from atlassian import Confluence
from bs4 import BeautifulSoup, NavigableString, Tag
from pydantic import ValidationError
from requests.exceptions import ConnectionError, HTTPError, RequestException, Timeout

from docsync.ingestion.source import SourceClient
from docsync.models.records import (
    ContentBlock,
    DateProperty,
    FilterSpec,
    MultiSelectProperty,
    NumberProperty,
    SelectProperty,
    SourceRecord,
    TextProperty,
    UrlProperty,
)
from docsync.utils.retry import exponential_backoff_retry

log = structlog.stdlib.get_logger()

CONTENT_SEARCH_PATH = "rest/api/content/search"
LISTING_EXPAND = "version,history,ancestors,metadata.labels,space"
CQL_TIME_FORMAT = "%Y/%m/%d %H:%M"


def _is_transient(error: Exception) -> bool:
    """True for errors worth retrying on a single-record call."""
    if isinstance(error, (ConnectionError, Timeout)):
        return True
    if isinstance(error, HTTPError) and error.response is not None:
        status = error.response.status_code
        return status == 429 or 500 <= status < 600
    return False


def quote_cql(value: str) -> str:
    """Quote a CQL string literal."""
    escaped = value.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


def build_cql(
    space_key: str,
    filter_spec: FilterSpec | None = None,
    cql_timezone: tzinfo = timezone.utc,
) -> str:
    """Build the CQL query for a space listing.

    CQL reads dates in the timezone of the calling user's profile, so the
    watermark is converted to ``cql_timezone`` before formatting. CQL also
    compares ``lastmodified`` at minute precision, so the server-side filter
    can return records already synced; the per-record skip check drops them.
    """
    cql = f"space = {quote_cql(space_key)} and type = page"
    if filter_spec is not None:
        since = filter_spec.modified_after.astimezone(cql_timezone)
        cql += f" and lastmodified > {quote_cql(since.strftime(CQL_TIME_FORMAT))}"
    return cql + " order by lastmodified asc"


class ConfluenceClient(SourceClient):
    """Wrapper around atlassian-python-api Confluence client."""

    def __init__(
        self,
        base_url: str,
        auth_token: str,
        cloud: bool = True,
        page_size: int = 100,
        cql_timezone: str = "UTC",
    ):
        """
        Initialize Confluence client.

        Args:
            base_url: Confluence instance URL
            auth_token: API token for authentication
            cloud: True for Confluence Cloud, False for Server/Data Center
            page_size: Records requested per listing call
            cql_timezone: Timezone of the API user's profile, used for CQL dates
        """
        self._client = Confluence(url=base_url, token=auth_token, cloud=cloud)
        self._base_url = base_url.rstrip("/")
        self._page_size = page_size
        self._cql_timezone = ZoneInfo(cql_timezone)
        log.info(
            "confluence_client_initialized",
            base_url=base_url,
            cloud=cloud,
            page_size=page_size,
            cql_timezone=cql_timezone,
        )

    def list_records(
        self, container_id: str, filter_spec: FilterSpec | None = None
    ) -> list[SourceRecord]:
        """
        List the pages of a space.

        Not retried here; the caller owns the retry and fallback policy for
        listings.

        Args:
            container_id: The Confluence space key
            filter_spec: Optional server-side modification filter

        Returns:
            SourceRecords for every page that passed validation

        Raises:
            RequestException: If an API call fails
        """
        cql = build_cql(container_id, filter_spec, self._cql_timezone)
        log.info("listing_space_pages", space_key=container_id, cql=cql)

        records: list[SourceRecord] = []
        start = 0
        while True:
            response = self._client.get(
                CONTENT_SEARCH_PATH,
                params={
                    "cql": cql,
                    "start": start,
                    "limit": self._page_size,
                    "expand": LISTING_EXPAND,
                },
            )
            results = (response or {}).get("results", [])

            for raw_page in results:
                try:
                    records.append(self._convert_to_record(raw_page, container_id))
                except (KeyError, ValueError, ValidationError) as e:
                    log.warning(
                        "failed_to_convert_page",
                        page_id=raw_page.get("id"),
                        error=str(e),
                    )

            start += len(results)
            has_next = bool((response or {}).get("_links", {}).get("next"))
            if not results or not has_next:
                break

        log.info(
            "space_pages_listed",
            space_key=container_id,
            filtered=filter_spec is not None,
            record_count=len(records),
        )
        return records

    @exponential_backoff_retry(
        max_retries=3,
        base_delay=1.0,
        max_delay=60.0,
        exceptions=(RequestException,),
        retry_if=_is_transient,
    )
    def get_record(self, record_id: str) -> SourceRecord:
        """
        Fetch a single page.

        Args:
            record_id: The Confluence page ID

        Returns:
            SourceRecord for the page

        Raises:
            RequestException: If the API call fails after retries
            ValueError: If the page is missing required fields
        """
        log.info("fetching_page", page_id=record_id)

        raw_page = self._client.get_page_by_id(page_id=record_id, expand=LISTING_EXPAND)
        space_key = raw_page.get("space", {}).get("key", "")
        return self._convert_to_record(raw_page, space_key)

    @exponential_backoff_retry(
        max_retries=3,
        base_delay=1.0,
        max_delay=60.0,
        exceptions=(RequestException,),
        retry_if=_is_transient,
    )
    def _fetch_storage_body(self, record_id: str) -> str:
        raw_page = self._client.get_page_by_id(page_id=record_id, expand="body.storage")
        return raw_page.get("body", {}).get("storage", {}).get("value", "")

    def get_content(self, record_id: str) -> Iterator[ContentBlock]:
        """
        Stream the top-level blocks of a page's storage-format body.

        Args:
            record_id: The Confluence page ID

        Yields:
            ContentBlock per top-level element; bare text becomes a ``text`` block
        """
        body = self._fetch_storage_body(record_id)
        soup = BeautifulSoup(body, "html.parser")

        block_count = 0
        for node in soup.children:
            if isinstance(node, Tag):
                block_count += 1
                yield ContentBlock(block_type=node.name, html=str(node))
            elif isinstance(node, NavigableString) and node.strip():
                block_count += 1
                yield ContentBlock(block_type="text", html=str(node))

        log.debug("page_content_streamed", page_id=record_id, block_count=block_count)

    def _convert_to_record(self, raw_page: dict[str, Any], space_key: str) -> SourceRecord:
        """
        Convert a Confluence API response to a SourceRecord.

        Args:
            raw_page: Raw page data from Confluence API
            space_key: The space key (may be passed separately)

        Returns:
            SourceRecord instance

        Raises:
            KeyError: If the page id is missing
            ValidationError: If the record fails validation
        """
        page_id = str(raw_page["id"])
        version_info = raw_page.get("version", {})
        version_number = version_info.get("number", 1)
        history = raw_page.get("history", {})

        created_date = history.get("createdDate", version_info.get("when"))
        modified_date = version_info.get("when", created_date)

        author = (
            version_info.get("by", {}).get("displayName")
            or history.get("createdBy", {}).get("displayName")
            or history.get("createdBy", {}).get("username")
            or ""
        )
        labels = [
            label["name"]
            for label in raw_page.get("metadata", {}).get("labels", {}).get("results", [])
            if "name" in label
        ]
        ancestors = raw_page.get("ancestors") or []
        webui = raw_page.get("_links", {}).get("webui")
        if webui:
            url = f"{self._base_url}{webui}"
        else:
            url = f"{self._base_url}/wiki/spaces/{space_key}/pages/{page_id}"

        return SourceRecord(
            id=page_id,
            container_id=space_key,
            parent_id=str(ancestors[-1]["id"]) if ancestors else None,
            last_modified=modified_date,
            properties={
                "title": TextProperty(value=raw_page.get("title", "")),
                "labels": MultiSelectProperty(value=labels),
                "version": NumberProperty(value=version_number),
                "author": TextProperty(value=author),
                "created": DateProperty(value=created_date),
                "status": SelectProperty(value=raw_page.get("status")),
                "url": UrlProperty(value=url),
            },
            content_ref=f"{page_id}@{version_number}",
        )
