"""Pipeline discovery against the source API's paginated pipeline listing."""

from __future__ import annotations

import json
import logging

from ci_log_migrator.constants import HTTP_OK, PIPELINES_PATH
from ci_log_migrator.exceptions import (
    MigratorError,
    PipelineListingError,
    ResponseParseError,
)
from ci_log_migrator.types import Pipeline, PipelineListResponse
from ci_log_migrator.utils.api import ApiClient
from ci_log_migrator.utils.logging import log_with_context


def parse_pipelines_page(body: bytes) -> list[Pipeline]:
    """Parse one ``/api/pipelines`` page into pipelines.

    Args:
        body: Raw response body.

    Returns:
        The pipelines on the page, in API order.

    Raises:
        ResponseParseError: If the body is not a JSON object with an ``items`` list.
    """
    try:
        data: PipelineListResponse = json.loads(body)
    except ValueError as e:
        raise ResponseParseError(f"Failed unmarshalling pipelines body: {e}") from e

    if not isinstance(data, dict):
        raise ResponseParseError("Pipelines body is not a JSON object")

    items = data.get("items")
    if items is None:
        return []
    if not isinstance(items, list):
        raise ResponseParseError("Pipelines body field 'items' is not a list")

    return [Pipeline.from_dict(item) for item in items]


class PipelineLister:
    """Retrieves every pipeline by walking the listing page by page."""

    def __init__(self, api_client: ApiClient, api_url: str, page_size: int) -> None:
        self.api_client = api_client
        self.api_url = api_url.rstrip("/")
        self.page_size = page_size

    def pipelines_url(self, page_number: int) -> str:
        return (
            f"{self.api_url}{PIPELINES_PATH}"
            f"?filter[status]=all&filter[since]=eternity"
            f"&page[number]={page_number}&page[size]={self.page_size}"
        )

    def get_pipelines_page(self, page_number: int) -> list[Pipeline]:
        body = self.api_client.get(self.pipelines_url(page_number), [HTTP_OK])
        try:
            return parse_pipelines_page(body)
        except ResponseParseError:
            log_with_context(
                logging.ERROR,
                "Failed unmarshalling pipelines body",
                body=body.decode("utf-8", errors="replace"),
            )
            raise

    def list_all_pipelines(self) -> list[Pipeline]:
        """Fetch all pipelines.

        Keeps requesting pages until one comes back empty; a full or partial
        page is never taken as the last one.

        Raises:
            PipelineListingError: If any page fails. The pipelines gathered
                before the failure are available on the exception.
        """
        log_with_context(logging.INFO, "Start retrieving pipelines...")

        pipelines: list[Pipeline] = []
        page_number = 1
        page = self._fetch_page(page_number, pipelines)

        while page:
            pipelines.extend(page)
            page_number += 1
            page = self._fetch_page(page_number, pipelines)

        log_with_context(
            logging.INFO, f"Finished retrieving pipelines ({len(pipelines)} total)"
        )
        return pipelines

    def _fetch_page(
        self, page_number: int, retrieved: list[Pipeline]
    ) -> list[Pipeline]:
        try:
            page = self.get_pipelines_page(page_number)
        except MigratorError as e:
            raise PipelineListingError(
                f"Failed retrieving pipelines page {page_number}: {e}",
                pipelines=list(retrieved),
            ) from e

        log_with_context(
            logging.DEBUG,
            f"Retrieved {len(page)} pipelines from page {page_number}",
            page_number=page_number,
        )
        return page
