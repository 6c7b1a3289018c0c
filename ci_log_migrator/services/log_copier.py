"""Copying a pipeline's logs to cloud storage, page batch by page batch.

Each log category is paginated on its own. Pages are copied in batches of
``parallelism`` concurrent requests; a batch is always joined completely
before its results are inspected, and the category ends at the first batch
that either fails or contains a short page.
"""

from __future__ import annotations

import logging
import re
from concurrent.futures import ThreadPoolExecutor

from ci_log_migrator.constants import COPY_LOGS_PATH, HTTP_OK
from ci_log_migrator.exceptions import ResponseParseError
from ci_log_migrator.types import (
    LogCategory,
    PageRequest,
    PageResult,
    Pipeline,
    is_last_page,
)
from ci_log_migrator.utils.api import ApiClient
from ci_log_migrator.utils.logging import log_with_context

# Plain decimal integer, no digit separators
_COUNT_PATTERN = re.compile(r"[+-]?[0-9]+")


def parse_copied_count(body: bytes) -> int:
    """Read the number of copied log items from a page-copy response body."""
    text = body.decode("utf-8", errors="replace").strip()
    if not _COUNT_PATTERN.fullmatch(text):
        raise ResponseParseError(f"Failed reading int value from response: {text!r}")
    count = int(text)
    if count < 0:
        raise ResponseParseError(f"Copied log count is negative: {count}")
    return count


class LogCopier:
    """Drives the page-copy endpoint for every log category of a pipeline."""

    def __init__(
        self,
        api_client: ApiClient,
        api_url: str,
        page_size: int,
        parallelism: int,
    ) -> None:
        self.api_client = api_client
        self.api_url = api_url.rstrip("/")
        self.page_size = page_size
        self.parallelism = max(1, parallelism)

    def copy_logs_url(self, request: PageRequest) -> str:
        return (
            f"{self.api_url}{COPY_LOGS_PATH}/{request.pipeline_id}"
            f"?page[number]={request.page_number}&page[size]={request.page_size}"
            f"&filter[search]={request.category.value}"
        )

    def migrate_pipeline(self, pipeline: Pipeline) -> int:
        """Copy builds logs, then releases logs, for one pipeline.

        Returns:
            Total number of log items copied.

        Raises:
            MigratorError: The first page failure; releases are not started
                when builds failed.
        """
        pipeline_id = pipeline.full_repo_path
        log_with_context(
            logging.INFO,
            f"Start copying logs to cloud storage for pipeline {pipeline_id}...",
            pipeline=pipeline_id,
        )

        copied = 0
        for category in LogCategory:
            copied += self.copy_category(pipeline, category)

        log_with_context(
            logging.INFO,
            f"Finished copying logs to cloud storage for pipeline {pipeline_id} "
            f"({copied} items)",
            pipeline=pipeline_id,
        )
        return copied

    def copy_category(self, pipeline: Pipeline, category: LogCategory) -> int:
        """Copy all pages of one log category.

        Returns:
            Number of log items copied for the category.

        Raises:
            MigratorError: The error of the first failed page in the failing
                batch. No batch is launched after a failure.
        """
        pipeline_id = pipeline.full_repo_path
        copied = 0
        page_number = 1
        finished = False

        with ThreadPoolExecutor(
            max_workers=self.parallelism,
            thread_name_prefix=f"copy-{category.value}",
        ) as executor:
            while not finished:
                batch = [
                    PageRequest(pipeline_id, category, number, self.page_size)
                    for number in range(page_number, page_number + self.parallelism)
                ]
                results = list(executor.map(self.copy_page_result, batch))

                failures = [result for result in results if result.failed]
                if failures:
                    first = failures[0]
                    log_with_context(
                        logging.ERROR,
                        f"Copying {category.value} page {first.request.page_number} "
                        f"failed: {first.error}",
                        pipeline=pipeline_id,
                        category=category.value,
                    )
                    raise first.error

                copied += sum(result.items_copied for result in results)
                finished = self.batch_reached_end(results)
                page_number += self.parallelism

        log_with_context(
            logging.DEBUG,
            f"Copied {copied} {category.value} log items in "
            f"{(page_number - 1) // self.parallelism} batches",
            pipeline=pipeline_id,
            category=category.value,
        )
        return copied

    def batch_reached_end(self, results: list[PageResult]) -> bool:
        """A short page anywhere in the batch ends the category."""
        return any(
            is_last_page(result.items_copied, result.request.page_size)
            for result in results
        )

    def copy_page_result(self, request: PageRequest) -> PageResult:
        """Copy one page, capturing failures instead of raising them."""
        try:
            return PageResult(request, items_copied=self.copy_page(request))
        except Exception as e:
            return PageResult(request, error=e)

    def copy_page(self, request: PageRequest) -> int:
        """Copy one page of logs and return how many items were copied."""
        body = self.api_client.get(self.copy_logs_url(request), [HTTP_OK])
        try:
            count = parse_copied_count(body)
        except ResponseParseError:
            log_with_context(
                logging.ERROR,
                "Failed reading int value from response",
                pipeline=request.pipeline_id,
                category=request.category.value,
                page_number=request.page_number,
                body=body.decode("utf-8", errors="replace"),
            )
            raise

        log_with_context(
            logging.DEBUG,
            f"Copied {count} {request.category.value} log items "
            f"from page {request.page_number}",
            pipeline=request.pipeline_id,
            category=request.category.value,
            page_number=request.page_number,
        )
        return count
