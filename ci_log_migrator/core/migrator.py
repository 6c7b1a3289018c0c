"""
Main migrator class for the CI log migration tool
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Optional

from tqdm import tqdm

from ci_log_migrator.core.checkpoint import (
    CheckpointRecorder,
    CheckpointStore,
    create_checkpoint_store,
)
from ci_log_migrator.core.config import MigratorConfig
from ci_log_migrator.exceptions import MigrationAbortedError
from ci_log_migrator.services.log_copier import LogCopier
from ci_log_migrator.services.pipelines import PipelineLister
from ci_log_migrator.types import MigrationSummary, Pipeline
from ci_log_migrator.utils.api import ApiClient
from ci_log_migrator.utils.logging import log_with_context


@dataclass
class PipelineOutcome:
    """What happened to one pipeline."""

    pipeline: Pipeline
    items_copied: int = 0
    error: Optional[Exception] = None


class LogMigrator:
    """Migrates the logs of every unfinished pipeline to cloud storage."""

    def __init__(
        self,
        config: MigratorConfig,
        api_client: Optional[ApiClient] = None,
        checkpoint_store: Optional[CheckpointStore] = None,
        show_progress: bool = True,
    ):
        self.config = config
        self.api_client = api_client or ApiClient(
            config.api_key,
            max_attempts=config.max_attempts,
            retry_delay=config.retry_delay,
            request_timeout=config.request_timeout,
        )
        self.checkpoint_store = checkpoint_store or create_checkpoint_store(
            config.checkpoint_backend, config.config_path, config.configmap_name
        )
        self.show_progress = show_progress

        self.lister = PipelineLister(
            self.api_client, config.api_url, config.page_size_for_pipelines_retrieval
        )
        self.copier = LogCopier(
            self.api_client,
            config.api_url,
            config.page_size_for_migration,
            config.page_parallelism,
        )

        self.summary = MigrationSummary(dry_run=config.dry_run)
        self.recorder: Optional[CheckpointRecorder] = None

    def migrate(self) -> MigrationSummary:
        """Run the migration.

        Returns:
            The run summary.

        Raises:
            CheckpointError: If the checkpoint cannot be loaded or saved.
            PipelineListingError: If the pipelines cannot be retrieved.
            MigrationAbortedError: If a pipeline failed; names the pipeline and
                how many pipelines were left unprocessed.
        """
        self.recorder = CheckpointRecorder.load(self.checkpoint_store)

        pipelines = self.lister.list_all_pipelines()
        self.summary.pipelines_listed = len(pipelines)
        log_with_context(logging.INFO, f"Retrieved {len(pipelines)} pipelines")

        pending = self.pending_pipelines(pipelines)
        self.summary.pipelines_skipped = len(pipelines) - len(pending)
        log_with_context(
            logging.INFO,
            f"{len(pending)} pipelines to migrate, "
            f"{self.summary.pipelines_skipped} already finished",
        )

        if self.config.dry_run:
            for pipeline in pending:
                log_with_context(
                    logging.INFO,
                    f"[DRY RUN] Would migrate logs for pipeline {pipeline.full_repo_path}",
                    pipeline=pipeline.full_repo_path,
                )
            return self.summary

        if self.config.pipelines_to_migrate_in_parallel > 1:
            self._migrate_in_groups(pending)
        else:
            self._migrate_sequentially(pending)

        log_with_context(logging.INFO, "Finished migrating logs to cloud storage")
        return self.summary

    def pending_pipelines(self, pipelines: list[Pipeline]) -> list[Pipeline]:
        """Drop pipelines already in the checkpoint, and duplicates from the listing."""
        if self.recorder is None:
            raise RuntimeError("Checkpoint not loaded")

        pending = []
        seen: set[str] = set()
        for pipeline in pipelines:
            pipeline_id = pipeline.full_repo_path
            if self.recorder.is_finished(pipeline_id):
                log_with_context(
                    logging.DEBUG,
                    f"Pipeline {pipeline_id} already finished, skipping",
                    pipeline=pipeline_id,
                )
                continue
            if pipeline_id in seen:
                continue
            seen.add(pipeline_id)
            pending.append(pipeline)
        return pending

    def _migrate_sequentially(self, pending: list[Pipeline]) -> None:
        pbar = tqdm(pending, desc="Migrating pipelines", disable=not self.show_progress)
        for pipeline in pbar:
            pbar.set_postfix_str(pipeline.full_repo_path)
            outcome = self._run_pipeline(pipeline)
            self._complete(outcome)
            if outcome.error is not None:
                self._abort(outcome)

    def _migrate_in_groups(self, pending: list[Pipeline]) -> None:
        group_size = self.config.pipelines_to_migrate_in_parallel

        with ThreadPoolExecutor(
            max_workers=group_size, thread_name_prefix="pipeline"
        ) as executor, tqdm(
            total=len(pending),
            desc="Migrating pipelines",
            disable=not self.show_progress,
        ) as pbar:
            for start in range(0, len(pending), group_size):
                group = pending[start : start + group_size]
                # Outcomes come back to this thread, which alone writes the checkpoint
                outcomes = list(executor.map(self._run_pipeline, group))

                for outcome in outcomes:
                    self._complete(outcome)
                    pbar.update(1)

                failed = [outcome for outcome in outcomes if outcome.error is not None]
                if failed:
                    self._abort(failed[0])

    def _run_pipeline(self, pipeline: Pipeline) -> PipelineOutcome:
        try:
            return PipelineOutcome(
                pipeline, items_copied=self.copier.migrate_pipeline(pipeline)
            )
        except Exception as e:
            return PipelineOutcome(pipeline, error=e)

    def _complete(self, outcome: PipelineOutcome) -> None:
        pipeline_id = outcome.pipeline.full_repo_path
        if outcome.error is not None:
            self.summary.pipelines_failed.append(pipeline_id)
            log_with_context(
                logging.ERROR,
                f"Failed copying logs to cloud storage for pipeline {pipeline_id}: "
                f"{outcome.error}",
                pipeline=pipeline_id,
            )
            return

        if self.recorder is None:
            raise RuntimeError("Checkpoint not loaded")
        self.recorder.record(pipeline_id)
        self.summary.pipelines_migrated.append(pipeline_id)
        self.summary.items_copied += outcome.items_copied

    def _abort(self, outcome: PipelineOutcome) -> None:
        pipeline_id = outcome.pipeline.full_repo_path
        remaining = self.summary.pipelines_remaining
        raise MigrationAbortedError(
            f"Failed copying logs to cloud storage for pipeline {pipeline_id}: "
            f"{outcome.error}. {remaining} pipelines remain unprocessed.",
            pipeline=pipeline_id,
            remaining=remaining,
            summary=self.summary,
        ) from outcome.error

    def close(self) -> None:
        self.api_client.close()

