"""Checkpoint persistence for resumable migrations.

The checkpoint is a YAML document ``{finishedPipelines: [...]}`` listing the
pipelines whose logs have been fully copied. It can live in a local file or
in a Kubernetes ConfigMap; either way it is loaded once at startup and
rewritten after every pipeline that completes.
"""

from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import Any, Iterable, Protocol

import yaml
from kubernetes import client
from kubernetes.client.rest import ApiException

from ci_log_migrator.constants import (
    CHECKPOINT_BACKEND_FILE,
    CONFIGMAP_DATA_KEY,
    FINISHED_PIPELINES_KEY,
    HTTP_NOT_FOUND,
    IN_CLUSTER_NAMESPACE_FILE,
)
from ci_log_migrator.exceptions import CheckpointError
from ci_log_migrator.utils.logging import log_with_context


class CheckpointStore(Protocol):
    """Backend that persists the list of finished pipelines."""

    def load(self) -> list[str]: ...

    def save(self, finished: list[str]) -> None: ...


def parse_checkpoint_document(text: str | None, source: str) -> list[str]:
    """Extract the finished pipelines from a checkpoint YAML document.

    An empty document yields an empty list.

    Raises:
        CheckpointError: If the document is not valid YAML or has the wrong shape.
    """
    if not text:
        return []
    try:
        raw = yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise CheckpointError(f"Checkpoint in {source} is not valid YAML: {e}") from e

    if raw is None:
        return []
    if not isinstance(raw, dict):
        raise CheckpointError(f"Checkpoint in {source} has invalid format")

    finished = raw.get(FINISHED_PIPELINES_KEY) or []
    if not isinstance(finished, list) or not all(
        isinstance(item, str) for item in finished
    ):
        raise CheckpointError(
            f"Checkpoint in {source} has an invalid '{FINISHED_PIPELINES_KEY}' list"
        )
    return finished


def dump_checkpoint_document(finished: list[str]) -> str:
    return yaml.safe_dump(
        {FINISHED_PIPELINES_KEY: list(finished)}, default_flow_style=False
    )


class FileCheckpointStore:
    """Checkpoint kept in a YAML file on local disk."""

    def __init__(self, path: Path | str) -> None:
        self.path = Path(path)

    def load(self) -> list[str]:
        """Load finished pipelines, returning an empty list if the file is absent."""
        if not self.path.exists():
            log_with_context(
                logging.INFO,
                f"No checkpoint found at {self.path}, starting from scratch",
            )
            return []
        try:
            text = self.path.read_text()
        except OSError as e:
            raise CheckpointError(f"Failed to read checkpoint {self.path}: {e}") from e
        return parse_checkpoint_document(text, str(self.path))

    def save(self, finished: list[str]) -> None:
        """Atomically save checkpoint to disk (write .tmp + rename)."""
        tmp = self.path.with_suffix(".tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp.write_text(dump_checkpoint_document(finished))
            tmp.replace(self.path)
        except OSError as e:
            raise CheckpointError(
                f"Failed to write checkpoint {self.path}: {e}"
            ) from e


class ConfigMapCheckpointStore:
    """Checkpoint kept under one data key of a Kubernetes ConfigMap."""

    def __init__(
        self,
        name: str,
        namespace: str,
        core_api: client.CoreV1Api,
        data_key: str = CONFIGMAP_DATA_KEY,
    ) -> None:
        self.name = name
        self.namespace = namespace
        self.core_api = core_api
        self.data_key = data_key

    @classmethod
    def from_in_cluster(cls, name: str) -> ConfigMapCheckpointStore:
        """Build a store using the pod's service account and namespace."""
        from kubernetes import config as kube_config

        try:
            kube_config.load_incluster_config()
        except kube_config.ConfigException as e:
            raise CheckpointError(
                f"Failed creating Kubernetes API client: {e}"
            ) from e

        try:
            namespace = Path(IN_CLUSTER_NAMESPACE_FILE).read_text().strip()
        except OSError:
            namespace = "default"

        return cls(name, namespace or "default", client.CoreV1Api())

    @property
    def source(self) -> str:
        return f"configmap {self.namespace}/{self.name}"

    def _read(self) -> Any:
        try:
            return self.core_api.read_namespaced_config_map(self.name, self.namespace)
        except ApiException as e:
            if e.status == HTTP_NOT_FOUND:
                return None
            raise CheckpointError(
                f"Failed retrieving {self.source}: {e.reason}"
            ) from e

    def load(self) -> list[str]:
        """Load finished pipelines; a missing ConfigMap or key is an empty list."""
        config_map = self._read()
        if config_map is None:
            log_with_context(
                logging.INFO,
                f"No checkpoint found in {self.source}, starting from scratch",
            )
            return []
        data = config_map.data or {}
        return parse_checkpoint_document(data.get(self.data_key), self.source)

    def save(self, finished: list[str]) -> None:
        """Write the checkpoint, creating the ConfigMap when it does not exist yet."""
        document = dump_checkpoint_document(finished)
        config_map = self._read()

        try:
            if config_map is None:
                body = client.V1ConfigMap(
                    metadata=client.V1ObjectMeta(name=self.name),
                    data={self.data_key: document},
                )
                self.core_api.create_namespaced_config_map(self.namespace, body)
            else:
                if config_map.data is None:
                    config_map.data = {}
                config_map.data[self.data_key] = document
                self.core_api.replace_namespaced_config_map(
                    self.name, self.namespace, config_map
                )
        except ApiException as e:
            raise CheckpointError(f"Failed updating {self.source}: {e.reason}") from e


def create_checkpoint_store(
    backend: str, config_path: str, configmap_name: str
) -> CheckpointStore:
    """Build the checkpoint backend selected by name."""
    if backend == CHECKPOINT_BACKEND_FILE:
        return FileCheckpointStore(config_path)
    return ConfigMapCheckpointStore.from_in_cluster(configmap_name)


class CheckpointRecorder:
    """Single owner of the finished-pipelines list.

    Pipelines are only ever appended, and every append is flushed to the
    store before ``record`` returns. Calls are serialized with a lock.
    """

    def __init__(self, store: CheckpointStore, finished: Iterable[str] = ()) -> None:
        self.store = store
        self._finished: list[str] = []
        self._finished_set: set[str] = set()
        self._lock = threading.Lock()
        for pipeline_id in finished:
            if pipeline_id not in self._finished_set:
                self._finished.append(pipeline_id)
                self._finished_set.add(pipeline_id)

    @classmethod
    def load(cls, store: CheckpointStore) -> CheckpointRecorder:
        finished = store.load()
        log_with_context(
            logging.INFO, f"Loaded checkpoint with {len(finished)} finished pipelines"
        )
        return cls(store, finished)

    @property
    def finished(self) -> list[str]:
        with self._lock:
            return list(self._finished)

    def is_finished(self, pipeline_id: str) -> bool:
        with self._lock:
            return pipeline_id in self._finished_set

    def record(self, pipeline_id: str) -> None:
        """Mark a pipeline as finished and persist the checkpoint.

        Raises:
            CheckpointError: If the store fails to save.
        """
        with self._lock:
            if pipeline_id in self._finished_set:
                return
            self._finished.append(pipeline_id)
            self._finished_set.add(pipeline_id)
            snapshot = list(self._finished)
            self.store.save(snapshot)

        log_with_context(
            logging.DEBUG,
            f"Checkpoint updated with {len(snapshot)} finished pipelines",
            pipeline=pipeline_id,
        )
