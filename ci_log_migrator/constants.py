"""Shared constants for the CI log migration tool."""

# HTTP status codes
HTTP_OK = 200
HTTP_NOT_FOUND = 404
HTTP_RATE_LIMIT = 429
HTTP_SERVER_ERROR_MIN = 500
HTTP_SERVER_ERROR_MAX = 599

# Source API paths
PIPELINES_PATH = "/api/pipelines"
COPY_LOGS_PATH = "/api/copylogstocloudstorage"

# Request defaults
DEFAULT_MAX_ATTEMPTS = 5
DEFAULT_RETRY_DELAY = 1.0
DEFAULT_REQUEST_TIMEOUT = 30.0

# Pagination defaults
DEFAULT_PAGE_SIZE_FOR_PIPELINES_RETRIEVAL = 10
DEFAULT_PAGE_SIZE_FOR_MIGRATION = 5
DEFAULT_PAGES_TO_MIGRATE_IN_PARALLEL = 2
DEFAULT_PIPELINES_TO_MIGRATE_IN_PARALLEL = 1

# Checkpoint persistence
DEFAULT_CONFIG_PATH = "/configs/config.yaml"
DEFAULT_CONFIGMAP_NAME = "ci-log-migrator"
CONFIGMAP_DATA_KEY = "config.yaml"
FINISHED_PIPELINES_KEY = "finishedPipelines"
CHECKPOINT_BACKEND_FILE = "file"
CHECKPOINT_BACKEND_CONFIGMAP = "configmap"
IN_CLUSTER_NAMESPACE_FILE = "/var/run/secrets/kubernetes.io/serviceaccount/namespace"
