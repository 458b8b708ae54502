"""Shared constants used across the application."""

# Workflow Configuration Constants
# --------------------------------

DEFAULT_WORKFLOW_CONFIG_PATH = ".gitea/issue-workflow.yaml"
"""Path of the workflow policy document inside a repository."""

DEFAULT_BOARD_NAME = "Issue Workflow Board"
"""Board name used when the policy does not declare one."""

DEFAULT_CONFIG_VERSION = "1"
"""Version written by the default config generator."""

REGEX_PATTERN_PREFIX = "re:"
"""Classifier patterns starting with this prefix are treated as regular expressions."""

DEFAULT_IDLE_LABEL_THRESHOLDS = {"workflow/needs-info": 48.0, "workflow/needs-review": 72.0}
"""Hours without an update after which an issue holding one of these labels counts as blocked."""

# Gitea API Constants
# -------------------

DEFAULT_GITEA_API_URL = "http://localhost:3000/api/v1"
"""Default Gitea API base URL."""

DEFAULT_PAGE_SIZE = 50
"""Page size used when listing paginated Gitea resources."""

# Execution Constants
# -------------------

DEFAULT_MAX_CONCURRENCY = 5
"""Default width of the worker pool used for per-issue collaborator calls."""

DEFAULT_REQUEST_TIMEOUT = 30.0
"""Default timeout in seconds for a single Gitea API request."""

DEFAULT_MAX_RETRIES = 3
"""Default number of retries for a transient Gitea API error."""

RETRYABLE_STATUS_CODES = frozenset({429, 502, 503, 504})
"""HTTP status codes considered transient."""

# Report Constants
# ----------------

HEALTH_WEIGHT_OVER_SLA = 0.5
"""Weight of the percentage of open issues over their SLA in the health score."""

HEALTH_WEIGHT_UNLABELED = 0.3
"""Weight of the percentage of open issues missing a required label in the health score."""

HEALTH_WEIGHT_BLOCKED = 0.2
"""Weight of the percentage of blocked open issues in the health score."""

UNLABELED_BUCKET = "unlabeled"
"""Bucket name used in report breakdowns for issues without a label of that category."""
