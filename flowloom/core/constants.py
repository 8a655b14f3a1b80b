"""Shared constants for FlowLoom.

Defaults used when no configuration file overrides them.
"""

# =============================================================================
# Flow generation
# =============================================================================

# Maximum call depth traced from an entry point
DEFAULT_MAX_DEPTH = 5

# Upper bound for max_depth; tracing recurses once per level
MAX_TRACE_DEPTH = 200

# Concurrent flow generations per orchestrator run
DEFAULT_MAX_WORKERS = 4

# Entry point matches scoring below this are dropped
DEFAULT_MIN_RELEVANCE = 5

# Page size for flow searches
DEFAULT_PAGE_SIZE = 20

# =============================================================================
# Collaborators
# =============================================================================

# File written by the external scanner at the root of each working copy
STRUCTURE_FILENAME = "flowloom-structure.json"

# Timeout (seconds) for git subprocess calls
GIT_TIMEOUT_SECONDS = 60

# =============================================================================
# Storage
# =============================================================================

DEFAULT_DATABASE_URL = "sqlite:///flowloom.db"

DEFAULT_LOG_LEVEL = "INFO"
