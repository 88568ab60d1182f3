"""Shared constants for autom8."""

# Config layout
CONFIG_DIR_NAME = "autom8"
CONFIG_DIR_ENV = "AUTOM8_CONFIG_DIR"
CONFIG_FILENAME = "config.yaml"
SPEC_SUBDIR = "spec"
RUNS_SUBDIR = "runs"
SESSIONS_SUBDIR = "sessions"

STATE_FILE = "state.json"
METADATA_FILE = "metadata.json"
LIVE_FILE = "live.json"

# Session identity
MAIN_SESSION_ID = "main"
SESSION_ID_LEN = 8

# Plan defaults
DEFAULT_BRANCH_NAME = "autom8/feature"

# Assistant protocol
CLAUDE_BINARY = "claude"
COMPLETION_SIGNAL = "<promise>COMPLETE</promise>"
REVIEW_FILE = "autom8_review.md"

# Retry limits
MAX_REVIEW_ITERATIONS = 3
MAX_JSON_RETRY_ATTEMPTS = 3

# Output bounds
OUTPUT_SNIPPET_CHARS = 1000
WORK_SUMMARY_MAX_CHARS = 500
SPEC_PREVIEW_CHARS = 200
JSON_PREVIEW_CHARS = 500
LIVE_MAX_LINES = 50
HEARTBEAT_STALE_THRESHOLD_SECS = 60

# Usage phase keys
PHASE_PLANNING = "Planning"
PHASE_FINAL_REVIEW = "Final Review"
PHASE_PR_AND_COMMIT = "PR & Commit"

# Branches that never get a PR
PROTECTED_BRANCHES = ("main", "master")
