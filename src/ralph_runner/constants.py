STATE_FILE = ".ralph-state.json"
LOCK_FILE = ".ralph-lock"
LOCK_GUARD_FILE = ".ralph-lock.guard"  # flock'd while the lock file is inspected or replaced
PAUSE_FILE = ".ralph-pause"
LOG_FILE = ".ralph.log"
CONFIG_FILE = ".ralph.yaml"

DEFAULT_PLAN_FILE = "plan.md"
DEFAULT_MODEL = "opencode/claude-opus-4-5"
DEFAULT_AGENT_COMMAND = "opencode run --model {model} {prompt}"
DEFAULT_PROMPT = (
    "READ all of {plan}. Pick ONE task. If needed, verify via web/code search. "
    "Complete the task. Commit the change (update {plan} in the same commit). "
    "ONLY do one task unless the next steps are GLARINGLY OBVIOUS to run together. "
    "Update {plan} to mark the task done. "
    "If you learn a critical operational detail, write it to AGENTS.md. "
    "NEVER GIT PUSH. ONLY COMMIT."
)

DEFAULT_COLUMNS = 80
DEFAULT_ROWS = 24
DEFAULT_PAUSE_POLL_SECONDS = 1.0
DEFAULT_MAX_CONSECUTIVE_FAILURES = 3  # Non-zero agent exits in a row before the loop errors out
DEFAULT_LOG_LEVEL = "WARNING"
LOG_LEVELS = ("TRACE", "DEBUG", "INFO", "SUCCESS", "WARNING", "ERROR", "CRITICAL")
DEFAULT_MAX_VISIBLE_EVENTS = 200

PTY_TERM = "xterm-256color"
PTY_READ_CHUNK_BYTES = 4096
PTY_JOIN_TIMEOUT_SECONDS = 2  # Shared by both pipe readers once the child has exited
PTY_KILL_GRACE_SECONDS = 3
PTY_GROUP_POLL_SECONDS = 0.05

EVENT_CATEGORY_OUTPUT = "output"

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_INTERRUPTED = 130
