import os
import sys
import time

# Debug logging
DEBUG_LOG_PATH = os.path.expanduser("~/.config/sockwatch/debug.log")

# set SOCKWATCH_DEBUG_TIMING=1 to print timing diagnostics on stderr
TIMING_ENV_VAR = "SOCKWATCH_DEBUG_TIMING"
DEBUG_TIMING = os.environ.get(TIMING_ENV_VAR, "") != ""


def debug_log(msg):
    """Write a timestamped message to the debug log."""
    try:
        os.makedirs(os.path.dirname(DEBUG_LOG_PATH), exist_ok=True)
        with open(DEBUG_LOG_PATH, "a") as f:
            f.write(f"[{time.strftime('%Y-%m-%d %H:%M:%S')}] {msg}\n")
    except OSError:
        pass


def timing_enabled():
    return DEBUG_TIMING


def log_timing(label, start, extra=None):
    """Print elapsed time since `start` (a time.monotonic() value) when timing is on."""
    if not DEBUG_TIMING:
        return
    elapsed_ms = (time.monotonic() - start) * 1000.0
    if extra:
        print(f"[timing] {label}: {elapsed_ms:.2f}ms ({extra})", file=sys.stderr)
    else:
        print(f"[timing] {label}: {elapsed_ms:.2f}ms", file=sys.stderr)


def log_slow(label, start, threshold):
    """Report an operation that took longer than `threshold` seconds."""
    if not DEBUG_TIMING:
        return
    elapsed = time.monotonic() - start
    if elapsed > threshold:
        print(f"[timing] {label} slow: {elapsed * 1000.0:.2f}ms", file=sys.stderr)
