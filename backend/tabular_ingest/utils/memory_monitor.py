"""Memory usage logging for long scans and imports."""

import logging
import resource
import sys

logger = logging.getLogger(__name__)


def get_peak_memory_usage() -> int:
    """Peak resident set size of this process in bytes."""
    try:
        peak = resource.getrusage(resource.RUSAGE_SELF).ru_maxrss
    except (OSError, ValueError) as e:
        logger.warning(f"Could not get memory usage: {e}")
        return 0
    # macOS reports bytes, Linux reports KB
    return peak if sys.platform == "darwin" else peak * 1024


def format_bytes(bytes_val: float) -> str:
    """Format bytes to human-readable string."""
    for unit in ["B", "KB", "MB", "GB"]:
        if bytes_val < 1024.0:
            return f"{bytes_val:.1f}{unit}"
        bytes_val /= 1024.0
    return f"{bytes_val:.1f}TB"


def log_memory_status(context: str = "") -> None:
    """Log peak memory so streaming regressions show up in the logs."""
    context_str = f" [{context}]" if context else ""
    logger.info(f"Memory status{context_str}: peak RSS {format_bytes(get_peak_memory_usage())}")
