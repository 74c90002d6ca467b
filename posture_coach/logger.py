# Structured Logging Module - Procedural Approach
from datetime import datetime
from typing import Any, Dict, Optional

from posture_coach import config


# ANSI Color Codes for Terminal
class Colors:
    BLUE = '\033[94m'
    GREEN = '\033[92m'
    YELLOW = '\033[93m'
    RED = '\033[91m'
    PURPLE = '\033[95m'
    CYAN = '\033[96m'
    WHITE = '\033[97m'
    RESET = '\033[0m'
    BOLD = '\033[1m'


# Step Prefixes with Emojis
STEP_PREFIXES = {
    "CALIB": "📐",
    "CLASSIFY": "🧍",
    "STATS": "📊",
    "BREAK": "⏰",
    "SYNC": "🔄",
    "DB": "💾",
    "AUTH": "🔐",
    "API": "🌐",
    "SYSTEM": "🔧",
    "INFO": "ℹ️",
    "ERROR": "❌",
    "SUCCESS": "✅",
    "WARNING": "⚠️"
}

# Categories still printed when LOG_LEVEL is WARNING or ERROR
_ALWAYS_SHOWN = {"ERROR", "WARNING"}
_ERRORS_ONLY = {"ERROR"}

# Next Step Suggestions
NEXT_STEPS = {
    "CALIB:UPRIGHT": "Sit in your typical relaxed posture and confirm the relaxed position",
    "CALIB:CALIBRATION": "Start the session to begin posture tracking",
    "BREAK:BREAK": "Stand up, stretch, and rest your eyes",
    "SYNC:STATS": "Remote snapshot updated, next push after the sync interval",
    "AUTH:JWT": "Send the token as a Bearer header to /api/stats/update",
    "DB:STATS": "Data persisted successfully",
    "API:REQUEST": "Processing request",
}


def get_timestamp() -> str:
    """Get formatted timestamp"""
    return datetime.now().strftime("%H:%M:%S.%f")[:-3]


def _should_log(step: str) -> bool:
    level = (config.LOG_LEVEL or "INFO").upper()
    if level == "ERROR":
        return step in _ERRORS_ONLY
    if level == "WARNING":
        return step in _ALWAYS_SHOWN
    return True


def log_step(step: str, action: str, data: Optional[Dict[str, Any]] = None, color: str = Colors.CYAN):
    """
    Log a step with structured format

    Args:
        step: Step category (CALIB, CLASSIFY, STATS, BREAK, SYNC, DB, etc.)
        action: Description of the action
        data: Optional dictionary of data to display
        color: ANSI color code
    """
    if not _should_log(step):
        return

    prefix = STEP_PREFIXES.get(step, "🔹")
    timestamp = get_timestamp()

    print(f"{color}{Colors.BOLD}[{timestamp}] {prefix} [{step}]{Colors.RESET} {action}")

    if data:
        for key, value in data.items():
            # Truncate long values
            if isinstance(value, str) and len(value) > 100:
                value = value[:97] + "..."
            print(f"   {Colors.WHITE}├─ {key}: {value}{Colors.RESET}")

    # Suggest next step
    next_step_key = f"{step}:{action.split()[0].upper()}" if action else step
    if next_step_key in NEXT_STEPS:
        print(f"   {Colors.YELLOW}└─ >>> Next: {NEXT_STEPS[next_step_key]}{Colors.RESET}")
    print()  # Blank line for readability


def log_calibration(action: str, data: Optional[Dict[str, Any]] = None):
    """Log calibration events"""
    log_step("CALIB", action, data, Colors.PURPLE)


def log_classifier(action: str, data: Optional[Dict[str, Any]] = None):
    """Log posture classification events"""
    log_step("CLASSIFY", action, data, Colors.BLUE)


def log_stats(action: str, data: Optional[Dict[str, Any]] = None):
    """Log session statistics events"""
    log_step("STATS", action, data, Colors.CYAN)


def log_break(action: str, data: Optional[Dict[str, Any]] = None):
    """Log break scheduler events"""
    log_step("BREAK", action, data, Colors.YELLOW)


def log_sync(action: str, data: Optional[Dict[str, Any]] = None):
    """Log remote sync events"""
    log_step("SYNC", action, data, Colors.GREEN)


def log_db(action: str, data: Optional[Dict[str, Any]] = None):
    """Log database events"""
    log_step("DB", action, data, Colors.WHITE)


def log_auth(action: str, data: Optional[Dict[str, Any]] = None):
    """Log authentication events"""
    log_step("AUTH", action, data, Colors.PURPLE)


def log_api(action: str, data: Optional[Dict[str, Any]] = None):
    """Log API events"""
    log_step("API", action, data, Colors.CYAN)


def log_info(action: str, data: Optional[Dict[str, Any]] = None):
    """Log informational events"""
    log_step("INFO", action, data, Colors.WHITE)


def log_error(action: str, error: Exception, data: Optional[Dict[str, Any]] = None):
    """Log errors with exception details"""
    error_data = dict(data or {})
    error_data["Error"] = str(error)
    error_data["Type"] = type(error).__name__
    log_step("ERROR", action, error_data, Colors.RED)


def log_success(action: str, data: Optional[Dict[str, Any]] = None):
    """Log success events"""
    log_step("SUCCESS", action, data, Colors.GREEN)


def log_warning(action: str, data: Optional[Dict[str, Any]] = None):
    """Log warnings"""
    log_step("WARNING", action, data, Colors.YELLOW)


def log_lifecycle(phase: str, details: str = ""):
    """
    Log major lifecycle events with clear visual separation

    Args:
        phase: Phase name (e.g., "STARTUP", "SESSION_START", "SESSION_END")
        details: Optional details
    """
    if not _should_log("SYSTEM"):
        return
    separator = "=" * 80
    print(f"\n{Colors.BOLD}{Colors.CYAN}{separator}{Colors.RESET}")
    print(f"{Colors.BOLD}{Colors.CYAN}>>> {phase} {details}{Colors.RESET}")
    print(f"{Colors.BOLD}{Colors.CYAN}{separator}{Colors.RESET}\n")
