#!/usr/bin/env python3
"""
Formzilla - Main Entry Point

Runs the FastAPI backend with uvicorn.

Usage:
    python main.py              # Run the API server
    python main.py --reload     # Run with auto-reload
    python main.py --check      # Check dependencies and configuration
"""

import argparse
import importlib.util
import sys
import time
from pathlib import Path


PROJECT_ROOT = Path(__file__).parent.absolute()


class Color:
    """ANSI color codes for terminal output."""
    RESET = "\033[0m"
    RED = "\033[91m"
    GREEN = "\033[92m"
    YELLOW = "\033[93m"
    BOLD = "\033[1m"


def log(message: str, color: str = "", prefix: str = "MAIN") -> None:
    """Print a formatted log message."""
    timestamp = time.strftime("%H:%M:%S")
    reset = Color.RESET if color else ""
    print(f"{color}[{timestamp}] [{prefix}] {message}{reset}")


def log_success(message: str) -> None:
    log(message, Color.GREEN)


def log_error(message: str) -> None:
    log(message, Color.RED)


def log_warning(message: str) -> None:
    log(message, Color.YELLOW)


def check_python_version() -> bool:
    """Check Python version is 3.11+."""
    version = sys.version_info
    if version < (3, 11):
        log_error(f"Python 3.11+ required. Current: {version.major}.{version.minor}")
        return False
    log_success(f"Python version: {version.major}.{version.minor}.{version.micro}")
    return True


def check_backend_dependencies() -> bool:
    """Check backend Python dependencies."""
    required_modules = [
        "fastapi",
        "uvicorn",
        "pydantic_settings",
        "structlog",
        "openai",
        "tenacity",
        "fitz",
        "PIL",
        "jose",
    ]

    missing = [name for name in required_modules if importlib.util.find_spec(name) is None]
    if missing:
        log_warning(f"Missing Python modules: {', '.join(missing)}")
        log_warning("Run: pip install -e .")
        return False

    log_success("Backend dependencies: OK")
    return True


def check_configuration() -> bool:
    """Load settings and report missing secrets."""
    from formzilla.config import get_settings

    env_file = PROJECT_ROOT / ".env"
    if not env_file.exists():
        log_warning(".env file not found. Using environment and defaults")

    settings = get_settings()
    ok = True

    if not settings.vision.is_configured:
        log_error("VISION_API_KEY is not set. Analysis rounds will fail")
        ok = False
    else:
        log_success(f"Vision model: {settings.vision.model}")

    if len(settings.security.secret_key.get_secret_value()) < 32:
        log_warning("SECRET_KEY is too short (< 32 characters). Use strong keys in production!")

    log_success(f"Data directory: {settings.storage.data_dir}")
    return ok


def run_checks() -> bool:
    """Run all dependency and configuration checks."""
    log(f"{Color.BOLD}Running pre-flight checks...{Color.RESET}")
    print()

    checks = [
        ("Python Version", check_python_version),
        ("Backend Dependencies", check_backend_dependencies),
        ("Configuration", check_configuration),
    ]

    all_passed = True
    for name, check_func in checks:
        try:
            if not check_func():
                all_passed = False
        except Exception as e:
            log_error(f"{name} check failed: {e}")
            all_passed = False

    print()
    if all_passed:
        log_success("All checks passed!")
    else:
        log_error("Some checks failed. Please fix the issues above.")

    return all_passed


def main() -> int:
    from formzilla.config import get_settings

    settings = get_settings()

    parser = argparse.ArgumentParser(description="Formzilla API server")
    parser.add_argument("--host", default=settings.api.host, help="Bind address")
    parser.add_argument("--port", type=int, default=settings.api.port, help="Bind port")
    parser.add_argument("--reload", action="store_true", default=settings.api.reload, help="Auto-reload on changes")
    parser.add_argument("--check", action="store_true", help="Check dependencies and configuration")
    args = parser.parse_args()

    if args.check:
        return 0 if run_checks() else 1

    import uvicorn

    log_success(f"Starting API on http://{args.host}:{args.port} (docs at /docs)")
    uvicorn.run(
        "formzilla.api.app:app",
        host=args.host,
        port=args.port,
        reload=args.reload,
        log_config=None,
    )
    return 0


if __name__ == "__main__":
    sys.exit(main())
