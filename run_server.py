"""
Development server runner.

Usage: python run_server.py
"""

from __future__ import annotations

import uvicorn

from crewtrack.core.config import get_settings


def main() -> None:
    settings = get_settings()
    uvicorn.run(
        "crewtrack.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.app_env == "development",
        reload_dirs=["crewtrack"],
    )


if __name__ == "__main__":
    main()
