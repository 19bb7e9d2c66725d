#  Proactive Engine - Entry Point
#
#  Launches the FastAPI server via uvicorn.
#
#  Depends on: proactive_engine/app.py, proactive_engine/config.py,
#              proactive_engine/logging_config.py
#  Used by:    (run directly)

import sys

import uvicorn

from proactive_engine.logging_config import setup_logging


def main():
    try:
        from proactive_engine.config import cfg
    except (FileNotFoundError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)

    setup_logging(
        level=cfg("server.log_level", "INFO"),
        fmt=cfg("server.log_format", "json"),
    )

    uvicorn.run(
        "proactive_engine.app:app",
        host=cfg("server.host", "0.0.0.0"),
        port=cfg("server.port", 5300),
        reload=cfg("server.reload", False),
    )


if __name__ == "__main__":
    main()
