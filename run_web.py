#!/usr/bin/env python
"""
Launch the Siap Panen FastAPI service.
"""

import argparse
import logging
import os
import sys

import uvicorn

sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from siap_panen.infra.config import get_config

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


def main():
    cfg = get_config()
    parser = argparse.ArgumentParser(
        description="Start the Siap Panen chat API",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    python run_web.py                    # default settings
    python run_web.py --port 8080        # listen on port 8080
    python run_web.py --reload           # auto-reload for development
        """,
    )
    parser.add_argument(
        "--host",
        type=str,
        default="0.0.0.0",
        help="bind address (default: 0.0.0.0)",
    )
    parser.add_argument(
        "--port",
        type=int,
        default=cfg.fastapi_port,
        help=f"port (default: FASTAPI_PORT or {cfg.fastapi_port})",
    )
    parser.add_argument(
        "--reload",
        action="store_true",
        help="enable auto-reload (development)",
    )
    parser.add_argument(
        "--workers",
        type=int,
        default=1,
        help="worker processes (default: 1)",
    )
    args = parser.parse_args()

    display_host = args.host if args.host != "0.0.0.0" else "localhost"
    logger.info("Starting Siap Panen API: http://%s:%s", display_host, args.port)
    logger.info("LLM provider: %s (%s)", cfg.llm_provider, cfg.llm_model)
    logger.info("Conversation store: %s", cfg.conversation_store)
    logger.info("API docs: http://%s:%s/docs", display_host, args.port)

    uvicorn.run(
        "siap_panen.api.server:app",
        host=args.host,
        port=args.port,
        reload=args.reload,
        workers=args.workers if not args.reload else 1,
        log_level="info",
    )


if __name__ == "__main__":
    main()
