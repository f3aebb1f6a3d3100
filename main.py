"""
Exam XML Converter Service: Main Entry Point
============================================
Starts the Flask-based conversion microservice.

Usage:
    python main.py                                    # Default: 0.0.0.0:5000
    python main.py --port 8000                        # Custom port
    python main.py --mastering-url http://localhost:9000
    python main.py --debug                            # Debug mode

The shuffle secret for XML mastering is read from EXAMXML_SHUFFLE_SECRET.
"""

import argparse
import logging
import os

from examxml.server import create_app

logging.basicConfig(
    level=logging.INFO,
    format="[%(asctime)s] %(levelname)-8s %(name)s: %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger(__name__)


def main():
    parser = argparse.ArgumentParser(description="Exam XML Converter Service")
    parser.add_argument("--host", default="0.0.0.0", help="Bind host")
    parser.add_argument("--port", type=int, default=5000, help="Bind port")
    parser.add_argument(
        "--mastering-url",
        default=os.environ.get("EXAMXML_MASTERING_URL"),
        help="Base URL of the mastering service",
    )
    parser.add_argument("--debug", action="store_true", help="Debug mode")
    args = parser.parse_args()

    app = create_app({
        "MASTERING_URL": args.mastering_url,
        "SHUFFLE_SECRET": os.environ.get("EXAMXML_SHUFFLE_SECRET"),
    })

    logger.info(f"Mastering service: {args.mastering_url or '(not configured)'}")
    logger.info(f"Starting server on {args.host}:{args.port}")
    app.run(host=args.host, port=args.port, debug=args.debug)


if __name__ == "__main__":
    main()
