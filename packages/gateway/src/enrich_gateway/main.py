"""Gateway entrypoint.

Usage:
  python -m enrich_gateway.main
  HOST=0.0.0.0 PORT=8080 enrich-gateway

The process serves HTTP only. Temporal workers run separately
(`enrich-worker <component>`), one per component.
"""

import logging
import os

import uvicorn
from dotenv import load_dotenv

from enrich_gateway.app import create_app


def main() -> None:
    load_dotenv()
    logging.basicConfig(level=logging.INFO)
    uvicorn.run(
        create_app(),
        host=os.environ.get("HOST", "0.0.0.0"),
        port=int(os.environ.get("PORT", "8000")),
    )


if __name__ == "__main__":
    main()
