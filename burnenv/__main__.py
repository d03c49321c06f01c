"""Run the drop server: ``python -m burnenv`` (configured via BURNENV_* env vars)."""
import logging

from .server import run_server

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
run_server()
