"""Note-service client and async helpers shared by the CLI and pipelines."""

from .async_utils import run_sync
from .client import KeepClient

__all__ = ["KeepClient", "run_sync"]
