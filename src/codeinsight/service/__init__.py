"""HTTP polling surface (FastAPI)."""

from codeinsight.service.app import create_app, run_service

__all__ = ["create_app", "run_service"]
