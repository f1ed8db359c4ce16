# API Module - FastAPI backend for the vault

from .main import create_app

__all__ = ["create_app"]
