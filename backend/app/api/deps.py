"""Shared FastAPI dependencies."""

from fastapi import Request

from backend.app.config import Settings
from backend.app.llm.client import GenerationClient


def get_app_settings(request: Request) -> Settings:
    """Settings the application was created with."""
    settings: Settings = request.app.state.settings
    return settings


def get_generation_client(request: Request) -> GenerationClient:
    """Generation client created by the application lifespan."""
    client: GenerationClient = request.app.state.generation_client
    return client
