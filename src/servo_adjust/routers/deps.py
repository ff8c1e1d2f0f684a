"""Request-scoped accessors for the objects created by ``create_app``."""

from fastapi import Request

from servo_adjust.models.config import AppConfig
from servo_adjust.services.profiles import ProfileStore, ProfileUpdater


def get_app_config(request: Request) -> AppConfig:
    return request.app.state.config


def get_store(request: Request) -> ProfileStore:
    return request.app.state.store


def get_updater(request: Request) -> ProfileUpdater:
    return request.app.state.updater


def is_read_only(request: Request) -> bool:
    return get_app_config(request).storage.read_only
