"""
FastAPI dependencies exposing the dispatch components stored on app.state.
"""

from typing import Optional

from fastapi import Header, Request

from medidispatch.core.allocation_engine import AllocationEngine
from medidispatch.core.change_notifier import ChangeNotifier
from medidispatch.core.entity_store import EntityStore
from medidispatch.core.query_views import QueryViews


def get_store(request: Request) -> EntityStore:
    return request.app.state.store


def get_engine(request: Request) -> AllocationEngine:
    return request.app.state.engine


def get_views(request: Request) -> QueryViews:
    return request.app.state.views


def get_notifier(request: Request) -> ChangeNotifier:
    return request.app.state.notifier


def get_hospital_scope(x_hospital_scope: Optional[str] = Header(None)) -> Optional[str]:
    """Hospital the caller is scoped to, as supplied by the auth layer."""
    if x_hospital_scope is None or not x_hospital_scope.strip():
        return None
    return x_hospital_scope.strip()
