"""HTTP surface: provider and downstream webhooks plus operator routes."""

from dealflow.api.approvals import router as approvals_router
from dealflow.api.conversations import router as conversations_router
from dealflow.api.errors import register_error_handlers
from dealflow.api.simulate import router as simulate_router
from dealflow.api.webhooks import router as webhooks_router

__all__ = [
    "approvals_router",
    "conversations_router",
    "register_error_handlers",
    "simulate_router",
    "webhooks_router",
]
