"""Dependency injection for FastAPI endpoints"""

import uuid
from fastapi import HTTPException, Request
from splitpay_gateway.infrastructure.providers.registry import ProviderRegistry


def get_request_id(request: Request) -> str:
    """Extract request ID from request state"""
    return getattr(request.state, "request_id", "unknown")


def get_provider_registry(request: Request) -> ProviderRegistry:
    """Provide the process-wide payment provider registry"""
    return request.app.state.providers


def parse_uuid(value: str, label: str) -> uuid.UUID:
    """Parse a path/body id or fail with 400"""
    try:
        return uuid.UUID(str(value))
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Invalid {label} ID format")
