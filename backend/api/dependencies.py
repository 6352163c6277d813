"""
Dependency injection for the API service.
Provides the verification service to route handlers.
"""
from __future__ import annotations

from verifier.engine import DeathVerificationService

# Module-level singleton, initialized at startup
_service: DeathVerificationService | None = None


def init_dependencies(service: DeathVerificationService) -> None:
    """Initialize module-level singletons. Called once at startup."""
    global _service
    _service = service


def reset_dependencies() -> None:
    global _service
    _service = None


def get_verification_service() -> DeathVerificationService:
    """FastAPI dependency: returns the shared DeathVerificationService."""
    if _service is None:
        raise RuntimeError("DeathVerificationService not initialized; call init_dependencies first")
    return _service
