"""API Dependencies — resolve the process-wide wizard for route handlers."""

from fastapi import Request

from session_assistant.services.wizard import SessionWizard


def get_wizard(request: Request) -> SessionWizard:
    """The wizard built in the lifespan; overridden in tests."""
    return request.app.state.wizard
