"""
Application exceptions

Business errors raise AppError; the handler registered in main.py turns
it into ``{"error": message, "code": code}`` with the given HTTP status.

Codes are ``<http status><3-digit sequence>``, e.g. 402001.
"""
from __future__ import annotations


class AppError(Exception):
    """
    Application error

    Carries:
    - code: business error code, lets the client tell errors apart
    - message: user-facing text
    - status_code: HTTP status
    - provider_code: upstream error code kept for support diagnosis,
      logged but never rendered to the user

    Example:
        raise AppError(code=402001, message="Free scan limit reached", status_code=402)
    """

    def __init__(
        self,
        *,
        code: int,
        message: str,
        status_code: int = 400,
        provider_code: str | None = None,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.status_code = status_code
        self.provider_code = provider_code


def unauthorized(message: str = "Unauthorized") -> AppError:
    return AppError(code=401001, message=message, status_code=401)


def subscription_required() -> AppError:
    """No active subscription for a paid-only feature."""
    return AppError(
        code=402002,
        message="Эта функция доступна только по подписке.",
        status_code=402,
    )


def free_scan_limit_reached(limit: int) -> AppError:
    """
    The free tier is exhausted

    402 Payment Required so the client can offer the subscription upsell.
    """
    return AppError(
        code=402001,
        message=(
            f"Достигнут лимит {limit} бесплатных сканов с растением. "
            "Оформите подписку, чтобы продолжить."
        ),
        status_code=402,
    )


def not_found(message: str = "Not found") -> AppError:
    return AppError(code=404001, message=message, status_code=404)
