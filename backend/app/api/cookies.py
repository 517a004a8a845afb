"""Auth cookie issuing and clearing."""
from fastapi import Response

from app.config import get_settings

settings = get_settings()


def set_access_cookie(response: Response, access_token: str) -> None:
    response.set_cookie(
        key=settings.access_cookie_name,
        value=access_token,
        httponly=True,
        secure=settings.cookie_secure,
        samesite=settings.cookie_samesite,
        path="/",
        max_age=settings.access_token_expire_minutes * 60,
    )


def set_refresh_cookie(response: Response, refresh_secret: str) -> None:
    """Issue the HttpOnly refresh cookie; it lives as long as the inactivity window."""
    response.set_cookie(
        key=settings.refresh_cookie_name,
        value=refresh_secret,
        httponly=True,
        secure=settings.cookie_secure,
        samesite=settings.cookie_samesite,
        path=settings.refresh_cookie_path,
        max_age=int(settings.inactivity_threshold.total_seconds()),
    )


def set_device_cookie(response: Response, device_id: str) -> None:
    """Device id is readable by the client; it carries no authority on its own."""
    response.set_cookie(
        key=settings.device_cookie_name,
        value=device_id,
        httponly=False,
        secure=settings.cookie_secure,
        samesite=settings.cookie_samesite,
        path="/",
        max_age=settings.device_cookie_max_age_days * 24 * 60 * 60,
    )


def set_auth_cookies(response: Response, access_token: str, refresh_secret: str) -> None:
    set_access_cookie(response, access_token)
    set_refresh_cookie(response, refresh_secret)


def clear_auth_cookies(response: Response) -> None:
    """Clear access and refresh cookies; the device cookie survives logout."""
    response.delete_cookie(
        key=settings.access_cookie_name,
        path="/",
        secure=settings.cookie_secure,
        httponly=True,
        samesite=settings.cookie_samesite,
    )
    response.delete_cookie(
        key=settings.refresh_cookie_name,
        path=settings.refresh_cookie_path,
        secure=settings.cookie_secure,
        httponly=True,
        samesite=settings.cookie_samesite,
    )
