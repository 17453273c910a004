"""
Identity provider bridge: Firebase ID token -> verified email.
"""
from flask import current_app


class InvalidCredential(Exception):
    """Raised when a bearer token cannot be turned into a trusted email."""


def bearer_token(header_value):
    if not header_value:
        return None
    parts = header_value.split(' ', 1)
    if len(parts) != 2 or parts[0].lower() != 'bearer' or not parts[1].strip():
        return None
    return parts[1].strip()


def email_domain_allowed(email: str) -> bool:
    domains = current_app.config.get('ALLOWED_EMAIL_DOMAINS') or ()
    if not domains:
        return True
    return any(email.endswith(f"@{domain.lstrip('@')}") for domain in domains)


def verify_id_token(token: str) -> str:
    """
    Verify a Firebase ID token and return the lower-cased email it carries.

    Raises:
        InvalidCredential: provider not configured, token rejected by the
            provider, no verified email, or email outside the allowed domains
    """
    from google.auth.transport import requests
    from google.oauth2 import id_token

    project_id = current_app.config.get('FIREBASE_PROJECT_ID')
    if not project_id:
        # Without an audience google-auth accepts tokens from any project
        current_app.logger.error("[auth] FIREBASE_PROJECT_ID is not set; refusing all tokens")
        raise InvalidCredential('Identity provider is not configured')
    try:
        claims = id_token.verify_firebase_token(token, requests.Request(), audience=project_id)
    except ValueError as exc:
        raise InvalidCredential(f"Invalid token: {exc}") from exc

    claims = claims or {}
    email = claims.get('email')
    if not email:
        raise InvalidCredential('Token carries no email')
    if claims.get('email_verified') is not True:
        raise InvalidCredential('Email address is not verified')
    email = email.strip().lower()
    if not email_domain_allowed(email):
        raise InvalidCredential('Email domain not allowed')
    return email
