"""
JWT Auth Middleware — Parses JWT from Authorization header, sets g.jwt_*.

    Authorization: Bearer <token>  →  g.jwt_user_id, g.jwt_role

An absent or invalid token leaves g.jwt_user_id as None; onboarding.auth
decides whether the request may continue (X-User-Id is honoured only while
API_AUTH_ENABLED is off).
"""

import logging

import jwt as pyjwt
from flask import g, request

from onboarding.services.jwt_service import decode_access_token

logger = logging.getLogger(__name__)

# Paths that skip JWT auth entirely
JWT_SKIP_PREFIXES = (
    "/api/v1/health",
    "/static/",
)


def init_jwt_middleware(app):
    """Register JWT middleware as a before_request hook."""

    @app.before_request
    def _jwt_auth():
        g.jwt_user_id = None
        g.jwt_role = None

        path = request.path
        if not path.startswith("/api/v1/"):
            return
        for prefix in JWT_SKIP_PREFIXES:
            if path.startswith(prefix):
                return

        auth_header = request.headers.get("Authorization", "")
        if not auth_header.startswith("Bearer "):
            return

        token = auth_header[7:]  # Strip "Bearer "

        try:
            payload = decode_access_token(token)
            g.jwt_user_id = int(payload["sub"])
            g.jwt_role = payload.get("role")
        except pyjwt.ExpiredSignatureError:
            logger.info("Expired JWT on %s", path)
        except (pyjwt.InvalidTokenError, KeyError, ValueError):
            logger.warning("Invalid JWT on %s", path)
