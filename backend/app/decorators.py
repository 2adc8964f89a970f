# Overview: Request-context and permission decorators for API routes.

from functools import wraps
from flask import request, jsonify, g, current_app

from .errors import ValidationError
from .extensions import get_collaborator
from .services import permission_service


def _has_context() -> bool:
    return getattr(g, "ctx", None) is not None


def require_context(f):
    """
    Resolve the caller and establish tenant context.

    MULTI-TENANT: Sets g.ctx, the RequestContext every service call receives.
    Tenant and actor are never read from anywhere else.

    Returns 401 if the identity collaborator cannot resolve a caller.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        resolver = get_collaborator("identity")
        try:
            ctx = resolver.resolve(request)
        except ValidationError as e:
            return jsonify({"error": str(e)}), 401

        if ctx is None:
            return jsonify({"error": "Authentication required"}), 401

        g.ctx = ctx
        return f(*args, **kwargs)

    return decorated_function


def require_permission(permission_code: str):
    """
    Require a specific permission before the route body runs.

    Services check again; this only turns a denial into an early 403.
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            if not _has_context():
                return jsonify({"error": "Authentication required"}), 401

            if not permission_service.has_permission(g.ctx, permission_code):
                current_app.logger.warning(
                    "Permission denied on %s %s: tenant=%s actor=%s permission=%s",
                    request.method, request.path, g.ctx.tenant_id, g.ctx.actor_id, permission_code,
                )
                return jsonify({
                    "error": "Permission denied",
                    "required_permission": permission_code,
                }), 403

            return f(*args, **kwargs)

        return decorated_function
    return decorator
