# payroll_api/common/auth.py
from __future__ import annotations

from functools import wraps
from typing import Iterable, Optional, Set

from flask_jwt_extended import jwt_required, get_jwt, get_jwt_identity

from payroll_api.common.http import fail


# ---------- helpers ----------

def _wildcard_match(user_perm: str, required: str) -> bool:
    """
    Match required permission against a user's permission with simple wildcards.
    Examples:
      user_perm: 'payroll.*'          matches required: 'payroll.run.write'
      user_perm: 'payroll.run.*'      matches required: 'payroll.run.read'
      user_perm: 'payroll.run.read'   matches only exact
    """
    if user_perm == required:
        return True
    if user_perm.endswith(".*"):
        prefix = user_perm[:-2]
        return required.startswith(prefix)
    return False


def _has_any_perm(user_perms: Set[str], required_perms: Iterable[str]) -> bool:
    if not required_perms:
        return True
    if not user_perms:
        return False
    for req in required_perms:
        # exact or wildcard on user's side
        if any(_wildcard_match(up, req) for up in user_perms):
            return True
    return False


def current_actor() -> Optional[str]:
    """JWT identity of the caller, recorded in audit columns."""
    uid = get_jwt_identity()
    return str(uid) if uid is not None else None


# ---------- decorators ----------

def requires_perms(*perm_codes: str):
    """
    Require that the current user has ANY of the given permission codes.

    Permissions and roles are read from the 'perms' / 'roles' claims issued
    at login; the 'admin' role always passes.

    Supports simple wildcards granted to the user:
      - 'payroll.*' or 'payroll.run.*'
    """
    def outer(fn):
        @wraps(fn)
        @jwt_required()
        def inner(*args, **kwargs):
            # If nothing specified, allow (no-op)
            if not perm_codes:
                return fn(*args, **kwargs)

            claims = get_jwt() or {}
            jwt_roles = set(claims.get("roles") or [])
            if "admin" in jwt_roles:
                return fn(*args, **kwargs)

            if get_jwt_identity() is None:
                return fail("Unauthorized", status=401)

            jwt_perms = set(claims.get("perms") or [])
            if not _has_any_perm(jwt_perms, perm_codes):
                return fail("Forbidden", status=403)

            return fn(*args, **kwargs)
        return inner
    return outer
