from decimal import Decimal
from typing import Optional

from flask import Blueprint, request

from payroll_api.common.auth import requires_perms
from payroll_api.common.http import ok, fail
from payroll_api.services.tax import resolve_withholding

bp = Blueprint("tax", __name__, url_prefix="/api/v1/tax")


def _dec(x) -> Optional[Decimal]:
    if x is None or x == "":
        return None
    try:
        d = Decimal(str(x))
    except Exception:
        return None
    return d if d.is_finite() else None


@bp.get("/ter/preview")
@requires_perms("payroll.tax.read")
def ter_preview():
    """?gross=7500000&ptkp_status=TK/0 -> full TER resolution."""
    gross = _dec(request.args.get("gross"))
    if gross is None:
        return fail("gross must be a finite number", 422)
    ptkp = request.args.get("ptkp_status") or request.args.get("ptkp")
    res = resolve_withholding(gross, ptkp)
    return ok(res.as_dict(), gross=float(gross))
