# Overview: Request decorators for API routes.

from functools import wraps
from flask import request, jsonify, g

from .services.settlement_service import OperatorContext


OPERATOR_ID_HEADER = "X-Cashier-Id"
OPERATOR_NAME_HEADER = "X-Cashier-Name"


def require_operator(f):
    """
    Require an identified cashier and expose it as g.operator.

    Sign-in happens outside this service; the front end forwards the
    signed-in cashier in headers:
    - X-Cashier-Id: required, stored on sale records as cashier_id
    - X-Cashier-Name: optional display name

    Returns 401 when X-Cashier-Id is missing or blank.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        cashier_id = (request.headers.get(OPERATOR_ID_HEADER) or "").strip()
        if not cashier_id:
            return jsonify({"error": "Cashier identification required"}), 401

        display_name = (request.headers.get(OPERATOR_NAME_HEADER) or "").strip() or None
        g.operator = OperatorContext(cashier_id=cashier_id, display_name=display_name)

        return f(*args, **kwargs)

    return decorated_function
