"""Domain errors raised by the approval workflow and match services.

Each error carries the HTTP status the API layer responds with; the
exception handler in app.main turns them into {"detail", "code"} bodies.
"""


class ProcurementError(Exception):
    status_code: int = 400
    code: str = "procurement_error"

    def __init__(self, detail: str):
        super().__init__(detail)
        self.detail = detail


class EntityNotFound(ProcurementError):
    status_code = 404
    code = "not_found"


class InvalidState(ProcurementError):
    status_code = 409
    code = "invalid_state"


class NoApprovalRuleConfigured(ProcurementError):
    status_code = 422
    code = "no_approval_rule_configured"


class StaleApprovalDecision(ProcurementError):
    """Another decision already landed on this approval level."""

    status_code = 409
    code = "stale_approval_decision"


class UnauthorizedApprover(ProcurementError):
    status_code = 403
    code = "unauthorized_approver"
