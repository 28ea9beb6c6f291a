from fastapi.responses import JSONResponse

from models.lifecycle import LifecycleResult

# Failure reasons that map to something other than 400
REASON_STATUS = {
    "user_not_found": 404,
    "notification_not_found": 404,
    "forbidden_in_production": 403,
}

REASON_MESSAGES = {
    "user_not_found": "User not found",
    "admin_account": "Admin accounts have no premium lifecycle",
    "already_free": "User is already on the free plan",
    "not_premium": "User does not have a premium plan",
    "lifetime_plan": "Lifetime plans do not renew",
    "auto_renew_disabled": "Auto-renew was turned off before the trial ended",
    "trial_mismatch": "Trial state changed; nothing to charge",
    "trial_not_finished": "The trial has not ended yet",
    "no_active_subscription": "No active subscription found",
    "forbidden_in_production": "This endpoint is disabled in production",
}


def success_response(data=None, message="OK", status=200):
    return JSONResponse(
        status_code=status,
        content={
            "ok": True,
            "data": data if data is not None else {},
            "error": None,
            "message": message,
        }
    )


def error_response(error_code, status=None, message=None, data=None):
    return JSONResponse(
        status_code=status or REASON_STATUS.get(error_code, 400),
        content={
            "ok": False,
            "data": data if data is not None else {},
            "error": error_code,
            "message": message or REASON_MESSAGES.get(error_code, "An error occurred"),
        }
    )


def result_response(result: LifecycleResult):
    """Render a lifecycle outcome: ok -> success envelope, otherwise its reason."""
    payload = result.model_dump(exclude={"ok", "reason"})
    if result.ok:
        return success_response(payload)
    return error_response(result.reason or "unknown_error", data=payload)
