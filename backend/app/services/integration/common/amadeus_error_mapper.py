from app.services.integration.common.errors import AppError


def map_amadeus_error(error: dict) -> tuple[int, dict]:
    """Upstream error object -> (HTTP status, AppError body)."""
    code = str(error.get("code", "AMADEUS_ERROR"))
    detail = error.get("detail") or error.get("title") or "Unexpected error"

    if "availability" in detail.lower():
        return 409, AppError(
            code="NO_AVAILABILITY",
            message="The selected flight is no longer available. Please search again."
        ).model_dump()

    if "price" in detail.lower():
        return 409, AppError(
            code="PRICE_CHANGED",
            message="The fare has changed. Please confirm the new price."
        ).model_dump()

    return 400, AppError(code=code, message=detail).model_dump()
