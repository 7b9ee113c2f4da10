from typing import Any, Dict, List, Optional

from pydantic import BaseModel


class AppError(BaseModel):
    code: str
    message: str


class AmadeusError(Exception):
    """Base class for Amadeus integration failures."""


class AmadeusAuthError(AmadeusError):
    """Token exchange failed. Never absorbed by the enrichment layer."""


class AmadeusAPIError(AmadeusError):
    def __init__(
        self,
        status_code: int,
        message: str,
        errors: Optional[List[Dict[str, Any]]] = None
    ):
        super().__init__(message)
        self.status_code = status_code
        self.errors = errors or []


class FlightOfferValidationError(ValueError):
    def __init__(self, errors: List[str]):
        super().__init__(f"Flight offer validation failed: {', '.join(errors)}")
        self.errors = errors
