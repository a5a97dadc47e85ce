"""
Permissive CORS headers for the public API.
Every endpoint answers OPTIONS with 200 and these headers and never reads the body.
"""
from typing import Any, Dict, Optional

from fastapi.responses import JSONResponse, Response

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Headers": "Content-Type,Authorization,X-Api-Key,X-Access-Key,Stripe-Signature",
    "Access-Control-Allow-Methods": "GET,POST,OPTIONS",
}


def preflight_response() -> Response:
    return Response(status_code=200, headers=CORS_HEADERS)


def cors_json(content: Dict[str, Any], status_code: int = 200, headers: Optional[Dict[str, str]] = None) -> JSONResponse:
    """JSONResponse carrying the CORS headers."""
    return JSONResponse(content=content, status_code=status_code, headers={**CORS_HEADERS, **(headers or {})})
