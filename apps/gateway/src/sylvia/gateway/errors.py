"""统一错误响应"""

from starlette.responses import JSONResponse


def error_response(status_code: int, code: str, message: str) -> JSONResponse:
    """错误信封 {"error": {"code", "message"}}"""
    return JSONResponse(
        status_code=status_code,
        content={"error": {"code": code, "message": message}},
    )
