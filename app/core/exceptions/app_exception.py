from fastapi import HTTPException
from fastapi.responses import JSONResponse
from typing import Optional, Any


class AppHttpException(HTTPException):
    """HTTPException com corpo padronizado: detail e, quando houver, solution e errors."""

    def __init__(
        self,
        status_code: int,
        detail: str,
        solution: Optional[str] = None,
        errors: Optional[Any] = None,
        headers: Optional[dict] = None,
    ):
        super().__init__(status_code=status_code, detail=detail, headers=headers)
        self.solution = solution
        self.errors = errors

    @property
    def content(self) -> dict:
        content = {"detail": self.detail}
        if self.solution:
            content["solution"] = self.solution
        if self.errors:
            content["errors"] = self.errors
        return content

    def to_response(self) -> JSONResponse:
        return JSONResponse(status_code=self.status_code, content=self.content, headers=self.headers)
