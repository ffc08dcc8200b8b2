from typing import Optional, Any, Dict, List
from pydantic import BaseModel


class ResponseModel(BaseModel):
    """Standard API response envelope"""
    success: bool
    data: Optional[Any] = None
    message: Optional[str] = None
    error: Optional[Dict[str, Any]] = None


class PaginationModel(BaseModel):
    currentPage: int
    totalPages: int
    totalItems: int
    itemsPerPage: int
    hasNext: bool
    hasPrev: bool


class PaginatedResponse(BaseModel):
    items: List[Any]
    pagination: PaginationModel


def error_body(message: str, code: str, details: Any = None) -> Dict[str, Any]:
    return ResponseModel(
        success=False,
        message=message,
        error={"code": code, "details": details},
    ).model_dump()
