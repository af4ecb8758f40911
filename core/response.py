"""
Standardized API response envelopes for consistent data structure
"""
from typing import Any, Dict, List, Optional
from datetime import datetime


def success_response(
    data: Any = None,
    message: str = "Operation successful",
    meta: Optional[Dict[str, Any]] = None
) -> Dict[str, Any]:
    """Create a success response"""
    return {
        "success": True,
        "message": message,
        "data": data,
        "meta": meta,
        "timestamp": datetime.utcnow().isoformat()
    }


def error_response(
    message: str,
    error_code: Optional[str] = None,
    details: Optional[Dict[str, Any]] = None
) -> Dict[str, Any]:
    """Create an error response"""
    return {
        "success": False,
        "error": message,
        "error_code": error_code,
        "details": details,
        "timestamp": datetime.utcnow().isoformat()
    }


def paginated_response(
    data: List[Any],
    page: int,
    per_page: int,
    total_items: int,
    message: str = "Data retrieved successfully"
) -> Dict[str, Any]:
    """Create a paginated response"""
    total_pages = (total_items + per_page - 1) // per_page if per_page else 1

    return {
        "success": True,
        "message": message,
        "data": data,
        "pagination": {
            "page": page,
            "per_page": per_page,
            "total_items": total_items,
            "total_pages": total_pages,
            "has_next": page < total_pages,
            "has_prev": page > 1
        },
        "timestamp": datetime.utcnow().isoformat()
    }
