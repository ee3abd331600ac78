"""Tagged results returned by every data-access collaborator."""

from dataclasses import dataclass
from typing import Any, Dict, Union


@dataclass(frozen=True)
class Found:
    value: Any


@dataclass(frozen=True)
class NotFound:
    message: str


@dataclass(frozen=True)
class Failed:
    """A lookup that could not be answered; ``kind`` names the failing layer."""

    kind: str
    message: str


LookupResult = Union[Found, NotFound, Failed]


def to_tool_result(result: LookupResult) -> Dict[str, Any]:
    """Convert a lookup result to the ``{"success", "data" | "error"}`` tool shape."""
    if isinstance(result, Found):
        data = result.value
        if isinstance(data, list):
            return {"success": True, "count": len(data), "data": data}
        return {"success": True, "data": data}
    return {"success": False, "error": result.message}
