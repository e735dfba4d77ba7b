from typing import Any, Dict


def success(result: Any) -> Dict[str, Any]:
    return {"success": True, "result": result}


def failure(message: str) -> Dict[str, Any]:
    return {"success": False, "error": message}
