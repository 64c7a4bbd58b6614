class ToolUserError(ValueError):
    """Tool failure whose message is safe to show to the farmer."""


def tool_error(message: str) -> dict:
    return {"error": True, "message": message}
