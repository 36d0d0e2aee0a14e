"""
Router detection API routes
"""

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel, Field
from typing import List, Optional
import logging

from detection_command_handler import DetectionCommandHandler

logger = logging.getLogger(__name__)

# Request models
class DetectRequest(BaseModel):
    scan_range: Optional[str] = None
    use_cache: bool = True
    strategies: Optional[List[str]] = None
    cmd_id: Optional[str] = None

class DetectAllRequest(BaseModel):
    scan_range: Optional[str] = None
    max_results: Optional[int] = Field(default=None, ge=1)
    cmd_id: Optional[str] = None

class CommandAccepted(BaseModel):
    command_id: str
    status: str


def _start(handler: DetectionCommandHandler, command: dict) -> CommandAccepted:
    """Start a background command or map the rejection to an HTTP error"""
    rejected = handler.start_command(command)
    if rejected:
        code = 409 if rejected.error['code'] == "DETECTION_IN_PROGRESS" else 400
        raise HTTPException(status_code=code, detail=rejected.error)
    return CommandAccepted(command_id=command['cmd_id'], status="accepted")


def create_detection_routes(handler: DetectionCommandHandler):
    """Create router detection routes"""
    router = APIRouter(prefix="/api/detection", tags=["detection"])

    @router.post("/detect", status_code=202, response_model=CommandAccepted)
    async def start_detect(request: DetectRequest):
        """Find the first router, trying strategies in order"""
        params = {"use_cache": request.use_cache}
        if request.scan_range:
            params["scan_range"] = request.scan_range
        if request.strategies is not None:
            params["strategies"] = request.strategies
        return _start(handler, {"cmd_id": request.cmd_id, "type": "detect", "params": params})

    @router.post("/detect-all", status_code=202, response_model=CommandAccepted)
    async def start_detect_all(request: DetectAllRequest):
        """Find every router in the range"""
        params = {}
        if request.scan_range:
            params["scan_range"] = request.scan_range
        if request.max_results is not None:
            params["max_results"] = request.max_results
        return _start(handler, {"cmd_id": request.cmd_id, "type": "detect_all", "params": params})

    @router.get("/status")
    async def get_status():
        """Current session state and last progress event"""
        return handler.get_state()

    @router.post("/cancel")
    async def cancel_detection(command_id: Optional[str] = None):
        """Cancel the running detection"""
        if not handler.cancel_detection(command_id):
            raise HTTPException(status_code=404, detail="No matching detection in progress")
        return {"message": "Cancellation requested"}

    @router.delete("/cache")
    async def clear_cache():
        handler.clear_cache()
        return {"message": "Detection cache cleared"}

    @router.post("/reset")
    async def reset_session():
        if not handler.reset():
            raise HTTPException(status_code=409, detail="Cannot reset while detection is running")
        return handler.get_state()

    return router
