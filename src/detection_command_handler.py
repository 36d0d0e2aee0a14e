"""
Detection Command Handler
Runs detection commands one at a time and keeps the session state a UI polls:
status, last progress event, detected routers and last error
"""

import asyncio
import inspect
import logging
import time
from datetime import datetime, timezone
from typing import Dict, List, Optional, Any, Callable
from dataclasses import dataclass
from enum import Enum

from detection import RouterDetection, DetectionCancelled, ScanRangeError
from detection.cancellation import CancellationSource
from detection.address_enumerator import parse_scan_range
from detection.models import DetectionStrategy, ProgressEvent, RouterCandidate

logger = logging.getLogger(__name__)

COMMAND_TYPES = ("detect", "detect_all")

class DetectionStatus(Enum):
    """Detection command status"""
    PENDING = "pending"
    ACCEPTED = "accepted"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

@dataclass
class DetectionProgress:
    """Detection progress information"""
    command_id: str
    status: DetectionStatus
    execution_time_seconds: float  # Total time since the command started
    event: Optional[ProgressEvent]
    timestamp: datetime

    def to_dict(self) -> Dict[str, Any]:
        return {
            "command_id": self.command_id,
            "status": self.status.value,
            "execution_time_seconds": round(self.execution_time_seconds, 3),
            "event": self.event.to_dict() if self.event else None,
            "timestamp": self.timestamp.isoformat()
        }

@dataclass
class DetectionCommandResult:
    """Final detection command result"""
    command_id: str
    status: DetectionStatus
    execution_time_seconds: float
    detection_results: Dict[str, Any]
    error: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "command_id": self.command_id,
            "status": self.status.value,
            "execution_time_seconds": round(self.execution_time_seconds, 3),
            "detection_results": self.detection_results,
            "error": self.error
        }

class DetectionCommandHandler:
    """Handles detection command execution with progress tracking"""

    def __init__(self, detection: RouterDetection):
        self.detection = detection

        # Track active command
        self.active_command: Optional[Dict] = None
        self.progress_callbacks: List[Callable] = []
        self._task: Optional[asyncio.Task] = None
        self._cancel_source: Optional[CancellationSource] = None
        self._start_time: Optional[float] = None

        # Session state
        self.status: Optional[DetectionStatus] = None
        self.last_progress: Optional[DetectionProgress] = None
        self.last_result: Optional[DetectionCommandResult] = None
        self.detected_router: Optional[RouterCandidate] = None
        self.detected_routers: List[RouterCandidate] = []
        self.error: Optional[Dict[str, Any]] = None

    def add_progress_callback(self, callback: Callable[[DetectionProgress], Any]):
        """Add callback for progress updates"""
        self.progress_callbacks.append(callback)

    def _get_execution_time(self) -> float:
        if self._start_time is None:
            return 0.0
        return time.time() - self._start_time

    # ================== COMMAND LIFECYCLE ==================

    def _validate_command(self, command_type: str, parameters: Dict) -> Optional[Dict]:
        """Validate detection command parameters"""
        if command_type not in COMMAND_TYPES:
            return {
                "code": "INVALID_COMMAND_TYPE",
                "message": f"Unknown command type: {command_type}",
                "details": {"supported": list(COMMAND_TYPES)}
            }

        scan_range = parameters.get('scan_range')
        if scan_range is not None:
            try:
                parse_scan_range(scan_range)
            except ScanRangeError as e:
                return {"code": "INVALID_SCAN_RANGE", "message": str(e)}

        for strategy in parameters.get('strategies') or []:
            try:
                DetectionStrategy(strategy)
            except ValueError:
                return {
                    "code": "INVALID_STRATEGY",
                    "message": f"Unknown detection strategy: {strategy}",
                    "details": {"supported": [s.value for s in DetectionStrategy]}
                }

        max_results = parameters.get('max_results')
        if max_results is not None and (not isinstance(max_results, int) or max_results < 1):
            return {
                "code": "INVALID_MAX_RESULTS",
                "message": "max_results must be a positive integer"
            }

        return None

    def _failed(self, command_id: str, error: Dict) -> DetectionCommandResult:
        return DetectionCommandResult(
            command_id=command_id,
            status=DetectionStatus.FAILED,
            execution_time_seconds=0,
            detection_results={},
            error=error
        )

    def _begin(self, command: Dict) -> Optional[DetectionCommandResult]:
        """Reserve the handler for a command; returns a failed result if it can't run"""
        command_id = command.get('cmd_id') or f"detect_{int(time.time() * 1000)}"
        command['cmd_id'] = command_id
        command_type = command.get('type', 'detect')
        parameters = command.get('params') or {}

        validation_error = self._validate_command(command_type, parameters)
        if validation_error:
            return self._failed(command_id, validation_error)

        if self.active_command:
            return self._failed(command_id, {
                "code": "DETECTION_IN_PROGRESS",
                "message": "Detection already in progress, cannot start new detection",
                "details": {
                    "current_detection_id": self.active_command['command_id']
                }
            })

        self.active_command = {
            "command_id": command_id,
            "type": command_type,
            "start_time": time.time(),
            "parameters": parameters
        }
        self._start_time = self.active_command['start_time']
        self._cancel_source = CancellationSource()
        self.status = DetectionStatus.ACCEPTED
        self.error = None
        self.detected_router = None
        self.detected_routers = []
        return None

    async def execute_command(self, command: Dict) -> DetectionCommandResult:
        """Execute a detection command to completion"""
        rejected = self._begin(command)
        if rejected:
            return rejected
        return await self._run(command)

    def start_command(self, command: Dict) -> Optional[DetectionCommandResult]:
        """
        Start a detection command in the background.
        Returns None once started, or the failed result when rejected.
        """
        rejected = self._begin(command)
        if rejected:
            return rejected
        self._task = asyncio.create_task(self._run(command))
        return None

    async def _run(self, command: Dict) -> DetectionCommandResult:
        command_id = command['cmd_id']
        command_type = command.get('type', 'detect')
        parameters = command.get('params') or {}

        async def on_progress(event: ProgressEvent):
            await self._update_progress(command_id, DetectionStatus.IN_PROGRESS, event)

        try:
            logger.info(f"[LAUNCH] Starting {command_type} command {command_id} with params: {parameters}")
            await self._update_progress(command_id, DetectionStatus.ACCEPTED)

            if command_type == "detect_all":
                routers = await self.detection.detect_all(
                    scan_range=parameters.get('scan_range'),
                    progress_sink=on_progress,
                    cancel_signal=self._cancel_source,
                    max_results=parameters.get('max_results')
                )
            else:
                router = await self.detection.detect(
                    scan_range=parameters.get('scan_range'),
                    use_cache=parameters.get('use_cache', True),
                    strategies=parameters.get('strategies'),
                    progress_sink=on_progress,
                    cancel_signal=self._cancel_source
                )
                routers = [router] if router else []

            self.detected_routers = routers
            self.detected_router = routers[0] if routers else None

            result = DetectionCommandResult(
                command_id=command_id,
                status=DetectionStatus.COMPLETED,
                execution_time_seconds=self._get_execution_time(),
                detection_results={
                    "total_routers_found": len(routers),
                    "routers_found": [r.to_dict() for r in routers]
                }
            )
            await self._update_progress(command_id, DetectionStatus.COMPLETED)

        except DetectionCancelled as e:
            logger.info(f"Detection command {command_id} cancelled")
            result = self._finish_with_error(command_id, DetectionStatus.CANCELLED, "DETECTION_CANCELLED", str(e))
            await self._update_progress(command_id, DetectionStatus.CANCELLED)

        except Exception as e:
            logger.error(f"Detection command {command_id} failed: {e}")
            result = self._finish_with_error(command_id, DetectionStatus.FAILED, "DETECTION_EXECUTION_ERROR", str(e))
            await self._update_progress(command_id, DetectionStatus.FAILED)

        finally:
            self.active_command = None
            self._cancel_source = None
            self._task = None

        self.last_result = result
        return result

    def _finish_with_error(self, command_id: str, status: DetectionStatus, code: str,
                           message: str) -> DetectionCommandResult:
        self.error = {"code": code, "message": message}
        return DetectionCommandResult(
            command_id=command_id,
            status=status,
            execution_time_seconds=self._get_execution_time(),
            detection_results={},
            error=self.error
        )

    async def _update_progress(self, command_id: str, status: DetectionStatus,
                               event: Optional[ProgressEvent] = None):
        """Update and broadcast detection progress"""
        self.status = status
        if event is None and self.last_progress and self.last_progress.command_id == command_id:
            event = self.last_progress.event

        progress = DetectionProgress(
            command_id=command_id,
            status=status,
            execution_time_seconds=self._get_execution_time(),
            event=event,
            timestamp=datetime.now(timezone.utc)
        )
        self.last_progress = progress

        for callback in self.progress_callbacks:
            try:
                result = callback(progress)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                logger.error(f"Progress callback failed: {e}")

    # ================== SESSION CONTROL ==================

    def cancel_detection(self, command_id: Optional[str] = None) -> bool:
        """Cancel the active detection; False when nothing (or another command) is running"""
        if not self.active_command:
            return False
        if command_id and self.active_command['command_id'] != command_id:
            return False

        self._cancel_source.cancel()
        logger.info(f"Cancellation requested for detection {self.active_command['command_id']}")
        return True

    def clear_cache(self):
        self.detection.clear_cache()

    def reset(self) -> bool:
        """Forget the last session; refused while a command is running"""
        if self.active_command:
            return False
        self.status = None
        self.last_progress = None
        self.last_result = None
        self.detected_router = None
        self.detected_routers = []
        self.error = None
        self._start_time = None
        return True

    def is_detection_active(self) -> bool:
        """Check if detection is currently active"""
        return self.active_command is not None

    async def wait(self) -> Optional[DetectionCommandResult]:
        """Wait for a background command started with start_command"""
        if self._task is not None:
            return await self._task
        return self.last_result

    def get_state(self) -> Dict[str, Any]:
        """Session snapshot for the API"""
        return {
            "is_detecting": self.is_detection_active(),
            "command_id": self.active_command['command_id'] if self.active_command else None,
            "status": self.status.value if self.status else None,
            "progress": self.last_progress.to_dict() if self.last_progress else None,
            "detected_router": self.detected_router.to_dict() if self.detected_router else None,
            "detected_routers": [r.to_dict() for r in self.detected_routers],
            "error": self.error,
            "cache_entries": len(self.detection.cache)
        }
