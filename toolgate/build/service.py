"""
Build service: detect the backend and run one build operation.

Detection happens on every request. The project can change between calls
(an agent may add a Makefile), so backend choices are never cached.
"""

import logging
import time
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from toolgate.build.backends import OPERATIONS, BackendRegistry
from toolgate.errors import BuildError
from toolgate.execution import ExecContext, Executor, LocalExecutor


logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 300

ERROR_VALIDATION = "validation_error"
ERROR_BACKEND_DETECTION = "backend_detection"
ERROR_INVALID_OPERATION = "invalid_operation"
ERROR_OPERATION_FAILED = "operation_failed"
ERROR_TIMEOUT = "timeout"


@dataclass
class BuildRequest:
    project_root: str
    operation: str
    timeout: float = DEFAULT_TIMEOUT


@dataclass
class BuildResponse:
    success: bool
    backend: str
    operation: str
    output: str = ""
    duration: float = 0.0
    error: str = ""
    metadata: Dict[str, Any] = field(default_factory=dict)
    request_id: str = ""

    @property
    def duration_ms(self) -> int:
        return int(self.duration * 1000)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class BackendInfo:
    name: str
    project_root: str
    operations: List[str]
    detected_at: datetime

    def to_dict(self) -> Dict[str, Any]:
        return {
            "backend": self.name,
            "project_root": self.project_root,
            "operations": list(self.operations),
            "detected_at": self.detected_at.isoformat(),
        }


class BuildService:
    """
    Runs build operations against a project directory.

    Args:
        executor: Executor for build commands (default: host subprocesses)
        backends: Backend registry (default: make, go, python, node, null)
    """

    def __init__(self, executor: Optional[Executor] = None, backends: Optional[BackendRegistry] = None):
        self.executor = executor or LocalExecutor()
        self.backends = backends or BackendRegistry.create_default()

    def execute_build(self, ctx: ExecContext, request: BuildRequest) -> BuildResponse:
        """
        Run request.operation in request.project_root.

        Failures are returned in the response with metadata["error_type"]
        set; nothing is raised for an ordinary failed build.
        """
        request_id = f"build-{time.time_ns()}"
        start = time.monotonic()

        def fail(error: str, error_type: str, backend: str = "", output: str = "") -> BuildResponse:
            logger.warning(
                f"{request.operation} failed in {request.project_root}: {error}",
                extra={"event": "build_failed", "metadata": {"error_type": error_type, "request_id": request_id}},
            )
            return BuildResponse(
                success=False,
                backend=backend,
                operation=request.operation,
                output=output,
                duration=time.monotonic() - start,
                error=error,
                metadata={"error_type": error_type},
                request_id=request_id,
            )

        if request.operation not in OPERATIONS:
            return fail(f"unknown operation {request.operation!r} (expected one of {', '.join(OPERATIONS)})",
                        ERROR_INVALID_OPERATION)

        root = Path(request.project_root)
        if not root.is_dir():
            return fail(f"project root does not exist: {root}", ERROR_VALIDATION)

        try:
            backend = self.backends.detect(root)
        except BuildError as e:
            return fail(str(e), ERROR_BACKEND_DETECTION)

        if not backend.supports(request.operation):
            return fail(f"backend {backend.name} does not support {request.operation}",
                        ERROR_INVALID_OPERATION, backend.name)

        logger.info(
            f"Running {request.operation} with {backend.name} backend in {root}",
            extra={"event": "build_start", "metadata": {"request_id": request_id}},
        )
        outcome = backend.execute(ctx.with_timeout(request.timeout), self.executor, root, request.operation)

        if not outcome.success:
            error_type = ERROR_TIMEOUT if outcome.timed_out else ERROR_OPERATION_FAILED
            return fail(outcome.error, error_type, backend.name, outcome.output)

        return BuildResponse(
            success=True,
            backend=backend.name,
            operation=request.operation,
            output=outcome.output,
            duration=time.monotonic() - start,
            request_id=request_id,
        )

    def get_backend_info(self, project_root: str) -> BackendInfo:
        """
        Detect the backend for project_root.

        Raises:
            BuildError: If the directory does not exist or nothing matches
        """
        root = Path(project_root)
        if not root.is_dir():
            raise BuildError(f"project root does not exist: {root}")
        backend = self.backends.detect(root)
        return BackendInfo(
            name=backend.name,
            project_root=str(root),
            operations=list(backend.operations),
            detected_at=datetime.now(timezone.utc),
        )
