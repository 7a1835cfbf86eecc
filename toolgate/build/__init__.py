"""Build backend detection, validation and execution."""

from toolgate.build.backends import BackendRegistry, BuildBackend
from toolgate.build.service import BackendInfo, BuildRequest, BuildResponse, BuildService
from toolgate.build.validation import BuildValidation, TaskClass, validate_build_requirements

__all__ = [
    "BackendInfo",
    "BackendRegistry",
    "BuildBackend",
    "BuildRequest",
    "BuildResponse",
    "BuildService",
    "BuildValidation",
    "TaskClass",
    "validate_build_requirements",
]
