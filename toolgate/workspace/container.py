"""
Container capability gate.

Before an image is trusted to run agent work it must provide:
- git, callable inside the container
- a non-root account with the agent uid (1000), because agent containers
  run as that uid on a read-only root filesystem and cannot create it
- a /tmp writable by that uid

Each check runs in its own throwaway container (`docker run --rm`) with its
own timeout. All three always run, so the report lists every problem at
once together with the Dockerfile line that fixes it. The reader of the
report is usually an agent that has to repair the image definition itself.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from toolgate.errors import ArgumentError, ExecutionError
from toolgate.execution import ExecContext, Executor, LocalExecutor, RunOptions


logger = logging.getLogger(__name__)

CHECK_GIT = "git"
CHECK_USER = "user"
CHECK_TMP = "tmp"

CHECK_ORDER = (CHECK_GIT, CHECK_USER, CHECK_TMP)

# Report attribute holding each check's outcome
REPORT_FIELDS = {
    CHECK_GIT: "git_available",
    CHECK_USER: "user_available",
    CHECK_TMP: "tmp_writable",
}

CHECK_TITLES = {
    CHECK_GIT: "git available",
    CHECK_USER: "uid {uid} user exists",
    CHECK_TMP: "/tmp writable by uid {uid}",
}

REMEDIATION = {
    CHECK_GIT: (
        "git is not installed in the image. Add to the Dockerfile:\n"
        "  RUN apk add --no-cache git                                          # Alpine\n"
        "  RUN apt-get update && apt-get install -y git && rm -rf /var/lib/apt/lists/*  # Debian/Ubuntu"
    ),
    CHECK_USER: (
        "No user with uid {uid} exists. Containers run as {uid}:{uid} with a read-only root "
        "filesystem, so the user must exist in the image. Add to the Dockerfile:\n"
        "  RUN adduser -D -u {uid} coder          # Alpine\n"
        "  RUN useradd -m -u {uid} coder          # Debian/Ubuntu"
    ),
    CHECK_TMP: (
        "/tmp is not writable by uid {uid}. Add to the Dockerfile:\n"
        "  RUN chmod 1777 /tmp"
    ),
}


def validate_image_reference(image: str) -> str:
    """
    Reject image references that docker would parse as options.

    Raises:
        ArgumentError: If image is empty, starts with '-' or contains whitespace
    """
    if not isinstance(image, str) or not image.strip():
        raise ArgumentError("image is required")
    if image.startswith("-"):
        raise ArgumentError(f"image reference must not start with '-': {image!r}")
    if any(ch.isspace() for ch in image):
        raise ArgumentError(f"image reference must not contain whitespace: {image!r}")
    return image


@dataclass
class ContainerValidationReport:
    """Outcome of one capability validation; built per call and never stored."""

    image: str
    agent_uid: int = 1000
    git_available: bool = False
    user_available: bool = False
    tmp_writable: bool = False
    error_details: Dict[str, str] = field(default_factory=dict)
    diagnostics: Dict[str, str] = field(default_factory=dict)

    @property
    def checks(self) -> Dict[str, bool]:
        return {name: getattr(self, attr) for name, attr in REPORT_FIELDS.items()}

    @property
    def missing(self) -> List[str]:
        """Failed checks, in check order."""
        return [name for name in CHECK_ORDER if not self.checks[name]]

    @property
    def success(self) -> bool:
        return not self.missing

    @property
    def message(self) -> str:
        if self.success:
            return f"Image {self.image} passed all capability checks"
        return f"Image {self.image} failed capability checks: {', '.join(self.missing)}"

    def to_dict(self) -> Dict[str, object]:
        return {
            "image": self.image,
            "success": self.success,
            "message": self.message,
            "git_available": self.git_available,
            "user_available": self.user_available,
            "tmp_writable": self.tmp_writable,
            "missing": self.missing,
            "error_details": dict(self.error_details),
            "diagnostics": dict(self.diagnostics),
        }

    def render_report(self) -> str:
        """Markdown report for agents and humans."""
        lines = [
            "# Container Validation Report",
            "",
            f"**Image:** `{self.image}`",
            f"**Status:** {'PASS' if self.success else 'FAIL'}",
            "",
            "| Check | Result |",
            "|---|---|",
        ]
        for name in CHECK_ORDER:
            title = CHECK_TITLES[name].format(uid=self.agent_uid)
            lines.append(f"| {title} | {'✅' if self.checks[name] else '❌'} |")

        if not self.success:
            lines += ["", "## Required fixes", ""]
            for name in self.missing:
                lines.append(f"### {name}")
                lines.append("")
                lines.append(self.error_details.get(name, ""))
                diagnostic = self.diagnostics.get(name)
                if diagnostic:
                    lines += ["", f"Diagnostic output: `{diagnostic}`"]
                lines.append("")
        return "\n".join(lines).rstrip() + "\n"


class ContainerCapabilityGate:
    """
    Runs the capability checks against an image.

    Args:
        executor: Executor that can run the docker client (default: host)
        docker_cmd: docker client binary
        agent_uid: uid agent containers run as
        check_timeout: Timeout in seconds for each individual check
    """

    def __init__(self, executor: Optional[Executor] = None, docker_cmd: str = "docker",
                 agent_uid: int = 1000, check_timeout: float = 30):
        self.executor = executor or LocalExecutor()
        self.docker_cmd = docker_cmd
        self.agent_uid = agent_uid
        self.check_timeout = check_timeout

    def check_commands(self, image: str) -> Dict[str, List[str]]:
        """argv of each check; every one runs in a fresh --rm container."""
        uid = self.agent_uid
        run = [self.docker_cmd, "run", "--rm", "--entrypoint", ""]
        run_as_agent = [self.docker_cmd, "run", "--rm", "--user", f"{uid}:{uid}", "--entrypoint", ""]
        return {
            CHECK_GIT: run + [image, "git", "--version"],
            CHECK_USER: run + [
                image, "sh", "-c",
                f"getent passwd {uid} >/dev/null 2>&1 || grep -q '^[^:]*:[^:]*:{uid}:' /etc/passwd",
            ],
            CHECK_TMP: run_as_agent + [
                image, "sh", "-c",
                "touch /tmp/.toolgate-probe && rm -f /tmp/.toolgate-probe",
            ],
        }

    def _run_check(self, ctx: ExecContext, argv: List[str]) -> tuple[bool, str]:
        try:
            result = self.executor.run(ctx.with_timeout(self.check_timeout), argv,
                                       RunOptions(timeout=self.check_timeout))
        except ExecutionError as e:
            return False, str(e)
        if result.ok:
            return True, ""
        output = result.combined_output().strip()
        return False, f"{result.describe_failure()}: {output}" if output else result.describe_failure()

    def validate(self, ctx: ExecContext, image: str) -> ContainerValidationReport:
        """
        Run every check against image.

        Raises:
            ArgumentError: If image is not a usable reference
        """
        validate_image_reference(image)
        report = ContainerValidationReport(image=image, agent_uid=self.agent_uid)

        for name, argv in self.check_commands(image).items():
            passed, diagnostic = self._run_check(ctx, argv)
            setattr(report, REPORT_FIELDS[name], passed)
            if not passed:
                report.error_details[name] = REMEDIATION[name].format(uid=self.agent_uid)
                report.diagnostics[name] = diagnostic
                logger.info(f"Capability check {name} failed for {image}: {diagnostic}")

        logger.info(report.message, extra={"event": "container_validation",
                                           "metadata": {"missing": report.missing}})
        return report
