"""
Task-class-aware validation of a project's build setup.

Runs before the build operation only. Rules:
- A Makefile exists: it must declare the targets the task class requires
  (devops: build; app: build, test, lint). The check is lexical; make is
  never invoked.
- No Makefile but a language manifest: pass, the language tooling reports
  its own problems.
- Neither: app stories fail, devops stories pass with a warning.
"""

import re
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import List, Optional, Set, Union

from toolgate.build.backends import find_makefile


class TaskClass(str, Enum):
    """How strictly a story's build setup is checked."""

    APP = "app"
    DEVOPS = "devops"


REQUIRED_TARGETS = {
    TaskClass.APP: ("build", "test", "lint"),
    TaskClass.DEVOPS: ("build",),
}

TARGET_REASONS = {
    "build": "every story must be buildable with `make build`",
    "test": "app stories are verified by running `make test`",
    "lint": "app stories are checked for style issues with `make lint`",
}

LANGUAGE_MANIFESTS = (
    "go.mod",
    "package.json",
    "pyproject.toml",
    "setup.py",
    "requirements.txt",
    "Cargo.toml",
)

# Rule line: one or more target names, then ":" or "::" not starting an assignment (":=", "::=")
_RULE = re.compile(r"^([^:=#]+?)\s*::?(?![:=])")


@dataclass
class BuildValidation:
    """Outcome of validate_build_requirements()."""

    ok: bool
    task_class: TaskClass
    makefile: Optional[str] = None
    missing_targets: List[str] = field(default_factory=list)
    message: str = ""
    warning: str = ""


def parse_make_targets(text: str) -> Set[str]:
    """
    Names declared as rule targets in Makefile text.

    Recipe lines (tab-indented), comments, variable assignments and special
    targets such as .PHONY are ignored.
    """
    targets: Set[str] = set()
    for line in text.splitlines():
        if not line.strip() or line.startswith("\t"):
            continue
        code = line.split("#", 1)[0]
        match = _RULE.match(code.strip())
        if not match:
            continue
        for name in match.group(1).split():
            if not name.startswith("."):
                targets.add(name)
    return targets


def _coerce_task_class(task_class: Union[TaskClass, str]) -> TaskClass:
    try:
        return TaskClass(task_class)
    except ValueError:
        choices = ", ".join(t.value for t in TaskClass)
        raise ValueError(f"unknown task class {task_class!r} (expected one of {choices})")


def validate_build_requirements(project_root: Union[str, Path],
                                task_class: Union[TaskClass, str] = TaskClass.APP) -> BuildValidation:
    """
    Check that the project can be built the way its task class demands.

    Args:
        project_root: Project directory on the host
        task_class: "app" (strict) or "devops" (lenient)

    Returns:
        BuildValidation; ok is False when the build must not be attempted
    """
    root = Path(project_root)
    task_class = _coerce_task_class(task_class)
    required = REQUIRED_TARGETS[task_class]

    makefile = find_makefile(root)
    if makefile is not None:
        declared = parse_make_targets(makefile.read_text(errors="replace"))
        missing = [t for t in required if t not in declared]
        if not missing:
            return BuildValidation(ok=True, task_class=task_class, makefile=makefile.name)

        lines = [
            f"{makefile.name} is missing required targets for {task_class.value} stories: "
            f"{', '.join(missing)}",
        ]
        lines += [f"  - {target}: {TARGET_REASONS[target]}" for target in missing]
        lines.append(f"Add the missing targets to {makefile.name} and run build again.")
        return BuildValidation(
            ok=False,
            task_class=task_class,
            makefile=makefile.name,
            missing_targets=missing,
            message="\n".join(lines),
        )

    if any((root / manifest).is_file() for manifest in LANGUAGE_MANIFESTS):
        return BuildValidation(ok=True, task_class=task_class)

    if task_class is TaskClass.APP:
        return BuildValidation(
            ok=False,
            task_class=task_class,
            message=(
                "no build system detected - app stories require a Makefile with build, test "
                f"and lint targets, or a language manifest ({', '.join(LANGUAGE_MANIFESTS)})"
            ),
        )

    return BuildValidation(
        ok=True,
        task_class=task_class,
        warning="no build system detected - nothing will be built for this devops story",
    )
