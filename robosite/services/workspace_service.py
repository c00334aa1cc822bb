# FILE: robosite/services/workspace_service.py
import logging
import shutil
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

logger = logging.getLogger("robosite.workspace")

WORKSPACE_PREFIX = "robosite-"
PROJECT_DIRNAME = "project"

# never copied out of the scaffold, even if someone built it in place
SCAFFOLD_IGNORE = shutil.ignore_patterns("node_modules", "build", "dist", ".git")


@dataclass(frozen=True)
class Workspace:
    root: Path

    @property
    def project_dir(self) -> Path:
        return self.root / PROJECT_DIRNAME

    @property
    def build_dir(self) -> Path:
        return self.project_dir / "build"


def allocate_workspace(base_dir: Optional[Path] = None) -> Workspace:
    root = Path(tempfile.mkdtemp(prefix=WORKSPACE_PREFIX, dir=str(base_dir) if base_dir else None))
    return Workspace(root=root)


def copy_scaffold(workspace: Workspace, template_dir: Path) -> Path:
    if not template_dir.is_dir():
        raise FileNotFoundError(f"Scaffold template not found: {template_dir.name}")
    shutil.copytree(template_dir, workspace.project_dir, ignore=SCAFFOLD_IGNORE)
    return workspace.project_dir


def destroy_workspace(workspace: Optional[Workspace], keep: bool = False, job_id: str = "unknown") -> None:
    if workspace is None:
        return
    if keep:
        logger.info("[%s] keep workdir at %s", job_id, workspace.root)
        return
    shutil.rmtree(workspace.root, ignore_errors=True)
