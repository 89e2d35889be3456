"""Projects: per-directory task registries and their shared manager."""

from .manager import ProjectManager, get_project_manager, normalize_base_dir, set_project_manager
from .project import Project

__all__ = [
	"Project",
	"ProjectManager",
	"get_project_manager",
	"normalize_base_dir",
	"set_project_manager",
]
