# core/project_config.py
from __future__ import annotations
from dataclasses import dataclass
from typing import Callable, List, Mapping, Optional, Tuple
import os, json, logging, subprocess

logger = logging.getLogger("project-config")

PROJECT_ENV_VARS = ("GOOGLE_CLOUD_PROJECT", "FIREBASE_PROJECT_ID", "GCLOUD_PROJECT")
CONFIG_FILES = ("firebase.json", ".firebaserc")
GCLOUD_COMMAND = ["gcloud", "config", "get-value", "project"]
GCLOUD_TIMEOUT_SECONDS = 5
MAX_WALK_LEVELS = 10

CHECKED_SOURCES = (
    *(f"env:{name}" for name in PROJECT_ENV_VARS),
    "gcloud config get-value project",
    *(f"{name} (projects.default, up to {MAX_WALK_LEVELS} parent dirs)" for name in CONFIG_FILES),
)


@dataclass(frozen=True)
class ProjectIdResolution:
    project_id: str
    source: str


def _clean(value) -> Optional[str]:
    if not isinstance(value, str):
        return None
    value = value.strip()
    return value or None


def _env_provider(name: str, environ: Mapping[str, str]) -> Callable[[], Optional[str]]:
    def provider() -> Optional[str]:
        value = environ.get(name)
        return value if isinstance(value, str) and value else None
    return provider


def project_from_gcloud() -> Optional[str]:
    """Ask the gcloud CLI for its configured default project. Best effort."""
    try:
        proc = subprocess.run(
            GCLOUD_COMMAND,
            capture_output=True,
            text=True,
            timeout=GCLOUD_TIMEOUT_SECONDS,
            check=False,
        )
    except (OSError, subprocess.SubprocessError) as e:
        logger.debug("gcloud lookup failed: %s", e)
        return None
    if proc.returncode != 0:
        return None
    value = _clean(proc.stdout)
    # gcloud prints "(unset)" on some versions instead of an empty line
    if value == "(unset)":
        return None
    return value


def read_default_project(path: str) -> Optional[str]:
    """Return projects.default from a firebase config file, or None."""
    if not os.path.isfile(path):
        return None
    try:
        with open(path, "r", encoding="utf-8") as f:
            cfg = json.load(f)
    except (OSError, ValueError) as e:
        logger.warning("Ignoring unreadable config %s: %s", path, e)
        return None
    if not isinstance(cfg, dict):
        return None
    projects = cfg.get("projects")
    if not isinstance(projects, dict):
        return None
    return _clean(projects.get("default"))


def find_config_project(start: Optional[str] = None, max_levels: int = MAX_WALK_LEVELS) -> Optional[Tuple[str, str]]:
    """
    Walk from `start` towards the filesystem root (at most `max_levels`
    directories, the start included) looking for firebase.json then
    .firebaserc. Returns (project_id, path) for the first usable file.
    """
    current = os.path.abspath(start or os.getcwd())
    for _ in range(max_levels):
        for name in CONFIG_FILES:
            path = os.path.join(current, name)
            project_id = read_default_project(path)
            if project_id:
                return project_id, path
        parent = os.path.dirname(current)
        if parent == current:
            break
        current = parent
    return None


def _project_from_files(cwd: Optional[str]) -> Optional[str]:
    hit = find_config_project(cwd)
    if not hit:
        return None
    project_id, path = hit
    logger.info("Project ID %s read from %s", project_id, path)
    return project_id


def resolve_project_id(cwd: Optional[str] = None, environ: Optional[Mapping[str, str]] = None) -> Optional[ProjectIdResolution]:
    """
    Resolve the project ID from the first source that yields a value:
    env vars, then gcloud, then the nearest firebase.json / .firebaserc.
    Returns None when nothing matched; never raises.
    """
    env = os.environ if environ is None else environ

    providers: List[Tuple[str, Callable[[], Optional[str]]]] = [
        (f"env:{name}", _env_provider(name, env)) for name in PROJECT_ENV_VARS
    ]
    providers.append(("gcloud", project_from_gcloud))
    providers.append(("config-file", lambda: _project_from_files(cwd)))

    for source, provider in providers:
        try:
            value = provider()
        except Exception:
            logger.exception("Project ID provider %s failed", source)
            continue
        if value:
            return ProjectIdResolution(project_id=value, source=source)
    return None


def find_project_id(cwd: Optional[str] = None, environ: Optional[Mapping[str, str]] = None) -> Optional[str]:
    res = resolve_project_id(cwd=cwd, environ=environ)
    return res.project_id if res else None
