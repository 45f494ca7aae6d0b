"""Loads KEY=VALUE environment files for ``--env-file``.

``--env-file local`` reads ``.env/local.env`` under the project root;
anything that looks like a path (contains a separator or ends in ``.env``)
is read as given, so a plain ``.env`` beside the deployment works too.

Supports:
- Comments (lines starting with #) and blank lines
- An optional ``export`` prefix
- Quoted values (single or double quotes are stripped)
- Inline comments after values are NOT stripped
"""

from pathlib import Path

# Project root: two levels up from line_relay/config/
_PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent


def resolve_env_path(env_name: str, project_root: Path | None = None) -> Path:
    root = project_root or _PROJECT_ROOT
    if "/" in env_name or env_name.endswith(".env"):
        path = Path(env_name)
        return path if path.is_absolute() else root / path
    return root / ".env" / f"{env_name}.env"


def load_env_file(env_name: str = "local", project_root: Path | None = None) -> dict[str, str]:
    """Load the named env file and return it as a dict. Missing file → {}."""
    env_file = resolve_env_path(env_name, project_root)
    if not env_file.is_file():
        return {}
    return _parse_env_file(env_file)


def _parse_env_file(path: Path) -> dict[str, str]:
    result: dict[str, str] = {}
    for line in path.read_text(encoding="utf-8").splitlines():
        line = line.strip()
        if not line or line.startswith("#"):
            continue
        if line.startswith("export "):
            line = line[len("export "):].lstrip()
        if "=" not in line:
            continue
        key, _, value = line.partition("=")
        key = key.strip()
        value = value.strip()
        if len(value) >= 2 and value[0] == value[-1] and value[0] in ('"', "'"):
            value = value[1:-1]
        result[key] = value
    return result
