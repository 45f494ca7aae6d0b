from typing import Any


class ModuleConfig:
    """Parsed module arguments (defaults from module.json already applied)."""

    def __init__(self, args: dict[str, Any]) -> None:
        self._args = dict(args)

    def get(self, key: str, default: Any = None) -> Any:
        return self._args.get(key, default)

    def require(self, key: str) -> Any:
        if key not in self._args:
            raise KeyError(f"Module argument --{key} is not set")
        return self._args[key]

    def as_dict(self) -> dict[str, Any]:
        return dict(self._args)

    def __contains__(self, key: str) -> bool:
        return key in self._args

    def __repr__(self) -> str:
        return f"ModuleConfig({self._args})"
