from abc import ABC, abstractmethod


class SecretsInterface(ABC):
    """Provides access to credentials and deployment settings."""

    @abstractmethod
    def get(self, key: str) -> str | None:
        """Get a secret value by key. Returns None if not found."""
        ...

    @abstractmethod
    def get_or_default(self, key: str, default: str) -> str:
        """Get a secret value, returning default if not found."""
        ...

    @abstractmethod
    def require(self, key: str) -> str:
        """Get a secret value, raising KeyError if not found."""
        ...

    def get_non_empty(self, key: str) -> str | None:
        """Like get(), but an empty or whitespace-only value counts as unset."""
        value = self.get(key)
        if value is None or not value.strip():
            return None
        return value
