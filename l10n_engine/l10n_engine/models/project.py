"""Project configuration as seen by the import pipeline."""

from __future__ import annotations

from fnmatch import fnmatchcase

from pydantic import BaseModel, ConfigDict, Field, model_validator


def _under_any(path: str, prefixes: list[str]) -> bool:
    """Return ``True`` if *path* lies under one of *prefixes*.

    Prefixes are repository-relative; a leading slash is optional.
    """
    normalised = "/" + path.lstrip("/")
    for prefix in prefixes:
        candidate = "/" + prefix.strip("/")
        if candidate == "/" or normalised == candidate or normalised.startswith(candidate + "/"):
            return True
    return False


class ProjectConfig(BaseModel):
    """Read-only view of a project's extraction and readiness settings."""

    model_config = ConfigDict(from_attributes=True, frozen=True)

    id: int
    name: str
    repository_path: str
    base_locale: str = "en"
    targeted_locales: list[str] = Field(default_factory=list)
    required_locales: list[str] = Field(default_factory=list)
    skip_imports: list[str] = Field(default_factory=list)
    skip_paths: list[str] = Field(default_factory=list)
    only_paths: list[str] = Field(default_factory=list)
    skip_importer_paths: dict[str, list[str]] = Field(default_factory=dict)
    only_importer_paths: dict[str, list[str]] = Field(default_factory=dict)
    key_exclusions: list[str] = Field(default_factory=list)
    key_inclusions: list[str] = Field(default_factory=list)
    cache_manifest_formats: list[str] = Field(default_factory=list)

    @model_validator(mode="after")
    def required_are_targeted(self) -> ProjectConfig:
        missing = set(self.required_locales) - set(self.targeted_locales)
        if missing:
            raise ValueError(f"required locales must also be targeted: {sorted(missing)}")
        return self

    def skip_path(self, path: str, importer: str) -> bool:
        """Return ``True`` if *importer* must not look at *path*."""
        if _under_any(path, self.skip_paths):
            return True
        if self.only_paths and not _under_any(path, self.only_paths):
            return True
        if _under_any(path, self.skip_importer_paths.get(importer, [])):
            return True
        only = self.only_importer_paths.get(importer)
        if only and not _under_any(path, only):
            return True
        return False

    def skip_key(self, key: str) -> bool:
        """Return ``True`` if *key* is filtered out by the key rules."""
        if any(fnmatchcase(key, pattern) for pattern in self.key_exclusions):
            return True
        if self.key_inclusions and not any(fnmatchcase(key, pattern) for pattern in self.key_inclusions):
            return True
        return False

    def translation_locales(self) -> list[str]:
        """Targeted locales other than the base locale."""
        return [loc for loc in self.targeted_locales if loc != self.base_locale]
