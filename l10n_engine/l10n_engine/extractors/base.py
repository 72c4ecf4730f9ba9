"""Base class for string extractors.

An extractor turns the bytes of one blob into a list of translatable
strings.  Each concrete extractor declares an ``ident`` (used in project
configuration to opt out of it) and the file-name patterns it understands.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from fnmatch import fnmatchcase
from posixpath import basename

from pydantic import BaseModel, ConfigDict

from l10n_engine.models.project import ProjectConfig

logger = logging.getLogger(__name__)


class ExtractionError(Exception):
    """Raised when a blob cannot be parsed by an extractor."""


class ExtractedString(BaseModel):
    """One translatable string found in a blob."""

    model_config = ConfigDict(frozen=True)

    key: str
    source_copy: str


class ExtractionContext(BaseModel):
    """The (blob, path, commit) triple an extractor instance is bound to."""

    model_config = ConfigDict(frozen=True)

    project: ProjectConfig
    blob_sha: str
    path: str
    commit_id: int | None = None


class BaseExtractor(ABC):
    """Abstract base class that all extractors must subclass.

    Subclasses set :attr:`ident` and :attr:`file_patterns` and implement
    :meth:`parse`.  :meth:`for_locale` may be overridden when a file's
    locale can be read from its name.
    """

    ident: str = ""
    file_patterns: tuple[str, ...] = ()

    def matches(self, path: str) -> bool:
        """Return ``True`` if the file name matches one of the patterns."""
        name = basename(path)
        return any(fnmatchcase(name, pattern) for pattern in self.file_patterns)

    def for_locale(self, path: str, locale: str, base_locale: str) -> bool:
        """Return ``True`` if *path* may hold copy written in *locale*."""
        return True

    def skip(self, context: ExtractionContext, locale: str | None = None) -> bool:
        """Decide whether this extractor declines the blob.

        Parameters
        ----------
        context:
            The blob, path and project being scanned.
        locale:
            Locale the base copy is assumed to be written in; ``None``
            means the project's base locale.
        """
        if not self.matches(context.path):
            return True
        if context.project.skip_path(context.path, self.ident):
            return True
        base = context.project.base_locale
        return not self.for_locale(context.path, locale or base, base)

    def extract(
        self,
        context: ExtractionContext,
        content: bytes,
        locale: str | None = None,
    ) -> list[ExtractedString]:
        """Decode *content* and return the strings it defines.

        Raises
        ------
        ExtractionError
            If the content is not valid for this format.
        """
        try:
            text = content.decode("utf-8-sig")
        except UnicodeDecodeError as exc:
            raise ExtractionError(f"{context.path} is not valid UTF-8") from exc
        strings = self.parse(text, locale or context.project.base_locale)
        logger.debug(
            "%s extracted %d string(s) from %s",
            self.ident,
            len(strings),
            context.path,
        )
        return strings

    @abstractmethod
    def parse(self, text: str, locale: str) -> list[ExtractedString]:
        """Return the strings defined in *text* for *locale*."""
