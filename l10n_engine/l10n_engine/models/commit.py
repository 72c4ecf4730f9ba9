"""Commit models: creation input, import options and computed statistics."""

from __future__ import annotations

import re
from datetime import date, datetime

from pydantic import BaseModel, ConfigDict, Field, ValidationError, ValidationInfo, field_validator

# Width of the commits.message column; settings may lower the limit, never raise it.
MESSAGE_MAX_LENGTH = 256

_REVISION_RE = re.compile(r"^[0-9a-fA-F]{4,40}$")


class CommitValidationError(Exception):
    """Raised when a commit cannot be created from the supplied attributes.

    ``errors`` maps each offending field to a human-readable reason.
    """

    def __init__(self, errors: dict[str, str]) -> None:
        self.errors = errors
        detail = "; ".join(f"{field} {reason}" for field, reason in sorted(errors.items()))
        super().__init__(f"Invalid commit: {detail}")

    @classmethod
    def from_pydantic(cls, exc: ValidationError) -> CommitValidationError:
        errors: dict[str, str] = {}
        for err in exc.errors():
            field = ".".join(str(part) for part in err["loc"]) or "commit"
            errors.setdefault(field, err["msg"])
        return cls(errors)


class CommitCreate(BaseModel):
    """Validated attributes for a new commit.

    ``message`` and ``committed_at`` may be omitted; the commit service then
    loads them from the repository.
    """

    model_config = ConfigDict(str_strip_whitespace=True)

    revision: str = Field(..., min_length=1, description="Commit SHA (abbreviated or full).")
    message: str | None = Field(
        default=None,
        min_length=1,
        description=(
            "Commit message; loaded from git when omitted.  At most "
            "``message_max_length`` characters (validation context), "
            "defaulting to MESSAGE_MAX_LENGTH."
        ),
    )
    committed_at: datetime | None = Field(
        default=None,
        description="Commit time; loaded from git when omitted.",
    )
    priority: int | None = Field(
        default=None,
        ge=0,
        le=3,
        description="Administrator priority, 0 (highest) to 3 (lowest).",
    )
    due_date: date | None = None
    description: str | None = None

    @field_validator("revision")
    @classmethod
    def revision_is_hex(cls, v: str) -> str:
        if not _REVISION_RE.match(v):
            raise ValueError("must be a hexadecimal commit SHA")
        return v.lower()

    @field_validator("message")
    @classmethod
    def message_within_limit(cls, v: str | None, info: ValidationInfo) -> str | None:
        limit = (info.context or {}).get("message_max_length", MESSAGE_MAX_LENGTH)
        if v is not None and len(v) > limit:
            raise ValueError(f"is too long (maximum is {limit} characters)")
        return v

    @field_validator("description", mode="before")
    @classmethod
    def blank_description_is_none(cls, v: object) -> object:
        if isinstance(v, str) and not v.strip():
            return None
        return v

    @field_validator("due_date", mode="before")
    @classmethod
    def blank_due_date_is_none(cls, v: object) -> object:
        if isinstance(v, str) and not v.strip():
            return None
        return v


class ImportOptions(BaseModel):
    """Options accepted by ``import_strings``.

    ``locale`` switches to an incremental scan whose base copy is assumed to
    be written in that locale; ``inline`` runs extraction in the caller's
    task; ``force`` ignores extraction markers.
    """

    model_config = ConfigDict(frozen=True)

    locale: str | None = None
    inline: bool = False
    force: bool = False


class CommitStats(BaseModel):
    """Aggregates computed by the stats recalculator for one commit."""

    model_config = ConfigDict(frozen=True)

    strings_total: int = 0
    translations_total: int = 0
    translations_done: int = 0
    translations_new: int = 0
    translations_pending: int = 0
    words_new: int = 0
    words_pending: int = 0
    ready: bool = True

    @property
    def fraction_done(self) -> float:
        """Approved share of required translations; ``1.0`` when there are none."""
        if self.translations_total == 0:
            return 1.0
        return self.translations_done / self.translations_total
