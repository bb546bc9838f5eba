"""Pydantic models shared across the application."""

from datetime import datetime, timezone
from enum import Enum
from typing import Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


ImageFormat = Literal["png", "jpeg", "webp", "bmp"]
EinkColors = Literal[2, 4, 16, 256]
Rotation = Literal[90, 180, 270]

MINUTES_PER_DAY = 24 * 60


def _utcnow() -> str:
    return datetime.now(timezone.utc).isoformat()


# ── Job configuration ───────────────────────────────────────────

class Viewport(BaseModel):
    model_config = ConfigDict(frozen=True)

    width: int = Field(ge=100, le=7680)
    height: int = Field(ge=100, le=4320)


class CaptureJob(BaseModel):
    """One named, independently scheduled screenshot target.

    Field aliases are the keys used in the screenshots JSON file
    (``interval``, ``eink``, ``wait``); the Python names work too.
    """
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    name: str = Field(min_length=1)
    path: str = Field(min_length=1)
    viewport: Viewport
    interval_seconds: float = Field(alias="interval", ge=1)
    format: ImageFormat = "png"
    eink_colors: Optional[EinkColors] = Field(default=None, alias="eink")
    invert: bool = False  # only used with 2 colors
    zoom: float = Field(default=1.0, ge=0.1, le=5.0)
    rotate: Optional[Rotation] = None
    lang: Optional[str] = None
    theme: Optional[str] = None
    dark: bool = False
    extra_wait_ms: Optional[int] = Field(default=None, alias="wait", ge=0, le=30000)


class OffHoursWindow(BaseModel):
    """Daily window, as minute-of-day, during which captures are skipped.

    ``start > end`` wraps past midnight.
    """
    model_config = ConfigDict(frozen=True)

    start: int = Field(ge=0, lt=MINUTES_PER_DAY)
    end: int = Field(ge=0, lt=MINUTES_PER_DAY)

    @field_validator("start", "end", mode="before")
    @classmethod
    def _parse_clock(cls, value: Union[str, int]):
        if not (isinstance(value, str) and ":" in value):
            return value
        hours, _, minutes = value.partition(":")
        if not (hours.isdigit() and minutes.isdigit()):
            raise ValueError(f"invalid time of day: {value!r}")
        h, m = int(hours), int(minutes)
        if h >= 24 or m >= 60:
            raise ValueError(f"invalid time of day: {value!r}")
        return h * 60 + m


class ScreenshotConfig(BaseModel):
    screenshots: list[CaptureJob] = Field(min_length=1)
    off_hours: Optional[OffHoursWindow] = None

    @model_validator(mode="after")
    def _unique_names(self):
        seen: set[str] = set()
        for job in self.screenshots:
            if job.name in seen:
                raise ValueError(f'Duplicate screenshot name "{job.name}"')
            seen.add(job.name)
        return self


# ── Browser session ─────────────────────────────────────────────

class NavigationKind(str, Enum):
    FIRST_LOAD = "first_load"
    PAGE_CHANGE = "page_change"
    SAME_PAGE = "same_page"


class SessionState(BaseModel):
    """Best-effort record of what the live page currently shows.

    ``last_path is None`` means the page has not navigated yet (or must be
    fully reloaded on the next request).
    """
    last_path: Optional[str] = None
    last_lang: Optional[str] = None
    last_theme: Optional[str] = None
    last_dark_mode: bool = False

    def reset_path(self) -> None:
        self.last_path = None

    def mark_reloaded(self) -> None:
        # A fresh document starts from the injected local storage defaults
        self.last_lang = None
        self.last_theme = None
        self.last_dark_mode = False

    def clear(self) -> None:
        self.reset_path()
        self.mark_reloaded()


class CaptureFrame(BaseModel):
    image: bytes
    navigation: NavigationKind
    navigate_ms: int = 0
    capture_ms: int = 0


# ── Pipeline output ─────────────────────────────────────────────

class OutputImage(BaseModel):
    data: bytes
    format: ImageFormat = "png"
    eink_colors: Optional[EinkColors] = None

    @property
    def extension(self) -> str:
        return self.format or "png"


class CaptureOutcome(BaseModel):
    job_name: str
    success: bool
    path: Optional[str] = None
    url: Optional[str] = None
    error: Optional[str] = None
    skipped: bool = False
    reason: Optional[str] = None
    duration_ms: Optional[int] = None
    created_at: str = Field(default_factory=_utcnow)


class JobStatus(BaseModel):
    job: CaptureJob
    last_outcome: Optional[CaptureOutcome] = None
