"""Enums shared across the ingestion pipeline."""

from enum import Enum


class RejectionReason(str, Enum):
    """Why an extraction was not accepted into the catalog."""

    PLACEHOLDER_TITLE = "placeholder_title"
    TOP_PAGE_TITLE = "top_page_title"
    TITLE_TOO_SHORT = "title_too_short"
    BOILERPLATE_DESCRIPTION = "boilerplate_description"
    REDIRECTED = "redirected"
    TOP_PAGE_CONTENT = "top_page_content"


class RedirectType(str, Enum):
    """Classification of a navigation that did not land on a product page."""

    HOST_CHANGED = "host_changed"
    TO_TOP_PAGE = "to_top_page"
    INVALID_URL = "invalid_url"


class ItemStatus(str, Enum):
    """Outcome of pushing a single extraction through the pipeline."""

    ACCEPTED = "accepted"
    REJECTED = "rejected"
    ERRORED = "errored"


class RunStatus(str, Enum):
    """Status of a provider run or of a whole orchestrator run."""

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    TIMED_OUT = "timed_out"
    FAILED = "failed"
