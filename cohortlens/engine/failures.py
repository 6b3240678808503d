"""
Source failure classification.

The record source reports problems as free-text messages. A refusal to
serve protected customer or order data must never be confused with an
ordinary failure: it is not retryable until the merchant grants the scope,
and it makes the whole metric unavailable. This module holds the single
phrase table used to tell the two apart.

Matching is heuristic. If the source grows a structured error code, swap
``classify_failure`` for a code lookup and keep the exception types.
"""

from typing import Iterable

import structlog

from cohortlens.models import DatasetKind, FailureKind, RecordKind, RestrictedAccessSignal

logger = structlog.get_logger()

# Matched case-insensitively
GOVERNANCE_PHRASES = (
    "not approved",
    "protected",
)

# Matched case-sensitively, as the source capitalizes entity names
ENTITY_NAMES = {
    RecordKind.CUSTOMER: "Customer",
    RecordKind.ORDER: "Order",
}


class SourceError(Exception):
    """Raised for transient or unclassified record-source failures."""


class RestrictedAccessError(Exception):
    """
    Raised when the source refuses protected data.

    Carries the ``RestrictedAccessSignal`` unchanged so every layer between
    the source and the API boundary can re-raise it as-is.
    """

    def __init__(self, signal: RestrictedAccessSignal):
        self.signal = signal
        super().__init__(signal.sentinel)


def classify_failure(message: str, kind: RecordKind) -> FailureKind:
    """
    Classify one source error message.

    Args:
        message: Error text as reported by the source
        kind: Entity collection that was being queried

    Returns:
        FailureKind.RESTRICTED for governance refusals, GENERIC otherwise
    """
    if not message:
        return FailureKind.GENERIC
    lowered = message.lower()
    if any(phrase in lowered for phrase in GOVERNANCE_PHRASES):
        return FailureKind.RESTRICTED
    if ENTITY_NAMES[kind] in message:
        return FailureKind.RESTRICTED
    return FailureKind.GENERIC


def restricted_dataset(message: str, kind: RecordKind) -> DatasetKind:
    """Dataset a restricted message refers to; BOTH when it names both entities."""
    names_both = all(name in message for name in ENTITY_NAMES.values())
    if names_both:
        return DatasetKind.BOTH
    return DatasetKind(kind.value)


def raise_for_errors(errors: Iterable[str], kind: RecordKind, feature: str) -> None:
    """
    Raise the appropriate exception for a page's error list.

    A restricted message anywhere in the list wins over generic ones.

    Raises:
        RestrictedAccessError: If any message is a governance refusal
        SourceError: If the list holds only generic errors
    """
    messages = [m for m in errors if m is not None]
    if not messages:
        return

    for message in messages:
        if classify_failure(message, kind) is FailureKind.RESTRICTED:
            signal = RestrictedAccessSignal(
                dataset_kind=restricted_dataset(message, kind),
                feature=feature,
            )
            logger.warning(
                "restricted_access_denied",
                feature=feature,
                dataset_kind=signal.dataset_kind.value,
                message=message,
            )
            raise RestrictedAccessError(signal)

    logger.error("source_query_failed", feature=feature, kind=kind.value, errors=messages)
    raise SourceError(messages[0] or "Unknown source error")
