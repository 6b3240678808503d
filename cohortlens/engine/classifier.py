"""
Set classification of collected records.

Turns a record slice into a deduplicated identity set. Single-pass
metrics test each record on its own fields; "returning" and "inactive"
correlate two independently collected slices.

Identity is never the record id for customer metrics: an order slice is
deduplicated by the customer who placed it.
"""

from collections import Counter
from datetime import timezone
from typing import Callable, Iterable, Optional

from cohortlens.models import IdentityKind, IdentitySet, RawRecord, RecordKind

Predicate = Callable[[RawRecord], bool]

COD_STATUSES = frozenset({"PENDING", "PARTIALLY_PAID", "AUTHORIZED"})
PREPAID_STATUSES = frozenset({"PAID", "PARTIALLY_REFUNDED"})
ABANDONED_STATUSES = frozenset({"PENDING", "AUTHORIZED", "PARTIALLY_PAID"})

SUBSCRIPTION_TAGS = ("email-subscriber", "newsletter", "subscribed", "email-subscription")
SUBSCRIBED_STATE = "SUBSCRIBED"
OPT_IN_LEVELS = frozenset({"SINGLE_OPT_IN", "CONFIRMED_OPT_IN", "UNKNOWN"})

SATURDAY = 5
SUNDAY = 6


def identity_of(
    record: RawRecord,
    identity: IdentityKind,
    record_kind: RecordKind = RecordKind.ORDER,
) -> Optional[str]:
    """
    Identifier a record contributes to an identity set.

    Customer records are their own customer identity; orders contribute the
    id of the customer who placed them (None for guest checkouts).
    """
    if identity is IdentityKind.ORDER or record_kind is RecordKind.CUSTOMER:
        return record.id
    return record.customer_id


def classify(
    records: Iterable[RawRecord],
    predicate: Predicate,
    identity: IdentityKind,
    record_kind: RecordKind = RecordKind.ORDER,
) -> IdentitySet:
    """
    Single-pass classification.

    Args:
        records: Collected slice
        predicate: Membership test on one record
        identity: What the resulting set is deduplicated by
        record_kind: Entity kind of ``records``

    Returns:
        Identities of every record satisfying ``predicate``
    """
    members = set()
    for record in records:
        if not predicate(record):
            continue
        key = identity_of(record, identity, record_kind)
        if key:
            members.add(key)
    return IdentitySet(members)


def customers_of(orders: Iterable[RawRecord]) -> IdentitySet:
    """Distinct customers who placed at least one of ``orders``."""
    return IdentitySet(o.customer_id for o in orders if o.customer_id)


def classify_returning(
    in_range: Iterable[RawRecord],
    before_range: Iterable[RawRecord],
) -> IdentitySet:
    """Customers with an order in the range AND an order before it started."""
    return customers_of(in_range) & customers_of(before_range)


def classify_repeat_buyers(orders: Iterable[RawRecord], minimum: int = 2) -> IdentitySet:
    """Customers with at least ``minimum`` orders in the slice."""
    counts = Counter(o.customer_id for o in orders if o.customer_id)
    return IdentitySet(customer for customer, n in counts.items() if n >= minimum)


def classify_inactive(
    customers: Iterable[RawRecord],
    active_orders: Iterable[RawRecord],
) -> IdentitySet:
    """Customers with no order in the active slice."""
    everyone = IdentitySet(c.id for c in customers if c.id)
    return everyone - customers_of(active_orders)


# =============================================================================
# Predicates
# =============================================================================


def always(record: RawRecord) -> bool:
    return True


def mentions(keyword: str) -> Predicate:
    """
    Case-insensitive keyword match over tags, note and custom attributes.

    Custom attributes match on either the key or the value.
    """
    needle = keyword.lower()

    def predicate(record: RawRecord) -> bool:
        if any(needle in tag.lower() for tag in record.tags):
            return True
        if record.note and needle in record.note.lower():
            return True
        for attribute in record.custom_attributes:
            if attribute.key and needle in attribute.key.lower():
                return True
            if attribute.value and needle in attribute.value.lower():
                return True
        return False

    return predicate


def has_discount(record: RawRecord) -> bool:
    return record.discount_amount > 0


def financial_status_in(statuses: frozenset) -> Predicate:
    def predicate(record: RawRecord) -> bool:
        status = record.financial_status
        return status is not None and status.upper() in statuses

    return predicate


def is_cancelled(record: RawRecord) -> bool:
    return record.cancelled_at is not None


def is_abandoned_checkout(record: RawRecord) -> bool:
    """Reached payment (a gateway was attached) but never completed or cancelled."""
    status = (record.financial_status or "").upper()
    return (
        status in ABANDONED_STATUSES
        and record.cancelled_at is None
        and len(record.payment_gateways) > 0
    )


def is_email_subscriber(record: RawRecord) -> bool:
    """Customer with an e-mail address and a subscription tag or marketing consent."""
    if not record.id or not record.email:
        return False
    if any(marker in tag.lower() for tag in record.tags for marker in SUBSCRIPTION_TAGS):
        return True
    if record.marketing_state == SUBSCRIBED_STATE:
        return True
    return record.marketing_opt_in_level in OPT_IN_LEVELS


def _utc_created(record: RawRecord):
    if record.created_at is None:
        return None
    if record.created_at.tzinfo is None:
        return record.created_at.replace(tzinfo=timezone.utc)
    return record.created_at.astimezone(timezone.utc)


def created_between_hours(start_hour: int, end_hour: int) -> Predicate:
    """Order placed in ``[start_hour, end_hour)`` UTC."""

    def predicate(record: RawRecord) -> bool:
        created = _utc_created(record)
        return created is not None and start_hour <= created.hour < end_hour

    return predicate


def created_on_weekend(record: RawRecord) -> bool:
    created = _utc_created(record)
    return created is not None and created.weekday() in (SATURDAY, SUNDAY)
