"""
GraphQL record source over the store admin API.

Posts one cursor-paginated query per page and normalizes the returned
nodes to ``RawRecord``. GraphQL ``errors`` are handed back inside the
``Page`` untouched; deciding whether a message is a governance refusal is
the collector's job, not the transport's.

Transport behavior:
- 5xx responses and network errors are retried with exponential backoff
- 4xx responses raise ``SourceError`` immediately
- Undecodable or shapeless payloads raise ``SourceError``
"""

import asyncio
from datetime import datetime, timezone
from typing import Any, Optional

import httpx
import structlog

from cohortlens.config import get_settings
from cohortlens.connectors.base import RecordSource
from cohortlens.engine.failures import SourceError
from cohortlens.models import CustomAttribute, Page, RawRecord, RecordKind, RecordQuery

logger = structlog.get_logger()


ORDERS_QUERY = """
query Orders($first: Int!, $after: String, $query: String) {
  orders(first: $first, after: $after, query: $query) {
    pageInfo {
      hasNextPage
      endCursor
    }
    nodes {
      id
      createdAt
      cancelledAt
      tags
      note
      displayFinancialStatus
      paymentGatewayNames
      customAttributes {
        key
        value
      }
      totalDiscountsSet {
        shopMoney {
          amount
        }
      }
      customer {
        id
      }
    }
  }
}
"""

CUSTOMERS_QUERY = """
query Customers($first: Int!, $after: String, $query: String) {
  customers(first: $first, after: $after, query: $query) {
    pageInfo {
      hasNextPage
      endCursor
    }
    nodes {
      id
      createdAt
      email
      tags
      note
      emailMarketingConsent {
        marketingState
        marketingOptInLevel
      }
    }
  }
}
"""

DOCUMENTS = {
    RecordKind.ORDER: ("orders", ORDERS_QUERY),
    RecordKind.CUSTOMER: ("customers", CUSTOMERS_QUERY),
}


def format_instant(moment: datetime) -> str:
    """UTC ISO-8601 with millisecond precision, as the search syntax expects."""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    utc = moment.astimezone(timezone.utc)
    return utc.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def build_search(query: RecordQuery) -> Optional[str]:
    """
    Search string for the created-at bounds of ``query``.

    Returns:
        e.g. ``"created_at:>='2026-01-01T00:00:00.000Z' created_at:<='...'"``,
        or None for an unbounded query
    """
    clauses = []
    if query.created_from is not None:
        clauses.append(f"created_at:>='{format_instant(query.created_from)}'")
    if query.created_to is not None:
        clauses.append(f"created_at:<='{format_instant(query.created_to)}'")
    return " ".join(clauses) or None


def _amount(money_set: Optional[dict[str, Any]]) -> float:
    try:
        return float(((money_set or {}).get("shopMoney") or {}).get("amount") or 0)
    except (TypeError, ValueError):
        return 0.0


def normalize_order(node: dict[str, Any]) -> RawRecord:
    customer = node.get("customer") or {}
    return RawRecord(
        id=node["id"],
        customer_id=customer.get("id"),
        created_at=node.get("createdAt"),
        cancelled_at=node.get("cancelledAt"),
        tags=node.get("tags") or [],
        note=node.get("note"),
        financial_status=node.get("displayFinancialStatus"),
        payment_gateways=node.get("paymentGatewayNames") or [],
        custom_attributes=[
            CustomAttribute(key=a.get("key"), value=a.get("value"))
            for a in node.get("customAttributes") or []
        ],
        discount_amount=_amount(node.get("totalDiscountsSet")),
    )


def normalize_customer(node: dict[str, Any]) -> RawRecord:
    consent = node.get("emailMarketingConsent") or {}
    return RawRecord(
        id=node["id"],
        customer_id=node["id"],
        created_at=node.get("createdAt"),
        email=node.get("email"),
        tags=node.get("tags") or [],
        note=node.get("note"),
        marketing_state=consent.get("marketingState"),
        marketing_opt_in_level=consent.get("marketingOptInLevel"),
    )


NORMALIZERS = {
    RecordKind.ORDER: normalize_order,
    RecordKind.CUSTOMER: normalize_customer,
}


class GraphQLSource(RecordSource):
    """
    Async GraphQL client implementing ``RecordSource``.

    Use as an async context manager so the connection pool is closed:

        >>> async with GraphQLSource.from_settings() as source:
        ...     page = await source.fetch_page(RecordQuery(kind=RecordKind.ORDER))
    """

    def __init__(
        self,
        endpoint: str,
        access_token: str,
        timeout: float = 30.0,
        retry_count: int = 3,
        backoff_base: float = 1.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize the GraphQL source.

        Args:
            endpoint: GraphQL endpoint URL
            access_token: Admin API access token
            timeout: Per-request timeout in seconds
            retry_count: Attempts for 5xx and network failures
            backoff_base: First backoff delay; doubles on each retry
            transport: Optional httpx transport (tests use ``httpx.MockTransport``)
        """
        self.endpoint = endpoint
        self.access_token = access_token
        self.timeout = timeout
        self.retry_count = retry_count
        self.backoff_base = backoff_base
        self._transport = transport
        self._http_client: Optional[httpx.AsyncClient] = None

        logger.info(
            "graphql_source_initialized",
            endpoint=endpoint,
            has_token=bool(access_token),
        )

    @classmethod
    def from_settings(cls) -> "GraphQLSource":
        settings = get_settings()
        return cls(
            endpoint=settings.graphql_endpoint,
            access_token=settings.source_access_token,
            timeout=settings.source_timeout_seconds,
            retry_count=settings.source_retry_count,
        )

    async def __aenter__(self):
        """Async context manager entry."""
        self._http_client = self._new_client()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit."""
        await self.aclose()

    async def aclose(self) -> None:
        if self._http_client:
            await self._http_client.aclose()
            self._http_client = None

    def _new_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout, transport=self._transport)

    async def fetch_page(
        self,
        query: RecordQuery,
        cursor: Optional[str] = None,
        first: int = 250,
    ) -> Page:
        connection, document = DOCUMENTS[query.kind]
        variables = {"first": first, "after": cursor, "query": build_search(query)}

        payload = await self._post({"query": document, "variables": variables})

        errors = [
            (e or {}).get("message") or "Unknown GraphQL error"
            for e in payload.get("errors") or []
        ]
        data = payload.get("data") or {}
        block = data.get(connection)

        if block is None:
            if errors:
                return Page(errors=errors)
            raise SourceError(f"Malformed response: missing '{connection}' connection")

        page_info = block.get("pageInfo") or {}
        normalize = NORMALIZERS[query.kind]
        try:
            records = [normalize(node) for node in block.get("nodes") or []]
        except (KeyError, TypeError, ValueError) as e:
            raise SourceError(f"Malformed {connection} node: {e}")

        return Page(
            records=records,
            has_next_page=bool(page_info.get("hasNextPage")),
            end_cursor=page_info.get("endCursor"),
            errors=errors,
        )

    async def _post(self, body: dict[str, Any]) -> dict[str, Any]:
        """
        POST a GraphQL document with retry logic.

        Raises:
            SourceError: On 4xx, exhausted retries or an undecodable body
        """
        if not self._http_client:
            self._http_client = self._new_client()

        headers = {
            "X-Shopify-Access-Token": self.access_token,
            "Accept": "application/json",
            "Content-Type": "application/json",
        }

        for attempt in range(self.retry_count):
            try:
                response = await self._http_client.post(self.endpoint, json=body, headers=headers)
                response.raise_for_status()

                logger.debug(
                    "graphql_request_success",
                    status_code=response.status_code,
                    attempt=attempt + 1,
                )

                try:
                    return response.json()
                except ValueError as e:
                    raise SourceError(f"Undecodable response body: {e}")

            except httpx.HTTPStatusError as e:
                logger.error(
                    "graphql_request_failed",
                    status_code=e.response.status_code,
                    error=e.response.text,
                    attempt=attempt + 1,
                )

                # Don't retry client errors (4xx)
                if 400 <= e.response.status_code < 500:
                    raise SourceError(f"Source request failed: {e.response.text}")

                if attempt < self.retry_count - 1:
                    await self._backoff(attempt)
                else:
                    raise SourceError(
                        f"Source request failed after {self.retry_count} attempts: "
                        f"{e.response.text}"
                    )

            except httpx.HTTPError as e:
                logger.error("graphql_request_error", error=str(e), attempt=attempt + 1)

                if attempt < self.retry_count - 1:
                    await self._backoff(attempt)
                else:
                    raise SourceError(f"Source unreachable: {e}")

        raise SourceError("Source request was not attempted")

    async def _backoff(self, attempt: int) -> None:
        wait_time = self.backoff_base * 2**attempt
        logger.info("retrying_request", wait_seconds=wait_time)
        await asyncio.sleep(wait_time)
