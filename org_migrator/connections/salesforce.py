"""Org connection backed by simple_salesforce."""

import asyncio
import logging
from typing import Any, AsyncIterator, Callable, Dict, List, Optional, TypeVar

import requests
from requests.adapters import HTTPAdapter
from simple_salesforce import Salesforce
from simple_salesforce.exceptions import (
    SalesforceAuthenticationFailed,
    SalesforceError,
    SalesforceExpiredSession,
)
from urllib3.util.retry import Retry

from .base import OrgConnection
from ..exceptions import ApiError, AuthError, TransientApiError, classify_error

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _error_from_content(exc: SalesforceError) -> ApiError:
    """Map a simple_salesforce error payload onto the engine taxonomy."""
    content = exc.content
    code = None
    message = str(exc)
    if isinstance(content, list) and content:
        code = content[0].get("errorCode")
        message = content[0].get("message", message)
    elif isinstance(content, dict):
        code = content.get("errorCode") or content.get("error")
        message = content.get("message") or content.get("error_description") or message
    if code is None and exc.status in (500, 502, 503, 504):
        code = "SERVER_UNAVAILABLE"
    return classify_error(code, message)


class SalesforceConnection(OrgConnection):
    """
    Connection to a Salesforce org using an OAuth access token.

    simple_salesforce is synchronous, so every call runs in a worker thread
    and is bounded by ``timeout`` seconds.
    """

    def __init__(
        self,
        instance_url: str,
        session_id: str,
        org_id: Optional[str] = None,
        api_version: str = "59.0",
        timeout: float = 120.0,
        max_http_retries: int = 3,
        sf: Optional[Salesforce] = None,
    ):
        """
        Initialize the connection.

        Args:
            instance_url: Org instance URL (https://xxx.my.salesforce.com)
            session_id: OAuth access token
            org_id: Organization id, used for reporting
            api_version: REST API version
            timeout: Per-call timeout in seconds
            max_http_retries: HTTP-level retries for 5xx and 429 responses
            sf: Pre-built client, mainly for tests
        """
        super().__init__(org_id=org_id, instance_url=instance_url)
        self.timeout = timeout
        self.sf = sf or Salesforce(
            instance_url=instance_url,
            session_id=session_id,
            version=api_version,
            session=self._create_session(max_http_retries),
        )

    def _create_session(self, max_retries: int) -> requests.Session:
        """Create a requests session with retry logic."""
        session = requests.Session()

        retries = Retry(
            total=max_retries,
            backoff_factor=2.0,
            status_forcelist=[429, 500, 502, 503, 504],
            allowed_methods=["GET", "HEAD"],
        )

        adapter = HTTPAdapter(max_retries=retries)
        session.mount("https://", adapter)
        session.mount("http://", adapter)

        return session

    async def _call(self, func: Callable[..., T], *args, **kwargs) -> T:
        """Run a blocking client call off the event loop with a timeout."""
        try:
            return await asyncio.wait_for(
                asyncio.to_thread(func, *args, **kwargs),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError:
            raise TransientApiError(f"Call exceeded {self.timeout}s timeout", code="TIMEOUT")
        except (SalesforceExpiredSession, SalesforceAuthenticationFailed) as e:
            raise AuthError(str(e), code="INVALID_SESSION_ID")
        except SalesforceError as e:
            raise _error_from_content(e)
        except requests.exceptions.ConnectionError as e:
            raise TransientApiError(str(e), code="CONNECTION_ERROR")

    async def query_pages(self, soql: str, page_size: int = 200) -> AsyncIterator[List[Dict[str, Any]]]:
        headers = {"Sforce-Query-Options": f"batchSize={max(200, min(page_size, 2000))}"}
        logger.debug(f"Query: {soql}")

        response = await self._call(self.sf.query, soql, headers=headers)
        while True:
            yield response.get("records", [])
            if response.get("done", True) or not response.get("nextRecordsUrl"):
                break
            response = await self._call(
                self.sf.query_more, response["nextRecordsUrl"], identifier_is_url=True, headers=headers
            )

    async def count(self, soql: str) -> int:
        response = await self._call(self.sf.query, soql)
        return int(response.get("totalSize", 0))

    async def describe(self, object_name: str) -> Dict[str, Any]:
        sobject = getattr(self.sf, object_name)
        return await self._call(sobject.describe)

    async def bulk_upsert(
        self,
        object_name: str,
        external_id_field: str,
        records: List[Dict[str, Any]],
        serial: bool = False,
    ) -> List[Dict[str, Any]]:
        handler = getattr(self.sf.bulk, object_name)
        results = await self._call(
            handler.upsert,
            records,
            external_id_field,
            batch_size=len(records),
            use_serial=serial,
        )
        return list(results)

    async def bulk_delete(self, object_name: str, record_ids: List[str]) -> List[Dict[str, Any]]:
        handler = getattr(self.sf.bulk, object_name)
        results = await self._call(handler.delete, [{"Id": record_id} for record_id in record_ids])
        return list(results)
