"""
Content Management API Client - rate-limited access to a content space
"""

import json
import logging
from typing import List, Dict, Optional, Any
import requests
from ratelimit import limits, sleep_and_retry
import os
import time
import random
from dotenv import load_dotenv

from utils.logging_config import log_api_request

from .models import Entry, Asset, Tag, SpaceContext

# Load environment variables
load_dotenv('config.env')

logger = logging.getLogger(__name__)

CMA_CONTENT_TYPE = 'application/vnd.contentful.management.v1+json'


class RateLimitError(Exception):
    """Raised when API rate limits are exceeded"""

    def __init__(self, message: str, retry_after: Optional[float] = None):
        super().__init__(message)
        self.retry_after = retry_after


class AuthenticationError(Exception):
    """Raised when the management token is missing, invalid or lacks access"""
    pass


class TransientError(Exception):
    """Raised for temporary errors that should be retried"""
    pass


class ConnectivityError(TransientError):
    """Raised when the API host cannot be reached at all"""
    pass


class PermanentError(Exception):
    """Raised for permanent errors that should not be retried"""
    pass


class NotFoundError(PermanentError):
    """Raised when an entry, asset or tag does not exist"""
    pass


class VersionConflictError(PermanentError):
    """Raised when an update carries a stale X-Contentful-Version"""
    pass


class UnknownFieldError(PermanentError):
    """Raised when a query filters on a field the content type does not have"""
    pass


class ParsingError(Exception):
    """Raised when API response cannot be parsed"""
    pass


# Errors that concern one item only; callers isolate these per item
ITEM_ERRORS = (PermanentError, TransientError, RateLimitError, ParsingError)


def _unknown_field_detail(text: str) -> str:
    """The 'No field with id' line of an InvalidQuery error body, else the body head"""
    try:
        errors = json.loads(text).get('details', {}).get('errors', [])
    except (ValueError, AttributeError):
        return text[:300]

    for error in errors if isinstance(errors, list) else []:
        detail = error.get('details') if isinstance(error, dict) else None
        if isinstance(detail, str) and 'No field with id' in detail:
            return detail
    return text[:300]


class ContentManagementClient:
    """
    Client for the Content Management API

    Implements rate limiting, retry with backoff and error categorisation
    for the handful of endpoints the crawler and tag applier need.
    """

    def __init__(self,
                 space: SpaceContext,
                 access_token: Optional[str] = None,
                 base_url: Optional[str] = None,
                 max_retries: int = 3,
                 timeout: float = 30.0):
        """
        Initialize the Content Management API client

        Args:
            space: Space, environment and locale every call is scoped to
            access_token: Management token (or set CONTENTFUL_MANAGEMENT_TOKEN env var)
            base_url: Base URL for API (or set CMA_BASE_URL env var)
            max_retries: Retries for rate-limited and transient failures
            timeout: Per-request transport timeout in seconds
        """
        self.space = space
        self.base_url = base_url or os.getenv('CMA_BASE_URL', 'https://api.contentful.com')
        self.max_retries = max_retries
        self.timeout = timeout

        token = access_token or os.getenv('CONTENTFUL_MANAGEMENT_TOKEN')
        if not token:
            raise AuthenticationError("No management token configured (CONTENTFUL_MANAGEMENT_TOKEN)")

        # Session for connection pooling
        self.session = requests.Session()
        self.session.headers.update({
            'Authorization': f'Bearer {token}',
            'Content-Type': CMA_CONTENT_TYPE,
            'User-Agent': 'tagcrawl/1.0'
        })

        logger.info(f"Initialized CMA client for space {space.space_id}/{space.environment_id}")

    @property
    def environment_path(self) -> str:
        return f"spaces/{self.space.space_id}/environments/{self.space.environment_id}"

    def _exponential_backoff_retry(self, func, *args, **kwargs):
        """
        Execute function with retry logic

        - Rate Limit (429): exponential backoff with jitter, or the server's reset hint
        - Server/Network Error: fixed retry with 5s delay
        - Everything else: no retry
        """
        last_exception = None

        for attempt in range(self.max_retries + 1):
            try:
                return func(*args, **kwargs)

            except RateLimitError as e:
                if attempt == self.max_retries:
                    raise e

                if e.retry_after is not None:
                    delay = min(e.retry_after + random.uniform(0.1, 0.5), 60)
                else:
                    delay = min(2 ** attempt + random.uniform(0.1, 0.5), 60)

                logger.warning(f"Rate limit hit, backing off for {delay:.1f}s (attempt {attempt + 1}/{self.max_retries + 1})")
                time.sleep(delay)
                last_exception = e

            except TransientError as e:
                if attempt == self.max_retries:
                    raise e

                logger.warning(f"Transient error, retrying in 5s (attempt {attempt + 1}/{self.max_retries + 1}): {e}")
                time.sleep(5)
                last_exception = e

        if last_exception:
            raise last_exception

    def _raise_for_status(self, response: requests.Response, method: str, url: str, response_time: float):
        """Map an unsuccessful HTTP status onto the error taxonomy"""
        status = response.status_code
        full_text = response.text or ''
        body = full_text[:300]
        log_api_request(logger, method, url, status, response_time, error=body[:100])

        if status in (401, 403):
            raise AuthenticationError(f"Access denied ({status}): {body}")
        if status == 404:
            raise NotFoundError(f"Resource not found: {url}")
        if status == 409:
            raise VersionConflictError(f"Version conflict on {url}")
        if status == 422 and 'No field with id' in full_text:
            raise UnknownFieldError(_unknown_field_detail(full_text))
        if status == 429:
            reset = response.headers.get('X-Contentful-RateLimit-Reset')
            retry_after = float(reset) if reset and reset.replace('.', '', 1).isdigit() else None
            raise RateLimitError("Rate limit exceeded - server side throttling", retry_after=retry_after)
        if status >= 500:
            raise TransientError(f"Server error {status}: {body}")
        raise PermanentError(f"Client error {status}: {body}")

    def _make_request_internal(self, method: str, endpoint: str,
                               params: Optional[Dict] = None,
                               json_body: Optional[Dict] = None,
                               headers: Optional[Dict] = None) -> Dict:
        url = f"{self.base_url.rstrip('/')}/{endpoint.lstrip('/')}"
        start_time = time.time()

        try:
            logger.debug(f"{method} {url} params={params}")
            response = self.session.request(method, url, params=params, json=json_body,
                                            headers=headers, timeout=self.timeout)
        except requests.exceptions.Timeout:
            log_api_request(logger, method, url, 0, time.time() - start_time, error="Request timeout")
            raise TransientError("Request timeout")
        except requests.exceptions.ConnectionError as e:
            log_api_request(logger, method, url, 0, time.time() - start_time, error="Connection error")
            raise ConnectivityError(f"Connection error: {e}")
        except requests.exceptions.RequestException as e:
            log_api_request(logger, method, url, 0, time.time() - start_time, error=f"Network error: {e}")
            raise TransientError(f"Network error: {e}")

        response_time = time.time() - start_time

        if not 200 <= response.status_code < 300:
            self._raise_for_status(response, method, url, response_time)

        try:
            json_data = response.json()
        except ValueError as e:
            log_api_request(logger, method, url, response.status_code, response_time,
                            error=f"JSON parsing error: {e}")
            raise ParsingError(f"Failed to parse JSON response: {e}")

        record_count = None
        if isinstance(json_data, dict) and isinstance(json_data.get('items'), list):
            record_count = len(json_data['items'])

        log_api_request(logger, method, url, response.status_code, response_time,
                        record_count=record_count)
        return json_data

    @sleep_and_retry
    @limits(calls=7, period=1)
    def _make_request(self, method: str, endpoint: str, **kwargs) -> Dict:
        """
        Make a rate-limited request with retry logic

        Raises:
            RateLimitError: If rate limits exceeded after retries
            AuthenticationError: If the token is rejected
            PermanentError: For 4xx errors that shouldn't be retried
            TransientError: For network/server errors after retries
            ParsingError: If response cannot be parsed
        """
        return self._exponential_backoff_retry(self._make_request_internal, method, endpoint, **kwargs)

    # --- entries ---

    def get_entry(self, entry_id: str) -> Entry:
        data = self._make_request('GET', f"{self.environment_path}/entries/{entry_id}")
        return Entry.from_api_response(data)

    def update_entry(self, entry_id: str, document: Dict[str, Any], version: int) -> Entry:
        """
        Replace an entry's fields and metadata (full-document semantics)

        Args:
            entry_id: Entry to update
            document: Document carrying the new fields and metadata
            version: Version the document was derived from

        Returns:
            The entry as written, carrying its new version
        """
        body = {'fields': document.get('fields', {}), 'metadata': document.get('metadata', {})}
        data = self._make_request('PUT', f"{self.environment_path}/entries/{entry_id}",
                                  json_body=body, headers={'X-Contentful-Version': str(version)})
        return Entry.from_api_response(data)

    def publish_entry(self, entry_id: str, version: int) -> Entry:
        data = self._make_request('PUT', f"{self.environment_path}/entries/{entry_id}/published",
                                  headers={'X-Contentful-Version': str(version)})
        return Entry.from_api_response(data)

    def query_entries(self, content_type: str, filters: Optional[Dict[str, Any]] = None,
                      limit: int = 100, skip: int = 0) -> List[Entry]:
        """
        Query one page of entries of a content type

        Args:
            content_type: Content type id to filter on
            filters: Extra query filters, e.g. {'fields.location.sys.id': 'abc'}
            limit: Page size
            skip: Offset of the page

        Raises:
            UnknownFieldError: If a filter names a field the content type lacks
        """
        params = {'content_type': content_type, 'limit': limit, 'skip': skip}
        params.update(filters or {})
        data = self._make_request('GET', f"{self.environment_path}/entries", params=params)
        return [Entry.from_api_response(item) for item in data.get('items', [])]

    # --- assets ---

    def get_asset(self, asset_id: str) -> Asset:
        data = self._make_request('GET', f"{self.environment_path}/assets/{asset_id}")
        return Asset.from_api_response(data)

    def update_asset(self, asset_id: str, document: Dict[str, Any], version: int) -> Asset:
        body = {'fields': document.get('fields', {}), 'metadata': document.get('metadata', {})}
        data = self._make_request('PUT', f"{self.environment_path}/assets/{asset_id}",
                                  json_body=body, headers={'X-Contentful-Version': str(version)})
        return Asset.from_api_response(data)

    def publish_asset(self, asset_id: str, version: int) -> Asset:
        data = self._make_request('PUT', f"{self.environment_path}/assets/{asset_id}/published",
                                  headers={'X-Contentful-Version': str(version)})
        return Asset.from_api_response(data)

    # --- tags ---

    def list_tags(self, limit: int = 100, skip: int = 0) -> List[Tag]:
        """Fetch one page of the environment's tag entities"""
        data = self._make_request('GET', f"{self.environment_path}/tags",
                                  params={'limit': limit, 'skip': skip})
        return [Tag.from_api_response(item) for item in data.get('items', [])]

    def close(self):
        """Close the HTTP session"""
        if self.session:
            self.session.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
