"""JSON-over-HTTP connector built on a requests session."""
from typing import Any, Dict, Optional

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from .base_connector import BaseConnector

USER_AGENT = 'anomaly-medallion/1.0'
RETRY_STATUSES = (429, 500, 502, 503, 504)


class APIConnector(BaseConnector):
    """
    Session bound to one service root URL.

    Transport retries are off unless `retry_attempts` is positive; callers
    that own their failure semantics (the prediction gateway) keep them off.
    """

    def __init__(
        self,
        name: str,
        base_url: str,
        api_key: Optional[str] = None,
        timeout: int = 30,
        retry_attempts: int = 0,
        backoff_factor: float = 1.0,
        session: Optional[requests.Session] = None,
    ):
        """
        Args:
            name: Service name (for logging)
            base_url: Scheme, host and port, e.g. http://localhost:3333
            api_key: Sent as a bearer token when set
            timeout: Per-request timeout in seconds
            retry_attempts: urllib3 retries on RETRY_STATUSES and connection errors
            backoff_factor: urllib3 backoff between retries
            session: Session to reuse (tests pass a mock)
        """
        super().__init__(name, timeout)
        self.base_url = base_url.rstrip('/')
        self.api_key = api_key
        self.session = session or requests.Session()
        self.session.headers.update({'Content-Type': 'application/json', 'User-Agent': USER_AGENT})
        if retry_attempts > 0:
            adapter = HTTPAdapter(max_retries=Retry(
                total=retry_attempts,
                backoff_factor=backoff_factor,
                status_forcelist=RETRY_STATUSES,
                allowed_methods=['GET', 'POST'],
            ))
            self.session.mount('http://', adapter)
            self.session.mount('https://', adapter)

    def url_for(self, endpoint: str) -> str:
        endpoint = (endpoint or '').lstrip('/')
        return f'{self.base_url}/{endpoint}' if endpoint else self.base_url

    def authenticate(self) -> bool:
        if self.api_key:
            self.session.headers['Authorization'] = f'Bearer {self.api_key}'
        self.logger.debug(f'{self.name}: session ready (api key: {"yes" if self.api_key else "no"})')
        return True

    def validate_connection(self) -> bool:
        """GET /health; any status below 400 counts as up."""
        try:
            response = self.session.get(self.url_for('health'), timeout=self.timeout)
        except requests.RequestException as e:
            self.logger.error(f'{self.name} health check failed: {e}')
            return False
        if response.status_code >= 400:
            self.logger.warning(f'{self.name} health check returned HTTP {response.status_code}')
            return False
        return True

    def post(self, endpoint: str, json: Any = None, headers: Optional[Dict[str, str]] = None) -> Any:
        """
        POST a JSON body and decode the JSON answer.

        Raises:
            requests.RequestException: Network errors, timeouts and non-2xx statuses
            ValueError: If the response body is not JSON
        """
        self.ensure_authenticated()
        response = self.session.post(self.url_for(endpoint), json=json, headers=headers, timeout=self.timeout)
        response.raise_for_status()
        return response.json()

    def close(self) -> None:
        self.session.close()
        self.logger.info(f'Closed connection to {self.name}')
