"""
HTTP transport for directory REST APIs.

This module provides the HTTP client functionality shared by concrete
directory backends: TLS setup, authentication headers, JSON request and
response handling, rate-limit header parsing and retry of transient failures.
"""

import json
import ssl
import logging
from http.client import HTTPConnection, HTTPException, HTTPSConnection
from typing import Any, Callable, Dict, NamedTuple, Optional, Union
from urllib.parse import urlencode, urljoin, urlparse

from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.serialization import pkcs12

from access_sync.client.base import DirectoryAPIError, DirectoryAuthenticationError
from access_sync.models import RateLimitDescription
from access_sync.retry import (
    MaxRetriesExceeded,
    RetryableError,
    create_retry_callback,
    is_retryable_error,
    retry_with_config,
)

logger = logging.getLogger(__name__)

API_KEY_HEADER = 'X-API-KEY'
SESSION_HEADER = 'X-Metabase-Session'

# Methods that may be sent again after the server could have acted on them
REPLAYABLE_METHODS = ('GET', 'HEAD', 'PUT', 'DELETE', 'OPTIONS')


class TransientHTTPError(RetryableError):
    """A failure worth retrying: HTTP 429, 5xx, or a dropped connection."""

    def __init__(self, message: str, status_code: Optional[int] = None,
                 rate_limit: Optional[RateLimitDescription] = None):
        retry_after = rate_limit.retry_after_seconds if rate_limit else None
        super().__init__(message, retry_after=retry_after)
        self.status_code = status_code
        self.rate_limit = rate_limit


class HTTPResult(NamedTuple):
    status: int
    data: Any
    rate_limit: Optional[RateLimitDescription]


class HTTPTransport:
    """
    JSON-over-HTTP client for a directory service.

    Supported ``auth.method`` values:
        - ``api_key``: static key sent as the ``X-API-KEY`` header
        - ``session``: username/password exchanged for a session token,
          re-established once when a request is rejected with 401
        - ``bearer`` / ``token``: static bearer token
    """

    def __init__(self, config: Dict[str, Any], error_config: Optional[Dict[str, Any]] = None):
        """
        Initialize the transport.

        Args:
            config: Directory configuration section
            error_config: ``error_handling`` configuration section (retry settings)
        """
        self.config = config
        self.name = config.get('name', 'directory')
        self.base_url = config['base_url']
        self.auth_config = config.get('auth', {})
        self.auth_method = self.auth_config.get('method', '').lower()
        self.verify_ssl = config.get('verify_ssl', True)
        self.timeout = config.get('timeout', 30)

        self.parsed_url = urlparse(self.base_url)
        self.host = self.parsed_url.netloc
        self.base_path = self.parsed_url.path.rstrip('/')

        self.connection = None
        self.ssl_context = None
        self.auth_headers = {}

        self._setup_ssl_context()
        self._setup_authentication()

        self._send_with_retry = retry_with_config(
            error_config or {},
            on_retry=create_retry_callback(f"{self.name} request")
        )(self._send)

    def _setup_ssl_context(self):
        """Set up SSL context based on configuration."""
        if self.parsed_url.scheme != 'https':
            return

        if not self.verify_ssl:
            self.ssl_context = ssl._create_unverified_context()
            logger.warning(f"SSL verification disabled for {self.name}")
            return

        self.ssl_context = ssl.create_default_context()

        truststore_file = self.config.get('truststore_file')
        if truststore_file:
            self._load_truststore(truststore_file)

    def _load_truststore(self, truststore_file: str):
        """Load custom CA certificates from a PEM or PKCS12 truststore."""
        truststore_type = self.config.get('truststore_type', 'PEM').upper()
        truststore_password = self.config.get('truststore_password')

        try:
            if truststore_type == 'PEM':
                self.ssl_context.load_verify_locations(cafile=truststore_file)

            elif truststore_type == 'PKCS12':
                with open(truststore_file, 'rb') as f:
                    p12_data = f.read()

                _, certificate, additional_certificates = pkcs12.load_key_and_certificates(
                    p12_data, truststore_password.encode() if truststore_password else None
                )

                ca_certs = []
                if certificate:
                    ca_certs.append(certificate.public_bytes(serialization.Encoding.PEM))
                for cert in (additional_certificates or []):
                    ca_certs.append(cert.public_bytes(serialization.Encoding.PEM))

                if not ca_certs:
                    raise DirectoryAPIError(f"No certificates found in {truststore_file}")
                self.ssl_context.load_verify_locations(cadata=b'\n'.join(ca_certs).decode('ascii'))

            else:
                raise DirectoryAPIError(f"Unsupported truststore type '{truststore_type}'")

            logger.info(f"Loaded {truststore_type} truststore: {truststore_file}")

        except DirectoryAPIError:
            raise
        except Exception as e:
            logger.error(f"Failed to load truststore {truststore_file}: {e}")
            raise DirectoryAPIError(f"Truststore loading failed: {e}")

    def _setup_authentication(self):
        """Set up static authentication headers based on configuration."""
        if self.auth_method == 'api_key':
            api_key = self.auth_config.get('api_key')
            if api_key:
                self.auth_headers[API_KEY_HEADER] = api_key
            else:
                logger.error(f"API key auth configured but missing api_key for {self.name}")

        elif self.auth_method in ('bearer', 'token'):
            token = self.auth_config.get('token')
            if token:
                self.auth_headers['Authorization'] = f"Bearer {token}"
            else:
                logger.error(f"Token auth configured but missing token for {self.name}")

        elif self.auth_method == 'session':
            session_token = self.auth_config.get('session_token')
            if session_token:
                self.auth_headers[SESSION_HEADER] = session_token
            elif not (self.auth_config.get('username') and self.auth_config.get('password')):
                logger.error(f"Session auth configured but missing username or password for {self.name}")

        elif self.auth_method:
            logger.warning(f"Unknown authentication method '{self.auth_method}' for {self.name}")

    def authenticate(self) -> bool:
        """
        Perform any authentication exchange the configured method requires.

        Returns:
            True if the transport is ready to make authenticated requests

        Raises:
            DirectoryAuthenticationError: If the session login is rejected
        """
        if self.auth_method != 'session' or SESSION_HEADER in self.auth_headers:
            return True
        return self._with_api_errors('POST', self._full_path('/api/session'), self._open_session)

    def _open_session(self) -> bool:
        username = self.auth_config.get('username')
        password = self.auth_config.get('password')
        if not (username and password):
            raise DirectoryAuthenticationError(f"Session credentials missing for {self.name}")

        # Logging in again is harmless, so the login is always replayable
        self.auth_headers.pop(SESSION_HEADER, None)
        result = self._send_with_retry('POST', self._full_path('/api/session'),
                                       {'username': username, 'password': password},
                                       allow_reauth=False, replayable=True)

        token = result.data.get('id') if isinstance(result.data, dict) else None
        if not token:
            raise DirectoryAuthenticationError(f"Session response from {self.name} did not include a token")

        self.auth_headers[SESSION_HEADER] = token
        logger.info(f"Established session for {self.name}")
        return True

    def _get_connection(self) -> Union[HTTPSConnection, HTTPConnection]:
        """Get or create HTTP connection."""
        if self.connection:
            return self.connection

        if self.parsed_url.scheme == 'https':
            self.connection = HTTPSConnection(self.host, context=self.ssl_context, timeout=self.timeout)
        else:
            self.connection = HTTPConnection(self.host, timeout=self.timeout)

        return self.connection

    def _full_path(self, path: str, query: Optional[Dict[str, Any]] = None) -> str:
        full_path = urljoin(self.base_path + '/', path.lstrip('/'))
        if query:
            full_path = f"{full_path}?{urlencode(query)}"
        return full_path

    def request(self, method: str, path: str, body: Optional[Any] = None,
                query: Optional[Dict[str, Any]] = None) -> HTTPResult:
        """
        Make an HTTP request to the directory API.

        Transient failures are retried according to the ``error_handling``
        configuration before an error is raised. POST requests are only
        retried when the server cannot have acted on them: a 429 answer or
        a connection that failed before the request went out.

        Args:
            method: HTTP method (GET, POST, PUT, DELETE)
            path: API endpoint path (relative to base_url)
            body: JSON-serializable request body
            query: Query string parameters

        Returns:
            HTTPResult with parsed JSON data and any rate-limit signal

        Raises:
            DirectoryAPIError: If the request fails; carries the last rate-limit signal seen
        """
        full_path = self._full_path(path, query)

        def send():
            if self.auth_method == 'session' and SESSION_HEADER not in self.auth_headers:
                self._open_session()
            return self._send_with_retry(method, full_path, body)

        return self._with_api_errors(method, full_path, send)

    def _with_api_errors(self, method: str, full_path: str, func: Callable[[], Any]) -> Any:
        """Run func, reporting every transport failure as a DirectoryAPIError."""
        try:
            return func()
        except MaxRetriesExceeded as e:
            last = e.last_exception
            logger.error(f"{method} {full_path} failed after {e.attempts} attempts for {self.name}: {last}")
            raise DirectoryAPIError(
                str(last),
                status_code=getattr(last, 'status_code', None),
                rate_limit=getattr(last, 'rate_limit', None)
            ) from last
        except TransientHTTPError as e:
            logger.error(f"{method} {full_path} failed for {self.name}: {e}")
            raise DirectoryAPIError(str(e), status_code=e.status_code, rate_limit=e.rate_limit) from e

    def _send(self, method: str, full_path: str, body: Optional[Any] = None,
              allow_reauth: bool = True, replayable: Optional[bool] = None) -> HTTPResult:
        """
        Perform a single HTTP exchange.

        Only failures that are safe to send again are raised as
        TransientHTTPError. For a request that is not replayable, a 5xx
        answer or a connection lost after sending is final.
        """
        if replayable is None:
            replayable = method.upper() in REPLAYABLE_METHODS

        headers = {'Accept': 'application/json'}
        headers.update(self.auth_headers)

        request_body = None
        if body is not None:
            request_body = json.dumps(body)
            headers['Content-Type'] = 'application/json'

        # Connect and send; nothing has reached the server if this fails
        try:
            conn = self._get_connection()
            logger.debug(f"Making {method} request to {self.host}{full_path}")
            conn.request(method, full_path, request_body, headers)
        except (ConnectionError, OSError, HTTPException) as e:
            self.close()
            raise TransientHTTPError(f"Connection error to {self.name}: {e}")

        try:
            response = conn.getresponse()
            raw_body = response.read()
            response_headers = response.getheaders()
        except (ConnectionError, OSError, HTTPException) as e:
            self.close()
            message = f"Connection lost waiting for response from {self.name}: {e}"
            if replayable:
                raise TransientHTTPError(message)
            raise DirectoryAPIError(f"{message}; {method} not retried")

        logger.debug(f"Response status: {response.status} {response.reason}")
        rate_limit = RateLimitDescription.from_headers(response_headers, status_code=response.status)

        if response.status == 401:
            if allow_reauth and self.auth_method == 'session' and self.auth_config.get('password'):
                logger.info(f"401 received, re-establishing session for {self.name}")
                self._open_session()
                return self._send(method, full_path, body, allow_reauth=False, replayable=replayable)
            raise DirectoryAuthenticationError(f"Authentication failed for {self.name}",
                                               status_code=401, rate_limit=rate_limit)

        if response.status >= 400:
            detail = self._error_detail(raw_body.decode('utf-8', errors='replace'))
            message = f"HTTP {response.status}: {response.reason}"
            if detail:
                message = f"{message} ({detail})"
            error = DirectoryAPIError(message, status_code=response.status, rate_limit=rate_limit)

            # A 429 was refused before processing, so it is always safe to send again
            if is_retryable_error(error) and (replayable or response.status == 429):
                raise TransientHTTPError(message, status_code=response.status, rate_limit=rate_limit)
            raise error

        try:
            data = json.loads(raw_body.decode('utf-8')) if raw_body else {}
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise DirectoryAPIError(f"Invalid JSON response from {self.name}: {e}",
                                    status_code=response.status, rate_limit=rate_limit)

        return HTTPResult(response.status, data, rate_limit)

    @staticmethod
    def _error_detail(response_data: str) -> str:
        if not response_data:
            return ''
        try:
            parsed = json.loads(response_data)
        except json.JSONDecodeError:
            return response_data.strip()[:200]
        if isinstance(parsed, dict):
            return str(parsed.get('message') or parsed.get('errors') or '')[:200]
        return str(parsed)[:200]

    def close(self):
        """Close HTTP connection."""
        if self.connection:
            try:
                self.connection.close()
            except Exception as e:
                logger.warning(f"Error closing connection for {self.name}: {e}")
            finally:
                self.connection = None
