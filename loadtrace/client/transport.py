"""
HTTP transport interface

The facade does not perform I/O itself; it delegates to a Transport. The
default implementation sends requests with a shared requests.Session.
Transport exceptions propagate unchanged to the facade.
"""

import abc
import threading
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional

import requests


@dataclass
class TransportResponse:
    """Raw outcome of one HTTP exchange"""
    status: int
    headers: Dict[str, str] = field(default_factory=dict)
    body: bytes = b""
    url: str = ""


class Transport(abc.ABC):
    """Executes one HTTP request"""

    @abc.abstractmethod
    def request(self, method: str, url: str, headers: Mapping[str, str],
                body: Any = None, timeout: Optional[float] = None) -> TransportResponse:
        """Send a request and wait for the complete response

        Args:
            method: HTTP method, upper case
            url: Absolute URL
            headers: Request headers, propagation headers included
            body: Request body (bytes, str, or a mapping sent as form data)
            timeout: Seconds to wait for the response

        Returns:
            TransportResponse: Status, headers and body

        Raises:
            Exception: Whatever the underlying HTTP library raises
        """
        pass

    def close(self) -> None:
        pass


class RequestsTransport(Transport):
    """Transport on top of requests, one Session per thread"""

    def __init__(self, default_timeout: float = 60.0):
        self.default_timeout = default_timeout
        self._local = threading.local()
        self._sessions = []
        self._lock = threading.Lock()

    def _session(self) -> requests.Session:
        session = getattr(self._local, "session", None)
        if session is None:
            session = requests.Session()
            self._local.session = session
            with self._lock:
                self._sessions.append(session)
        return session

    def request(self, method, url, headers, body=None, timeout=None):
        response = self._session().request(
            method,
            url,
            headers=dict(headers),
            data=body,
            timeout=timeout if timeout is not None else self.default_timeout,
            allow_redirects=True,
        )
        return TransportResponse(
            status=response.status_code,
            headers=dict(response.headers),
            body=response.content,
            url=response.url,
        )

    def close(self):
        with self._lock:
            sessions, self._sessions = self._sessions, []
        for session in sessions:
            session.close()
        self._local = threading.local()
