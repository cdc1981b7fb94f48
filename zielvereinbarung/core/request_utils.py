"""
Request utility functions

Handlers work with RequestInfo instead of reaching into framework request
objects for headers.
"""
from dataclasses import dataclass
from typing import Optional

from fastapi import Request

UNKNOWN_CLIENT = "unknown"


@dataclass(frozen=True)
class RequestInfo:
    forwarded_for: Optional[str] = None
    real_ip: Optional[str] = None
    user_agent: Optional[str] = None
    authorization: Optional[str] = None
    client_host: Optional[str] = None

    @classmethod
    def from_request(cls, request: Request) -> "RequestInfo":
        headers = request.headers
        return cls(
            forwarded_for=headers.get("x-forwarded-for"),
            real_ip=headers.get("x-real-ip"),
            user_agent=headers.get("user-agent"),
            authorization=headers.get("authorization"),
            client_host=request.client.host if request.client else None,
        )

    @property
    def client_ip(self) -> str:
        """
        Best-effort client address.

        X-Forwarded-For can contain multiple IPs; the first is the original
        client. Falls back to X-Real-IP, then the socket peer.
        """
        if self.forwarded_for:
            first = self.forwarded_for.split(",")[0].strip()
            if first:
                return first
        if self.real_ip and self.real_ip.strip():
            return self.real_ip.strip()
        if self.client_host:
            return self.client_host
        return UNKNOWN_CLIENT

    @property
    def bearer_token(self) -> Optional[str]:
        if not self.authorization:
            return None
        scheme, _, token = self.authorization.partition(" ")
        if scheme.lower() != "bearer" or not token.strip():
            return None
        return token.strip()


def get_request_info(request: Request) -> RequestInfo:
    """FastAPI dependency."""
    return RequestInfo.from_request(request)
