"""
services/http_client.py

외부 REST 서비스 공통 클라이언트 (httpx.AsyncClient 래퍼).

설계 원칙:
- 네트워크 오류 / 2xx 이외 응답은 모두 ServiceError로 변환
- JSON 파싱 실패는 MalformedResponseError
- 인증 토큰은 생성 시 주입한 AuthContext에서만 읽음 (전역 저장소 없음)
"""

from dataclasses import dataclass
from typing import Any, Optional

import httpx

from cbt_session.config import REQUEST_TIMEOUT
from cbt_session.errors import MalformedResponseError, ServiceError


# 요청별 timeout 인자 생략을 나타내는 표식 (None은 "제한 없음"이라는 의미로 쓰인다)
_DEFAULT = object()


@dataclass
class AuthContext:
    """세션 화면 수명 동안 유지되는 인증 정보."""

    token: str = ""

    def headers(self) -> dict:
        return {"Authorization": f"Bearer {self.token}"} if self.token else {}


class ApiClient:
    """엔드포인트별 클라이언트의 기반 클래스."""

    def __init__(
        self,
        base_url: str,
        auth: Optional[AuthContext] = None,
        *,
        client: Optional[httpx.AsyncClient] = None,
        timeout: Optional[float] = REQUEST_TIMEOUT,
    ):
        self.auth = auth or AuthContext()
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(base_url=base_url, timeout=timeout)

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def _request(self, method: str, path: str, *, json: Any = None, timeout: Any = _DEFAULT) -> Any:
        """요청을 보내고 JSON 본문(없으면 None)을 반환."""
        kwargs = {"json": json, "headers": self.auth.headers()}
        if timeout is not _DEFAULT:
            kwargs["timeout"] = timeout

        try:
            response = await self._client.request(method, path, **kwargs)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            raise ServiceError(f"{method} {path} 실패: HTTP {status}", status_code=status) from e
        except httpx.HTTPError as e:
            raise ServiceError(f"{method} {path} 네트워크 오류: {e}") from e

        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as e:
            raise MalformedResponseError(f"{method} {path} 응답이 JSON이 아닙니다.") from e
