from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Literal, Protocol

import httpx
from pydantic import ValidationError

from timetabler.schemas.oracle import OracleConstraints, OracleRequest, Recommendation

logger = logging.getLogger(__name__)

OracleStatus = Literal["ok", "empty", "unavailable"]


@dataclass
class OracleResult:
    recommendations: list[Recommendation] = field(default_factory=list)
    status: OracleStatus = "empty"
    rejected: int = 0
    error: str | None = None

    @property
    def available(self) -> bool:
        return self.status != "unavailable"


class RecommendationOracle(Protocol):
    def recommend(self, constraints: OracleConstraints, level: int) -> OracleResult: ...


class NullOracle:
    """Used when no oracle is configured; placement falls back to the deterministic strategy."""

    def recommend(self, constraints: OracleConstraints, level: int) -> OracleResult:
        return OracleResult(status="empty")


def parse_recommendations(payload: Any) -> tuple[list[Recommendation], int]:
    """Validate entries one at a time. Returns accepted entries and the rejected count."""
    if isinstance(payload, dict):
        payload = payload.get("recommendations")
    if not isinstance(payload, list):
        return [], 0

    accepted: list[Recommendation] = []
    rejected = 0
    for index, entry in enumerate(payload):
        if not isinstance(entry, dict):
            rejected += 1
            logger.warning("Oracle entry is not an object | index=%s", index)
            continue
        try:
            accepted.append(Recommendation.model_validate(entry))
        except ValidationError as exc:
            rejected += 1
            logger.warning(
                "Oracle entry rejected | index=%s course=%s errors=%s",
                index,
                entry.get("course_code"),
                exc.error_count(),
            )
    return accepted, rejected


class HttpRecommendationOracle:
    def __init__(
        self,
        url: str,
        *,
        api_key: str | None = None,
        timeout: float = 20.0,
        client: httpx.Client | None = None,
    ) -> None:
        self.url = url
        self.api_key = api_key
        self.timeout = timeout
        self._client = client

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    def recommend(self, constraints: OracleConstraints, level: int) -> OracleResult:
        body = OracleRequest(constraints=constraints, level=level).model_dump(mode="json")
        client = self._client or httpx.Client(timeout=self.timeout)
        try:
            response = client.post(self.url, json=body, headers=self._headers(), timeout=self.timeout)
            response.raise_for_status()
            # An empty body reads the same as a JSON null.
            payload = response.json() if response.content.strip() else None
        except httpx.TimeoutException as exc:
            logger.warning("Oracle timed out | level=%s timeout=%s", level, self.timeout)
            return OracleResult(status="unavailable", error=f"timeout: {exc}")
        except httpx.HTTPError as exc:
            logger.warning("Oracle request failed | level=%s error=%s", level, exc)
            return OracleResult(status="unavailable", error=str(exc))
        except ValueError as exc:
            logger.warning("Oracle returned invalid JSON | level=%s", level)
            return OracleResult(status="unavailable", error=f"invalid json: {exc}")
        finally:
            if self._client is None:
                client.close()

        recommendations, rejected = parse_recommendations(payload)
        if not recommendations:
            logger.info("Oracle returned no usable recommendations | level=%s rejected=%s", level, rejected)
            return OracleResult(status="empty", rejected=rejected)
        logger.info(
            "Oracle recommendations received | level=%s accepted=%s rejected=%s",
            level,
            len(recommendations),
            rejected,
        )
        return OracleResult(recommendations=recommendations, status="ok", rejected=rejected)


def build_oracle(url: str | None, *, api_key: str | None = None, timeout: float = 20.0) -> RecommendationOracle:
    if not url:
        return NullOracle()
    return HttpRecommendationOracle(url, api_key=api_key, timeout=timeout)
