"""A querier backed by a remote Prometheus-compatible HTTP API."""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from decimal import Decimal
from functools import cmp_to_key
from typing import Any, Self
from urllib.error import HTTPError, URLError
from urllib.parse import quote_plus, urlencode
from urllib.request import OpenerDirector, Request, build_opener

from graviola.model import (
    Annotations,
    Labels,
    Matcher,
    Querier,
    SamplePair,
    SelectHints,
    Series,
    SeriesSet,
    compare_labels,
)

DEFAULT_LABEL_VALUES_PATH = "/api/v1/label/%s/values"
DEFAULT_LABEL_NAMES_PATH = "/api/v1/labels"
DEFAULT_INSTANT_QUERY_PATH = "/api/v1/query"
DEFAULT_RANGE_QUERY_PATH = "/api/v1/query_range"
DEFAULT_STEP = 30  # seconds

PROMETHEUS_STATUS_ERROR = "error"

_ANNOTATION_KEY = "remote_storage"
_FORM_CONTENT_TYPE = "application/x-www-form-urlencoded"
_by_labels = cmp_to_key(lambda a, b: compare_labels(a.labels, b.labels))


class RemoteStorageError(Exception):
    """A remote could not be queried or answered with something unusable."""


@dataclass
class LabelNamesResponse:
    """The body a remote sends back for a label names query."""

    status: str
    data: list[str] = field(default_factory=list)
    error: str = ""

    @classmethod
    def from_json(cls, text: str | bytes) -> Self:
        payload = json.loads(text)
        if not isinstance(payload, dict):
            raise RemoteStorageError("label names response must be a JSON object")
        return cls(
            status=payload.get("status", ""),
            data=_parse_label_strings(payload.get("data")),
            error=payload.get("error", ""),
        )


@dataclass
class _ApiResponse:
    status: str
    data: Any
    error: str
    warnings: list[str]


def to_promql_query(matchers: Sequence[Matcher]) -> str:
    """Render matchers as a series selector, each followed by a comma."""
    return "{" + "".join(f"{matcher}," for matcher in matchers) + "}"


def _url_join(base: str, path: str) -> str:
    return base.rstrip("/") + "/" + path.lstrip("/")


def _generate_urls(address: str, path_prefix: str) -> dict[str, str]:
    base = _url_join(address, path_prefix) if path_prefix else address
    return {
        "instant_query": _url_join(base, DEFAULT_INSTANT_QUERY_PATH),
        "range_query": _url_join(base, DEFAULT_RANGE_QUERY_PATH),
        "label_names": _url_join(base, DEFAULT_LABEL_NAMES_PATH),
        "label_values": _url_join(base, DEFAULT_LABEL_VALUES_PATH),
    }


def _seconds(milliseconds: int) -> int:
    """Drop the milliseconds of a unix timestamp, rounding down."""
    return milliseconds // 1000


def _step_seconds(step_ms: int) -> int:
    truncated = abs(step_ms) // 1000
    return truncated if step_ms >= 0 else -truncated


def _match_params(matchers: Sequence[Matcher]) -> str:
    return "&".join("match[]=" + quote_plus(str(m), safe="") for m in matchers)


def _parse_label_strings(data: Any) -> list[str]:
    if data is None:
        return []
    if not isinstance(data, list) or not all(isinstance(v, str) for v in data):
        raise RemoteStorageError(f"expected a list of strings, got {data!r}")
    return list(data)


def _parse_response(body: bytes) -> _ApiResponse:
    try:
        payload = json.loads(body, parse_float=Decimal)
    except (ValueError, UnicodeDecodeError) as exc:
        raise RemoteStorageError(f"error parsing response from remote: {exc}") from exc
    if not isinstance(payload, dict):
        raise RemoteStorageError("error parsing response from remote: not a JSON object")

    warnings = payload.get("warnings") or []
    if not isinstance(warnings, list) or not all(isinstance(w, str) for w in warnings):
        raise RemoteStorageError("error parsing response from remote: invalid warnings")

    return _ApiResponse(
        status=str(payload.get("status", "")),
        data=payload.get("data"),
        error=str(payload.get("error", "")),
        warnings=warnings,
    )


def _parse_timestamp(raw: Any) -> int:
    if isinstance(raw, bool) or not isinstance(raw, (int, Decimal)):
        raise RemoteStorageError(f"invalid timestamp {raw!r}")
    return int(Decimal(raw) * 1000)


def _parse_value(raw: Any) -> float:
    if not isinstance(raw, str):
        raise RemoteStorageError(f"sample value must be a quoted string, got {raw!r}")
    try:
        return float(raw)
    except ValueError as exc:
        raise RemoteStorageError(f"invalid sample value {raw!r}") from exc


def _parse_pair(raw: Any) -> SamplePair:
    if not isinstance(raw, list) or len(raw) != 2:
        raise RemoteStorageError(f"invalid sample pair {raw!r}")
    timestamp, value = raw
    return SamplePair(_parse_timestamp(timestamp), _parse_value(value))


def _parse_metric(raw: Any) -> Labels:
    if raw is None:
        return Labels()
    if not isinstance(raw, dict) or not all(
        isinstance(k, str) and isinstance(v, str) for k, v in raw.items()
    ):
        raise RemoteStorageError(f"invalid metric {raw!r}")
    return Labels(raw)


def _entries(result: Any) -> list[Mapping[str, Any]]:
    if result is None:
        return []
    if not isinstance(result, list) or not all(isinstance(e, dict) for e in result):
        raise RemoteStorageError("error parsing result: expected a list of objects")
    return result


def _parse_vector(result: Any) -> list[Series]:
    series = []
    for entry in _entries(result):
        if "value" not in entry:
            raise RemoteStorageError("error parsing result: sample without value")
        series.append(Series(_parse_metric(entry.get("metric")), [_parse_pair(entry["value"])]))
    return series


def _parse_matrix(result: Any) -> list[Series]:
    series = []
    for entry in _entries(result):
        values = entry.get("values") or []
        if not isinstance(values, list):
            raise RemoteStorageError("error parsing result: invalid values")
        series.append(
            Series(_parse_metric(entry.get("metric")), [_parse_pair(v) for v in values])
        )
    return series


def _parse_time_series(data: Any, sort_series: bool) -> SeriesSet:
    if not isinstance(data, dict):
        raise RemoteStorageError("decoding data: expected a JSON object")

    result_type = data.get("resultType")
    if not isinstance(result_type, str):
        raise RemoteStorageError(f"decoding resultType: invalid value {result_type!r}")
    if "result" not in data:
        raise RemoteStorageError("empty result")
    result = data["result"]

    match result_type:
        case "none":
            raise RemoteStorageError("valueType is 'none'")
        case "string":
            raise RemoteStorageError("parsing 'string' result type is not supported yet")
        case "scalar":
            raise RemoteStorageError("parsing 'scalar' result type is not supported yet")
        case "vector":
            parse = _parse_vector
        case "matrix":
            parse = _parse_matrix
        case _:
            raise RemoteStorageError(f"invalid result type {result_type}")

    try:
        series = parse(result)
    except RemoteStorageError as exc:
        raise RemoteStorageError(f"error parsing {result_type} result type: {exc}") from exc

    if sort_series and len(series) > 1:
        series.sort(key=_by_labels)
    return SeriesSet(series=series)


def _failed(error: Exception) -> SeriesSet:
    return SeriesSet(error=error, annotations=Annotations({_ANNOTATION_KEY: error}))


class RemoteStorage(Querier):
    """Answers queries by calling the HTTP API of a single remote."""

    def __init__(
        self,
        name: str,
        address: str,
        path_prefix: str = "",
        *,
        logger: logging.Logger | None = None,
        timeout: float | None = None,
        opener: OpenerDirector | None = None,
    ) -> None:
        self.name = name
        self.urls = _generate_urls(address, path_prefix)
        self._timeout = timeout
        self._opener = opener or build_opener()
        self._logger = logging.LoggerAdapter(
            logger or logging.getLogger(__name__), {"remote": name, "component": "remote"}
        )

    def select(
        self, sort_series: bool, hints: SelectHints | None, matchers: Sequence[Matcher]
    ) -> SeriesSet:
        """Query the remote; failures come back as the error of the series set."""
        hints = hints or SelectHints()
        params = {"query": to_promql_query(matchers)}

        if hints.start == hints.end:
            url = self.urls["instant_query"]
            if hints.end != 0:
                params["time"] = str(_seconds(hints.start))
        else:
            url = self.urls["range_query"]
            params["start"] = str(_seconds(hints.start))
            params["end"] = str(_seconds(hints.end))
            # Hints carry the step in milliseconds, the API wants seconds.
            step = DEFAULT_STEP if hints.step == 0 else _step_seconds(hints.step)
            params["step"] = str(step)

        body = urlencode(sorted(params.items()))
        request = Request(
            url,
            data=body.encode(),
            method="POST",
            headers={"Content-Type": _FORM_CONTENT_TYPE},
        )
        self._logger.debug("performing request method=POST url=%s body=%s", url, body)

        try:
            response = self._do_request(request)
            result = _parse_time_series(response.data, sort_series)
        except RemoteStorageError as exc:
            self._logger.error("select failed: %s", exc)
            return _failed(exc)

        if response.warnings:
            result.annotations = Annotations().add(
                RemoteStorageError(f"warnings: [{' '.join(response.warnings)}]")
            )
        return result

    def close(self) -> None:
        """Nothing is held open between requests."""

    def label_values(
        self, name: str, hints: object, matchers: Sequence[Matcher]
    ) -> tuple[list[str], Annotations]:
        url = self.urls["label_values"] % name + "?" + _match_params(matchers)
        request = Request(url, method="GET", headers={"Content-Type": _FORM_CONTENT_TYPE})
        self._logger.debug("performing request method=GET url=%s", url)
        return self._label_query(request)

    def label_names(
        self, hints: object, matchers: Sequence[Matcher]
    ) -> tuple[list[str], Annotations]:
        body = _match_params(matchers)
        url = self.urls["label_names"]
        request = Request(
            url,
            data=body.encode(),
            method="POST",
            headers={"Content-Type": _FORM_CONTENT_TYPE},
        )
        self._logger.debug("performing request method=POST url=%s body=%s", url, body)
        return self._label_query(request)

    def _label_query(self, request: Request) -> tuple[list[str], Annotations]:
        response = self._do_request(request)
        try:
            values = _parse_label_strings(response.data)
        except RemoteStorageError as exc:
            self._logger.error("parsing label data: %s", exc)
            raise
        annotations = Annotations()
        for warning in response.warnings:
            annotations.add(RemoteStorageError(warning))
        return values, annotations

    def _do_request(self, request: Request) -> _ApiResponse:
        try:
            with self._opener.open(request, timeout=self._timeout) as resp:
                status = resp.status
                body = resp.read()
        except HTTPError as exc:
            status = exc.code
            try:
                body = exc.read() if exc.fp is not None else b""
            except OSError:
                body = b""
            finally:
                exc.close()
        except (URLError, OSError) as exc:
            self._logger.error("request making: %s", exc)
            raise RemoteStorageError(f"error making request: {exc}") from exc

        self._logger.debug("remote response status=%s body=%r", status, body)

        if not 200 <= status <= 299:
            error = RemoteStorageError(
                f"server answered with non-succesful status code {status}"
            )
            self._logger.error("non-successful status code: %s", error)
            raise error

        response = _parse_response(body)
        if response.status == PROMETHEUS_STATUS_ERROR:
            error = RemoteStorageError(f"parsed response informed failure {response.error}")
            self._logger.error("answer informed failure: %s", error)
            raise error
        return response