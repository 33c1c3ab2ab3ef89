"""In-memory app metrics: request latency and errors per route group, model-call outcomes per agent."""
from __future__ import annotations

import time
from collections import Counter, defaultdict, deque
from threading import Lock

from starlette.requests import Request
from starlette.responses import Response

_LATENCY_WINDOW = 500
_ERROR_RATE_ALERT_THRESHOLD = 0.10
# Pattern analysis and question generation wait on the model; only flag really slow tails.
_LATENCY_P95_ALERT_MS = 15000
_UNTRACKED_PREFIXES = ("/health", "/metrics", "/docs", "/openapi.json", "/redoc")

_lock = Lock()
_latencies: deque[float] = deque(maxlen=_LATENCY_WINDOW)
_requests: Counter[str] = Counter()
_errors: Counter[str] = Counter()
_llm_calls: defaultdict[str, Counter[str]] = defaultdict(Counter)


UNMATCHED_GROUP = "unmatched"


def _first_segment(path: str) -> str:
    return path.strip("/").split("/", 1)[0] or "root"


def route_group(path: str, known_groups: frozenset[str] | None = None) -> str:
    """'/sessions/dev-1/answer' -> 'sessions'; paths outside the app's routes share one key."""
    head = _first_segment(path)
    if known_groups is not None and head not in known_groups:
        return UNMATCHED_GROUP
    return head


def known_route_groups(app) -> frozenset[str]:
    groups = getattr(app.state, "metric_route_groups", None)
    if groups is None:
        groups = frozenset(_first_segment(getattr(route, "path", "")) for route in app.routes)
        app.state.metric_route_groups = groups
    return groups


def record_request(group: str, duration_sec: float, is_error: bool) -> None:
    with _lock:
        _requests[group] += 1
        if is_error:
            _errors[group] += 1
        _latencies.append(duration_sec)


def record_llm_call(agent: str, ok: bool) -> None:
    with _lock:
        _llm_calls[agent]["ok" if ok else "failed"] += 1


def _percentile_ms(sorted_ms: list[float], fraction: float) -> float | None:
    if not sorted_ms:
        return None
    return round(sorted_ms[int((len(sorted_ms) - 1) * fraction)], 2)


def get_metrics() -> dict:
    with _lock:
        requests = dict(_requests)
        errors = dict(_errors)
        sorted_ms = sorted(lat * 1000 for lat in _latencies)
        by_agent = {agent: {"ok": c["ok"], "failed": c["failed"]} for agent, c in _llm_calls.items()}

    total = sum(requests.values())
    error_total = sum(errors.values())
    error_rate = (error_total / total) if total else 0.0
    p95 = _percentile_ms(sorted_ms, 0.95)
    llm_ok = sum(c["ok"] for c in by_agent.values())
    llm_failed = sum(c["failed"] for c in by_agent.values())

    alerts: list[str] = []
    if total and error_rate >= _ERROR_RATE_ALERT_THRESHOLD:
        alerts.append("high_error_rate")
    if p95 is not None and p95 >= _LATENCY_P95_ALERT_MS:
        alerts.append("high_latency_p95")
    if llm_failed and llm_failed >= llm_ok:
        alerts.append("llm_failures")

    return {
        "request_count": total,
        "error_count": error_total,
        "error_rate": round(error_rate, 4),
        "latency_ms_p50": _percentile_ms(sorted_ms, 0.50),
        "latency_ms_p95": p95,
        "routes": {group: {"requests": count, "errors": errors.get(group, 0)} for group, count in requests.items()},
        "llm_calls": {"ok": llm_ok, "failed": llm_failed, "by_agent": by_agent},
        "alerts": alerts,
    }


def reset_metrics() -> None:
    """Reset counters (e.g. for tests)."""
    with _lock:
        _latencies.clear()
        _requests.clear()
        _errors.clear()
        _llm_calls.clear()


async def metrics_middleware(request: Request, call_next) -> Response:
    path = request.url.path
    if path.startswith(_UNTRACKED_PREFIXES):
        return await call_next(request)
    start = time.perf_counter()
    response = await call_next(request)
    group = route_group(path, known_route_groups(request.app))
    record_request(group, time.perf_counter() - start, response.status_code >= 400)
    return response
