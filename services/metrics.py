from __future__ import annotations

from threading import Lock
from typing import Tuple


_lock = Lock()
_counters: dict[str, dict[Tuple[Tuple[str, str], ...], int]] = {}


def _inc(name: str, labels: dict[str, str] | None = None, value: int = 1) -> None:
    key = tuple(sorted((labels or {}).items()))
    with _lock:
        series = _counters.setdefault(name, {})
        series[key] = int(series.get(key, 0)) + int(value)


def get_counter(name: str, labels: dict[str, str] | None = None) -> int:
    key = tuple(sorted((labels or {}).items()))
    with _lock:
        return int(_counters.get(name, {}).get(key, 0))


def increment_http_requests(route: str, status: int) -> None:
    _inc("http_requests_total", {"route": route, "status": str(status)})


def increment_admission(action: str, result: str) -> None:
    _inc("admission_operations_total", {"action": action, "result": result})


def increment_ledger(operation: str, result: str) -> None:
    _inc("ledger_operations_total", {"operation": operation, "result": result})


def increment_payout_attempt(result: str) -> None:
    _inc("payout_attempts_total", {"result": result})


def add_payout_cents(amount_cents: int) -> None:
    _inc("payout_paid_cents_total", None, amount_cents)


def increment_payout_run(trigger: str, timed_out: bool) -> None:
    _inc("payout_runs_total", {"trigger": trigger, "timed_out": str(timed_out).lower()})


def increment_webhook_event(event_type: str, signature_valid: bool, applied: bool) -> None:
    _inc(
        "webhook_events_total",
        {
            "event_type": event_type,
            "signature_valid": str(signature_valid).lower(),
            "applied": str(applied).lower(),
        },
    )


def increment_notification(kind: str, result: str) -> None:
    _inc("notifications_total", {"kind": kind, "result": result})


def increment_operator_alert(code: str) -> None:
    _inc("operator_alerts_total", {"code": code})


def render_prometheus() -> str:
    lines: list[str] = []
    with _lock:
        for name, series in sorted(_counters.items()):
            lines.append(f"# TYPE {name} counter")
            for labels, value in sorted(series.items()):
                if labels:
                    label_str = ",".join(f'{k}="{v}"' for k, v in labels)
                    lines.append(f"{name}{{{label_str}}} {value}")
                else:
                    lines.append(f"{name} {value}")
    return "\n".join(lines) + ("\n" if lines else "")
