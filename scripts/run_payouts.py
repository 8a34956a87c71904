from __future__ import annotations

import argparse

from app.container import build_services
from app.workers.payout_scheduler import run_once
from services.logging_setup import configure_logging
from settings import get_settings, validate_env_settings


def main() -> None:
    parser = argparse.ArgumentParser(description="Run the host payout batch once.")
    parser.add_argument("--status", action="store_true", help="Print the payout dashboard instead of running.")
    parser.add_argument("--trigger", default="manual")
    args = parser.parse_args()

    settings = get_settings()
    configure_logging("run_payouts", settings.LOG_LEVEL)
    validate_env_settings(settings)
    services = build_services(settings)

    if args.status:
        status = services.payouts.payout_status()
        print("hosts_ready:", status["hosts_ready_count"])
        print("total_pending_cents:", status["total_pending_cents"])
        print("next_scheduled_run:", status["next_scheduled_run"])
        return

    summary = run_once(services.payouts, trigger=args.trigger)
    counts = summary["counts"]
    print("payout_run_id:", summary["id"])
    print(
        "counts:",
        f"candidates={counts['candidates']}",
        f"reconciled={counts['reconciled']}",
        f"succeeded={counts['succeeded']}",
        f"failed={counts['failed']}",
        f"skipped={counts['skipped']}",
        f"errors={counts['errors']}",
    )
    print("total_paid_cents:", summary["total_paid_cents"])


if __name__ == "__main__":
    main()
