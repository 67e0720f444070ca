#!/usr/bin/env python3
import argparse
import json
import os
import sys

import firebase_admin
from firebase_admin import credentials, firestore

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from dreamweaver.logging_config import configure_logging  # noqa: E402
from dreamweaver.services.daily_reset_service import reset_stale_daily_usage  # noqa: E402


def init_firestore():
    if os.path.exists("firebase-credentials.json"):
        cred = credentials.Certificate("firebase-credentials.json")
    else:
        raw = (os.getenv("FIREBASE_CREDENTIALS", "") or "").strip()
        if not raw:
            raise RuntimeError("Missing firebase-credentials.json and FIREBASE_CREDENTIALS env var.")
        cred = credentials.Certificate(json.loads(raw))
    if not firebase_admin._apps:
        firebase_admin.initialize_app(cred)
    return firestore.client()


def main():
    parser = argparse.ArgumentParser(description="Zero daily usage counters left over from previous UTC days.")
    parser.add_argument(
        "--apply",
        action="store_true",
        help="Apply changes. Without this flag, the script runs in dry-run mode.",
    )
    parser.add_argument(
        "--include-unanchored",
        action="store_true",
        help="Also reset ledgers with no dailyUsage.lastReset timestamp (reads every user document).",
    )
    args = parser.parse_args()

    configure_logging(os.getenv("LOG_LEVEL", "INFO"))
    db = init_firestore()
    scanned, reset = reset_stale_daily_usage(
        db,
        firestore_module=firestore,
        apply_changes=args.apply,
        include_unanchored=args.include_unanchored,
    )
    mode = "APPLY" if args.apply else "DRY-RUN"
    print(f"[{mode}] stale_ledgers={scanned}, reset={reset}")
    if not args.apply:
        print("No changes were written. Re-run with --apply to persist.")


if __name__ == "__main__":
    main()
