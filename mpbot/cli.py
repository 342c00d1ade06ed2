# mpbot/cli.py
# Local CLI to manage licenses and targets (uses the configured store directly)
import argparse
from datetime import datetime, timedelta, timezone

from mpbot.config import get_settings
from mpbot.errors import MpBotError
from mpbot.schemas import Conflict, LicenseUpsert
from mpbot.services import LicenseService, TargetService
from mpbot.storage import build_store
from mpbot.utils.crypto import generate_license_key
from mpbot.utils.timeutil import parse_epoch_ms, to_iso

DURATIONS = {"1month": 30, "3months": 90, "6months": 180}


def expiry_for(duration_plan: str):
    """Epoch ms for a duration plan, None for lifetime."""
    if duration_plan == "lifetime":
        return None
    if duration_plan in DURATIONS:
        expiry = datetime.now(timezone.utc) + timedelta(days=DURATIONS[duration_plan])
        return int(expiry.timestamp() * 1000)
    raise ValueError("Unknown duration_plan")


def show_license(lic):
    print("License:", lic.key)
    print("Plan:", lic.plan)
    print("Devices:", ", ".join(lic.uids) or "-", f"({len(lic.uids)}/{lic.max_devices})")
    print("Expires at:", to_iso(lic.expires_at) or "never")
    print("Active:", lic.active)


def show_result(result):
    if isinstance(result, Conflict):
        print("Conflict:", result.reason, "(bound to", ", ".join(result.uids) + ")")
        return 1
    show_license(result)
    return 0


def build_parser():
    parser = argparse.ArgumentParser(prog="mpbot-admin")
    parser.add_argument(
        "action",
        choices=["create", "deactivate", "activate", "renew", "bind", "transfer", "release", "check", "history", "compact"],
    )
    parser.add_argument("--key", help="License key (or challenge key for compact)")
    parser.add_argument("--plan", default="pro", help="Plan name")
    parser.add_argument("--duration", default="lifetime", help="duration_plan: lifetime/1month/3months/6months")
    parser.add_argument("--expires", help="Explicit expiry (ISO-8601 or epoch ms), overrides --duration")
    parser.add_argument("--max", type=int, default=1, help="Max devices bound at once")
    parser.add_argument("--uid", help="Device id")
    parser.add_argument("--from-uid", help="Device id to move the seat from (transfer)")
    parser.add_argument("--limit", type=int, default=20, help="History rows / observations kept")
    return parser


def run(args, licenses: LicenseService, targets: TargetService) -> int:
    if args.action == "create":
        key = args.key or generate_license_key()
        expires_at = parse_epoch_ms(args.expires) if args.expires else expiry_for(args.duration)
        req = LicenseUpsert(key=key, plan=args.plan, expires_at=expires_at, max_devices=args.max, uid=args.uid)
        return show_result(licenses.upsert_license(req))

    if args.action == "check":
        if not args.uid:
            print("uid required for check")
            return 2
        st = licenses.check_license(args.uid)
        print("Status:", st.status, "ok" if st.ok else "")
        if st.plan:
            print("Plan:", st.plan)
        if st.expires_at is not None:
            print("Expires at:", to_iso(st.expires_at))
        return 0 if st.ok else 1

    if not args.key:
        print("key required for", args.action)
        return 2

    if args.action == "compact":
        target = targets.compact_key(args.key, args.limit)
        print(f"Target {target.key}: theta={target.theta_deg:.2f} phi={target.phi_deg:.2f} tolerance={target.tolerance}")
        return 0
    if args.action == "history":
        for h in licenses.list_license_history(args.key, args.limit):
            print(to_iso(h.timestamp), h.action, h.from_uid or "-", "->", h.to_uid or "-", h.info or "")
        return 0
    if args.action == "deactivate":
        return show_result(licenses.deactivate_license(args.key))
    if args.action == "activate":
        return show_result(licenses.activate_license(args.key))
    if args.action == "renew":
        expires_at = parse_epoch_ms(args.expires) if args.expires else expiry_for(args.duration)
        return show_result(licenses.renew_license(args.key, expires_at))
    if args.action == "release":
        return show_result(licenses.release_license(args.key, args.uid))

    if not args.uid:
        print("uid required for", args.action)
        return 2
    if args.action == "bind":
        return show_result(licenses.set_license_target_uid(args.key, args.uid))
    return show_result(licenses.transfer_license(args.key, args.from_uid, args.uid))


def main(argv=None):
    args = build_parser().parse_args(argv)
    settings = get_settings()
    store = build_store(settings)
    licenses = LicenseService(store)
    targets = TargetService(
        store,
        default_theta=settings.default_theta_deg,
        default_phi=settings.default_phi_deg,
        default_tolerance=settings.default_tolerance,
        max_observations=settings.max_observations_per_key,
    )
    try:
        return run(args, licenses, targets)
    except (MpBotError, ValueError) as exc:
        print("Error:", exc)
        return 1
    finally:
        store.close()


if __name__ == "__main__":
    raise SystemExit(main())
