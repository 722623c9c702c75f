import argparse
from typing import Dict, List

from . import __version__
from .config import load_config
from .env import load_env
from .errors import JobTrackerError
from .logger import get_logger
from .tracker import JobTracker


def _parse_assignments(pairs: List[str]) -> Dict[str, str]:
    data = {}
    for pair in pairs:
        if "=" not in pair:
            raise SystemExit(f"Expected key=value, got: {pair}")
        key, value = pair.split("=", 1)
        data[key.strip()] = value.strip()
    return data


def _print_job(job) -> None:
    where = f" @ {job.company}" if job.company else ""
    print(f"  [{job.position}] {job.title}{where}  ({job.id})")


def cmd_board(tracker: JobTracker, args: argparse.Namespace) -> None:
    for column in tracker.columns():
        print(f"{column.title} ({len(column.jobs)})")
        for job in column.jobs:
            _print_job(job)
    if tracker.warning:
        print(f"[warn] {tracker.warning}")


def cmd_stats(tracker: JobTracker, args: argparse.Namespace) -> None:
    stats = tracker.get_stats()
    print(f"Total: {stats['total']}")
    for column, count in stats["by_column"].items():
        print(f"  {column}: {count}")


def cmd_add(tracker: JobTracker, args: argparse.Namespace) -> None:
    job_input = {"title": args.title, "company": args.company}
    for name in ("url", "location", "notes"):
        value = getattr(args, name)
        if value:
            job_input[name] = value
    if args.column:
        job_input["status"] = args.column
    job = tracker.add_job(job_input)
    print(f"Added: {job.id} -> {job.column.value}[{job.position}]")


def cmd_move(tracker: JobTracker, args: argparse.Namespace) -> None:
    job = tracker.update_job_status(args.id, args.to, args.index)
    print(f"Moved: {job.id} -> {job.column.value}[{job.position}]")


def cmd_reorder(tracker: JobTracker, args: argparse.Namespace) -> None:
    job = tracker.reorder_in_column(args.column, args.id, args.index)
    print(f"Reordered: {job.id} -> {job.column.value}[{job.position}]")


def cmd_update(tracker: JobTracker, args: argparse.Namespace) -> None:
    job = tracker.update_job(args.id, _parse_assignments(args.set))
    print(f"Updated: {job.id}")


def cmd_delete(tracker: JobTracker, args: argparse.Namespace) -> None:
    tracker.delete_job(args.id)
    print(f"Deleted: {args.id}")


def cmd_sync(tracker: JobTracker, args: argparse.Namespace) -> None:
    if tracker.sync_with_server():
        print(f"Synced {tracker.get_stats()['total']} jobs at {tracker.last_synced.isoformat()}")
    else:
        raise SystemExit("Sync failed or server sync is disabled; local state kept.")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="jobtracker", description="Job tracker: applications Kanban CLI")
    parser.add_argument("--version", action="store_true", help="Show version")

    subparsers = parser.add_subparsers(dest="command")
    brd = subparsers.add_parser("board", help="Print every column of the board")
    brd.set_defaults(func=cmd_board)

    sts = subparsers.add_parser("stats", help="Print job counts per column")
    sts.set_defaults(func=cmd_stats)

    add = subparsers.add_parser("add", help="Track a new job")
    add.add_argument("--title", required=True, help="Job title")
    add.add_argument("--company", required=True, help="Company name")
    add.add_argument("--column", help="Column (default: wishlist)")
    add.add_argument("--url", help="Posting URL")
    add.add_argument("--location", help="Job location")
    add.add_argument("--notes", help="Free-form notes")
    add.set_defaults(func=cmd_add)

    mov = subparsers.add_parser("move", help="Move a job to another column")
    mov.add_argument("--id", required=True, help="Job id")
    mov.add_argument("--to", required=True, help="Target column")
    mov.add_argument("--index", type=int, help="Target position (default: end of column)")
    mov.set_defaults(func=cmd_move)

    reo = subparsers.add_parser("reorder", help="Reorder a job within its column")
    reo.add_argument("--column", required=True, help="Column holding the job")
    reo.add_argument("--id", required=True, help="Job id")
    reo.add_argument("--index", type=int, required=True, help="New position")
    reo.set_defaults(func=cmd_reorder)

    upd = subparsers.add_parser("update", help="Edit descriptive fields of a job")
    upd.add_argument("--id", required=True, help="Job id")
    upd.add_argument("--set", nargs="+", required=True, metavar="KEY=VALUE", help="Fields to change")
    upd.set_defaults(func=cmd_update)

    dlt = subparsers.add_parser("delete", help="Stop tracking a job")
    dlt.add_argument("--id", required=True, help="Job id")
    dlt.set_defaults(func=cmd_delete)

    syn = subparsers.add_parser("sync", help="Replace local state with the server's")
    syn.set_defaults(func=cmd_sync)
    return parser


def main(argv=None):
    # Load .env if present (JOBTRACKER_API_URL, JOBTRACKER_API_TOKEN, etc.)
    load_env()
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.version:
        print(__version__)
        return

    if not hasattr(args, "func"):
        parser.print_help()
        return

    try:
        config = load_config()
        get_logger().configure(level=config.log_level, log_dir=config.log_dir,
                               enable_file=config.log_dir is not None, enable_console=True)
        tracker = JobTracker.from_config(config)
    except (JobTrackerError, ValueError) as e:
        raise SystemExit(f"Error: {e}")

    try:
        tracker.fetch_tracked_jobs()
        args.func(tracker, args)
    except JobTrackerError as e:
        raise SystemExit(f"Error: {e}")
    finally:
        tracker.close()


if __name__ == "__main__":
    main()
