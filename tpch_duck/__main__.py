"""Run the TPC-H project from the command line.

Usage:
    python -m tpch_duck generate --scale-factor 0.01
    python -m tpch_duck load --raw-dir data/raw
    python -m tpch_duck build [--full-refresh] [--select MODEL ...]
    python -m tpch_duck test [--select RULE_ID ...]
    python -m tpch_duck freshness
    python -m tpch_duck run            # build, then test
"""

import argparse
import sys

import duckdb

from tpch_duck.freshness import FreshnessStatus, overall_status
from tpch_duck.runner import ProjectRunner
from tpch_duck.sources import export_raw_files, generate_tpch, load_raw_files


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="python -m tpch_duck", description="Build and test the TPC-H DuckDB project"
    )
    parser.add_argument(
        "--db",
        default=None,
        help="DuckDB file path (default: TPCH_DUCK_DB_PATH or data/warehouse/tpch.duckdb)",
    )
    commands = parser.add_subparsers(dest="command", required=True)

    generate = commands.add_parser("generate", help="Generate raw TPC-H tables with dbgen")
    generate.add_argument("--scale-factor", type=float, default=0.01)
    generate.add_argument(
        "--export", action="store_true", help="Also write the raw tables to --raw-dir as Parquet"
    )
    generate.add_argument("--raw-dir", default=None)

    load = commands.add_parser("load", help="Load raw Parquet/CSV files into the raw schema")
    load.add_argument("--raw-dir", default=None)

    build = commands.add_parser("build", help="Build models in dependency order")
    build.add_argument("--full-refresh", action="store_true", help="Rebuild incremental models")
    build.add_argument("--select", nargs="+", default=None, metavar="MODEL")

    test = commands.add_parser("test", help="Run data quality rules")
    test.add_argument("--select", nargs="+", default=None, metavar="RULE_ID")

    commands.add_parser("freshness", help="Check source freshness")

    run = commands.add_parser("run", help="Build every model, then run every rule")
    run.add_argument("--full-refresh", action="store_true")
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    # Deferred so --help works without a valid configuration
    from tpch_duck.defs.config import CONFIG
    from tpch_duck.defs.project import PROJECT

    db_path = args.db or str(CONFIG.duckdb_path)
    print(f"Using database: {db_path}")
    conn = duckdb.connect(db_path)
    try:
        runner = ProjectRunner(PROJECT, conn)

        if args.command == "generate":
            tables = generate_tpch(conn, scale_factor=args.scale_factor)
            print(f"Generated {len(tables)} tables: {', '.join(tables)}")
            if args.export:
                paths = export_raw_files(conn, args.raw_dir or CONFIG.raw_dir)
                print(f"Exported {len(paths)} files to {args.raw_dir or CONFIG.raw_dir}")
            return 0

        if args.command == "load":
            tables = load_raw_files(conn, args.raw_dir or CONFIG.raw_dir)
            print(f"Loaded {len(tables)} tables: {', '.join(tables)}")
            return 0

        if args.command == "freshness":
            results = runner.check_freshness()
            for result in results:
                print(f"  {result.status.value.upper():<6} {result.source}: {result.message}")
            status = overall_status(results)
            print(f"Freshness: {status.value.upper()}")
            return 1 if status is FreshnessStatus.ERROR else 0

        exit_code = 0
        if args.command in ("build", "run"):
            build_summary = runner.build_all(
                select=getattr(args, "select", None) if args.command == "build" else None,
                full_refresh=args.full_refresh,
            )
            print(build_summary.format())
            if not build_summary.success:
                exit_code = 1

        if args.command in ("test", "run"):
            test_summary = runner.test_all(
                select=getattr(args, "select", None) if args.command == "test" else None
            )
            print(test_summary.format())
            if test_summary.blocks_promotion or test_summary.runtime_errors:
                exit_code = 1

        return exit_code
    finally:
        conn.close()


if __name__ == "__main__":
    sys.exit(main())
