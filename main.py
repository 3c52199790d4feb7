#!/usr/bin/env python3
"""
Fleet triage - automated first-line investigation of cluster alerts.
Runs one investigation for one alert (webhook payload) or one cluster (manual mode).
"""

import argparse
import sys


def list_investigations() -> None:
    from triage.investigations.registry import ALIASES, list_investigations as _list

    aliases = {}
    for short, name in ALIASES.items():
        aliases.setdefault(name, []).append(short)

    print("Available investigations:\n")
    for name, description in _list().items():
        shorts = ", ".join(sorted(aliases.get(name, [])))
        suffix = f" (aliases: {shorts})" if shorts else ""
        print(f"  {name}{suffix}")
        if description:
            print(f"      {description}")


def main():
    """CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Investigate cluster alerts and act on the findings",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Investigate the alert described by a PagerDuty webhook payload
  python main.py --payload /tmp/payload.json

  # Run an investigation against a cluster by hand, without side effects
  python main.py --cluster-id 1a2b3c --investigation restart-controlplane --dry-run

  # List investigations and their short names
  python main.py --list-investigations
        """,
    )

    parser.add_argument("--payload", metavar="PATH", help="Path to the alert webhook payload (webhook mode)")
    parser.add_argument("--cluster-id", help="Cluster to investigate (manual mode)")
    parser.add_argument(
        "--investigation", "-i", help="Investigation name or short alias to run (manual mode, with --cluster-id)"
    )
    parser.add_argument(
        "--dry-run", action="store_true", help="Log actions instead of executing them (manual mode, default: off)"
    )
    parser.add_argument("--list-investigations", action="store_true", help="List available investigations")

    args = parser.parse_args()

    if args.list_investigations:
        list_investigations()
        return

    from triage.config import load_config
    from triage.controller.controller import ManualConfig, WebhookConfig, run
    from triage.logs import configure_logging

    cfg = load_config()
    configure_logging(cfg.log_level)

    try:
        if args.payload:
            run(cfg, webhook=WebhookConfig(payload_path=args.payload))
            return

        if args.cluster_id or args.investigation:
            run(
                cfg,
                manual=ManualConfig(
                    cluster_id=args.cluster_id or "",
                    investigation_name=args.investigation or "",
                    dry_run=args.dry_run,
                ),
            )
            return

        # No arguments provided
        parser.print_help()
        print("\n💡 Tip: Use `--list-investigations` to see available investigations")

    except Exception as e:
        print(f"❌ Error during investigation: {e}", file=sys.stderr)
        raise


if __name__ == "__main__":
    main()
