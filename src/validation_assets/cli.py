"""
CLI commands for validation asset management.
"""

import argparse
import json
import logging
import sys

from .errors import AssetError
from .services import build_services


def setup_logging(verbose: bool = False):
    """Setup logging configuration."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )


def _print_summary(preview):
    s = preview.files_summary
    print(f"  {preview.package_id} → {preview.target_version_id}: "
          f"+{s.added} -{s.removed} ~{s.modified} ={s.unchanged} "
          f"({preview.files_extracted} extracted in {preview.fetch_duration_ms} ms)")
    for warning in preview.warnings:
        print(f"    ⚠ {warning}")
    for warning in preview.suppression_warnings:
        print(f"    ⚠ [{warning.severity.value}] {warning.message}")


def cmd_packages(args, services):
    """List configured packages and their state."""
    for entry in services.versioning.package_overview():
        marker = "●" if entry["state"] == "STAGED_PENDING" else "○"
        print(f"  {marker} {entry['id']:<10} {entry['display_name']} "
              f"({entry['version_count']} versions) → {entry['live_path']}")
    return 0


def cmd_sync(args, services):
    """Download packages into staging."""
    if args.package == "all":
        previews = services.versioning.sync_all_to_staging()
    else:
        previews = [services.versioning.sync_to_staging(args.package)]
    print(f"✓ Staged {len(previews)} package(s)")
    for preview in previews:
        _print_summary(preview)
    return 0


def cmd_approve(args, services):
    """Approve a pending package."""
    result = services.versioning.approve_pending(args.package)
    print(f"✓ Approved {args.package} as {result.version.id}")
    for component in result.reload.results:
        marker = {"OK": "✓", "PARTIAL": "⚠", "FAILED": "✗"}[component.status.value]
        print(f"  {marker} {component.component_name}: {component.loaded_count} loaded")
    return 0 if result.reload.status.value == "OK" else 2


def cmd_reject(args, services):
    """Reject a pending package."""
    services.versioning.reject_pending(args.package)
    print(f"✓ Rejected pending staging for {args.package}")
    return 0


def cmd_pending(args, services):
    """Show pending previews."""
    previews = services.versioning.get_all_pending_previews()
    if not previews:
        print("No pending packages")
    for preview in previews:
        _print_summary(preview)
    return 0


def cmd_versions(args, services):
    """List version history."""
    for version in services.versioning.list_versions(args.package):
        s = version.files_summary
        print(f"  {version.id:<16} {version.created_at:%Y-%m-%d %H:%M:%S} "
              f"+{s.added} -{s.removed} ~{s.modified}")
    return 0


def cmd_diff(args, services):
    """Print a unified diff from history or staging."""
    if args.version:
        detail = services.versioning.get_file_diff(args.version, args.path)
    else:
        detail = services.versioning.get_pending_file_diff(args.package, args.path)
    if detail.is_binary:
        print(f"Binary file {detail.path} ({detail.status.value})")
    else:
        sys.stdout.write(detail.unified_diff)
    return 0


def cmd_reload(args, services):
    """Reload all asset components."""
    report = services.registry.reload()
    print(json.dumps(report.to_dict(), indent=2))
    return 0 if report.status.value == "OK" else 2


def cmd_profiles(args, services):
    """List validation profiles or show one resolved profile."""
    if args.name:
        print(json.dumps(services.profiles.get_profile(args.name).to_dict(), indent=2))
        return 0
    for profile in services.profiles.list_profiles():
        parent = f" (extends {profile.extends})" if profile.extends else ""
        print(f"  {profile.name}{parent}: {len(profile.suppressions)} suppressions")
    return 0


def build_parser():
    parser = argparse.ArgumentParser(
        description="Validation asset management CLI",
        prog="validation-assets"
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable verbose logging"
    )

    subparsers = parser.add_subparsers(
        dest="command",
        help="Available commands"
    )

    packages_parser = subparsers.add_parser("packages", help="List configured packages")
    packages_parser.set_defaults(func=cmd_packages)

    sync_parser = subparsers.add_parser("sync", help="Download a package into staging")
    sync_parser.add_argument("package", help="Package id, or 'all'")
    sync_parser.set_defaults(func=cmd_sync)

    approve_parser = subparsers.add_parser("approve", help="Approve a pending package")
    approve_parser.add_argument("package")
    approve_parser.set_defaults(func=cmd_approve)

    reject_parser = subparsers.add_parser("reject", help="Reject a pending package")
    reject_parser.add_argument("package")
    reject_parser.set_defaults(func=cmd_reject)

    pending_parser = subparsers.add_parser("pending", help="Show pending packages")
    pending_parser.set_defaults(func=cmd_pending)

    versions_parser = subparsers.add_parser("versions", help="List version history")
    versions_parser.add_argument("--package", default=None)
    versions_parser.set_defaults(func=cmd_versions)

    diff_parser = subparsers.add_parser("diff", help="Show a unified file diff")
    group = diff_parser.add_mutually_exclusive_group(required=True)
    group.add_argument("--version", help="Version id from history")
    group.add_argument("--package", help="Package id with pending staging")
    diff_parser.add_argument("path", help="File path relative to the package tree")
    diff_parser.set_defaults(func=cmd_diff)

    reload_parser = subparsers.add_parser("reload", help="Reload all asset components")
    reload_parser.set_defaults(func=cmd_reload)

    profiles_parser = subparsers.add_parser("profiles", help="List or show validation profiles")
    profiles_parser.add_argument("name", nargs="?", default=None)
    profiles_parser.set_defaults(func=cmd_profiles)

    return parser


def main(argv=None):
    """Main CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if not hasattr(args, 'func'):
        parser.print_help()
        return 1

    setup_logging(args.verbose)
    try:
        services = build_services()
        return args.func(args, services)
    except AssetError as e:
        print(f"✗ {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
