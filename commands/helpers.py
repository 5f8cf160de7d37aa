"""Shared helper functions for ankra command modules."""
import argparse
import json
import sys
from datetime import datetime, timezone

from ankra_api import AnkraAPI
from config import load_selected_cluster

NO_CLUSTER_SELECTED = "No active cluster selected. Run 'ankra cluster select' to pick one."

STATE_ICONS = {
    'up': '✓',
    'updating': '⟳',
    'failed': '✗',
}


def add_global_options(parser, suppress=True):
    """Add --token/--base-url/--config/--debug to a parser.

    Subcommand parsers use SUPPRESS defaults so a value given before the
    subcommand is not reset by the subparser.
    """
    default = argparse.SUPPRESS if suppress else None
    parser.add_argument('--token', default=default,
                        help='API token (env: ANKRA_API_TOKEN)')
    parser.add_argument('--base-url', dest='base_url', default=default,
                        help='Ankra platform URL (env: ANKRA_BASE_URL)')
    parser.add_argument('--config', dest='config_file', default=default,
                        help='Config file (default: ~/.ankra/.env)')
    parser.add_argument('--debug', action='store_true',
                        default=argparse.SUPPRESS if suppress else False,
                        help='Enable debug logging')
    return parser


GLOBAL_OPTIONS = add_global_options(argparse.ArgumentParser(add_help=False))


def add_parser(subparsers, name, **kwargs):
    """Add a subcommand parser that also accepts the global options."""
    kwargs.setdefault('parents', [GLOBAL_OPTIONS])
    return subparsers.add_parser(name, **kwargs)


def add_group(subparsers, name, help_text, aliases=None, description=None):
    """Add a command group; running it without a subcommand prints its help.

    Returns:
        tuple: (group parser, its subparsers)
    """
    parser = add_parser(subparsers, name, help=help_text, aliases=aliases or [],
                        description=description or help_text)
    group_subparsers = parser.add_subparsers(dest=f"{name}_command", metavar='<command>')

    def show_help(args):
        parser.print_help()
        sys.exit(1)

    parser.set_defaults(func=show_help)
    return parser, group_subparsers


def get_api(args):
    """Build an API client from the global options."""
    return AnkraAPI(
        base_url=getattr(args, 'base_url', None),
        token=getattr(args, 'token', None),
        config_file=getattr(args, 'config_file', None),
    )


def fail(message):
    print(message, file=sys.stderr)
    sys.exit(1)


def require_selected_cluster():
    """Return the active cluster or exit with a hint."""
    cluster = load_selected_cluster()
    if not cluster:
        fail(NO_CLUSTER_SELECTED)
    return cluster


def print_table(headers, rows, empty_message="No data found."):
    """Print data in table format."""
    if not rows:
        print(empty_message)
        return

    col_widths = [len(str(h)) for h in headers]
    for row in rows:
        for i, cell in enumerate(row):
            col_widths[i] = max(col_widths[i], len(str(cell)))

    header_row = " | ".join(str(h).ljust(col_widths[i]) for i, h in enumerate(headers))
    print(header_row)
    print("-" * len(header_row))

    for row in rows:
        print(" | ".join(str(cell).ljust(col_widths[i]) for i, cell in enumerate(row)))


def print_json(data):
    print(json.dumps(data, indent=2))


def confirm(prompt):
    """Ask a (y/N) question. Anything but y/yes counts as no."""
    try:
        answer = input(f"{prompt} (y/N): ")
    except EOFError:
        return False
    return answer.strip().lower() in ('y', 'yes')


def truncate(value, width):
    value = '' if value is None else str(value)
    if len(value) <= width:
        return value
    return value[:width - 3] + '...'


def state_icon(state):
    return STATE_ICONS.get((state or '').lower(), '●')


def parse_timestamp(value):
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace('Z', '+00:00'))
    except (ValueError, AttributeError):
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _plural(count, unit):
    return f"1 {unit}" if count == 1 else f"{count} {unit}s"


def format_time_ago(value, now=None):
    """Render an RFC 3339 timestamp relative to now, e.g. '3 days ago'.

    Unparseable values are returned unchanged.
    """
    parsed = parse_timestamp(value)
    if parsed is None:
        return value or ''

    now = now or datetime.now(timezone.utc)
    seconds = int((now - parsed).total_seconds())
    suffix = 'ago'
    if seconds < 0:
        seconds = -seconds
        suffix = 'from now'

    if seconds < 1:
        return 'now'
    for limit, size, unit in (
        (60, 1, 'second'),
        (3600, 60, 'minute'),
        (86400, 3600, 'hour'),
        (7 * 86400, 86400, 'day'),
        (30 * 86400, 7 * 86400, 'week'),
        (365 * 86400, 30 * 86400, 'month'),
    ):
        if seconds < limit:
            return f"{_plural(seconds // size, unit)} {suffix}"
    return f"{_plural(seconds // (365 * 86400), 'year')} {suffix}"


def format_timestamp(value):
    """Render an RFC 3339 timestamp as 'YYYY-MM-DD HH:MM', or '-' when empty."""
    parsed = parse_timestamp(value)
    if parsed is None:
        return value or '-'
    return parsed.strftime('%Y-%m-%d %H:%M')
