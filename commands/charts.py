"""Helm chart catalog commands."""
from commands.helpers import add_group, add_parser, fail, get_api, print_json, print_table, truncate

MAX_VERSIONS_SHOWN = 10


def _chart_rows(charts):
    return [
        [c.get('name', ''), c.get('version', ''), c.get('repository_name', ''),
         truncate(c.get('description', ''), 50)]
        for c in charts
    ]


def cmd_list_charts(args):
    """List charts in the catalog."""
    try:
        data = get_api(args).list_charts(page=args.page, page_size=args.page_size,
                                         only_subscribed=args.subscribed)
    except Exception as e:
        fail(f"Error listing charts: {e}")

    if args.json:
        print_json(data)
        return

    charts = data.get('charts') or []
    if not charts:
        print("No charts found.")
        return
    print_table(['Name', 'Version', 'Repository', 'Description'], _chart_rows(charts))

    pagination = data.get('pagination') or {}
    print(f"\nPage {pagination.get('page', args.page)} of {pagination.get('total_pages', 1)} "
          f"(page size: {pagination.get('page_size', args.page_size)})")


def cmd_search_charts(args):
    try:
        charts = get_api(args).search_charts(args.query)
    except Exception as e:
        fail(f"Error searching charts: {e}")

    if args.json:
        print_json(charts)
        return
    if not charts:
        print(f"No charts found matching '{args.query}'.")
        return

    print(f"Charts matching '{args.query}':\n")
    print_table(['Name', 'Version', 'Repository', 'Description'], _chart_rows(charts))


def find_repository_url(api, chart_name):
    """Return the repository URL of the chart named exactly `chart_name`, or None."""
    for chart in api.search_charts(chart_name):
        if (chart.get('name') or '').lower() == chart_name.lower():
            return chart.get('repository_url')
    return None


def cmd_chart_info(args):
    """Show versions and profiles of a chart."""
    try:
        api = get_api(args)
        repository_url = args.repository
        if not repository_url:
            repository_url = find_repository_url(api, args.chart_name)
    except Exception as e:
        fail(f"Error finding chart: {e}")

    if not repository_url:
        fail(f"Chart '{args.chart_name}' not found. Please specify --repository flag.")

    try:
        details = api.get_chart_details(args.chart_name, repository_url)
    except Exception as e:
        fail(f"Error getting chart details: {e}")

    if args.json:
        print_json(details)
        return

    print(f"Chart: {details.get('name', args.chart_name)}\n")
    print(f"  Repository: {details.get('repository_name', '')} ({details.get('repository_url', '')})")
    if details.get('icon'):
        print(f"  Icon: {details['icon']}")

    versions = details.get('versions') or []
    if versions:
        print(f"\n  Available Versions ({len(versions)}):")
        for version in versions[:MAX_VERSIONS_SHOWN]:
            print(f"    - {version}")
        if len(versions) > MAX_VERSIONS_SHOWN:
            print(f"    ... and {len(versions) - MAX_VERSIONS_SHOWN} more")

    profiles = details.get('profiles') or []
    if profiles:
        print("\n  Available Profiles:")
        for profile in profiles:
            line = f"    - {profile.get('name', '')}"
            if profile.get('description'):
                line += f": {profile['description']}"
            print(line)


def register_commands(subparsers):
    """Register `charts` commands."""
    _, sub = add_group(subparsers, 'charts', 'Browse the Helm chart catalog', aliases=['chart'])

    list_parser = add_parser(sub, 'list', aliases=['ls'], help='List available charts')
    list_parser.add_argument('--page', type=int, default=1, help='Page number (default: 1)')
    list_parser.add_argument('--page-size', type=int, default=25, help='Items per page (default: 25)')
    list_parser.add_argument('--subscribed', action='store_true', help='Show only subscribed charts')
    list_parser.add_argument('--json', action='store_true', help='Output as JSON')
    list_parser.set_defaults(func=cmd_list_charts)

    search_parser = add_parser(sub, 'search', help='Search charts by name or description')
    search_parser.add_argument('query', help='Search text')
    search_parser.add_argument('--json', action='store_true', help='Output as JSON')
    search_parser.set_defaults(func=cmd_search_charts)

    info_parser = add_parser(sub, 'info', help='Show versions and profiles of a chart')
    info_parser.add_argument('chart_name', help='Chart name')
    info_parser.add_argument('--repository', help='Repository URL of the chart')
    info_parser.add_argument('--json', action='store_true', help='Output as JSON')
    info_parser.set_defaults(func=cmd_chart_info)
