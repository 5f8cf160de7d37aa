"""Cluster commands: list, get, select, reconcile and delete."""
import logging

from ankra_api import AnkraAPIError
from config import clear_selected_cluster, load_selected_cluster, save_selected_cluster
from commands import addons, agent, manifests, operations, sops, stacks
from commands.helpers import (
    add_group, add_parser, confirm, fail, format_time_ago, get_api, print_json, print_table,
)

logger = logging.getLogger(__name__)


def cmd_list_clusters(args):
    """List clusters."""
    try:
        api = get_api(args)
        data = api.list_clusters(page=getattr(args, 'page', 1), page_size=getattr(args, 'page_size', 25))
        clusters = data.get('result') or []

        if getattr(args, 'json', False):
            print_json(data)
            return

        rows = [
            [
                c.get('name', ''),
                c.get('kube_version', ''),
                c.get('nodes', 0),
                c.get('control_planes', 0),
                c.get('state', ''),
                c.get('kind', ''),
                format_time_ago(c.get('created_at')),
            ]
            for c in clusters
        ]
        print_table(['Name', 'Kube Version', 'Nodes', 'Control Planes', 'State', 'Kind', 'Created'],
                    rows, empty_message="No clusters found.")

        pagination = data.get('pagination') or {}
        if (pagination.get('total_pages') or 1) > 1:
            print(f"\nPage {pagination.get('page')} of {pagination.get('total_pages')} "
                  f"({pagination.get('total_count')} clusters)")
    except Exception as e:
        fail(f"Error listing clusters: {e}")


def cmd_get_cluster(args):
    """Show details of a cluster."""
    try:
        api = get_api(args)
        cluster = api.get_cluster(args.name)
    except Exception as e:
        fail(f"Error fetching cluster details for {args.name}: {e}")

    if getattr(args, 'json', False):
        print_json(cluster)
        return

    print("Cluster Details:")
    print(f"  ID: {cluster.get('id', '')}")
    print(f"  Name: {cluster.get('name', '')}")
    print(f"  Environment: {cluster.get('environment', '')}")
    print(f"  Kube Version: {cluster.get('kube_version', '')}")
    print(f"  State: {cluster.get('state', '')}")
    print(f"  Status: {cluster.get('status') or '-'}")
    if cluster.get('description'):
        print(f"  Description: {cluster['description']}")
    if cluster.get('created_at'):
        print(f"  Created: {format_time_ago(cluster['created_at'])}")


def cmd_clusters(args):
    """`get clusters [name]`: list, or show one cluster when a name is given."""
    if args.name:
        cmd_get_cluster(args)
    else:
        cmd_list_clusters(args)


def prompt_for_cluster(clusters):
    """Let the user pick a cluster by number, narrowing the list by name first.

    Returns:
        dict or None if the user cancels
    """
    candidates = clusters
    while True:
        for index, cluster in enumerate(candidates, 1):
            print(f"  {index:>3}. {cluster.get('name', '')} ({cluster.get('id', '')})")
        try:
            answer = input("Select cluster (number, or text to filter, empty to cancel): ").strip()
        except EOFError:
            return None
        if not answer:
            return None
        if answer.isdigit() and 1 <= int(answer) <= len(candidates):
            return candidates[int(answer) - 1]

        needle = answer.lower()
        filtered = [c for c in clusters if needle in (c.get('name') or '').lower()]
        if not filtered:
            print(f"No clusters match '{answer}'.")
            continue
        if len(filtered) == 1:
            return filtered[0]
        candidates = filtered


def cmd_select_cluster(args):
    """Select the active cluster."""
    try:
        api = get_api(args)
        clusters = api.list_all_clusters()
    except Exception as e:
        fail(f"Error listing clusters: {e}")

    if not clusters:
        print("No clusters available.")
        return

    name = getattr(args, 'name', None)
    if name:
        matches = [c for c in clusters if c.get('name') == name]
        if not matches:
            fail(f"Cluster '{name}' not found.")
        selected = matches[0]
    else:
        selected = prompt_for_cluster(clusters)
        if selected is None:
            print("Selection cancelled.")
            return

    logger.debug("Selecting cluster %s (%s)", selected.get('name'), selected.get('id'))
    try:
        save_selected_cluster(selected)
    except OSError as e:
        fail(f"Failed to save selection: {e}")

    print(f"Selected cluster: {selected.get('name')} (ID: {selected.get('id')}) is now active.")
    print("You can now run 'ankra cluster operations list' or 'ankra cluster addons list'.")


def cmd_clear_selection(args):
    """Clear the active cluster."""
    try:
        clear_selected_cluster()
    except OSError as e:
        fail(f"Error clearing selection: {e}")
    print("Active cluster selection cleared.")


def cmd_reconcile(args):
    """Trigger a reconcile of a cluster."""
    try:
        api = get_api(args)
        if args.name:
            cluster = api.get_cluster(args.name)
        else:
            cluster = load_selected_cluster()
            if not cluster:
                fail("No cluster specified and no active cluster selected. "
                     "Run 'ankra cluster select' or pass a cluster name.")

        print(f"Triggering reconcile for cluster '{cluster.get('name')}'...")
        result = api.reconcile_cluster(cluster['id'])
    except Exception as e:
        fail(f"Error triggering reconcile: {e}")

    if result.get('success', True):
        print(f"✓ {result.get('message') or 'Reconcile triggered successfully.'}")
    else:
        fail(f"Reconcile failed: {result.get('message', '')}")


def cmd_delete_cluster(args):
    """Delete a cluster by name."""
    name = args.name
    if not args.force and not confirm(f"Are you sure you want to delete cluster '{name}'?"):
        print("Aborted.")
        return

    try:
        api = get_api(args)
        api.delete_cluster(name)
    except AnkraAPIError as e:
        if e.status_code in (404, 422):
            print(f"Cluster {name} does not exist, either {name} is wrong or it's already been deleted.")
            return
        fail(f"Error deleting cluster {name}: {e}")
    except Exception as e:
        fail(f"Error deleting cluster {name}: {e}")

    print(f"Cluster '{name}' deleted successfully.")


def register_commands(subparsers):
    """Register cluster commands and their `get`/`select`/`delete` aliases.

    Args:
        subparsers: The top-level argparse subparsers object
    """
    _, cluster_sub = add_group(subparsers, 'cluster', 'Manage clusters', aliases=['clusters'])

    list_parser = add_parser(cluster_sub, 'list', aliases=['ls'], help='List clusters')
    list_parser.add_argument('--page', type=int, default=1, help='Page number (default: 1)')
    list_parser.add_argument('--page-size', type=int, default=25, help='Clusters per page (default: 25)')
    list_parser.add_argument('--json', action='store_true', help='Output as JSON')
    list_parser.set_defaults(func=cmd_list_clusters)

    get_parser = add_parser(cluster_sub, 'get', help='Show details of a cluster')
    get_parser.add_argument('name', help='Cluster name')
    get_parser.add_argument('--json', action='store_true', help='Output as JSON')
    get_parser.set_defaults(func=cmd_get_cluster)

    select_parser = add_parser(cluster_sub, 'select', help='Select the active cluster')
    select_parser.add_argument('name', nargs='?', help='Cluster name (interactive if omitted)')
    select_parser.set_defaults(func=cmd_select_cluster)

    clear_parser = add_parser(cluster_sub, 'clear', help='Clear the active cluster selection')
    clear_parser.set_defaults(func=cmd_clear_selection)

    reconcile_parser = add_parser(cluster_sub, 'reconcile', help='Trigger a cluster reconcile')
    reconcile_parser.add_argument('name', nargs='?', help='Cluster name (default: active cluster)')
    reconcile_parser.set_defaults(func=cmd_reconcile)

    for module in (stacks, addons, manifests, operations, agent, sops):
        module.register_commands(cluster_sub)

    # ankra get ...
    _, get_sub = add_group(subparsers, 'get', 'Get a resource')
    get_clusters = add_parser(get_sub, 'clusters', aliases=['cluster'],
                              help='List clusters or show one by name')
    get_clusters.add_argument('name', nargs='?', help='Cluster name')
    get_clusters.add_argument('--json', action='store_true', help='Output as JSON')
    get_clusters.set_defaults(func=cmd_clusters, page=1, page_size=25)
    add_parser(get_sub, 'clear', help='Clear the active cluster selection').set_defaults(
        func=cmd_clear_selection)

    # ankra select ...
    _, select_sub = add_group(subparsers, 'select', 'Select a resource')
    select_cluster = add_parser(select_sub, 'cluster', aliases=['clusters'],
                                help='Select the active cluster')
    select_cluster.add_argument('name', nargs='?', help='Cluster name (interactive if omitted)')
    select_cluster.set_defaults(func=cmd_select_cluster)
    add_parser(select_sub, 'clear', help='Clear the active cluster selection').set_defaults(
        func=cmd_clear_selection)

    # ankra delete ...
    _, delete_sub = add_group(subparsers, 'delete', 'Delete a resource')
    delete_cluster = add_parser(delete_sub, 'cluster', help='Delete a cluster')
    delete_cluster.add_argument('name', help='Cluster name')
    delete_cluster.add_argument('-f', '--force', action='store_true', help='Skip confirmation')
    delete_cluster.set_defaults(func=cmd_delete_cluster)
