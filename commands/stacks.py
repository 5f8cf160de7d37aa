"""Stack commands for the active cluster."""
from cluster_file import extract_kind_from_base64
from commands.helpers import (
    add_group, add_parser, confirm, fail, format_timestamp, get_api, print_json, print_table,
    require_selected_cluster, state_icon,
)


def _format_parents(parents):
    if not parents:
        return 'none'
    return ', '.join(f"{p.get('name')} ({p.get('kind')})" for p in parents)


def print_stack_details(stack):
    print("Stack Details:")
    print(f"  Name:        {stack.get('name', '')}")
    print(f"  Description: {stack.get('description') or '-'}")
    print(f"  State:       {stack.get('state', '')}")
    print(f"  Manifests:   {len(stack.get('manifests') or [])}")
    print(f"  Addons:      {len(stack.get('addons') or [])}")

    if stack.get('manifests'):
        print("\n  Manifests:")
        for manifest in stack['manifests']:
            print(f"    {state_icon(manifest.get('state'))} {manifest.get('name')}")
            print(f"      ├─ kind: {extract_kind_from_base64(manifest.get('manifest_base64'))}")
            print(f"      ├─ namespace: {manifest.get('namespace') or '-'}")
            print(f"      ├─ state: {manifest.get('state') or '-'}")
            print(f"      └─ parents: {_format_parents(manifest.get('parents'))}")
            print()

    if stack.get('addons'):
        print("  Addons:")
        for addon in stack['addons']:
            print(f"    {state_icon(addon.get('state'))} {addon.get('name')}")
            print(f"      ├─ chart: {addon.get('chart_name')}:{addon.get('chart_version')}")
            print(f"      ├─ namespace: {addon.get('namespace') or '-'}")
            print(f"      ├─ state: {addon.get('state') or '-'}")
            print(f"      └─ parents: {_format_parents(addon.get('parents'))}")
            print()


def cmd_list_stacks(args):
    """List stacks, or show one stack in detail."""
    cluster = require_selected_cluster()
    try:
        stacks = get_api(args).list_stacks(cluster['id'])
    except Exception as e:
        fail(f"Error listing stacks: {e}")

    if args.name:
        found = next((s for s in stacks if s.get('name') == args.name), None)
        if found is None:
            fail(f'Stack "{args.name}" not found on the active cluster.')
        if args.json:
            print_json(found)
        else:
            print_stack_details(found)
        return

    if args.json:
        print_json(stacks)
        return

    rows = [
        [
            s.get('name', ''),
            s.get('description') or '-',
            f"{state_icon(s.get('state'))} {s.get('state', '')}",
            len(s.get('manifests') or []),
            len(s.get('addons') or []),
        ]
        for s in stacks
    ]
    print_table(['Name', 'Description', 'State', 'Manifests', 'Addons'], rows,
                empty_message="No stacks found for the active cluster.")


def cmd_create_stack(args):
    cluster = require_selected_cluster()
    try:
        get_api(args).create_stack(cluster['id'], args.name, args.description or '')
    except Exception as e:
        fail(f"Error creating stack: {e}")
    print(f"Stack '{args.name}' created successfully!")


def cmd_delete_stack(args):
    cluster = require_selected_cluster()
    if not args.force and not confirm(f"Delete stack '{args.name}' from cluster '{cluster.get('name')}'?"):
        print("Aborted.")
        return
    try:
        get_api(args).delete_stack(cluster['id'], args.name)
    except Exception as e:
        fail(f"Error deleting stack: {e}")
    print(f"Stack '{args.name}' deleted successfully!")


def cmd_rename_stack(args):
    cluster = require_selected_cluster()
    try:
        get_api(args).rename_stack(cluster['id'], args.old_name, args.new_name)
    except Exception as e:
        fail(f"Error renaming stack: {e}")
    print(f"Stack '{args.old_name}' renamed to '{args.new_name}' successfully!")


def cmd_stack_history(args):
    """Show the change history of a stack."""
    cluster = require_selected_cluster()
    try:
        history = get_api(args).get_stack_history(cluster['id'], args.name)
    except Exception as e:
        fail(f"Error getting stack history: {e}")

    entries = history.get('history') or []
    if args.json:
        print_json(history)
        return
    if not entries:
        print(f"No history found for stack '{args.name}'.")
        return

    print(f"History for stack '{history.get('stack_name') or args.name}':\n")
    rows = [
        [
            entry.get('version', ''),
            entry.get('change_type', ''),
            format_timestamp(entry.get('created_at')),
            entry.get('created_by') or '-',
            entry.get('description') or '-',
        ]
        for entry in entries
    ]
    print_table(['Version', 'Change Type', 'Created At', 'Created By', 'Description'], rows)


def register_commands(subparsers):
    """Register `cluster stacks` commands."""
    _, sub = add_group(subparsers, 'stacks', 'Manage stacks on the active cluster', aliases=['stack'])

    list_parser = add_parser(sub, 'list', aliases=['ls'], help='List stacks')
    list_parser.add_argument('name', nargs='?', help='Show details for this stack')
    list_parser.add_argument('--json', action='store_true', help='Output as JSON')
    list_parser.set_defaults(func=cmd_list_stacks)

    create_parser = add_parser(sub, 'create', help='Create a stack')
    create_parser.add_argument('name', help='Stack name')
    create_parser.add_argument('--description', '-d', default='', help='Stack description')
    create_parser.set_defaults(func=cmd_create_stack)

    delete_parser = add_parser(sub, 'delete', help='Delete a stack')
    delete_parser.add_argument('name', help='Stack name')
    delete_parser.add_argument('-f', '--force', action='store_true', help='Skip confirmation')
    delete_parser.set_defaults(func=cmd_delete_stack)

    rename_parser = add_parser(sub, 'rename', help='Rename a stack')
    rename_parser.add_argument('old_name', help='Current stack name')
    rename_parser.add_argument('new_name', help='New stack name')
    rename_parser.set_defaults(func=cmd_rename_stack)

    history_parser = add_parser(sub, 'history', help='Show the change history of a stack')
    history_parser.add_argument('name', help='Stack name')
    history_parser.add_argument('--json', action='store_true', help='Output as JSON')
    history_parser.set_defaults(func=cmd_stack_history)
