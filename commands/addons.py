"""Addon commands for the active cluster."""
import json

import yaml

from commands.helpers import (
    add_group, add_parser, fail, format_time_ago, get_api, print_json, print_table,
    require_selected_cluster,
)


def print_addon_details(addon):
    print("Addon Details:")
    print(f"  ID:              {addon.get('id', '')}")
    print(f"  Name:            {addon.get('name', '')}")
    print(f"  Chart:           {addon.get('chart_name', '')}")
    print(f"  Version:         {addon.get('chart_version', '')}")
    print(f"  Repository:      {addon.get('repository_url', '')}")
    print(f"  Namespace:       {addon.get('namespace', '')}")
    print(f"  Through Ankra:   {str(bool(addon.get('through_ankra'))).lower()}")
    if addon.get('health'):
        print(f"  Health:          {addon['health']}")
    if addon.get('state'):
        print(f"  State:           {addon['state']}")
    print(f"  Created:         {format_time_ago(addon.get('created_at'))}")
    print(f"  Updated:         {format_time_ago(addon.get('updated_at'))}")


def cmd_list_addons(args):
    """List addons installed on the active cluster."""
    cluster = require_selected_cluster()
    try:
        addons = get_api(args).list_cluster_addons(cluster['id'])
    except Exception as e:
        fail(f"Error listing addons: {e}")

    if args.name:
        found = next((a for a in addons if a.get('name') == args.name), None)
        if found is None:
            fail(f'Addon "{args.name}" not found on the active cluster.')
        if args.json:
            print_json(found)
        else:
            print_addon_details(found)
        return

    if args.json:
        print_json(addons)
        return

    rows = [
        [
            a.get('name', ''),
            a.get('chart_name', ''),
            a.get('chart_version', ''),
            a.get('namespace', ''),
            a.get('health') or '-',
            a.get('state') or '-',
            format_time_ago(a.get('created_at')),
        ]
        for a in addons
    ]
    print_table(['Name', 'Chart', 'Version', 'Namespace', 'Health', 'State', 'Created'], rows,
                empty_message="No addons found for the active cluster.")


def cmd_available_addons(args):
    """List addons that can be installed on the active cluster."""
    cluster = require_selected_cluster()
    try:
        addons = get_api(args).list_available_addons(cluster['id'])
    except Exception as e:
        fail(f"Error listing available addons: {e}")

    if args.json:
        print_json(addons)
        return

    rows = [
        [a.get('id', ''), a.get('name', ''), a.get('chart_name', ''), a.get('version', ''),
         a.get('category') or '-']
        for a in addons
    ]
    print_table(['ID', 'Name', 'Chart', 'Version', 'Category'], rows,
                empty_message="No addons available for installation.")


def load_settings_file(path):
    """Read addon settings from a YAML or JSON file.

    A file holding the full GET response ({addon_name, settings}) is accepted
    as well as one holding the bare settings object.
    """
    with open(path, 'r') as f:
        data = yaml.safe_load(f)
    if not isinstance(data, dict):
        raise ValueError(f"{path} must contain a mapping")
    if isinstance(data.get('settings'), dict):
        return data['settings']
    return data


def cmd_addon_settings(args):
    """Show or update addon settings."""
    cluster = require_selected_cluster()
    try:
        api = get_api(args)
        if args.file:
            settings = load_settings_file(args.file)
            api.update_addon_settings(cluster['id'], args.name, settings)
            print(f"Settings for addon '{args.name}' updated successfully!")
            return
        current = api.get_addon_settings(cluster['id'], args.name)
    except Exception as e:
        fail(f"Error {'updating' if args.file else 'getting'} addon settings: {e}")

    print(f"Settings for addon '{current.get('addon_name') or args.name}':\n")
    print(json.dumps(current.get('settings') or {}, indent=2))


def cmd_uninstall_addon(args):
    cluster = require_selected_cluster()
    try:
        get_api(args).uninstall_addon(cluster['id'], args.name, delete=args.delete)
    except Exception as e:
        fail(f"Error uninstalling addon: {e}")

    if args.delete:
        print(f"Addon '{args.name}' uninstalled and deleted successfully!")
    else:
        print(f"Addon '{args.name}' uninstalled successfully!")


def register_commands(subparsers):
    """Register `cluster addons` commands."""
    _, sub = add_group(subparsers, 'addons', 'Manage addons on the active cluster', aliases=['addon'])

    list_parser = add_parser(sub, 'list', aliases=['ls'], help='List installed addons')
    list_parser.add_argument('name', nargs='?', help='Show details for this addon')
    list_parser.add_argument('--json', action='store_true', help='Output as JSON')
    list_parser.set_defaults(func=cmd_list_addons)

    available_parser = add_parser(sub, 'available', help='List addons available for installation')
    available_parser.add_argument('--json', action='store_true', help='Output as JSON')
    available_parser.set_defaults(func=cmd_available_addons)

    settings_parser = add_parser(sub, 'settings', help='Show or update addon settings')
    settings_parser.add_argument('name', help='Addon name')
    settings_parser.add_argument('--file', '-f', help='YAML/JSON file with new settings to apply')
    settings_parser.set_defaults(func=cmd_addon_settings)

    uninstall_parser = add_parser(sub, 'uninstall', help='Uninstall an addon')
    uninstall_parser.add_argument('name', help='Addon name')
    uninstall_parser.add_argument('--delete', action='store_true',
                                  help='Also delete the addon permanently')
    uninstall_parser.set_defaults(func=cmd_uninstall_addon)
