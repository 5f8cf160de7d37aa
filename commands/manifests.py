"""Manifest commands for the active cluster."""
from cluster_file import decode_base64_text, extract_kind_from_base64
from commands.helpers import (
    add_group, add_parser, fail, get_api, print_json, print_table, require_selected_cluster,
    state_icon, truncate,
)


def _format_parents(parents):
    return ', '.join(f"{p.get('name')} ({p.get('kind')})" for p in parents or [])


def print_manifest_details(manifest):
    print("Manifest Details:")
    print(f"  Name:        {manifest.get('name', '')}")
    print(f"  Kind:        {extract_kind_from_base64(manifest.get('manifest_base64'))}")
    print(f"  Namespace:   {manifest.get('namespace') or '-'}")
    print(f"  State:       {manifest.get('state') or '-'}")
    print(f"  Parents:     {_format_parents(manifest.get('parents')) or 'none'}")

    if manifest.get('manifest_base64'):
        print("\n  Manifest Content:")
        content = decode_base64_text(manifest['manifest_base64'])
        if content is None:
            print("    Error decoding manifest: invalid base64 content")
            return
        for line in content.splitlines():
            print(f"    {line}")


def cmd_list_manifests(args):
    """List manifests, or show one manifest with its content."""
    cluster = require_selected_cluster()
    try:
        manifests = get_api(args).list_manifests(cluster['id'])
    except Exception as e:
        fail(f"Error listing manifests: {e}")

    if args.name:
        found = next((m for m in manifests if m.get('name') == args.name), None)
        if found is None:
            fail(f'Manifest "{args.name}" not found on the active cluster.')
        if args.json:
            print_json(found)
        else:
            print_manifest_details(found)
        return

    if args.json:
        print_json(manifests)
        return

    rows = [
        [
            m.get('name', ''),
            extract_kind_from_base64(m.get('manifest_base64')),
            m.get('namespace') or '-',
            f"{state_icon(m.get('state'))} {m.get('state') or '-'}",
            truncate(_format_parents(m.get('parents')) or '-', 30),
        ]
        for m in manifests
    ]
    print_table(['Name', 'Kind', 'Namespace', 'State', 'Parents'], rows,
                empty_message="No manifests found for the active cluster.")


def register_commands(subparsers):
    """Register `cluster manifests` commands."""
    _, sub = add_group(subparsers, 'manifests', 'Inspect manifests on the active cluster',
                       aliases=['manifest'])

    list_parser = add_parser(sub, 'list', aliases=['ls'], help='List manifests')
    list_parser.add_argument('name', nargs='?', help='Show details and content for this manifest')
    list_parser.add_argument('--json', action='store_true', help='Output as JSON')
    list_parser.set_defaults(func=cmd_list_manifests)
