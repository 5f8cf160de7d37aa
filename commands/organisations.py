"""Organisation commands."""
import logging

from config import load_organisation, save_organisation
from commands.helpers import (
    add_group, add_parser, fail, format_time_ago, get_api, print_json, print_table,
)

logger = logging.getLogger(__name__)


def current_server_organisation(organisations):
    return next((org for org in organisations if org.get('user_current')), None)


def resolve_organisation_id(api):
    """Return the locally selected organisation id, else the server's current one.

    Returns:
        str or None
    """
    local = load_organisation()
    if local:
        return local['organisation_id']
    current = current_server_organisation(api.list_organisations())
    return current.get('organisation_id') if current else None


def cmd_list_organisations(args):
    try:
        organisations = get_api(args).list_organisations()
    except Exception as e:
        fail(f"Error listing organisations: {e}")

    if args.json:
        print_json(organisations)
        return

    rows = [
        [
            org.get('organisation_id', ''),
            org.get('name') or '',
            org.get('role') or '',
            org.get('status') or '',
            '✓' if org.get('user_current') else '',
        ]
        for org in organisations
    ]
    print_table(['ID', 'Name', 'Role', 'Status', 'Current'], rows,
                empty_message="No organisations found.")


def cmd_switch_organisation(args):
    """Switch the active organisation on the server and locally."""
    organisation_id = args.organisation_id
    try:
        api = get_api(args)
        organisations = api.list_organisations()
    except Exception as e:
        fail(f"Error listing organisations: {e}")

    target = next((o for o in organisations if o.get('organisation_id') == organisation_id), None)
    if target is None:
        fail(f"Organisation {organisation_id} not found or you don't have access.")

    try:
        result = api.switch_organisation(organisation_id)
    except Exception as e:
        fail(f"Error switching organisation: {e}")

    try:
        save_organisation(organisation_id, target.get('name'), target.get('role'))
    except OSError as e:
        print(f"Warning: switched server-side but failed to save locally: {e}")

    print(f"Switched to organisation: {target.get('name') or ''} ({organisation_id})")
    if result.get('message'):
        print(f"Message: {result['message']}")


def _print_current(label, org):
    print(f"Current organisation ({label}):")
    print(f"  ID:   {org.get('organisation_id', '')}")
    print(f"  Name: {org.get('name') or ''}")
    print(f"  Role: {org.get('role') or ''}")


def cmd_current_organisation(args):
    """Show the selected organisation, falling back to the server's current one."""
    local = load_organisation()
    if local:
        _print_current('local', local)
        return

    try:
        organisations = get_api(args).list_organisations()
    except Exception as e:
        fail(f"Error fetching organisations: {e}")

    current = current_server_organisation(organisations)
    if current is None:
        print("No organisation currently selected.")
        return
    _print_current('server', current)


def cmd_create_organisation(args):
    try:
        result = get_api(args).create_organisation(args.name, country=args.country)
    except Exception as e:
        fail(f"Error creating organisation: {e}")

    organisation_id = result.get('organisation_id', '')
    print("Organisation created successfully!")
    print(f"  ID:      {organisation_id}")
    print(f"  Message: {result.get('message', '')}")
    print("\nTo switch to this organisation, run:")
    print(f"  ankra org switch {organisation_id}")


def cmd_organisation_members(args):
    """List members of an organisation."""
    try:
        api = get_api(args)
        organisation_id = args.organisation_id or resolve_organisation_id(api)
    except Exception as e:
        fail(f"Error fetching organisations: {e}")

    if not organisation_id:
        fail("No organisation specified. Use 'ankra org members <org_id>' "
             "or select an organisation first.")

    logger.debug("Listing members of organisation %s", organisation_id)
    try:
        org = api.get_organisation(organisation_id)
    except Exception as e:
        fail(f"Error fetching organisation: {e}")

    if args.json:
        print_json(org.get('members') or [])
        return

    print(f"Members of {org.get('name') or ''} ({org.get('organisation_id', organisation_id)}):\n")
    rows = [
        [m.get('email', ''), m.get('name') or '', m.get('role', ''), format_time_ago(m.get('joined_at'))]
        for m in org.get('members') or []
    ]
    print_table(['Email', 'Name', 'Role', 'Joined'], rows, empty_message="No members found.")


def register_commands(subparsers):
    """Register `org` commands."""
    _, sub = add_group(subparsers, 'org', 'Manage organisations',
                       aliases=['organisation', 'organization'],
                       description='Commands to list, switch, create, and manage organisations.')

    list_parser = add_parser(sub, 'list', aliases=['ls'], help='List all organisations you belong to')
    list_parser.add_argument('--json', action='store_true', help='Output as JSON')
    list_parser.set_defaults(func=cmd_list_organisations)

    switch_parser = add_parser(sub, 'switch', help='Switch to a different organisation')
    switch_parser.add_argument('organisation_id', help='Organisation ID')
    switch_parser.set_defaults(func=cmd_switch_organisation)

    current_parser = add_parser(sub, 'current', help='Show the currently selected organisation')
    current_parser.set_defaults(func=cmd_current_organisation)

    create_parser = add_parser(sub, 'create', help='Create a new organisation')
    create_parser.add_argument('name', help='Organisation name')
    create_parser.add_argument('--country', help='Country code for the organisation')
    create_parser.set_defaults(func=cmd_create_organisation)

    members_parser = add_parser(sub, 'members', help='List members of an organisation')
    members_parser.add_argument('organisation_id', nargs='?',
                                help='Organisation ID (default: current organisation)')
    members_parser.add_argument('--json', action='store_true', help='Output as JSON')
    members_parser.set_defaults(func=cmd_organisation_members)
