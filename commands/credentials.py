"""Credential commands."""
from commands.helpers import (
    add_group, add_parser, confirm, fail, format_time_ago, get_api, print_json, print_table,
)
from commands.organisations import resolve_organisation_id


def cmd_list_credentials(args):
    try:
        credentials = get_api(args).list_credentials(provider=args.provider)
    except Exception as e:
        fail(f"Error listing credentials: {e}")

    if args.json:
        print_json(credentials)
        return

    rows = [
        [
            c.get('id', ''),
            c.get('name', ''),
            c.get('provider', ''),
            c.get('cluster_count', 0),
            format_time_ago(c.get('created_at')),
        ]
        for c in credentials
    ]
    print_table(['ID', 'Name', 'Provider', 'Clusters', 'Created'], rows,
                empty_message="No credentials found.")


def cmd_get_credential(args):
    try:
        credential = get_api(args).get_credential(args.credential_id)
    except Exception as e:
        fail(f"Error fetching credential: {e}")

    if args.json:
        print_json(credential)
        return

    print("Credential Details:")
    print(f"  ID:       {credential.get('id', '')}")
    print(f"  Name:     {credential.get('name', '')}")
    print(f"  Provider: {credential.get('provider', '')}")
    if credential.get('description'):
        print(f"  Description: {credential['description']}")
    if credential.get('owner'):
        print(f"  Owner:    {credential['owner']}")
    if credential.get('repository'):
        print(f"  Repository: {credential['repository']}")
    print(f"  Created:  {format_time_ago(credential.get('created_at'))}")


def cmd_validate_credential(args):
    """Check whether a credential name is valid and still available."""
    try:
        result = get_api(args).validate_credential_name(args.name)
    except Exception as e:
        fail(f"Error validating credential name: {e}")

    if result.get('valid'):
        print(f"Credential name '{args.name}' is valid and available.")
    else:
        message = result.get('message') or 'name is not available'
        fail(f"Credential name '{args.name}' is invalid: {message}")


def cmd_delete_credential(args):
    if not args.force and not confirm(f"Are you sure you want to delete credential '{args.credential_id}'?"):
        print("Aborted.")
        return

    try:
        api = get_api(args)
        organisation_id = resolve_organisation_id(api)
    except Exception as e:
        fail(f"Error fetching organisation: {e}")

    if not organisation_id:
        fail("No organisation selected. Use 'ankra org switch <org_id>' first.")

    try:
        api.delete_credential(args.credential_id, organisation_id)
    except Exception as e:
        fail(f"Error deleting credential: {e}")
    print("Credential deleted successfully!")


def register_commands(subparsers):
    """Register `credentials` commands."""
    _, sub = add_group(subparsers, 'credentials', 'Manage credentials',
                       aliases=['credential', 'cred', 'creds'])

    list_parser = add_parser(sub, 'list', aliases=['ls'], help='List credentials')
    list_parser.add_argument('--provider', help='Filter by provider (e.g., github)')
    list_parser.add_argument('--json', action='store_true', help='Output as JSON')
    list_parser.set_defaults(func=cmd_list_credentials)

    get_parser = add_parser(sub, 'get', help='Show details of a credential')
    get_parser.add_argument('credential_id', help='Credential ID')
    get_parser.add_argument('--json', action='store_true', help='Output as JSON')
    get_parser.set_defaults(func=cmd_get_credential)

    validate_parser = add_parser(sub, 'validate', help='Check that a credential name is available')
    validate_parser.add_argument('name', help='Credential name')
    validate_parser.set_defaults(func=cmd_validate_credential)

    delete_parser = add_parser(sub, 'delete', help='Delete a credential')
    delete_parser.add_argument('credential_id', help='Credential ID')
    delete_parser.add_argument('-f', '--force', action='store_true', help='Skip confirmation')
    delete_parser.set_defaults(func=cmd_delete_credential)
