"""API token commands."""
from commands.helpers import (
    add_group, add_parser, fail, format_time_ago, get_api, print_json, print_table,
)


def cmd_list_tokens(args):
    try:
        tokens = get_api(args).list_tokens()
    except Exception as e:
        fail(f"Error listing tokens: {e}")

    if args.json:
        print_json(tokens)
        return

    rows = [
        [
            t.get('id', ''),
            t.get('name', ''),
            'Revoked' if t.get('revoked') else 'Active',
            format_time_ago(t.get('created_at')),
            format_time_ago(t.get('expires_at')),
            format_time_ago(t['last_used_at']) if t.get('last_used_at') else 'Never',
        ]
        for t in tokens
    ]
    print_table(['ID', 'Name', 'Status', 'Created', 'Expires', 'Last Used'], rows,
                empty_message="No API tokens found.")


def cmd_create_token(args):
    """Create an API token and print it once."""
    try:
        result = get_api(args).create_token(args.name, expires_at=args.expires)
    except Exception as e:
        fail(f"Error creating token: {e}")

    token = result.get('token', '')
    print("API token created successfully!")
    print()
    print(f"  ID:      {result.get('id', '')}")
    print(f"  Expires: {format_time_ago(result.get('expires_at'))}")
    print()
    print("Token (save this, it won't be shown again):")
    print(f"  {token}")
    print()
    print("To use this token, set it as ANKRA_API_TOKEN environment variable:")
    print(f"  export ANKRA_API_TOKEN='{token}'")


def cmd_revoke_token(args):
    try:
        get_api(args).revoke_token(args.token_id)
    except Exception as e:
        fail(f"Error revoking token: {e}")
    print("Token revoked successfully!")
    print(f"You can now delete it with: ankra tokens delete {args.token_id}")


def cmd_delete_token(args):
    try:
        get_api(args).delete_token(args.token_id)
    except Exception as e:
        fail(f"Error deleting token: {e}\nNote: Tokens must be revoked before they can be deleted.")
    print("Token deleted successfully!")


def register_commands(subparsers):
    """Register `tokens` commands."""
    _, sub = add_group(subparsers, 'tokens', 'Manage API tokens', aliases=['token'])

    list_parser = add_parser(sub, 'list', aliases=['ls'], help='List API tokens')
    list_parser.add_argument('--json', action='store_true', help='Output as JSON')
    list_parser.set_defaults(func=cmd_list_tokens)

    create_parser = add_parser(sub, 'create', help='Create a new API token')
    create_parser.add_argument('name', help='Token name')
    create_parser.add_argument('--expires', help='Token expiration date (ISO 8601 format)')
    create_parser.set_defaults(func=cmd_create_token)

    revoke_parser = add_parser(sub, 'revoke', help='Revoke an API token (can be deleted after)')
    revoke_parser.add_argument('token_id', help='Token ID')
    revoke_parser.set_defaults(func=cmd_revoke_token)

    delete_parser = add_parser(sub, 'delete', help='Delete a revoked API token')
    delete_parser.add_argument('token_id', help='Token ID')
    delete_parser.set_defaults(func=cmd_delete_token)
