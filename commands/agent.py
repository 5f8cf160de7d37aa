"""Cluster agent commands for the active cluster."""
from commands.helpers import (
    add_group, add_parser, fail, format_time_ago, get_api, print_json, require_selected_cluster,
)


def cmd_agent_status(args):
    """Show the agent status of the active cluster."""
    cluster = require_selected_cluster()
    try:
        agent = get_api(args).get_agent(cluster['id'])
    except Exception as e:
        fail(f"Error getting agent status: {e}")

    if args.json:
        print_json(agent)
        return

    print(f"Agent Status for cluster '{cluster.get('name')}':\n")
    print(f"  ID:       {agent.get('id', '')}")
    print(f"  Version:  {agent.get('version') or '-'}")
    print(f"  Status:   {agent.get('status') or 'unknown'}")
    print(f"  Healthy:  {'Yes' if agent.get('healthy') else 'No'}")
    if agent.get('last_seen'):
        print(f"  Last Seen: {format_time_ago(agent['last_seen'])}")
    if agent.get('connected_at'):
        print(f"  Connected: {format_time_ago(agent['connected_at'])}")
    if agent.get('upgrade_available'):
        print("\n  Upgrade Available: Yes")
        if agent.get('latest_version'):
            print(f"  Latest Version: {agent['latest_version']}")
        print("\n  Run 'ankra cluster agent upgrade' to upgrade the agent.")


def cmd_agent_token(args):
    """Show the agent token, or generate a new one."""
    cluster = require_selected_cluster()
    try:
        api = get_api(args)
    except Exception as e:
        fail(f"Error getting agent token: {e}")

    if args.generate:
        try:
            token = api.generate_agent_token(cluster['id'])
        except Exception as e:
            fail(f"Error generating agent token: {e}")
        print("New agent token generated!")
        print()
        print("Token (save this, it won't be shown again):")
        print(f"  {token.get('token', '')}")
        print()
        print(f"Expires: {format_time_ago(token.get('expires_at'))}")
        return

    try:
        token = api.get_agent_token(cluster['id'])
    except Exception as e:
        fail(f"Error getting agent token: {e}\n\n"
             "To generate a new token, run: ankra cluster agent token --generate")
    print(f"Agent Token for cluster '{cluster.get('name')}':\n")
    print(f"  Token:   {token.get('token', '')}")
    print(f"  Expires: {format_time_ago(token.get('expires_at'))}")


def cmd_agent_upgrade(args):
    cluster = require_selected_cluster()
    try:
        result = get_api(args).upgrade_agent(cluster['id'])
    except Exception as e:
        fail(f"Error upgrading agent: {e}")

    if result.get('success', True):
        print(f"Agent upgrade initiated for cluster '{cluster.get('name')}'!")
        print("The agent will automatically restart with the new version.")
        print("\nRun 'ankra cluster agent status' to check the upgrade progress.")
    else:
        fail(f"Agent upgrade failed: {result.get('message', '')}")


def register_commands(subparsers):
    """Register `cluster agent` commands."""
    _, sub = add_group(subparsers, 'agent', 'Manage the Ankra agent of the active cluster')

    status_parser = add_parser(sub, 'status', help='Show agent status')
    status_parser.add_argument('--json', action='store_true', help='Output as JSON')
    status_parser.set_defaults(func=cmd_agent_status)

    token_parser = add_parser(sub, 'token', help='Show or generate the agent token')
    token_parser.add_argument('--generate', action='store_true', help='Generate a new agent token')
    token_parser.set_defaults(func=cmd_agent_token)

    upgrade_parser = add_parser(sub, 'upgrade', help='Upgrade the agent to the latest version')
    upgrade_parser.set_defaults(func=cmd_agent_upgrade)
