"""AI chat commands: interactive chat, one-shot questions, history and cluster health."""
import argparse
import sys

from config import load_selected_cluster
from commands.helpers import (
    NO_CLUSTER_SELECTED, add_group, add_parser, fail, format_time_ago, get_api, print_json,
    print_table, truncate,
)

EXIT_WORDS = ('exit', 'quit', 'q')
HEALTH_RULE = "─" * 41


def resolve_cluster_context(api, cluster_name=None):
    """Return the cluster to use as chat context.

    Args:
        api: AnkraAPI client
        cluster_name: Explicit cluster name (optional)

    Returns:
        dict or None: The named cluster, else the selected one, else None
    """
    if cluster_name:
        return api.get_cluster(cluster_name)
    return load_selected_cluster()


def render_stream(events, out=None):
    """Write streamed chat events and return the assistant's reply text."""
    out = out or sys.stdout
    reply = []
    for event in events:
        event_type = event.get('type')
        if event_type == 'done':
            break
        if event_type == 'error':
            out.write(f"\nError: {event.get('error') or event.get('content') or 'unknown error'}\n")
            continue
        content = event.get('content')
        if content:
            out.write(content)
            out.flush()
            reply.append(content)
    return ''.join(reply)


def _chat_api(args):
    try:
        return get_api(args)
    except Exception as e:
        fail(f"Error starting chat: {e}")


def _cluster_from_args(api, args):
    try:
        return resolve_cluster_context(api, getattr(args, 'cluster', None))
    except Exception as e:
        fail(f"Error finding cluster {args.cluster}: {e}")


def cmd_chat_ask(args):
    """Ask a single question and stream the answer."""
    query = ' '.join(args.message).strip()
    if not query:
        fail("Error: message must not be empty")

    api = _chat_api(args)
    cluster = _cluster_from_args(api, args)
    cluster_id = cluster.get('id') if cluster else None

    print()
    try:
        render_stream(api.stream_chat(query, cluster_id=cluster_id))
    except Exception as e:
        fail(f"Error: {e}")
    print("\n")


def cmd_chat(args):
    """Interactive chat session."""
    api = _chat_api(args)
    cluster = _cluster_from_args(api, args)
    cluster_id = cluster.get('id') if cluster else None

    print("Ankra AI Chat")
    print("─────────────")
    if cluster_id:
        print("Cluster context: active")
    else:
        print("Cluster context: none (use --cluster to set)")
    print("Type 'exit' or 'quit' to exit, 'clear' to clear history")
    print()

    history = []
    while True:
        try:
            line = input("You: ")
        except EOFError:
            print()
            break
        except KeyboardInterrupt:
            print("\nGoodbye!")
            break

        line = line.strip()
        if not line:
            continue
        if line.lower() in EXIT_WORDS:
            print("Goodbye!")
            break
        if line.lower() == 'clear':
            history = []
            print("Chat history cleared.")
            continue

        print("\nAssistant: ", end='', flush=True)
        try:
            reply = render_stream(api.stream_chat(line, cluster_id=cluster_id, history=list(history)))
        except Exception as e:
            print(f"Error: {e}\n")
            continue
        print("\n")

        history.append({'role': 'user', 'content': line})
        if reply:
            history.append({'role': 'assistant', 'content': reply})


def cmd_chat_history(args):
    api = _chat_api(args)
    cluster = None
    if args.cluster:
        cluster = _cluster_from_args(api, args)

    try:
        data = api.list_chat_history(cluster_id=cluster.get('id') if cluster else None,
                                     limit=args.limit)
    except Exception as e:
        fail(f"Error listing chat history: {e}")

    if args.json:
        print_json(data)
        return

    rows = [
        [c.get('id', ''), truncate(c.get('title') or '', 30),
         format_time_ago(c.get('created_at')), format_time_ago(c.get('updated_at'))]
        for c in data.get('conversations') or []
    ]
    print_table(['ID', 'Title', 'Created', 'Updated'], rows,
                empty_message="No chat conversations found.")


def cmd_chat_show(args):
    try:
        conversation = get_api(args).get_chat_conversation(args.conversation_id)
    except Exception as e:
        fail(f"Error getting conversation: {e}")

    if args.json:
        print_json(conversation)
        return

    print(f"Conversation: {conversation.get('title') or conversation.get('id', '')}")
    print(f"Created: {format_time_ago(conversation.get('created_at'))}")
    print()
    for message in conversation.get('messages') or []:
        speaker = 'You' if message.get('role') == 'user' else 'Assistant'
        print(f"{speaker}: {message.get('content', '')}\n")


def cmd_chat_delete(args):
    try:
        get_api(args).delete_chat_conversation(args.conversation_id)
    except Exception as e:
        fail(f"Error deleting conversation: {e}")
    print("Conversation deleted successfully!")


def cmd_chat_health(args):
    """Show the health analysis of the active cluster."""
    cluster = load_selected_cluster()
    if not cluster:
        fail(NO_CLUSTER_SELECTED)

    try:
        health = get_api(args).get_cluster_health(cluster['id'], include_ai=args.ai)
    except Exception as e:
        fail(f"Error getting cluster health: {e}")

    if args.json:
        print_json(health)
        return

    print(f"Cluster Health for '{cluster.get('name')}'")
    print(HEALTH_RULE)
    print(f"  Status: {health.get('overall_health', 'unknown')}")
    print(f"  Score:  {health.get('score', 0)}/100")
    print(f"  Last Updated: {format_time_ago(health.get('last_updated'))}")

    if health.get('issues'):
        print("\n  Issues:")
        for issue in health['issues']:
            print(f"    - {issue}")
    if health.get('recommendations'):
        print("\n  Recommendations:")
        for recommendation in health['recommendations']:
            print(f"    - {recommendation}")


def register_commands(subparsers):
    """Register `chat` and its subcommands.

    `ankra chat` without a subcommand starts the interactive session.
    """
    chat_parser, sub = add_group(subparsers, 'chat', 'Chat with the Ankra AI assistant',
                                 description='Chat with the Ankra AI assistant. Without a '
                                             'subcommand an interactive session is started.')
    chat_parser.add_argument('--cluster', help='Cluster name for context')
    chat_parser.set_defaults(func=cmd_chat)

    ask_parser = add_parser(sub, 'ask', help='Ask a single question')
    ask_parser.add_argument('message', nargs='+', help='Question to ask')
    ask_parser.add_argument('--cluster', default=argparse.SUPPRESS, help='Cluster name for context')
    ask_parser.set_defaults(func=cmd_chat_ask)

    history_parser = add_parser(sub, 'history', help='List chat conversations')
    history_parser.add_argument('--cluster', default=argparse.SUPPRESS, help='Filter by cluster')
    history_parser.add_argument('--limit', type=int, default=20,
                                help='Maximum number of conversations to show (default: 20)')
    history_parser.add_argument('--json', action='store_true', help='Output as JSON')
    history_parser.set_defaults(func=cmd_chat_history)

    show_parser = add_parser(sub, 'show', help='Show a chat conversation')
    show_parser.add_argument('conversation_id', help='Conversation ID')
    show_parser.add_argument('--json', action='store_true', help='Output as JSON')
    show_parser.set_defaults(func=cmd_chat_show)

    delete_parser = add_parser(sub, 'delete', help='Delete a chat conversation')
    delete_parser.add_argument('conversation_id', help='Conversation ID')
    delete_parser.set_defaults(func=cmd_chat_delete)

    health_parser = add_parser(sub, 'health', help='Show health analysis of the active cluster')
    health_parser.add_argument('--ai', dest='ai', action='store_true', default=True,
                               help='Include AI analysis (default)')
    health_parser.add_argument('--no-ai', dest='ai', action='store_false',
                               help='Skip AI analysis')
    health_parser.add_argument('--json', action='store_true', help='Output as JSON')
    health_parser.set_defaults(func=cmd_chat_health)
