#!/usr/bin/env python3
"""
Ankra CLI - manage Kubernetes clusters on the Ankra platform.
"""
import argparse
import json
import logging
import sys

from ankra_api import AnkraAPI
from auth_flow import LoginError, run_login
from config import (
    clear_credentials, get_config_file_path, load_config, resolve_settings, save_config,
)
from commands import (
    charts, chat, cluster_files, clusters, credentials, organisations, tokens,
)
from commands.helpers import add_global_options, add_parser, fail
from version import VERSION, get_version

logger = logging.getLogger(__name__)


def setup_logging(debug=False):
    """Configure logging for the CLI run."""
    level = logging.DEBUG if debug else logging.WARNING
    logging.basicConfig(level=level, format='%(asctime)s %(levelname)s %(name)s: %(message)s')
    logging.getLogger('urllib3').setLevel(logging.WARNING)


def mask_token(token):
    if not token:
        return '(not set)'
    if len(token) <= 8:
        return '*' * len(token)
    return f"{token[:4]}{'*' * (len(token) - 8)}{token[-4:]}"


def cmd_login(args):
    """Login to the Ankra platform through the browser."""
    settings = resolve_settings(token=getattr(args, 'token', None),
                                base_url=getattr(args, 'base_url', None),
                                config_file=getattr(args, 'config_file', None))
    base_url = settings['base_url']

    if settings['token'] and not args.force:
        try:
            result = AnkraAPI(base_url=base_url, token=settings['token']).validate_token()
        except Exception as e:
            result = {'valid': False, 'error': str(e)}

        if result['valid']:
            print("✓ Existing token is valid!")
            print(f"  Platform: {base_url}")
            if settings.get('token_name'):
                print(f"  Token name: {settings['token_name']}")
            print("\nNo need to login. Use 'ankra login --force' to force re-login.")
            return
        print(f"Existing token could not be validated: {result['error']}")
        print("Proceeding with login...")
        print()

    try:
        run_login(base_url, config_file=getattr(args, 'config_file', None),
                  open_browser=not args.no_browser)
    except KeyboardInterrupt:
        fail("\nLogin cancelled.")
    except LoginError as e:
        fail(f"Login failed: {e}")
    except Exception as e:
        logger.debug("Login error", exc_info=True)
        fail(f"Login failed: {e}")


def cmd_logout(args):
    """Remove stored credentials."""
    config_file = getattr(args, 'config_file', None)
    try:
        cleared = clear_credentials(config_file)
    except OSError as e:
        fail(f"Error removing credentials: {e}")

    if not cleared:
        print("No credentials found.")
        return
    print("Logged out successfully.")
    print(f"Your credentials have been removed from {get_config_file_path(config_file)}")


def cmd_config(args):
    """Show or update the stored settings."""
    config_file = getattr(args, 'config_file', None)
    token = getattr(args, 'token', None)
    base_url = getattr(args, 'base_url', None)

    if token or base_url:
        try:
            path = save_config(token=token, base_url=base_url.rstrip('/') if base_url else None,
                               config_file=config_file)
        except OSError as e:
            fail(f"Error saving configuration: {e}")
        print(f"Configuration saved to {path}")
        return

    stored = load_config(config_file)
    effective = resolve_settings(config_file=config_file)
    print(f"Config file: {get_config_file_path(config_file)}")
    print(f"Base URL: {effective['base_url']}")
    print(f"Token: {mask_token(effective['token'])}")
    if stored['token_name']:
        print(f"Token name: {stored['token_name']}")
    if stored['machine_id']:
        print(f"Machine ID: {stored['machine_id']}")


def cmd_version(args):
    """Show version information."""
    version_info = get_version()
    if args.json:
        print(json.dumps(version_info, indent=2))
        return

    print(f"ankra version {version_info['version']}")
    print(f"Python: {version_info['python']}")
    print(f"Platform: {version_info['platform']}")


def build_parser():
    """Build the argument parser with every command registered."""
    parser = argparse.ArgumentParser(
        prog='ankra',
        description='Ankra CLI - manage Kubernetes clusters on the Ankra platform',
        formatter_class=argparse.RawDescriptionHelpFormatter
    )
    parser.add_argument('--version', action='version', version=f"ankra version {VERSION}")
    add_global_options(parser, suppress=False)

    subparsers = parser.add_subparsers(dest='command', metavar='<command>', help='Available commands')

    # Login command
    login_parser = add_parser(subparsers, 'login', help='Login to Ankra through the browser')
    login_parser.add_argument('--force', action='store_true',
                              help='Force re-login even if a valid token exists')
    login_parser.add_argument('--no-browser', action='store_true',
                              help='Print the login URL without opening a browser')
    login_parser.set_defaults(func=cmd_login)

    # Logout command
    logout_parser = add_parser(subparsers, 'logout', help='Remove stored credentials')
    logout_parser.set_defaults(func=cmd_logout)

    # Config command
    config_parser = add_parser(subparsers, 'config',
                               help='Show settings, or save --token/--base-url to the config file')
    config_parser.set_defaults(func=cmd_config)

    # Version command
    version_parser = add_parser(subparsers, 'version', help='Show version information')
    version_parser.add_argument('--json', action='store_true', help='Output as JSON')
    version_parser.set_defaults(func=cmd_version)

    for module in (clusters, cluster_files, charts, credentials, tokens, organisations, chat):
        module.register_commands(subparsers)

    return parser


def main(argv=None):
    """Main CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    setup_logging(getattr(args, 'debug', False))

    if not args.command:
        parser.print_help()
        sys.exit(1)

    logger.debug("Running command %s", args.command)
    args.func(args)


if __name__ == '__main__':
    main()
