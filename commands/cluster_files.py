"""Commands that work on ImportCluster files: apply and clone."""
import sys

from ankra_api import AnkraAPIError
from clone import ClusterCloner
from cluster_file import build_import_request
from commands.helpers import add_parser, fail, get_api


def print_import_errors(errors):
    """Print resource errors returned by the import endpoint to stderr."""
    print("Import failed with the following issues:", file=sys.stderr)
    for resource_error in errors:
        print(f"- {resource_error.get('kind', '')} \"{resource_error.get('name', '')}\":",
              file=sys.stderr)
        for detail in resource_error.get('errors') or []:
            print(f"    • {detail.get('key', '')}: {detail.get('message', '')}", file=sys.stderr)


def cmd_apply(args):
    """Import or update a cluster from an ImportCluster file."""
    try:
        request = build_import_request(args.file)
    except Exception as e:
        fail(f"Error preparing request: {e}")

    try:
        api = get_api(args)
        result = api.apply_cluster(request)
    except AnkraAPIError as e:
        if e.errors:
            print_import_errors(e.errors)
            sys.exit(1)
        fail(f"Error applying cluster: {e}")
    except Exception as e:
        fail(f"Error applying cluster: {e}")

    if result.get('errors'):
        print_import_errors(result['errors'])
        sys.exit(1)

    if not result.get('import_command'):
        print(f"Cluster '{result.get('name', '')}' has been updated!\n")
    else:
        print(f"Cluster '{result.get('name', '')}' imported!\n")
        print("To install the Ankra agent, run:")
        print(' '.join(result['import_command'].split()))

    print(f"\nView it in the UI:\n  {api.base_url}/organisation/clusters/cluster/imported/"
          f"{result.get('cluster_id', '')}/overview")


def cmd_clone(args):
    """Clone stacks from a source cluster file or URL into a target file."""
    cloner = ClusterCloner(clean=args.clean, force=args.force, copy_missing=args.copy_missing)
    try:
        cloner.clone(args.source, args.target)
    except Exception as e:
        fail(f"Error: {e}")


def register_commands(subparsers):
    """Register `apply` and `clone`."""
    apply_parser = add_parser(subparsers, 'apply', help='Apply an ImportCluster YAML file',
                              description='Create or update a cluster from an ImportCluster YAML file.')
    apply_parser.add_argument('-f', '--file', required=True,
                              help='Path to the ImportCluster YAML file to apply')
    apply_parser.set_defaults(func=cmd_apply)

    clone_parser = add_parser(
        subparsers, 'clone', help='Clone stacks from one cluster file into another',
        description='Merge the stacks of SOURCE (a file or http(s) URL) into TARGET. '
                    'TARGET is created when it does not exist.')
    clone_parser.add_argument('source', help='Source cluster file or URL')
    clone_parser.add_argument('target', help='Target cluster file')
    clone_parser.add_argument('--clean', action='store_true',
                              help='Remove all existing stacks from the target first')
    clone_parser.add_argument('--force', action='store_true',
                              help='Replace stacks with the same name and overwrite files')
    clone_parser.add_argument('--copy-missing', action='store_true',
                              help='Copy missing files even for skipped stacks')
    clone_parser.set_defaults(func=cmd_clone)
