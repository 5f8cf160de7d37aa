"""SOPS commands: encrypt secrets and cluster files through the platform."""
import os

from cluster_file import find_addon, find_manifest, load_cluster_file, write_cluster_file
from commands.helpers import add_group, add_parser, fail, get_api


def _referenced_path(cluster_file, relative_path):
    return os.path.join(os.path.dirname(os.path.abspath(cluster_file)), relative_path)


def _read_text(path, what):
    try:
        with open(path, 'r') as f:
            return f.read()
    except OSError as e:
        raise ValueError(f'failed to read {what} "{path}": {e}')


def add_encrypted_path(holder, key):
    """Add `key` to holder['encrypted_paths']. Returns False if already present."""
    paths = holder.get('encrypted_paths') or []
    if key in paths:
        return False
    holder['encrypted_paths'] = list(paths) + [key]
    return True


def encrypt_file_in_place(api, path, key, what):
    content = _read_text(path, what)
    encrypted = api.encrypt_yaml(content, [key])
    with open(path, 'w') as f:
        f.write(encrypted)


def encrypt_manifest(api, cluster_file, manifest_name, key):
    """Encrypt `key` in a manifest's from_file and record it in encrypted_paths."""
    cluster = load_cluster_file(cluster_file)
    manifest = find_manifest(cluster, manifest_name)
    if manifest is None:
        raise ValueError(f'manifest "{manifest_name}" not found in any stack')
    if not manifest.get('from_file'):
        raise ValueError(f'manifest "{manifest_name}" does not have a from_file reference')

    manifest_path = _referenced_path(cluster_file, manifest['from_file'])
    print(f'Encrypting key "{key}" in manifest "{manifest_name}"...')
    encrypt_file_in_place(api, manifest_path, key, 'manifest file')
    print(f"Updated manifest file: {manifest_path}")

    if add_encrypted_path(manifest, key):
        write_cluster_file(cluster_file, cluster)
        print(f"Updated cluster file with encrypted_paths: {cluster_file}")
    else:
        print(f'Key "{key}" already in encrypted_paths, cluster file unchanged')


def encrypt_addon(api, cluster_file, addon_name, key):
    """Encrypt `key` in an addon's values file and record it in encrypted_paths."""
    cluster = load_cluster_file(cluster_file)
    addon = find_addon(cluster, addon_name)
    if addon is None:
        raise ValueError(f'addon "{addon_name}" not found in any stack')
    configuration = addon.get('configuration')
    if not isinstance(configuration, dict):
        raise ValueError(f'addon "{addon_name}" does not have a configuration section')
    if not configuration.get('from_file'):
        raise ValueError(f'addon "{addon_name}" does not have a from_file configuration reference')

    values_path = _referenced_path(cluster_file, configuration['from_file'])
    print(f'Encrypting key "{key}" in addon "{addon_name}"...')
    encrypt_file_in_place(api, values_path, key, 'addon configuration file')
    print(f"Updated addon configuration file: {values_path}")

    if add_encrypted_path(configuration, key):
        write_cluster_file(cluster_file, cluster)
        print(f"Updated cluster file with encrypted_paths: {cluster_file}")
    else:
        print(f'Key "{key}" already in encrypted_paths, cluster file unchanged')


def decrypt_manifest(api, cluster_file, manifest_name):
    """Return the decrypted content of a manifest's from_file."""
    cluster = load_cluster_file(cluster_file)
    manifest = find_manifest(cluster, manifest_name)
    if manifest is None:
        raise ValueError(f'manifest "{manifest_name}" not found in any stack')
    if not manifest.get('from_file'):
        raise ValueError(f'manifest "{manifest_name}" does not have a from_file reference')

    content = _read_text(_referenced_path(cluster_file, manifest['from_file']), 'manifest file')
    return api.decrypt_yaml(content)


def cmd_sops(args):
    """Encrypt a single secret value."""
    try:
        encrypted = get_api(args).encrypt_secret(args.secret)
    except Exception as e:
        fail(f"Error encrypting secret: {e}")
    print(encrypted)


def cmd_encrypt_manifest(args):
    try:
        encrypt_manifest(get_api(args), args.file, args.name, args.key)
    except Exception as e:
        fail(f"Error: {e}")
    print("Encryption complete!")


def cmd_encrypt_addon(args):
    try:
        encrypt_addon(get_api(args), args.file, args.name, args.key)
    except Exception as e:
        fail(f"Error: {e}")
    print("Encryption complete!")


def cmd_decrypt_manifest(args):
    try:
        decrypted = decrypt_manifest(get_api(args), args.file, args.name)
    except Exception as e:
        fail(f"Error: {e}")
    print(decrypted, end='' if decrypted.endswith('\n') else '\n')


def register_commands(subparsers):
    """Register `cluster sops`, `cluster encrypt` and `cluster decrypt`."""
    sops_parser = add_parser(subparsers, 'sops', help='Encrypt a secret value with SOPS')
    sops_parser.add_argument('secret', help='Secret value to encrypt')
    sops_parser.set_defaults(func=cmd_sops)

    _, encrypt_sub = add_group(subparsers, 'encrypt', 'Encrypt values in cluster files')

    manifest_parser = add_parser(encrypt_sub, 'manifest', help='Encrypt a key in a manifest file')
    manifest_parser.add_argument('name', help='Manifest name')
    manifest_parser.add_argument('--key', required=True, help='Key to encrypt')
    manifest_parser.add_argument('-f', '--file', required=True, help='Path to the cluster YAML file')
    manifest_parser.set_defaults(func=cmd_encrypt_manifest)

    addon_parser = add_parser(encrypt_sub, 'addon', help='Encrypt a key in an addon values file')
    addon_parser.add_argument('--name', required=True, help='Addon name')
    addon_parser.add_argument('--key', required=True, help='Key to encrypt')
    addon_parser.add_argument('-f', '--file', required=True, help='Path to the cluster YAML file')
    addon_parser.set_defaults(func=cmd_encrypt_addon)

    _, decrypt_sub = add_group(subparsers, 'decrypt', 'Decrypt values in cluster files')

    decrypt_parser = add_parser(decrypt_sub, 'manifest', help='Print a decrypted manifest file')
    decrypt_parser.add_argument('name', help='Manifest name')
    decrypt_parser.add_argument('-f', '--file', required=True, help='Path to the cluster YAML file')
    decrypt_parser.set_defaults(func=cmd_decrypt_manifest)
