"""ImportCluster YAML files: loading, writing and building import requests."""
import base64
import binascii
import logging
import os
from typing import Dict, Any, List, Optional

import yaml

logger = logging.getLogger(__name__)

IMPORT_CLUSTER_KIND = 'ImportCluster'
STANDALONE = 'standalone'
PROFILE = 'profile'

OPTIONAL_ADDON_FIELDS = ('registry_name', 'registry_url', 'registry_credential_name', 'settings')


class ClusterFileError(ValueError):
    """Raised when an ImportCluster file is missing, malformed or incomplete."""


def parse_cluster_yaml(text, source='<string>') -> Dict[str, Any]:
    """Parse ImportCluster YAML text.

    Raises:
        ClusterFileError: On invalid YAML or a kind other than ImportCluster
    """
    try:
        cluster = yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise ClusterFileError(f"invalid YAML in {source}: {e}")

    if not isinstance(cluster, dict):
        raise ClusterFileError(f"{source} is not a YAML mapping")

    kind = cluster.get('kind') or ''
    if kind != IMPORT_CLUSTER_KIND:
        raise ClusterFileError(f'expected kind={IMPORT_CLUSTER_KIND}, got "{kind}"')
    return cluster


def load_cluster_file(path) -> Dict[str, Any]:
    """Read and parse an ImportCluster file."""
    try:
        with open(path, 'r') as f:
            text = f.read()
    except OSError as e:
        raise ClusterFileError(f'cannot read "{path}": {e}')
    return parse_cluster_yaml(text, source=str(path))


def write_cluster_file(path, cluster: Dict[str, Any]) -> None:
    """Write a cluster dict back to YAML, creating parent directories."""
    directory = os.path.dirname(os.path.abspath(path))
    os.makedirs(directory, exist_ok=True)
    with open(path, 'w') as f:
        yaml.safe_dump(cluster, f, sort_keys=False, default_flow_style=False, allow_unicode=True)


def iter_stacks(cluster: Dict[str, Any]) -> List[Dict[str, Any]]:
    return ((cluster.get('spec') or {}).get('stacks')) or []


def find_manifest(cluster, name) -> Optional[Dict[str, Any]]:
    """Find a manifest entry by name across all stacks."""
    for stack in iter_stacks(cluster):
        for manifest in stack.get('manifests') or []:
            if manifest.get('name') == name:
                return manifest
    return None


def find_addon(cluster, name) -> Optional[Dict[str, Any]]:
    """Find an addon entry by name across all stacks."""
    for stack in iter_stacks(cluster):
        for addon in stack.get('addons') or []:
            if addon.get('name') == name:
                return addon
    return None


def extract_kind_from_base64(manifest_base64):
    """Return the `kind` of a base64-encoded manifest, or 'unknown'."""
    if not manifest_base64:
        return 'unknown'
    try:
        decoded = base64.b64decode(manifest_base64, validate=True)
        manifest = yaml.safe_load(decoded)
    except (binascii.Error, ValueError, yaml.YAMLError):
        return 'unknown'
    if not isinstance(manifest, dict) or not manifest.get('kind'):
        return 'unknown'
    return str(manifest['kind'])


def decode_base64_text(value):
    """Decode base64 to text, returning None if it is not valid."""
    try:
        return base64.b64decode(value or '', validate=True).decode('utf-8')
    except (binascii.Error, ValueError):
        return None


def _encode(content: bytes) -> str:
    return base64.b64encode(content).decode('ascii')


def _read_relative(base_dir, relative_path, what):
    full = os.path.join(base_dir, relative_path)
    try:
        with open(full, 'rb') as f:
            return f.read()
    except OSError as e:
        raise ClusterFileError(f'read {what} "{full}": {e}')


def _text(value):
    return '' if value is None else str(value)


def parse_parents(raw) -> List[Dict[str, str]]:
    """Keep only parent entries that carry both a string name and kind."""
    if not isinstance(raw, list):
        return []
    parents = []
    for item in raw:
        if not isinstance(item, dict):
            continue
        name, kind = item.get('name'), item.get('kind')
        if isinstance(name, str) and isinstance(kind, str):
            parents.append({'name': name, 'kind': kind})
    return parents


def build_manifest(entry, base_dir) -> Dict[str, Any]:
    name = entry.get('name')
    if not name:
        raise ClusterFileError("manifest.name is required")

    inline = entry.get('manifest')
    if isinstance(inline, str) and inline:
        content = inline.encode('utf-8')
    elif isinstance(entry.get('from_file'), str):
        content = _read_relative(base_dir, entry['from_file'], 'manifest')
    else:
        raise ClusterFileError("manifest: either inline or from_file must be set")

    manifest = {
        'name': name,
        'manifest_base64': _encode(content),
        'parents': parse_parents(entry.get('parents')),
    }
    if entry.get('namespace'):
        manifest['namespace'] = entry['namespace']
    if entry.get('encrypted_paths'):
        manifest['encrypted_paths'] = list(entry['encrypted_paths'])
    return manifest


def _build_addon_configuration(configuration_type, configuration, base_dir):
    if not isinstance(configuration, dict):
        return None

    if configuration_type == STANDALONE:
        if isinstance(configuration.get('from_file'), str):
            values = _read_relative(base_dir, configuration['from_file'], 'addon configuration')
        elif isinstance(configuration.get('values'), str) and configuration['values']:
            values = configuration['values'].encode('utf-8')
        else:
            return None
        built = {'values_base64': _encode(values)}
        if configuration.get('encrypted_paths'):
            built['encrypted_paths'] = list(configuration['encrypted_paths'])
        return built

    if configuration_type == PROFILE and isinstance(configuration.get('from_file'), str):
        raw = _read_relative(base_dir, configuration['from_file'], 'addon profile')
        try:
            profile = yaml.safe_load(raw) or {}
        except yaml.YAMLError as e:
            raise ClusterFileError(f'unmarshal profile "{configuration["from_file"]}": {e}')
        built = {
            'name': _text(profile.get('name')),
            'owner': _text(profile.get('owner')),
            'revision': _text(profile.get('revision')),
        }
        if profile.get('inputs'):
            built['inputs'] = [
                {'key': item.get('key'), 'value': item.get('value')}
                for item in profile['inputs'] if isinstance(item, dict)
            ]
        return {'profile': built}

    return None


def build_addon(entry, base_dir) -> Dict[str, Any]:
    name = entry.get('name')
    if not name:
        raise ClusterFileError("addon.name is required")

    configuration_type = entry.get('configuration_type') or ''
    addon = {
        'name': name,
        'chart_name': _text(entry.get('chart_name')),
        'chart_version': _text(entry.get('chart_version')),
        'parents': parse_parents(entry.get('parents')),
    }
    if entry.get('repository_url'):
        addon['repository_url'] = _text(entry['repository_url'])
    if entry.get('namespace'):
        addon['namespace'] = entry['namespace']
    if configuration_type:
        addon['configuration_type'] = configuration_type

    configuration = _build_addon_configuration(configuration_type, entry.get('configuration'), base_dir)
    if configuration is not None:
        addon['configuration'] = configuration

    for field in OPTIONAL_ADDON_FIELDS:
        if entry.get(field):
            addon[field] = entry[field]
    return addon


def build_stack(entry, base_dir) -> Dict[str, Any]:
    name = entry.get('name')
    if not name:
        raise ClusterFileError("stack.name is required")

    manifests = []
    for index, item in enumerate(entry.get('manifests') or []):
        if not isinstance(item, dict):
            raise ClusterFileError(f"manifest[{index}] invalid")
        try:
            manifests.append(build_manifest(item, base_dir))
        except ClusterFileError as e:
            raise ClusterFileError(f"manifest[{index}]: {e}")

    addons = []
    for index, item in enumerate(entry.get('addons') or []):
        if not isinstance(item, dict):
            raise ClusterFileError(f"addon[{index}] invalid")
        try:
            addons.append(build_addon(item, base_dir))
        except ClusterFileError as e:
            raise ClusterFileError(f"addon[{index}]: {e}")

    stack = {'name': name, 'manifests': manifests, 'addons': addons}
    if entry.get('description'):
        stack['description'] = entry['description']
    return stack


def build_import_request(path) -> Dict[str, Any]:
    """Turn an ImportCluster file into the body of an import request.

    Manifest and values files referenced with `from_file` are resolved
    relative to the directory of `path` and sent base64-encoded.

    Args:
        path: Path to the ImportCluster YAML file

    Returns:
        dict: {'name', 'description', 'spec': {'git_repository'?, 'stacks'}}

    Raises:
        ClusterFileError: If the file or anything it references is invalid
    """
    cluster = load_cluster_file(path)

    metadata = cluster.get('metadata')
    if not isinstance(metadata, dict):
        raise ClusterFileError("metadata missing or invalid")
    name = metadata.get('name')
    if not name:
        raise ClusterFileError("metadata.name is required")

    spec = cluster.get('spec')
    if not isinstance(spec, dict):
        raise ClusterFileError("spec missing or invalid")

    base_dir = os.path.dirname(os.path.abspath(path))
    stacks = []
    for index, item in enumerate(spec.get('stacks') or []):
        if not isinstance(item, dict):
            raise ClusterFileError(f"stack[{index}] invalid")
        try:
            stacks.append(build_stack(item, base_dir))
        except ClusterFileError as e:
            raise ClusterFileError(f"stack[{index}]: {e}")

    request = {'name': name, 'spec': {'stacks': stacks}}
    if metadata.get('description'):
        request['description'] = metadata['description']

    repo = spec.get('git_repository')
    if isinstance(repo, dict):
        request['spec']['git_repository'] = {
            key: _text(repo.get(key))
            for key in ('provider', 'credential_name', 'branch', 'repository')
        }

    logger.debug("Built import request for %s with %d stacks", name, len(stacks))
    return request
