"""Clone stacks from one ImportCluster configuration into another."""
import logging
import os
import shutil
from urllib.parse import urlparse

import requests

from cluster_file import iter_stacks, load_cluster_file, parse_cluster_yaml, write_cluster_file

logger = logging.getLogger(__name__)

SUMMARY_RULE = "=" * 60


class CloneError(Exception):
    """Raised when the source configuration cannot be fetched."""


def is_url(path):
    return urlparse(path).scheme in ('http', 'https')


def url_base(url):
    """Return the URL of the directory that holds `url`, without a trailing slash."""
    parsed = urlparse(url)
    path = parsed.path
    path = path[:len(path) - len(os.path.basename(path))]
    return parsed._replace(path=path, query='', fragment='').geturl().rstrip('/')


def download_text(url):
    logger.debug("Downloading %s", url)
    response = requests.get(url, timeout=30)
    if response.status_code != 200:
        raise CloneError(f'failed to download from URL "{url}": HTTP {response.status_code}')
    return response.text


def generate_new_cluster_name(existing_name):
    """Derive a name for a cloned cluster.

    The first '-cluster' becomes '-cloned-cluster'; any other name gets a
    '-cloned' suffix.
    """
    if '-cluster' in existing_name:
        return existing_name.replace('-cluster', '-cloned-cluster', 1)
    return f"{existing_name}-cloned"


def new_cluster_from(source):
    """Build an empty target cluster seeded from the source's metadata."""
    name = (source.get('metadata') or {}).get('name') or ''
    spec = {}
    git_repository = (source.get('spec') or {}).get('git_repository')
    if git_repository:
        spec['git_repository'] = git_repository
    spec['stacks'] = []
    return {
        'apiVersion': 'v1',
        'kind': 'ImportCluster',
        'metadata': {'name': generate_new_cluster_name(name), 'description': 'Cloned cluster'},
        'spec': spec,
    }


def join_under(base, relative_path):
    """Join like os.path.join, but keep absolute paths under `base`."""
    return os.path.join(base, relative_path.lstrip("/" + os.sep))


def referenced_files(stack):
    """Relative paths of the manifest and addon values files a stack uses."""
    files = []
    for manifest in stack.get('manifests') or []:
        if manifest.get('from_file'):
            files.append(manifest['from_file'])
    for addon in stack.get('addons') or []:
        configuration = addon.get('configuration') or {}
        if isinstance(configuration, dict) and configuration.get('from_file'):
            files.append(configuration['from_file'])
    return files


def find_conflicts(stack, target_stacks):
    """Return the manifest and addon names of `stack` already used in `target_stacks`."""
    manifest_names = set()
    addon_names = set()
    for existing in target_stacks:
        manifest_names.update(m.get('name') for m in existing.get('manifests') or [])
        addon_names.update(a.get('name') for a in existing.get('addons') or [])

    manifest_conflicts = [m['name'] for m in stack.get('manifests') or [] if m.get('name') in manifest_names]
    addon_conflicts = [a['name'] for a in stack.get('addons') or [] if a.get('name') in addon_names]
    return manifest_conflicts, addon_conflicts


class ClusterCloner:
    """Merges the stacks of a source cluster file into a target cluster file.

    Args:
        clean: Drop every stack of the target before merging
        force: Replace same-named stacks and overwrite existing files
        copy_missing: Copy files that are missing at the destination even
            for stacks that were skipped
    """

    def __init__(self, clean=False, force=False, copy_missing=False):
        self.clean = clean
        self.force = force
        self.copy_missing = copy_missing

    def clone(self, source, target_path):
        """Clone `source` (path or http(s) URL) into the file at `target_path`.

        Returns:
            dict: summary with 'source', 'target', 'target_existed', 'added',
            'skipped' and the resulting 'cluster'
        """
        from_url = is_url(source)
        if from_url:
            print(f"Downloading cluster configuration from URL: {source}")
            existing = parse_cluster_yaml(download_text(source), source=source)
            source_base = url_base(source)
        else:
            existing = load_cluster_file(source)
            source_base = os.path.dirname(os.path.abspath(source))

        target_existed = os.path.exists(target_path)
        if target_existed:
            target = load_cluster_file(target_path)
        else:
            target = new_cluster_from(existing)

        target_base = os.path.dirname(os.path.abspath(target_path))
        added, skipped = self.merge_stacks(existing, target, source_base, target_base, from_url)

        write_cluster_file(target_path, target)

        summary = {
            'source': source,
            'target': target_path,
            'target_existed': target_existed,
            'added': added,
            'skipped': skipped,
            'source_cluster': existing,
            'cluster': target,
        }
        self.print_summary(summary)
        return summary

    def merge_stacks(self, existing, target, source_base, target_base, from_url=False):
        """Merge the stacks of `existing` into `target` in place.

        Returns:
            tuple: (stacks added, stacks skipped)
        """
        spec = target.get('spec')
        if not isinstance(spec, dict):
            spec = target['spec'] = {}
        if self.clean or not isinstance(spec.get('stacks'), list):
            spec['stacks'] = []
        target_stacks = spec['stacks']

        # Names present before the merge; stacks added below do not count
        original_names = {stack.get('name') for stack in target_stacks}

        added = 0
        skipped = 0
        for stack in iter_stacks(existing):
            name = stack.get('name')

            if name in original_names and not self.force:
                print(f'Skipping stack "{name}" - name already exists (use --force to override)')
                self._copy_missing_for_skipped(stack, source_base, target_base, from_url)
                skipped += 1
                continue

            if not self.force:
                manifest_conflicts, addon_conflicts = find_conflicts(stack, target_stacks)
                if manifest_conflicts or addon_conflicts:
                    print(f'Skipping stack "{name}" due to conflicts:')
                    if manifest_conflicts:
                        print(f"  Manifest conflicts: {', '.join(manifest_conflicts)}")
                    if addon_conflicts:
                        print(f"  Addon conflicts: {', '.join(addon_conflicts)}")
                    self._copy_missing_for_skipped(stack, source_base, target_base, from_url)
                    skipped += 1
                    continue

            self.copy_stack_files(stack, source_base, target_base, only_missing=False, from_url=from_url)

            if self.force and name in original_names:
                for index, current in enumerate(target_stacks):
                    if current.get('name') == name:
                        target_stacks[index] = stack
                        break
            else:
                target_stacks.append(stack)
            added += 1

        print(f"Clone completed: {added} stacks added, {skipped} stacks skipped")
        return added, skipped

    def _copy_missing_for_skipped(self, stack, source_base, target_base, from_url):
        if not self.copy_missing:
            return
        print(f'Copying missing files from skipped stack "{stack.get("name")}" due to --copy-missing flag')
        self.copy_stack_files(stack, source_base, target_base, only_missing=True, from_url=from_url)

    def copy_stack_files(self, stack, source_base, target_base, only_missing=False, from_url=False):
        for relative_path in referenced_files(stack):
            destination = join_under(target_base, relative_path)
            if only_missing and os.path.exists(destination):
                continue
            if from_url:
                self.download_file(source_base, relative_path, destination)
            else:
                self.copy_file(source_base, target_base, relative_path)

    def copy_file(self, source_base, target_base, relative_path):
        source = join_under(source_base, relative_path)
        destination = join_under(target_base, relative_path)
        os.makedirs(os.path.dirname(destination) or '.', exist_ok=True)

        if not os.path.exists(source):
            print(f'Source file "{relative_path}" does not exist, skipping')
            return False

        if os.path.exists(destination):
            if not self.force:
                print(f'File "{relative_path}" already exists, skipping copy (use --force to override)')
                return False
            print(f'File "{relative_path}" already exists, overwriting due to --force flag')

        shutil.copyfile(source, destination)
        print(f"Copied file: {relative_path}")
        return True

    def download_file(self, base_url, relative_path, destination):
        url = f"{base_url}/{relative_path.lstrip('/')}"
        print(f"Downloading file from URL: {url}")
        response = requests.get(url, timeout=30)
        if response.status_code == 404:
            print(f'File "{relative_path}" not found at URL, skipping')
            return False
        if response.status_code != 200:
            raise CloneError(f'failed to download file from "{url}": HTTP {response.status_code}')

        os.makedirs(os.path.dirname(destination) or '.', exist_ok=True)
        with open(destination, 'wb') as f:
            f.write(response.content)
        print(f"Downloaded file: {relative_path}")
        return True

    def print_summary(self, summary):
        source_cluster = summary['source_cluster']
        cluster = summary['cluster']
        stacks = iter_stacks(cluster)

        print()
        print(SUMMARY_RULE)
        print("CLONE SUMMARY")
        print(SUMMARY_RULE)
        print(f"Source cluster: {(source_cluster.get('metadata') or {}).get('name', '')} ({summary['source']})")
        print(f"Target cluster: {(cluster.get('metadata') or {}).get('name', '')} ({summary['target']})")
        if summary['target_existed']:
            print("Target existed: Yes (merged)")
        else:
            print("Target existed: No (created)")

        flags = [flag for flag, enabled in (
            ('--clean', self.clean),
            ('--force', self.force),
            ('--copy-missing', self.copy_missing),
        ) if enabled]
        print(f"Flags used: {', '.join(flags) if flags else 'none'}")

        print(f"Total stacks in result: {len(stacks)}")
        print(f"Total manifests: {sum(len(s.get('manifests') or []) for s in stacks)}")
        print(f"Total addons: {sum(len(s.get('addons') or []) for s in stacks)}")

        print()
        print("Stacks in result:")
        for index, stack in enumerate(stacks, 1):
            print(f"  {index}. {stack.get('name')} ({len(stack.get('manifests') or [])} manifests, "
                  f"{len(stack.get('addons') or [])} addons)")

        print()
        print("Next steps:")
        print(f"  1. Review the generated file: {summary['target']}")
        print(f"  2. Apply the cluster: ankra apply -f {summary['target']}")
        print(SUMMARY_RULE)
