import io
import os
import shutil
import sys
import tempfile
import unittest
from contextlib import redirect_stdout
from unittest.mock import MagicMock, patch

import yaml

sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from clone import ClusterCloner, generate_new_cluster_name, url_base
from cluster_file import load_cluster_file


def cluster(name, stacks):
    return {
        'apiVersion': 'v1',
        'kind': 'ImportCluster',
        'metadata': {'name': name},
        'spec': {'stacks': stacks},
    }


class CloneTestCase(unittest.TestCase):
    def setUp(self):
        self.tmpdir = tempfile.mkdtemp()
        self.src_dir = os.path.join(self.tmpdir, 'src')
        self.dst_dir = os.path.join(self.tmpdir, 'dst')
        os.makedirs(self.src_dir)
        os.makedirs(self.dst_dir)
        self.source = os.path.join(self.src_dir, 'cluster.yaml')
        self.target = os.path.join(self.dst_dir, 'cluster.yaml')

    def tearDown(self):
        shutil.rmtree(self.tmpdir)

    def write(self, path, content):
        os.makedirs(os.path.dirname(path), exist_ok=True)
        with open(path, 'w') as f:
            f.write(content if isinstance(content, str) else yaml.safe_dump(content, sort_keys=False))

    def read(self, path):
        with open(path) as f:
            return f.read()

    def run_clone(self, **flags):
        out = io.StringIO()
        with redirect_stdout(out):
            summary = ClusterCloner(**flags).clone(self.source, self.target)
        return summary, out.getvalue()


class TestNames(unittest.TestCase):
    def test_generate_new_cluster_name(self):
        self.assertEqual(generate_new_cluster_name('prod-cluster'), 'prod-cloned-cluster')
        self.assertEqual(generate_new_cluster_name('a-cluster-b-cluster'), 'a-cloned-cluster-b-cluster')
        self.assertEqual(generate_new_cluster_name('prod'), 'prod-cloned')

    def test_url_base(self):
        self.assertEqual(url_base('https://example.com/repo/clusters/prod.yaml?ref=main'),
                         'https://example.com/repo/clusters')


class TestClone(CloneTestCase):
    def test_clone_into_new_target(self):
        self.write(self.source, cluster('prod-cluster', [
            {'name': 'base', 'manifests': [{'name': 'ns', 'from_file': 'manifests/ns.yaml'}]},
        ]))
        self.write(os.path.join(self.src_dir, 'manifests/ns.yaml'), 'kind: Namespace\n')

        summary, output = self.run_clone()
        self.assertFalse(summary['target_existed'])
        self.assertEqual(summary['added'], 1)

        result = load_cluster_file(self.target)
        self.assertEqual(result['metadata'], {'name': 'prod-cloned-cluster', 'description': 'Cloned cluster'})
        self.assertEqual([s['name'] for s in result['spec']['stacks']], ['base'])
        self.assertEqual(self.read(os.path.join(self.dst_dir, 'manifests/ns.yaml')), 'kind: Namespace\n')
        self.assertIn('Clone completed: 1 stacks added, 0 stacks skipped', output)
        self.assertIn('=' * 60, output)

    def test_name_clash_skips_stack(self):
        self.write(self.source, cluster('src', [{'name': 'base', 'manifests': [{'name': 'new'}]}]))
        self.write(self.target, cluster('dst', [{'name': 'base', 'manifests': [{'name': 'old'}]}]))

        summary, output = self.run_clone()
        self.assertEqual((summary['added'], summary['skipped']), (0, 1))
        self.assertIn('Skipping stack "base" - name already exists', output)
        stacks = load_cluster_file(self.target)['spec']['stacks']
        self.assertEqual(stacks[0]['manifests'], [{'name': 'old'}])

    def test_force_replaces_stack_in_place(self):
        self.write(self.source, cluster('src', [{'name': 'base', 'manifests': [{'name': 'new'}]}]))
        self.write(self.target, cluster('dst', [
            {'name': 'base', 'manifests': [{'name': 'old'}]},
            {'name': 'other'},
        ]))

        summary, _ = self.run_clone(force=True)
        self.assertEqual(summary['added'], 1)
        stacks = load_cluster_file(self.target)['spec']['stacks']
        self.assertEqual([s['name'] for s in stacks], ['base', 'other'])
        self.assertEqual(stacks[0]['manifests'], [{'name': 'new'}])

    def test_resource_conflict_skips_stack(self):
        self.write(self.source, cluster('src', [
            {'name': 'extra', 'manifests': [{'name': 'shared'}], 'addons': [{'name': 'nginx'}]},
        ]))
        self.write(self.target, cluster('dst', [
            {'name': 'base', 'manifests': [{'name': 'shared'}], 'addons': [{'name': 'nginx'}]},
        ]))

        summary, output = self.run_clone()
        self.assertEqual(summary['skipped'], 1)
        self.assertIn('Manifest conflicts: shared', output)
        self.assertIn('Addon conflicts: nginx', output)

    def test_conflicts_checked_against_stacks_added_in_same_run(self):
        self.write(self.source, cluster('src', [
            {'name': 'one', 'manifests': [{'name': 'm'}]},
            {'name': 'two', 'manifests': [{'name': 'm'}]},
        ]))
        self.write(self.target, cluster('dst', []))

        summary, _ = self.run_clone()
        self.assertEqual((summary['added'], summary['skipped']), (1, 1))

    def test_clean_empties_target(self):
        self.write(self.source, cluster('src', [{'name': 'base'}]))
        self.write(self.target, cluster('dst', [{'name': 'base'}, {'name': 'legacy'}]))

        summary, _ = self.run_clone(clean=True)
        self.assertEqual(summary['added'], 1)
        stacks = load_cluster_file(self.target)['spec']['stacks']
        self.assertEqual([s['name'] for s in stacks], ['base'])

    def test_copy_missing_for_skipped_stack(self):
        self.write(self.source, cluster('src', [{'name': 'base', 'manifests': [
            {'name': 'a', 'from_file': 'a.yaml'},
            {'name': 'b', 'from_file': 'b.yaml'},
        ]}]))
        self.write(self.target, cluster('dst', [{'name': 'base'}]))
        self.write(os.path.join(self.src_dir, 'a.yaml'), 'source a\n')
        self.write(os.path.join(self.src_dir, 'b.yaml'), 'source b\n')
        self.write(os.path.join(self.dst_dir, 'a.yaml'), 'target a\n')

        _, output = self.run_clone(copy_missing=True)
        self.assertIn('due to --copy-missing flag', output)
        self.assertEqual(self.read(os.path.join(self.dst_dir, 'a.yaml')), 'target a\n')
        self.assertEqual(self.read(os.path.join(self.dst_dir, 'b.yaml')), 'source b\n')

    def test_existing_file_overwritten_only_with_force(self):
        self.write(self.source, cluster('src', [{'name': 'new', 'addons': [
            {'name': 'nginx', 'configuration': {'from_file': 'values.yaml'}},
        ]}]))
        self.write(self.target, cluster('dst', []))
        self.write(os.path.join(self.src_dir, 'values.yaml'), 'new\n')
        self.write(os.path.join(self.dst_dir, 'values.yaml'), 'old\n')

        _, output = self.run_clone()
        self.assertIn('already exists, skipping copy', output)
        self.assertEqual(self.read(os.path.join(self.dst_dir, 'values.yaml')), 'old\n')

        self.write(self.target, cluster('dst', []))
        _, output = self.run_clone(force=True)
        self.assertIn('overwriting due to --force flag', output)
        self.assertEqual(self.read(os.path.join(self.dst_dir, 'values.yaml')), 'new\n')

    def test_absolute_from_file_stays_under_base_dirs(self):
        self.write(self.source, cluster('src', [{'name': 'base', 'manifests': [
            {'name': 'ns', 'from_file': '/manifests/ns.yaml'},
        ]}]))
        self.write(self.target, cluster('dst', []))
        self.write(os.path.join(self.src_dir, 'manifests/ns.yaml'), 'source\n')
        self.write(os.path.join(self.dst_dir, 'manifests/ns.yaml'), 'target\n')

        summary, output = self.run_clone(force=True)
        self.assertEqual(summary['added'], 1)
        self.assertIn('overwriting due to --force flag', output)
        self.assertEqual(self.read(os.path.join(self.dst_dir, 'manifests/ns.yaml')), 'source\n')

    def test_missing_source_file_is_skipped(self):
        self.write(self.source, cluster('src', [{'name': 'base', 'manifests': [
            {'name': 'a', 'from_file': 'missing.yaml'},
        ]}]))
        summary, output = self.run_clone()
        self.assertEqual(summary['added'], 1)
        self.assertIn('Source file "missing.yaml" does not exist, skipping', output)


class TestCloneFromUrl(CloneTestCase):
    @patch('clone.requests.get')
    def test_clone_from_url(self, mock_get):
        source_yaml = yaml.safe_dump(cluster('web-cluster', [{'name': 'base', 'manifests': [
            {'name': 'a', 'from_file': 'a.yaml'},
            {'name': 'b', 'from_file': 'b.yaml'},
        ]}]))

        def fake_get(url, timeout=None):
            if url == 'https://example.com/clusters/web.yaml':
                return MagicMock(status_code=200, text=source_yaml)
            if url == 'https://example.com/clusters/a.yaml':
                return MagicMock(status_code=200, content=b'kind: A\n')
            return MagicMock(status_code=404)

        mock_get.side_effect = fake_get
        self.source = 'https://example.com/clusters/web.yaml'

        summary, output = self.run_clone()
        self.assertEqual(summary['added'], 1)
        self.assertEqual(self.read(os.path.join(self.dst_dir, 'a.yaml')), 'kind: A\n')
        self.assertFalse(os.path.exists(os.path.join(self.dst_dir, 'b.yaml')))
        self.assertIn('File "b.yaml" not found at URL, skipping', output)

    @patch('clone.requests.get')
    def test_download_failure(self, mock_get):
        mock_get.return_value = MagicMock(status_code=500)
        self.source = 'https://example.com/clusters/web.yaml'
        with self.assertRaises(Exception) as ctx:
            self.run_clone()
        self.assertIn('HTTP 500', str(ctx.exception))


if __name__ == '__main__':
    unittest.main()
