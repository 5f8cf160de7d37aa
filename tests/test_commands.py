import io
import os
import shutil
import sys
import tempfile
import unittest
from contextlib import redirect_stderr, redirect_stdout
from datetime import datetime, timezone
from unittest.mock import patch

import yaml

sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import ankra
from ankra_api import AnkraAPIError
from commands.chat import render_stream
from commands.helpers import format_time_ago, print_table, truncate
from commands.operations import format_status

CLUSTER = {'id': 'c-1', 'name': 'prod'}


def run_cli(argv):
    """Run the CLI and return (exit code, stdout, stderr)."""
    out, err = io.StringIO(), io.StringIO()
    code = 0
    with redirect_stdout(out), redirect_stderr(err):
        try:
            ankra.main(argv)
        except SystemExit as e:
            code = e.code
    return code, out.getvalue(), err.getvalue()


class TestParser(unittest.TestCase):
    def test_global_options_before_and_after_command(self):
        parser = ankra.build_parser()
        args = parser.parse_args(['--token', 'abc', 'cluster', 'list'])
        self.assertEqual(args.token, 'abc')
        args = parser.parse_args(['cluster', 'list', '--token', 'xyz', '--base-url', 'https://b'])
        self.assertEqual(args.token, 'xyz')
        self.assertEqual(args.base_url, 'https://b')
        args = parser.parse_args(['version'])
        self.assertIsNone(args.token)
        self.assertFalse(args.debug)

    def test_aliases(self):
        parser = ankra.build_parser()
        self.assertEqual(parser.parse_args(['creds', 'list']).func.__name__, 'cmd_list_credentials')
        self.assertEqual(parser.parse_args(['organization', 'current']).func.__name__,
                         'cmd_current_organisation')
        self.assertEqual(parser.parse_args(['get', 'clusters']).func.__name__, 'cmd_clusters')
        self.assertEqual(parser.parse_args(['chat']).func.__name__, 'cmd_chat')
        self.assertTrue(parser.parse_args(['chat', 'health']).ai)
        self.assertFalse(parser.parse_args(['chat', 'health', '--no-ai']).ai)

    def test_no_command_prints_help(self):
        code, out, _ = run_cli([])
        self.assertEqual(code, 1)
        self.assertIn('usage:', out)

    def test_group_without_subcommand_prints_help(self):
        code, out, _ = run_cli(['cluster'])
        self.assertEqual(code, 1)
        self.assertIn('usage:', out)

    def test_version(self):
        code, out, _ = run_cli(['version'])
        self.assertEqual(code, 0)
        self.assertIn('0.1.121', out)


class TestCoreCommands(unittest.TestCase):
    @patch('ankra.save_config', return_value='/tmp/.env')
    def test_config_saves_token(self, mock_save):
        code, out, _ = run_cli(['config', '--token', 'new-token'])
        self.assertEqual(code, 0)
        mock_save.assert_called_once_with(token='new-token', base_url=None, config_file=None)
        self.assertIn('Configuration saved to /tmp/.env', out)

    def test_mask_token(self):
        self.assertEqual(ankra.mask_token(''), '(not set)')
        self.assertEqual(ankra.mask_token('abcdefghijkl'), 'abcd****ijkl')

    @patch('ankra.clear_credentials', return_value=False)
    def test_logout_without_credentials(self, mock_clear):
        code, out, _ = run_cli(['logout'])
        self.assertEqual(code, 0)
        self.assertIn('No credentials found.', out)

    @patch('ankra.run_login')
    @patch('ankra.AnkraAPI')
    @patch('ankra.resolve_settings', return_value={'token': 't', 'base_url': 'https://b',
                                                   'token_id': '', 'token_name': ''})
    def test_login_skipped_when_token_valid(self, mock_settings, mock_api, mock_login):
        mock_api.return_value.validate_token.return_value = {'valid': True, 'error': None}
        code, out, _ = run_cli(['login'])
        self.assertEqual(code, 0)
        self.assertIn('No need to login', out)
        mock_login.assert_not_called()

    @patch('ankra.run_login', side_effect=ankra.LoginError('login timed out after 5 minutes'))
    @patch('ankra.resolve_settings', return_value={'token': '', 'base_url': 'https://b',
                                                   'token_id': '', 'token_name': ''})
    def test_login_failure(self, mock_settings, mock_login):
        code, _, err = run_cli(['login', '--no-browser'])
        self.assertEqual(code, 1)
        self.assertIn('Login failed: login timed out after 5 minutes', err)
        self.assertFalse(mock_login.call_args[1]['open_browser'])


class TestClusterCommands(unittest.TestCase):
    @patch('commands.clusters.get_api')
    def test_list_clusters(self, mock_get_api):
        mock_get_api.return_value.list_clusters.return_value = {
            'result': [{'name': 'prod', 'kube_version': '1.30', 'nodes': 3, 'control_planes': 1,
                        'state': 'up', 'kind': 'imported', 'created_at': ''}],
            'pagination': {'page': 1, 'total_pages': 1},
        }
        code, out, _ = run_cli(['cluster', 'list'])
        self.assertEqual(code, 0)
        self.assertIn('Kube Version', out)
        self.assertIn('prod', out)

    @patch('commands.clusters.get_api')
    def test_list_clusters_with_null_total_pages(self, mock_get_api):
        mock_get_api.return_value.list_clusters.return_value = {
            'result': [{'name': 'a'}], 'pagination': {'total_pages': None},
        }
        code, out, err = run_cli(['cluster', 'list'])
        self.assertEqual(code, 0)
        self.assertEqual(err, '')
        self.assertNotIn('Page', out)

    @patch('commands.clusters.get_api')
    def test_empty_cluster_list(self, mock_get_api):
        mock_get_api.return_value.list_clusters.return_value = {'result': []}
        _, out, _ = run_cli(['cluster', 'list'])
        self.assertIn('No clusters found.', out)

    @patch('commands.clusters.save_selected_cluster')
    @patch('commands.clusters.get_api')
    def test_select_by_name(self, mock_get_api, mock_save):
        mock_get_api.return_value.list_all_clusters.return_value = [CLUSTER, {'id': 'c-2', 'name': 'dev'}]
        code, out, _ = run_cli(['select', 'cluster', 'dev'])
        self.assertEqual(code, 0)
        mock_save.assert_called_once_with({'id': 'c-2', 'name': 'dev'})
        self.assertIn('Selected cluster: dev (ID: c-2) is now active.', out)

    @patch('commands.clusters.get_api')
    def test_delete_missing_cluster(self, mock_get_api):
        mock_get_api.return_value.delete_cluster.side_effect = AnkraAPIError('delete cluster', 404)
        code, out, _ = run_cli(['delete', 'cluster', 'ghost', '-f'])
        self.assertEqual(code, 0)
        self.assertIn("Cluster ghost does not exist, either ghost is wrong or it's already been deleted.", out)

    @patch('commands.clusters.get_api')
    @patch('commands.clusters.confirm', return_value=False)
    def test_delete_aborted(self, mock_confirm, mock_get_api):
        _, out, _ = run_cli(['delete', 'cluster', 'prod'])
        self.assertIn('Aborted.', out)
        mock_get_api.return_value.delete_cluster.assert_not_called()

    @patch('commands.helpers.load_selected_cluster', return_value=None)
    def test_requires_selected_cluster(self, mock_selected):
        code, _, err = run_cli(['cluster', 'addons', 'list'])
        self.assertEqual(code, 1)
        self.assertIn("No active cluster selected. Run 'ankra cluster select' to pick one.", err)

    @patch('commands.stacks.get_api')
    @patch('commands.helpers.load_selected_cluster', return_value=CLUSTER)
    def test_stack_details(self, mock_selected, mock_get_api):
        mock_get_api.return_value.list_stacks.return_value = [
            {'name': 'base', 'state': 'up', 'manifests': [{'name': 'ns', 'state': 'failed'}],
             'addons': []},
        ]
        code, out, _ = run_cli(['cluster', 'stacks', 'list', 'base'])
        self.assertEqual(code, 0)
        self.assertIn('✗ ns', out)
        self.assertIn('kind: unknown', out)

    @patch('commands.manifests.get_api')
    @patch('commands.helpers.load_selected_cluster', return_value=CLUSTER)
    def test_manifest_table_truncates_parents(self, mock_selected, mock_get_api):
        parents = [{'name': f'parent-{i}', 'kind': 'addon'} for i in range(5)]
        mock_get_api.return_value.list_manifests.return_value = [
            {'name': 'cm', 'manifest_base64': 'a2luZDogQ29uZmlnTWFwCg==', 'parents': parents},
        ]
        _, out, _ = run_cli(['cluster', 'manifests', 'list'])
        self.assertIn('ConfigMap', out)
        self.assertIn('parent-0 (addon), parent-1 ...', out)

    @patch('commands.operations.get_api')
    @patch('commands.helpers.load_selected_cluster', return_value=CLUSTER)
    def test_operation_details_include_jobs(self, mock_selected, mock_get_api):
        api = mock_get_api.return_value
        api.list_operations.return_value = [{'id': 'op-1', 'name': 'deploy', 'status': 'running'}]
        api.list_operation_jobs.return_value = [{'id': 'job-1', 'name': 'helm', 'status': 'completed'}]
        code, out, _ = run_cli(['cluster', 'operations', 'list', 'op-1'])
        self.assertEqual(code, 0)
        api.list_operation_jobs.assert_called_once_with('c-1', 'op-1')
        self.assertIn('⟳ running', out)
        self.assertIn('job-1', out)


class TestApplyCommand(unittest.TestCase):
    @patch('commands.cluster_files.get_api')
    @patch('commands.cluster_files.build_import_request', return_value={'name': 'prod', 'spec': {}})
    def test_apply_new_cluster(self, mock_build, mock_get_api):
        api = mock_get_api.return_value
        api.base_url = 'https://platform.test'
        api.apply_cluster.return_value = {'name': 'prod', 'cluster_id': 'c-9',
                                          'import_command': 'curl  -sSL\n  https://x | sh'}
        code, out, _ = run_cli(['apply', '-f', 'cluster.yaml'])
        self.assertEqual(code, 0)
        self.assertIn("Cluster 'prod' imported!", out)
        self.assertIn('curl -sSL https://x | sh', out)
        self.assertIn('https://platform.test/organisation/clusters/cluster/imported/c-9/overview', out)

    @patch('commands.cluster_files.get_api')
    @patch('commands.cluster_files.build_import_request', return_value={'name': 'prod', 'spec': {}})
    def test_apply_update(self, mock_build, mock_get_api):
        api = mock_get_api.return_value
        api.base_url = 'https://platform.test'
        api.apply_cluster.return_value = {'name': 'prod', 'cluster_id': 'c-9', 'import_command': ''}
        _, out, _ = run_cli(['apply', '-f', 'cluster.yaml'])
        self.assertIn("Cluster 'prod' has been updated!", out)

    @patch('commands.cluster_files.get_api')
    @patch('commands.cluster_files.build_import_request', return_value={'name': 'prod', 'spec': {}})
    def test_apply_errors(self, mock_build, mock_get_api):
        errors = [{'kind': 'Addon', 'name': 'nginx',
                   'errors': [{'key': 'chart_version', 'message': 'not found'}]}]
        mock_get_api.return_value.apply_cluster.side_effect = AnkraAPIError('import', 400, errors=errors)
        code, _, err = run_cli(['apply', '-f', 'cluster.yaml'])
        self.assertEqual(code, 1)
        self.assertIn('Import failed with the following issues:', err)
        self.assertIn('- Addon "nginx":', err)
        self.assertIn('    • chart_version: not found', err)

    def test_apply_invalid_file(self):
        code, _, err = run_cli(['apply', '-f', '/nonexistent/cluster.yaml'])
        self.assertEqual(code, 1)
        self.assertIn('Error preparing request', err)


class TestSopsCommands(unittest.TestCase):
    def setUp(self):
        self.tmpdir = tempfile.mkdtemp()
        self.cluster_path = os.path.join(self.tmpdir, 'cluster.yaml')
        with open(self.cluster_path, 'w') as f:
            yaml.safe_dump({
                'kind': 'ImportCluster',
                'metadata': {'name': 'prod'},
                'spec': {'stacks': [{
                    'name': 'base',
                    'manifests': [{'name': 'secret', 'from_file': 'secret.yaml'}, {'name': 'inline'}],
                    'addons': [{'name': 'nginx', 'configuration': {'from_file': 'values.yaml'}}],
                }]},
            }, f, sort_keys=False)
        for name in ('secret.yaml', 'values.yaml'):
            with open(os.path.join(self.tmpdir, name), 'w') as f:
                f.write('password: hunter2\n')

    def tearDown(self):
        shutil.rmtree(self.tmpdir)

    def load(self):
        with open(self.cluster_path) as f:
            return yaml.safe_load(f)

    @patch('commands.sops.get_api')
    def test_encrypt_manifest(self, mock_get_api):
        mock_get_api.return_value.encrypt_yaml.return_value = 'password: ENC[x]\n'
        code, out, _ = run_cli(['cluster', 'encrypt', 'manifest', 'secret', '--key', 'password',
                                '-f', self.cluster_path])
        self.assertEqual(code, 0)
        mock_get_api.return_value.encrypt_yaml.assert_called_once_with('password: hunter2\n', ['password'])
        with open(os.path.join(self.tmpdir, 'secret.yaml')) as f:
            self.assertEqual(f.read(), 'password: ENC[x]\n')
        manifest = self.load()['spec']['stacks'][0]['manifests'][0]
        self.assertEqual(manifest['encrypted_paths'], ['password'])
        self.assertIn('Encryption complete!', out)

        _, out, _ = run_cli(['cluster', 'encrypt', 'manifest', 'secret', '--key', 'password',
                             '-f', self.cluster_path])
        self.assertIn('Key "password" already in encrypted_paths, cluster file unchanged', out)

    @patch('commands.sops.get_api')
    def test_encrypt_addon(self, mock_get_api):
        mock_get_api.return_value.encrypt_yaml.return_value = 'password: ENC[y]\n'
        code, _, _ = run_cli(['cluster', 'encrypt', 'addon', '--name', 'nginx', '--key', 'password',
                              '-f', self.cluster_path])
        self.assertEqual(code, 0)
        configuration = self.load()['spec']['stacks'][0]['addons'][0]['configuration']
        self.assertEqual(configuration['encrypted_paths'], ['password'])

    @patch('commands.sops.get_api')
    def test_encrypt_manifest_errors(self, mock_get_api):
        code, _, err = run_cli(['cluster', 'encrypt', 'manifest', 'missing', '--key', 'k',
                                '-f', self.cluster_path])
        self.assertEqual(code, 1)
        self.assertIn('manifest "missing" not found in any stack', err)

        code, _, err = run_cli(['cluster', 'encrypt', 'manifest', 'inline', '--key', 'k',
                                '-f', self.cluster_path])
        self.assertEqual(code, 1)
        self.assertIn('manifest "inline" does not have a from_file reference', err)

    @patch('commands.sops.get_api')
    def test_decrypt_manifest(self, mock_get_api):
        mock_get_api.return_value.decrypt_yaml.return_value = 'password: plain\n'
        code, out, _ = run_cli(['cluster', 'decrypt', 'manifest', 'secret', '-f', self.cluster_path])
        self.assertEqual(code, 0)
        self.assertEqual(out, 'password: plain\n')

    @patch('commands.sops.get_api')
    def test_sops_secret(self, mock_get_api):
        mock_get_api.return_value.encrypt_secret.return_value = 'ENC[abc]'
        _, out, _ = run_cli(['cluster', 'sops', 'hunter2'])
        self.assertEqual(out.strip(), 'ENC[abc]')


class TestOrganisationCommands(unittest.TestCase):
    @patch('commands.organisations.load_organisation', return_value=None)
    @patch('commands.credentials.get_api')
    def test_delete_credential_uses_server_organisation(self, mock_get_api, mock_local):
        api = mock_get_api.return_value
        api.list_organisations.return_value = [
            {'organisation_id': 'o-1', 'user_current': False},
            {'organisation_id': 'o-2', 'user_current': True},
        ]
        code, out, _ = run_cli(['credentials', 'delete', 'cred-1', '-f'])
        self.assertEqual(code, 0)
        api.delete_credential.assert_called_once_with('cred-1', 'o-2')
        self.assertIn('Credential deleted successfully!', out)

    @patch('commands.organisations.load_organisation',
           return_value={'organisation_id': 'o-1', 'name': 'Acme', 'role': 'admin'})
    def test_current_prefers_local(self, mock_local):
        _, out, _ = run_cli(['org', 'current'])
        self.assertIn('Current organisation (local):', out)
        self.assertIn('Name: Acme', out)

    @patch('commands.organisations.save_organisation')
    @patch('commands.organisations.get_api')
    def test_switch(self, mock_get_api, mock_save):
        api = mock_get_api.return_value
        api.list_organisations.return_value = [{'organisation_id': 'o-2', 'name': 'Beta', 'role': 'member'}]
        api.switch_organisation.return_value = {'success': True, 'message': 'ok'}
        code, out, _ = run_cli(['org', 'switch', 'o-2'])
        self.assertEqual(code, 0)
        mock_save.assert_called_once_with('o-2', 'Beta', 'member')
        self.assertIn('Switched to organisation: Beta (o-2)', out)

    @patch('commands.organisations.get_api')
    def test_switch_unknown(self, mock_get_api):
        mock_get_api.return_value.list_organisations.return_value = []
        code, _, err = run_cli(['org', 'switch', 'o-9'])
        self.assertEqual(code, 1)
        self.assertIn("Organisation o-9 not found or you don't have access.", err)
        mock_get_api.return_value.switch_organisation.assert_not_called()


class TestChat(unittest.TestCase):
    def test_render_stream(self):
        out = io.StringIO()
        reply = render_stream(iter([
            {'type': 'content', 'content': 'Hello'},
            {'type': 'status'},
            {'type': 'error', 'error': 'slow down'},
            {'type': 'tool', 'content': ' world'},
            {'type': 'done', 'done': True},
            {'type': 'content', 'content': 'after done'},
        ]), out)
        self.assertEqual(reply, 'Hello world')
        self.assertEqual(out.getvalue(), 'Hello\nError: slow down\n world')

    @patch('builtins.input', side_effect=['hi', 'clear', 'quit'])
    @patch('commands.chat.load_selected_cluster', return_value=None)
    @patch('commands.chat.get_api')
    def test_interactive_session(self, mock_get_api, mock_selected, mock_input):
        api = mock_get_api.return_value
        api.stream_chat.return_value = iter([{'type': 'content', 'content': 'Hey!'}, {'type': 'done'}])
        code, out, _ = run_cli(['chat'])
        self.assertEqual(code, 0)
        self.assertIn('Cluster context: none (use --cluster to set)', out)
        self.assertIn('Assistant: Hey!', out)
        self.assertIn('Chat history cleared.', out)
        self.assertIn('Goodbye!', out)
        api.stream_chat.assert_called_once_with('hi', cluster_id=None, history=[])

    @patch('commands.chat.get_api')
    def test_ask_with_cluster(self, mock_get_api):
        api = mock_get_api.return_value
        api.get_cluster.return_value = CLUSTER
        api.stream_chat.return_value = iter([{'type': 'content', 'content': 'All good'}])
        code, out, _ = run_cli(['chat', 'ask', 'how', 'is', 'it?', '--cluster', 'prod'])
        self.assertEqual(code, 0)
        api.stream_chat.assert_called_once_with('how is it?', cluster_id='c-1')
        self.assertIn('All good', out)

    @patch('commands.chat.get_api')
    @patch('commands.chat.load_selected_cluster', return_value=CLUSTER)
    def test_health(self, mock_selected, mock_get_api):
        mock_get_api.return_value.get_cluster_health.return_value = {
            'overall_health': 'healthy', 'score': 92, 'issues': ['disk pressure'],
        }
        _, out, _ = run_cli(['chat', 'health', '--no-ai'])
        mock_get_api.return_value.get_cluster_health.assert_called_once_with('c-1', include_ai=False)
        self.assertIn("Cluster Health for 'prod'", out)
        self.assertIn('Score:  92/100', out)
        self.assertIn('- disk pressure', out)


class TestMissingToken(unittest.TestCase):
    def setUp(self):
        patcher = patch('ankra_api.resolve_settings', return_value={
            'token': '', 'base_url': 'https://b', 'token_id': '', 'token_name': ''})
        patcher.start()
        self.addCleanup(patcher.stop)

    def assert_token_error(self, argv):
        code, _, err = run_cli(argv)
        self.assertEqual(code, 1)
        self.assertIn('API token not provided', err)
        return err

    def test_chat_ask(self):
        err = self.assert_token_error(['chat', 'ask', 'hi'])
        self.assertIn('Error starting chat:', err)

    @patch('builtins.input', side_effect=['quit'])
    def test_interactive_chat(self, mock_input):
        self.assert_token_error(['chat'])
        mock_input.assert_not_called()

    def test_chat_history(self):
        self.assert_token_error(['chat', 'history'])

    @patch('commands.helpers.load_selected_cluster', return_value=CLUSTER)
    def test_agent_token(self, mock_selected):
        err = self.assert_token_error(['cluster', 'agent', 'token'])
        self.assertIn('Error getting agent token:', err)

    def test_cluster_list(self):
        self.assert_token_error(['cluster', 'list'])


class TestHelpers(unittest.TestCase):
    def test_format_time_ago(self):
        now = datetime(2026, 1, 10, 12, 0, tzinfo=timezone.utc)
        self.assertEqual(format_time_ago('2026-01-10T11:59:30Z', now), '30 seconds ago')
        self.assertEqual(format_time_ago('2026-01-10T11:00:00Z', now), '1 hour ago')
        self.assertEqual(format_time_ago('2026-01-07T12:00:00Z', now), '3 days ago')
        self.assertEqual(format_time_ago('2026-01-12T12:00:00Z', now), '2 days from now')
        self.assertEqual(format_time_ago('not a date', now), 'not a date')
        self.assertEqual(format_time_ago(None, now), '')

    def test_truncate(self):
        self.assertEqual(truncate('short', 30), 'short')
        self.assertEqual(truncate('x' * 40, 30), 'x' * 27 + '...')

    def test_print_table(self):
        out = io.StringIO()
        with redirect_stdout(out):
            print_table(['Name', 'State'], [['prod', 'up'], ['development', 'failed']])
        lines = out.getvalue().splitlines()
        self.assertEqual(lines[0], 'Name        | State ')
        self.assertEqual(set(lines[1]), {'-'})
        self.assertEqual(lines[3], 'development | failed')

    def test_format_status(self):
        self.assertEqual(format_status('completed'), '✓ completed')
        self.assertEqual(format_status('weird'), '● weird')


if __name__ == '__main__':
    unittest.main()
