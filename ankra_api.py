"""Ankra platform API client."""
import json
import logging
import requests
import urllib3
import yaml

from config import resolve_settings

urllib3.disable_warnings(urllib3.exceptions.InsecureRequestWarning)

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30
LONG_TIMEOUT = 60
MISSING_TOKEN_MESSAGE = "API token not provided; use --token, ANKRA_API_TOKEN, or 'ankra login'"


class AnkraAPIError(Exception):
    """Raised when the API answers with an unexpected status."""

    def __init__(self, action, status_code, body='', errors=None):
        self.action = action
        self.status_code = status_code
        self.body = body
        self.errors = errors or []
        super().__init__(f"{action} failed: status {status_code}, body: {body}")


def parse_sse_line(line):
    """Parse one server-sent-events line into a chat event.

    Args:
        line: Raw line from the event stream

    Returns:
        dict event, or None for lines that carry no data. `data: [DONE]`
        becomes {'type': 'done', 'done': True}; payloads that are not a
        JSON object are treated as plain content.
    """
    if line is None:
        return None
    line = line.strip()
    if not line.startswith('data: '):
        return None

    data = line[len('data: '):]
    if data == '[DONE]':
        return {'type': 'done', 'done': True}

    try:
        event = json.loads(data)
    except ValueError:
        event = None
    if not isinstance(event, dict):
        return {'type': 'content', 'content': data}
    return event


def _unwrap_list(data, key):
    # Some endpoints answer with a bare list, others wrap it
    if isinstance(data, list):
        return data
    if isinstance(data, dict):
        return data.get(key) or []
    return []


class AnkraAPI:
    """Client for the Ankra REST API."""

    def __init__(self, base_url=None, token=None, config_file=None, timeout=DEFAULT_TIMEOUT):
        """Initialize the API client.

        Args:
            base_url: Platform URL (optional, resolved from env/config if not provided)
            token: API token (optional, resolved from env/config if not provided)
            config_file: Alternative config file
            timeout: Default request timeout in seconds
        """
        if base_url is None or token is None:
            settings = resolve_settings(token=token, base_url=base_url, config_file=config_file)
            base_url = base_url or settings['base_url']
            token = token or settings['token']

        if not token:
            raise ValueError(MISSING_TOKEN_MESSAGE)

        self.base_url = base_url.rstrip('/')
        self.token = token
        self.timeout = timeout
        self.session = requests.Session()
        self.session.headers.update({
            'Authorization': f'Bearer {token}',
            'Content-Type': 'application/json'
        })

    def _request(self, method, endpoint, action, expected=(200,), **kwargs):
        """Send a request and check the status code.

        Returns:
            requests.Response
        """
        url = f"{self.base_url}{endpoint}"
        kwargs.setdefault('timeout', self.timeout)
        response = self.session.request(method, url, **kwargs)
        logger.debug("%s %s -> %s", method, url, response.status_code)
        if response.status_code not in expected:
            raise AnkraAPIError(action, response.status_code, response.text.strip())
        return response

    @staticmethod
    def _json(response):
        if not response.content:
            return {}
        return response.json()

    def get(self, endpoint, action='request', **kwargs):
        """GET request returning decoded JSON."""
        return self._json(self._request('GET', endpoint, action, **kwargs))

    def post(self, endpoint, action='request', **kwargs):
        """POST request returning decoded JSON."""
        return self._json(self._request('POST', endpoint, action, **kwargs))

    def put(self, endpoint, action='request', **kwargs):
        """PUT request returning decoded JSON."""
        return self._json(self._request('PUT', endpoint, action, **kwargs))

    def delete(self, endpoint, action='request', **kwargs):
        """DELETE request returning decoded JSON."""
        return self._json(self._request('DELETE', endpoint, action, **kwargs))

    # Clusters

    def list_clusters(self, page=1, page_size=25):
        """List one page of clusters.

        Returns:
            dict: {'result': [...], 'pagination': {...}}
        """
        return self.get('/api/v1/clusters', 'list clusters',
                        params={'page': page or 1, 'page_size': page_size or 25})

    def list_all_clusters(self, page_size=100):
        """List clusters across every page."""
        clusters = []
        page = 1
        while True:
            data = self.list_clusters(page=page, page_size=page_size)
            clusters.extend(data.get('result') or [])
            total_pages = (data.get('pagination') or {}).get('total_pages') or 1
            if page >= total_pages:
                return clusters
            page += 1

    def get_cluster(self, name):
        """Get a cluster by name.

        Raises:
            ValueError: If no cluster carries that name
        """
        data = self.get('/api/v1/clusters', 'get cluster', params={'cluster_name': name})
        result = data.get('result') or []
        if not result:
            raise ValueError(f'no cluster found for name "{name}"')
        return result[0]

    def delete_cluster(self, name):
        self._request('DELETE', f'/api/v1/clusters/{name}', 'delete cluster')

    def apply_cluster(self, import_request):
        """Import or update a cluster from an ImportCluster request body.

        Args:
            import_request: dict with name, description and spec

        Returns:
            dict: {'name', 'cluster_id', 'import_command', 'errors'}
        """
        for stack in import_request.get('spec', {}).get('stacks', []):
            if not stack.get('manifests'):
                stack['manifests'] = []
            if not stack.get('addons'):
                stack['addons'] = []

        url = f"{self.base_url}/api/v1/clusters/import"
        response = self.session.post(url, json=import_request, timeout=self.timeout)
        logger.debug("POST %s -> %s", url, response.status_code)
        if not 200 <= response.status_code < 300:
            errors = []
            try:
                errors = response.json().get('errors') or []
            except (ValueError, AttributeError):
                pass
            raise AnkraAPIError('import', response.status_code, response.text.strip(), errors=errors)
        return self._json(response)

    def reconcile_cluster(self, cluster_id):
        return self.post(f'/api/v1/org/clusters/imported/{cluster_id}/reconcile', 'reconcile')

    # Addons

    def list_cluster_addons(self, cluster_id):
        data = self.get(f'/api/v1/clusters/{cluster_id}/addons', 'list addons')
        return _unwrap_list(data, 'result')

    def list_available_addons(self, cluster_id):
        data = self.get(f'/api/v1/org/clusters/imported/{cluster_id}/addons/available',
                        'list available addons')
        return _unwrap_list(data, 'result')

    def get_addon_settings(self, cluster_id, addon_name):
        return self.get(f'/api/v1/org/clusters/imported/{cluster_id}/addons/{addon_name}/settings',
                        'get addon settings')

    def update_addon_settings(self, cluster_id, addon_name, settings):
        """Replace an addon's retry/sync settings.

        Args:
            cluster_id: Cluster ID
            addon_name: Addon name
            settings: dict with retry_policy, sync_policy and revision_history_limit
        """
        self._request('PUT', f'/api/v1/org/clusters/imported/{cluster_id}/addons/{addon_name}/settings',
                      'update', json=settings)

    def get_addon_by_name(self, cluster_id, addon_name):
        for addon in self.list_cluster_addons(cluster_id):
            if addon.get('name') == addon_name:
                return addon
        raise ValueError(f'addon "{addon_name}" not found')

    def uninstall_addon(self, cluster_id, addon_name, delete=False):
        """Uninstall an addon by name.

        Args:
            cluster_id: Cluster ID
            addon_name: Addon name, resolved to its resource ID first
            delete: Also delete the addon's resources permanently
        """
        addon = self.get_addon_by_name(cluster_id, addon_name)
        self._request('DELETE', f"/api/v1/org/clusters/imported/{cluster_id}/addons/{addon['id']}",
                      'uninstall', params={'delete': str(bool(delete)).lower()},
                      timeout=LONG_TIMEOUT)
        return addon

    # Agent

    def get_agent(self, cluster_id):
        return self.get(f'/api/v1/org/clusters/imported/{cluster_id}/agent', 'get agent')

    def get_agent_token(self, cluster_id):
        return self.get(f'/api/v1/org/clusters/imported/{cluster_id}/cluster-agent/token',
                        'get agent token')

    def generate_agent_token(self, cluster_id):
        return self.post(f'/api/v1/org/clusters/imported/{cluster_id}/cluster-agent/token',
                         'generate token', expected=(200, 201))

    def upgrade_agent(self, cluster_id):
        return self.post(f'/api/v1/org/clusters/imported/{cluster_id}/agent/upgrade', 'upgrade')

    # Charts

    def list_charts(self, page=1, page_size=25, only_subscribed=False):
        return self.get('/api/v1/org/stacks/charts', 'list charts', params={
            'page': page,
            'page_size': page_size,
            'only_subscribed': str(bool(only_subscribed)).lower(),
        })

    def get_chart_details(self, chart_name, repository_url):
        return self.post('/api/v1/org/stacks/charts/details', 'get chart details',
                         json={'chart_name': chart_name, 'repository_url': repository_url})

    def search_charts(self, query):
        """Search charts by name or description (case-insensitive)."""
        charts = self.list_charts(page=1, page_size=100).get('charts') or []
        needle = query.lower()
        return [
            chart for chart in charts
            if needle in (chart.get('name') or '').lower()
            or needle in (chart.get('description') or '').lower()
        ]

    # Credentials

    def list_credentials(self, provider=None):
        params = {'provider': provider} if provider else None
        return _unwrap_list(self.get('/api/v1/org/credentials', 'list credentials', params=params),
                            'result')

    def get_credential(self, credential_id):
        return self.get(f'/api/v1/org/credentials/{credential_id}', 'get credential')

    def validate_credential_name(self, name):
        return self.get('/api/v1/org/credentials/validate', 'validate credential',
                        params={'credential_name': name})

    def delete_credential(self, credential_id, organisation_id):
        self._request('DELETE', f'/api/v1/org/credentials/{credential_id}', 'delete',
                      params={'organisation_id': organisation_id})

    # API tokens

    def list_tokens(self):
        return _unwrap_list(self.get('/api/v1/org/account/tokens', 'list tokens'), 'result')

    def create_token(self, name, expires_at=None):
        payload = {'name': name}
        if expires_at:
            payload['expires_at'] = expires_at
        return self.post('/api/v1/org/account/tokens', 'create', expected=(200, 201), json=payload)

    def revoke_token(self, token_id):
        self._request('POST', f'/api/v1/org/account/tokens/{token_id}/revoke', 'revoke')

    def delete_token(self, token_id):
        self._request('DELETE', f'/api/v1/org/account/tokens/{token_id}', 'delete')

    # Organisations

    def list_organisations(self):
        return _unwrap_list(self.get('/api/v1/org/organisation', 'list organisations'), 'result')

    def get_organisation(self, organisation_id):
        return self.get(f'/api/v1/org/organisation/{organisation_id}', 'get organisation')

    def switch_organisation(self, organisation_id):
        return self.post('/api/v1/org/organisation/switch', 'switch',
                         json={'organisation_id': organisation_id})

    def create_organisation(self, name, country=None):
        payload = {'name': name}
        if country:
            payload['country'] = country
        return self.post('/api/v1/org/organisation', 'create', expected=(200, 201), json=payload)

    def validate_token(self):
        """Check that the configured token is accepted.

        Returns:
            dict: {'valid': bool, 'error': str or None}
        """
        try:
            self.list_organisations()
        except AnkraAPIError as e:
            return {'valid': False, 'error': str(e)}
        except requests.RequestException as e:
            return {'valid': False, 'error': f"Connection error: {e}"}
        return {'valid': True, 'error': None}

    # Operations

    def list_operations(self, cluster_id):
        data = self.get(f'/api/v1/clusters/{cluster_id}/operations', 'list operations',
                        params={'type_list': 'write'})
        return _unwrap_list(data, 'result')

    def list_operation_jobs(self, cluster_id, operation_id):
        data = self.get(f'/api/v1/clusters/{cluster_id}/operations/{operation_id}/jobs',
                        'list jobs')
        return _unwrap_list(data, 'result')

    def cancel_operation(self, operation_id):
        return self.post(f'/api/v1/org/operations/{operation_id}/cancel', 'cancel operation')

    def cancel_job(self, operation_id, job_id):
        return self.post(f'/api/v1/org/operations/{operation_id}/jobs/{job_id}/cancel',
                         'cancel job')

    # Manifests and stacks

    def list_manifests(self, cluster_id):
        return _unwrap_list(self.get(f'/api/v1/clusters/{cluster_id}/manifests', 'list manifests'),
                            'manifests')

    def list_stacks(self, cluster_id):
        return _unwrap_list(self.get(f'/api/v1/clusters/{cluster_id}/stacks', 'list stacks'),
                            'stacks')

    def create_stack(self, cluster_id, name, description=''):
        return self.post(f'/api/v1/org/clusters/imported/{cluster_id}/stacks', 'create',
                         expected=(200, 201), json={'name': name, 'description': description},
                         timeout=LONG_TIMEOUT)

    def delete_stack(self, cluster_id, name):
        self._request('DELETE', f'/api/v1/org/clusters/imported/{cluster_id}/stacks/{name}',
                      'delete', timeout=LONG_TIMEOUT)

    def rename_stack(self, cluster_id, name, new_name):
        self._request('POST', f'/api/v1/org/clusters/imported/{cluster_id}/stacks/{name}/rename-stack',
                      'rename', json={'new_name': new_name}, timeout=LONG_TIMEOUT)

    def get_stack_history(self, cluster_id, name):
        return self.get(f'/api/v1/org/clusters/imported/{cluster_id}/stacks/{name}/history',
                        'get stack history')

    # SOPS

    def encrypt_yaml(self, content, encrypted_paths):
        """Encrypt the given paths of a YAML document server-side.

        Returns:
            str: The encrypted YAML document
        """
        data = self.post('/api/v1/org/sops/encrypt', 'encrypt',
                         json={'yaml_content': content, 'encrypted_paths': list(encrypted_paths)})
        if not data.get('success'):
            raise AnkraAPIError('encrypt', 200, json.dumps(data))
        return data.get('encrypted_yaml', '')

    def decrypt_yaml(self, content):
        """Decrypt a SOPS-encrypted YAML document server-side."""
        data = self.post('/api/v1/org/sops/decrypt', 'decrypt', json={'yaml_content': content})
        if not data.get('success'):
            raise AnkraAPIError('decrypt', 200, json.dumps(data))
        return data.get('decrypted_yaml', '')

    def encrypt_secret(self, secret):
        """Encrypt a single value and return its encrypted form."""
        document = yaml.safe_dump({'value': secret}, default_flow_style=False)
        encrypted = yaml.safe_load(self.encrypt_yaml(document, ['value'])) or {}
        if not isinstance(encrypted, dict) or 'value' not in encrypted:
            raise ValueError("encrypted response does not contain a value")
        return encrypted['value']

    # Chat

    def _chat_prefix(self, cluster_id):
        if cluster_id:
            return f'/api/v1/org/clusters/{cluster_id}/kubernetes/chat'
        return '/api/v1/chat/general'

    def stream_chat(self, query, cluster_id=None, history=None, conversation_id=None):
        """Send a chat message and yield streamed events.

        Args:
            query: The user message
            cluster_id: Cluster to use as context (optional)
            history: Previous messages as [{'role', 'content'}]
            conversation_id: Continue an existing conversation (optional)

        Yields:
            dict events as produced by parse_sse_line
        """
        payload = {'query': query}
        if conversation_id:
            payload['conversation_id'] = conversation_id
        if history:
            payload['conversation_history'] = history

        url = f"{self.base_url}{self._chat_prefix(cluster_id)}"
        response = self.session.post(url, json=payload, headers={'Accept': 'text/event-stream'},
                                     stream=True, timeout=(self.timeout, None))
        logger.debug("POST %s -> %s", url, response.status_code)
        with response:
            if response.status_code != 200:
                raise AnkraAPIError('chat', response.status_code, response.text.strip())
            response.encoding = 'utf-8'
            for line in response.iter_lines(decode_unicode=True):
                event = parse_sse_line(line)
                if event is None:
                    continue
                yield event
                if event.get('done'):
                    return

    def list_chat_history(self, cluster_id=None, limit=20, offset=0):
        return self.get(f'{self._chat_prefix(cluster_id)}/history', 'list chat history',
                        params={'limit': limit, 'offset': offset})

    def get_chat_conversation(self, conversation_id):
        return self.get(f'/api/v1/chat/general/history/{conversation_id}', 'get conversation')

    def delete_chat_conversation(self, conversation_id):
        self._request('DELETE', f'/api/v1/chat/general/history/{conversation_id}', 'delete')

    def get_cluster_health(self, cluster_id, include_ai=True):
        return self.get(f'/api/v1/chat/clusters/{cluster_id}/health', 'get cluster health',
                        params={'include_ai_analysis': str(bool(include_ai)).lower()})
