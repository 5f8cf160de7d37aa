"""Browser login for the Ankra CLI (OAuth authorization code + PKCE)."""
import base64
import hashlib
import logging
import queue
import secrets
import threading
import webbrowser
from datetime import datetime
from http.server import BaseHTTPRequestHandler, HTTPServer
from urllib.parse import parse_qs, urlparse

import requests

from config import get_or_create_machine_id, save_config

logger = logging.getLogger(__name__)

LOGIN_TIMEOUT = 300

SUCCESS_HTML = """<!DOCTYPE html>
<html>
<head><title>Ankra CLI - Login Successful</title></head>
<body style="font-family: sans-serif; text-align: center; padding-top: 80px;">
  <img src="https://platform.ankra.app/w-logo.png" alt="Ankra" height="48">
  <h1>Login successful</h1>
  <p>You can close this window and return to your terminal.</p>
</body>
</html>
"""


class LoginError(Exception):
    """Raised when the browser login cannot be completed."""


def generate_code_verifier():
    """Return a PKCE code verifier: 32 random bytes, base64url without padding."""
    return base64.urlsafe_b64encode(secrets.token_bytes(32)).rstrip(b'=').decode('ascii')


def generate_code_challenge(verifier):
    """Return the S256 code challenge for a verifier."""
    digest = hashlib.sha256(verifier.encode('ascii')).digest()
    return base64.urlsafe_b64encode(digest).rstrip(b'=').decode('ascii')


def format_expiry(expires_at):
    """Format an RFC 3339 timestamp as e.g. 'January 2, 2006'."""
    try:
        dt = datetime.fromisoformat(expires_at.replace('Z', '+00:00'))
    except (ValueError, AttributeError):
        return expires_at or ''
    return f"{dt:%B} {dt.day}, {dt.year}"


class _CallbackHandler(BaseHTTPRequestHandler):

    def do_GET(self):
        parsed = urlparse(self.path)
        if parsed.path != '/callback':
            self.send_error(404)
            return

        params = parse_qs(parsed.query)
        code = params.get('code', [''])[0]
        state = params.get('state', [''])[0]

        if state != self.server.expected_state:
            self._respond(400, 'text/plain', 'Invalid state parameter')
            self.server.results.put(LoginError("callback error: state mismatch"))
            return
        if not code:
            self._respond(400, 'text/plain', 'Missing authorization code')
            self.server.results.put(LoginError("callback error: missing code"))
            return

        self._respond(200, 'text/html', SUCCESS_HTML)
        self.server.results.put(code)

    def _respond(self, status, content_type, body):
        payload = body.encode('utf-8')
        self.send_response(status)
        self.send_header('Content-Type', f'{content_type}; charset=utf-8')
        self.send_header('Content-Length', str(len(payload)))
        self.end_headers()
        self.wfile.write(payload)

    def log_message(self, format, *args):
        logger.debug("callback: " + format, *args)


class CallbackServer:
    """Loopback HTTP listener that receives the OAuth redirect.

    Binds an ephemeral port on 127.0.0.1 as soon as it is created, so the
    redirect URI is known before the login is initialised.
    """

    def __init__(self, host='127.0.0.1'):
        self.httpd = HTTPServer((host, 0), _CallbackHandler)
        self.httpd.expected_state = None
        self.httpd.results = queue.Queue()
        self.port = self.httpd.server_address[1]
        self.redirect_uri = f"http://localhost:{self.port}/callback"
        self._thread = None

    def start(self, expected_state):
        self.httpd.expected_state = expected_state
        self._thread = threading.Thread(target=self.httpd.serve_forever, daemon=True)
        self._thread.start()

    def wait(self, timeout=LOGIN_TIMEOUT):
        """Block until the browser hits the callback.

        Returns:
            str: The authorization code

        Raises:
            LoginError: On state mismatch, missing code or timeout
        """
        try:
            result = self.httpd.results.get(timeout=timeout)
        except queue.Empty:
            raise LoginError(f"login timed out after {timeout / 60:g} minutes")
        if isinstance(result, Exception):
            raise result
        return result

    def close(self):
        if self._thread is not None:
            self.httpd.shutdown()
            self._thread.join(timeout=5)
            self._thread = None
        self.httpd.server_close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()


def init_login(base_url, redirect_uri, code_challenge):
    """Start a CLI login on the platform.

    Returns:
        dict: {'auth_url', 'state', 'auth0_domain'}
    """
    url = f"{base_url.rstrip('/')}/api/v1/cli/login/init"
    response = requests.get(url, params={
        'redirect_uri': redirect_uri,
        'code_challenge': code_challenge,
        'base_url': base_url,
    }, timeout=30)
    logger.debug("GET %s -> %s", url, response.status_code)
    if response.status_code != 200:
        raise LoginError(f"initialize login failed: {response.text.strip()}")
    return response.json()


def exchange_code(base_url, code, state, code_verifier, machine_id=None):
    """Exchange the authorization code for an API token.

    Returns:
        dict: {'token', 'expires_at', 'token_id', 'token_name'}
    """
    payload = {'code': code, 'state': state, 'code_verifier': code_verifier}
    if machine_id:
        payload['machine_id'] = machine_id
    url = f"{base_url.rstrip('/')}/api/v1/cli/login/token"
    response = requests.post(url, json=payload, timeout=30)
    logger.debug("POST %s -> %s", url, response.status_code)
    if response.status_code != 200:
        raise LoginError(f"token exchange failed: {response.text.strip()}")
    return response.json()


def run_login(base_url, config_file=None, open_browser=True, timeout=LOGIN_TIMEOUT):
    """Run the browser login and store the resulting token.

    Args:
        base_url: Platform URL to authenticate against
        config_file: Alternative config file
        open_browser: Try to open the system browser automatically
        timeout: Seconds to wait for the browser callback

    Returns:
        dict: The token exchange response
    """
    print("Ankra CLI Login")
    print("───────────────")
    print()

    code_verifier = generate_code_verifier()
    code_challenge = generate_code_challenge(code_verifier)

    with CallbackServer() as server:
        init = init_login(base_url, server.redirect_uri, code_challenge)
        if init.get('auth0_domain'):
            print(f"Using Auth0 domain: {init['auth0_domain']}")
            print()

        server.start(init.get('state', ''))

        auth_url = init.get('auth_url', '')
        print("Opening browser for authentication...")
        print()
        print("If the browser doesn't open, visit this URL:")
        print()
        print(f"  {auth_url}")
        print()
        if open_browser and not webbrowser.open(auth_url):
            print("Could not open browser automatically. Please open the URL above manually.")
            print()
        print("Waiting for authentication...")
        print("(Press Ctrl+C to cancel)")
        print()

        code = server.wait(timeout)

    print("Exchanging authorization code for token...")
    machine_id = get_or_create_machine_id(config_file)
    token_data = exchange_code(base_url, code, init.get('state', ''), code_verifier, machine_id)

    path = save_config(
        token=token_data.get('token', ''),
        base_url=base_url,
        token_id=token_data.get('token_id') or None,
        token_name=token_data.get('token_name') or None,
        config_file=config_file,
    )

    print()
    print("✓ Login successful!")
    print()
    print(f"  Credentials saved to: {path}")
    if token_data.get('token_name'):
        print(f"  Token name: {token_data['token_name']}")
    print(f"  Token expires: {format_expiry(token_data.get('expires_at'))}")
    print()
    print("You can now use ankra CLI commands. Try:")
    print("  ankra cluster list")
    print()
    return token_data
