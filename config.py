"""Configuration management for the Ankra CLI.

Credentials live in a dotenv file ($HOME/.ankra/.env by default); the active
cluster and organisation are kept as small JSON files next to it.
"""
import getpass
import logging
import os
import re
import socket
from pathlib import Path
from dotenv import dotenv_values, set_key, unset_key

from config_utils import get_env_value, load_json_config, merge_configs, save_json_config

logger = logging.getLogger(__name__)

CONFIG_DIR = Path.home() / ".ankra"
DEFAULT_BASE_URL = "https://platform.ankra.app"

TOKEN_KEY = 'ANKRA_API_TOKEN'
BASE_URL_KEY = 'ANKRA_BASE_URL'
TOKEN_ID_KEY = 'ANKRA_TOKEN_ID'
TOKEN_NAME_KEY = 'ANKRA_TOKEN_NAME'
MACHINE_ID_KEY = 'ANKRA_MACHINE_ID'

CREDENTIAL_KEYS = (TOKEN_KEY, BASE_URL_KEY, TOKEN_ID_KEY, TOKEN_NAME_KEY)


def get_config_file_path(config_file=None):
    """Get the config file path."""
    if config_file:
        return Path(config_file).expanduser()
    return CONFIG_DIR / ".env"


def ensure_config_file(config_file=None):
    """Ensure the config file and its directory exist."""
    path = get_config_file_path(config_file)
    path.parent.mkdir(parents=True, exist_ok=True)
    if not path.exists():
        path.touch(mode=0o600)
    return path


def config_exists(config_file=None):
    """Check if config file exists."""
    return get_config_file_path(config_file).exists()


def load_config(config_file=None):
    """Load the values stored in the config file."""
    path = get_config_file_path(config_file)
    values = dotenv_values(path) if path.exists() else {}
    return {
        'token': values.get(TOKEN_KEY) or '',
        'base_url': values.get(BASE_URL_KEY) or '',
        'token_id': values.get(TOKEN_ID_KEY) or '',
        'token_name': values.get(TOKEN_NAME_KEY) or '',
        'machine_id': values.get(MACHINE_ID_KEY) or '',
    }


def resolve_settings(token=None, base_url=None, config_file=None):
    """Resolve the effective token and base URL.

    Args:
        token: Value of --token, if given
        base_url: Value of --base-url, if given
        config_file: Alternative config file (--config)

    Returns:
        dict with 'token', 'base_url', 'token_id' and 'token_name'
    """
    file_config = load_config(config_file)
    env_vars = {
        'token': get_env_value(TOKEN_KEY),
        'base_url': get_env_value(BASE_URL_KEY),
    }
    settings = merge_configs(
        defaults={'token': '', 'base_url': DEFAULT_BASE_URL, 'token_id': '', 'token_name': ''},
        env_vars=env_vars,
        file_config={k: file_config[k] for k in ('token', 'base_url', 'token_id', 'token_name')},
        cli_args={'token': token, 'base_url': base_url},
    )
    settings['base_url'] = settings['base_url'].rstrip('/')
    return settings


def save_config(token=None, base_url=None, token_id=None, token_name=None, config_file=None):
    """Save credentials to the config file. None values are left untouched."""
    path = ensure_config_file(config_file)
    updates = {
        TOKEN_KEY: token,
        BASE_URL_KEY: base_url,
        TOKEN_ID_KEY: token_id,
        TOKEN_NAME_KEY: token_name,
    }
    for key, value in updates.items():
        if value is not None:
            set_key(str(path), key, value)
    return path


def clear_credentials(config_file=None):
    """Remove stored credentials.

    Returns:
        bool: False when there was no config file to clear
    """
    if not config_exists(config_file):
        return False
    path = get_config_file_path(config_file)
    stored = dotenv_values(path)
    for key in CREDENTIAL_KEYS:
        if key in stored:
            unset_key(str(path), key)
    return True


def sanitize_identifier(value):
    """Reduce a host or user name to [a-z0-9-], at most 20 characters."""
    value = value.lower()
    for ch in (' ', '_', '.'):
        value = value.replace(ch, '-')
    value = re.sub(r'[^a-z0-9-]', '', value)
    return value[:20]


def get_or_create_machine_id(config_file=None):
    """Return the persisted machine id, creating it from hostname and user."""
    machine_id = load_config(config_file)['machine_id']
    if machine_id:
        return machine_id

    try:
        hostname = socket.gethostname() or 'unknown'
    except OSError:
        hostname = 'unknown'
    try:
        username = getpass.getuser()
    except (KeyError, OSError):
        username = 'unknown'

    machine_id = f"{sanitize_identifier(hostname)}-{sanitize_identifier(username)}"
    path = ensure_config_file(config_file)
    set_key(str(path), MACHINE_ID_KEY, machine_id)
    logger.debug("Created machine id %s", machine_id)
    return machine_id


def _selected_cluster_file():
    return CONFIG_DIR / "selected.json"


def _organisation_file():
    return CONFIG_DIR / "organisation.json"


def load_selected_cluster():
    """Return the active cluster dict, or None when nothing is selected."""
    cluster = load_json_config(_selected_cluster_file())
    return cluster if cluster.get('id') else None


def save_selected_cluster(cluster):
    save_json_config(_selected_cluster_file(), cluster)


def clear_selected_cluster():
    """Forget the active cluster. Returns False if none was selected."""
    path = _selected_cluster_file()
    if not path.exists():
        return False
    os.remove(path)
    return True


def load_organisation():
    """Return the locally saved organisation, or None."""
    org = load_json_config(_organisation_file())
    return org if org.get('organisation_id') else None


def save_organisation(organisation_id, name=None, role=None):
    save_json_config(_organisation_file(),
                     {'organisation_id': organisation_id, 'name': name, 'role': role})
