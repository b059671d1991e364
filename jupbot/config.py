# jupbot/config.py
import copy
import os
import yaml
from typing import Any, Dict

from .errors import ConfigError

DEFAULTS: Dict[str, Dict[str, Any]] = {
    'system': {
        'environment': 'mainnet-beta',
        'dry_run': False,
        'log_level': 'ERROR',
        'log_dir': 'logs',
    },
    'network': {
        'rpc_endpoint': 'https://api.mainnet-beta.solana.com',
        'ws_endpoint': None,
        'jupiter_api': 'https://quote-api.jup.ag/v6',
        'price_api': 'https://price.jup.ag/v4/price',
        'token_list_url': 'https://token.jup.ag/all',
        'network_timeout_ms': 10000,
    },
    'wallet': {
        'private_key': None,
    },
    'target': {
        'token_a': None,
        'token_b': None,
        'amount': None,
        'profit_percent': None,
    },
    'trading': {
        'slippage_bps': 50,
        'simulate_transaction': True,
        'monitor_interval_seconds': 5.0,
        'liquidation_wait_seconds': 10.0,
    },
    'delivery': {
        'resend_interval_seconds': 2.0,
        'poll_interval_seconds': 2.0,
        'expiry_margin_blocks': 150,
        'fetch_retries': 5,
        'fetch_backoff_seconds': 1.0,
    },
    'audit': {
        'trade_log': 'logs/trades.csv',
        'token_list_cache': 'token_list',
    },
}


def load_config(path: str = "config.yaml") -> Dict[str, Any]:
    """
    Reads the YAML config, fills every optional key from DEFAULTS and
    validates the mandatory ones. Raises ConfigError on any problem.
    """
    if not os.path.exists(path):
        raise ConfigError(f"Config file not found: {path}")
    with open(path, "r") as f:
        try:
            raw = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML in {path}: {e}") from e
    if not isinstance(raw, dict):
        raise ConfigError(f"Top level of {path} must be a mapping")
    return build_config(raw)


def build_config(raw: Dict[str, Any]) -> Dict[str, Any]:
    config = copy.deepcopy(DEFAULTS)
    for section, values in raw.items():
        if values is None:
            continue
        if not isinstance(values, dict):
            raise ConfigError(f"Section '{section}' must be a mapping")
        config.setdefault(section, {}).update(values)

    net = config['network']
    if not net.get('ws_endpoint'):
        net['ws_endpoint'] = derive_ws_endpoint(net['rpc_endpoint'])

    validate_config(config)
    return config


def derive_ws_endpoint(rpc_endpoint: str) -> str:
    if rpc_endpoint.startswith('https://'):
        return 'wss://' + rpc_endpoint[len('https://'):]
    if rpc_endpoint.startswith('http://'):
        return 'ws://' + rpc_endpoint[len('http://'):]
    raise ConfigError(f"RPC endpoint must be an http(s) URL: {rpc_endpoint}")


def validate_config(config: Dict[str, Any]):
    for section, key in (('wallet', 'private_key'), ('target', 'token_a'), ('target', 'token_b'),
                         ('target', 'amount'), ('target', 'profit_percent')):
        if config[section].get(key) in (None, ''):
            raise ConfigError(f"Mandatory setting {section}.{key} is not set")

    target = config['target']
    if target['token_a'] == target['token_b']:
        raise ConfigError("target.token_a and target.token_b must be different tokens")

    try:
        amount = float(target['amount'])
        profit = float(target['profit_percent'])
    except (TypeError, ValueError) as e:
        raise ConfigError(f"target.amount and target.profit_percent must be numbers: {e}") from e
    if amount <= 0:
        raise ConfigError("target.amount must be positive")
    if not 0 < profit < 100:
        raise ConfigError("target.profit_percent must be between 0 and 100")
    target['amount'] = amount
    target['profit_percent'] = profit

    for key in ('resend_interval_seconds', 'poll_interval_seconds', 'fetch_backoff_seconds'):
        if float(config['delivery'][key]) <= 0:
            raise ConfigError(f"delivery.{key} must be positive")
    if int(config['delivery']['fetch_retries']) < 0:
        raise ConfigError("delivery.fetch_retries cannot be negative")
    if float(config['trading']['monitor_interval_seconds']) <= 0:
        raise ConfigError("trading.monitor_interval_seconds must be positive")
