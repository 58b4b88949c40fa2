# moodle_utils/settings.py - client configuration from environment variables
"""
Environment contract (all optional except MOODLE_WWWROOT):

    MOODLE_WWWROOT      site root, e.g. https://moodle.example.org
    MOODLE_SERVICE      web service short name (default moodle_mobile_app)
    MOODLE_TOKEN        permanent token; skips the login round trip
    MOODLE_USERNAME     credentials used when no token is set
    MOODLE_PASSWORD
    MOODLE_VERIFY_SSL   0/false/no/off disables certificate checks
    MOODLE_TIMEOUT      request timeout in seconds (default 30)
"""
import os

from moodle_client import DEFAULT_SERVICE, DEFAULT_TIMEOUT, ClientConfig, ConfigurationError, connect

FALSY = {"0", "false", "no", "off"}


def load_config(environ=None) -> ClientConfig:
    env = os.environ if environ is None else environ

    wwwroot = (env.get("MOODLE_WWWROOT") or "").strip()
    if not wwwroot:
        raise ConfigurationError("MOODLE_WWWROOT is not set")

    raw_timeout = env.get("MOODLE_TIMEOUT", str(DEFAULT_TIMEOUT))
    try:
        timeout = float(raw_timeout)
    except ValueError:
        raise ConfigurationError(f"MOODLE_TIMEOUT must be a number of seconds, got {raw_timeout!r}") from None

    return ClientConfig(
        wwwroot=wwwroot,
        service=env.get("MOODLE_SERVICE") or DEFAULT_SERVICE,
        token=env.get("MOODLE_TOKEN") or None,
        verify=env.get("MOODLE_VERIFY_SSL", "1").strip().lower() not in FALSY,
        timeout=timeout,
    )


def connect_from_env(environ=None, transport=None, logger=None):
    env = os.environ if environ is None else environ
    config = load_config(env)
    return connect(
        config.wwwroot,
        token=config.token,
        username=env.get("MOODLE_USERNAME"),
        password=env.get("MOODLE_PASSWORD"),
        service=config.service,
        verify=config.verify,
        timeout=config.timeout,
        transport=transport,
        logger=logger,
    )
