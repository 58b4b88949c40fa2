# moodle_client.py - client for the Moodle web service end-points
"""
Thin client for the Moodle web services.

Functions exposed by the site are invoked through webservice/rest/server.php,
files are fetched from webservice/pluginfile.php and uploaded into the user's
draft area through webservice/upload.php. Authentication uses a permanent
token which is either supplied up front or obtained once from login/token.php.

    client = connect("https://moodle.example.org", username="u", password="p")
    info = client.call("core_webservice_get_site_info")
"""
import os
from collections.abc import Mapping
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any, Optional

import requests

from api_client import APIClient
from moodle_utils.log import null_logger

DEFAULT_SERVICE = "moodle_mobile_app"
DEFAULT_TIMEOUT = 30

LOGIN_ENDPOINT = "/login/token.php"
REST_ENDPOINT = "/webservice/rest/server.php"
PLUGINFILE_ENDPOINT = "/webservice/pluginfile.php"
UPLOAD_ENDPOINT = "/webservice/upload.php"

FORM_HEADERS = {"Content-Type": "application/x-www-form-urlencoded"}
ACCEPT_JSON = {"Accept": "application/json"}

SUPPORTED_METHODS = ("GET", "POST")


# ---------- ERRORS ----------
class MoodleClientError(Exception):
    """Base class for every error raised by this client."""


class ConfigurationError(MoodleClientError):
    pass


class AuthenticationError(MoodleClientError):
    pass


class InvocationError(MoodleClientError):
    pass


class RemoteServiceError(MoodleClientError):
    """The site answered, but the payload describes a failure."""

    def __init__(self, message, errorcode=None, exception=None, debuginfo=None):
        super().__init__(message)
        self.errorcode = errorcode
        self.exception = exception
        self.debuginfo = debuginfo


# Network and HTTP status failures are not wrapped; they surface as raised by requests.
TransportError = requests.RequestException


# ---------- CONFIG ----------
@dataclass(frozen=True)
class ClientConfig:
    wwwroot: str
    service: str = DEFAULT_SERVICE
    token: Optional[str] = None
    verify: bool = True
    timeout: float = DEFAULT_TIMEOUT

    def __post_init__(self):
        if not self.wwwroot:
            raise ConfigurationError("wwwroot not defined")
        object.__setattr__(self, "wwwroot", self.wwwroot.rstrip("/"))


@dataclass(frozen=True)
class CallSettings:
    """Per-call execution settings.

    Each one is sent only when set, otherwise the site default applies:

    - raw: return the raw DB content instead of applying format_text() (default False)
    - fileurl: rewrite file urls to webservice/pluginfile.php (default True)
    - filter: apply filters during format_text() (default False)
    """

    raw: Optional[bool] = None
    fileurl: Optional[bool] = None
    filter: Optional[bool] = None

    def as_args(self):
        args = {}
        if self.raw is not None:
            args["moodlewssettingraw"] = self.raw
        if self.fileurl is not None:
            args["moodlewssettingfileurl"] = self.fileurl
        if self.filter is not None:
            args["moodlewssettingfilter"] = self.filter
        return args


# ---------- HELPERS ----------
def encode_args(args):
    """Flatten arguments into the PHP-style keys the REST server expects.

    {"courseids": [2, 3]} becomes {"courseids[0]": 2, "courseids[1]": 3}; nested
    mappings nest the same way. Booleans are sent as 1/0 and None values are dropped.
    """
    out = {}

    def _walk(key, value):
        if value is None:
            return
        if isinstance(value, Mapping):
            for k, v in value.items():
                _walk(f"{key}[{k}]", v)
        elif isinstance(value, (list, tuple)):
            for i, v in enumerate(value):
                _walk(f"{key}[{i}]", v)
        elif isinstance(value, bool):
            out[key] = int(value)
        else:
            out[key] = value

    for key, value in (args or {}).items():
        _walk(str(key), value)
    return out


def check_result(result: Any) -> Any:
    """Raise RemoteServiceError if ``result`` is one of Moodle's error payloads.

    Not applied automatically: functions return many different shapes, so callers
    opt in where it makes sense.
    """
    if isinstance(result, Mapping):
        if "exception" in result and "errorcode" in result:
            raise RemoteServiceError(
                result.get("message") or result["errorcode"],
                errorcode=result["errorcode"],
                exception=result["exception"],
                debuginfo=result.get("debuginfo"),
            )
        if "error" in result and "errorcode" in result:
            raise RemoteServiceError(result["error"], errorcode=result["errorcode"])
    return result


def _is_json(content_type):
    mime = content_type.split(";", 1)[0].strip().lower()
    return mime == "application/json" or mime.endswith("+json")


def _prepare_files(files):
    """Turn the upload argument into requests' ``files`` list, opening any paths given.

    Returns (files, opened); the caller closes everything in ``opened``.
    """
    if isinstance(files, (str, bytes, os.PathLike)) or hasattr(files, "read"):
        files = [files]
    if isinstance(files, Mapping):
        items = list(files.items())
    else:
        items = [(f"file_{i}", entry) for i, entry in enumerate(files, 1)]

    prepared, opened = [], []
    try:
        for field, entry in items:
            if isinstance(entry, (str, os.PathLike)):
                fh = open(entry, "rb")
                opened.append(fh)
                entry = (os.path.basename(os.fspath(entry)), fh)
            prepared.append((field, entry))
    except OSError:
        for fh in opened:
            fh.close()
        raise
    return prepared, opened


# ---------- CLIENT ----------
class MoodleClient:
    def __init__(self, config: ClientConfig, transport: Optional[APIClient] = None, logger=None):
        self.logger = logger if logger is not None else null_logger()
        self.config = config
        if transport is None:
            transport = APIClient(config.wwwroot, timeout=config.timeout, verify=config.verify)
        self.transport = transport

        if config.service == DEFAULT_SERVICE:
            self.logger.debug("[init] using default service %s", DEFAULT_SERVICE)
        if not config.verify:
            self.logger.warning("[init] ssl certificates not required to be valid")
        if not config.token:
            self.logger.debug("[init] no explicit token provided - requires authentication")
        else:
            self.logger.debug("[init] setting up explicit token")

    @property
    def token(self):
        return self.config.token

    @property
    def wwwroot(self):
        return self.config.wwwroot

    def _require_token(self, tag):
        if not self.config.token:
            self.logger.error("[%s] client not authenticated", tag)
            raise ConfigurationError("client not authenticated: no token available")
        return self.config.token

    def authenticate(self, username, password):
        """Exchange credentials for a token at login/token.php and keep it."""
        self.logger.debug("[init] requesting %s token from %s", self.config.service, self.config.wwwroot)
        payload = {"service": self.config.service, "username": username, "password": password}
        resp = self.transport.post(LOGIN_ENDPOINT, data=payload, headers=FORM_HEADERS)
        resp.raise_for_status()
        body = resp.json()

        if isinstance(body, Mapping) and "token" in body:
            self.config = replace(self.config, token=body["token"])
            self.logger.debug("[init] token obtained")
            return self
        if isinstance(body, Mapping) and "error" in body:
            self.logger.error("[init] authentication failed: %s", body["error"])
            raise AuthenticationError(f"authentication failed: {body['error']}")
        self.logger.error("[init] authentication failed: unexpected response")
        raise AuthenticationError("authentication failed: unexpected response")

    def call(self, function, args=None, method="GET", settings: Optional[CallSettings] = None):
        """Execute a web service function and return its decoded JSON result.

        Service-level errors come back as ordinary results; see check_result().
        """
        if not function:
            self.logger.error("[call] missing function name to execute")
            raise InvocationError("missing function name")

        verb = method.upper() if isinstance(method, str) else method
        if verb not in SUPPORTED_METHODS:
            self.logger.error("[call] unsupported request method %r", method)
            raise InvocationError(f"unsupported method: {method!r}")

        token = self._require_token("call")
        params = dict(args or {})
        if settings is not None:
            params.update(settings.as_args())
        params["wstoken"] = token
        params["wsfunction"] = function
        params["moodlewsrestformat"] = "json"
        params = encode_args(params)

        self.logger.debug("[call] calling web service function %s via %s", function, verb)
        if verb == "GET":
            resp = self.transport.get(REST_ENDPOINT, params=params, headers=ACCEPT_JSON)
        else:
            resp = self.transport.post(REST_ENDPOINT, data=params, headers={**FORM_HEADERS, **ACCEPT_JSON})
        resp.raise_for_status()
        return resp.json()

    def download(self, filepath, preview=None, offline=False, save_to=None):
        """Fetch a file from webservice/pluginfile.php.

        Returns the raw bytes, or the decoded payload when the site answers with JSON
        (its way of reporting errors). With ``save_to`` the body is streamed into that
        file and its Path is returned instead of the bytes.
        """
        if not filepath:
            self.logger.error("[download] missing file path to download")
            raise InvocationError("missing file path")

        token = self._require_token("download")
        params = {"token": token, "file": filepath}
        if preview:
            params["preview"] = preview
        if offline:
            params["offline"] = 1

        self.logger.debug("[download] fetching %s", filepath)
        with self.transport.get(PLUGINFILE_ENDPOINT, params=params, stream=save_to is not None) as resp:
            resp.raise_for_status()
            if _is_json(resp.headers.get("Content-Type", "")):
                return resp.json()
            if save_to is None:
                return resp.content
            target = Path(save_to)
            with target.open("wb") as fh:
                for chunk in resp.iter_content(chunk_size=64 * 1024):
                    fh.write(chunk)
            self.logger.debug("[download] saved %s to %s", filepath, target)
            return target

    def upload(self, files, itemid=None, targetpath=None):
        """Upload files into the user's draft area.

        ``files`` maps form fields to a path, an open binary file or a
        (filename, fileobj[, content_type]) tuple; a plain list of paths, or a single
        path, open binary file or bytes value, also works.
        Without a positive ``itemid`` the site allocates a new draft item. Returns the
        list of descriptors the site reports for the stored files.
        """
        if not files:
            self.logger.error("[upload] missing files data")
            raise InvocationError("missing files")

        token = self._require_token("upload")
        data = {}
        if targetpath:
            data["filepath"] = targetpath
        if itemid is not None:
            data["itemid"] = itemid

        prepared, opened = _prepare_files(files)
        self.logger.debug("[upload] uploading %d file(s)", len(prepared))
        try:
            resp = self.transport.post(UPLOAD_ENDPOINT, data=data, params={"token": token},
                                       files=prepared, headers=ACCEPT_JSON)
        finally:
            for fh in opened:
                fh.close()
        resp.raise_for_status()
        return resp.json()

    def close(self):
        self.transport.close()

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()


def connect(wwwroot, token=None, username=None, password=None, service=DEFAULT_SERVICE,
            verify=True, timeout=DEFAULT_TIMEOUT, transport=None, logger=None):
    """Return a ready-to-use client, logging in first unless a token is given."""
    config = ClientConfig(wwwroot=wwwroot, service=service, token=token, verify=verify, timeout=timeout)
    if token is not None and not token:
        raise ConfigurationError("empty token provided")
    if not token:
        if username is None:
            raise ConfigurationError("no username (or token) provided")
        if password is None:
            raise ConfigurationError("no password (or token) provided")
    client = MoodleClient(config, transport=transport, logger=logger)
    if token:
        return client
    return client.authenticate(username, password)
