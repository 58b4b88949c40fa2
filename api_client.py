# api_client.py - minimal HTTP transport wrapper around requests
import requests


class APIClient:
    """Session bound to a site root; every request carries the same timeout and TLS policy."""

    def __init__(self, base_url, timeout=30, verify=True, session=None):
        self.base_url = base_url.rstrip('/')
        self.session = session if session is not None else requests.Session()
        self.timeout = timeout
        self.verify = verify

    def _url(self, endpoint):
        return f"{self.base_url}/{endpoint.lstrip('/')}"

    def get(self, endpoint, params=None, headers=None, stream=False):
        url = self._url(endpoint)
        return self.session.get(url, params=params, headers=headers, timeout=self.timeout,
                                verify=self.verify, stream=stream)

    def post(self, endpoint, data=None, params=None, headers=None, files=None):
        url = self._url(endpoint)
        return self.session.post(url, data=data, params=params, headers=headers, files=files,
                                 timeout=self.timeout, verify=self.verify)

    def close(self):
        self.session.close()

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()
