import json
import logging
import time

import requests

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 15
# The spreadsheet proxy only answers "simple" requests, so JSON goes out as text/plain.
POST_HEADERS = {'Content-Type': 'text/plain;charset=utf-8'}


class SheetError(Exception):
    """The Web App could not be reached or answered with an error."""


class SheetClient:
    """Thin client for the spreadsheet Web App acting as remote database.

    GET  {url}?type=<sales|purchases|products|cups|settings>
    POST {url}  body {"action": ..., ...}
    """

    def __init__(self, url, timeout=DEFAULT_TIMEOUT):
        self.url = url
        self.timeout = timeout

    def _decode(self, response):
        try:
            response.raise_for_status()
        except requests.exceptions.HTTPError as exc:
            raise SheetError(f"HTTP {response.status_code} dari Web App") from exc
        try:
            body = response.json()
        except ValueError as exc:
            raise SheetError("Respons Web App bukan JSON") from exc
        if not isinstance(body, dict):
            raise SheetError("Format respons Web App tidak dikenal")
        if body.get('status') == 'error':
            raise SheetError(body.get('message') or "Web App mengembalikan error")
        return body

    def get(self, kind):
        params = {'type': kind, 't': int(time.time() * 1000)}
        try:
            response = requests.get(self.url, params=params, timeout=self.timeout)
        except requests.exceptions.RequestException as exc:
            raise SheetError(f"Gagal menghubungi Web App: {exc}") from exc
        body = self._decode(response)
        if body.get('status') != 'success':
            raise SheetError(f"Web App tidak mengembalikan data '{kind}'")
        return body

    def rows(self, kind):
        data = self.get(kind).get('data')
        if not isinstance(data, list):
            raise SheetError(f"Data '{kind}' bukan daftar baris")
        if not all(isinstance(row, list) for row in data):
            raise SheetError(f"Data '{kind}' berisi baris yang rusak")
        return data

    def post(self, action, **fields):
        payload = {'action': action}
        payload.update(fields)
        logger.debug("POST %s (%s)", action, ', '.join(sorted(fields)))
        try:
            response = requests.post(self.url, data=json.dumps(payload),
                                     headers=POST_HEADERS, timeout=self.timeout)
        except requests.exceptions.RequestException as exc:
            raise SheetError(f"Gagal mengirim '{action}' ke Web App: {exc}") from exc
        return self._decode(response)
