from unittest import mock

import requests

COUNTRIES_URL = "https://countries.test/all"
RATES_URL = "https://rates.test/latest"


class FixedRng:
    """Stands in for random.Random, always drawing the same multiplier."""

    def __init__(self, value=1500):
        self.value = value
        self.calls = []

    def randint(self, a, b):
        self.calls.append((a, b))
        return self.value


def fake_response(payload=None, status_code=200, json_error=None):
    resp = mock.Mock()
    resp.status_code = status_code
    if status_code >= 400:
        resp.raise_for_status.side_effect = requests.HTTPError(f"{status_code} Error")
    else:
        resp.raise_for_status.return_value = None
    if json_error is not None:
        resp.json.side_effect = json_error
    else:
        resp.json.return_value = payload
    return resp
