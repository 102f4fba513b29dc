import requests

from movieverse.errors import ExternalLookupFailure


def get_json(url: str, params: dict | None = None, session=None):
    """
    Fetch a JSON object from a third-party metadata source.

    Args:
        url (str): Endpoint URL.
        params (dict | None): Query string parameters.
        session (requests.Session | None): Session to reuse; module-level ``requests`` otherwise.

    Returns:
        dict: Decoded JSON body.

    Raises:
        ExternalLookupFailure: On transport errors, non-2xx status, invalid JSON
        or a body that is not a JSON object.
    """
    client = session or requests
    try:
        response = client.get(url, params=params)
    except requests.RequestException as exc:
        raise ExternalLookupFailure(f"request to {url} failed: {exc}") from exc
    if not response.ok:
        raise ExternalLookupFailure(f"{url} answered {response.status_code}")
    try:
        data = response.json()
    except ValueError as exc:
        raise ExternalLookupFailure(f"{url} returned invalid JSON") from exc
    if not isinstance(data, dict):
        raise ExternalLookupFailure(f"{url} returned an unexpected body")
    return data
