"""URL Builder - base URL merge, parameter merge, secret templating and redaction.

Secrets from Settings.secure_query_fields are referenced as ${__qs.<name>}.
Every function takes an explicit include_secrets flag: True substitutes the
real value for transmission, False substitutes REDACTED_PLACEHOLDER for
display. There is no module level switch.
"""

from __future__ import annotations

from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from infinity_client.models import ApiKeyType, AuthMethod, Query, Settings

# Fixed-width stand-in for every secret in display output
REDACTED_PLACEHOLDER = "xxxxxxxx"

SECRET_TOKEN_TEMPLATE = "${{__qs.{name}}}"


def secret_token(name: str) -> str:
    """The placeholder token that references secure field *name*."""
    return SECRET_TOKEN_TEMPLATE.format(name=name)


def replace_secrets(value: str, settings: Settings, include_secrets: bool) -> str:
    """Substitute every secure field token in *value*."""
    for name, secret in settings.secure_query_fields.items():
        replacement = secret if include_secrets else REDACTED_PLACEHOLDER
        value = value.replace(secret_token(name), replacement)
    return value


def normalize_url(url: str) -> str:
    """Rewrite browser links of well-known code hosts to their raw content URLs."""
    if url.startswith("https://github.com") and "/blob/" in url:
        url = url.replace("https://github.com", "https://raw.githubusercontent.com", 1)
        url = url.replace("/blob/", "/", 1)
    if url.startswith("https://gitlab.com") and "/-/blob/" in url:
        url = url.replace("/-/blob/", "/-/raw/", 1)
    if url.startswith("https://bitbucket.org") and "/src/" in url:
        url = url.replace("/src/", "/raw/", 1)
    return url


def get_query_url(settings: Settings, query: Query, include_secrets: bool) -> str:
    """Build the final request URL of a query.

    The query URL is prefixed with the settings URL unless it already starts
    with it, so an absolute URL to another host stays under the base URL.
    Parameters embedded in the URL and the query's explicit parameters are
    all kept (same-named entries are not overwritten), then sorted by name
    and value. An API key configured for query placement replaces any
    parameter of the same name.
    """
    url = query.url
    if not url.startswith(settings.url):
        url = settings.url + url

    # Secrets are substituted after splitting so a value holding "&" or "="
    # cannot change the parameter structure.
    parts = urlsplit(url)
    parts = parts._replace(
        netloc=replace_secrets(parts.netloc, settings, include_secrets),
        path=replace_secrets(parts.path, settings, include_secrets),
    )
    params = [
        (replace_secrets(key, settings, include_secrets), replace_secrets(value, settings, include_secrets))
        for key, value in parse_qsl(parts.query, keep_blank_values=True)
    ]
    for param in query.url_options.params:
        params.append((param.key, replace_secrets(param.value, settings, include_secrets)))

    if settings.auth_method == AuthMethod.API_KEY and settings.api_key_type == ApiKeyType.QUERY:
        value = settings.api_key_value if include_secrets else REDACTED_PLACEHOLDER
        params = [(key, v) for key, v in params if key != settings.api_key_key]
        params.append((settings.api_key_key, value))

    query_string = urlencode(sorted(params))
    return normalize_url(urlunsplit(parts._replace(query=query_string)))


def can_allow_url(url: str, allowed_hosts: list[str]) -> bool:
    """Host Allow-List Gate.

    An empty list places no restriction. Otherwise the URL must start with
    one of the entries (case sensitive prefix match).
    """
    if not allowed_hosts:
        return True
    return any(url.startswith(host) for host in allowed_hosts)
