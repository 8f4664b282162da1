"""Request Body Encoder - encodes a POST body by its declared body type.

Bodies are never secret-templated: the configured text is sent, and shown
by the introspection view, as written.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any
from urllib.parse import urlencode

import structlog
from urllib3 import encode_multipart_formdata

from infinity_client.errors import BodyEncodingError
from infinity_client.headers import CONTENT_TYPE_FORM_URLENCODED, CONTENT_TYPE_JSON
from infinity_client.models import BodyType, Query

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class EncodedBody:
    """Encoded body bytes and the Content-Type that describes them."""

    content: bytes | None
    content_type: str | None


NO_BODY = EncodedBody(content=None, content_type=None)


def is_post(query: Query) -> bool:
    return query.url_options.method.upper() == "POST"


def parse_graphql_variables(raw: str) -> dict[str, Any]:
    """Parse the GraphQL variables blob.

    Malformed JSON (or JSON that is not an object) is logged and replaced by
    empty variables; the request still goes out.
    """
    if not raw:
        return {}
    try:
        variables = json.loads(raw)
    except json.JSONDecodeError as e:
        logger.error("error parsing graphql variable json", error=str(e))
        return {}
    if not isinstance(variables, dict):
        logger.error("graphql variables must be a json object", variables_type=type(variables).__name__)
        return {}
    return variables


def encode_query_body(query: Query) -> EncodedBody:
    """Encode the body of a query.

    Only POST requests carry a body. An unset or unknown body type falls
    back to the raw text sent as JSON.

    Raises:
        BodyEncodingError: If the multipart body cannot be built.
    """
    if not is_post(query):
        return NO_BODY

    options = query.url_options
    if options.body_type == BodyType.RAW:
        return EncodedBody(
            content=options.body.encode("utf-8"),
            content_type=options.body_content_type or None,
        )

    if options.body_type == BodyType.FORM_DATA:
        fields = [(field.key, field.value) for field in options.body_form]
        try:
            content, content_type = encode_multipart_formdata(fields)
        except (TypeError, ValueError) as e:
            logger.error("error closing the query body reader", error=str(e))
            raise BodyEncodingError(f"error encoding multipart form body: {e}") from e
        return EncodedBody(content=content, content_type=content_type)

    if options.body_type == BodyType.FORM_URLENCODED:
        # Later fields replace earlier ones of the same name
        form = {field.key: field.value for field in options.body_form}
        return EncodedBody(
            content=urlencode(sorted(form.items())).encode("utf-8"),
            content_type=CONTENT_TYPE_FORM_URLENCODED,
        )

    if options.body_type == BodyType.GRAPHQL:
        envelope = {
            "query": options.body_graphql_query,
            "variables": parse_graphql_variables(options.body_graphql_variables),
        }
        return EncodedBody(
            content=json.dumps(envelope).encode("utf-8"),
            content_type=CONTENT_TYPE_JSON,
        )

    return EncodedBody(content=options.body.encode("utf-8"), content_type=CONTENT_TYPE_JSON)
