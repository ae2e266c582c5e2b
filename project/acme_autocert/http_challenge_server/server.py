import logging

from flask import Flask
from flask import Response
from flask import abort

logger = logging.getLogger(__name__)

app = Flask(__name__)
# token -> key authorization
responses: dict[str, str] = {}


@app.route("/.well-known/acme-challenge/<requested_token>")
def http_challenge(requested_token: str) -> Response:
    """The http-01 ACME Identifier Challenge endpoint. Returns the Key
    Authorization upon request.

    Parameters
    ----------
    requested_token : str
        The token that the ACME Server (or someone else) tried to visit.

    Returns
    -------
    Response
        If the requested token is published, this contains the Key
        Authorization for the token as plain text.
    """
    # If the token is not one we should respond to, pretend it's a 404
    if requested_token not in responses:
        logger.debug(f"Unknown token requested: {requested_token}")
        abort(404)

    return Response(responses[requested_token], mimetype="text/plain")
