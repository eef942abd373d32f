"""Event builders shared by the handler tests."""

import json

PASSWORD = "Password123"


def api_event(principal_id=None, body=None, path=None, query=None, source_ip="10.0.0.1"):
    """An HTTP API event as the Lambda authorizer would forward it."""
    event = {
        "headers": {},
        "requestContext": {"http": {"method": "GET", "sourceIp": source_ip}},
        "pathParameters": path,
        "queryStringParameters": query,
    }
    if principal_id is not None:
        event["requestContext"]["authorizer"] = {
            "lambda": {
                "userId": principal_id,
                "email": f"{principal_id}@example.com",
                "name": principal_id,
                "isAdmin": "false",
            }
        }
    if body is not None:
        event["body"] = json.dumps(body)
    return event


def response_body(response):
    return json.loads(response["body"])
