"""
{
  "apiVersion": "client.authentication.k8s.io/v1beta1",
  "kind": "ExecCredential",
  "status": {
    "expirationTimestamp": "2024-01-02T03:04:05Z",
    "token": "k8s-aws-v1.<base64url of the presigned sts url>"
  }
}
"""

import collections
import datetime
import json

API_VERSION = "client.authentication.k8s.io/v1beta1"
KIND = "ExecCredential"
TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%SZ"

TokenRequest = collections.namedtuple(
    "TokenRequest", ["cluster_name", "region", "profile"]
)


def format_timestamp(moment):
    """Render an aware datetime as an RFC 3339 UTC timestamp.

    :param moment: timezone-aware datetime
    :returns: string such as ``2024-01-02T03:04:05Z``

    """
    return moment.astimezone(datetime.timezone.utc).strftime(TIMESTAMP_FORMAT)


def parse_timestamp(text):
    """Parse an RFC 3339 timestamp into an aware datetime.

    Both the ``Z`` suffix and numeric offsets are accepted. A timestamp
    without an offset is rejected.

    :param text: timestamp string
    :returns: timezone-aware datetime
    :raises ValueError: if the text is not an RFC 3339 timestamp

    """
    if not isinstance(text, str) or not text:
        raise ValueError("empty timestamp")
    if text[-1] in ("Z", "z"):
        text = text[:-1] + "+00:00"
    moment = datetime.datetime.fromisoformat(text)
    if moment.tzinfo is None:
        raise ValueError(f"timestamp has no offset: {text}")
    return moment


class ExecCredential:
    api_version = API_VERSION
    kind = KIND

    def __init__(self, token, expiration_timestamp):
        if not token or not expiration_timestamp:
            raise ValueError("token and expirationTimestamp must both be set")
        self.token = token
        self.expiration_timestamp = expiration_timestamp

    @property
    def expiration(self):
        return parse_timestamp(self.expiration_timestamp)

    def to_dict(self):
        return {
            "apiVersion": self.api_version,
            "kind": self.kind,
            "status": {
                "expirationTimestamp": self.expiration_timestamp,
                "token": self.token,
            },
        }

    def to_json(self):
        return json.dumps(self.to_dict(), indent=2)

    @classmethod
    def from_dict(cls, data):
        """Build a credential from its decoded JSON form.

        :param data: the decoded document
        :returns: an ExecCredential
        :raises ValueError: if the document is not a complete ExecCredential

        """
        if not isinstance(data, dict):
            raise ValueError("credential document is not an object")
        if data.get("apiVersion") != API_VERSION or data.get("kind") != KIND:
            raise ValueError("not a client.authentication.k8s.io ExecCredential")
        status = data.get("status")
        if not isinstance(status, dict):
            raise ValueError("credential has no status")
        token = status.get("token")
        expiration_timestamp = status.get("expirationTimestamp")
        if not isinstance(token, str) or not isinstance(expiration_timestamp, str):
            raise ValueError("credential status is incomplete")
        parse_timestamp(expiration_timestamp)
        return cls(token, expiration_timestamp)

    @classmethod
    def from_json(cls, text):
        return cls.from_dict(json.loads(text))

    def __eq__(self, other):
        if not isinstance(other, ExecCredential):
            return NotImplemented
        return self.to_dict() == other.to_dict()

    def __repr__(self):
        return f"ExecCredential(expirationTimestamp={self.expiration_timestamp!r})"
