import base64
import datetime
import urllib.parse

import boto3
import pytest

from eks_token import issuer
from eks_token.credential import TokenRequest
from eks_token.exceptions import IssuanceError
from eks_token.issuer import (
    MAX_TOKEN_DURATION,
    TOKEN_PREFIX,
    decode_token,
    encode_token,
    issue_credential,
)

FIXED_NOW = datetime.datetime(2024, 1, 2, 3, 4, 5, 250000, tzinfo=datetime.timezone.utc)


@pytest.fixture
def request_ctx():
    return TokenRequest("prod", "us-west-2", "admin")


def _query(credential):
    url = decode_token(credential.token)
    parsed = urllib.parse.urlsplit(url)
    return parsed, urllib.parse.parse_qs(parsed.query)


def test_issue_credential_presigns_caller_identity(request_ctx, static_session):
    credential = issue_credential(request_ctx, session=static_session)

    parsed, query = _query(credential)
    assert parsed.scheme == "https"
    assert parsed.netloc == "sts.us-west-2.amazonaws.com"
    assert query["Action"] == ["GetCallerIdentity"]
    assert query["Version"] == ["2011-06-15"]
    assert query["X-Amz-Algorithm"] == ["AWS4-HMAC-SHA256"]
    assert query["X-Amz-Credential"][0].startswith("AKIDEXAMPLE/")
    assert "/us-west-2/sts/aws4_request" in query["X-Amz-Credential"][0]
    assert "X-Amz-Signature" in query


def test_issue_credential_signs_cluster_header(request_ctx, static_session):
    credential = issue_credential(request_ctx, session=static_session)

    _, query = _query(credential)
    signed_headers = query["X-Amz-SignedHeaders"][0].split(";")
    assert "x-k8s-aws-id" in signed_headers
    assert "host" in signed_headers


def test_issue_credential_requests_maximum_duration(request_ctx, static_session):
    credential = issue_credential(request_ctx, session=static_session)

    _, query = _query(credential)
    assert query["X-Amz-Expires"] == ["900"]


def test_issue_credential_expiration_is_sign_time_plus_duration(
    monkeypatch, request_ctx, static_session
):
    monkeypatch.setattr(issuer, "sign_time", lambda: FIXED_NOW)

    credential = issue_credential(request_ctx, session=static_session)

    assert credential.expiration_timestamp == "2024-01-02T03:19:05Z"
    assert credential.expiration == (FIXED_NOW + MAX_TOKEN_DURATION).replace(microsecond=0)


def test_issue_credential_expiration_never_short(request_ctx, static_session):
    before = datetime.datetime.now(datetime.timezone.utc).replace(microsecond=0)

    credential = issue_credential(request_ctx, session=static_session)

    after = datetime.datetime.now(datetime.timezone.utc)
    assert before + MAX_TOKEN_DURATION <= credential.expiration <= after + MAX_TOKEN_DURATION


def test_issue_credential_token_is_unpadded_urlsafe_base64(request_ctx, static_session):
    credential = issue_credential(request_ctx, session=static_session)

    assert credential.token.startswith(TOKEN_PREFIX)
    body = credential.token[len(TOKEN_PREFIX):]
    assert "=" not in body
    assert set(body) <= set(
        "ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz0123456789-_"
    )


def test_issue_credential_without_credentials(request_ctx):
    session = boto3.Session(region_name="us-west-2")

    with pytest.raises(IssuanceError):
        issue_credential(request_ctx, session=session)


def test_issue_credential_unknown_profile(request_ctx):
    with pytest.raises(IssuanceError):
        issue_credential(request_ctx)


def test_issue_credential_uses_profile(monkeypatch, tmp_path, request_ctx):
    credentials_file = tmp_path / "aws-credentials"
    credentials_file.write_text(
        "[admin]\n"
        "aws_access_key_id = AKIDADMIN\n"
        "aws_secret_access_key = c2VjcmV0\n"
    )
    monkeypatch.setenv("AWS_SHARED_CREDENTIALS_FILE", str(credentials_file))

    credential = issue_credential(request_ctx)

    _, query = _query(credential)
    assert query["X-Amz-Credential"][0].startswith("AKIDADMIN/")


@pytest.mark.parametrize(
    "url",
    [
        "https://sts.us-east-1.amazonaws.com/?Action=GetCallerIdentity",
        "https://sts.eu-west-1.amazonaws.com/?Action=GetCallerIdentity&Version=2011-06-15&a=b",
        "?",
    ],
)
def test_encode_token_strips_padding(url):
    token = encode_token(url)

    assert token.startswith(TOKEN_PREFIX)
    assert not token.endswith("=")
    assert decode_token(token) == url


def test_encode_token_matches_standard_encoding():
    url = "https://sts.us-east-1.amazonaws.com/?x=1"

    expected = base64.urlsafe_b64encode(url.encode()).decode().rstrip("=")
    assert encode_token(url) == TOKEN_PREFIX + expected


def test_decode_token_rejects_foreign_tokens():
    with pytest.raises(ValueError):
        decode_token("Bearer abc")
