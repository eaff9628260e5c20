"""
Presign an STS GetCallerIdentity request bound to one EKS cluster and wrap it
as a kubectl bearer token.

    GET https://sts.<region>.amazonaws.com/?Action=GetCallerIdentity&Version=2011-06-15
        &X-Amz-Expires=900&X-Amz-SignedHeaders=host;x-k8s-aws-id&...

The API server's authenticator replays the url against STS and only accepts
it when the signed x-k8s-aws-id header names its own cluster.
"""

import base64
import datetime
import logging

import boto3
from botocore.exceptions import BotoCoreError, ClientError
from botocore.signers import RequestSigner

from eks_token.credential import ExecCredential, format_timestamp
from eks_token.exceptions import IssuanceError

TOKEN_PREFIX = "k8s-aws-v1."
K8S_AWS_ID_HEADER = "x-k8s-aws-id"
# STS refuses presigned urls valid for longer than 15 minutes
MAX_TOKEN_DURATION = datetime.timedelta(seconds=900)
STS_URL = "https://sts.{region}.amazonaws.com/?Action=GetCallerIdentity&Version=2011-06-15"


def sign_time():
    return datetime.datetime.now(datetime.timezone.utc)


def encode_token(url):
    encoded = base64.urlsafe_b64encode(url.encode("utf-8")).decode("utf-8")
    return TOKEN_PREFIX + encoded.rstrip("=")


def decode_token(token):
    """Return the presigned url carried by a token.

    :param token: bearer token starting with TOKEN_PREFIX
    :returns: the presigned url
    :raises ValueError: if the token does not carry the prefix

    """
    if not token.startswith(TOKEN_PREFIX):
        raise ValueError(f"token does not start with {TOKEN_PREFIX}")
    encoded = token[len(TOKEN_PREFIX):]
    encoded += "=" * (-len(encoded) % 4)
    return base64.urlsafe_b64decode(encoded.encode("utf-8")).decode("utf-8")


def presign_caller_identity(session, cluster_name, region):
    """Presign GetCallerIdentity with the cluster header in the signature.

    :param session: boto3 session holding the credentials
    :param cluster_name: value of the x-k8s-aws-id header
    :param region: STS region to sign for
    :returns: the presigned url
    :raises IssuanceError: if no credentials resolve or signing fails

    """
    credentials = session.get_credentials()
    if credentials is None:
        raise IssuanceError(
            "No AWS credentials found for the selected profile. "
            "Credentials may have expired or not been configured."
        )

    sts_client = session.client("sts", region_name=region)
    signer = RequestSigner(
        service_id=sts_client.meta.service_model.service_id,
        region_name=region,
        signing_name="sts",
        signature_version="v4",
        credentials=credentials,
        event_emitter=session.events,
    )
    request_params = {
        "method": "GET",
        "url": STS_URL.format(region=region),
        "body": {},
        "headers": {K8S_AWS_ID_HEADER: cluster_name},
        "context": {},
    }
    return signer.generate_presigned_url(
        request_dict=request_params,
        region_name=region,
        expires_in=int(MAX_TOKEN_DURATION.total_seconds()),
        operation_name="",
    )


def issue_credential(request, session=None):
    """Issue a fresh ExecCredential for the cluster named in the request.

    The token is presigned for MAX_TOKEN_DURATION and the expiration is the
    time read just before signing plus that same duration.

    :param request: TokenRequest naming cluster, region and profile
    :param session: boto3 session to sign with, built from the profile if omitted
    :returns: an ExecCredential
    :raises IssuanceError: on any credential or signing failure

    """
    try:
        if session is None:
            session = boto3.Session(
                profile_name=request.profile, region_name=request.region
            )
        now = sign_time()
        url = presign_caller_identity(session, request.cluster_name, request.region)
    except (BotoCoreError, ClientError) as e:
        raise IssuanceError(f"failed to presign STS request: {e}") from e

    logging.debug(f"Presigned STS request for cluster {request.cluster_name}")
    return ExecCredential(
        token=encode_token(url),
        expiration_timestamp=format_timestamp(now + MAX_TOKEN_DURATION),
    )
