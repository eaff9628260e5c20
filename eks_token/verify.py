import logging

import requests
import urllib3

from eks_token.exceptions import VerificationError

PROXIES = {}
REQUEST_TIMEOUT = 10
SELF_SUBJECT_REVIEW_PATH = "apis/authentication.k8s.io/v1/selfsubjectreviews"


def verify_token(target, token, insecure=False):
    """Ask the API server who the token authenticates as.

    :param target: API server url, example: https://xxxx.gr7.us-east-1.eks.amazonaws.com/
    :param token: bearer token to present
    :param insecure: skip TLS certificate verification
    :returns: the username the API server resolved the token to
    :raises VerificationError: if the server is unreachable or rejects the token

    """
    if not target.endswith("/"):
        target = target + "/"
    if insecure:
        urllib3.disable_warnings(urllib3.exceptions.InsecureRequestWarning)

    review = {"apiVersion": "authentication.k8s.io/v1", "kind": "SelfSubjectReview"}
    try:
        req = requests.post(
            f"{target}{SELF_SUBJECT_REVIEW_PATH}",
            json=review,
            proxies=PROXIES,
            verify=not insecure,
            headers={"Authorization": f"Bearer {token}"},
            timeout=REQUEST_TIMEOUT,
        )
    except requests.RequestException as e:
        raise VerificationError(f"failed to reach {target}: {e}") from e

    logging.debug(req.text)
    if req.status_code in (401, 403):
        raise VerificationError(f"token rejected by {target} (HTTP {req.status_code})")
    if not 200 <= req.status_code < 300:
        raise VerificationError(f"unexpected response from {target}: HTTP {req.status_code}")

    try:
        username = req.json()["status"]["userInfo"]["username"]
    except (ValueError, KeyError, TypeError) as e:
        raise VerificationError(f"malformed SelfSubjectReview from {target}") from e
    return username
