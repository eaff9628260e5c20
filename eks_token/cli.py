#!/usr/bin/env python3

import argparse
import json
import logging
import os
import sys

from eks_token.cache import cache_file_path, read_valid_cache, write_cache
from eks_token.credential import TokenRequest
from eks_token.exceptions import EKSTokenError, InputError
from eks_token.issuer import issue_credential
from eks_token.kubeconfig import format_contexts, kubeconfig_paths, load_kubeconfig
from eks_token.verify import verify_token

PROFILE_ENV = "AWS_PROFILE"


def get_token(request, cache_dir=None):
    """Return the ExecCredential text for a request, issuing only on a cache miss.

    A credential that can not be persisted is never returned.
    """
    cache_path = cache_file_path(request.cluster_name, request.profile, cache_dir)
    cached = read_valid_cache(cache_path)
    if cached is not None:
        return cached

    logging.debug(f"Issuing a new token for cluster {request.cluster_name}")
    credential = issue_credential(request)
    write_cache(cache_path, credential)
    return credential.to_json()


def _token_request(args):
    if args.output != "json":
        raise InputError("only 'json' is accepted for --output")
    if not args.region:
        raise InputError("--region must not be empty")
    if not args.cluster_name:
        raise InputError("--cluster-name must not be empty")
    profile = os.environ.get(PROFILE_ENV)
    if not profile:
        raise InputError(f"{PROFILE_ENV} environment variable is required")
    return TokenRequest(args.cluster_name, args.region, profile)


def _get_token(args):
    print(get_token(_token_request(args), args.cache_dir))


def _verify_token(args):
    request = _token_request(args)
    credential = json.loads(get_token(request, args.cache_dir))
    username = verify_token(args.target, credential["status"]["token"], args.insecure)
    logging.info(f"Token for {request.cluster_name} is valid, authenticated as {username}")


def _show_kubeconfig(args):
    print(format_contexts(load_kubeconfig(kubeconfig_paths(args.kubeconfig))))


def _add_token_args(parser):
    parser.add_argument("--region", required=True, help="AWS region (required)")
    parser.add_argument(
        "--cluster-name", required=True, help="EKS cluster name (required)"
    )
    parser.add_argument(
        "--output", default="json", help="Output format, must be 'json'"
    )
    parser.add_argument(
        "--cache-dir", default=None, help="Default: ~/.kube/cache"
    )


def _parse_args(argv=None):
    parser = argparse.ArgumentParser(
        prog="eks-get-token",
        description="Cached EKS authentication tokens for kubectl.",
    )
    parser.add_argument("--debug", action="store_true", help="Verbose logging")
    commands = parser.add_subparsers(dest="command", required=True)

    eks = commands.add_parser("eks", help="EKS operations")
    eks_commands = eks.add_subparsers(dest="eks_command", required=True)

    get_token_parser = eks_commands.add_parser(
        "get-token", help="Print an ExecCredential for the cluster"
    )
    _add_token_args(get_token_parser)
    get_token_parser.set_defaults(func=_get_token)

    verify_parser = eks_commands.add_parser(
        "verify-token", help="Check the token against the cluster API server"
    )
    _add_token_args(verify_parser)
    verify_parser.add_argument(
        "--target",
        required=True,
        help="API server url, example: https://xxxx.gr7.us-east-1.eks.amazonaws.com/",
    )
    verify_parser.add_argument(
        "--insecure", action="store_true", help="Skip TLS certificate verification"
    )
    verify_parser.set_defaults(func=_verify_token)

    kubeconfig = commands.add_parser("kubeconfig", help="Kubeconfig operations")
    kubeconfig_commands = kubeconfig.add_subparsers(
        dest="kubeconfig_command", required=True
    )
    show_parser = kubeconfig_commands.add_parser(
        "show", help="Display kubeconfig contexts in a table"
    )
    show_parser.add_argument("--kubeconfig", default=None, help="Path to kubeconfig file")
    show_parser.set_defaults(func=_show_kubeconfig)

    return parser.parse_args(argv)


def main(argv=None):
    args = _parse_args(argv)
    logging.basicConfig(
        format="%(asctime)s - %(message)s",
        level=logging.DEBUG if args.debug else logging.INFO,
    )
    try:
        args.func(args)
    except EKSTokenError as e:
        logging.error(e)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
