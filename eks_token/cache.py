import datetime
import logging
import os
import tempfile
import urllib.parse

from eks_token.credential import ExecCredential
from eks_token.exceptions import StorageError

CACHE_EXPIRY_PADDING = datetime.timedelta(seconds=30)
DEFAULT_CACHE_DIR = os.path.join("~", ".kube", "cache")


def _quote(value):
    return urllib.parse.quote(value, safe="")


def _make_private_dirs(path):
    # os.makedirs only applies the mode to the leaf
    missing = []
    while not os.path.isdir(path):
        missing.append(path)
        parent = os.path.dirname(path)
        if parent == path:
            break
        path = parent
    for directory in reversed(missing):
        try:
            os.mkdir(directory, 0o700)
        except FileExistsError:
            if not os.path.isdir(directory):
                raise


def cache_file_path(cluster_name, profile=None, cache_dir=None):
    """Return the cache file for a cluster, creating the cache directory.

    Every component is percent-encoded, so no two (profile, cluster) pairs
    share a file.

    :param cluster_name: EKS cluster name
    :param profile: AWS profile the token is issued for, or None
    :param cache_dir: directory holding the cache files, ~/.kube/cache by default
    :returns: absolute path of the cache file
    :raises StorageError: if the directory can not be created

    """
    cache_dir = os.path.abspath(os.path.expanduser(cache_dir or DEFAULT_CACHE_DIR))
    try:
        _make_private_dirs(cache_dir)
    except OSError as e:
        raise StorageError(f"failed to create cache directory {cache_dir}: {e}") from e

    if profile:
        filename = f"eks-token-{_quote(profile)}@{_quote(cluster_name)}.json"
    else:
        filename = f"eks-token-{_quote(cluster_name)}.json"
    return os.path.join(cache_dir, filename)


def read_valid_cache(path, now=None):
    """Return the cached credential text if it is still usable.

    Anything that prevents using the file (missing, unreadable, not an
    ExecCredential, expiring within CACHE_EXPIRY_PADDING) is a miss and
    yields None.

    :param path: cache file path
    :param now: aware datetime to compare against, defaults to the current time
    :returns: the file content unchanged, or None

    """
    if now is None:
        now = datetime.datetime.now(datetime.timezone.utc)
    try:
        with open(path, "r", encoding="utf-8") as cache_file:
            data = cache_file.read()
        credential = ExecCredential.from_json(data)
    except (OSError, ValueError, RecursionError) as e:
        logging.debug(f"Cache miss for {path}: {e}")
        return None

    if credential.expiration - now > CACHE_EXPIRY_PADDING:
        logging.debug(f"Cache hit for {path}, expires {credential.expiration_timestamp}")
        return data
    logging.debug(f"Cache miss for {path}: expires {credential.expiration_timestamp}")
    return None


def write_cache(path, credential):
    """Persist a credential, replacing the file in one rename.

    :param path: cache file path
    :param credential: ExecCredential to store
    :raises StorageError: if the file can not be written

    """
    data = credential.to_json()
    directory = os.path.dirname(path) or "."
    tmp_path = None
    try:
        # mkstemp creates the file with mode 0600
        fd, tmp_path = tempfile.mkstemp(
            prefix=".eks-token-", suffix=".tmp", dir=directory
        )
        with os.fdopen(fd, "w", encoding="utf-8") as tmp_file:
            tmp_file.write(data)
            tmp_file.flush()
            os.fsync(tmp_file.fileno())
        os.replace(tmp_path, path)
    except OSError as e:
        if tmp_path is not None and os.path.exists(tmp_path):
            os.unlink(tmp_path)
        raise StorageError(f"failed to write credential to {path}: {e}") from e
    logging.debug(f"Credential written to {path}")
