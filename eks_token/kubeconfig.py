import os

import yaml

from eks_token.exceptions import KubeconfigError

NOT_FOUND = "(not found)"


def kubeconfig_paths(explicit=None):
    """Files to load, in precedence order: explicit path, $KUBECONFIG, ~/.kube/config."""
    if explicit:
        return [explicit]
    env_path = os.environ.get("KUBECONFIG")
    if env_path:
        return [p for p in env_path.split(os.pathsep) if p]
    return [os.path.join(os.path.expanduser("~"), ".kube", "config")]


def _read(path):
    try:
        with open(path, "r", encoding="utf-8") as config_file:
            return yaml.safe_load(config_file) or {}
    except yaml.YAMLError as e:
        raise KubeconfigError(f"failed to parse {path}: {e}") from e


def _named(entries, kind, path):
    if not isinstance(entries, list):
        raise KubeconfigError(f"malformed kubeconfig {path}")
    named = {}
    for entry in entries:
        if isinstance(entry, dict) and entry.get("name"):
            body = entry.get(kind)
            named[str(entry["name"])] = body if isinstance(body, dict) else {}
    return named


def load_kubeconfig(paths):
    """Merge kubeconfig files the way kubectl does: the first definition wins.

    Missing files are skipped, but at least one of them has to exist.

    :param paths: files from kubeconfig_paths()
    :returns: dict with contexts, clusters, users and current-context
    :raises KubeconfigError: if a file can not be read or parsed

    """
    merged = {"contexts": {}, "clusters": {}, "users": {}, "current-context": ""}
    found = False
    for path in paths:
        if not os.path.exists(path):
            continue
        found = True
        try:
            data = _read(path)
        except OSError as e:
            raise KubeconfigError(f"failed to read {path}: {e}") from e
        if not isinstance(data, dict):
            raise KubeconfigError(f"malformed kubeconfig {path}")

        for key in ("contexts", "clusters", "users"):
            for name, body in _named(data.get(key) or [], key[:-1], path).items():
                merged[key].setdefault(name, body)
        if not merged["current-context"]:
            merged["current-context"] = str(data.get("current-context") or "")
    if not found:
        raise KubeconfigError(f"no kubeconfig found in {os.pathsep.join(paths)}")
    return merged


def format_contexts(config):
    rows = []
    for name in sorted(config["contexts"]):
        context = config["contexts"][name]
        display_name = f"*{name}" if name == config["current-context"] else name

        cluster = str(context.get("cluster", ""))
        if cluster not in config["clusters"]:
            cluster = NOT_FOUND
        user = str(context.get("user", ""))
        if user not in config["users"]:
            user = NOT_FOUND
        rows.append((display_name, cluster, user))

    header = ("CONTEXT NAME", "CLUSTER", "USER")
    widths = [max(len(row[i]) for row in [header] + rows) for i in range(3)]
    border = "+" + "+".join("-" * (w + 2) for w in widths) + "+"

    def line(row):
        return "| " + " | ".join(cell.ljust(w) for cell, w in zip(row, widths)) + " |"

    lines = [border, line(header), border]
    lines.extend(line(row) for row in rows)
    lines.append(border)
    return "\n".join(lines)
