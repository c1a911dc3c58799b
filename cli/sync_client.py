"""CLI client for a running RepoSync server."""

from __future__ import annotations

import argparse
import base64
import json
import sys
from pathlib import Path
from typing import Any
from urllib.parse import quote, urlparse

try:
    import httpx
except ImportError:
    print("Error: httpx is required. Install with: pip install httpx")
    sys.exit(1)

CONFIG_FILE = ".reposync-sync.json"
_LOCALHOST_HOSTS = {"localhost", "127.0.0.1", "::1"}


class SyncClient:
    """Client for the RepoSync HTTP API."""

    def __init__(
        self,
        server_url: str,
        token: str | None = None,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.server_url = server_url.rstrip("/")
        headers = {"Authorization": f"Bearer {token}"} if token else {}
        self.client = httpx.Client(
            base_url=self.server_url,
            headers=headers,
            timeout=300.0,
            transport=transport,
        )

    def close(self) -> None:
        """Close the HTTP client."""
        self.client.close()

    def __enter__(self) -> SyncClient:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()

    def _post(self, path: str, **kwargs: Any) -> dict[str, Any]:
        resp = self.client.post(path, **kwargs)
        resp.raise_for_status()
        result: dict[str, Any] = resp.json()
        return result

    def status(self) -> dict[str, Any]:
        resp = self.client.get("/api/sync/status")
        resp.raise_for_status()
        result: dict[str, Any] = resp.json()
        return result

    def check(self) -> dict[str, Any]:
        return self._post("/api/sync/check")

    def sync(self, account_id: str, review: bool = False) -> dict[str, Any]:
        mode = "review" if review else "direct"
        return self._post(f"/api/sync/{quote(account_id, safe='')}", params={"mode": mode})

    def pull(self, account_id: str, reflect_deletions: bool = True) -> dict[str, Any]:
        return self._post(
            f"/api/sync/{quote(account_id, safe='')}/pull",
            params={"reflect_deletions": str(reflect_deletions).lower()},
        )

    def push(
        self,
        account_id: str,
        filename: str,
        review: bool = False,
        status: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        body: dict[str, Any] = {"review": review}
        if status:
            body["status"] = status
        if metadata:
            body["metadata"] = metadata
        return self._post(
            f"/api/sync/{quote(account_id, safe='')}/items/{quote(filename, safe='')}/push",
            json=body,
        )

    def deploy(self, files: list[tuple[Path, str]]) -> dict[str, Any]:
        """Deploy local files; each entry is (local path, repository path)."""
        payload = []
        for local_path, repo_path in files:
            data = local_path.read_bytes()
            try:
                payload.append({"path": repo_path, "content": data.decode("utf-8")})
            except UnicodeDecodeError:
                payload.append(
                    {
                        "path": repo_path,
                        "content": base64.b64encode(data).decode("ascii"),
                        "encoding": "base64",
                    }
                )
        return self._post("/api/sync/deploy", json={"files": payload})


def validate_server_url(server_url: str, allow_insecure_http: bool = False) -> str:
    """Validate server URL and enforce HTTPS for non-localhost hosts by default."""
    normalized = server_url.strip().rstrip("/")
    parsed = urlparse(normalized)
    if parsed.scheme not in {"http", "https"} or not parsed.netloc:
        raise ValueError("Server URL must include scheme and host (e.g. https://example.com)")

    hostname = parsed.hostname
    if parsed.scheme == "http" and not allow_insecure_http and hostname not in _LOCALHOST_HOSTS:
        raise ValueError(
            "HTTPS is required for non-localhost servers. "
            "Use --allow-insecure-http only on trusted networks."
        )

    return normalized


def parse_metadata(pairs: list[str]) -> dict[str, str]:
    """Parse ``key=value`` arguments into a metadata dict."""
    metadata: dict[str, str] = {}
    for pair in pairs:
        key, sep, value = pair.partition("=")
        if not sep or not key.strip():
            msg = f"Invalid metadata {pair!r}; expected key=value"
            raise ValueError(msg)
        metadata[key.strip()] = value
    return metadata


def parse_deploy_target(target: str) -> tuple[Path, str]:
    """``LOCAL[:REPO_PATH]``; the repository path defaults to the local path as given."""
    local, sep, repo_path = target.partition(":")
    if not sep:
        repo_path = Path(local).as_posix()
    return Path(local), repo_path.lstrip("/")


def load_config(dir_path: Path) -> dict[str, str]:
    """Load client config from file."""
    config_path = dir_path / CONFIG_FILE
    if not config_path.exists():
        return {}
    config: dict[str, str] = json.loads(config_path.read_text())
    return config


def save_config(dir_path: Path, config: dict[str, str]) -> None:
    """Save client config to file."""
    config_path = dir_path / CONFIG_FILE
    config_path.write_text(json.dumps(config, indent=2))


def _print_review_request(result: dict[str, Any]) -> None:
    request = result.get("review_request")
    if request:
        verb = "Opened" if request["created"] else "Updated"
        print(f"  {verb} pull request #{request['number']}: {request['url']}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="reposync-sync",
        description="Drive a RepoSync server: sync local content with GitHub",
    )
    parser.add_argument("--dir", "-d", default=".", help="Config directory (default: current)")
    parser.add_argument("--server", "-s", help="Server URL")
    parser.add_argument(
        "--allow-insecure-http",
        action="store_true",
        help="Allow http:// server URLs for non-localhost hosts",
    )
    parser.add_argument("--token", help="API token for the server")

    subparsers = parser.add_subparsers(dest="command")
    subparsers.add_parser("init", help="Save server URL and token")
    subparsers.add_parser("status", help="Show engine status")
    subparsers.add_parser("check", help="Check the GitHub connection")

    sync_parser = subparsers.add_parser("sync", help="Bidirectional sync of one account")
    sync_parser.add_argument("account")
    sync_parser.add_argument("--review", action="store_true", help="Push to a review branch")

    pull_parser = subparsers.add_parser("pull", help="Pull remote changes into the local store")
    pull_parser.add_argument("account")
    pull_parser.add_argument(
        "--keep-deleted",
        action="store_true",
        help="Keep local items that were deleted remotely",
    )

    push_parser = subparsers.add_parser("push", help="Push one item")
    push_parser.add_argument("account")
    push_parser.add_argument("filename")
    push_parser.add_argument("--review", action="store_true", help="Push to a review branch")
    push_parser.add_argument("--status", help="New item status")
    push_parser.add_argument(
        "--meta", action="append", default=[], metavar="KEY=VALUE", help="Metadata override"
    )

    deploy_parser = subparsers.add_parser("deploy", help="Publish files through the GitHub API")
    deploy_parser.add_argument("files", nargs="+", metavar="LOCAL[:REPO_PATH]")
    return parser


def run_command(args: argparse.Namespace, client: SyncClient) -> int:
    """Execute one sub-command against the server; returns the process exit code."""
    if args.command == "status":
        state = client.status()
        print("Sync Status:")
        print(f"  Syncing:   {state['syncing']}")
        print(f"  Last sync: {state.get('last_sync_time') or 'never'}")
        print(f"  Mirror:    {state.get('mirror_path') or 'not configured'}")
    elif args.command == "check":
        report = client.check()
        if not report["success"]:
            print(f"Connection failed: {report.get('error')}")
            return 1
        print("Connection OK")
    elif args.command == "sync":
        result = client.sync(args.account, review=args.review)
        if result.get("skipped"):
            print(f"Skipped: {result.get('reason')}")
            return 0
        print(f"Sync complete. {result['pushed']} pushed, {result['pulled']} pulled.")
        _print_review_request(result)
    elif args.command == "pull":
        result = client.pull(args.account, reflect_deletions=not args.keep_deleted)
        if result.get("skipped"):
            print(f"Skipped: {result.get('reason')}")
            return 0
        print(f"Pull complete. {result['changes']} change(s).")
    elif args.command == "push":
        result = client.push(
            args.account,
            args.filename,
            review=args.review,
            status=args.status,
            metadata=parse_metadata(args.meta),
        )
        print(f"Push: {result['outcome']}")
        if result.get("commit_message"):
            print(f"  {result['commit_message']}")
        _print_review_request(result)
    elif args.command == "deploy":
        result = client.deploy([parse_deploy_target(target) for target in args.files])
        if result.get("skipped_run"):
            print("Skipped: sync in progress")
            return 0
        for path in result["deployed"]:
            print(f"  + {path}")
        for path in result["skipped"]:
            print(f"  = {path} (unchanged)")
        print(f"Deployed {len(result['deployed'])} file(s).")
    return 0


def main() -> None:
    """CLI entry point."""
    parser = build_parser()
    args = parser.parse_args()
    config_dir = Path(args.dir).resolve()

    if args.command == "init":
        if not args.server:
            print("Error: --server required for init")
            sys.exit(1)
        try:
            server_url = validate_server_url(args.server, args.allow_insecure_http)
        except ValueError as exc:
            print(f"Error: {exc}")
            sys.exit(1)
        config = {"server": server_url}
        if args.token:
            config["token"] = args.token
        save_config(config_dir, config)
        print(f"Initialized client config in {config_dir / CONFIG_FILE}")
        return

    if args.command is None:
        parser.print_help()
        return

    config = load_config(config_dir)
    configured_server_url = args.server or config.get("server")
    if not configured_server_url:
        print("Error: No server configured. Run 'reposync-sync init --server <url>' first.")
        sys.exit(1)
    try:
        server_url = validate_server_url(configured_server_url, args.allow_insecure_http)
    except ValueError as exc:
        print(f"Error: {exc}")
        sys.exit(1)

    with SyncClient(server_url, args.token or config.get("token")) as client:
        try:
            code = run_command(args, client)
        except httpx.HTTPStatusError as exc:
            try:
                detail = exc.response.json().get("detail")
            except ValueError:
                detail = exc.response.text
            print(f"Error: server returned {exc.response.status_code}: {detail}")
            sys.exit(1)
        except (httpx.HTTPError, OSError, ValueError) as exc:
            print(f"Error: {exc}")
            sys.exit(1)
    sys.exit(code)


if __name__ == "__main__":
    main()
