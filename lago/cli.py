"""
lago: deploy Go binaries and static files to AWS Lambda.

    lago [--debug] [--region R] list
    lago versions [-l] FUNC
    lago get [-f] [--ver V] FUNC DIR
    lago put [--ver] FUNC DIR
    lago deploy --func FUNC --target TARGET [--all] [--ver] {[base:]path}
"""

from __future__ import annotations

import argparse
import base64
import logging
import os
import shutil
import subprocess
import sys
import tempfile
from typing import Any

import boto3
import httpx
from botocore.exceptions import BotoCoreError, ClientError
from dotenv import load_dotenv

from lago.bundle import build_archive, build_tree_archive, extract_archive
from lago.filesystem import PackagingError

load_dotenv()

logger = logging.getLogger("lago")


class DeployError(Exception):
    """The target function cannot take a Go deployment."""


GO_RUNTIME = "go1.x"
DEFAULT_REGION = "us-east-1"

DEPLOY_EPILOG = """
The optional {[base:]path} arguments add static files to the Lambda function,
which is useful for template files, executables, or even storing the source
of a function in Lambda. The base component specifies the path within the
Lambda environment. The path component specifies a file that exists in the
local filesystem. If path is a regular file, the Lambda environment will
contain base/filename. If base is not specified or empty, filename will exist
in the root of the Lambda environment. If path is a directory, the contents
are added recursively if a trailing separator exists, non-recursively
otherwise. The base/path separator is the platform path list separator
(':' on Unix, ';' on Windows).
"""


def default_region() -> str:
    return os.environ.get("AWS_REGION") or DEFAULT_REGION


def lambda_client(region: str):
    return boto3.client("lambda", region_name=region)


# ── Commands ─────────────────────────────────────────────────


def list_functions(svc) -> None:
    """Print every function running on the Go runtime."""
    kwargs: dict[str, Any] = {}
    while True:
        res = svc.list_functions(**kwargs)
        for fn in res.get("Functions", []):
            if fn.get("Runtime") == GO_RUNTIME:
                print(fn["FunctionName"])
        marker = res.get("NextMarker")
        if not marker:
            break
        kwargs["Marker"] = marker


def list_versions(svc, function_name: str, long: bool = False) -> None:
    kwargs: dict[str, Any] = {"FunctionName": function_name}
    if long:
        print(f"\n{'Version':<16}{'Modified':<32}SHA256[:8]")
    while True:
        res = svc.list_versions_by_function(**kwargs)
        for v in res.get("Versions", []):
            if long:
                digest = base64.b64decode(v["CodeSha256"])[:8].hex()
                print(f"{v['Version']:<16}{v['LastModified']:<32}{digest}")
            else:
                print(v["Version"])
        marker = res.get("NextMarker")
        if not marker:
            break
        kwargs["Marker"] = marker


def confirm_purge(directory: str) -> bool:
    print(f"Directory {directory} is not empty, purge? [y/N]", file=sys.stderr)
    try:
        answer = input()
    except EOFError:
        return False
    return answer.strip() in ("Y", "y")


def purge_directory(directory: str) -> None:
    for name in os.listdir(directory):
        path = os.path.join(directory, name)
        if os.path.isdir(path) and not os.path.islink(path):
            shutil.rmtree(path)
        else:
            os.remove(path)


def get_function(
    svc, function_name: str, directory: str, force: bool = False, version: str = ""
) -> list[str]:
    """Download a function's code and unpack it into directory."""
    if os.listdir(directory):
        if not force and not confirm_purge(directory):
            raise SystemExit("Aborting")
        purge_directory(directory)

    kwargs = {"FunctionName": function_name}
    if version:
        kwargs["Qualifier"] = version
    res = svc.get_function(**kwargs)
    location = res["Code"]["Location"]

    logger.debug(f"Downloading code for {function_name}")
    resp = httpx.get(location, timeout=60, follow_redirects=True)
    resp.raise_for_status()
    names = extract_archive(resp.content, directory)
    logger.info(f"Extracted {len(names)} file(s) to {directory}")
    return names


def upload(svc, function_name: str, zip_bytes: bytes, publish: bool = False) -> dict:
    """Replace the function's code, optionally publishing a new version."""
    logger.info(f"Uploading {len(zip_bytes)} bytes to {function_name}")
    res = svc.update_function_code(FunctionName=function_name, ZipFile=zip_bytes)
    if publish:
        pv = svc.publish_version(FunctionName=function_name, RevisionId=res["RevisionId"])
        logger.info(f"Published version {pv.get('Version')} of {function_name}")
    return res


def put_function(svc, function_name: str, directory: str, publish: bool = False) -> dict:
    return upload(svc, function_name, build_tree_archive(directory), publish)


def handler_name(svc, function_name: str) -> str:
    """Look up the handler of a Go function; the binary must carry that name."""
    res = svc.get_function_configuration(FunctionName=function_name)
    runtime = res.get("Runtime")
    if runtime != GO_RUNTIME:
        raise DeployError(f"Runtime for {function_name} is {runtime}")
    return res["Handler"]


def go_build(target: str, output: str) -> None:
    """Cross-compile target for the Lambda environment into output."""
    gobin = os.environ.get("LAGO_GO") or shutil.which("go")
    if not gobin:
        raise FileNotFoundError("go toolchain not found on PATH")
    cmd = [gobin, "build", "-o", output]
    tags = os.environ.get("LAMBDA_TAGS")
    if tags:
        cmd += ["-tags", tags]
    cmd.append(target)
    env = dict(os.environ, GOOS="linux", GOARCH="amd64")
    logger.debug(f"Running {' '.join(cmd)}")
    proc = subprocess.run(cmd, env=env, capture_output=True, text=True)
    if proc.returncode != 0:
        logger.error(proc.stdout + proc.stderr)
        proc.check_returncode()


def deploy(
    svc,
    function_name: str,
    target: str,
    static: list[str],
    all_files: bool = False,
    publish: bool = False,
    debug: bool = False,
) -> dict:
    """Build target, zip it with the static file requests and upload."""
    handler = handler_name(svc, function_name)
    tmpdir = tempfile.mkdtemp(prefix="lago-")
    try:
        binary = os.path.join(tmpdir, handler)
        go_build(target, binary)
        zip_bytes = build_archive(binary, handler, static, all_files)
        if debug:
            zip_path = os.path.join(tmpdir, "zipfile.zip")
            logger.debug(f"Writing {zip_path}")
            with open(zip_path, "wb") as f:
                f.write(zip_bytes)
        return upload(svc, function_name, zip_bytes, publish)
    finally:
        if debug:
            logger.debug(f"Preserving temporary directory: {tmpdir}")
        else:
            shutil.rmtree(tmpdir, ignore_errors=True)


# ── Argument parsing ─────────────────────────────────────────


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="lago", description="Go deployments for AWS Lambda")
    parser.add_argument("--debug", action="store_true", help="Verbose error log")
    parser.add_argument(
        "--region",
        default=default_region(),
        help="AWS region, overridden by environment AWS_REGION",
    )
    sub = parser.add_subparsers(dest="command", metavar="command", required=True)

    sub.add_parser("list", help="List functions using the Go runtime")

    p = sub.add_parser("versions", help="List versions of a function")
    p.add_argument("-l", dest="long", action="store_true", help="Long output")
    p.add_argument("function")

    p = sub.add_parser(
        "get",
        help="Download a function into a directory",
        description="If -f is not given, prompt before purging a non-empty directory.",
    )
    p.add_argument("-f", dest="force", action="store_true", help="Force purge of destination")
    p.add_argument("--ver", dest="version", default="", help="Version or alias")
    p.add_argument("function")
    p.add_argument("directory")

    p = sub.add_parser(
        "put",
        help="Upload a directory recursively as the function code",
    )
    p.add_argument("--ver", dest="publish", action="store_true", help="Create new version")
    p.add_argument("function")
    p.add_argument("directory")

    p = sub.add_parser(
        "deploy",
        help="Build a Go target and upload it with static files",
        epilog=DEPLOY_EPILOG,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    p.add_argument(
        "--all",
        dest="all_files",
        action="store_true",
        help="Do not exclude source files if static files specified",
    )
    p.add_argument("--func", dest="function", required=True, help="Lambda function name")
    p.add_argument(
        "--target", required=True, help="Build target (Go source file or main package directory)"
    )
    p.add_argument("--ver", dest="publish", action="store_true", help="Create new version")
    p.add_argument("static", nargs="*", metavar="[base:]path")
    return parser


def configure_logging(debug: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.INFO,
        format="lago: %(message)s",
    )
    # botocore is chatty at DEBUG
    logging.getLogger("botocore").setLevel(logging.WARNING)


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(args.debug)
    svc = lambda_client(args.region)

    try:
        if args.command == "list":
            list_functions(svc)
        elif args.command == "versions":
            list_versions(svc, args.function, args.long)
        elif args.command == "get":
            get_function(svc, args.function, args.directory, args.force, args.version)
        elif args.command == "put":
            put_function(svc, args.function, args.directory, args.publish)
        elif args.command == "deploy":
            deploy(
                svc,
                args.function,
                args.target,
                args.static,
                all_files=args.all_files,
                publish=args.publish,
                debug=args.debug,
            )
    except (
        PackagingError,
        DeployError,
        OSError,
        ClientError,
        BotoCoreError,
        httpx.HTTPError,
        subprocess.CalledProcessError,
    ) as e:
        logger.error(str(e))
        if args.debug:
            logger.exception("Traceback")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
