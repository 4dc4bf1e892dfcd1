"""Locating the weaver executable and the semantic-conventions registry."""

from __future__ import annotations

import logging
import os
import platform
import shutil
import subprocess
import sys
import tarfile
from pathlib import Path

import httpx

from fixtureops.errors import BinaryNotFoundError, ErrorContext, RegistryNotFoundError

logger = logging.getLogger(__name__)

WEAVER_BINARY_NAME = "weaver"
WEAVER_RELEASE_URL = (
    "https://github.com/open-telemetry/weaver/releases/download/v{version}/weaver-{arch}-{os}.tar.xz"
)
REGISTRY_REPOSITORY = "https://github.com/open-telemetry/semantic-conventions.git"

# Build outputs checked after PATH, relative to the project root
DISCOVERY_PATHS = (
    Path("target/debug/weaver"),
    Path("target/release/weaver"),
    Path("vendors/weaver/target/release/weaver"),
)


def default_cache_dir() -> Path:
    base = os.environ.get("XDG_CACHE_HOME") or str(Path.home() / ".cache")
    return Path(base) / "fixtureops" / "bin"


def detect_platform() -> tuple[str, str]:
    """(arch, os) pair used in weaver release archive names."""
    machine = platform.machine().lower()
    if machine in ("x86_64", "amd64"):
        arch = "x86_64"
    elif machine in ("aarch64", "arm64"):
        arch = "aarch64"
    else:
        arch = "unknown"

    if sys.platform.startswith("linux"):
        os_name = "unknown-linux-gnu"
    elif sys.platform == "darwin":
        os_name = "apple-darwin"
    elif sys.platform.startswith("win"):
        os_name = "pc-windows-msvc"
    else:
        os_name = "unknown"
    return arch, os_name


def _is_executable(path: Path) -> bool:
    return path.is_file() and os.access(path, os.X_OK)


def locate_binary(
    override: str | None = None,
    allow_download: bool = False,
    version: str = "0.19.0",
    project_root: Path | None = None,
    cache_dir: Path | None = None,
) -> Path:
    """Find the weaver executable.

    Order: explicit override, PATH, build output directories, the user
    cache, and finally (when ``allow_download`` is set) a download of the
    pinned release.

    Raises:
        BinaryNotFoundError: Nothing was found. ``attempts`` lists every
            location that was tried.
    """
    attempts: list[str] = []

    if override:
        resolved = override if os.sep in override else shutil.which(override)
        candidate = Path(resolved or override)
        attempts.append(f"override {override}")
        if _is_executable(candidate):
            return candidate
        # An explicit override that does not exist is not silently replaced
        raise BinaryNotFoundError(binary=override, attempts=attempts)

    attempts.append("PATH")
    found = shutil.which(WEAVER_BINARY_NAME)
    if found:
        return Path(found)

    root = project_root or Path.cwd()
    for relative in DISCOVERY_PATHS:
        candidate = root / relative
        attempts.append(str(candidate))
        if _is_executable(candidate):
            return candidate

    cache = (cache_dir or default_cache_dir()) / version / WEAVER_BINARY_NAME
    attempts.append(str(cache))
    if _is_executable(cache):
        return cache

    if allow_download:
        url = release_url(version)
        attempts.append(url)
        try:
            return download_binary(url, cache)
        except (httpx.HTTPError, tarfile.TarError, OSError, LookupError) as e:
            logger.warning(f"Downloading weaver {version} failed: {e}")
            raise BinaryNotFoundError(binary=WEAVER_BINARY_NAME, attempts=attempts, cause=e) from e

    logger.debug(f"weaver not found; tried {attempts}")
    raise BinaryNotFoundError(binary=WEAVER_BINARY_NAME, attempts=attempts)


def release_url(version: str) -> str:
    arch, os_name = detect_platform()
    return WEAVER_RELEASE_URL.format(version=version, arch=arch, os=os_name)


def download_binary(url: str, destination: Path, timeout: float = 120.0) -> Path:
    """Download a release archive and extract the weaver binary to ``destination``.

    Raises:
        httpx.HTTPError: The download failed.
        LookupError: The archive contains no weaver binary.
    """
    destination.parent.mkdir(parents=True, exist_ok=True)
    archive = destination.with_name(destination.name + ".tar.xz")

    logger.info(f"Downloading weaver from {url}")
    with httpx.stream("GET", url, follow_redirects=True, timeout=timeout) as response:
        response.raise_for_status()
        with open(archive, "wb") as f:
            for chunk in response.iter_bytes():
                f.write(chunk)

    try:
        with tarfile.open(archive, mode="r:xz") as tar:
            member = next(
                (m for m in tar.getmembers() if m.isfile() and Path(m.name).name == WEAVER_BINARY_NAME),
                None,
            )
            if member is None:
                raise LookupError(f"No '{WEAVER_BINARY_NAME}' binary in {url}")
            source = tar.extractfile(member)
            assert source is not None
            with source, open(destination, "wb") as out:
                shutil.copyfileobj(source, out)
    finally:
        archive.unlink(missing_ok=True)

    destination.chmod(0o755)
    logger.info(f"weaver installed at {destination}")
    return destination


def ensure_registry(path: str, clone: bool = False, timeout: float = 300.0) -> Path:
    """Return the registry directory, cloning the upstream registry if asked.

    Raises:
        RegistryNotFoundError: The path does not exist (and could not be
            cloned). ``path`` is carried exactly as given.
    """
    registry = Path(path)
    if registry.exists():
        return registry
    if not clone:
        raise RegistryNotFoundError(path)

    if shutil.which("git") is None:
        raise RegistryNotFoundError(path, message=f"Registry path does not exist and git is unavailable: {path}")

    command = ["git", "clone", "--depth", "1", "--single-branch", REGISTRY_REPOSITORY, str(registry)]
    logger.info(f"Cloning semantic conventions registry into {path}")
    try:
        result = subprocess.run(command, capture_output=True, text=True, timeout=timeout)
    except subprocess.TimeoutExpired as e:
        raise RegistryNotFoundError(
            path,
            message=f"Cloning the registry into {path} timed out",
            context=ErrorContext(command=command),
            cause=e,
        ) from e
    if result.returncode != 0:
        raise RegistryNotFoundError(
            path,
            message=f"Registry path does not exist and cloning failed: {path}",
            context=ErrorContext(command=command, stderr=result.stderr),
        )
    return registry
