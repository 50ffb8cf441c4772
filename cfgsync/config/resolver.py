"""
Source Resolver

Turns a config locator into a local path or a remote descriptor.

Locators:
- /etc/app/config.yaml, ./config.json      -> LocalSource
- etcd+http://127.0.0.1:2380/app/cfg.yaml  -> RemoteDescriptor

Resolution is pure: every failure is raised and the caller decides
whether it is fatal.
"""

import os
from pathlib import Path, PurePosixPath
from urllib.parse import urlsplit

from cfgsync.common.config import (
    LocalSource,
    RemoteDescriptor,
    SUPPORTED_EXTENSIONS,
    SUPPORTED_PROVIDERS,
)
from cfgsync.common.exceptions import (
    ConfigFileNotFound,
    InvalidLocator,
    MissingEncoding,
    UnsupportedProvider,
)
from cfgsync.common.logging_setup import get_service_logger

logger = get_service_logger("config.resolver")


def resolve(locator: str, force_remote: bool = False) -> LocalSource | RemoteDescriptor:
    """
    Resolve a config locator.

    Args:
        locator: Filesystem path or provider+protocol URL
        force_remote: Require a remote locator (--isRemoteConfig)

    Returns:
        LocalSource for scheme-less locators, RemoteDescriptor otherwise

    Raises:
        InvalidLocator: Locator does not parse, or force_remote without a scheme
        UnsupportedProvider: Provider unknown or transport segment missing
        MissingEncoding: Remote path has no extension
    """
    if not locator:
        raise InvalidLocator(locator, "empty locator")

    try:
        parts = urlsplit(locator)
        # netloc port is validated lazily by urllib
        parts.port
    except ValueError as e:
        raise InvalidLocator(locator, str(e)) from e

    if not parts.scheme:
        if force_remote:
            raise InvalidLocator(locator, "remote config requested but locator has no scheme")
        return LocalSource(path=locator)

    return _resolve_remote(parts.scheme, parts.netloc, parts.path)


def _resolve_remote(scheme: str, netloc: str, path: str) -> RemoteDescriptor:
    """Build a RemoteDescriptor from the parsed URL components"""
    provider, sep, protocol = scheme.partition("+")

    if provider not in SUPPORTED_PROVIDERS:
        raise UnsupportedProvider(scheme, provider)

    # etcd needs an explicit transport: etcd+http or etcd+https
    if not sep or not protocol:
        raise UnsupportedProvider(scheme)

    endpoint = f"{protocol}://{netloc}"

    encoding_type = encoding_from_path(path)
    if not encoding_type:
        raise MissingEncoding(path)

    descriptor = RemoteDescriptor(
        provider=provider,
        endpoint=endpoint,
        path=path,
        encoding_type=encoding_type,
    )

    logger.info(
        f"Using remote config provider: '{provider}', endpoint: '{endpoint}', "
        f"path: '{path}', type: '{encoding_type}'",
        extra={"provider": provider, "endpoint": endpoint, "path": path},
    )

    return descriptor


def encoding_from_path(path: str) -> str:
    """Extension of the last path segment, lower-cased and without the dot"""
    return PurePosixPath(path).suffix.lower().lstrip(".")


def find_config_file(
    cfg_name: str,
    search_paths: list[str],
    extensions: list[str] | tuple[str, ...] = SUPPORTED_EXTENSIONS,
) -> LocalSource:
    """
    Search directories for <cfg_name>.<ext>.

    Directories are tried in order, and within each directory the extensions
    are tried in order. The first existing file wins.

    Args:
        cfg_name: File name without extension
        search_paths: Directories to search; $VARS and ~ are expanded
        extensions: Candidate extensions

    Returns:
        LocalSource for the first match

    Raises:
        ConfigFileNotFound: No candidate exists
    """
    for search_path in search_paths:
        directory = Path(os.path.expanduser(os.path.expandvars(search_path)))
        for ext in extensions:
            candidate = directory / f"{cfg_name}.{ext}"
            if candidate.is_file():
                logger.debug(f"Found config file: {candidate}")
                return LocalSource(path=str(candidate), encoding_type=ext)

    raise ConfigFileNotFound(cfg_name, list(search_paths))
